from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .components import (
    BUILTIN_TYPES,
    ELEMENT_PREFIXES,
    PREFIX_TYPES,
    SUBCIRCUIT_TYPE,
    map_model_type,
    refine_type_for_model,
)
from .errors import MissingParameter, NetlistError, NodeCountMismatch, UnrecognizedLine
from .models import ElementSpec, ModelSpec, ParameterValue, SubcircuitDefinition
from .units import is_number, parse_value, try_parse_value


_EQUALS_RE = re.compile(r"\s*=\s*")
_OPEN_PAREN_RE = re.compile(r"\s*\(\s*")
_WAVEFORM_RE = re.compile(r"^(SIN|PULSE|PWL|SFFM|AM)\((.*)\)$", re.IGNORECASE)
_WAVEFORM_ARG_SPLIT_RE = re.compile(r"[\s,]+")
_MODEL_HEAD_RE = re.compile(r"^\.model\s+(\S+)\s+([A-Za-z_][\w]*)\s*(.*)$", re.IGNORECASE | re.DOTALL)
_MODEL_PARAM_RE = re.compile(r"([A-Za-z_][\w.]*)\s*=\s*([^\s=(),]+)")

WAVEFORM_FIELDS: dict[str, tuple[str, ...]] = {
    "sin": ("offset", "amplitude", "frequency", "delay", "damping"),
    "pulse": ("v1", "v2", "td", "tr", "tf", "pw", "per"),
    "sffm": ("vo", "va", "fc", "mdi", "fs"),
    "am": ("vo", "va", "mf", "fc"),
}


@dataclass(slots=True)
class LineError:
    """A netlist line that could not be turned into a spec."""

    line_number: int
    line: str
    name: str
    error: NetlistError
    kind: str = "component"

    def as_dict(self) -> dict[str, Any]:
        return {
            "line_number": self.line_number,
            "name": self.name,
            "kind": self.kind,
            "line": self.line,
            **self.error.as_dict(),
        }


@dataclass(slots=True)
class ParsedNetlist:
    title: str | None = None
    items: list[ElementSpec | ModelSpec] = field(default_factory=list)
    errors: list[LineError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    directives: list[str] = field(default_factory=list)
    subcircuits: dict[str, SubcircuitDefinition] = field(default_factory=dict)

    @property
    def elements(self) -> list[ElementSpec]:
        return [item for item in self.items if isinstance(item, ElementSpec)]

    @property
    def models(self) -> list[ModelSpec]:
        return [item for item in self.items if isinstance(item, ModelSpec)]

    @property
    def is_empty(self) -> bool:
        return not self.items and not self.errors and not self.subcircuits


def _strip_inline_comment(line: str) -> str:
    # ';' is a common inline comment marker in SPICE dialects.
    if ";" in line:
        return line.split(";", 1)[0].rstrip()
    return line


def _logical_lines(text: str) -> list[tuple[int, str]]:
    """Drop comments and blanks, fold '+' continuation lines into the line above."""
    lines: list[tuple[int, str]] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("*"):
            continue
        line = _strip_inline_comment(line).strip()
        if not line:
            continue
        if line.startswith("+"):
            continuation = line[1:].strip()
            if lines:
                first_number, previous = lines[-1]
                if continuation:
                    lines[-1] = (first_number, f"{previous} {continuation}")
                continue
            line = continuation
            if not line:
                continue
        lines.append((number, line))
    return lines


def _split_netlist_tokens(line: str) -> list[str]:
    """Whitespace split that keeps ``SIN(0 1 1k)`` groups and ``key = value`` pairs whole."""
    cleaned = _OPEN_PAREN_RE.sub("(", _EQUALS_RE.sub("=", line.strip()))
    tokens: list[str] = []
    current: list[str] = []
    depth = 0
    for char in cleaned:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        if char.isspace() and depth == 0:
            if current:
                tokens.append("".join(current))
                current = []
            continue
        current.append(char)
    if current:
        tokens.append("".join(current))
    return tokens


def _parameter_value(raw: str) -> ParameterValue:
    value = try_parse_value(raw)
    return raw if value is None else value


def _split_parameters(tokens: list[str]) -> tuple[list[str], dict[str, ParameterValue]]:
    positional: list[str] = []
    parameters: dict[str, ParameterValue] = {}
    for token in tokens:
        if token.upper() == "PARAMS:":
            continue
        if "=" in token:
            key, _, raw = token.partition("=")
            if key:
                parameters[key.strip().lower()] = _parameter_value(raw.strip())
            continue
        positional.append(token)
    return positional, parameters


def _parse_waveform(kind: str, raw_args: str, line: str, line_number: int | None) -> dict[str, ParameterValue]:
    args = [item for item in _WAVEFORM_ARG_SPLIT_RE.split(raw_args.strip()) if item]
    values = [parse_value(item) for item in args]
    if kind == "pwl":
        if len(values) % 2:
            raise UnrecognizedLine(line, line_number, "PWL needs time/value pairs")
        return {"waveform": kind, "points": values}
    fields = WAVEFORM_FIELDS[kind]
    if len(values) > len(fields):
        raise UnrecognizedLine(line, line_number, f"{kind.upper()} takes at most {len(fields)} arguments")
    parameters: dict[str, ParameterValue] = {"waveform": kind}
    parameters.update(zip(fields, values))
    return parameters


def _parse_source_terms(
    terms: list[str],
    *,
    line: str,
    line_number: int | None,
    name: str,
) -> tuple[float | None, dict[str, ParameterValue]]:
    value: float | None = None
    parameters: dict[str, ParameterValue] = {}
    index = 0
    while index < len(terms):
        term = terms[index]
        upper = term.upper()
        if upper == "DC":
            if index + 1 >= len(terms):
                raise MissingParameter("dc", name)
            value = parse_value(terms[index + 1])
            index += 2
            continue
        if upper == "AC":
            magnitude = 1.0
            index += 1
            if index < len(terms) and is_number(terms[index]):
                magnitude = parse_value(terms[index])
                index += 1
                if index < len(terms) and is_number(terms[index]):
                    parameters["acphase"] = parse_value(terms[index])
                    index += 1
            parameters["acmag"] = magnitude
            continue
        waveform = _WAVEFORM_RE.match(term)
        if waveform:
            parameters.update(_parse_waveform(waveform.group(1).lower(), waveform.group(2), line, line_number))
            index += 1
            continue
        if value is None and is_number(term):
            value = parse_value(term)
            index += 1
            continue
        raise UnrecognizedLine(line, line_number, f"unexpected source term '{term}'")
    return value, parameters


def _take_nodes(positional: list[str], count: int, name: str, expected: int | str) -> list[str]:
    if len(positional) < count:
        raise NodeCountMismatch(expected, len(positional), name)
    return positional[:count]


def _reject_extra(extra: list[str], line: str, line_number: int | None) -> None:
    if extra:
        raise UnrecognizedLine(line, line_number, f"unexpected token '{extra[0]}'")


def _parse_semiconductor(
    component_type: str,
    name: str,
    positional: list[str],
    parameters: dict[str, ParameterValue],
    line: str,
    line_number: int | None,
) -> ElementSpec:
    builtin = BUILTIN_TYPES[component_type]
    node_count = min(builtin.pin_counts)
    if len(builtin.pin_counts) > 1 and len(positional) > node_count + 1:
        # Q c b e [s] model [area]: a non-numeric token after the model slot means a substrate node.
        if not is_number(positional[node_count + 1]):
            node_count = max(builtin.pin_counts)
    nodes = _take_nodes(positional, node_count, name, builtin.expected_pins())
    rest = positional[node_count:]
    if not rest:
        raise MissingParameter("model", name)
    model = rest[0]
    if len(rest) > 1:
        parameters["area"] = parse_value(rest[1])
    _reject_extra(rest[2:], line, line_number)
    return ElementSpec(
        component_type=component_type,
        name=name,
        nodes=nodes,
        model=model,
        parameters=parameters,
        line_number=line_number,
    )


def parse_element_line(line: str, line_number: int | None = None) -> ElementSpec:
    """Parse one element or subcircuit-instance line."""
    tokens = _split_netlist_tokens(line)
    if not tokens:
        raise UnrecognizedLine(line, line_number)
    name = tokens[0]
    prefix = name[0].upper()
    if prefix not in ELEMENT_PREFIXES:
        raise UnrecognizedLine(line, line_number)

    positional, parameters = _split_parameters(tokens[1:])

    if prefix == "X":
        if not positional:
            raise UnrecognizedLine(line, line_number, "missing subcircuit name")
        return ElementSpec(
            component_type=SUBCIRCUIT_TYPE,
            name=name,
            nodes=positional[:-1],
            model=positional[-1],
            parameters=parameters,
            line_number=line_number,
        )

    component_type = PREFIX_TYPES[prefix]
    builtin = BUILTIN_TYPES[component_type]

    if prefix in {"R", "C", "L"}:
        nodes = _take_nodes(positional, 2, name, 2)
        if len(positional) < 3:
            raise MissingParameter("value", name)
        _reject_extra(positional[3:], line, line_number)
        return ElementSpec(
            component_type=component_type,
            name=name,
            nodes=nodes,
            value=parse_value(positional[2]),
            parameters=parameters,
            line_number=line_number,
        )

    if prefix in {"V", "I"}:
        nodes = _take_nodes(positional, 2, name, 2)
        value, source_parameters = _parse_source_terms(
            positional[2:],
            line=line,
            line_number=line_number,
            name=name,
        )
        parameters.update(source_parameters)
        return ElementSpec(
            component_type=component_type,
            name=name,
            nodes=nodes,
            value=value,
            parameters=parameters,
            line_number=line_number,
        )

    if prefix in {"E", "G"}:
        nodes = _take_nodes(positional, 4, name, 4)
        rest = positional[4:]
        if rest:
            parameters["gain"] = parse_value(rest[0])
        _reject_extra(rest[1:], line, line_number)
        if "gain" not in parameters:
            raise MissingParameter("gain", name)
        return ElementSpec(
            component_type=component_type,
            name=name,
            nodes=nodes,
            parameters=parameters,
            line_number=line_number,
        )

    return _parse_semiconductor(builtin.name, name, positional, parameters, line, line_number)


def parse_model_statement(line: str, line_number: int | None = None) -> tuple[ModelSpec, list[str]]:
    """Parse ``.MODEL name type (p=v ...)``; non-numeric parameters are dropped with a warning."""
    match = _MODEL_HEAD_RE.match(line.strip())
    if not match:
        raise UnrecognizedLine(line, line_number, "expected '.MODEL name type (param=value ...)'")
    model_name, raw_type, rest = match.groups()
    warnings: list[str] = []
    parameters: dict[str, float] = {}
    for key, raw in _MODEL_PARAM_RE.findall(rest):
        value = try_parse_value(raw)
        if value is None:
            warnings.append(f"Model '{model_name}': non-numeric parameter {key}={raw} was ignored.")
            continue
        parameters[key] = value
    spec = ModelSpec(
        model_name=model_name,
        model_type=map_model_type(raw_type),
        parameters=parameters,
        line_number=line_number,
    )
    return spec, warnings


def parse_subcircuit_header(line: str) -> tuple[str, list[str]]:
    """Return name and formal nodes of a ``.SUBCKT`` line; ``PARAMS:`` and defaults are skipped."""
    tokens = _split_netlist_tokens(line)
    if len(tokens) < 2 or tokens[0].lower() != ".subckt":
        raise UnrecognizedLine(line, None, "expected '.SUBCKT name node ...'")
    nodes: list[str] = []
    for token in tokens[2:]:
        if token.upper().startswith("PARAMS:") or "=" in token:
            break
        nodes.append(token)
    return tokens[1], nodes


def _looks_like_element(spec: ElementSpec) -> bool:
    # A bare "V name a b" reads like prose; a source needs a value or stimulus to win over the title.
    if spec.component_type in {"voltage_source", "current_source"}:
        return spec.value is not None or bool(spec.parameters)
    return True


def _attempts_element(line: str) -> bool:
    # "R1 ..." or "R a 0 5" reads as a component; "RC filter" reads as prose.
    tokens = line.split()
    head = tokens[0]
    if head[0].upper() not in ELEMENT_PREFIXES:
        return False
    return any(char.isdigit() for char in head) or any(is_number(token) for token in tokens[1:])


def _read_first_line(line: str, line_number: int) -> ElementSpec | LineError | None:
    """Classify the first logical line; ``None`` means it is the title."""
    try:
        spec = parse_element_line(line, line_number)
    except NetlistError as exc:
        if _attempts_element(line):
            return LineError(line_number, line, line.split()[0], exc)
        return None
    return spec if _looks_like_element(spec) else None


def reads_as_title(line: str) -> bool:
    """True when ``line`` placed first in a netlist is read back as the title."""
    text = line.strip()
    if not text or "\n" in text or "\r" in text or ";" in text or text[0] in ".*+":
        return False
    return _read_first_line(text, 1) is None


def parse_netlist(text: str) -> ParsedNetlist:
    """Split netlist text into ordered element/model specs plus per-line failures."""
    result = ParsedNetlist()
    block: tuple[int, str, list[str]] | None = None
    first_line = True

    for line_number, line in _logical_lines(text):
        keyword = line.split()[0].lower()

        if block is not None:
            if keyword == ".ends":
                _close_subcircuit_block(result, *block)
                block = None
            else:
                block[2].append(line)
            continue

        if first_line:
            first_line = False
            if not keyword.startswith("."):
                first = _read_first_line(line, line_number)
                if isinstance(first, ElementSpec):
                    result.items.append(first)
                    continue
                if isinstance(first, LineError):
                    result.errors.append(first)
                    continue
                result.title = line
                if line[0].upper() in ELEMENT_PREFIXES:
                    result.warnings.append(
                        f"Line {line_number}: '{line}' was read as the title line; "
                        "start the netlist with a title if it was meant as a component."
                    )
                continue

        if keyword.startswith("."):
            if keyword in {".end", ".ends"}:
                break
            if keyword == ".title":
                result.title = line[len(".title"):].strip() or None
                continue
            if keyword == ".model":
                try:
                    model, model_warnings = parse_model_statement(line, line_number)
                except NetlistError as exc:
                    name = line.split()[1] if len(line.split()) > 1 else ".model"
                    result.errors.append(LineError(line_number, line, name, exc, kind="model"))
                    continue
                result.items.append(model)
                result.warnings.extend(model_warnings)
                continue
            if keyword == ".subckt":
                block = (line_number, line, [])
                continue
            result.directives.append(line)
            result.warnings.append(
                f"Line {line_number}: directive '{keyword}' is not a circuit element and was not applied."
            )
            continue

        try:
            result.items.append(parse_element_line(line, line_number))
        except NetlistError as exc:
            result.errors.append(LineError(line_number, line, line.split()[0], exc))

    if block is not None:
        line_number, header, _ = block
        result.errors.append(
            LineError(
                line_number,
                header,
                header.split()[1] if len(header.split()) > 1 else ".subckt",
                UnrecognizedLine(header, line_number, "missing .ENDS"),
                kind="subcircuit",
            )
        )

    model_types = {model.model_name.lower(): model.model_type for model in result.models}
    for spec in result.elements:
        if spec.model and not spec.is_subcircuit:
            spec.component_type = refine_type_for_model(spec.component_type, model_types.get(spec.model.lower()))
    return result


def _close_subcircuit_block(result: ParsedNetlist, line_number: int, header: str, body: list[str]) -> None:
    try:
        name, nodes = parse_subcircuit_header(header)
    except NetlistError as exc:
        result.errors.append(LineError(line_number, header, ".subckt", exc, kind="subcircuit"))
        return
    definition = SubcircuitDefinition.build(name=name, formal_nodes=nodes, body="\n".join(body))
    if definition.key in result.subcircuits:
        result.warnings.append(f"Line {line_number}: subcircuit '{name}' is defined twice; the last definition wins.")
    result.subcircuits[definition.key] = definition
