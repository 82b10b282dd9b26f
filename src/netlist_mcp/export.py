from __future__ import annotations

from datetime import datetime
from typing import Any

from .components import BUILTIN_TYPES, model_type_keyword
from .models import CircuitModel, EntityInstance, ModelSpec, SubcircuitDefinition
from .parser import WAVEFORM_FIELDS, reads_as_title
from .units import format_value


_SOURCE_KEYS = frozenset({"acmag", "acphase", "waveform", "points"}) | frozenset(
    key for fields in WAVEFORM_FIELDS.values() for key in fields
)
_SOURCE_TYPES = frozenset({"voltage_source", "current_source"})


def _format_parameter(value: Any, engineering: bool) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_value(value, engineering=engineering)
    if isinstance(value, (list, tuple)):
        return " ".join(_format_parameter(item, engineering) for item in value)
    return str(value)


def _format_pairs(parameters: dict[str, Any], engineering: bool, *, skip: frozenset[str] = frozenset()) -> list[str]:
    return [
        f"{key}={_format_parameter(value, engineering)}"
        for key, value in parameters.items()
        if key not in skip
    ]


def _source_terms(entity: EntityInstance, engineering: bool) -> list[str]:
    parameters = entity.parameters
    terms: list[str] = []
    if entity.value is not None:
        terms.extend(["DC", format_value(entity.value, engineering=engineering)])
    if "acmag" in parameters:
        terms.extend(["AC", _format_parameter(parameters["acmag"], engineering)])
        if "acphase" in parameters:
            terms.append(_format_parameter(parameters["acphase"], engineering))
    waveform = str(parameters.get("waveform", "")).lower()
    if waveform == "pwl":
        terms.append(f"PWL({_format_parameter(parameters.get('points', []), engineering)})")
    elif waveform in WAVEFORM_FIELDS:
        args: list[str] = []
        for key in WAVEFORM_FIELDS[waveform]:
            if key not in parameters:
                break
            args.append(_format_parameter(parameters[key], engineering))
        terms.append(f"{waveform.upper()}({' '.join(args)})")
    return terms


def format_entity(entity: EntityInstance, *, engineering_units: bool = False) -> str:
    """Render one entity as a netlist element line."""
    parts = [entity.name, *entity.nodes]
    if entity.is_subcircuit:
        parts.append(entity.subcircuit or "")
        parts.extend(_format_pairs(entity.parameters, engineering_units))
        return " ".join(parts)

    builtin = BUILTIN_TYPES.get(entity.component_type)
    if entity.component_type in _SOURCE_TYPES:
        parts.extend(_source_terms(entity, engineering_units))
        parts.extend(_format_pairs(entity.parameters, engineering_units, skip=_SOURCE_KEYS))
    elif builtin is not None and "gain" in builtin.required_parameters:
        parts.append(_format_parameter(entity.parameters.get("gain", 0.0), engineering_units))
        parts.extend(_format_pairs(entity.parameters, engineering_units, skip=frozenset({"gain"})))
    else:
        if entity.model:
            parts.append(entity.model)
        elif entity.value is not None:
            parts.append(format_value(entity.value, engineering=engineering_units))
        parts.extend(_format_pairs(entity.parameters, engineering_units))
    return " ".join(parts)


def format_model(model: ModelSpec, *, engineering_units: bool = False) -> str:
    keyword = model_type_keyword(model.model_type)
    pairs = " ".join(_format_pairs(model.parameters, engineering_units))
    return f".MODEL {model.model_name} {keyword}({pairs})"


def format_subcircuit(definition: SubcircuitDefinition) -> list[str]:
    lines = [" ".join([".SUBCKT", definition.name, *definition.formal_nodes])]
    lines.extend(line for line in definition.body.splitlines() if line.strip())
    lines.append(f".ENDS {definition.name}")
    return lines


def _title_line(circuit: CircuitModel) -> str:
    title = " ".join((circuit.title or circuit.description or "").split())
    if not title:
        return f"Netlist for circuit {circuit.circuit_id}"
    # A title that would parse as an element goes through .TITLE instead.
    return title if reads_as_title(title) else f".TITLE {title}"


def export_netlist(
    circuit: CircuitModel,
    *,
    include_comments: bool = True,
    engineering_units: bool = False,
    include_definitions: bool = False,
) -> str:
    """Render ``circuit`` as netlist text that parses back to the same elements.

    Subcircuit instances are always written, whether or not their definition
    is known. Definitions that came inline with an imported netlist are always
    written; library definitions only with ``include_definitions``.
    """
    lines = [_title_line(circuit)]
    if include_comments:
        lines.append(f"* Circuit: {circuit.circuit_id}")
        if circuit.description:
            lines.append(f"* Description: {' '.join(circuit.description.split())}")
        lines.append(f"* Components: {circuit.component_count}")
        if circuit.subcircuit_defs_used:
            names = ", ".join(sorted(item.name for item in circuit.subcircuit_defs_used.values()))
            lines.append(f"* Subcircuits: {names}")
        lines.append(f"* Exported: {datetime.now().isoformat(timespec='seconds')}")

    for model in circuit.models.values():
        lines.append(format_model(model, engineering_units=engineering_units))

    for key, definition in circuit.subcircuit_defs_used.items():
        if include_definitions or key in circuit.local_subcircuits:
            lines.extend(format_subcircuit(definition))

    for entity in circuit.entities.values():
        lines.append(format_entity(entity, engineering_units=engineering_units))

    lines.append(".end")
    return "\n".join(lines) + "\n"
