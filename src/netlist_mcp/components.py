from __future__ import annotations

from dataclasses import dataclass


SUBCIRCUIT_TYPE = "subcircuit"

_SOURCE_PARAMETERS = frozenset(
    {
        "ac",
        "acmag",
        "acphase",
        "waveform",
        "offset",
        "amplitude",
        "frequency",
        "delay",
        "damping",
        "v1",
        "v2",
        "td",
        "tr",
        "tf",
        "pw",
        "per",
        "points",
        "vo",
        "va",
        "fc",
        "mdi",
        "fs",
        "mf",
    }
)


@dataclass(frozen=True, slots=True)
class BuiltinType:
    """Static description of a built-in element kind."""

    name: str
    prefix: str
    pin_counts: tuple[int, ...]
    pin_names: tuple[str, ...]
    takes_value: bool = False
    requires_value: bool = False
    requires_model: bool = False
    required_parameters: tuple[str, ...] = ()
    known_parameters: frozenset[str] = frozenset()
    model_types: tuple[str, ...] = ()

    def accepts_pin_count(self, count: int) -> bool:
        return count in self.pin_counts

    def expected_pins(self) -> int | str:
        if len(self.pin_counts) == 1:
            return self.pin_counts[0]
        return " or ".join(str(item) for item in self.pin_counts)


BUILTIN_TYPES: dict[str, BuiltinType] = {
    item.name: item
    for item in (
        BuiltinType(
            name="resistor",
            prefix="R",
            pin_counts=(2,),
            pin_names=("n+", "n-"),
            takes_value=True,
            requires_value=True,
            known_parameters=frozenset({"tc1", "tc2", "temp", "m"}),
        ),
        BuiltinType(
            name="capacitor",
            prefix="C",
            pin_counts=(2,),
            pin_names=("n+", "n-"),
            takes_value=True,
            requires_value=True,
            known_parameters=frozenset({"ic", "m"}),
        ),
        BuiltinType(
            name="inductor",
            prefix="L",
            pin_counts=(2,),
            pin_names=("n+", "n-"),
            takes_value=True,
            requires_value=True,
            known_parameters=frozenset({"ic", "m"}),
        ),
        BuiltinType(
            name="voltage_source",
            prefix="V",
            pin_counts=(2,),
            pin_names=("n+", "n-"),
            takes_value=True,
            known_parameters=_SOURCE_PARAMETERS,
        ),
        BuiltinType(
            name="current_source",
            prefix="I",
            pin_counts=(2,),
            pin_names=("n+", "n-"),
            takes_value=True,
            known_parameters=_SOURCE_PARAMETERS,
        ),
        BuiltinType(
            name="diode",
            prefix="D",
            pin_counts=(2,),
            pin_names=("anode", "cathode"),
            requires_model=True,
            known_parameters=frozenset({"area", "m", "temp"}),
            model_types=("diode",),
        ),
        BuiltinType(
            name="bjt_npn",
            prefix="Q",
            pin_counts=(3, 4),
            pin_names=("collector", "base", "emitter", "substrate"),
            requires_model=True,
            known_parameters=frozenset({"area", "m", "temp"}),
            model_types=("bjt_npn",),
        ),
        BuiltinType(
            name="bjt_pnp",
            prefix="Q",
            pin_counts=(3, 4),
            pin_names=("collector", "base", "emitter", "substrate"),
            requires_model=True,
            known_parameters=frozenset({"area", "m", "temp"}),
            model_types=("bjt_pnp",),
        ),
        BuiltinType(
            name="mosfet_n",
            prefix="M",
            pin_counts=(4,),
            pin_names=("drain", "gate", "source", "bulk"),
            requires_model=True,
            known_parameters=frozenset({"w", "l", "m", "ad", "as", "pd", "ps"}),
            model_types=("mosfet_n",),
        ),
        BuiltinType(
            name="mosfet_p",
            prefix="M",
            pin_counts=(4,),
            pin_names=("drain", "gate", "source", "bulk"),
            requires_model=True,
            known_parameters=frozenset({"w", "l", "m", "ad", "as", "pd", "ps"}),
            model_types=("mosfet_p",),
        ),
        BuiltinType(
            name="jfet_n",
            prefix="J",
            pin_counts=(3,),
            pin_names=("drain", "gate", "source"),
            requires_model=True,
            known_parameters=frozenset({"area", "m", "temp"}),
            model_types=("jfet_n",),
        ),
        BuiltinType(
            name="jfet_p",
            prefix="J",
            pin_counts=(3,),
            pin_names=("drain", "gate", "source"),
            requires_model=True,
            known_parameters=frozenset({"area", "m", "temp"}),
            model_types=("jfet_p",),
        ),
        BuiltinType(
            name="vcvs",
            prefix="E",
            pin_counts=(4,),
            pin_names=("out+", "out-", "in+", "in-"),
            required_parameters=("gain",),
            known_parameters=frozenset({"gain"}),
        ),
        BuiltinType(
            name="vccs",
            prefix="G",
            pin_counts=(4,),
            pin_names=("out+", "out-", "in+", "in-"),
            required_parameters=("gain",),
            known_parameters=frozenset({"gain"}),
        ),
    )
}

# Default kind per netlist prefix; polarity of Q/M/J is refined from the model type.
PREFIX_TYPES: dict[str, str] = {
    "R": "resistor",
    "C": "capacitor",
    "L": "inductor",
    "V": "voltage_source",
    "I": "current_source",
    "D": "diode",
    "Q": "bjt_npn",
    "M": "mosfet_n",
    "J": "jfet_n",
    "E": "vcvs",
    "G": "vccs",
}

ELEMENT_PREFIXES = frozenset(PREFIX_TYPES) | {"X"}

MODEL_TYPE_ALIASES: dict[str, str] = {
    "D": "diode",
    "NPN": "bjt_npn",
    "PNP": "bjt_pnp",
    "NMOS": "mosfet_n",
    "PMOS": "mosfet_p",
    "NJF": "jfet_n",
    "JFETN": "jfet_n",
    "PJF": "jfet_p",
    "JFETP": "jfet_p",
}

MODEL_TYPE_KEYWORDS: dict[str, str] = {
    "diode": "D",
    "bjt_npn": "NPN",
    "bjt_pnp": "PNP",
    "mosfet_n": "NMOS",
    "mosfet_p": "PMOS",
    "jfet_n": "NJF",
    "jfet_p": "PJF",
}


def normalize_component_type(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def get_builtin(component_type: str) -> BuiltinType | None:
    return BUILTIN_TYPES.get(normalize_component_type(component_type))


def supported_component_types() -> list[str]:
    return sorted(BUILTIN_TYPES) + [SUBCIRCUIT_TYPE]


def map_model_type(raw: str) -> str:
    return MODEL_TYPE_ALIASES.get(raw.strip().upper(), raw.strip().lower())


def model_type_keyword(model_type: str) -> str:
    return MODEL_TYPE_KEYWORDS.get(model_type.strip().lower(), model_type.strip().upper())


def refine_type_for_model(component_type: str, model_type: str | None) -> str:
    """Pick the polarity variant (npn/pnp, n/p channel) matching a model type."""
    if not model_type:
        return component_type
    current = BUILTIN_TYPES.get(component_type)
    candidate = BUILTIN_TYPES.get(model_type)
    if current is None or candidate is None:
        return component_type
    if current.prefix == candidate.prefix:
        return candidate.name
    return component_type
