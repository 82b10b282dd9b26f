from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from .components import (
    BUILTIN_TYPES,
    BuiltinType,
    get_builtin,
    refine_type_for_model,
    supported_component_types,
)
from .errors import (
    ComponentNotFound,
    DuplicateComponent,
    DuplicateModel,
    InvalidParameter,
    LibraryUnavailable,
    MissingParameter,
    NetlistError,
    NodeCountMismatch,
    SubcircuitNotFound,
    UnknownComponentType,
)
from .models import (
    GROUND_NODE,
    CircuitModel,
    ElementSpec,
    EntityInstance,
    ModelSpec,
    ParameterValue,
    SubcircuitDefinition,
    catalog_key,
)
from .units import parse_value, try_parse_value


_LOGGER = logging.getLogger(__name__)

_STRING_PARAMETERS = frozenset({"waveform"})
_LIST_PARAMETERS = frozenset({"points"})


class SubcircuitSource(Protocol):
    generation: int

    def lookup(self, name: str) -> SubcircuitDefinition | None: ...

    def lookup_model(self, name: str) -> ModelSpec | None: ...


@dataclass(slots=True)
class AssemblyResult:
    """Outcome of one assembly attempt: exactly one of ``entity`` or ``error`` is set."""

    spec: ElementSpec
    entity: EntityInstance | None = None
    error: NetlistError | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> EntityInstance:
        if self.entity is not None:
            return self.entity
        if self.error is not None:
            raise self.error
        raise NetlistError(f"Component '{self.spec.name}' was not assembled")

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok, "name": self.spec.name, "warnings": list(self.warnings)}
        if self.entity is not None:
            payload["component"] = self.entity.as_dict()
        if self.error is not None:
            payload["error"] = self.error.as_dict()
        return payload


class CircuitAssembler:
    """Validates element specs and applies them to a circuit model.

    ``catalog`` is ``None`` when no library roots are configured; subcircuit
    references then fail with ``LibraryUnavailable`` instead of
    ``SubcircuitNotFound``.
    """

    def __init__(self, catalog: SubcircuitSource | None = None) -> None:
        self.catalog = catalog

    def try_add(self, circuit: CircuitModel, spec: ElementSpec) -> AssemblyResult:
        warnings: list[str] = []
        try:
            entity, definition = self._build_entity(circuit, spec, warnings)
            self._insert(circuit, entity, definition)
        except NetlistError as exc:
            return AssemblyResult(spec=spec, error=exc, warnings=warnings)
        except (TypeError, ValueError) as exc:
            _LOGGER.warning("Component '%s' could not be built: %s", spec.name, exc)
            error = NetlistError(f"Component '{spec.name}' could not be built: {exc}")
            return AssemblyResult(spec=spec, error=error, warnings=warnings)
        return AssemblyResult(spec=spec, entity=entity, warnings=warnings)

    def add(self, circuit: CircuitModel, spec: ElementSpec) -> AssemblyResult:
        result = self.try_add(circuit, spec)
        result.unwrap()
        return result

    def define_model(self, circuit: CircuitModel, model: ModelSpec) -> ModelSpec:
        if not model.model_name:
            raise MissingParameter("model_name")
        key = catalog_key(model.model_name)
        if key in circuit.models:
            raise DuplicateModel(model.model_name)
        circuit.models[key] = model
        circuit.touch()
        return model

    def remove_component(self, circuit: CircuitModel, name: str) -> EntityInstance:
        entity = circuit.find_entity(name)
        if entity is None:
            raise ComponentNotFound(name)
        del circuit.entities[entity.name]
        if entity.subcircuit is not None:
            key = catalog_key(entity.subcircuit)
            still_used = any(
                other.subcircuit is not None and catalog_key(other.subcircuit) == key
                for other in circuit.entities.values()
            )
            if not still_used:
                circuit.subcircuit_defs_used.pop(key, None)
        circuit.nodes = {GROUND_NODE}
        for other in circuit.entities.values():
            circuit.nodes.update(other.nodes)
        circuit.touch()
        return entity

    def refine_polarity(self, circuit: CircuitModel, spec: ElementSpec) -> ElementSpec:
        """Switch Q/M/J specs to the polarity of a model already defined in the circuit."""
        if spec.is_subcircuit or not spec.model:
            return spec
        model = circuit.models.get(catalog_key(spec.model))
        if model is not None:
            spec.component_type = refine_type_for_model(spec.component_type, model.model_type)
        return spec

    def resolve_subcircuit(self, circuit: CircuitModel, name: str) -> SubcircuitDefinition:
        key = catalog_key(name)
        local = circuit.local_subcircuits.get(key)
        if local is not None:
            return local
        if self.catalog is None:
            raise LibraryUnavailable(name)
        definition = self.catalog.lookup(name)
        if definition is None:
            raise SubcircuitNotFound(name)
        return definition

    def _build_entity(
        self,
        circuit: CircuitModel,
        spec: ElementSpec,
        warnings: list[str],
    ) -> tuple[EntityInstance, SubcircuitDefinition | None]:
        if not spec.name:
            raise MissingParameter("name")
        if any(not node for node in spec.nodes):
            raise MissingParameter("nodes", spec.name)
        if spec.is_subcircuit:
            return self._build_subcircuit_instance(circuit, spec, warnings)
        builtin = get_builtin(spec.component_type)
        if builtin is None:
            raise UnknownComponentType(spec.component_type, supported_component_types())
        return self._build_builtin(circuit, builtin, spec, warnings), None

    def _build_subcircuit_instance(
        self,
        circuit: CircuitModel,
        spec: ElementSpec,
        warnings: list[str],
    ) -> tuple[EntityInstance, SubcircuitDefinition]:
        if not spec.model:
            raise MissingParameter("subcircuit", spec.name)
        definition = self.resolve_subcircuit(circuit, spec.model)
        if len(spec.nodes) != definition.node_count:
            raise NodeCountMismatch(definition.node_count, len(spec.nodes), spec.name)
        if spec.value is not None:
            warnings.append(f"Value given for subcircuit instance '{spec.name}' was ignored.")
        entity = EntityInstance(
            name=spec.name,
            component_type=spec.component_type,
            nodes=list(spec.nodes),
            parameters=dict(spec.parameters),
            subcircuit=definition.name,
            pin_bindings=list(zip(definition.formal_nodes, spec.nodes)),
        )
        return entity, definition

    def _build_builtin(
        self,
        circuit: CircuitModel,
        builtin: BuiltinType,
        spec: ElementSpec,
        warnings: list[str],
    ) -> EntityInstance:
        if not builtin.accepts_pin_count(len(spec.nodes)):
            raise NodeCountMismatch(builtin.expected_pins(), len(spec.nodes), spec.name)
        if builtin.requires_value and spec.value is None:
            raise MissingParameter("value", spec.name)
        if builtin.requires_model and not spec.model:
            raise MissingParameter("model", spec.name)

        parameters = self._normalize_parameters(builtin, spec, warnings)
        for key in builtin.required_parameters:
            if key not in parameters:
                raise MissingParameter(key, spec.name)

        value = spec.value
        if value is not None and not builtin.takes_value:
            warnings.append(f"Value given for {builtin.name} '{spec.name}' was ignored.")
            value = None
        model = spec.model if builtin.requires_model else None
        if spec.model and not builtin.requires_model:
            warnings.append(f"Model given for {builtin.name} '{spec.name}' was ignored.")
        if model:
            self._check_model(circuit, builtin, spec.name, model, warnings)

        return EntityInstance(
            name=spec.name,
            component_type=builtin.name,
            nodes=list(spec.nodes),
            value=value,
            model=model,
            parameters=parameters,
        )

    def _normalize_parameters(
        self,
        builtin: BuiltinType,
        spec: ElementSpec,
        warnings: list[str],
    ) -> dict[str, ParameterValue]:
        parameters: dict[str, ParameterValue] = {}
        for raw_key, raw_value in spec.parameters.items():
            key = str(raw_key).strip().lower()
            if key not in builtin.known_parameters:
                warnings.append(
                    f"Parameter '{raw_key}' is not used by {builtin.name} '{spec.name}' and was ignored."
                )
                continue
            if key in _STRING_PARAMETERS:
                parameters[key] = str(raw_value).strip().lower()
            elif key in _LIST_PARAMETERS:
                if not isinstance(raw_value, (list, tuple)):
                    raise InvalidParameter(str(raw_key), spec.name, "expected a list of numbers")
                parameters[key] = [parse_value(str(item)) for item in raw_value]
            elif key in builtin.required_parameters:
                parameters[key] = parse_value(str(raw_value))
            elif isinstance(raw_value, (int, float)):
                parameters[key] = float(raw_value)
            else:
                number = try_parse_value(str(raw_value))
                parameters[key] = str(raw_value) if number is None else number
        return parameters

    def _check_model(
        self,
        circuit: CircuitModel,
        builtin: BuiltinType,
        name: str,
        model_name: str,
        warnings: list[str],
    ) -> None:
        model = circuit.models.get(catalog_key(model_name))
        if model is None:
            library_model = self.catalog.lookup_model(model_name) if self.catalog is not None else None
            if library_model is None:
                warnings.append(f"Model '{model_name}' used by '{name}' is not defined in the circuit.")
                return
            model = library_model
        if model.model_type in BUILTIN_TYPES and model.model_type not in builtin.model_types:
            warnings.append(
                f"Model '{model_name}' is a {model.model_type} model but '{name}' is a {builtin.name}."
            )

    def _insert(
        self,
        circuit: CircuitModel,
        entity: EntityInstance,
        definition: SubcircuitDefinition | None,
    ) -> None:
        if circuit.find_entity(entity.name) is not None:
            raise DuplicateComponent(entity.name)
        if definition is not None:
            # One materialized definition per name, however many instances refer to it.
            circuit.subcircuit_defs_used.setdefault(definition.key, definition)
            if definition.key not in circuit.local_subcircuits and self.catalog is not None:
                circuit.catalog_generation = self.catalog.generation
        circuit.entities[entity.name] = entity
        circuit.nodes.update(entity.nodes)
        circuit.touch()
        _LOGGER.debug("Added %s '%s' to circuit '%s'", entity.component_type, entity.name, circuit.circuit_id)
