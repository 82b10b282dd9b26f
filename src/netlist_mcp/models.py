from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .components import SUBCIRCUIT_TYPE


GROUND_NODE = "0"

ParameterValue = str | float | list[Any]


def catalog_key(name: str) -> str:
    return name.strip().lower()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class ElementSpec:
    component_type: str
    name: str
    nodes: list[str]
    value: float | None = None
    model: str | None = None
    parameters: dict[str, ParameterValue] = field(default_factory=dict)
    line_number: int | None = None

    @property
    def is_subcircuit(self) -> bool:
        return self.component_type == SUBCIRCUIT_TYPE

    @property
    def subcircuit_name(self) -> str | None:
        return self.model if self.is_subcircuit else None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "component_type": self.component_type,
            "nodes": list(self.nodes),
        }
        if self.value is not None:
            payload["value"] = self.value
        if self.model:
            payload["model"] = self.model
        if self.parameters:
            payload["parameters"] = dict(self.parameters)
        if self.line_number is not None:
            payload["line_number"] = self.line_number
        return payload


@dataclass(slots=True)
class ModelSpec:
    model_name: str
    model_type: str
    parameters: dict[str, float] = field(default_factory=dict)
    line_number: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "model_type": self.model_type,
            "parameters": dict(self.parameters),
            "parameter_count": len(self.parameters),
        }


@dataclass(frozen=True, slots=True)
class SubcircuitDefinition:
    """A library subcircuit; immutable once built and owned by the catalog."""

    name: str
    formal_nodes: tuple[str, ...]
    body: str
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    derived_parameters: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    source_path: Path | None = None

    @classmethod
    def build(
        cls,
        *,
        name: str,
        formal_nodes: list[str] | tuple[str, ...],
        body: str,
        metadata: dict[str, str] | None = None,
        derived_parameters: dict[str, float] | None = None,
        source_path: Path | None = None,
    ) -> "SubcircuitDefinition":
        return cls(
            name=name,
            formal_nodes=tuple(formal_nodes),
            body=body,
            metadata=MappingProxyType(dict(metadata or {})),
            derived_parameters=MappingProxyType(dict(derived_parameters or {})),
            source_path=source_path,
        )

    @property
    def key(self) -> str:
        return catalog_key(self.name)

    @property
    def node_count(self) -> int:
        return len(self.formal_nodes)

    def as_dict(self, *, include_body: bool = False, include_metadata: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "nodes": list(self.formal_nodes),
            "node_count": self.node_count,
        }
        if include_metadata:
            payload["metadata"] = dict(self.metadata)
            payload["derived_parameters"] = dict(self.derived_parameters)
        if self.source_path is not None:
            payload["source_path"] = str(self.source_path)
        if include_body:
            payload["body"] = self.body
        return payload


@dataclass(slots=True)
class EntityInstance:
    name: str
    component_type: str
    nodes: list[str]
    value: float | None = None
    model: str | None = None
    parameters: dict[str, ParameterValue] = field(default_factory=dict)
    subcircuit: str | None = None
    pin_bindings: list[tuple[str, str]] = field(default_factory=list)

    @property
    def is_subcircuit(self) -> bool:
        return self.subcircuit is not None

    def to_spec(self) -> ElementSpec:
        return ElementSpec(
            component_type=self.component_type,
            name=self.name,
            nodes=list(self.nodes),
            value=self.value,
            model=self.subcircuit if self.is_subcircuit else self.model,
            parameters=dict(self.parameters),
        )

    def as_dict(self) -> dict[str, Any]:
        payload = self.to_spec().as_dict()
        if self.is_subcircuit:
            payload["subcircuit"] = self.subcircuit
            payload["pin_bindings"] = [
                {"formal": formal, "node": node} for formal, node in self.pin_bindings
            ]
        return payload


@dataclass(slots=True)
class CircuitModel:
    circuit_id: str
    description: str = ""
    title: str | None = None
    nodes: set[str] = field(default_factory=lambda: {GROUND_NODE})
    entities: dict[str, EntityInstance] = field(default_factory=dict)
    models: dict[str, ModelSpec] = field(default_factory=dict)
    subcircuit_defs_used: dict[str, SubcircuitDefinition] = field(default_factory=dict)
    local_subcircuits: dict[str, SubcircuitDefinition] = field(default_factory=dict)
    catalog_generation: int | None = None
    created_at: str = field(default_factory=_utc_now)
    modified_at: str = field(default_factory=_utc_now)

    @property
    def component_count(self) -> int:
        return len(self.entities)

    @property
    def has_ground(self) -> bool:
        return any(
            GROUND_NODE in entity.nodes for entity in self.entities.values()
        )

    def find_entity(self, name: str) -> EntityInstance | None:
        if name in self.entities:
            return self.entities[name]
        lowered = name.strip().lower()
        for key, entity in self.entities.items():
            if key.lower() == lowered:
                return entity
        return None

    def touch(self) -> None:
        self.modified_at = _utc_now()

    def summary(self) -> dict[str, Any]:
        return {
            "circuit_id": self.circuit_id,
            "description": self.description,
            "title": self.title,
            "component_count": self.component_count,
            "model_count": len(self.models),
            "node_count": len(self.nodes),
            "subcircuits_used": sorted(definition.name for definition in self.subcircuit_defs_used.values()),
            "has_ground": self.has_ground,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }


class ImportStatus(str, Enum):
    SUCCESS = "Success"
    PARTIAL_SUCCESS = "PartialSuccess"
    FAILED = "Failed"


@dataclass(slots=True)
class FailedItem:
    name: str
    reason: str
    code: str
    component_type: str | None = None
    line_number: int | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "reason": self.reason, "code": self.code}
        if self.component_type:
            payload["type"] = self.component_type
        if self.line_number is not None:
            payload["line_number"] = self.line_number
        return payload


@dataclass(slots=True)
class ImportReport:
    status: ImportStatus
    total_components: int
    components_added: int
    models_added: int
    total_models: int = 0
    failed_components: list[FailedItem] = field(default_factory=list)
    failed_models: list[FailedItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    title: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status.value,
            "total_components": self.total_components,
            "components_added": self.components_added,
            "total_models": self.total_models,
            "models_added": self.models_added,
            "failed_components": [item.as_dict() for item in self.failed_components],
            "failed_models": [item.as_dict() for item in self.failed_models],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }
        if self.title:
            payload["title"] = self.title
        return payload
