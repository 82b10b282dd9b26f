from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .components import BUILTIN_TYPES
from .library import CatalogIndex
from .models import GROUND_NODE, CircuitModel, catalog_key


@dataclass(slots=True)
class ValidationIssue:
    severity: str
    code: str
    message: str
    component: str | None = None
    node: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"severity": self.severity, "code": self.code, "message": self.message}
        if self.component:
            payload["component"] = self.component
        if self.node is not None:
            payload["node"] = self.node
        return payload


@dataclass(slots=True)
class ValidationResult:
    circuit_id: str
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [item for item in self.issues if item.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [item for item in self.issues if item.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "circuit_id": self.circuit_id,
            "is_valid": self.is_valid,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": [item.as_dict() for item in self.errors],
            "warnings": [item.as_dict() for item in self.warnings],
        }


def validate_circuit(circuit: CircuitModel, catalog: CatalogIndex | None = None) -> ValidationResult:
    """Check a circuit for problems a simulator would reject or silently mis-solve."""
    result = ValidationResult(circuit_id=circuit.circuit_id)
    issues = result.issues

    if not circuit.entities:
        issues.append(ValidationIssue("error", "empty_circuit", "Circuit has no components"))
        return result

    if not circuit.has_ground:
        issues.append(
            ValidationIssue(
                "warning",
                "missing_ground",
                f"No component connects to ground node '{GROUND_NODE}'; the simulator needs a reference node",
            )
        )

    connections: Counter[str] = Counter()
    for entity in circuit.entities.values():
        connections.update(entity.nodes)
    for node, count in sorted(connections.items()):
        if node != GROUND_NODE and count == 1:
            issues.append(
                ValidationIssue(
                    "warning",
                    "floating_node",
                    f"Node '{node}' has only one connection",
                    node=node,
                )
            )

    for entity in circuit.entities.values():
        if entity.subcircuit is not None:
            key = catalog_key(entity.subcircuit)
            if key in circuit.local_subcircuits:
                continue
            if catalog is None:
                issues.append(
                    ValidationIssue(
                        "warning",
                        "library_unavailable",
                        f"Subcircuit '{entity.subcircuit}' cannot be re-resolved: no library is configured",
                        component=entity.name,
                    )
                )
            elif catalog.lookup(entity.subcircuit) is None:
                issues.append(
                    ValidationIssue(
                        "warning",
                        "stale_subcircuit",
                        f"Subcircuit '{entity.subcircuit}' no longer resolves against library generation "
                        f"{catalog.generation} (resolved at generation {circuit.catalog_generation})",
                        component=entity.name,
                    )
                )
            continue

        builtin = BUILTIN_TYPES.get(entity.component_type)
        if builtin is None or not builtin.requires_model or not entity.model:
            continue
        if catalog_key(entity.model) in circuit.models:
            continue
        if catalog is not None and catalog.lookup_model(entity.model) is not None:
            continue
        issues.append(
            ValidationIssue(
                "warning",
                "undefined_model",
                f"Model '{entity.model}' is not defined in the circuit or the library",
                component=entity.name,
            )
        )
    return result
