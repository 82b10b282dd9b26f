from __future__ import annotations

import threading

from .models import CircuitModel


class CircuitStore:
    """Named circuits plus the active one; each circuit gets its own lock for mutation."""

    def __init__(self) -> None:
        self._circuits: dict[str, CircuitModel] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._active_id: str | None = None
        self._counter = 0
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._circuits)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def create(
        self,
        circuit_id: str | None = None,
        description: str = "",
        *,
        make_active: bool = False,
    ) -> CircuitModel:
        with self._guard:
            if circuit_id is None or not circuit_id.strip():
                self._counter += 1
                circuit_id = f"circuit_{self._counter}"
                while circuit_id in self._circuits:
                    self._counter += 1
                    circuit_id = f"circuit_{self._counter}"
            circuit_id = circuit_id.strip()
            if circuit_id in self._circuits:
                raise ValueError(f"Circuit '{circuit_id}' already exists")
            circuit = CircuitModel(circuit_id=circuit_id, description=description)
            self._circuits[circuit_id] = circuit
            self._locks[circuit_id] = threading.RLock()
            if self._active_id is None or make_active:
                self._active_id = circuit_id
            return circuit

    def get(self, circuit_id: str | None = None) -> CircuitModel:
        target = circuit_id or self._active_id
        if target is None:
            raise ValueError("No circuit exists yet. Call createCircuit first.")
        circuit = self._circuits.get(target)
        if circuit is None:
            raise ValueError(f"Unknown circuit_id '{target}'")
        return circuit

    def lock(self, circuit_id: str) -> threading.RLock:
        lock = self._locks.get(circuit_id)
        if lock is None:
            raise ValueError(f"Unknown circuit_id '{circuit_id}'")
        return lock

    def set_active(self, circuit_id: str) -> CircuitModel:
        circuit = self.get(circuit_id)
        self._active_id = circuit.circuit_id
        return circuit

    def delete(self, circuit_id: str) -> CircuitModel:
        with self._guard:
            if circuit_id not in self._circuits:
                raise ValueError(f"Unknown circuit_id '{circuit_id}'")
            order = list(self._circuits)
            position = order.index(circuit_id)
            circuit = self._circuits.pop(circuit_id)
            self._locks.pop(circuit_id, None)
            if self._active_id == circuit_id:
                remaining = list(self._circuits)
                if not remaining:
                    self._active_id = None
                else:
                    self._active_id = remaining[min(position, len(remaining) - 1)]
            return circuit

    def list_circuits(self) -> list[CircuitModel]:
        return list(self._circuits.values())

    def clear(self) -> None:
        with self._guard:
            self._circuits.clear()
            self._locks.clear()
            self._active_id = None
            self._counter = 0
