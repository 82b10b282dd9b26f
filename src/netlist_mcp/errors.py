from __future__ import annotations

from typing import Any


class NetlistError(ValueError):
    """Base class for every expected failure of the netlist core."""

    code = "netlist_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        payload.update(self.details())
        return payload


class MalformedNumber(NetlistError):
    code = "malformed_number"

    def __init__(self, token: str) -> None:
        super().__init__(f"Malformed numeric value '{token}'")
        self.token = token

    def details(self) -> dict[str, Any]:
        return {"token": self.token}


class UnrecognizedLine(NetlistError):
    code = "unrecognized_line"

    def __init__(self, line: str, line_number: int | None = None, reason: str | None = None) -> None:
        where = f"line {line_number}: " if line_number is not None else ""
        text = f"Unrecognized netlist {where}'{line}'"
        if reason:
            text = f"{text} ({reason})"
        super().__init__(text)
        self.line = line
        self.line_number = line_number

    def details(self) -> dict[str, Any]:
        return {"line": self.line, "line_number": self.line_number}


class NetlistParseError(NetlistError):
    code = "netlist_parse_error"


class MissingParameter(NetlistError):
    code = "missing_parameter"

    def __init__(self, key: str, component: str | None = None) -> None:
        owner = f" for '{component}'" if component else ""
        super().__init__(f"Missing required parameter '{key}'{owner}")
        self.key = key
        self.component = component

    def details(self) -> dict[str, Any]:
        return {"key": self.key}


class DuplicateComponent(NetlistError):
    code = "duplicate_component"

    def __init__(self, name: str) -> None:
        super().__init__(f"Component '{name}' already exists in the circuit")
        self.name = name

    def details(self) -> dict[str, Any]:
        return {"name": self.name}


class DuplicateModel(NetlistError):
    code = "duplicate_model"

    def __init__(self, name: str) -> None:
        super().__init__(f"Model '{name}' is already defined in the circuit")
        self.name = name

    def details(self) -> dict[str, Any]:
        return {"name": self.name}


class UnknownComponentType(NetlistError):
    code = "unknown_component_type"

    def __init__(self, component_type: str, supported: list[str] | None = None) -> None:
        text = f"Unsupported component type '{component_type}'"
        if supported:
            text = f"{text}; supported types: {', '.join(supported)}"
        super().__init__(text)
        self.component_type = component_type


class NodeCountMismatch(NetlistError):
    code = "node_count_mismatch"

    def __init__(self, expected: int | str, got: int, component: str | None = None) -> None:
        owner = f"'{component}' " if component else ""
        super().__init__(f"Component {owner}expects {expected} node(s) but got {got}")
        self.expected = expected
        self.got = got

    def details(self) -> dict[str, Any]:
        return {"expected": self.expected, "got": self.got}


class LibraryUnavailable(NetlistError):
    code = "library_unavailable"

    def __init__(self, subcircuit: str | None = None) -> None:
        target = f" to resolve subcircuit '{subcircuit}'" if subcircuit else ""
        super().__init__(
            f"No subcircuit library is configured{target}. "
            "Configure library paths (NETLIST_MCP_LIBRARY_PATHS or --library-path) "
            "and run reindexLibraries."
        )
        self.subcircuit = subcircuit


class SubcircuitNotFound(NetlistError):
    code = "subcircuit_not_found"

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Subcircuit '{name}' not found in the library catalog. "
            "Use librarySearch to find available subcircuit names, "
            "or reindexLibraries if the library files changed."
        )
        self.name = name

    def details(self) -> dict[str, Any]:
        return {"name": self.name}


class ComponentNotFound(NetlistError):
    code = "component_not_found"

    def __init__(self, name: str) -> None:
        super().__init__(f"Component '{name}' does not exist in the circuit")
        self.name = name

    def details(self) -> dict[str, Any]:
        return {"name": self.name}


class InvalidParameter(NetlistError):
    code = "invalid_parameter"

    def __init__(self, key: str, component: str | None, reason: str) -> None:
        owner = f" of '{component}'" if component else ""
        super().__init__(f"Invalid parameter '{key}'{owner}: {reason}")
        self.key = key
        self.component = component

    def details(self) -> dict[str, Any]:
        return {"key": self.key}
