from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .assembler import CircuitAssembler
from .circuits import CircuitStore
from .components import BUILTIN_TYPES, map_model_type, normalize_component_type, supported_component_types
from .errors import ComponentNotFound, LibraryUnavailable, SubcircuitNotFound
from .export import export_netlist
from .importer import import_netlist
from .library import CatalogIndex
from .models import CircuitModel, ElementSpec, ModelSpec, SubcircuitDefinition, catalog_key
from .units import parse_value
from .validation import validate_circuit


mcp = FastMCP("netlist-mcp")

_LOGGER = logging.getLogger(__name__)


def _read_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _read_env_paths(name: str) -> list[Path]:
    raw = os.getenv(name, "")
    return [Path(item).expanduser() for item in raw.split(os.pathsep) if item.strip()]


_DEFAULT_WORKDIR = Path(os.getenv("NETLIST_MCP_WORKDIR", os.getcwd()))
_DEFAULT_LIBRARY_PATHS = _read_env_paths("NETLIST_MCP_LIBRARY_PATHS")
_DEFAULT_EXPORT_COMMENTS = _read_env_bool("NETLIST_MCP_EXPORT_COMMENTS", default=True)
_LIBRARY_SEARCH_MAX_LIMIT = 100

_workdir: Path = _DEFAULT_WORKDIR
_store = CircuitStore()
_library_paths: list[Path] = list(_DEFAULT_LIBRARY_PATHS)
# Built on first use by _get_catalog.
_catalog: CatalogIndex | None = None
_assembler: CircuitAssembler | None = None
_catalog_lock = threading.Lock()
_export_comments: bool = _DEFAULT_EXPORT_COMMENTS


def _get_catalog() -> CatalogIndex | None:
    global _catalog
    with _catalog_lock:
        if _catalog is None and _library_paths:
            _catalog = CatalogIndex(_library_paths)
        return _catalog


def _get_assembler() -> CircuitAssembler:
    global _assembler
    catalog = _get_catalog()
    with _catalog_lock:
        if _assembler is None or _assembler.catalog is not catalog:
            _assembler = CircuitAssembler(catalog)
        return _assembler


def _safe_name(name: str) -> str:
    cleaned = "".join(ch if (ch.isalnum() or ch in "_-") else "_" for ch in name)
    return cleaned.strip("_") or "circuit"


def _resolve_circuit(circuit_id: str | None = None) -> CircuitModel:
    return _store.get(circuit_id)


def _coerce_value(value: float | str | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    return parse_value(text) if text else None


def _catalog_unavailable_payload(**extra: Any) -> dict[str, Any]:
    return {
        "library_configured": False,
        "message": (
            "No subcircuit library is configured. Start the server with --library-path "
            "or set NETLIST_MCP_LIBRARY_PATHS, then call reindexLibraries."
        ),
        **extra,
    }


def _subcircuit_payload(definition: SubcircuitDefinition, *, include_parameters: bool) -> dict[str, Any]:
    payload = definition.as_dict(include_metadata=include_parameters)
    if not include_parameters:
        for key in ("MANUFACTURER", "TYPE", "PRODUCT_NAME", "PART_NUMBER"):
            if key in definition.metadata:
                payload[key.lower()] = definition.metadata[key]
    return payload


@mcp.tool()
def getServiceStatus() -> dict[str, Any]:
    """Get library catalog status, circuit counts and server configuration."""
    catalog = _get_catalog()
    return {
        "workdir": str(_workdir),
        "library_configured": catalog is not None,
        "library": catalog.catalog.status() if catalog is not None else None,
        "circuits": len(_store),
        "active_circuit_id": _store.active_id,
        "supported_component_types": supported_component_types(),
        "export_comments_default": _export_comments,
    }


@mcp.tool()
def createCircuit(
    circuit_id: str | None = None,
    description: str = "",
    make_active: bool = False,
) -> dict[str, Any]:
    """Create an empty circuit; the first circuit created becomes the active one."""
    circuit = _store.create(circuit_id, description, make_active=make_active)
    return {**circuit.summary(), "active": _store.active_id == circuit.circuit_id}


@mcp.tool()
def listCircuits() -> dict[str, Any]:
    """List circuits held by the server."""
    circuits = [
        {**circuit.summary(), "active": circuit.circuit_id == _store.active_id}
        for circuit in _store.list_circuits()
    ]
    return {"active_circuit_id": _store.active_id, "count": len(circuits), "circuits": circuits}


@mcp.tool()
def deleteCircuit(circuit_id: str) -> dict[str, Any]:
    """Delete a circuit; deleting the active circuit activates the next one."""
    circuit = _store.delete(circuit_id)
    return {"deleted": circuit.circuit_id, "active_circuit_id": _store.active_id}


@mcp.tool()
def addComponent(
    name: str,
    component_type: str,
    nodes: list[str],
    value: float | str | None = None,
    model: str | None = None,
    parameters: dict[str, Any] | None = None,
    circuit_id: str | None = None,
) -> dict[str, Any]:
    """
    Add one component to a circuit.

    component_type is a built-in kind (resistor, capacitor, inductor, voltage_source,
    current_source, diode, bjt_npn, bjt_pnp, mosfet_n, mosfet_p, jfet_n, jfet_p, vcvs,
    vccs) or `subcircuit`, in which case `model` names the library subcircuit.
    """
    circuit = _resolve_circuit(circuit_id)
    spec = ElementSpec(
        component_type=normalize_component_type(component_type),
        name=name.strip(),
        nodes=[str(node).strip() for node in nodes],
        value=_coerce_value(value),
        model=model.strip() if model else None,
        parameters=dict(parameters or {}),
    )
    with _store.lock(circuit.circuit_id):
        result = _get_assembler().add(circuit, spec)
    return {
        "circuit_id": circuit.circuit_id,
        "component": result.unwrap().as_dict(),
        "warnings": result.warnings,
        "component_count": circuit.component_count,
    }


@mcp.tool()
def defineModel(
    model_name: str,
    model_type: str,
    parameters: dict[str, float | str] | None = None,
    circuit_id: str | None = None,
) -> dict[str, Any]:
    """Define a device model (.MODEL) that diodes/transistors in the circuit can reference."""
    circuit = _resolve_circuit(circuit_id)
    normalized_type = map_model_type(model_type)
    known = {item for builtin in BUILTIN_TYPES.values() for item in builtin.model_types}
    if normalized_type not in known:
        raise ValueError(f"model_type must be one of: {', '.join(sorted(known))}")
    values = {str(key): _coerce_value(raw) for key, raw in (parameters or {}).items()}
    model = ModelSpec(
        model_name=model_name.strip(),
        model_type=normalized_type,
        parameters={key: value for key, value in values.items() if value is not None},
    )
    with _store.lock(circuit.circuit_id):
        _get_assembler().define_model(circuit, model)
    return {"circuit_id": circuit.circuit_id, "model": model.as_dict()}


@mcp.tool()
def removeComponent(name: str, circuit_id: str | None = None) -> dict[str, Any]:
    """Remove a component from a circuit."""
    circuit = _resolve_circuit(circuit_id)
    with _store.lock(circuit.circuit_id):
        entity = _get_assembler().remove_component(circuit, name)
    return {
        "circuit_id": circuit.circuit_id,
        "removed": entity.as_dict(),
        "component_count": circuit.component_count,
    }


@mcp.tool()
def getComponentInfo(name: str, circuit_id: str | None = None) -> dict[str, Any]:
    """Return one component, including subcircuit pin bindings."""
    circuit = _resolve_circuit(circuit_id)
    entity = circuit.find_entity(name)
    if entity is None:
        raise ComponentNotFound(name)
    payload = {"circuit_id": circuit.circuit_id, "component": entity.as_dict()}
    if entity.subcircuit is not None:
        definition = circuit.subcircuit_defs_used.get(catalog_key(entity.subcircuit))
        if definition is not None:
            payload["subcircuit"] = definition.as_dict()
    return payload


@mcp.tool()
def importNetlist(netlist: str, circuit_id: str | None = None) -> dict[str, Any]:
    """
    Import SPICE netlist text into a circuit, line by line.

    Lines that fail are listed in `failed_components` / `failed_models`; the rest are
    still added. A missing circuit_id uses the active circuit, creating one when needed.
    """
    if circuit_id is not None and circuit_id not in {item.circuit_id for item in _store.list_circuits()}:
        circuit = _store.create(circuit_id)
    elif circuit_id is None and _store.active_id is None:
        circuit = _store.create()
    else:
        circuit = _resolve_circuit(circuit_id)
    with _store.lock(circuit.circuit_id):
        report = import_netlist(netlist, circuit, _get_assembler())
    return {
        "circuit_id": circuit.circuit_id,
        **report.as_dict(),
        "component_count": circuit.component_count,
    }


@mcp.tool()
def exportNetlist(
    circuit_id: str | None = None,
    include_comments: bool | None = None,
    engineering_units: bool = False,
    include_definitions: bool = False,
    write_file: bool = False,
) -> dict[str, Any]:
    """Render a circuit back to SPICE netlist text, optionally writing it under the workdir."""
    circuit = _resolve_circuit(circuit_id)
    with _store.lock(circuit.circuit_id):
        text = export_netlist(
            circuit,
            include_comments=_export_comments if include_comments is None else include_comments,
            engineering_units=engineering_units,
            include_definitions=include_definitions,
        )
    payload: dict[str, Any] = {
        "circuit_id": circuit.circuit_id,
        "netlist": text,
        "component_count": circuit.component_count,
    }
    if write_file:
        target = (
            _workdir
            / "netlists"
            / f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{_safe_name(circuit.circuit_id)}.cir"
        )
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        payload["netlist_path"] = str(target)
    return payload


@mcp.tool()
def validateCircuit(circuit_id: str | None = None) -> dict[str, Any]:
    """Check a circuit for missing ground, floating nodes and unresolved references."""
    circuit = _resolve_circuit(circuit_id)
    return validate_circuit(circuit, _get_catalog()).as_dict()


@mcp.tool()
def librarySearch(
    query: str = "",
    subcircuit_type: str | None = None,
    limit: int = 20,
    count_only: bool = False,
    include_parameters: bool = False,
    include_models: bool = False,
) -> dict[str, Any]:
    """Search the subcircuit library by name or metadata (manufacturer, part number, type)."""
    catalog_index = _get_catalog()
    if catalog_index is None:
        return _catalog_unavailable_payload(query=query, count=0, subcircuits=[])
    safe_limit = max(1, min(int(limit), _LIBRARY_SEARCH_MAX_LIMIT))
    catalog = catalog_index.catalog
    matches = catalog.search(query, None, subcircuit_type=subcircuit_type)
    payload: dict[str, Any] = {
        "library_configured": True,
        "generation": catalog.generation,
        "query": query,
        "subcircuit_type": subcircuit_type,
        "count": len(matches),
    }
    if count_only:
        return payload
    returned = matches[:safe_limit]
    payload["limit"] = safe_limit
    payload["returned_count"] = len(returned)
    payload["subcircuits"] = [
        _subcircuit_payload(definition, include_parameters=include_parameters) for definition in returned
    ]
    if include_models:
        payload["models"] = [model.as_dict() for model in catalog.search_models(query, limit=safe_limit)]
    return payload


@mcp.tool()
def getSubcircuitInfo(name: str, include_body: bool = True) -> dict[str, Any]:
    """Return formal nodes, metadata and body of one library subcircuit."""
    catalog = _get_catalog()
    if catalog is None:
        raise LibraryUnavailable(name)
    snapshot = catalog.catalog
    definition = snapshot.lookup(name)
    if definition is None:
        raise SubcircuitNotFound(name)
    return {
        "generation": snapshot.generation,
        **definition.as_dict(include_body=include_body),
    }


@mcp.tool()
def reindexLibraries(library_paths: list[str] | None = None) -> dict[str, Any]:
    """
    Rebuild the subcircuit catalog from the library roots.

    Passing library_paths replaces the configured roots. Circuits keep the
    definitions they already resolved; validateCircuit reports any that no
    longer resolve against the new catalog.
    """
    global _library_paths
    catalog_index = _get_catalog()
    if library_paths:
        _library_paths = [Path(item).expanduser() for item in library_paths]
    if catalog_index is None:
        catalog_index = _get_catalog()
        if catalog_index is None:
            return _catalog_unavailable_payload(reindexed=False)
        catalog = catalog_index.catalog
    else:
        catalog = catalog_index.reindex(_library_paths)
    return {"library_configured": True, "reindexed": True, **catalog.status()}


def _configure_server(
    *,
    workdir: Path,
    library_paths: list[Path] | None = None,
    export_comments: bool | None = None,
) -> None:
    global _workdir, _store, _library_paths, _catalog, _assembler, _export_comments
    _workdir = workdir
    _store = CircuitStore()
    with _catalog_lock:
        _library_paths = list(library_paths or [])
        _catalog = None
        _assembler = None
    _export_comments = _DEFAULT_EXPORT_COMMENTS if export_comments is None else bool(export_comments)


def main() -> None:
    parser = argparse.ArgumentParser(description="MCP server for SPICE netlist assembly and subcircuit libraries")
    parser.add_argument(
        "--workdir",
        default=os.getenv("NETLIST_MCP_WORKDIR", os.getcwd()),
        help="Directory where exported netlists are written",
    )
    parser.add_argument(
        "--library-path",
        dest="library_paths",
        action="append",
        default=None,
        help="Subcircuit library root (file or directory); repeat for several roots",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("NETLIST_MCP_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (logs go to stderr)",
    )
    parser.add_argument(
        "--transport",
        default="stdio",
        choices=["stdio", "sse"],
        help="MCP transport",
    )
    args = parser.parse_args()

    # stdout carries the stdio transport.
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    library_paths = (
        [Path(item).expanduser() for item in args.library_paths]
        if args.library_paths
        else _DEFAULT_LIBRARY_PATHS
    )
    _configure_server(
        workdir=Path(args.workdir).expanduser().resolve(),
        library_paths=library_paths,
    )
    _LOGGER.info("Serving netlist-mcp over %s with %d library root(s)", args.transport, len(library_paths))
    mcp.run(transport=args.transport)


if __name__ == "__main__":
    main()
