from __future__ import annotations

import json
import logging
from typing import Any

from .assembler import CircuitAssembler
from .errors import NetlistError, NetlistParseError
from .models import CircuitModel, ElementSpec, FailedItem, ImportReport, ImportStatus
from .parser import LineError, ParsedNetlist, parse_netlist


_LOGGER = logging.getLogger(__name__)


def _log_import_event(level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    _LOGGER.log(level, "netlist_import %s", json.dumps(payload, sort_keys=True, default=str))


def _failed_from_line(error: LineError) -> FailedItem:
    return FailedItem(
        name=error.name,
        reason=error.error.message,
        code=error.error.code,
        line_number=error.line_number,
    )


def _decide_status(
    *,
    total_components: int,
    components_added: int,
    models_added: int,
    failed_components: list[FailedItem],
    failed_models: list[FailedItem],
) -> ImportStatus:
    if failed_components:
        return ImportStatus.PARTIAL_SUCCESS if components_added > 0 else ImportStatus.FAILED
    # Model-only input where nothing could be defined.
    if total_components == 0 and failed_models and models_added == 0:
        return ImportStatus.FAILED
    return ImportStatus.SUCCESS


def _fatal_report(parsed: ParsedNetlist, error: NetlistParseError) -> ImportReport:
    failed = [_failed_from_line(item) for item in parsed.errors if item.kind == "component"]
    failed_models = [_failed_from_line(item) for item in parsed.errors if item.kind == "model"]
    return ImportReport(
        status=ImportStatus.FAILED,
        total_components=len(failed),
        components_added=0,
        models_added=0,
        total_models=len(failed_models),
        failed_components=failed,
        failed_models=failed_models,
        errors=[error.message],
        warnings=list(parsed.warnings),
        title=parsed.title,
    )


def import_netlist(
    text: str,
    circuit: CircuitModel,
    assembler: CircuitAssembler,
) -> ImportReport:
    """Parse ``text`` and add every element it defines to ``circuit``.

    A bad line never aborts the import: each failure lands in
    ``failed_components`` (or ``failed_models``) and the next line is tried.
    Only input with nothing usable in it fails before assembly starts.
    """
    parsed = parse_netlist(text)
    if not parsed.items and not parsed.subcircuits:
        if parsed.errors:
            fatal = NetlistParseError("No line of the netlist could be parsed as a component or model")
        else:
            fatal = NetlistParseError("Netlist contains no components or models")
        report = _fatal_report(parsed, fatal)
        _log_import_event(
            logging.WARNING,
            "import_failed",
            circuit_id=circuit.circuit_id,
            reason=fatal.message,
            line_errors=len(parsed.errors),
        )
        return report

    warnings = list(parsed.warnings)
    errors: list[str] = []
    if parsed.title and not circuit.title:
        circuit.title = parsed.title
    for definition in parsed.subcircuits.values():
        circuit.local_subcircuits[definition.key] = definition

    failed_models = [_failed_from_line(item) for item in parsed.errors if item.kind == "model"]
    models_added = 0
    for model in parsed.models:
        try:
            assembler.define_model(circuit, model)
        except NetlistError as exc:
            failed_models.append(
                FailedItem(
                    name=model.model_name,
                    reason=exc.message,
                    code=exc.code,
                    component_type=model.model_type,
                    line_number=model.line_number,
                )
            )
            continue
        models_added += 1

    for item in parsed.errors:
        if item.kind == "subcircuit":
            errors.append(f"Line {item.line_number}: {item.error.message}")

    # Specs and unparseable component lines are replayed together in source order.
    pending: list[ElementSpec | LineError] = [*parsed.elements]
    pending.extend(item for item in parsed.errors if item.kind == "component")
    pending.sort(key=lambda item: item.line_number or 0)

    failed_components: list[FailedItem] = []
    for item in pending:
        if isinstance(item, LineError):
            failed = _failed_from_line(item)
        else:
            result = assembler.try_add(circuit, assembler.refine_polarity(circuit, item))
            warnings.extend(f"{item.name}: {message}" for message in result.warnings)
            error = result.error
            if error is None:
                continue
            failed = FailedItem(
                name=item.name,
                reason=error.message,
                code=error.code,
                component_type=item.component_type,
                line_number=item.line_number,
            )
        failed_components.append(failed)
        _LOGGER.warning("Import of '%s' into circuit '%s' failed: %s", failed.name, circuit.circuit_id, failed.reason)

    total_components = len(pending)
    components_added = total_components - len(failed_components)
    status = _decide_status(
        total_components=total_components,
        components_added=components_added,
        models_added=models_added,
        failed_components=failed_components,
        failed_models=failed_models,
    )
    report = ImportReport(
        status=status,
        total_components=total_components,
        components_added=components_added,
        models_added=models_added,
        total_models=len(parsed.models) + len([item for item in parsed.errors if item.kind == "model"]),
        failed_components=failed_components,
        failed_models=failed_models,
        errors=errors,
        warnings=warnings,
        title=parsed.title,
    )
    _log_import_event(
        logging.INFO,
        "import_netlist",
        circuit_id=circuit.circuit_id,
        status=status.value,
        total_components=total_components,
        components_added=components_added,
        models_added=models_added,
        failed=len(failed_components) + len(failed_models),
    )
    return report
