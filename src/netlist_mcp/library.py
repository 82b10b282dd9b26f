from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .errors import NetlistError
from .models import ModelSpec, SubcircuitDefinition, catalog_key
from .parser import parse_model_statement, parse_subcircuit_header
from .textio import read_library_text
from .units import try_parse_value


_LOGGER = logging.getLogger(__name__)

LIBRARY_SUFFIXES = frozenset({".lib", ".sub"})

# Loudspeaker Thiele/Small figures carried in library comment headers.
DERIVED_PARAMETER_KEYS = frozenset(
    {"FS", "QTS", "QES", "QMS", "VAS", "RE", "LE", "BL", "XMAX", "MMS", "CMS", "SD"}
)

_METADATA_RE = re.compile(r"^\*+\s*([A-Za-z][A-Za-z0-9_ \-]*?)\s*:\s*(.*?)\s*$")


def _log_catalog_event(level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    _LOGGER.log(level, "library_catalog %s", json.dumps(payload, sort_keys=True, default=str))


def _metadata_key(raw: str) -> str:
    return re.sub(r"[\s\-]+", "_", raw.strip()).upper()


def parse_metadata_comments(lines: Iterable[str]) -> tuple[dict[str, str], dict[str, float]]:
    metadata: dict[str, str] = {}
    derived: dict[str, float] = {}
    for line in lines:
        match = _METADATA_RE.match(line.strip())
        if not match:
            continue
        key = _metadata_key(match.group(1))
        value = match.group(2)
        metadata[key] = value
        if key in DERIVED_PARAMETER_KEYS and value:
            number = try_parse_value(value.split()[0])
            if number is not None:
                derived[key] = number
    return metadata, derived


@dataclass(slots=True)
class LibraryFileContent:
    source_path: Path | None = None
    subcircuits: list[SubcircuitDefinition] = field(default_factory=list)
    models: list[ModelSpec] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _OpenBlock:
    line_number: int
    header: str
    metadata: dict[str, str]
    derived: dict[str, float]
    body: list[str] = field(default_factory=list)
    header_open: bool = True


def parse_library_text(text: str, source_path: Path | None = None) -> LibraryFileContent:
    """Extract ``.SUBCKT`` blocks and top-level ``.MODEL`` cards from library text.

    Comment lines directly above a ``.SUBCKT`` of the form ``* KEY: value``
    become the definition's metadata. Body lines are kept verbatim.
    """
    content = LibraryFileContent(source_path=source_path)
    where = str(source_path) if source_path else "<text>"
    pending_comments: list[str] = []
    pending_model: list[Any] | None = None
    block: _OpenBlock | None = None

    def flush_model() -> None:
        nonlocal pending_model
        if pending_model is None:
            return
        number, statement = pending_model
        pending_model = None
        try:
            model, warnings = parse_model_statement(statement, number)
        except NetlistError as exc:
            content.warnings.append(f"{where}:{number}: {exc}")
            return
        content.models.append(model)
        content.warnings.extend(f"{where}:{number}: {item}" for item in warnings)

    for number, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        lowered = stripped.lower()

        if block is not None:
            if lowered.startswith(".ends"):
                _finish_block(content, block, source_path, where)
                block = None
                continue
            if block.header_open and stripped.startswith("+"):
                block.header = f"{block.header} {stripped[1:].strip()}"
                continue
            if stripped:
                block.header_open = False
                block.body.append(raw.rstrip())
            continue

        if not stripped:
            continue
        if stripped.startswith("*"):
            pending_comments.append(stripped)
            continue
        if stripped.startswith("+") and pending_model is not None:
            pending_model[1] = f"{pending_model[1]} {stripped[1:].strip()}"
            continue

        flush_model()
        if lowered.startswith(".subckt"):
            metadata, derived = parse_metadata_comments(pending_comments)
            block = _OpenBlock(number, stripped, metadata, derived)
        elif lowered.startswith(".model"):
            pending_model = [number, stripped]
        pending_comments = []

    flush_model()
    if block is not None:
        content.warnings.append(f"{where}:{block.line_number}: .SUBCKT without .ENDS was ignored")
    return content


def _finish_block(
    content: LibraryFileContent,
    block: _OpenBlock,
    source_path: Path | None,
    where: str,
) -> None:
    try:
        name, nodes = parse_subcircuit_header(block.header)
    except NetlistError as exc:
        content.warnings.append(f"{where}:{block.line_number}: {exc}")
        return
    content.subcircuits.append(
        SubcircuitDefinition.build(
            name=name,
            formal_nodes=nodes,
            body="\n".join(block.body),
            metadata=block.metadata,
            derived_parameters=block.derived,
            source_path=source_path,
        )
    )


def iter_library_files(root: Path) -> list[Path]:
    if root.is_file():
        return [root]
    if not root.is_dir():
        return []
    return sorted(
        path
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in LIBRARY_SUFFIXES
    )


class LibraryCatalog:
    """Immutable snapshot of every subcircuit and model found under a set of roots."""

    __slots__ = (
        "_entries",
        "_models",
        "generation",
        "roots",
        "files_indexed",
        "duplicates",
        "skipped_files",
        "missing_roots",
    )

    def __init__(
        self,
        entries: Mapping[str, SubcircuitDefinition] | None = None,
        models: Mapping[str, ModelSpec] | None = None,
        *,
        generation: int = 1,
        roots: Iterable[Path] = (),
        files_indexed: int = 0,
        duplicates: Iterable[str] = (),
        skipped_files: Iterable[str] = (),
        missing_roots: Iterable[str] = (),
    ) -> None:
        self._entries = MappingProxyType(dict(entries or {}))
        self._models = MappingProxyType(dict(models or {}))
        self.generation = generation
        self.roots = tuple(roots)
        self.files_indexed = files_indexed
        self.duplicates = tuple(duplicates)
        self.skipped_files = tuple(skipped_files)
        self.missing_roots = tuple(missing_roots)

    @classmethod
    def index(cls, roots: Iterable[str | Path], *, generation: int = 1) -> "LibraryCatalog":
        resolved_roots = [Path(root).expanduser() for root in roots]
        entries: dict[str, SubcircuitDefinition] = {}
        models: dict[str, ModelSpec] = {}
        duplicates: list[str] = []
        skipped: list[str] = []
        missing: list[str] = []
        files_indexed = 0

        for root in resolved_roots:
            if not root.exists():
                missing.append(str(root))
                _log_catalog_event(logging.WARNING, "root_missing", root=root)
                continue
            for path in iter_library_files(root):
                try:
                    text = read_library_text(path)
                except OSError as exc:
                    skipped.append(str(path))
                    _LOGGER.warning("Failed to read library file '%s': %s", path, exc)
                    continue
                files_indexed += 1
                content = parse_library_text(text, source_path=path)
                for warning in content.warnings:
                    _LOGGER.warning("Library parse warning: %s", warning)
                for definition in content.subcircuits:
                    previous = entries.get(definition.key)
                    if previous is not None:
                        duplicates.append(definition.name)
                        _log_catalog_event(
                            logging.WARNING,
                            "duplicate_subcircuit",
                            name=definition.name,
                            previous=previous.source_path,
                            winner=definition.source_path,
                        )
                    entries[definition.key] = definition
                for model in content.models:
                    models[catalog_key(model.model_name)] = model

        catalog = cls(
            entries,
            models,
            generation=generation,
            roots=resolved_roots,
            files_indexed=files_indexed,
            duplicates=duplicates,
            skipped_files=skipped,
            missing_roots=missing,
        )
        _log_catalog_event(
            logging.INFO,
            "catalog_index",
            generation=generation,
            files=files_indexed,
            subcircuits=len(entries),
            models=len(models),
            duplicates=len(duplicates),
            skipped=len(skipped),
        )
        return catalog

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Mapping[str, SubcircuitDefinition]:
        return self._entries

    @property
    def models(self) -> Mapping[str, ModelSpec]:
        return self._models

    def lookup(self, name: str) -> SubcircuitDefinition | None:
        return self._entries.get(catalog_key(name))

    def lookup_model(self, name: str) -> ModelSpec | None:
        return self._models.get(catalog_key(name))

    def search(
        self,
        query: str = "",
        limit: int | None = None,
        *,
        subcircuit_type: str | None = None,
    ) -> list[SubcircuitDefinition]:
        needle = query.strip().lower()
        type_filter = (subcircuit_type or "").strip().lower()
        matches: list[SubcircuitDefinition] = []
        for definition in self._entries.values():
            if type_filter and definition.metadata.get("TYPE", "").strip().lower() != type_filter:
                continue
            if needle and not _definition_matches(definition, needle):
                continue
            matches.append(definition)
        matches.sort(key=lambda item: item.name.lower())
        if limit is not None:
            return matches[: max(limit, 0)]
        return matches

    def search_models(
        self,
        query: str = "",
        model_type: str | None = None,
        limit: int | None = None,
    ) -> list[ModelSpec]:
        needle = query.strip().lower()
        type_filter = (model_type or "").strip().lower()
        matches = [
            model
            for model in self._models.values()
            if (not needle or needle in model.model_name.lower())
            and (not type_filter or model.model_type == type_filter)
        ]
        matches.sort(key=lambda item: item.model_name.lower())
        if limit is not None:
            return matches[: max(limit, 0)]
        return matches

    def status(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "roots": [str(root) for root in self.roots],
            "files_indexed": self.files_indexed,
            "subcircuit_count": len(self._entries),
            "model_count": len(self._models),
            "duplicates": list(self.duplicates),
            "skipped_files": list(self.skipped_files),
            "missing_roots": list(self.missing_roots),
        }


def _definition_matches(definition: SubcircuitDefinition, needle: str) -> bool:
    if needle in definition.name.lower():
        return True
    return any(needle in str(value).lower() for value in definition.metadata.values())


class CatalogIndex:
    """Holder for the active catalog; reindex publishes a new snapshot with one assignment.

    Readers never take the lock: they read ``self._catalog`` once and work on
    that snapshot, which is never mutated after construction.
    """

    def __init__(self, roots: Iterable[str | Path]) -> None:
        self._roots = tuple(Path(root).expanduser() for root in roots)
        self._lock = threading.Lock()
        self._catalog = LibraryCatalog.index(self._roots, generation=1)

    @property
    def catalog(self) -> LibraryCatalog:
        return self._catalog

    @property
    def generation(self) -> int:
        return self._catalog.generation

    @property
    def roots(self) -> tuple[Path, ...]:
        return self._roots

    def lookup(self, name: str) -> SubcircuitDefinition | None:
        return self._catalog.lookup(name)

    def lookup_model(self, name: str) -> ModelSpec | None:
        return self._catalog.lookup_model(name)

    def search(self, query: str = "", limit: int | None = None, **kwargs: Any) -> list[SubcircuitDefinition]:
        return self._catalog.search(query, limit, **kwargs)

    def reindex(self, roots: Iterable[str | Path] | None = None) -> LibraryCatalog:
        with self._lock:
            if roots is not None:
                self._roots = tuple(Path(root).expanduser() for root in roots)
            fresh = LibraryCatalog.index(self._roots, generation=self._catalog.generation + 1)
            self._catalog = fresh
        _log_catalog_event(logging.INFO, "catalog_reindex", generation=fresh.generation, subcircuits=len(fresh))
        return fresh

    def is_stale(self, generation: int | None) -> bool:
        return generation != self._catalog.generation
