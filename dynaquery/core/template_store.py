"""
Template store: loads YAML query templates and resolves them by name.

Every query is registered under its full key ``namespace.id`` and, when the
namespace is dotted, under a short key made of the last two segments
(``com.acme.UserMapper.findById`` -> ``UserMapper.findById``). Lookup order:

1. exact full key;
2. short key (the name itself, then the short form of the name);
3. a bare ``id`` (no dot) is matched against every ``*.id`` key, first
   registered wins.

Lifecycle: ``TemplateStore(settings)`` -> ``load()`` -> ready. Loading is
serialised by a lock; after that the index is only read, so lookups take no
lock. With ``preload_enabled=False`` nothing is indexed: each lookup reads
the one relevant file and the result is not cached.
"""

from __future__ import annotations

import glob
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple

import yaml
from pydantic import ValidationError

from dynaquery.core.config import Settings, get_settings
from dynaquery.core.exceptions import (
    DynamicQueryError,
    InvalidTemplateError,
    QueryNotFoundError,
    QueryUsageError,
    TemplateLoadError,
)
from dynaquery.engines.sql.parser import clean_sql
from dynaquery.engines.sql.safety import (
    validate_required_parameters,
    validate_result_descriptor,
    validate_template_syntax,
)
from dynaquery.schemas import QueryTemplate, TemplateDocument

_log = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yml", ".yaml")


class LoaderStats(NamedTuple):
    total_queries: int
    total_namespaces: int
    total_parameters: int

    def __str__(self) -> str:
        return (
            f"LoaderStats(queries={self.total_queries}, "
            f"namespaces={self.total_namespaces}, parameters={self.total_parameters})"
        )


@dataclass(frozen=True)
class _Entry:
    full_key: str
    short_key: str
    sql: str
    template: QueryTemplate


def short_key(full_key: str) -> str:
    """Last two dot-segments of *full_key* (the key itself if it has fewer)."""
    parts = full_key.split(".")
    if len(parts) <= 2:
        return full_key
    return ".".join(parts[-2:])


def namespace_of(key: str) -> str:
    namespace, _, _ = key.rpartition(".")
    return namespace or "default"


def query_id_of(key: str) -> str:
    return key.rpartition(".")[2]


def parse_document(text: str, source: str) -> TemplateDocument:
    """Parse one YAML template document. Raises TemplateLoadError."""
    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TemplateLoadError(source, f"invalid YAML: {e}") from e
    if data is None:
        return TemplateDocument()
    if not isinstance(data, dict):
        raise TemplateLoadError(source, "top level must be a mapping")
    try:
        return TemplateDocument.model_validate(data)
    except ValidationError as e:
        raise TemplateLoadError(source, str(e)) from e


class TemplateStore:
    """Indexes and caches query templates by full and short key."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._entries: dict[str, _Entry] = {}
        self._short_index: dict[str, str] = {}
        self._lock = threading.Lock()
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, patterns: list[str] | None = None) -> LoaderStats:
        """Read every YAML file matching *patterns* (default: settings.scan_patterns).

        Runs startup validation afterwards when enabled. In strict mode a
        validation failure raises InvalidTemplateError, drops everything
        loaded and leaves the store not ready.
        """
        if not self.settings.preload_enabled:
            _log.info("Template preloading disabled; queries are resolved lazily")
            self._ready = True
            return self.get_stats()

        patterns = patterns if patterns is not None else self.settings.scan_patterns
        with self._lock:
            loaded_files = 0
            total = 0
            for path in self._resolve_sources(patterns):
                count = self._load_file(path)
                loaded_files += 1
                total += count
                _log.debug("Loaded %d queries from %s", count, path.name)

        stats = self.get_stats()
        _log.info(
            "Loaded %d SQL queries from %d YAML files (%d namespaces)",
            total,
            loaded_files,
            stats.total_namespaces,
        )
        if total == 0:
            _log.warning(
                "No SQL queries were loaded. Check the scan patterns: %s", patterns
            )
        if _log.isEnabledFor(logging.DEBUG):
            for key, entry in self._entries.items():
                _log.debug("Loaded query: %s -> %s", key, entry.sql[:100])

        if self.settings.validation.validate_at_startup:
            try:
                self.validate_all()
            except InvalidTemplateError:
                self._entries.clear()
                self._short_index.clear()
                raise

        self._ready = True
        return stats

    def _resolve_sources(self, patterns: list[str]) -> list[Path]:
        root = Path(self.settings.resource_root)
        seen: set[Path] = set()
        paths: list[Path] = []
        for pattern in patterns:
            base = Path(pattern)
            full = base if base.is_absolute() else root / base
            matches = sorted(glob.glob(str(full), recursive=True))
            _log.debug("Scanning pattern %s found %d resources", full, len(matches))
            for match in matches:
                path = Path(match)
                if path in seen or not path.is_file() or path.suffix not in _YAML_SUFFIXES:
                    continue
                seen.add(path)
                paths.append(path)
        return paths

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding=self.settings.encoding)
        except OSError as e:
            raise TemplateLoadError(str(path), str(e)) from e

    def _load_file(self, path: Path) -> int:
        return self.load_document(self._read(path), source=path.name, default_namespace=path.stem)

    def load_document(
        self,
        text: str,
        source: str = "<string>",
        default_namespace: str | None = None,
    ) -> int:
        """Register every query of one YAML document; returns how many were registered.

        The namespace falls back to *default_namespace*, then to the stem of
        *source*.
        """
        document = parse_document(text, source)
        if not document.has_queries:
            _log.warning("No queries found in YAML document: %s", source)
            return 0

        namespace = document.namespace or default_namespace or Path(source).stem
        loaded = 0
        for query in document.queries:
            if not query.id.strip():
                _log.warning("Skipping query with missing id in %s", source)
                continue
            if not query.sql.strip():
                _log.warning("Skipping query '%s' with missing SQL in %s", query.id, source)
                continue
            self._register(namespace, query, source)
            loaded += 1

        _log.debug("Loaded %d queries from namespace %s (%s)", loaded, namespace, source)
        return loaded

    def _register(self, namespace: str, query: QueryTemplate, source: str) -> None:
        full = f"{namespace}.{query.id}"
        short = short_key(full)
        entry = _Entry(
            full_key=full,
            short_key=short,
            sql=clean_sql(query.sql),
            template=query.model_copy(update={"namespace": namespace}),
        )

        if full in self._entries:
            _log.warning(
                "Duplicate query key found: %s in %s. Previous definition will be overwritten.",
                full,
                source,
            )
        self._entries[full] = entry

        if short != full:
            owner = self._short_index.get(short)
            if owner is None:
                self._short_index[short] = full
            elif owner != full:
                _log.warning(
                    "Short key %s of %s already used by %s; keeping the first registration",
                    short,
                    full,
                    owner,
                )
        _log.debug("Loading query - full key: %s, short key: %s", full, short)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_template(self, key: str, template: QueryTemplate) -> None:
        validation = self.settings.validation
        if not template.sql.strip():
            raise InvalidTemplateError(key, "SQL is empty")
        if validation.validate_sql_syntax:
            validate_template_syntax(key, template.sql)
        if validation.validate_required_parameters and template.has_parameters:
            validate_required_parameters(key, template)
        if validation.validate_result_descriptors:
            validate_result_descriptor(key, template)

    def validate_all(self) -> list[tuple[str, str]]:
        """Check every registered template; returns ``(key, reason)`` failures.

        In strict mode the first failure raises an InvalidTemplateError that
        carries the failures collected so far.
        """
        _log.info("Validating %d loaded queries...", len(self._entries))
        failures: list[tuple[str, str]] = []
        valid = 0
        for key, entry in self._entries.items():
            try:
                self._validate_template(key, entry.template)
                valid += 1
            except InvalidTemplateError as e:
                _log.error("Validation failed for query '%s': %s", key, e.reason)
                failures.append((key, e.reason))
                if self.settings.validation.strict_mode:
                    raise InvalidTemplateError(
                        "validation",
                        "Query validation failed in strict mode: "
                        + "; ".join(f"{k}: {r}" for k, r in failures),
                        failures,
                    ) from e
        _log.info("Query validation completed. Valid: %d, Invalid: %d", valid, len(failures))
        return failures

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _resolve(self, name: str) -> _Entry | None:
        entry = self._entries.get(name)
        if entry is not None:
            return entry

        owner = self._short_index.get(name)
        if owner is None:
            derived = short_key(name)
            if derived != name:
                owner = self._short_index.get(derived)
                if owner is None and derived in self._entries:
                    owner = derived
        if owner is not None:
            return self._entries[owner]

        if "." in name:
            return None
        suffix = "." + name
        matches = [e for key, e in self._entries.items() if key.endswith(suffix)]
        if not matches:
            return None
        if len(matches) > 1:
            _log.warning(
                "Multiple queries found for key '%s': %s. Using first match; "
                "consider using the full namespace.id",
                name,
                ", ".join(m.full_key for m in matches),
            )
        return matches[0]

    def _load_lazily(self, name: str) -> _Entry:
        namespace, _, query_id = name.rpartition(".")
        if not namespace or not query_id:
            raise QueryUsageError(
                f"Lazy template loading requires 'namespace.query_id' format, got '{name}'"
            )
        filename = namespace.rpartition(".")[2]
        path = (
            Path(self.settings.resource_root)
            / self.settings.base_path
            / f"{filename}.{self.settings.yaml_extension}"
        )
        if not path.is_file():
            raise QueryNotFoundError(name, detail=f"Resource not found: {path}")

        document = parse_document(self._read(path), path.name)
        query = document.get_query(query_id)
        if query is None or not query.sql.strip():
            raise QueryNotFoundError(name, detail=f"No query '{query_id}' in {path}")
        resolved_namespace = document.namespace or filename
        full = f"{resolved_namespace}.{query_id}"
        return _Entry(
            full_key=full,
            short_key=short_key(full),
            sql=clean_sql(query.sql),
            template=query.model_copy(update={"namespace": resolved_namespace}),
        )

    def lookup(self, name: str) -> tuple[str, QueryTemplate]:
        """Cleaned SQL and definition for *name* in one resolution.

        Raises QueryNotFoundError listing known keys.
        """
        _log.debug("Searching query key: %s", name)
        if not self.settings.preload_enabled:
            entry = self._load_lazily(name)
        else:
            entry = self._resolve(name)
            if entry is None:
                raise QueryNotFoundError(name, self.available_keys)
        return entry.sql, entry.template

    def get(self, name: str) -> str:
        """Cleaned SQL for *name*. Raises QueryNotFoundError listing known keys."""
        return self.lookup(name)[0]

    def get_metadata(self, name: str) -> QueryTemplate | None:
        """The template definition for *name*, or None."""
        if not self.settings.preload_enabled:
            try:
                return self._load_lazily(name).template
            except (QueryNotFoundError, QueryUsageError):
                return None

        entry = self._resolve(name)
        return entry.template if entry is not None else None

    def exists(self, name: str) -> bool:
        if not self.settings.preload_enabled:
            try:
                self._load_lazily(name)
            except DynamicQueryError:
                return False
            return True
        return self._resolve(name) is not None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def available_keys(self) -> set[str]:
        """Full keys plus registered short keys."""
        return set(self._entries) | set(self._short_index)

    def get_available_queries_by_namespace(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for key in self._entries:
            grouped.setdefault(namespace_of(key), []).append(query_id_of(key))
        return grouped

    def get_queries_for_namespace(self, namespace: str) -> set[str]:
        return {
            query_id_of(key)
            for key in self._entries
            if namespace_of(key) == namespace or namespace_of(key).endswith("." + namespace)
        }

    def get_stats(self) -> LoaderStats:
        templates = [e.template for e in self._entries.values()]
        return LoaderStats(
            total_queries=len(templates),
            total_namespaces=len({namespace_of(k) for k in self._entries}),
            total_parameters=sum(len(t.parameters) for t in templates),
        )
