"""
Named-query executor.

Resolves a template from a ``TemplateStore``, assembles it with optional
predicates (or binds fixed parameters), dispatches it through a
``StatementExecutor`` and converts the rows.

Two ways to pass values:

- predicates (``filters``) for ``dynamic`` templates: optional conditions
  appended to the base SQL;
- fixed ``parameters`` for templates that already contain every ``:name``
  (typically ``dynamic: false``).

Rows come back as dicts unless a result type is given: a class (pydantic
and SQLModel models are built with ``model_validate``, other classes with
``cls(**row)``), a callable ``row -> object``, one of ``dict``, ``tuple``,
``int``, ``float``, ``str``, ``bool``, or a name resolved through the
``result_types`` registry, then as a dotted import path.
"""

import importlib
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from dynaquery.core.config import Settings
from dynaquery.core.exceptions import InvalidTemplateError, QueryUsageError
from dynaquery.core.template_store import TemplateStore
from dynaquery.engines.sql.assembler import (
    AssembledStatement,
    ExecutionStage,
    QueryExecution,
    assemble_statement,
    build_parameter_map,
)
from dynaquery.engines.sql.executor import PreparedStatement, StatementExecutor
from dynaquery.engines.sql.filters import Predicate
from dynaquery.engines.sql.parser import SqlType, get_sql_type
from dynaquery.engines.sql.safety import validate_static_query_usage
from dynaquery.schemas import QueryTemplate

_log = logging.getLogger(__name__)

DIRECT_QUERY = "direct-query"

_MUTATIONS = (SqlType.INSERT, SqlType.UPDATE, SqlType.DELETE)
_ROW_RETURNING = (SqlType.SELECT, SqlType.PROCEDURE)
_SCALARS: dict[str, type] = {"int": int, "float": float, "str": str, "bool": bool}
_BUILTINS: dict[str, type] = {"dict": dict, "tuple": tuple, **_SCALARS}

Filters = Mapping[str, Predicate]
RowConverter = Callable[[dict[str, Any]], Any]


def _convert_scalar(value: Any, target: type) -> Any:
    if value is None:
        return None
    if isinstance(value, target) and not (target is int and isinstance(value, bool)):
        return value
    if target is int and isinstance(value, (float, Decimal)):
        return int(value)
    return target(value)


class DynamicQueryExecutor:
    """
    Executes templates held by a loaded ``TemplateStore``.

    executor = DynamicQueryExecutor(store, SqlAlchemyStatementExecutor(conn))
    executor.execute_named_query("UserMapper.findActiveUsers", filters, User)
    """

    def __init__(
        self,
        store: TemplateStore,
        statement_executor: StatementExecutor,
        settings: Settings | None = None,
        result_types: Mapping[str, RowConverter] | None = None,
    ) -> None:
        self.settings = settings or store.settings
        if not self.settings.enabled:
            raise QueryUsageError(
                "Dynamic queries are disabled (DYNAMIC_QUERY_ENABLED=false)"
            )
        self._store = store
        self._statement_executor = statement_executor
        self._result_types: dict[str, RowConverter] = dict(result_types or {})

    @property
    def store(self) -> TemplateStore:
        return self._store

    def register_result_type(self, name: str, converter: RowConverter) -> None:
        self._result_types[name] = converter

    # ------------------------------------------------------------------
    # Result conversion
    # ------------------------------------------------------------------

    def _resolve_result_type(self, name: str, query_name: str) -> Any:
        if name in self._result_types:
            return self._result_types[name]
        if name in _BUILTINS:
            return _BUILTINS[name]
        module_name, _, attr = name.rpartition(".")
        if module_name:
            try:
                return getattr(importlib.import_module(module_name), attr)
            except (ImportError, AttributeError) as e:
                raise InvalidTemplateError(
                    query_name, f"Result type not found: {name}"
                ) from e
        raise InvalidTemplateError(query_name, f"Result type not found: {name}")

    def _row_converter(self, result_type: Any, query_name: str) -> RowConverter | None:
        if isinstance(result_type, str):
            result_type = self._resolve_result_type(result_type, query_name)
        if result_type is None or result_type is dict:
            return None
        if result_type is tuple:
            return lambda row: tuple(row.values())
        if result_type in _SCALARS.values():
            return lambda row: _convert_scalar(next(iter(row.values()), None), result_type)
        if isinstance(result_type, type):
            if issubclass(result_type, BaseModel):
                return result_type.model_validate
            return lambda row: result_type(**row)
        if callable(result_type):
            return result_type
        raise QueryUsageError(
            f"Query '{query_name}': unsupported result type {result_type!r}"
        )

    def _convert_rows(
        self, rows: list[dict[str, Any]], result_type: Any, query_name: str
    ) -> list[Any]:
        converter = self._row_converter(result_type, query_name)
        if converter is None:
            return rows
        return [converter(row) for row in rows]

    # ------------------------------------------------------------------
    # Resolution and dispatch
    # ------------------------------------------------------------------

    def _resolve(self, query_name: str) -> tuple[str, QueryTemplate]:
        if not self._store.is_ready:
            raise QueryUsageError(
                f"Template store is not loaded; cannot resolve '{query_name}'"
            )
        return self._store.lookup(query_name)

    @staticmethod
    def _require_row_returning(query_name: str, verb: SqlType) -> None:
        if verb in _MUTATIONS:
            raise QueryUsageError(
                f"Query '{query_name}' is a {verb.value} statement. "
                "Use execute_dml_with_parameters() or execute_dml_with_filters() instead."
            )

    @staticmethod
    def _require_mutation(query_name: str, verb: SqlType) -> None:
        if verb in _ROW_RETURNING:
            raise QueryUsageError(
                f"Query '{query_name}': this method is for DML queries "
                "(INSERT/UPDATE/DELETE). Use execute_named_query() for SELECT."
            )

    def _assemble_named(
        self,
        query_name: str,
        filters: Filters | None,
        execution: QueryExecution,
        check: Callable[[str, SqlType], None] | None = None,
    ) -> tuple[AssembledStatement, QueryTemplate]:
        base_sql, template = self._resolve(query_name)
        execution.advance(ExecutionStage.TEMPLATE_RESOLVED)
        if check is not None:
            check(query_name, template.verb)
        validate_static_query_usage(query_name, template.dynamic, bool(filters))
        return assemble_statement(base_sql, filters, execution), template

    def _bind_all(
        self,
        statement: PreparedStatement,
        parameters: Mapping[str, Any],
        query_name: str,
    ) -> None:
        for name, value in parameters.items():
            try:
                statement.bind(name, value)
            except (KeyError, ValueError) as e:
                _log.warning(
                    "Parameter '%s' not found in query '%s', skipping: %s",
                    name,
                    query_name,
                    e,
                )
                continue
            if self.settings.logging.log_parameters:
                _log.debug(
                    "Set parameter '%s' = %r for query '%s'", name, value, query_name
                )

    def _log_execution(self, label: str, query_name: str, sql: str, applied: tuple[str, ...] = ()) -> None:
        if not self.settings.logging.enabled:
            return
        if self.settings.logging.log_generated_sql:
            _log.debug("Executing %s '%s': %s", label, query_name, sql)
        else:
            _log.debug("Executing %s '%s'", label, query_name)
        if applied:
            _log.debug("Applied predicates for '%s': %s", query_name, ", ".join(applied))

    def _log_timing(self, label: str, query_name: str, started: float) -> None:
        if self.settings.logging.log_execution_time:
            _log.debug(
                "%s '%s' executed in %.1f ms",
                label,
                query_name,
                (time.perf_counter() - started) * 1000,
            )

    def _fetch(
        self,
        statement: AssembledStatement,
        execution: QueryExecution,
        result_descriptor: Any = None,
        label: str = "query",
    ) -> list[dict[str, Any]]:
        prepared = self._statement_executor.prepare(statement.sql, result_descriptor)
        self._bind_all(prepared, statement.parameters, execution.query_name)
        execution.advance(ExecutionStage.PARAMETERS_BOUND)
        self._log_execution(label, execution.query_name, statement.sql, statement.applied)
        rows = prepared.execute_query()
        execution.advance(ExecutionStage.DISPATCHED)
        _log.debug("%s '%s' returned %d rows", label.capitalize(), execution.query_name, len(rows))
        return rows

    def _update(self, statement: AssembledStatement, execution: QueryExecution) -> int:
        prepared = self._statement_executor.prepare(statement.sql)
        self._bind_all(prepared, statement.parameters, execution.query_name)
        execution.advance(ExecutionStage.PARAMETERS_BOUND)
        self._log_execution("DML query", execution.query_name, statement.sql, statement.applied)
        affected = prepared.execute_update()
        execution.advance(ExecutionStage.DISPATCHED)
        if self.settings.logging.enabled:
            _log.info("DML query '%s' affected %d rows", execution.query_name, affected)
        return affected

    # ------------------------------------------------------------------
    # Predicate-based execution
    # ------------------------------------------------------------------

    def build_named_query(
        self, query_name: str, filters: Filters | None = None
    ) -> AssembledStatement:
        """Assemble *query_name* with *filters* without dispatching it."""
        execution = QueryExecution(query_name)
        statement, _ = self._assemble_named(query_name, filters, execution)
        return statement

    def execute_named_query(
        self,
        query_name: str,
        filters: Filters | None = None,
        result_type: Any = None,
    ) -> list[Any]:
        """Run a row-returning template with optional predicates."""
        started = time.perf_counter()
        try:
            execution = QueryExecution(query_name)
            statement, _ = self._assemble_named(
                query_name, filters, execution, self._require_row_returning
            )
            rows = self._fetch(statement, execution, result_type)
            return self._convert_rows(rows, result_type, query_name)
        finally:
            self._log_timing("Query", query_name, started)

    def execute_query(
        self,
        base_sql: str,
        filters: Filters | None = None,
        result_type: Any = None,
    ) -> list[Any]:
        """Run caller-supplied SQL with optional predicates.

        Raises QueryUsageError when *base_sql* is an INSERT, UPDATE or DELETE.
        """
        self._require_row_returning(DIRECT_QUERY, get_sql_type(base_sql))
        execution = QueryExecution(DIRECT_QUERY)
        execution.advance(ExecutionStage.TEMPLATE_RESOLVED)
        statement = assemble_statement(base_sql, filters, execution)
        rows = self._fetch(statement, execution, result_type)
        return self._convert_rows(rows, result_type, DIRECT_QUERY)

    def execute_raw_query(
        self, query_name: str, filters: Filters | None = None
    ) -> list[tuple[Any, ...]]:
        """Like ``execute_named_query`` but every row is a plain tuple."""
        started = time.perf_counter()
        try:
            execution = QueryExecution(query_name)
            statement, _ = self._assemble_named(
                query_name, filters, execution, self._require_row_returning
            )
            rows = self._fetch(statement, execution, label="raw query")
            return [tuple(row.values()) for row in rows]
        finally:
            self._log_timing("Raw query", query_name, started)

    def execute_single_result(
        self,
        query_name: str,
        filters: Filters | None = None,
        result_type: Any = None,
    ) -> Any | None:
        """First row of the result, converted; None when there are no rows.

        Without a result type a one-column row yields the bare value.
        """
        started = time.perf_counter()
        try:
            execution = QueryExecution(query_name)
            statement, _ = self._assemble_named(
                query_name, filters, execution, self._require_row_returning
            )
            rows = self._fetch(statement, execution, label="single result query")
            if not rows:
                _log.debug("Query '%s' returned no results, returning None", query_name)
                return None
            if len(rows) > 1:
                _log.warning(
                    "Query '%s' expected single result but returned %d results. "
                    "Returning first result. Consider adding LIMIT 1 or reviewing query logic.",
                    query_name,
                    len(rows),
                )
            row = rows[0]
            if result_type is None:
                return next(iter(row.values())) if len(row) == 1 else row
            converter = self._row_converter(result_type, query_name)
            return row if converter is None else converter(row)
        finally:
            self._log_timing("Single result query", query_name, started)

    def execute_dml_with_filters(
        self, query_name: str, filters: Filters | None = None
    ) -> int:
        """UPDATE/DELETE with optional predicates appended to the WHERE clause."""
        started = time.perf_counter()
        try:
            execution = QueryExecution(query_name)
            statement, _ = self._assemble_named(
                query_name, filters, execution, self._require_mutation
            )
            return self._update(statement, execution)
        finally:
            self._log_timing("DML query", query_name, started)

    # ------------------------------------------------------------------
    # Fixed-parameter execution
    # ------------------------------------------------------------------

    def _fixed(
        self,
        query_name: str,
        parameters: Mapping[str, Any] | None,
        check: Callable[[str, SqlType], None],
    ) -> tuple[AssembledStatement, QueryTemplate, QueryExecution]:
        execution = QueryExecution(query_name)
        sql, template = self._resolve(query_name)
        execution.advance(ExecutionStage.TEMPLATE_RESOLVED)
        check(query_name, template.verb)
        if template.dynamic:
            _log.debug(
                "Query '%s' is marked as dynamic but being executed with fixed parameters",
                query_name,
            )
        params = build_parameter_map(template, parameters, query_name)
        execution.advance(ExecutionStage.PREDICATES_EVALUATED)
        execution.advance(ExecutionStage.SQL_ASSEMBLED)
        return AssembledStatement(sql, params), template, execution

    def execute_named_query_with_parameters(
        self,
        query_name: str,
        parameters: Mapping[str, Any] | None = None,
        result_type: Any = None,
    ) -> list[Any]:
        """Run a row-returning template with fixed ``:name`` values.

        The result type defaults to the template's ``resultMapping`` (looked
        up in the registry) or ``resultType``.
        """
        started = time.perf_counter()
        try:
            statement, template, execution = self._fixed(
                query_name, parameters, self._require_row_returning
            )
            descriptor = result_type
            if descriptor is None:
                if template.has_result_mapping:
                    _log.debug(
                        "Using result mapping '%s' for query '%s'",
                        template.result_mapping,
                        query_name,
                    )
                    descriptor = template.result_mapping
                else:
                    descriptor = template.effective_result_type
            rows = self._fetch(statement, execution, descriptor)
            return self._convert_rows(rows, descriptor, query_name)
        finally:
            self._log_timing("Query", query_name, started)

    def execute_dml_with_parameters(
        self, query_name: str, parameters: Mapping[str, Any] | None = None
    ) -> int:
        """Run an INSERT/UPDATE/DELETE template; returns the affected row count."""
        started = time.perf_counter()
        try:
            statement, _, execution = self._fixed(
                query_name, parameters, self._require_mutation
            )
            return self._update(statement, execution)
        finally:
            self._log_timing("DML query", query_name, started)
