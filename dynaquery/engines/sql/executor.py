"""
Statement executor boundary and its SQLAlchemy implementation.

The engine only needs four operations from a database:

    statement = executor.prepare(sql, result_descriptor)
    statement.bind(name, value)
    statement.execute_query()   -> list[dict]   (SELECT / WITH / CALL)
    statement.execute_update()  -> int          (rows affected)

``SqlAlchemyStatementExecutor`` runs them on a SQLAlchemy ``Connection``
through ``text()``, which already speaks ``:name`` parameters. For a
SQLModel/SQLAlchemy ``Session`` pass ``session.connection()`` so the
statement joins the session's transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import TextClause

from dynaquery.engines.sql.parser import extract_parameter_names

_log = logging.getLogger(__name__)

_EXPANDING_TYPES = (list, tuple, set, frozenset)


class PreparedStatement(Protocol):
    def bind(self, name: str, value: Any) -> None: ...

    def execute_query(self) -> list[dict[str, Any]]: ...

    def execute_update(self) -> int: ...


class StatementExecutor(Protocol):
    def prepare(self, sql: str, result_descriptor: Any = None) -> PreparedStatement: ...


class SqlAlchemyPreparedStatement:
    """A ``text()`` statement plus the values bound so far."""

    def __init__(
        self,
        connection: Connection,
        sql: str,
        result_descriptor: Any = None,
    ) -> None:
        self._connection = connection
        self.sql = sql
        self.result_descriptor = result_descriptor
        self._tokens = extract_parameter_names(sql)
        self._params: dict[str, Any] = {}

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self._params)

    def bind(self, name: str, value: Any) -> None:
        """Bind *value* to ``:name``. Names absent from the SQL are logged and skipped."""
        if name not in self._tokens:
            _log.warning("Parameter '%s' not found in statement, skipping", name)
            return
        if isinstance(value, (set, frozenset)):
            value = list(value)
        self._params[name] = value

    def _statement(self) -> TextClause:
        stmt = text(self.sql)
        expanding = [
            bindparam(name, expanding=True)
            for name, value in self._params.items()
            if isinstance(value, _EXPANDING_TYPES)
        ]
        if expanding:
            stmt = stmt.bindparams(*expanding)
        return stmt

    def execute_query(self) -> list[dict[str, Any]]:
        result = self._connection.execute(self._statement(), self._params)
        return [dict(row) for row in result.mappings()]

    def execute_update(self) -> int:
        result = self._connection.execute(self._statement(), self._params)
        rowcount = result.rowcount
        return rowcount if rowcount is not None and rowcount >= 0 else 0


class SqlAlchemyStatementExecutor:
    """Prepares statements on one SQLAlchemy connection."""

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def prepare(self, sql: str, result_descriptor: Any = None) -> SqlAlchemyPreparedStatement:
        return SqlAlchemyPreparedStatement(self._connection, sql, result_descriptor)
