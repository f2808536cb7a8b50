"""
Assemble a final statement from a base template and optional predicates.

``assemble_statement`` appends every applicable predicate after the base SQL,
inserting ``WHERE`` or ``AND`` depending on whether the base already has a
top-level WHERE, and collects the parameters to bind. Each predicate is
evaluated exactly once per assembly.

``build_parameter_map`` is the fixed-parameter counterpart: no SQL is
appended, declared optional parameters the caller left out are bound to
None, and a missing required parameter is rejected before execution.

An execution moves through ``ExecutionStage`` in order; ``QueryExecution``
tracks it and refuses to skip a stage.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any

from dynaquery.core.exceptions import QueryUsageError
from dynaquery.engines.sql.filters import Predicate, PredicateEvaluation
from dynaquery.engines.sql.parser import analyze_where_clause

if TYPE_CHECKING:
    from dynaquery.schemas import QueryTemplate

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssembledStatement:
    """Final SQL, the parameters to bind and the names of applied predicates."""

    sql: str
    parameters: dict[str, Any] = field(default_factory=dict)
    applied: tuple[str, ...] = ()


class ExecutionStage(IntEnum):
    TEMPLATE_RESOLVED = 1
    PREDICATES_EVALUATED = 2
    SQL_ASSEMBLED = 3
    PARAMETERS_BOUND = 4
    DISPATCHED = 5


class QueryExecution:
    """Per-execution progress through ``ExecutionStage``."""

    def __init__(self, query_name: str) -> None:
        self.query_name = query_name
        self.stage: ExecutionStage | None = None

    def advance(self, stage: ExecutionStage) -> None:
        expected = ExecutionStage(1) if self.stage is None else self.stage + 1
        if stage != expected:
            raise RuntimeError(
                f"Query '{self.query_name}': cannot move from "
                f"{self.stage.name if self.stage else 'START'} to {stage.name}"
            )
        self.stage = stage
        _log.debug("Query '%s' -> %s", self.query_name, stage.name)


def _bind_predicate(
    name: str,
    predicate: Predicate,
    outcome: PredicateEvaluation,
    parameters: dict[str, Any],
) -> None:
    if outcome.bindings is not None:
        parameters.update(outcome.bindings)
        return
    value = predicate.value
    if value is None:
        # Static condition such as ``deleted_at IS NULL``: nothing to bind.
        return
    tokens = predicate.parameter_names
    if isinstance(value, Mapping) and name not in tokens:
        for key, item in value.items():
            if key in tokens:
                parameters[key] = item
            else:
                _log.debug(
                    "Parameter '%s' of predicate '%s' not in fragment, skipping", key, name
                )
        return
    parameters[name] = value


def assemble_statement(
    base_sql: str,
    predicates: Mapping[str, Predicate] | None,
    execution: QueryExecution | None = None,
) -> AssembledStatement:
    """Append applicable predicates to *base_sql* and collect their bindings.

    Returns *base_sql* unchanged when *predicates* is empty or none applies.
    """
    if not predicates:
        _log.debug("No predicates provided, returning base SQL")
        if execution is not None:
            execution.advance(ExecutionStage.PREDICATES_EVALUATED)
            execution.advance(ExecutionStage.SQL_ASSEMBLED)
        return AssembledStatement(base_sql)

    applicable: list[tuple[str, Predicate, PredicateEvaluation]] = []
    for name, predicate in predicates.items():
        outcome = predicate.evaluate()
        if outcome.error is not None:
            _log.debug("Predicate '%s' treated as not applicable: %s", name, outcome.error)
        if outcome.applies:
            applicable.append((name, predicate, outcome))
    if execution is not None:
        execution.advance(ExecutionStage.PREDICATES_EVALUATED)

    if not applicable:
        _log.debug("No predicates matched their conditions, returning base SQL")
        if execution is not None:
            execution.advance(ExecutionStage.SQL_ASSEMBLED)
        return AssembledStatement(base_sql)

    parts = [base_sql, analyze_where_clause(base_sql).where_prefix]
    parameters: dict[str, Any] = {}
    for i, (name, predicate, outcome) in enumerate(applicable):
        if i > 0:
            parts.append(f" {predicate.connector} ")
        parts.append(outcome.fragment or predicate.fragment)
        _bind_predicate(name, predicate, outcome, parameters)

    sql = "".join(parts)
    _log.debug("Built dynamic SQL: %s", sql)
    if execution is not None:
        execution.advance(ExecutionStage.SQL_ASSEMBLED)
    return AssembledStatement(sql, parameters, tuple(n for n, _, _ in applicable))


def build_parameter_map(
    template: QueryTemplate | None,
    provided: Mapping[str, Any] | None,
    query_name: str,
) -> dict[str, Any]:
    """Caller parameters plus None for every declared optional one left out.

    Raises QueryUsageError when a declared required parameter is missing.
    """
    params = dict(provided or {})
    if template is None or not template.has_parameters:
        return params

    for declared in template.parameters:
        if declared.name in params:
            continue
        if declared.required:
            raise QueryUsageError(
                f"Query '{query_name}': required parameter '{declared.name}' not provided. "
                "Required parameters must be included in the parameters map."
            )
        params[declared.name] = None
        _log.debug(
            "Optional parameter '%s' not provided for query '%s', binding NULL",
            declared.name,
            query_name,
        )
    return params
