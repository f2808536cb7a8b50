"""
SQL building blocks: text utilities, safety policy, predicates, assembly and
the SQLAlchemy statement executor.
"""

from dynaquery.engines.sql.assembler import (
    AssembledStatement,
    ExecutionStage,
    QueryExecution,
    assemble_statement,
    build_parameter_map,
)
from dynaquery.engines.sql.executor import (
    SqlAlchemyPreparedStatement,
    SqlAlchemyStatementExecutor,
)
from dynaquery.engines.sql.filters import Predicate, PredicateEvaluation
from dynaquery.engines.sql.parser import SqlType, clean_sql, get_sql_type

__all__ = [
    "AssembledStatement",
    "ExecutionStage",
    "QueryExecution",
    "assemble_statement",
    "build_parameter_map",
    "SqlAlchemyPreparedStatement",
    "SqlAlchemyStatementExecutor",
    "Predicate",
    "PredicateEvaluation",
    "SqlType",
    "clean_sql",
    "get_sql_type",
]
