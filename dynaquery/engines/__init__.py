"""
Engines: SQL building blocks and the named-query executor.
"""

from dynaquery.engines.executor import DynamicQueryExecutor
from dynaquery.engines.sql import (
    AssembledStatement,
    Predicate,
    SqlAlchemyStatementExecutor,
    assemble_statement,
)

__all__ = [
    "DynamicQueryExecutor",
    "AssembledStatement",
    "Predicate",
    "SqlAlchemyStatementExecutor",
    "assemble_statement",
]
