"""
dynaquery: SQL templates kept in YAML, executed with optional runtime predicates.
"""

# engines first: it pulls in the template store after the SQL building blocks.
from dynaquery.engines import (
    AssembledStatement,
    DynamicQueryExecutor,
    Predicate,
    SqlAlchemyStatementExecutor,
    assemble_statement,
)
from dynaquery.core.config import Settings, get_settings
from dynaquery.core.exceptions import (
    DynamicQueryError,
    InvalidPredicateError,
    InvalidQueryError,
    InvalidTemplateError,
    QueryNotFoundError,
    QueryUsageError,
    TemplateLoadError,
)
from dynaquery.core.template_store import LoaderStats, TemplateStore
from dynaquery.repository import DynamicRepository

__version__ = "0.1.0"

__all__ = [
    "AssembledStatement",
    "DynamicQueryExecutor",
    "DynamicRepository",
    "Predicate",
    "SqlAlchemyStatementExecutor",
    "assemble_statement",
    "Settings",
    "get_settings",
    "LoaderStats",
    "TemplateStore",
    "DynamicQueryError",
    "InvalidPredicateError",
    "InvalidQueryError",
    "InvalidTemplateError",
    "QueryNotFoundError",
    "QueryUsageError",
    "TemplateLoadError",
]
