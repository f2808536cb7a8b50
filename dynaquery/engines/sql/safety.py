"""
Static safety checks for SQL templates and predicate fragments.

Two trust levels:

* Templates live in versioned YAML files (reviewed code). They only get a
  light syntax check: known leading verb and balanced parentheses.
* Predicate fragments are built at runtime and may end up carrying values
  that originate from callers. Every fragment must bind its value through a
  named parameter and must not match a known injection shape.

Validation is purely lexical; nothing is checked against a live schema.

Usage::

    validate_predicate_safety("u.name = :name", user_input)   # ok
    validate_predicate_safety("u.name = 'admin'", None)       # InvalidPredicateError
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from dynaquery.core.exceptions import (
    InvalidPredicateError,
    InvalidTemplateError,
    QueryUsageError,
)
from dynaquery.engines.sql.parser import (
    are_parentheses_balanced,
    clean_sql,
    extract_parameter_names,
)

if TYPE_CHECKING:
    from dynaquery.schemas import QueryTemplate

_TEMPLATE_VERBS = re.compile(
    r"^(SELECT|INSERT|UPDATE|DELETE|WITH|CREATE|DROP|ALTER|CALL|EXEC)\b",
    re.IGNORECASE,
)

# Checked in order; the first match names the rejection.
_INJECTION_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "tautology",
        re.compile(r"'\s*(?:OR|AND)\s*'?\d*'?\s*=\s*'?\d*'?", re.IGNORECASE),
    ),
    (
        "stacked statement",
        re.compile(r";\s*(?:DROP|DELETE|UPDATE|INSERT|ALTER)\s+", re.IGNORECASE),
    ),
    ("comment", re.compile(r"--|/\*.*?\*/", re.DOTALL)),
    ("union select", re.compile(r"\bUNION\s+(?:ALL\s+)?SELECT", re.IGNORECASE)),
    ("exec", re.compile(r"\bEXEC(?:UTE)?(?:\s+\w+|\s*\()", re.IGNORECASE)),
]

_HARDCODED_AFTER_CLAUSE = re.compile(
    r"(WHERE|AND|OR)\s+\w+\.?\w*\s*=\s*'[^:][^']*'", re.IGNORECASE
)
_HARDCODED_LITERAL = re.compile(r"=\s*'[^:][^']*'")


def validate_template_syntax(query_key: str, sql: str | None) -> None:
    """Light check for trusted (versioned) templates.

    Raises InvalidTemplateError naming the violated rule.
    """
    if not sql or not sql.strip():
        raise InvalidTemplateError(query_key, "SQL must not be empty")

    if not _TEMPLATE_VERBS.match(clean_sql(sql)):
        raise InvalidTemplateError(
            query_key,
            "SQL must start with SELECT, INSERT, UPDATE, DELETE, WITH, CREATE, "
            "DROP, ALTER, CALL, or EXEC",
        )

    if not are_parentheses_balanced(sql):
        raise InvalidTemplateError(query_key, "Unbalanced parentheses in SQL")


def find_injection_pattern(fragment: str) -> str | None:
    """Name of the first injection category *fragment* matches, else None."""
    for name, pattern in _INJECTION_PATTERNS:
        if pattern.search(fragment):
            return name
    return None


def validate_predicate_safety(fragment: str | None, value: Any) -> None:
    """Strict check for runtime predicate fragments.

    Raises InvalidPredicateError when the fragment is empty, embeds a value
    instead of a named parameter, or matches an injection pattern.
    """
    if not fragment or not fragment.strip():
        raise InvalidPredicateError("SQL fragment cannot be empty")

    if value is not None and not extract_parameter_names(fragment):
        raise InvalidPredicateError(
            "SQL fragment must use named parameters (:param) when a value is provided. "
            f"Fragment: '{fragment}'. This prevents SQL injection vulnerabilities."
        )

    category = find_injection_pattern(fragment)
    if category is not None:
        raise InvalidPredicateError(
            f"SQL fragment contains potential SQL injection pattern ({category}). "
            f"Fragment: '{fragment}'. "
            "Use parameterized queries with named parameters."
        )

    if _HARDCODED_AFTER_CLAUSE.search(fragment):
        raise InvalidPredicateError(
            "SQL fragment contains hardcoded string value in WHERE/AND/OR clause. "
            f"Fragment: '{fragment}'. Use named parameters (:param) instead."
        )

    if _HARDCODED_LITERAL.search(fragment):
        raise InvalidPredicateError(
            "SQL fragment contains hardcoded string value without parameter binding. "
            f"Fragment: '{fragment}'. Use named parameters (:param) instead."
        )


def validate_result_descriptor(query_key: str, template: QueryTemplate | None) -> None:
    """resultType xor resultMapping for row-returning statements, neither otherwise."""
    if template is None:
        raise InvalidTemplateError(query_key, "Query definition not found")

    if template.requires_result_type:
        if not template.has_result_type_or_mapping:
            raise InvalidTemplateError(
                query_key,
                "Query must define either 'resultType' (or 'resultClass') OR 'resultMapping'",
            )
        if template.has_result_type and template.has_result_mapping:
            raise InvalidTemplateError(
                query_key,
                "Query cannot define both 'resultType'/'resultClass' and 'resultMapping'",
            )
    elif template.has_result_type_or_mapping:
        raise InvalidTemplateError(
            query_key,
            "Non-select queries (INSERT/UPDATE/DELETE) must not define "
            "'resultType' or 'resultMapping'",
        )


def validate_required_parameters(query_key: str, template: QueryTemplate) -> None:
    """Each declared required parameter must appear as ``:name`` in the SQL."""
    present = extract_parameter_names(template.sql)
    for param in template.parameters:
        if param.required and param.name not in present:
            raise InvalidTemplateError(
                query_key, f"Required parameter '{param.name}' not found in SQL"
            )


def validate_static_query_usage(query_key: str, is_dynamic: bool, has_filters: bool) -> None:
    """A static (``dynamic: false``) template never accepts predicates."""
    if not is_dynamic and has_filters:
        raise QueryUsageError(
            f"Query '{query_key}' is marked as static (dynamic: false) and does not "
            "accept dynamic predicates. Use execute_named_query_with_parameters() "
            "for static queries with parameters."
        )
