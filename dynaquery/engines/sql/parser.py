"""
Lexical helpers over SQL text.

Stateless: comment stripping / whitespace normalisation, parenthesis balance,
top-level WHERE detection, ``:name`` parameter extraction and statement
classification. Nothing here understands a dialect; all checks are textual.
"""

import re
from enum import Enum
from typing import NamedTuple

# ``:name`` but not the second colon of a ``::type`` cast.
_PARAM_PATTERN = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")
_WHITESPACE = re.compile(r"\s+")
_FIRST_KEYWORD = re.compile(r"^[\s(;]*([A-Za-z]+)")
_TABLE_AFTER = {
    "SELECT": re.compile(r"\bFROM\s+([\w.]+)", re.IGNORECASE),
    "INSERT": re.compile(r"\bINTO\s+([\w.]+)", re.IGNORECASE),
    "UPDATE": re.compile(r"^UPDATE\s+([\w.]+)", re.IGNORECASE),
    "DELETE": re.compile(r"^DELETE\s+FROM\s+([\w.]+)", re.IGNORECASE),
}


class SqlType(str, Enum):
    """Statement verb classes."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    DDL = "DDL"
    PROCEDURE = "PROCEDURE"
    UNKNOWN = "UNKNOWN"


_VERBS: dict[str, SqlType] = {
    "SELECT": SqlType.SELECT,
    "WITH": SqlType.SELECT,
    "INSERT": SqlType.INSERT,
    "UPDATE": SqlType.UPDATE,
    "DELETE": SqlType.DELETE,
    "CREATE": SqlType.DDL,
    "DROP": SqlType.DDL,
    "ALTER": SqlType.DDL,
    "CALL": SqlType.PROCEDURE,
    "EXEC": SqlType.PROCEDURE,
    "EXECUTE": SqlType.PROCEDURE,
}


class WhereInfo(NamedTuple):
    """Where predicates go: ``where_prefix`` is " AND " when ``exists``."""

    exists: bool
    position: int
    where_prefix: str


def _strip_comments(sql: str) -> str:
    """Replace ``--`` and ``/* */`` comments with a space.

    Single- and double-quoted literals are copied verbatim so that comment
    markers inside them survive.
    """
    out: list[str] = []
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if ch in ("'", '"'):
            quote = ch
            start = i
            i += 1
            while i < length:
                if sql[i] == quote:
                    if i + 1 < length and sql[i + 1] == quote:
                        i += 2
                        continue
                    i += 1
                    break
                i += 1
            out.append(sql[start:i])
            continue

        if ch == "-" and i + 1 < length and sql[i + 1] == "-":
            end = sql.find("\n", i)
            out.append(" ")
            i = length if end == -1 else end
            continue

        if ch == "/" and i + 1 < length and sql[i + 1] == "*":
            end = sql.find("*/", i + 2)
            out.append(" ")
            i = length if end == -1 else end + 2
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def clean_sql(sql: str | None) -> str:
    """Strip comments, collapse whitespace runs to one space and trim."""
    if not sql or not sql.strip():
        return ""
    return _WHITESPACE.sub(" ", _strip_comments(sql)).strip()


def are_parentheses_balanced(sql: str | None) -> bool:
    """True iff a running ``(``/``)`` count never goes negative and ends at 0."""
    balance = 0
    for ch in sql or "":
        if ch == "(":
            balance += 1
        elif ch == ")":
            balance -= 1
            if balance < 0:
                return False
    return balance == 0


def analyze_where_clause(sql: str | None) -> WhereInfo:
    """Find a WHERE keyword at parenthesis depth 0 (subquery WHEREs don't count)."""
    if not sql or not sql.strip():
        return WhereInfo(False, -1, " WHERE ")

    depth = 0
    for position, token in enumerate(sql.upper().split()):
        depth += token.count("(") - token.count(")")
        if depth == 0 and token == "WHERE":
            return WhereInfo(True, position, " AND ")
    return WhereInfo(False, -1, " WHERE ")


def extract_parameter_names(sql: str | None) -> set[str]:
    """Named parameter tokens (``:name``, ASCII identifiers only), de-duplicated."""
    if not sql:
        return set()
    return set(_PARAM_PATTERN.findall(sql))


def count_parameters(sql: str | None) -> int:
    return len(extract_parameter_names(sql))


def _first_keyword(sql: str | None) -> str:
    m = _FIRST_KEYWORD.match(clean_sql(sql))
    return m.group(1).upper() if m else ""


def get_sql_type(sql: str | None) -> SqlType:
    """Classify a statement by its first keyword (WITH counts as SELECT)."""
    return _VERBS.get(_first_keyword(sql), SqlType.UNKNOWN)


def requires_result_type(sql_type: SqlType) -> bool:
    """Only row-returning statements (SELECT / stored procedures) need a result type."""
    return sql_type in (SqlType.SELECT, SqlType.PROCEDURE)


def is_read_only_query(sql: str | None) -> bool:
    return _first_keyword(sql) in ("SELECT", "WITH")


def extract_table_name(sql: str | None) -> str:
    """Main table of a simple statement, for log lines. "unknown" if not found."""
    cleaned = clean_sql(sql)
    pattern = _TABLE_AFTER.get(_first_keyword(cleaned))
    if pattern is not None:
        m = pattern.search(cleaned)
        if m:
            return m.group(1)
    return "unknown"
