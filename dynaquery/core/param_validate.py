"""
Value validity rules used to decide whether an optional predicate applies.

A predicate built with ``Predicate.when(fragment, value)`` is only appended
to the statement when its value passes ``is_valid_value``; the other checks
back the more specific factories (``when_numeric_positive``, ``when_like``).
"""

from __future__ import annotations

import math
import re
from collections.abc import Collection, Mapping
from decimal import Decimal
from typing import Any

# "null", "%null%", "_null_" ... produced by concatenating a missing value.
_NULL_CONCATENATION = re.compile(r"^[%_]*null[%_]*$", re.IGNORECASE)
_MAX_LENGTH_FOR_NULL_CHECK = 20

_NULL_LITERALS = {"null", "NULL", "Null", "undefined"}
_MATCH_ALL_LIKE_PATTERNS = {"%", "%%", "_", "__"}


def is_valid_string(value: Any) -> bool:
    """True for a ``str`` with at least one non-whitespace character."""
    return isinstance(value, str) and value.strip() != ""


def is_valid_collection(value: Any) -> bool:
    if value is None or isinstance(value, (str, bytes)):
        return False
    return isinstance(value, Collection) and len(value) > 0


def is_valid_value(value: Any) -> bool:
    """
    Default applicability rule for optional predicates.

    - None -> False
    - str -> not blank
    - list/tuple/set/dict (any non-string collection) -> not empty
    - anything else -> True
    """
    if value is None:
        return False
    if isinstance(value, str):
        return is_valid_string(value)
    if isinstance(value, (bytes, bytearray)):
        return len(value) > 0
    if isinstance(value, (Collection, Mapping)):
        return len(value) > 0
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_valid_number(value: Any) -> bool:
    """True for any finite int/float/Decimal (zero and negatives included)."""
    if not _is_number(value):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    return True


def is_positive_number(value: Any) -> bool:
    """True for a finite number strictly greater than zero."""
    return is_valid_number(value) and value > 0


def is_meaningful_string(value: Any) -> bool:
    """
    Stricter string check: also rejects the literals "null"/"undefined" and
    short ``%null%`` style artefacts of concatenating a missing value.
    """
    if not is_valid_string(value):
        return False
    trimmed = value.strip()
    if trimmed in _NULL_LITERALS:
        return False
    if len(trimmed) <= _MAX_LENGTH_FOR_NULL_CHECK and _NULL_CONCATENATION.match(trimmed):
        return False
    return True


def is_valid_like_pattern(value: Any) -> bool:
    """Meaningful string that is not a match-everything wildcard."""
    if not is_meaningful_string(value):
        return False
    return value.strip() not in _MATCH_ALL_LIKE_PATTERNS


def is_valid_email(value: Any) -> bool:
    """Basic shape check only: ``local@domain.tld``."""
    if not is_meaningful_string(value):
        return False
    s = value.strip()
    at = s.find("@")
    if at <= 0 or s.endswith("@") or ".." in s:
        return False
    dot = s.rfind(".")
    if dot <= at + 1 or dot >= len(s) - 1:
        return False
    return True
