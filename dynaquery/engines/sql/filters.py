"""
Optional predicates appended to a base statement at execution time.

A ``Predicate`` carries a parameterized SQL fragment, the value to bind, a
connector (AND/OR) and an applicability rule evaluated once per execution.
Fragments are certified by ``validate_predicate_safety`` on construction;
``Predicate.unsafe`` is the only way around that check.

Usage::

    filters = {
        "name": Predicate.when("u.name LIKE :name", name),
        "min_age": Predicate.when_numeric_positive("u.age >= :min_age", min_age),
        "active": Predicate.always("u.deleted_at IS NULL"),
    }
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Mapping
from typing import Any, NamedTuple

from dynaquery.core.exceptions import InvalidPredicateError
from dynaquery.core.param_validate import (
    is_positive_number,
    is_valid_like_pattern,
    is_valid_value,
)
from dynaquery.engines.sql.parser import extract_parameter_names
from dynaquery.engines.sql.safety import validate_predicate_safety

_log = logging.getLogger(__name__)

CONNECTORS = ("AND", "OR")

Condition = Callable[[], bool]


class PredicateEvaluation(NamedTuple):
    """Outcome of one guarded evaluation of a predicate's condition.

    For a combined predicate *bindings* holds the parameters of the sides
    that apply, and *fragment* is set when only some of them do.
    """

    applies: bool
    error: Exception | None = None
    fragment: str | None = None
    bindings: dict[str, Any] | None = None


class Predicate:
    """An optional, conditionally included SQL fragment plus its bound value."""

    __slots__ = ("_fragment", "_value", "_connector", "_condition", "_security_validated", "_parts")

    def __init__(
        self,
        fragment: str,
        value: Any = None,
        connector: str | None = "AND",
        condition: Condition | None = None,
        *,
        security_validated: bool = True,
    ) -> None:
        normalized = (connector or "AND").strip().upper()
        if normalized not in CONNECTORS:
            raise InvalidPredicateError(
                f"Connector must be AND or OR, got {connector!r}"
            )
        if security_validated:
            validate_predicate_safety(fragment, value)
        elif not fragment or not fragment.strip():
            raise InvalidPredicateError("SQL fragment cannot be empty")
        else:
            _log.warning(
                "Creating predicate without security validation: %s. "
                "Only use this for trusted SQL fragments.",
                fragment,
            )

        self._fragment = fragment
        self._value = value
        self._connector = normalized
        self._condition = condition if condition is not None else (lambda: is_valid_value(value))
        self._security_validated = security_validated
        self._parts: tuple[str, Predicate, Predicate] | None = None

    # ---------------------------------------------------------------------
    # Factories
    # ---------------------------------------------------------------------

    @classmethod
    def when(cls, fragment: str, value: Any, connector: str = "AND") -> Predicate:
        """Applies when *value* is valid (not None, not blank, not empty)."""
        return cls(fragment, value, connector)

    @classmethod
    def when_not_null(cls, fragment: str, value: Any) -> Predicate:
        return cls(fragment, value, "AND", lambda: value is not None)

    @classmethod
    def when_not_empty(cls, fragment: str, value: Any) -> Predicate:
        """Applies to a non-blank string or a non-empty collection; any other non-None value applies."""

        def _not_empty() -> bool:
            if value is None:
                return False
            if isinstance(value, str):
                return value.strip() != ""
            if isinstance(value, Collection):
                return len(value) > 0
            return True

        return cls(fragment, value, "AND", _not_empty)

    @classmethod
    def when_numeric_positive(cls, fragment: str, value: Any) -> Predicate:
        return cls(fragment, value, "AND", lambda: is_positive_number(value))

    @classmethod
    def when_true(cls, fragment: str, value: bool | None) -> Predicate:
        return cls(fragment, value, "AND", lambda: value is True)

    @classmethod
    def when_false(cls, fragment: str, value: bool | None) -> Predicate:
        return cls(fragment, value, "AND", lambda: value is False)

    @classmethod
    def when_like(cls, fragment: str, value: Any) -> Predicate:
        """Applies unless *value* is empty, a null artefact or a bare wildcard."""
        return cls(fragment, value, "AND", lambda: is_valid_like_pattern(value))

    @classmethod
    def always(cls, fragment: str) -> Predicate:
        return cls(fragment, None, "AND", lambda: True)

    @classmethod
    def never(cls, fragment: str) -> Predicate:
        return cls(fragment, None, "AND", lambda: False)

    @classmethod
    def with_condition(
        cls,
        fragment: str,
        value: Any,
        condition: Condition,
        connector: str = "AND",
    ) -> Predicate:
        return cls(fragment, value, connector, condition)

    @classmethod
    def unsafe(
        cls,
        fragment: str,
        value: Any = None,
        connector: str = "AND",
        condition: Condition | None = None,
    ) -> Predicate:
        """Skip the safety policy for trusted, team-authored SQL (e.g. EXISTS subqueries).

        NEVER use with fragments built from caller input.
        """
        if condition is None:
            condition = (lambda: True) if value is None else (lambda: is_valid_value(value))
        return cls(fragment, value, connector, condition, security_validated=False)

    # ---------------------------------------------------------------------
    # Accessors
    # ---------------------------------------------------------------------

    @property
    def fragment(self) -> str:
        return self._fragment

    @property
    def value(self) -> Any:
        return self._value

    @property
    def connector(self) -> str:
        return self._connector

    @property
    def condition(self) -> Condition:
        return self._condition

    @property
    def security_validated(self) -> bool:
        return self._security_validated

    @property
    def parameter_names(self) -> set[str]:
        return extract_parameter_names(self._fragment)

    # ---------------------------------------------------------------------
    # Evaluation
    # ---------------------------------------------------------------------

    def evaluate(self) -> PredicateEvaluation:
        """Run the condition; a condition that raises means "does not apply"."""
        if self._parts is not None:
            return self._evaluate_parts()
        try:
            return PredicateEvaluation(bool(self._condition()))
        except Exception as e:  # noqa: BLE001 - arbitrary caller-supplied rule
            _log.debug("Predicate condition failed for %r: %s", self._fragment, e)
            return PredicateEvaluation(False, e)

    def _evaluate_parts(self) -> PredicateEvaluation:
        # An OR keeps only the sides that apply so that no unbound
        # placeholder reaches the statement.
        operator, left, right = self._parts  # type: ignore[misc]
        applied: list[tuple[Predicate, PredicateEvaluation]] = []
        error: Exception | None = None
        for side in (left, right):
            outcome = side.evaluate()
            if outcome.applies:
                applied.append((side, outcome))
            elif error is None:
                error = outcome.error

        if not applied or (operator == "AND" and len(applied) < 2):
            return PredicateEvaluation(False, error)

        bindings: dict[str, Any] = {}
        for side, outcome in applied:
            bindings.update(outcome.bindings if outcome.bindings is not None else side._bindings())
        if len(applied) == 2 and all(outcome.fragment is None for _, outcome in applied):
            return PredicateEvaluation(True, bindings=bindings)

        fragments = [outcome.fragment or side._fragment for side, outcome in applied]
        if len(fragments) == 1:
            fragment = fragments[0]
        elif operator == "AND":
            fragment = f"{fragments[0]} AND {fragments[1]}"
        else:
            fragment = f"({fragments[0]} OR {fragments[1]})"
        return PredicateEvaluation(True, fragment=fragment, bindings=bindings)

    def should_apply(self) -> bool:
        return self.evaluate().applies

    # ---------------------------------------------------------------------
    # Combinators
    # ---------------------------------------------------------------------

    def _bindings(self) -> dict[str, Any]:
        if self._value is None:
            return {}
        names = self.parameter_names
        if isinstance(self._value, Mapping):
            return {k: v for k, v in self._value.items() if k in names}
        if len(names) == 1:
            return {next(iter(names)): self._value}
        return {}

    def _combine(self, other: Predicate, operator: str, fragment: str, condition: Condition) -> Predicate:
        value = {**self._bindings(), **other._bindings()} or None
        certified = self._security_validated and other._security_validated
        combined = Predicate(
            fragment,
            value,
            self._connector,
            condition,
            security_validated=certified,
        )
        combined._parts = (operator, self, other)
        return combined

    def and_(self, other: Predicate) -> Predicate:
        """Both must apply: ``a AND b``."""
        return self._combine(
            other,
            "AND",
            f"{self._fragment} AND {other._fragment}",
            lambda: self.should_apply() and other.should_apply(),
        )

    def or_(self, other: Predicate) -> Predicate:
        """Either may apply: ``(a OR b)``, narrowed to the sides that apply when evaluated."""
        return self._combine(
            other,
            "OR",
            f"({self._fragment} OR {other._fragment})",
            lambda: self.should_apply() or other.should_apply(),
        )

    def __repr__(self) -> str:
        return (
            f"Predicate(fragment={self._fragment!r}, value={self._value!r}, "
            f"connector={self._connector!r}, security_validated={self._security_validated})"
        )
