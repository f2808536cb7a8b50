"""Unit tests for engines.sql.filters (Predicate)."""

import logging

import pytest

from dynaquery.core.exceptions import InvalidPredicateError
from dynaquery.engines.sql.filters import Predicate


class TestConstruction:
    def test_defaults(self) -> None:
        p = Predicate("u.name = :name", "alice")
        assert p.fragment == "u.name = :name"
        assert p.value == "alice"
        assert p.connector == "AND"
        assert p.security_validated
        assert p.parameter_names == {"name"}

    @pytest.mark.parametrize(("given", "expected"), [("or", "OR"), (" And ", "AND"), (None, "AND")])
    def test_connector_normalised(self, given: str | None, expected: str) -> None:
        assert Predicate("a = :a", 1, given).connector == expected

    def test_invalid_connector(self) -> None:
        with pytest.raises(InvalidPredicateError, match="AND or OR"):
            Predicate("a = :a", 1, "XOR")

    def test_unsafe_fragment_rejected(self) -> None:
        with pytest.raises(InvalidPredicateError):
            Predicate.when("name = :name OR 1=1 --", "x")

    def test_dangerous_value_is_accepted(self) -> None:
        p = Predicate("u.name = :name", "'; DROP TABLE users; --")
        assert p.value == "'; DROP TABLE users; --"

    def test_unsafe_skips_validation_and_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        fragment = "EXISTS (SELECT 1 FROM orders o WHERE o.user_id = u.id AND o.status = 'OPEN')"
        with caplog.at_level(logging.WARNING, logger="dynaquery.engines.sql.filters"):
            p = Predicate.unsafe(fragment)
        assert not p.security_validated
        assert p.should_apply()
        assert fragment in caplog.text

    @pytest.mark.parametrize("fragment", ["", "   ", None])
    def test_unsafe_still_rejects_empty_fragment(self, fragment: str | None) -> None:
        with pytest.raises(InvalidPredicateError, match="cannot be empty"):
            Predicate.unsafe(fragment)  # type: ignore[arg-type]

    def test_unsafe_with_value_uses_value_rule(self) -> None:
        assert not Predicate.unsafe("a = :a", "  ").should_apply()
        assert Predicate.unsafe("a = :a", 5).should_apply()


class TestFactories:
    @pytest.mark.parametrize(
        ("value", "applies"),
        [(None, False), ("", False), ("  ", False), ([], False), ({}, False),
         ("x", True), (0, True), (False, True), ([1], True)],
    )
    def test_when(self, value: object, applies: bool) -> None:
        assert Predicate.when("a = :a", value).should_apply() is applies

    def test_when_keeps_connector(self) -> None:
        assert Predicate.when("a = :a", 1, "OR").connector == "OR"

    @pytest.mark.parametrize(("value", "applies"), [(None, False), ("", True), (0, True)])
    def test_when_not_null(self, value: object, applies: bool) -> None:
        assert Predicate.when_not_null("a = :a", value).should_apply() is applies

    @pytest.mark.parametrize(
        ("value", "applies"),
        [(None, False), (" ", False), ((), False), ("x", True), ((1,), True), (3, True)],
    )
    def test_when_not_empty(self, value: object, applies: bool) -> None:
        assert Predicate.when_not_empty("a = :a", value).should_apply() is applies

    @pytest.mark.parametrize(
        ("value", "applies"),
        [(None, False), (0, False), (-1, False), (True, False), ("5", False),
         (1, True), (0.5, True)],
    )
    def test_when_numeric_positive(self, value: object, applies: bool) -> None:
        assert Predicate.when_numeric_positive("a >= :a", value).should_apply() is applies

    def test_when_true_and_false(self) -> None:
        assert Predicate.when_true("a = :a", True).should_apply()
        assert not Predicate.when_true("a = :a", None).should_apply()
        assert not Predicate.when_true("a = :a", 1).should_apply()
        assert Predicate.when_false("a = :a", False).should_apply()
        assert not Predicate.when_false("a = :a", None).should_apply()

    @pytest.mark.parametrize(
        ("value", "applies"),
        [("%", False), ("%null%", False), ("null", False), ("", False),
         ("%ali%", True), ("bob%", True)],
    )
    def test_when_like(self, value: object, applies: bool) -> None:
        assert Predicate.when_like("name LIKE :name", value).should_apply() is applies

    def test_always_and_never(self) -> None:
        assert Predicate.always("u.deleted_at IS NULL").should_apply()
        assert not Predicate.never("u.deleted_at IS NULL").should_apply()

    def test_with_condition(self) -> None:
        flag = {"on": False}
        p = Predicate.with_condition("a = :a", 1, lambda: flag["on"], "or")
        assert not p.should_apply()
        flag["on"] = True
        assert p.should_apply()
        assert p.connector == "OR"


class TestEvaluation:
    def test_raising_condition_does_not_apply(self) -> None:
        def broken() -> bool:
            raise RuntimeError("boom")

        p = Predicate.with_condition("a = :a", 1, broken)
        outcome = p.evaluate()
        assert not outcome.applies
        assert isinstance(outcome.error, RuntimeError)
        assert p.should_apply() is False

    def test_truthy_condition_is_coerced(self) -> None:
        outcome = Predicate.with_condition("a = :a", 1, lambda: "yes").evaluate()  # type: ignore[arg-type, return-value]
        assert outcome.applies is True
        assert outcome.error is None


class TestCombinators:
    def test_and(self) -> None:
        combined = Predicate.when("a = :a", 1).and_(Predicate.when("b = :b", 2))
        assert combined.fragment == "a = :a AND b = :b"
        assert combined.value == {"a": 1, "b": 2}
        assert combined.should_apply()
        assert combined.security_validated

    def test_and_requires_both(self) -> None:
        combined = Predicate.when("a = :a", 1).and_(Predicate.when("b = :b", None))
        assert not combined.should_apply()

    def test_or(self) -> None:
        combined = Predicate.when("a = :a", None).or_(Predicate.when("b = :b", 2))
        assert combined.fragment == "(a = :a OR b = :b)"
        assert combined.should_apply()
        assert combined.value == {"b": 2}

    def test_or_narrows_to_applicable_side(self) -> None:
        combined = Predicate.when("a = :a", None).or_(Predicate.when("b = :b", 2))
        outcome = combined.evaluate()
        assert outcome.applies
        assert outcome.fragment == "b = :b"
        assert outcome.bindings == {"b": 2}

    def test_or_with_both_sides_keeps_full_fragment(self) -> None:
        outcome = Predicate.when("a = :a", 1).or_(Predicate.when("b = :b", 2)).evaluate()
        assert outcome.fragment is None
        assert outcome.bindings == {"a": 1, "b": 2}

    def test_nested_or_inside_and(self) -> None:
        either = Predicate.when("a = :a", None).or_(Predicate.when("b = :b", 2))
        outcome = Predicate.when("c = :c", 3).and_(either).evaluate()
        assert outcome.fragment == "c = :c AND b = :b"
        assert outcome.bindings == {"c": 3, "b": 2}

    def test_or_reports_condition_error_when_nothing_applies(self) -> None:
        def boom() -> bool:
            raise RuntimeError("boom")

        combined = Predicate.with_condition("a = :a", 1, boom).or_(Predicate.when("b = :b", None))
        outcome = combined.evaluate()
        assert not outcome.applies
        assert isinstance(outcome.error, RuntimeError)

    def test_static_sides(self) -> None:
        combined = Predicate.always("a IS NULL").or_(Predicate.always("b IS NULL"))
        assert combined.value is None
        assert combined.should_apply()

    def test_unsafe_side_taints_result(self) -> None:
        combined = Predicate.when("a = :a", 1).and_(Predicate.unsafe("b = 'x'"))
        assert not combined.security_validated

    def test_repr(self) -> None:
        assert "fragment='a = :a'" in repr(Predicate.when("a = :a", 1))
