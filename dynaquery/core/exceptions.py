"""
Error taxonomy for template resolution, validation and execution.

- QueryNotFoundError: a name resolves against no key form.
- InvalidTemplateError: a template fails the syntax policy or declares an
  inconsistent result descriptor / required parameter.
- InvalidPredicateError: a predicate fragment fails the safety policy.
- QueryUsageError: the caller used a template the wrong way.
"""

from __future__ import annotations

from collections.abc import Iterable

_MAX_KEYS_IN_MESSAGE = 50


class DynamicQueryError(Exception):
    """Base class for all errors raised by dynaquery."""

    pass


class QueryNotFoundError(DynamicQueryError, LookupError):
    """Raised when a template name cannot be resolved."""

    def __init__(
        self,
        query_name: str,
        available_keys: Iterable[str] | None = None,
        *,
        detail: str | None = None,
    ) -> None:
        self.query_name = query_name
        self.available_keys = sorted(available_keys or [])
        message = f"Query not found: {query_name}"
        if detail:
            message += f". {detail}"
        if self.available_keys:
            shown = self.available_keys[:_MAX_KEYS_IN_MESSAGE]
            message += f". Available queries: {', '.join(shown)}"
            hidden = len(self.available_keys) - len(shown)
            if hidden > 0:
                message += f" ... ({hidden} more)"
        super().__init__(message)


class InvalidQueryError(DynamicQueryError, ValueError):
    """Raised when a query (template or fragment) is malformed or unsafe."""

    def __init__(self, query_name: str, reason: str) -> None:
        self.query_name = query_name
        self.reason = reason
        super().__init__(f"Invalid query '{query_name}': {reason}")


class InvalidTemplateError(InvalidQueryError):
    """Raised when a stored template fails validation.

    ``failures`` holds ``(query_key, reason)`` pairs when the error aggregates
    startup-validation results.
    """

    def __init__(
        self,
        query_name: str,
        reason: str,
        failures: list[tuple[str, str]] | None = None,
    ) -> None:
        self.failures = list(failures or [])
        super().__init__(query_name, reason)


class InvalidPredicateError(InvalidQueryError):
    """Raised when a predicate fragment fails the safety policy."""

    def __init__(self, reason: str) -> None:
        super().__init__("Predicate", reason)


class QueryUsageError(DynamicQueryError, ValueError):
    """Raised when a template is executed through an incompatible path."""

    pass


class TemplateLoadError(DynamicQueryError):
    """Raised when a template document cannot be read or parsed."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load queries from {source}: {reason}")
