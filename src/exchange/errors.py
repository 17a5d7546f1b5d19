"""Error types for the exchange workflow and its record stores."""

from __future__ import annotations


class PersistenceFailure(Exception):
    """A record store or transport failed. Recoverable; the caller may retry."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class RecordNotFound(LookupError):
    """No exchange record exists with the given id."""


class InvalidTransition(ValueError):
    """The event is not allowed in the current workflow state."""
