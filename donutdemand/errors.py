"""
donutdemand.errors — Workflow Error Taxonomy
=============================================

Every rejection a workflow can produce is one of these.  Cogs catch
:class:`DonutError` and relay ``str(exc)`` to the user ephemerally.

- :class:`ValidationError` — bad input, nothing was touched.
- :class:`AuthorizationError` — actor lacks the role/permission.
- :class:`ExternalCallFailure` — a Discord or webhook call failed.
- :class:`ConsistencyViolation` — the request conflicts with current state.
- :class:`PersistenceFailure` — the store write failed.
"""

from __future__ import annotations


class DonutError(Exception):
    """Base class for all workflow errors."""


class ValidationError(DonutError):
    """Malformed input (duration string, panel config, ticket type, …)."""


class AuthorizationError(DonutError):
    """The acting member is not allowed to perform this operation."""


class ExternalCallFailure(DonutError):
    """A platform or webhook call failed."""


class ConsistencyViolation(DonutError):
    """Operation conflicts with stored state.

    ``reference`` optionally points at the conflicting record, e.g. the
    channel id of an already-open ticket.
    """

    def __init__(self, message: str, *, reference: int | str | None = None) -> None:
        super().__init__(message)
        self.reference = reference


class PersistenceFailure(DonutError):
    """A durable store write could not be committed."""
