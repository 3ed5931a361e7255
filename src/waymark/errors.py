"""Typed lifecycle errors.

Every failure the engine reports carries a machine-readable ``kind``, a
human message, and an optional list of field names so callers can render a
specific message. ``ValidationError`` and ``IncompleteDataError`` are also
``ValueError`` and ``NotFoundError`` is also a ``KeyError``, so code written
against plain builtins keeps working.
"""

from __future__ import annotations

from typing import Literal

from waymark.types.lifecycle import ErrorDict

ErrorKind = Literal["validation", "permission", "not_found", "conflict", "incomplete_data"]


class LifecycleError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = "validation"

    def __init__(self, message: str, *, fields: list[str] | None = None) -> None:
        self.message = message
        self.fields = list(fields) if fields else []
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> ErrorDict:
        return {"kind": self.kind, "message": self.message, "fields": list(self.fields)}


class ValidationError(LifecycleError, ValueError):
    """The requested change is not structurally permitted for the current state."""

    kind: ErrorKind = "validation"


class PermissionDeniedError(LifecycleError):
    """The actor's role does not permit the requested review action."""

    kind: ErrorKind = "permission"


class NotFoundError(LifecycleError, KeyError):
    """A referenced work item (or timeline item) does not exist."""

    kind: ErrorKind = "not_found"

    # KeyError.__str__ would repr() the message
    def __str__(self) -> str:
        return self.message


class ConflictError(LifecycleError):
    """The record changed between read and write, or a one-shot link already exists."""

    kind: ErrorKind = "conflict"


class IncompleteDataError(LifecycleError, ValueError):
    """An auto-upgrade was requested while required fields are still missing."""

    kind: ErrorKind = "incomplete_data"
