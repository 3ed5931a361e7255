"""Shared validation functions for all entry points.

Pure functions — no FastAPI or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_ACTOR_LENGTH = 128

VALID_ROLES: frozenset[str] = frozenset({"owner", "admin", "member", "viewer"})


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Check before stripping so "\nbad" is rejected rather than absorbed by strip().
    for ch in value:
        cat = unicodedata.category(ch)
        if cat.startswith("C"):  # Cc (control) and Cf (format)
            return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def validate_role(value: Any) -> tuple[str, str | None]:
    """Normalize a role name supplied by the authorization collaborator.

    Returns (role, None) on success or ("", error_message) on failure.
    """
    if not isinstance(value, str):
        return ("", "role must be a string")
    role = value.strip().lower()
    if role not in VALID_ROLES:
        return ("", f"Unknown role '{value}'. Valid roles: {', '.join(sorted(VALID_ROLES))}")
    return (role, None)
