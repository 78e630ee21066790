from __future__ import annotations

import re

"""Privilege gate for mutating operations.

Only the chief-admin role may import. Role text is compared after
normalization (trimmed, lower-cased, whitespace runs collapsed), so
" Chief-Admin " is accepted.
"""

__all__ = [
    "CHIEF_ADMIN_ROLE",
    "PermissionDeniedError",
    "normalize_role",
    "is_chief_admin",
    "require_privileged",
]

CHIEF_ADMIN_ROLE = "chief-admin"
_WHITESPACE = re.compile(r"\s+")


class PermissionDeniedError(Exception):
    """Raised before any write when the caller lacks the required role."""


def normalize_role(role: str | None) -> str:
    if not role:
        return ""
    return _WHITESPACE.sub(" ", role.strip().lower())


def is_chief_admin(role: str | None) -> bool:
    return normalize_role(role) == CHIEF_ADMIN_ROLE


def require_privileged(role: str | None, action: str = "import") -> None:
    if not is_chief_admin(role):
        shown = normalize_role(role) or "<none>"
        raise PermissionDeniedError(f"role '{shown}' is not allowed to {action}; requires {CHIEF_ADMIN_ROLE}")
