from __future__ import annotations

import pytest

from livestock_import.services.access import (
    PermissionDeniedError,
    is_chief_admin,
    normalize_role,
    require_privileged,
)


@pytest.mark.parametrize("role", ["chief-admin", " Chief-Admin ", "CHIEF-ADMIN"])
def test_chief_admin_variants_allowed(role):
    assert is_chief_admin(role)
    require_privileged(role)


@pytest.mark.parametrize("role", ["admin", "", None, "chief admin", "chief-admin-2"])
def test_other_roles_denied(role):
    assert not is_chief_admin(role)
    with pytest.raises(PermissionDeniedError, match="chief-admin"):
        require_privileged(role)


def test_normalize_role_collapses_whitespace():
    assert normalize_role("  Field   Officer ") == "field officer"
    assert normalize_role(None) == ""


def test_denial_message_names_action():
    with pytest.raises(PermissionDeniedError, match="not allowed to delete"):
        require_privileged("viewer", action="delete")
