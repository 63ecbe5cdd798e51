"""Tests for security context validation and builders."""

import pytest
from pydantic import ValidationError

from app.core.schemas_tools import SecurityContextError
from app.core.security_context import (
    SecurityContext,
    SecurityFailure,
    UserType,
    build_admin_context,
    build_contact_context,
    build_system_context,
    has_permission,
    parse_security_context,
    validate_security_context,
)


class TestValidateSecurityContext:
    def test_missing_context(self):
        result = validate_security_context(None)
        assert not result.valid
        assert result.code == SecurityFailure.MISSING_CONTEXT

    def test_missing_tenant(self):
        result = validate_security_context({"user_type": "admin"})
        assert result.code == SecurityFailure.MISSING_TENANT
        assert result.error == "company_id is required in security context"

    def test_missing_user_type(self):
        result = validate_security_context({"company_id": "c1"})
        assert result.code == SecurityFailure.MISSING_USER_TYPE

    def test_unknown_user_type(self):
        result = validate_security_context({"company_id": "c1", "user_type": "root"})
        assert not result.valid
        assert result.code == SecurityFailure.MISSING_USER_TYPE

    def test_project_required(self):
        result = validate_security_context({"company_id": "c1", "user_type": "system"}, require_project=True)
        assert result.code == SecurityFailure.PROJECT_REQUIRED

    def test_identity_required(self):
        result = validate_security_context({"company_id": "c1", "user_type": "system"}, require_user=True)
        assert result.code == SecurityFailure.IDENTITY_REQUIRED

    def test_contact_id_satisfies_identity(self):
        result = validate_security_context(
            {"company_id": "c1", "user_type": "contact", "contact_id": "k1"}, require_user=True
        )
        assert result.valid

    def test_accepts_model(self):
        context = build_admin_context("c1", "u1", "p1")
        assert validate_security_context(context, require_project=True, require_user=True).valid

    def test_never_raises_on_garbage(self):
        assert not validate_security_context("not a context").valid  # type: ignore[arg-type]


class TestParseSecurityContext:
    def test_parses_wire_dict(self):
        context = parse_security_context(
            {"company_id": "c1", "user_type": "contact", "contact_id": "k1", "permissions": ["read"]}
        )
        assert context.user_type == UserType.CONTACT
        assert context.is_contact
        assert context.permissions == ("read",)

    def test_invalid_raises_403(self):
        with pytest.raises(SecurityContextError) as exc_info:
            parse_security_context({"user_type": "admin"})
        assert exc_info.value.status_code == 403


class TestBuilders:
    def test_system_context(self):
        context = build_system_context("c1")
        assert context.user_type == UserType.SYSTEM
        assert context.actor_id is None

    def test_contact_context(self):
        context = build_contact_context("c1", "k1", "p1")
        assert context.contact_id == "k1"
        assert context.project_id == "p1"

    def test_context_is_immutable(self):
        context = build_admin_context("c1", "u1")
        with pytest.raises(ValidationError):
            context.company_id = "c2"

    def test_with_project_returns_copy(self):
        context = build_admin_context("c1", "u1")
        scoped = context.with_project("p9")
        assert scoped.project_id == "p9"
        assert context.project_id is None

    def test_to_wire_drops_none(self):
        wire = build_system_context("c1").to_wire()
        assert wire == {"company_id": "c1", "user_type": "system"}


def test_has_permission():
    unrestricted = build_admin_context("c1", "u1")
    assert has_permission(unrestricted, "anything")

    restricted = SecurityContext(company_id="c1", user_type=UserType.ADMIN, permissions=("approve",))
    assert has_permission(restricted, "approve")
    assert not has_permission(restricted, "crm_write")
