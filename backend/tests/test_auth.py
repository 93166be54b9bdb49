# Overview: Pytest coverage for employee auth, session tokens and role decorators.

from datetime import timedelta

import pytest

from oropos.services.auth_service import (
    PasswordValidationError,
    authenticate,
    create_employee,
    hash_password,
    validate_password_strength,
    verify_password,
)
from oropos.services.session_service import (
    SESSION_IDLE_TIMEOUT,
    create_session,
    hash_token,
    revoke_session,
    validate_session,
)


class TestPasswords:
    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_hash_roundtrip(self, app):
        hashed = hash_password("Password123")
        assert hashed != "Password123"
        assert verify_password("Password123", hashed)
        assert not verify_password("Password124", hashed)

    def test_malformed_hash_never_verifies(self):
        assert verify_password("Password123", "not-a-bcrypt-hash") is False


class TestEmployees:
    def test_duplicate_username_in_tenant(self, db_session, tenant, cashier):
        with pytest.raises(ValueError):
            create_employee(tenant.id, "cashier", "Password123")

    def test_same_username_other_tenant(self, db_session, cashier, other_tenant):
        employee = create_employee(other_tenant.id, "cashier", "Password123")
        assert employee.tenant_id == other_tenant.id

    def test_unknown_role(self, db_session, tenant):
        with pytest.raises(ValueError):
            create_employee(tenant.id, "jo", "Password123", role="WIZARD")

    def test_authenticate(self, db_session, cashier):
        assert authenticate("cashier", "Password123").id == cashier.id
        assert authenticate("cashier", "WrongPass1") is None
        assert authenticate("cashier", "Password123", tenant_code="BETA") is None

    def test_inactive_employee_cannot_sign_in(self, db_session, cashier):
        cashier.is_active = False
        db_session.commit()
        assert authenticate("cashier", "Password123") is None


class TestSessions:
    def test_token_is_stored_hashed(self, db_session, cashier):
        session, token = create_session(cashier.id)
        assert session.token_hash == hash_token(token)
        assert session.token_hash != token

    def test_validate_sets_context(self, db_session, tenant, location, cashier):
        _, token = create_session(cashier.id)
        context = validate_session(token)
        assert context.employee.id == cashier.id
        assert context.tenant_id == tenant.id
        assert context.location_id == location.id
        assert context.role == "CASHIER"
        assert context.can_refund is False

    def test_revoked_token_invalid(self, db_session, cashier):
        _, token = create_session(cashier.id)
        assert revoke_session(token) is True
        assert validate_session(token) is None
        assert revoke_session(token) is False

    def test_idle_timeout_revokes(self, db_session, cashier):
        session, token = create_session(cashier.id)
        session.last_used_at = session.last_used_at - SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        assert validate_session(token) is None
        db_session.refresh(session)
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_absolute_expiry(self, db_session, cashier):
        session, token = create_session(cashier.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db_session.commit()
        assert validate_session(token) is None

    def test_deactivated_tenant(self, db_session, tenant, cashier):
        _, token = create_session(cashier.id)
        tenant.is_active = False
        db_session.commit()
        assert validate_session(token) is None


class TestAuthRoutes:
    def test_login_me_logout(self, client, db_session, cashier):
        response = client.post("/api/auth/login", json={"username": "cashier", "password": "Password123"})
        assert response.status_code == 200
        token = response.get_json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.get_json()["employee"]["username"] == "cashier"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_bad_credentials(self, client, db_session, cashier):
        response = client.post("/api/auth/login", json={"username": "cashier", "password": "Nope12345"})
        assert response.status_code == 401
        assert response.get_json()["code"] == "UNAUTHORIZED"

    def test_missing_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={}).status_code == 400

    def test_garbage_token(self, client, db_session):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
