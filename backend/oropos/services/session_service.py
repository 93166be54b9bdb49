# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management

Tokens are 32 random bytes sent to the client once; only the SHA-256 is
stored. Sessions expire 24 hours after login or after 2 hours without use,
and can be revoked on logout.

The tenant and location are captured at login. Every authenticated request
resolves to a SessionContext (the principal) that the route layer uses for
tenant scoping and the refund permission check.
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Employee, Tenant
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    employee: Employee
    session: SessionToken
    tenant_id: int
    location_id: int | None

    @property
    def role(self) -> str:
        return self.employee.role

    @property
    def can_refund(self) -> bool:
        return self.employee.has_refund_permission


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    employee_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create a session for an employee.

    Returns (session_record, plaintext_token).

    Raises ValueError if the employee or its tenant is missing or inactive.
    """
    employee = db.session.get(Employee, employee_id)
    if not employee or not employee.is_active:
        raise ValueError("Employee not found")

    tenant = db.session.get(Tenant, employee.tenant_id)
    if not tenant or not tenant.is_active:
        raise ValueError("Business is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        employee_id=employee.id,
        tenant_id=employee.tenant_id,
        location_id=employee.location_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to a SessionContext.

    Returns None if the token is unknown, revoked or expired, or if the
    employee or tenant has been deactivated. Idle and deactivated sessions
    are revoked on the spot. Updates last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    employee = session.employee
    if not employee or not employee.is_active:
        _revoke(session, "Employee deactivated")
        return None

    tenant = session.tenant
    if not tenant or not tenant.is_active:
        _revoke(session, "Business deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        employee=employee,
        session=session,
        tenant_id=session.tenant_id,
        location_id=session.location_id,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if a live session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
