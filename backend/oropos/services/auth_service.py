# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Employee authentication.

Every monetary action is attributable to an employee. Passwords are hashed
with bcrypt and must meet a minimum strength policy; session tokens are
handled separately (see session_service.py).
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import Employee, Tenant
from ..models.auth import ROLES, ROLE_CASHIER


DEFAULT_BCRYPT_ROUNDS = 12


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with upper, lower and a digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password or "") < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    return DEFAULT_BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_employee(
    tenant_id: int,
    username: str,
    password: str,
    name: str | None = None,
    role: str = ROLE_CASHIER,
    location_id: int | None = None,
    can_refund: bool = False,
) -> Employee:
    """
    Create an employee in a tenant.

    Raises:
        ValueError: unknown tenant, bad role or duplicate username
        PasswordValidationError: weak password
    """
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise ValueError("Tenant not found")

    role = (role or ROLE_CASHIER).upper()
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    existing = db.session.query(Employee).filter_by(tenant_id=tenant_id, username=username).first()
    if existing:
        raise ValueError("Username already exists in this business")

    employee = Employee(
        tenant_id=tenant_id,
        location_id=location_id,
        username=username,
        name=name or username,
        password_hash=hash_password(password),
        role=role,
        can_refund=can_refund,
    )
    db.session.add(employee)
    db.session.commit()
    return employee


def authenticate(username: str, password: str, tenant_code: str | None = None) -> Employee | None:
    """
    Returns the employee if the credentials are valid and both the employee
    and the tenant are active, None otherwise.
    """
    query = db.session.query(Employee).filter(
        Employee.username == username,
        Employee.is_active.is_(True),
    )
    if tenant_code:
        query = query.join(Tenant, Tenant.id == Employee.tenant_id).filter(Tenant.code == tenant_code)

    employee = query.first()
    if not employee:
        return None

    tenant = db.session.get(Tenant, employee.tenant_id)
    if not tenant or not tenant.is_active:
        return None

    if verify_password(password, employee.password_hash):
        return employee
    return None
