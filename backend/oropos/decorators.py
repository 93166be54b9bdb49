# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import Forbidden
from .models.auth import ROLE_MANAGER, ROLE_OWNER
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_employee') and hasattr(g, 'tenant_id')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Resolve the bearer token to a principal.

    Sets on flask.g:
    - g.current_employee: the authenticated Employee
    - g.tenant_id: tenant context for every query
    - g.location_id: the employee's location (may be None)
    - g.session_context: the full SessionContext

    Returns 401 when the header is missing or the token is invalid, expired
    or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "UNAUTHORIZED"}), 401

        g.current_employee = context.employee
        g.tenant_id = context.tenant_id
        g.location_id = context.location_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Allow only the given roles. Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401

            if g.current_employee.role not in roles:
                err = Forbidden("Permission denied", requiredRoles=list(roles))
                return jsonify(err.to_dict()), err.http_status

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_manager = require_role(ROLE_OWNER, ROLE_MANAGER)


def require_refund_permission(f):
    """Explicit can_refund grant, or the OWNER role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401

        if not g.current_employee.has_refund_permission:
            err = Forbidden("You do not have permission to process refunds")
            return jsonify(err.to_dict()), err.http_status

        return f(*args, **kwargs)

    return decorated_function
