# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate an employee and create a session token.

    Request body:
    {
        "username": "cashier",
        "password": "Password123",
        "tenantCode": "ACME"  (optional)
    }

    Returns:
        200: {"token": ..., "employee": {...}, "expires_at": ...}
        400: Missing credentials
        401: Invalid credentials
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required", "code": "VALIDATION_FAILED"}), 400

        employee = auth_service.authenticate(username, password, tenant_code=data.get("tenantCode"))
        if not employee:
            return jsonify({"error": "Invalid credentials", "code": "UNAUTHORIZED"}), 401

        session, token = session_service.create_session(
            employee.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "token": token,
            "employee": employee.to_dict(),
            "expires_at": session.to_dict()["expires_at"],
        }), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    try:
        session_service.revoke_session(bearer_token())
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Logout failed")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"employee": g.current_employee.to_dict()}), 200
