# Overview: Flask API routes for audit, owner exceptions and consultations.

# backend/oropos/routes/ledger.py
"""
Audit & Owner Surfaces

- GET  /api/audit-logs          append-only audit trail (OWNER/MANAGER)
- GET  /api/owner/exceptions    stored + real-time exceptions (OWNER/MANAGER)
- POST /api/owner/exceptions    acknowledge / resolve (OWNER/MANAGER)
- GET  /api/consultations       the business's consultation requests
- POST /api/consultations       request a consultation
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_manager
from ..errors import InternalError, PosError, ValidationFailed
from ..services import audit_service, consultation_service, exception_service


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _internal_error():
    err = InternalError()
    return jsonify(err.to_dict()), err.http_status


@ledger_bp.get("/audit-logs")
@require_auth
@require_manager
def list_audit_logs_route():
    """Query params: eventType, entityType, entityId, limit (default 100, max 500)."""
    try:
        limit = request.args.get("limit", 100)
        entity_id = request.args.get("entityId")
        try:
            limit = int(limit)
            entity_id = int(entity_id) if entity_id not in (None, "") else None
        except ValueError:
            raise ValidationFailed("limit and entityId must be integers")

        entries = audit_service.list_events(
            g.tenant_id,
            event_type=request.args.get("eventType"),
            entity_type=request.args.get("entityType"),
            entity_id=entity_id,
            limit=limit,
        )
        return jsonify({"logs": [e.to_dict() for e in entries], "count": len(entries)}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return _internal_error()


@ledger_bp.get("/owner/exceptions")
@require_auth
@require_manager
def list_exceptions_route():
    """Query params: status (default ACTIVE), severity, locationId."""
    try:
        result = exception_service.list_exceptions(
            g.tenant_id,
            status=request.args.get("status"),
            severity=request.args.get("severity"),
            location_id=request.args.get("locationId", type=int),
        )
        return jsonify(result), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list exceptions")
        return _internal_error()


@ledger_bp.post("/owner/exceptions")
@require_auth
@require_manager
def update_exception_route():
    """Request body: {"exceptionId": 3, "action": "ACKNOWLEDGE" | "RESOLVE", "note": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        exc = exception_service.update_exception(
            g.tenant_id,
            data.get("exceptionId"),
            data.get("action"),
            g.current_employee.id,
            note=data.get("note"),
        )
        return jsonify({"success": True, "exception": exc.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update exception")
        return _internal_error()


@ledger_bp.get("/consultations")
@require_auth
def list_consultations_route():
    try:
        requests_ = consultation_service.list_requests(g.tenant_id)
        return jsonify({"requests": [r.to_dict() for r in requests_]}), 200
    except Exception:
        current_app.logger.exception("Failed to list consultations")
        return _internal_error()


@ledger_bp.post("/consultations")
@require_auth
def create_consultation_route():
    """
    Request body:
    {
        "reason": "SETUP_HELP" | "QUESTIONS" | "TECHNICAL_ISSUE" | "OTHER",
        "details": "...",
        "preferredTime": "mornings",
        "contactPhone": "555-0100"
    }

    201 for a new request, 200 when a PENDING one for the same reason exists.
    """
    try:
        data = request.get_json(silent=True) or {}
        request_row, created = consultation_service.create_request(
            g.tenant_id,
            g.current_employee.id,
            data.get("reason"),
            details=data.get("details"),
            preferred_time=data.get("preferredTime"),
            contact_phone=data.get("contactPhone"),
        )
        return jsonify({"request": request_row.to_dict(), "created": created}), 201 if created else 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create consultation request")
        return _internal_error()
