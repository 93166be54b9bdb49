# Overview: Flask API routes for shifts and drawer operations; parses input and returns JSON responses.

# backend/oropos/routes/registers.py
"""
Cash-Drawer Shift API Routes

- POST /api/pos/shift            open or close the caller's shift
- GET  /api/pos/shift            current open shift with expected cash
- POST /api/pos/drawer/no-sale   guarded no-sale drawer open
- POST /api/pos/drawer/count     guarded drawer recount
- GET  /api/pos/drawer-activity  activity list + summary
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import InternalError, PosError, ValidationFailed
from ..services import register_service
from ..time_utils import parse_iso_datetime


registers_bp = Blueprint("registers", __name__, url_prefix="/api/pos")


def _internal_error():
    err = InternalError()
    return jsonify(err.to_dict()), err.http_status


@registers_bp.post("/shift")
@require_auth
def shift_route():
    """
    Open or close a shift.

    Request body:
    {
        "action": "OPEN" | "CLOSE",
        "amount": 10000,          (cents: opening or closing cash)
        "notes": "...",           (optional)
        "drawerId": "main",       (optional, OPEN only)
        "locationId": 1           (optional, defaults to the employee's location)
    }

    Returns:
        200: closed session
        201: opened session
        400: invalid action or amount
        404: CLOSE with no open shift
        409: drawer already has an open shift
    """
    try:
        data = request.get_json(silent=True) or {}
        action = str(data.get("action") or "").upper()

        if action == "OPEN":
            session = register_service.open_shift(
                tenant_id=g.tenant_id,
                location_id=data.get("locationId") or g.location_id,
                employee_id=g.current_employee.id,
                opening_cash_cents=data.get("amount"),
                drawer_id=data.get("drawerId"),
                notes=data.get("notes"),
            )
            return jsonify({"session": session.to_dict()}), 201

        if action == "CLOSE":
            session = register_service.close_shift(
                tenant_id=g.tenant_id,
                employee_id=g.current_employee.id,
                closing_cash_cents=data.get("amount"),
                notes=data.get("notes"),
                location_id=data.get("locationId") or g.location_id,
            )
            return jsonify({"session": session.to_dict()}), 200

        raise ValidationFailed("action must be OPEN or CLOSE")

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Shift operation failed")
        return _internal_error()


@registers_bp.get("/shift")
@require_auth
def current_shift_route():
    """Current open shift (or null) with cash sales, cash refunds and expected cash."""
    try:
        shift = register_service.get_current_shift(g.current_employee.id, g.location_id)
        return jsonify({"shift": shift}), 200
    except Exception:
        current_app.logger.exception("Failed to load current shift")
        return _internal_error()


@registers_bp.post("/drawer/no-sale")
@require_auth
def no_sale_route():
    """
    Open the drawer without a sale.

    Request body:
    {
        "cashDrawerSessionId": 5,
        "reason": "make_change",
        "note": "..."   (required when reason is "other")
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        activity = register_service.open_no_sale(
            tenant_id=g.tenant_id,
            employee_id=g.current_employee.id,
            cash_drawer_session_id=data.get("cashDrawerSessionId"),
            reason=data.get("reason"),
            note=data.get("note"),
        )
        return jsonify({"activity": activity.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("No-sale drawer open failed")
        return _internal_error()


@registers_bp.post("/drawer/count")
@require_auth
def drawer_count_route():
    """
    Recount the drawer mid-shift.

    Request body:
    {
        "cashDrawerSessionId": 5,
        "countedCents": 15250,
        "note": "..."   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        activity = register_service.record_drawer_count(
            tenant_id=g.tenant_id,
            employee_id=g.current_employee.id,
            cash_drawer_session_id=data.get("cashDrawerSessionId"),
            counted_cents=data.get("countedCents"),
            note=data.get("note"),
        )
        return jsonify({"activity": activity.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Drawer count failed")
        return _internal_error()


@registers_bp.get("/drawer-activity")
@require_auth
def drawer_activity_route():
    """Query params: sessionId, type, date (YYYY-MM-DD), locationId."""
    try:
        try:
            day = parse_iso_datetime(request.args.get("date"))
        except ValueError:
            raise ValidationFailed("date must be YYYY-MM-DD")

        session_id = request.args.get("sessionId")
        if session_id is not None and not session_id.isdigit():
            raise ValidationFailed("sessionId must be an integer")

        result = register_service.list_drawer_activity(
            tenant_id=g.tenant_id,
            session_id=session_id,
            activity_type=request.args.get("type"),
            day=day,
            location_id=request.args.get("locationId", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list drawer activity")
        return _internal_error()
