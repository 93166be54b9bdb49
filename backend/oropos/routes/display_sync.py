# Overview: Flask API routes for the customer display sync channel.

# backend/oropos/routes/display_sync.py
"""
Customer Display Sync API

GET  /api/pos/display-sync?stationId=|locationId=[&since=<version>&wait=<s>]
    Current shared state. With ``since`` and ``wait`` the request is held
    (up to DISPLAY_SYNC_MAX_WAIT_SECONDS) until the version changes.
    Read by the customer-facing screen, which has no employee login: it
    names its business with ``tenantCode``. A bearer token, when sent,
    decides the business instead.

POST /api/pos/display-sync {stationId | locationId, cart}
    Overwrite the state (last write wins). Cashier terminal only; the key is
    scoped to the caller's business.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import bearer_token, require_auth
from ..errors import InternalError, PosError
from ..services import display_sync_service, session_service


display_sync_bp = Blueprint("display_sync", __name__, url_prefix="/api/pos")


def _reader_tenant_id() -> int:
    token = bearer_token()
    if token:
        context = session_service.validate_session(token)
        if context:
            return context.tenant_id
    return display_sync_service.resolve_reader_tenant(request.args.get("tenantCode"))


@display_sync_bp.get("/display-sync")
def read_display_route():
    try:
        key = display_sync_service.display_key(
            _reader_tenant_id(), request.args.get("stationId"), request.args.get("locationId")
        )
        since = display_sync_service.parse_since(request.args.get("since"))
        wait = display_sync_service.parse_wait(request.args.get("wait"))

        state = display_sync_service.get_hub().read(key, since=since, wait=wait)
        return jsonify(state), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Display sync read failed")
        err = InternalError()
        return jsonify(err.to_dict()), err.http_status


@display_sync_bp.post("/display-sync")
@require_auth
def publish_display_route():
    try:
        data = request.get_json(silent=True) or {}
        key = display_sync_service.display_key(
            g.tenant_id, data.get("stationId"), data.get("locationId") or g.location_id
        )
        state = display_sync_service.get_hub().publish(key, data.get("cart"))
        return jsonify({"success": True, "state": state}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Display sync publish failed")
        err = InternalError()
        return jsonify(err.to_dict()), err.http_status
