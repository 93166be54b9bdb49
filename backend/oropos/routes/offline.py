# Overview: Flask API routes for the offline card capability.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_manager
from ..errors import InternalError, PosError
from ..services import offline_service


offline_bp = Blueprint("offline", __name__, url_prefix="/api/offline")


@offline_bp.get("/capability")
@require_auth
def capability_route():
    try:
        return jsonify(offline_service.get_capability(g.tenant_id)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load offline capability")
        err = InternalError()
        return jsonify(err.to_dict()), err.http_status


@offline_bp.post("/terms")
@require_auth
@require_manager
def accept_terms_route():
    """
    Request body:
    {
        "acceptTerms": true,
        "acknowledgeRisk": true,
        "termsVersion": "1.0"   (optional)
    }

    Both flags must be true. OWNER or MANAGER only.
    """
    try:
        data = request.get_json(silent=True) or {}
        capability = offline_service.accept_terms(
            tenant_id=g.tenant_id,
            employee_id=g.current_employee.id,
            accept_terms_flag=data.get("acceptTerms"),
            acknowledge_risk=data.get("acknowledgeRisk"),
            terms_version=data.get("termsVersion"),
        )
        return jsonify(capability), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record offline terms")
        err = InternalError()
        return jsonify(err.to_dict()), err.http_status
