# Overview: Flask API routes for sales and refunds; parses input and returns JSON responses.

# backend/oropos/routes/sales.py
"""
Transaction API Routes

- POST /api/pos/transactions        guarded idempotent sale commit
- GET  /api/pos/transactions/<id>   tenant-scoped read
- POST /api/pos/refund              refund engine
- GET  /api/pos/sync                offline replays of the last 24 hours

Idempotency: clients send an ``Idempotency-Key`` header (or an
``idempotencyKey`` body field). A repeated key returns the transaction that
already exists with ``replayed: true`` and HTTP 200.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_refund_permission
from ..errors import InternalError, PosError
from ..services import offline_service, refund_service, sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/pos")


def _internal_error():
    err = InternalError()
    return jsonify(err.to_dict()), err.http_status


def _idempotency_key(data: dict):
    return request.headers.get("Idempotency-Key") or data.get("idempotencyKey")


@sales_bp.post("/transactions")
@require_auth
def commit_sale_route():
    """
    Commit a sale.

    Request body:
    {
        "cashDrawerSessionId": 5,
        "paymentMethod": "CASH",
        "items": [
            {"type": "PRODUCT", "productId": 1, "quantity": 2, "discount": 10},
            {"type": "SERVICE", "serviceId": 3, "quantity": 1, "staffId": 7}
        ],
        "tip": 200,                       (optional, cents)
        "clientId": 12,                   (optional)
        "capturedOffline": true,          (offline replays)
        "capturedAt": "2026-01-01T10:00:00Z"
    }

    Returns:
        201: committed
        200: idempotent replay of an existing transaction
        400: session guard, validation, offline card gate
        404: unknown product or service
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction, replayed = sales_service.commit_sale(
            tenant_id=g.tenant_id,
            employee_id=g.current_employee.id,
            cash_drawer_session_id=data.get("cashDrawerSessionId"),
            payment_method=data.get("paymentMethod"),
            items=data.get("items"),
            tip_cents=data.get("tip"),
            client_id=data.get("clientId"),
            idempotency_key=_idempotency_key(data),
            captured_offline=data.get("capturedOffline") is True,
            captured_at=data.get("capturedAt"),
        )
        return jsonify({
            "transaction": transaction.to_dict(),
            "replayed": replayed,
        }), 200 if replayed else 201

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return _internal_error()


@sales_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        transaction = sales_service.get_transaction(g.tenant_id, transaction_id)
        return jsonify({"transaction": transaction.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load transaction %s", transaction_id)
        return _internal_error()


@sales_bp.post("/refund")
@require_auth
@require_refund_permission
def refund_route():
    """
    Refund all or part of a completed sale.

    Request body:
    {
        "originalTransactionId": 42,
        "refundType": "FULL" | "PARTIAL",
        "items": [{"lineItemId": 101, "quantity": 2}],   (optional for FULL)
        "reason": "Damaged",
        "refundMethod": "CASH",                          (defaults to original)
        "cashDrawerSessionId": 5
    }

    Returns:
        200: {"success": true, "refundTransaction": {...}, "replayed": bool}
        400: NoOpenShift, ShiftClosed, InvalidState, LineItemNotFound,
             OverRefund, ValidationFailed
        403: no refund permission, or original belongs to another business
        404: original not found
        500: opaque internal error (full context logged)
    """
    data = request.get_json(silent=True) or {}
    try:
        refund, replayed = refund_service.process_refund(
            tenant_id=g.tenant_id,
            employee_id=g.current_employee.id,
            original_transaction_id=data.get("originalTransactionId"),
            refund_type=data.get("refundType"),
            items=data.get("items"),
            reason=data.get("reason"),
            refund_method=data.get("refundMethod"),
            cash_drawer_session_id=data.get("cashDrawerSessionId"),
            idempotency_key=_idempotency_key(data),
        )
        return jsonify({
            "success": True,
            "refundTransaction": refund.to_dict(),
            "replayed": replayed,
        }), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception(
            "Refund failed (original=%s, employee=%s, tenant=%s)",
            data.get("originalTransactionId"), g.current_employee.id, g.tenant_id,
        )
        return _internal_error()


@sales_bp.get("/sync")
@require_auth
def sync_status_route():
    """Offline-replayed transactions of the last 24 hours (max 50)."""
    try:
        return jsonify(offline_service.get_sync_status(g.tenant_id)), 200
    except Exception:
        current_app.logger.exception("Failed to load offline sync status")
        return _internal_error()
