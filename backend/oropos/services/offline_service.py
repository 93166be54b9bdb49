# Overview: Offline card capability and offline replay reconciliation.

"""
Offline Mode

Card payments taken while a register is offline carry chargeback risk, so
they are only accepted once an OWNER or MANAGER has accepted the offline
terms and acknowledged the risk. Both acknowledgments are stored on the
tenant; cash is always allowed offline.

Sales captured offline are replayed through the normal sale commit with
their original idempotency key and ``source = OFFLINE_REPLAY``;
get_sync_status() lists recent replays for reconciliation.
"""

from datetime import timedelta

from flask import current_app

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import Tenant, Transaction
from ..models.transactions import SOURCE_OFFLINE_REPLAY
from ..time_utils import to_utc_z, utcnow
from . import audit_service

SYNC_WINDOW = timedelta(hours=24)
SYNC_LIST_LIMIT = 50


def get_capability(tenant_id: int) -> dict:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Business not found")
    return {
        "enabled": tenant.offline_card_enabled,
        "termsAccepted": tenant.offline_terms_accepted_at is not None,
        "riskAcknowledged": tenant.offline_risk_acknowledged_at is not None,
        "termsAcceptedAt": to_utc_z(tenant.offline_terms_accepted_at),
        "riskAcknowledgedAt": to_utc_z(tenant.offline_risk_acknowledged_at),
        "termsVersion": tenant.offline_terms_version,
        "currentTermsVersion": current_app.config["OFFLINE_TERMS_VERSION"],
    }


def accept_terms(
    tenant_id: int,
    employee_id: int,
    accept_terms_flag,
    acknowledge_risk,
    terms_version: str | None = None,
) -> dict:
    """Record both acknowledgments. Either one missing is a validation error."""
    if accept_terms_flag is not True or acknowledge_risk is not True:
        raise ValidationFailed("Both acceptTerms and acknowledgeRisk must be true")

    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Business not found")

    now = utcnow()
    tenant.offline_terms_accepted_at = now
    tenant.offline_risk_acknowledged_at = now
    tenant.offline_terms_accepted_by_id = employee_id
    tenant.offline_terms_version = terms_version or current_app.config["OFFLINE_TERMS_VERSION"]
    db.session.commit()

    audit_service.record_event(
        tenant_id,
        "OFFLINE_TERMS_ACCEPTED",
        actor_id=employee_id,
        entity_type="tenant",
        entity_id=tenant_id,
        payload={"terms_version": tenant.offline_terms_version},
    )
    return get_capability(tenant_id)


def get_sync_status(tenant_id: int) -> dict:
    since = utcnow() - SYNC_WINDOW
    replays = db.session.query(Transaction).filter(
        Transaction.tenant_id == tenant_id,
        Transaction.source == SOURCE_OFFLINE_REPLAY,
        Transaction.created_at >= since,
    ).order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(SYNC_LIST_LIMIT).all()

    return {
        "count": len(replays),
        "transactions": [
            {
                "id": tx.id,
                "idempotencyKey": tx.idempotency_key,
                "receiptNumber": tx.receipt_number,
                "status": tx.status,
                "paymentMethod": tx.payment_method,
                "totalCents": tx.total_cents,
                "capturedAt": to_utc_z(tx.captured_at),
                "syncedAt": to_utc_z(tx.created_at),
            }
            for tx in replays
        ],
    }
