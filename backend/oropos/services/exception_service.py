# Overview: Owner-dashboard exceptions: stored alerts plus ones computed from live data.

"""
Store Exceptions

Two sources feed the owner's exception list:

- stored exceptions raised by operations (no-sale spikes, refund spikes);
  an ACTIVE exception of the same type at the same location is reused and
  its occurrence count bumped instead of creating a duplicate
- real-time exceptions computed on read (low stock, out of stock, void and
  refund spikes today)

The two are merged and deduplicated by (type, location) with stored entries
winning, then grouped by severity.
"""

import logging

from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import Location, Product, StoreException, Transaction
from ..models.audit import (
    EXCEPTION_ACKNOWLEDGED,
    EXCEPTION_ACTIVE,
    EXCEPTION_RESOLVED,
    SEVERITIES,
    SEVERITY_CRITICAL,
    SEVERITY_INFO,
    SEVERITY_WARNING,
)
from ..models.transactions import STATUS_CANCELLED, STATUS_REFUNDED, STATUS_VOIDED
from ..time_utils import start_of_day, utcnow, to_utc_z

logger = logging.getLogger(__name__)

_SEVERITY_RANK = {SEVERITY_INFO: 0, SEVERITY_WARNING: 1, SEVERITY_CRITICAL: 2}

STORED_LIST_LIMIT = 50


def raise_exception(
    tenant_id: int,
    location_id: int | None,
    exception_type: str,
    severity: str,
    title: str,
    description: str | None = None,
) -> StoreException:
    """Create or bump the ACTIVE exception for (tenant, location, type)."""
    existing = db.session.query(StoreException).filter_by(
        tenant_id=tenant_id,
        location_id=location_id,
        type=exception_type,
        status=EXCEPTION_ACTIVE,
    ).first()

    if existing:
        existing.occurrence_count = (existing.occurrence_count or 1) + 1
        existing.last_seen_at = utcnow()
        existing.title = title
        existing.description = description
        if _SEVERITY_RANK.get(severity, 0) > _SEVERITY_RANK.get(existing.severity, 0):
            existing.severity = severity
        db.session.commit()
        return existing

    exc = StoreException(
        tenant_id=tenant_id,
        location_id=location_id,
        type=exception_type,
        severity=severity,
        title=title,
        description=description,
        status=EXCEPTION_ACTIVE,
    )
    db.session.add(exc)
    db.session.commit()
    return exc


def _spike_severity(count: int, alert_at: int, critical_at: int) -> str | None:
    if count >= critical_at:
        return SEVERITY_CRITICAL
    if count >= alert_at:
        return SEVERITY_WARNING
    return None


def count_refunds_today(location_id: int) -> int:
    return db.session.query(func.count(Transaction.id)).filter(
        Transaction.location_id == location_id,
        Transaction.original_transaction_id.isnot(None),
        Transaction.status == STATUS_REFUNDED,
        Transaction.created_at >= start_of_day(),
    ).scalar() or 0


def check_refund_spike(tenant_id: int, location_id: int) -> StoreException | None:
    """Best effort: raise REFUND_SPIKE when today's refunds cross the alert threshold."""
    try:
        count = count_refunds_today(location_id)
        severity = _spike_severity(
            count,
            current_app.config["SPIKE_ALERT_THRESHOLD"],
            current_app.config["SPIKE_CRITICAL_THRESHOLD"],
        )
        if not severity:
            return None
        return raise_exception(
            tenant_id,
            location_id,
            "REFUND_SPIKE",
            severity,
            f"{count} refunds today",
            f"{count} refund transactions processed today",
        )
    except Exception:
        db.session.rollback()
        logger.exception("Refund spike check failed for location %s", location_id)
        return None


def _realtime_exceptions(tenant_id: int, location_id: int | None) -> list[dict]:
    cfg = current_app.config
    now = to_utc_z(utcnow())
    today = start_of_day()

    locations = db.session.query(Location).filter(Location.tenant_id == tenant_id)
    if location_id is not None:
        locations = locations.filter(Location.id == location_id)

    active_products = db.session.query(func.count(Product.id)).filter(
        Product.tenant_id == tenant_id,
        Product.is_active.is_(True),
    )
    low_stock = active_products.filter(
        Product.stock <= cfg["LOW_STOCK_THRESHOLD"], Product.stock > 0
    ).scalar() or 0
    out_of_stock = active_products.filter(Product.stock <= 0).scalar() or 0

    found = []

    def _add(location, exc_type, severity, title, description):
        found.append({
            "id": f"{exc_type.lower().replace('_', '-')}-{location.id}",
            "type": exc_type,
            "severity": severity,
            "title": title,
            "description": description,
            "status": EXCEPTION_ACTIVE,
            "location_id": location.id,
            "location_name": location.name,
            "occurrence_count": 1,
            "created_at": now,
            "is_realtime": True,
        })

    for location in locations.all():
        if low_stock > 0:
            _add(
                location, "LOW_STOCK",
                SEVERITY_WARNING if low_stock > 10 else SEVERITY_INFO,
                f"{low_stock} items low in stock",
                f"{location.name} has {low_stock} products with stock <= {cfg['LOW_STOCK_THRESHOLD']}",
            )
        if out_of_stock > 0:
            _add(
                location, "OUT_OF_STOCK", SEVERITY_WARNING,
                f"{out_of_stock} items out of stock",
                f"{location.name} has {out_of_stock} products with zero stock",
            )

        void_count = db.session.query(func.count(Transaction.id)).filter(
            Transaction.location_id == location.id,
            Transaction.created_at >= today,
            Transaction.status.in_([STATUS_VOIDED, STATUS_CANCELLED]),
        ).scalar() or 0
        severity = _spike_severity(void_count, cfg["SPIKE_ALERT_THRESHOLD"], cfg["SPIKE_CRITICAL_THRESHOLD"])
        if severity:
            _add(
                location, "VOID_SPIKE", severity,
                f"{void_count} voids today",
                f"{location.name} has {void_count} voided transactions today",
            )

        refund_count = count_refunds_today(location.id)
        severity = _spike_severity(refund_count, cfg["SPIKE_ALERT_THRESHOLD"], cfg["SPIKE_CRITICAL_THRESHOLD"])
        if severity:
            _add(
                location, "REFUND_SPIKE", severity,
                f"{refund_count} refunds today",
                f"{location.name} has {refund_count} refunds today",
            )

    return found


def list_exceptions(
    tenant_id: int,
    status: str | None = None,
    severity: str | None = None,
    location_id: int | None = None,
) -> dict:
    """
    Stored + real-time exceptions, deduped by (type, location) and grouped
    by severity.

    Real-time exceptions are always ACTIVE, so they only appear when listing
    ACTIVE exceptions (the default).
    """
    status = (status or EXCEPTION_ACTIVE).upper()
    if status not in (EXCEPTION_ACTIVE, EXCEPTION_ACKNOWLEDGED, EXCEPTION_RESOLVED):
        raise ValidationFailed(f"Unknown status: {status}")
    if severity:
        severity = severity.upper()
        if severity not in SEVERITIES:
            raise ValidationFailed(f"Unknown severity: {severity}")

    query = db.session.query(StoreException).filter(
        StoreException.tenant_id == tenant_id,
        StoreException.status == status,
    )
    if severity:
        query = query.filter(StoreException.severity == severity)
    if location_id is not None:
        query = query.filter(StoreException.location_id == location_id)
    stored = query.order_by(StoreException.created_at.desc()).limit(STORED_LIST_LIMIT).all()

    combined = [exc.to_dict() for exc in stored]
    seen = {(item["type"], item["location_id"]) for item in combined}

    if status == EXCEPTION_ACTIVE:
        for item in _realtime_exceptions(tenant_id, location_id):
            if severity and item["severity"] != severity:
                continue
            key = (item["type"], item["location_id"])
            if key in seen:
                continue
            seen.add(key)
            combined.append(item)

    combined.sort(key=lambda item: -_SEVERITY_RANK.get(item["severity"], 0))

    grouped = {
        "critical": [e for e in combined if e["severity"] == SEVERITY_CRITICAL],
        "warning": [e for e in combined if e["severity"] == SEVERITY_WARNING],
        "info": [e for e in combined if e["severity"] == SEVERITY_INFO],
    }
    return {
        "exceptions": combined,
        "counts": {
            "critical": len(grouped["critical"]),
            "warning": len(grouped["warning"]),
            "info": len(grouped["info"]),
            "total": len(combined),
        },
        "grouped": grouped,
    }


def update_exception(tenant_id: int, exception_id, action: str, employee_id: int, note: str | None = None) -> StoreException:
    """ACKNOWLEDGE or RESOLVE a stored exception."""
    if not exception_id or not action:
        raise ValidationFailed("exceptionId and action are required")

    try:
        exception_id = int(exception_id)
    except (TypeError, ValueError):
        raise NotFound("Exception not found")

    exc = db.session.get(StoreException, exception_id)
    if not exc or exc.tenant_id != tenant_id:
        raise NotFound("Exception not found")

    action = action.upper()
    now = utcnow()
    if action == "ACKNOWLEDGE":
        exc.status = EXCEPTION_ACKNOWLEDGED
        exc.acknowledged_by_id = employee_id
        exc.acknowledged_at = now
    elif action == "RESOLVE":
        exc.status = EXCEPTION_RESOLVED
        exc.resolved_by_id = employee_id
        exc.resolved_at = now
        exc.resolution_note = note
    else:
        raise ValidationFailed(f"Unknown action: {action}")

    db.session.commit()
    return exc
