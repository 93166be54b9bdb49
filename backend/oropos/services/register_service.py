# Overview: Service-layer operations for cash-drawer shifts and drawer activity.

"""
Cash-Drawer Shift Management

A shift (CashDrawerSession) is a period of cash accountability for one
cashier on one physical drawer. Only one shift can be open per
(location, drawer) at a time.

Every drawer open is logged as a DrawerActivity. No-sale opens require a
reason code and feed the NO_SALE_SPIKE owner exception.

Expected cash for a shift = opening cash + cash sales + cash refunds
(refund totals are negative).
"""

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, NotFound, ValidationFailed
from ..extensions import db
from ..models import CashDrawerSession, DrawerActivity, Location, Transaction
from ..models.audit import SEVERITY_CRITICAL, SEVERITY_WARNING
from ..models.registers import (
    ACTIVITY_DRAWER_COUNT,
    ACTIVITY_NO_SALE,
    ACTIVITY_REFUND,
    ACTIVITY_SALE_OPEN,
    ACTIVITY_SHIFT_CLOSE,
    ACTIVITY_SHIFT_OPEN,
)
from ..models.transactions import STATUS_COMPLETED, STATUS_REFUNDED
from ..time_utils import start_of_day, utcnow
from . import exception_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .shift_guard import require_open_session

logger = logging.getLogger(__name__)

NO_SALE_REASONS = (
    "make_change",
    "verify_cash",
    "error_correction",
    "give_receipt",
    "cash_drop",
    "manager_request",
    "other",
)

DEFAULT_DRAWER_ID = "main"
ACTIVITY_LIST_LIMIT = 100


def _parse_cents(value, field: str, *, allow_none: bool = False) -> int | None:
    if value is None or value == "":
        if allow_none:
            return None
        return 0
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be an amount in cents")
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be an amount in cents")
    if cents != value and not isinstance(value, str):
        raise ValidationFailed(f"{field} must be a whole number of cents")
    if cents < 0:
        raise ValidationFailed(f"{field} cannot be negative")
    return cents


# =============================================================================
# DRAWER ACTIVITY
# =============================================================================

def log_drawer_activity(
    session: CashDrawerSession,
    employee_id: int,
    activity_type: str,
    *,
    reason: str | None = None,
    note: str | None = None,
    amount_cents: int | None = None,
    expected_cents: int | None = None,
    variance_cents: int | None = None,
    transaction_id: int | None = None,
) -> DrawerActivity:
    """Add an activity row to the current store transaction (no commit)."""
    activity = DrawerActivity(
        tenant_id=session.tenant_id,
        location_id=session.location_id,
        cash_drawer_session_id=session.id,
        employee_id=employee_id,
        transaction_id=transaction_id,
        type=activity_type,
        reason=reason,
        note=note,
        amount_cents=amount_cents,
        expected_cents=expected_cents,
        variance_cents=variance_cents,
        timestamp=utcnow(),
    )
    db.session.add(activity)
    return activity


# =============================================================================
# SHIFTS
# =============================================================================

def get_open_session(employee_id: int, location_id: int | None = None) -> CashDrawerSession | None:
    query = db.session.query(CashDrawerSession).filter(
        CashDrawerSession.employee_id == employee_id,
        CashDrawerSession.end_time.is_(None),
    )
    if location_id is not None:
        query = query.filter(CashDrawerSession.location_id == location_id)
    return query.order_by(CashDrawerSession.start_time.desc()).first()


def open_shift(
    tenant_id: int,
    location_id: int | None,
    employee_id: int,
    opening_cash_cents,
    drawer_id: str | None = None,
    notes: str | None = None,
) -> CashDrawerSession:
    """
    Open a shift on a drawer.

    Raises:
        ValidationFailed: no location or bad amount
        Conflict: the drawer already has an open shift
    """
    if location_id is None:
        raise ValidationFailed("Location required to open shift")
    try:
        location_id = int(location_id)
    except (TypeError, ValueError):
        raise ValidationFailed("locationId must be an integer")
    opening_cash_cents = _parse_cents(opening_cash_cents, "amount")
    drawer_id = (drawer_id or DEFAULT_DRAWER_ID).strip() or DEFAULT_DRAWER_ID

    def _op():
        begin_write_transaction()

        location = db.session.get(Location, location_id)
        if not location or location.tenant_id != tenant_id:
            raise ValidationFailed("Location not found")

        existing = db.session.query(CashDrawerSession).filter(
            CashDrawerSession.location_id == location_id,
            CashDrawerSession.drawer_id == drawer_id,
            CashDrawerSession.end_time.is_(None),
        ).first()
        if existing:
            raise Conflict(
                "Shift already open on this drawer",
                cashDrawerSessionId=existing.id,
            )

        session = CashDrawerSession(
            tenant_id=tenant_id,
            location_id=location_id,
            drawer_id=drawer_id,
            employee_id=employee_id,
            opening_cash_cents=opening_cash_cents,
            start_time=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        log_drawer_activity(
            session, employee_id, ACTIVITY_SHIFT_OPEN,
            amount_cents=opening_cash_cents, note="Shift opened",
        )
        db.session.commit()
        return session

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise Conflict("Shift already open on this drawer")


def close_shift(
    tenant_id: int,
    employee_id: int,
    closing_cash_cents,
    notes: str | None = None,
    location_id: int | None = None,
) -> CashDrawerSession:
    """
    Close the caller's open shift. Notes are appended to the opening notes.

    Raises:
        NotFound: the caller has no open shift
    """
    closing_cash_cents = _parse_cents(closing_cash_cents, "amount")

    def _op():
        begin_write_transaction()

        current = get_open_session(employee_id, location_id)
        if not current or current.tenant_id != tenant_id:
            raise NotFound("No open shift found")

        session = lock_for_update(
            db.session.query(CashDrawerSession).filter_by(id=current.id)
        ).first()

        summary = compute_expected_cash(session)
        session.end_time = utcnow()
        session.closing_cash_cents = closing_cash_cents
        if notes:
            session.notes = f"{session.notes}\n{notes}" if session.notes else notes

        log_drawer_activity(
            session, employee_id, ACTIVITY_SHIFT_CLOSE,
            amount_cents=closing_cash_cents,
            expected_cents=summary["expected_cash_cents"],
            variance_cents=closing_cash_cents - summary["expected_cash_cents"],
            note=notes,
        )
        db.session.commit()
        return session

    return run_with_retry(_op)


def compute_expected_cash(session: CashDrawerSession) -> dict:
    """Cash sales, cash refunds and expected drawer cash for a shift."""
    cash_sales = db.session.query(func.coalesce(func.sum(Transaction.total_cents), 0)).filter(
        Transaction.cash_drawer_session_id == session.id,
        Transaction.original_transaction_id.is_(None),
        Transaction.status.in_([STATUS_COMPLETED, STATUS_REFUNDED]),
        Transaction.payment_method == "CASH",
    ).scalar() or 0

    cash_refunds = db.session.query(func.coalesce(func.sum(Transaction.total_cents), 0)).filter(
        Transaction.cash_drawer_session_id == session.id,
        Transaction.original_transaction_id.isnot(None),
        Transaction.status == STATUS_REFUNDED,
        Transaction.payment_method == "CASH",
    ).scalar() or 0

    return {
        "opening_cash_cents": session.opening_cash_cents,
        "cash_sales_cents": int(cash_sales),
        "cash_refunds_cents": int(cash_refunds),
        "expected_cash_cents": session.opening_cash_cents + int(cash_sales) + int(cash_refunds),
    }


def get_current_shift(employee_id: int, location_id: int | None = None) -> dict | None:
    session = get_open_session(employee_id, location_id)
    if not session:
        return None
    data = session.to_dict()
    data.update(compute_expected_cash(session))
    return data


# =============================================================================
# GUARDED DRAWER OPERATIONS
# =============================================================================

def open_no_sale(
    tenant_id: int,
    employee_id: int,
    cash_drawer_session_id,
    reason: str | None,
    note: str | None = None,
) -> DrawerActivity:
    """
    Open the drawer without a sale.

    The reason must be one of NO_SALE_REASONS; ``other`` needs a note.
    After the commit, a NO_SALE_SPIKE exception is raised once the location
    reaches the alert threshold for the day.
    """
    def _op():
        begin_write_transaction()
        session = require_open_session(cash_drawer_session_id, tenant_id)

        if not reason:
            raise ValidationFailed("Reason required for no-sale drawer open")
        if reason not in NO_SALE_REASONS:
            raise ValidationFailed(f"Unknown no-sale reason: {reason}")
        if reason == "other" and not (note or "").strip():
            raise ValidationFailed("A note is required when the reason is 'other'")

        activity = log_drawer_activity(session, employee_id, ACTIVITY_NO_SALE, reason=reason, note=note)
        db.session.commit()
        return activity

    activity = run_with_retry(_op)
    check_no_sale_alerts(tenant_id, activity.location_id)
    return activity


def record_drawer_count(
    tenant_id: int,
    employee_id: int,
    cash_drawer_session_id,
    counted_cents,
    note: str | None = None,
) -> DrawerActivity:
    """Guarded recount: records expected cash and variance (counted - expected)."""
    def _op():
        begin_write_transaction()
        session = require_open_session(cash_drawer_session_id, tenant_id)

        counted = _parse_cents(counted_cents, "countedCents")
        expected = compute_expected_cash(session)["expected_cash_cents"]
        activity = log_drawer_activity(
            session, employee_id, ACTIVITY_DRAWER_COUNT,
            amount_cents=counted,
            expected_cents=expected,
            variance_cents=counted - expected,
            note=note,
        )
        db.session.commit()
        return activity

    return run_with_retry(_op)


def count_no_sales_today(location_id: int) -> int:
    return db.session.query(func.count(DrawerActivity.id)).filter(
        DrawerActivity.location_id == location_id,
        DrawerActivity.type == ACTIVITY_NO_SALE,
        DrawerActivity.timestamp >= start_of_day(),
    ).scalar() or 0


def check_no_sale_alerts(tenant_id: int, location_id: int):
    """Best effort; failures are logged and never affect the drawer open."""
    try:
        count = count_no_sales_today(location_id)
        if count >= current_app.config["NO_SALE_CRITICAL_THRESHOLD"]:
            severity = SEVERITY_CRITICAL
        elif count >= current_app.config["NO_SALE_ALERT_THRESHOLD"]:
            severity = SEVERITY_WARNING
        else:
            return None
        logger.warning("Drawer alert [%s]: location %s has %s no-sale opens today", severity, location_id, count)
        return exception_service.raise_exception(
            tenant_id,
            location_id,
            "NO_SALE_SPIKE",
            severity,
            f"{count} no-sale drawer opens today",
            f"The drawer was opened without a sale {count} times today",
        )
    except Exception:
        db.session.rollback()
        logger.exception("No-sale alert check failed for location %s", location_id)
        return None


# =============================================================================
# REPORTING
# =============================================================================

def list_drawer_activity(
    tenant_id: int,
    session_id=None,
    activity_type: str | None = None,
    day: datetime | None = None,
    location_id: int | None = None,
) -> dict:
    """Latest activity (newest first) plus a summary by type."""
    query = db.session.query(DrawerActivity).filter(DrawerActivity.tenant_id == tenant_id)
    if session_id:
        query = query.filter(DrawerActivity.cash_drawer_session_id == int(session_id))
    if location_id is not None:
        query = query.filter(DrawerActivity.location_id == location_id)
    if activity_type:
        query = query.filter(DrawerActivity.type == activity_type)
    if day is not None:
        start = start_of_day(day)
        query = query.filter(
            DrawerActivity.timestamp >= start,
            DrawerActivity.timestamp < start + timedelta(days=1),
        )

    activities = query.order_by(
        DrawerActivity.timestamp.desc(), DrawerActivity.id.desc()
    ).limit(ACTIVITY_LIST_LIMIT).all()

    summary = {
        "totalOpens": len(activities),
        "noSaleCount": sum(1 for a in activities if a.type == ACTIVITY_NO_SALE),
        "saleOpens": sum(1 for a in activities if a.type == ACTIVITY_SALE_OPEN),
        "refunds": sum(1 for a in activities if a.type == ACTIVITY_REFUND),
        "counts": sum(1 for a in activities if a.type == ACTIVITY_DRAWER_COUNT),
    }
    return {"activities": [a.to_dict() for a in activities], "summary": summary}
