# Overview: Refund engine: validated, idempotent, all-or-nothing refunds against completed sales.

"""
Refund Engine

A refund is a new REFUNDED transaction that points at a COMPLETED original
and mirrors the refunded portion with non-positive amounts. The original is
never edited except for its status flip on a FULL refund.

Over-refund protection: for each original line, the units already refunded
are the sum of abs(quantity) over refund lines whose ``refunds_line_item_id``
is that line, on REFUNDED transactions of this original. A request that
would push that past the quantity sold is refused with OverRefund.

Money: refund subtotal = sum of price * qty * (1 - discount/100) per line;
refund tax = subtotal * the original's effective tax rate
(tax / subtotal, 0 when the original subtotal is 0).

Everything (refund row, lines, status flip, stock restore, drawer activity)
commits in one store transaction under the session guard. The audit record
and the refund-spike check run after the commit and never roll it back.
"""

import logging
from collections import OrderedDict

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    Forbidden,
    InvalidState,
    LineItemNotFound,
    NotFound,
    OverRefund,
    ValidationFailed,
)
from ..extensions import db
from ..models import LineItem, Product, Transaction
from ..models.registers import ACTIVITY_REFUND
from ..models.transactions import LINE_PRODUCT, STATUS_COMPLETED, STATUS_REFUNDED
from ..money import apply_rate, effective_tax_rate, line_total_cents
from ..time_utils import utcnow
from . import audit_service, exception_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .register_service import log_drawer_activity
from .sales_service import (
    assign_receipt_number,
    find_replay,
    normalize_idempotency_key,
    normalize_payment_method,
    parse_positive_int,
)
from .shift_guard import require_open_session

logger = logging.getLogger(__name__)

REFUND_FULL = "FULL"
REFUND_PARTIAL = "PARTIAL"


def _parse_requested_lines(items) -> "OrderedDict[int, int]":
    """{lineItemId: quantity}, repeated ids summed, request order kept."""
    if items is None:
        return OrderedDict()
    if not isinstance(items, list):
        raise ValidationFailed("items must be a list")

    requested: "OrderedDict[int, int]" = OrderedDict()
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationFailed(f"items[{index}] must be an object")
        raw_id = item.get("lineItemId")
        if raw_id is None or isinstance(raw_id, bool):
            raise ValidationFailed(f"items[{index}].lineItemId is required")
        try:
            line_id = int(raw_id)
        except (TypeError, ValueError):
            raise LineItemNotFound(f"Line item {raw_id} not found on this transaction", lineItemId=raw_id)
        quantity = parse_positive_int(item.get("quantity"), f"items[{index}].quantity")
        requested[line_id] = requested.get(line_id, 0) + quantity
    return requested


def already_refunded_quantities(original_id: int, line_ids) -> dict[int, int]:
    """Units already refunded per original line id."""
    if not line_ids:
        return {}
    rows = db.session.query(
        LineItem.refunds_line_item_id,
        func.coalesce(func.sum(func.abs(LineItem.quantity)), 0),
    ).join(
        Transaction, Transaction.id == LineItem.transaction_id,
    ).filter(
        Transaction.original_transaction_id == original_id,
        Transaction.status == STATUS_REFUNDED,
        LineItem.refunds_line_item_id.in_(list(line_ids)),
    ).group_by(LineItem.refunds_line_item_id).all()
    return {line_id: int(qty) for line_id, qty in rows}


def process_refund(
    tenant_id: int,
    employee_id: int,
    original_transaction_id,
    refund_type,
    items,
    *,
    reason: str | None = None,
    refund_method=None,
    cash_drawer_session_id=None,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Refund all or part of a completed sale.

    Returns (refund_transaction, replayed).

    Raises:
        NoOpenShift / ShiftClosed: session guard
        NotFound: unknown original
        Forbidden: original belongs to another tenant
        InvalidState: original is not COMPLETED
        LineItemNotFound: a requested line is not on the original
        OverRefund: more units than remain refundable
        ValidationFailed: malformed request
    """
    refund_type = str(refund_type or "").strip().upper()

    def _op():
        begin_write_transaction()
        session = require_open_session(cash_drawer_session_id, tenant_id)

        if refund_type not in (REFUND_FULL, REFUND_PARTIAL):
            raise ValidationFailed("refundType must be FULL or PARTIAL")
        requested = _parse_requested_lines(items)
        if refund_type == REFUND_PARTIAL and not requested:
            raise ValidationFailed("A partial refund needs at least one item")

        key = normalize_idempotency_key(idempotency_key)
        existing = find_replay(tenant_id, key, refund=True)
        if existing:
            db.session.commit()
            return existing, True

        try:
            original_id = int(original_transaction_id)
        except (TypeError, ValueError):
            raise NotFound("Original transaction not found")

        original = lock_for_update(
            db.session.query(Transaction).filter_by(id=original_id)
        ).first()
        if original is None:
            raise NotFound("Original transaction not found")
        if original.tenant_id != tenant_id:
            raise Forbidden("Transaction belongs to another business")
        if original.status != STATUS_COMPLETED:
            raise InvalidState(
                f"Only completed transactions can be refunded (status is {original.status})",
                status=original.status,
            )

        original_lines = {line.id: line for line in original.line_items}
        refunded = already_refunded_quantities(original.id, original_lines.keys())

        if requested:
            plan = OrderedDict()
            for line_id, quantity in requested.items():
                if line_id not in original_lines:
                    raise LineItemNotFound(
                        f"Line item {line_id} not found on this transaction",
                        lineItemId=line_id,
                    )
                plan[line_id] = quantity
        else:
            plan = OrderedDict(
                (line.id, line.quantity - refunded.get(line.id, 0))
                for line in original.line_items
                if line.quantity - refunded.get(line.id, 0) > 0
            )
            if not plan:
                raise OverRefund("Nothing left to refund on this transaction", remaining=0)

        for line_id, quantity in plan.items():
            sold = original_lines[line_id].quantity
            already = refunded.get(line_id, 0)
            if already + quantity > sold:
                remaining = max(sold - already, 0)
                raise OverRefund(
                    f"Cannot refund {quantity} of line item {line_id}: only {remaining} remaining",
                    lineItemId=line_id,
                    remaining=remaining,
                    requested=quantity,
                )

        method = normalize_payment_method(refund_method or original.payment_method, "refundMethod")

        subtotal = sum(
            line_total_cents(original_lines[line_id].price_cents, quantity, original_lines[line_id].discount_percent)
            for line_id, quantity in plan.items()
        )
        tax = apply_rate(subtotal, effective_tax_rate(original.tax_cents, original.subtotal_cents))

        refund = Transaction(
            tenant_id=tenant_id,
            location_id=original.location_id,
            client_id=original.client_id,
            employee_id=employee_id,
            status=STATUS_REFUNDED,
            payment_method=method,
            subtotal_cents=-subtotal,
            tax_cents=-tax,
            tip_cents=0,
            total_cents=-(subtotal + tax),
            original_transaction_id=original.id,
            cash_drawer_session_id=session.id,
            idempotency_key=key,
            refund_reason=reason,
            created_at=utcnow(),
        )
        db.session.add(refund)
        db.session.flush()
        assign_receipt_number(refund)

        for sequence, (line_id, quantity) in enumerate(plan.items(), start=1):
            source = original_lines[line_id]
            db.session.add(LineItem(
                transaction_id=refund.id,
                sequence=sequence,
                type=source.type,
                product_id=source.product_id,
                service_id=source.service_id,
                name=source.name,
                quantity=-quantity,
                price_cents=source.price_cents,
                discount_percent=source.discount_percent,
                total_cents=line_total_cents(source.price_cents, -quantity, source.discount_percent),
                staff_id=source.staff_id,
                refunds_line_item_id=source.id,
            ))
            if source.type == LINE_PRODUCT and source.product_id:
                product = db.session.get(Product, source.product_id)
                if product is not None:
                    product.stock = (product.stock or 0) + quantity

        if refund_type == REFUND_FULL:
            original.status = STATUS_REFUNDED

        log_drawer_activity(
            session, employee_id, ACTIVITY_REFUND,
            amount_cents=refund.total_cents,
            transaction_id=refund.id,
            note=reason,
        )

        db.session.commit()
        return refund, False

    try:
        refund, replayed = run_with_retry(_op)
    except IntegrityError:
        existing = find_replay(tenant_id, normalize_idempotency_key(idempotency_key), refund=True)
        if existing is None:
            raise
        return existing, True

    if not replayed:
        _after_commit(refund, employee_id, refund_type, reason, len(refund.line_items))
    return refund, replayed


def _after_commit(refund: Transaction, employee_id: int, refund_type: str, reason: str | None, item_count: int) -> None:
    audit_service.record_event(
        refund.tenant_id,
        "REFUND_PROCESSED",
        actor_id=employee_id,
        entity_type="transaction",
        entity_id=refund.original_transaction_id,
        payload={
            "refund_transaction_id": refund.id,
            "original_transaction_id": refund.original_transaction_id,
            "refund_type": refund_type,
            "total_cents": refund.total_cents,
            "refund_method": refund.payment_method,
            "reason": reason,
            "item_count": item_count,
        },
        dedupe_key=f"refund:{refund.id}",
    )
    exception_service.check_refund_spike(refund.tenant_id, refund.location_id)
