# Overview: Guarded, idempotent sale commit.

"""
Sale Commit

A sale is written in one store transaction:

1. Cash-drawer session guard.
2. Idempotency: a sale already committed with the same key (per tenant) is
   returned as-is and nothing is applied again.
3. Offline card gate: card sales captured while offline are refused unless
   the business has enabled the offline card capability.
4. Lines are priced (catalog price, or the captured price for an offline
   replay), totals computed with the location tax rate, stock decremented
   for PRODUCT lines, and a SALE_OPEN drawer activity logged for cash.

A unique-key conflict at commit means a concurrent replay won the race; the
winner is re-read and returned.
"""

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, OfflineCardNotPermitted, ValidationFailed
from ..extensions import db
from ..models import Location, LineItem, Product, Service, Tenant, Transaction
from ..models.registers import ACTIVITY_SALE_OPEN
from ..models.transactions import (
    LINE_PRODUCT,
    LINE_SERVICE,
    SOURCE_OFFLINE_REPLAY,
    SOURCE_POS,
    STATUS_COMPLETED,
)
from ..money import line_total_cents, tax_for_bps, to_decimal
from ..time_utils import parse_iso_datetime, utcnow
from . import audit_service
from .concurrency import begin_write_transaction, run_with_retry
from .register_service import log_drawer_activity
from .shift_guard import require_open_session

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("CASH", "CARD", "CREDIT_CARD", "DEBIT_CARD", "SPLIT", "OTHER")
CARD_PAYMENT_METHODS = ("CARD", "CREDIT_CARD", "DEBIT_CARD", "SPLIT")
MAX_IDEMPOTENCY_KEY_LENGTH = 128


def normalize_payment_method(value, field: str = "paymentMethod") -> str:
    method = str(value or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationFailed(f"{field} must be one of {', '.join(PAYMENT_METHODS)}")
    return method


def normalize_idempotency_key(value) -> str | None:
    if value is None:
        return None
    key = str(value).strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationFailed("Idempotency key is too long")
    return key


def parse_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationFailed(f"{field} must be a positive integer")
    try:
        number = int(value)
    except ValueError:
        raise ValidationFailed(f"{field} must be a positive integer")
    if number <= 0:
        raise ValidationFailed(f"{field} must be a positive integer")
    return number


def find_by_idempotency_key(tenant_id: int, key: str | None) -> Transaction | None:
    if not key:
        return None
    return db.session.query(Transaction).filter_by(tenant_id=tenant_id, idempotency_key=key).first()


def find_replay(tenant_id: int, key: str | None, *, refund: bool = False) -> Transaction | None:
    """Earlier transaction committed under ``key``, provided it is the same kind (sale or refund)."""
    existing = find_by_idempotency_key(tenant_id, key)
    if existing is None:
        return None
    if (existing.original_transaction_id is not None) != refund:
        raise ValidationFailed(
            "Idempotency key was already used for a different kind of transaction",
            idempotencyKey=key,
        )
    return existing


def assign_receipt_number(transaction: Transaction) -> None:
    """Needs a flushed id."""
    prefix = "RF" if transaction.original_transaction_id else "R"
    transaction.receipt_number = f"{prefix}-{transaction.location_id}-{transaction.id:06d}"


def _parse_discount(value) -> Decimal:
    try:
        discount = to_decimal(value or 0)
    except ValueError:
        raise ValidationFailed("discount must be a number")
    if discount < 0 or discount > 100:
        raise ValidationFailed("discount must be between 0 and 100")
    return discount.quantize(Decimal("0.01"))


def _get_catalog_item(model, ref_id):
    if ref_id is None or isinstance(ref_id, bool):
        return None
    try:
        return db.session.get(model, int(ref_id))
    except (TypeError, ValueError):
        return None


def _price_line(tenant_id: int, item: dict, index: int, captured_offline: bool) -> dict:
    if not isinstance(item, dict):
        raise ValidationFailed(f"items[{index}] must be an object")

    line_type = str(item.get("type") or LINE_PRODUCT).upper()
    quantity = parse_positive_int(item.get("quantity", 1), f"items[{index}].quantity")
    discount = _parse_discount(item.get("discount"))

    if line_type == LINE_PRODUCT:
        ref_id = item.get("productId")
        catalog_item = _get_catalog_item(Product, ref_id)
    elif line_type == LINE_SERVICE:
        ref_id = item.get("serviceId")
        catalog_item = _get_catalog_item(Service, ref_id)
    else:
        raise ValidationFailed(f"items[{index}].type must be PRODUCT or SERVICE")

    if catalog_item is None or catalog_item.tenant_id != tenant_id:
        raise NotFound(f"{line_type.title()} {ref_id} not found", index=index)
    if not catalog_item.is_active and not captured_offline:
        raise ValidationFailed(f"{catalog_item.name} is no longer for sale", index=index)

    price_cents = catalog_item.price_cents
    if captured_offline and item.get("price") is not None:
        price_cents = _parse_price_cents(item.get("price"), index)

    return {
        "type": line_type,
        "catalog_item": catalog_item,
        "quantity": quantity,
        "price_cents": price_cents,
        "discount": discount,
        "staff_id": item.get("staffId"),
        "total_cents": line_total_cents(price_cents, quantity, discount),
    }


def _parse_price_cents(value, index: int) -> int:
    if isinstance(value, bool):
        raise ValidationFailed(f"items[{index}].price must be in cents")
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"items[{index}].price must be in cents")
    if cents < 0:
        raise ValidationFailed(f"items[{index}].price cannot be negative")
    return cents


def commit_sale(
    tenant_id: int,
    employee_id: int,
    cash_drawer_session_id,
    payment_method,
    items,
    *,
    tip_cents=0,
    client_id: int | None = None,
    idempotency_key: str | None = None,
    captured_offline: bool = False,
    captured_at=None,
) -> tuple[Transaction, bool]:
    """
    Commit a COMPLETED sale.

    Returns (transaction, replayed). ``replayed`` is True when the
    idempotency key matched an existing sale.

    Raises:
        NoOpenShift / ShiftClosed: session guard
        OfflineCardNotPermitted: offline card sale without the capability
        ValidationFailed / NotFound: bad payload or unknown catalog item
    """
    captured_offline = bool(captured_offline)

    def _op():
        begin_write_transaction()
        session = require_open_session(cash_drawer_session_id, tenant_id)

        key = normalize_idempotency_key(idempotency_key)
        existing = find_replay(tenant_id, key)
        if existing:
            db.session.commit()
            return existing, True

        method = normalize_payment_method(payment_method)
        tenant = db.session.get(Tenant, tenant_id)
        if captured_offline and method in CARD_PAYMENT_METHODS and not tenant.offline_card_enabled:
            raise OfflineCardNotPermitted()

        if not isinstance(items, list) or not items:
            raise ValidationFailed("At least one item is required")
        priced = [_price_line(tenant_id, item, i, captured_offline) for i, item in enumerate(items)]

        tip = _parse_tip(tip_cents)
        try:
            captured = parse_iso_datetime(captured_at) if isinstance(captured_at, str) else captured_at
        except ValueError:
            raise ValidationFailed("capturedAt must be an ISO-8601 datetime")

        location = db.session.get(Location, session.location_id)
        subtotal = sum(line["total_cents"] for line in priced)
        tax = tax_for_bps(subtotal, location.tax_rate_bps if location else 0)

        transaction = Transaction(
            tenant_id=tenant_id,
            location_id=session.location_id,
            client_id=client_id,
            employee_id=employee_id,
            status=STATUS_COMPLETED,
            payment_method=method,
            subtotal_cents=subtotal,
            tax_cents=tax,
            tip_cents=tip,
            total_cents=subtotal + tax + tip,
            cash_drawer_session_id=session.id,
            idempotency_key=key,
            source=SOURCE_OFFLINE_REPLAY if captured_offline else SOURCE_POS,
            captured_at=captured,
            created_at=utcnow(),
        )
        db.session.add(transaction)
        db.session.flush()
        assign_receipt_number(transaction)

        for sequence, line in enumerate(priced, start=1):
            catalog_item = line["catalog_item"]
            db.session.add(LineItem(
                transaction_id=transaction.id,
                sequence=sequence,
                type=line["type"],
                product_id=catalog_item.id if line["type"] == LINE_PRODUCT else None,
                service_id=catalog_item.id if line["type"] == LINE_SERVICE else None,
                name=catalog_item.name,
                quantity=line["quantity"],
                price_cents=line["price_cents"],
                discount_percent=line["discount"],
                total_cents=line["total_cents"],
                staff_id=line["staff_id"],
            ))
            if line["type"] == LINE_PRODUCT:
                catalog_item.stock = (catalog_item.stock or 0) - line["quantity"]

        if method == "CASH":
            log_drawer_activity(
                session, employee_id, ACTIVITY_SALE_OPEN,
                amount_cents=transaction.total_cents,
                transaction_id=transaction.id,
            )

        db.session.commit()
        return transaction, False

    try:
        transaction, replayed = run_with_retry(_op)
    except IntegrityError:
        key = normalize_idempotency_key(idempotency_key)
        existing = find_replay(tenant_id, key)
        if existing is None:
            raise
        logger.info("Idempotent replay resolved at commit for key %s", key)
        return existing, True

    if not replayed:
        audit_service.record_event(
            tenant_id,
            "SALE_COMPLETED",
            actor_id=employee_id,
            entity_type="transaction",
            entity_id=transaction.id,
            payload={
                "total_cents": transaction.total_cents,
                "payment_method": transaction.payment_method,
                "source": transaction.source,
                "item_count": len(transaction.line_items),
            },
            dedupe_key=f"sale:{transaction.id}",
        )
    return transaction, replayed


def _parse_tip(value) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationFailed("tip must be in cents")
    try:
        tip = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("tip must be in cents")
    if tip < 0:
        raise ValidationFailed("tip cannot be negative")
    return tip


def get_transaction(tenant_id: int, transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None or transaction.tenant_id != tenant_id:
        raise NotFound("Transaction not found")
    return transaction
