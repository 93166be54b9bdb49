from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

STATUS_COMPLETED = "COMPLETED"
STATUS_VOIDED = "VOIDED"
STATUS_CANCELLED = "CANCELLED"
STATUS_REFUNDED = "REFUNDED"
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"

SOURCE_POS = "POS"
SOURCE_OFFLINE_REPLAY = "OFFLINE_REPLAY"

LINE_PRODUCT = "PRODUCT"
LINE_SERVICE = "SERVICE"


class Transaction(db.Model):
    """
    Immutable-once-completed financial record.

    Sales are COMPLETED rows with positive amounts. A refund is a separate
    REFUNDED row pointing at its original through ``original_transaction_id``
    with non-positive amounts. Rows are never deleted: corrections are new
    rows.

    ``idempotency_key`` is unique per tenant so a replayed commit (offline
    queue drain, client retry) resolves to the row that already exists.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_transactions_tenant_idempotency"),
        db.Index("ix_transactions_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_COMPLETED, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    original_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    cash_drawer_session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=True, index=True)

    idempotency_key = db.Column(db.String(128), nullable=True)
    receipt_number = db.Column(db.String(64), nullable=True, index=True)
    source = db.Column(db.String(16), nullable=False, default=SOURCE_POS)
    captured_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    line_items = db.relationship(
        "LineItem",
        backref="transaction",
        lazy=True,
        order_by="LineItem.sequence",
    )
    original_transaction = db.relationship("Transaction", remote_side=[id], backref=db.backref("refunds", lazy=True))
    employee = db.relationship("Employee")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refund(self) -> bool:
        return self.original_transaction_id is not None

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "client_id": self.client_id,
            "employee_id": self.employee_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "tip_cents": self.tip_cents,
            "total_cents": self.total_cents,
            "original_transaction_id": self.original_transaction_id,
            "cash_drawer_session_id": self.cash_drawer_session_id,
            "idempotency_key": self.idempotency_key,
            "receipt_number": self.receipt_number,
            "source": self.source,
            "captured_at": to_utc_z(self.captured_at) if self.captured_at else None,
            "refund_reason": self.refund_reason,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["line_items"] = [line.to_dict() for line in self.line_items]
        return data


class LineItem(db.Model):
    """
    One line of a transaction. Never mutated after creation.

    total_cents = price_cents * quantity * (1 - discount_percent / 100),
    rounded half-up; refund lines carry negative quantity and total and
    point at the line they refund through ``refunds_line_item_id``.
    """
    __tablename__ = "line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False, default=1)

    type = db.Column(db.String(16), nullable=False, default=LINE_PRODUCT)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    staff_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    refunds_line_item_id = db.Column(db.Integer, db.ForeignKey("line_items.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "sequence": self.sequence,
            "type": self.type,
            "product_id": self.product_id,
            "service_id": self.service_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "discount_percent": float(self.discount_percent or 0),
            "total_cents": self.total_cents,
            "staff_id": self.staff_id,
            "refunds_line_item_id": self.refunds_line_item_id,
        }
