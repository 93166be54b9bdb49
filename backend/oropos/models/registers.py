from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CashDrawerSession(db.Model):
    """
    A cashier shift on one physical drawer.

    LIFECYCLE:
    - open: ``end_time`` is NULL; monetary operations may reference it
    - closed: ``end_time`` and ``closing_cash_cents`` set; never reopened

    At most one open session per (location, drawer). The partial unique
    index backs up the check done when a shift is opened.
    """
    __tablename__ = "cash_drawer_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_drawer_sessions_open_drawer",
            "location_id",
            "drawer_id",
            unique=True,
            sqlite_where=db.text("end_time IS NULL"),
            postgresql_where=db.text("end_time IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    drawer_id = db.Column(db.String(64), nullable=False, default="main")
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_cash_cents = db.Column(db.Integer, nullable=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    employee = db.relationship("Employee", backref=db.backref("drawer_sessions", lazy=True))
    location = db.relationship("Location")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "drawer_id": self.drawer_id,
            "employee_id": self.employee_id,
            "opening_cash_cents": self.opening_cash_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "notes": self.notes,
            "is_open": self.is_open,
        }


ACTIVITY_SALE_OPEN = "SALE_OPEN"
ACTIVITY_NO_SALE = "NO_SALE"
ACTIVITY_REFUND = "REFUND"
ACTIVITY_DRAWER_COUNT = "DRAWER_COUNT"
ACTIVITY_SHIFT_OPEN = "SHIFT_OPEN"
ACTIVITY_SHIFT_CLOSE = "SHIFT_CLOSE"


class DrawerActivity(db.Model):
    """
    Append-only log of every drawer open.

    Unusual patterns (many no-sale opens) feed the owner exception list.
    """
    __tablename__ = "drawer_activities"
    __table_args__ = (
        db.Index("ix_drawer_activities_location_time", "location_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    cash_drawer_session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    reason = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=True)

    amount_cents = db.Column(db.Integer, nullable=True)
    expected_cents = db.Column(db.Integer, nullable=True)  # DRAWER_COUNT only
    variance_cents = db.Column(db.Integer, nullable=True)  # counted - expected

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    employee = db.relationship("Employee")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "reason": self.reason,
            "note": self.note,
            "amount_cents": self.amount_cents,
            "expected_cents": self.expected_cents,
            "variance_cents": self.variance_cents,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "cash_drawer_session_id": self.cash_drawer_session_id,
            "location_id": self.location_id,
            "transaction_id": self.transaction_id,
            "timestamp": to_utc_z(self.timestamp),
        }
