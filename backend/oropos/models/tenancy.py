from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Tenant(db.Model):
    """
    Business account: the tenant boundary.

    Every location, employee, product and transaction belongs to exactly one
    tenant. The offline card capability lives here because it is a
    business-level decision: card payments taken while the register is
    disconnected are only allowed once the owner has accepted the offline
    terms AND acknowledged the chargeback risk.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Offline card capability (both must be set)
    offline_terms_accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    offline_risk_acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    offline_terms_accepted_by_id = db.Column(db.Integer, nullable=True)
    offline_terms_version = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    @property
    def offline_card_enabled(self) -> bool:
        return bool(self.offline_terms_accepted_at and self.offline_risk_acknowledged_at)

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "offline_card_enabled": self.offline_card_enabled,
            "created_at": to_utc_z(self.created_at),
        }


class Location(db.Model):
    """A store front. Tax is charged at the location's rate (basis points)."""
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_locations_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # 825 = 8.25%
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "tax_rate_bps": self.tax_rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
