from __future__ import annotations

import json

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Append-only event record.

    Rows are written once and never changed: ORM updates and deletes raise.
    ``dedupe_key`` (unique when set) makes re-emitting the same event a no-op.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON

    dedupe_key = db.Column(db.String(191), nullable=True, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": json.loads(self.payload) if self.payload else None,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise ValueError("Audit log entries are append-only and cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise ValueError("Audit log entries are append-only and cannot be deleted")


SEVERITY_INFO = "INFO"
SEVERITY_WARNING = "WARNING"
SEVERITY_CRITICAL = "CRITICAL"
SEVERITIES = (SEVERITY_CRITICAL, SEVERITY_WARNING, SEVERITY_INFO)

EXCEPTION_ACTIVE = "ACTIVE"
EXCEPTION_ACKNOWLEDGED = "ACKNOWLEDGED"
EXCEPTION_RESOLVED = "RESOLVED"


class StoreException(db.Model):
    """Something the owner should look at (no-sale spike, refund spike...)."""
    __tablename__ = "store_exceptions"
    __table_args__ = (
        db.Index("ix_store_exceptions_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    type = db.Column(db.String(64), nullable=False)
    severity = db.Column(db.String(16), nullable=False, default=SEVERITY_WARNING)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=EXCEPTION_ACTIVE)

    occurrence_count = db.Column(db.Integer, nullable=False, default=1)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    acknowledged_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "occurrence_count": self.occurrence_count,
            "last_seen_at": to_utc_z(self.last_seen_at),
            "acknowledged_by_id": self.acknowledged_by_id,
            "acknowledged_at": to_utc_z(self.acknowledged_at) if self.acknowledged_at else None,
            "resolved_by_id": self.resolved_by_id,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolution_note": self.resolution_note,
            "created_at": to_utc_z(self.created_at),
            "is_realtime": False,
        }


CONSULTATION_REASONS = ("SETUP_HELP", "QUESTIONS", "TECHNICAL_ISSUE", "OTHER")


class ConsultationRequest(db.Model):
    __tablename__ = "consultation_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    requested_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)

    reason = db.Column(db.String(32), nullable=False)
    details = db.Column(db.Text, nullable=True)
    preferred_time = db.Column(db.String(64), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "requested_by_id": self.requested_by_id,
            "reason": self.reason,
            "details": self.details,
            "preferred_time": self.preferred_time,
            "contact_phone": self.contact_phone,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
