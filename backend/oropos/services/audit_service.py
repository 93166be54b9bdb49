# Overview: Append-only audit trail for financial and configuration events.

"""
Audit events are recorded after the business write has committed, in their
own store transaction. Recording is best effort: a failure is logged and
rolled back, and never undoes or fails the operation being audited.

A ``dedupe_key`` makes re-emission a no-op, so an idempotent replay that
re-runs its post-commit hooks does not produce a second entry.
"""

import json
import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuditLog

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 500


def record_event(
    tenant_id: int,
    event_type: str,
    *,
    actor_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    payload: dict | None = None,
    dedupe_key: str | None = None,
) -> AuditLog | None:
    """Append an audit entry. Returns None when deduplicated or on failure."""
    try:
        if dedupe_key:
            existing = db.session.query(AuditLog.id).filter_by(dedupe_key=dedupe_key).first()
            if existing:
                return None

        entry = AuditLog(
            tenant_id=tenant_id,
            actor_id=actor_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=json.dumps(payload, default=str) if payload is not None else None,
            dedupe_key=dedupe_key,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except IntegrityError:
        # Lost a race on dedupe_key: the event is already recorded.
        db.session.rollback()
        return None
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record audit event %s for tenant %s", event_type, tenant_id)
        return None


def list_events(
    tenant_id: int,
    event_type: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)
    if event_type:
        query = query.filter(AuditLog.event_type == event_type)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == entity_id)

    limit = max(1, min(int(limit), MAX_LIST_LIMIT))
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
