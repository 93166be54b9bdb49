# Overview: Setup/support consultation requests from a business.

from ..errors import ValidationFailed
from ..extensions import db
from ..models import ConsultationRequest
from ..models.audit import CONSULTATION_REASONS


def create_request(
    tenant_id: int,
    employee_id: int,
    reason,
    details: str | None = None,
    preferred_time: str | None = None,
    contact_phone: str | None = None,
) -> tuple[ConsultationRequest, bool]:
    """
    Returns (request, created). A business has at most one PENDING request
    per reason; asking again returns the existing one.
    """
    reason = str(reason or "").strip().upper()
    if reason not in CONSULTATION_REASONS:
        raise ValidationFailed(f"reason must be one of {', '.join(CONSULTATION_REASONS)}")

    existing = db.session.query(ConsultationRequest).filter_by(
        tenant_id=tenant_id, reason=reason, status="PENDING"
    ).first()
    if existing:
        return existing, False

    request_row = ConsultationRequest(
        tenant_id=tenant_id,
        requested_by_id=employee_id,
        reason=reason,
        details=details,
        preferred_time=preferred_time,
        contact_phone=contact_phone,
        status="PENDING",
    )
    db.session.add(request_row)
    db.session.commit()
    return request_row, True


def list_requests(tenant_id: int) -> list[ConsultationRequest]:
    return db.session.query(ConsultationRequest).filter_by(
        tenant_id=tenant_id
    ).order_by(ConsultationRequest.created_at.desc(), ConsultationRequest.id.desc()).all()
