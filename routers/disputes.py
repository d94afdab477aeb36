# Disputes Router for the CollabPay pipeline
# Raising disputes, evidence/message threads, and admin decisions

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from database.config import get_db
from database.models import User
from database.marketplace_models import Dispute, Campaign, DisputeMessage
from schemas.marketplace import (
    DisputeCreate,
    DisputeResponse,
    DisputeMessageCreate,
    DisputeMessageResponse,
    DisputeStatusUpdate,
    DisputeDecision,
    EvidenceItem,
    EvidenceResponse,
    DisputeStatus,
)
from auth.roles import Permission
from auth.decorators import require_permission, require_admin
from services.dispute_service import get_dispute_service

router = APIRouter(prefix="/disputes", tags=["Disputes"])


# ============================================================================
# USER ENDPOINTS
# ============================================================================

@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def create_dispute(
    dispute_data: DisputeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.RAISE_DISPUTES))
):
    """
    Raise a dispute on a campaign.
    The campaign is frozen in `disputed` until an admin decides.
    """
    dispute = get_dispute_service(db).create_dispute(
        current_user,
        campaign_id=dispute_data.campaign_id,
        description=dispute_data.description,
        reason=dispute_data.reason,
        evidence=[e.model_dump() for e in dispute_data.evidence],
        against=dispute_data.against_user_id,
    )
    return _dispute_to_response(db, dispute)


@router.get("", response_model=dict)
async def list_disputes(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.PARTICIPATE_DISPUTES)),
    status_filter: Optional[DisputeStatus] = Query(None, alias="status", description="Filter by status"),
    campaign_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """
    List disputes visible to the current user.
    Admins see all; others see disputes they raised or are named in.
    """
    disputes, total = get_dispute_service(db).list_disputes(
        current_user,
        status=status_filter.value if status_filter else None,
        campaign_id=campaign_id,
        page=page,
        limit=limit,
    )
    return {
        "disputes": [_dispute_to_response(db, d).model_dump() for d in disputes],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit
        }
    }


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.PARTICIPATE_DISPUTES))
):
    """Get dispute details."""
    dispute = get_dispute_service(db).get_dispute(dispute_id, current_user)
    return _dispute_to_response(db, dispute)


@router.post("/{dispute_id}/evidence", response_model=DisputeResponse)
async def add_evidence(
    dispute_id: str,
    evidence: EvidenceItem,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.PARTICIPATE_DISPUTES))
):
    """Append evidence to an open dispute."""
    dispute = get_dispute_service(db).add_evidence(
        dispute_id,
        current_user,
        url=evidence.url,
        text=evidence.text,
        type=evidence.type,
        caption=evidence.caption,
    )
    return _dispute_to_response(db, dispute)


@router.post("/{dispute_id}/messages", response_model=DisputeMessageResponse, status_code=status.HTTP_201_CREATED)
async def add_message(
    dispute_id: str,
    message_data: DisputeMessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.PARTICIPATE_DISPUTES))
):
    """Post a message into an open dispute's thread."""
    entry = get_dispute_service(db).add_message(
        dispute_id, current_user, message_data.message, message_data.attachments
    )
    return _message_to_response(entry)


@router.get("/{dispute_id}/messages", response_model=dict)
async def list_messages(
    dispute_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.PARTICIPATE_DISPUTES)),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
):
    """Read a dispute thread, oldest first."""
    messages, total = get_dispute_service(db).list_messages(dispute_id, current_user, page=page, limit=limit)
    return {
        "messages": [_message_to_response(m).model_dump() for m in messages],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit
        }
    }


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@router.put("/admin/{dispute_id}/status", response_model=DisputeResponse)
async def set_review_status(
    dispute_id: str,
    status_data: DisputeStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """
    Move an open dispute between pending, needs_info and escalated (Admin only).
    """
    dispute = get_dispute_service(db).set_review_status(dispute_id, status_data.status, current_user)
    return _dispute_to_response(db, dispute)


@router.post("/admin/{dispute_id}/decision", response_model=DisputeResponse)
async def decide_dispute(
    dispute_id: str,
    decision_data: DisputeDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """
    Record the final decision on a dispute (Admin only).
    Decisions are final; the campaign moves to cancelled, active or completed.
    """
    dispute = get_dispute_service(db).decide(
        dispute_id,
        decision_data.decision,
        current_user,
        notes=decision_data.notes,
        amount=decision_data.amount,
    )
    return _dispute_to_response(db, dispute)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _dispute_to_response(db: Session, dispute: Dispute) -> DisputeResponse:
    """Convert dispute to response, enriched with campaign and party names."""
    campaign = db.query(Campaign).filter(Campaign.id == dispute.campaign_id).first()
    raiser = db.query(User).filter(User.id == dispute.raised_by).first()
    counterparty = db.query(User).filter(User.id == dispute.against).first() if dispute.against else None
    message_count = db.query(DisputeMessage).filter(DisputeMessage.dispute_id == dispute.id).count()

    return DisputeResponse(
        id=dispute.id,
        campaign_id=dispute.campaign_id,
        campaign_title=campaign.title if campaign else None,
        campaign_status=campaign.status.value if campaign else None,
        raised_by=dispute.raised_by,
        raised_by_name=raiser.name if raiser else None,
        against=dispute.against,
        against_name=counterparty.name if counterparty else None,
        role_of_raiser=dispute.role_of_raiser.value,
        reason=dispute.reason.value,
        description=dispute.description,
        status=DisputeStatus(dispute.status.value),
        decision=dispute.decision.value if dispute.decision else None,
        decision_by=dispute.decision_by,
        resolution_notes=dispute.resolution_notes,
        resolution_amount=dispute.resolution_amount,
        decided_at=dispute.decided_at,
        evidence=[
            EvidenceResponse(
                id=e.id,
                type=e.type.value,
                url=e.url,
                text=e.text,
                caption=e.caption,
                uploaded_by=e.uploaded_by,
                created_at=e.created_at,
            )
            for e in dispute.evidence
        ],
        message_count=message_count,
        created_at=dispute.created_at,
        updated_at=dispute.updated_at,
    )


def _message_to_response(message: DisputeMessage) -> DisputeMessageResponse:
    return DisputeMessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        message=message.message,
        attachments=message.attachments or [],
        is_system=message.is_system,
        created_at=message.created_at,
    )
