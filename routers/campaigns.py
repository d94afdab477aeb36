# Campaigns Router for the CollabPay pipeline
# Influencer completion marks and per-campaign completion status

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.config import get_db
from database.models import User
from schemas.marketplace import CompletionResponse
from auth.roles import Permission, UserType
from auth.decorators import require_permission, require_user_type
from services.completion_service import get_completion_service

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


# ============================================================================
# INFLUENCER ENDPOINTS
# ============================================================================

@router.post("/{campaign_id}/influencer-complete", response_model=CompletionResponse)
async def mark_influencer_complete(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_user_type(UserType.INFLUENCER))
):
    """
    Mark the current influencer's part of a campaign as completed.
    Repeating the call is a no-op success.
    """
    result = get_completion_service(db).mark_influencer_complete(campaign_id, current_user)
    return CompletionResponse(
        message=result.message,
        campaign_id=result.campaign_id,
        threshold_reached=result.threshold_reached,
        completed_count=result.completed_count,
        required_count=result.required_count,
        already_marked=result.already_marked,
    )


# ============================================================================
# SHARED ENDPOINTS
# ============================================================================

@router.get("/{campaign_id}/completion", response_model=dict)
async def get_completion_status(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.VIEW_CAMPAIGNS))
):
    """
    Per-proposal completion state of a campaign.
    Visible to the brand owner, influencers with a proposal, and admins.
    """
    return get_completion_service(db).completion_summary(campaign_id, current_user)
