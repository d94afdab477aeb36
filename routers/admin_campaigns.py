# Admin Campaigns Router for the CollabPay pipeline
# Campaign status transitions, including finalization with payouts

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.config import get_db
from database.models import User
from schemas.marketplace import (
    CampaignStatusUpdate,
    CampaignFinalizeResponse,
    CampaignResponse,
)
from auth.decorators import require_admin
from core.paystack_service import PaystackService, get_paystack_service
from services.completion_service import get_completion_service
from services.payout_service import PayoutOutcome
from routers.payouts import payout_to_response

router = APIRouter(prefix="/admin/campaigns", tags=["Admin Campaigns"])


@router.put("/{campaign_id}/status", response_model=CampaignFinalizeResponse)
def update_campaign_status(
    campaign_id: str,
    status_data: CampaignStatusUpdate,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
    current_user: User = Depends(require_admin())
):
    """
    Set a campaign's status (Admin only).

    Setting `completed` approves every completed proposal, enables reviews and
    pays out each approved proposal. Payout problems are reported per proposal
    and never fail the status change.
    """
    result = get_completion_service(db, paystack).set_campaign_status(
        campaign_id, status_data.status, current_user
    )

    payouts = [payout_to_response(p) for p in result.payouts]
    released = sum(1 for p in result.payouts if p.outcome == PayoutOutcome.RELEASED)
    if result.payouts:
        message = f"Campaign marked {result.campaign.status.value}. {released} of {len(payouts)} payout(s) released."
    else:
        message = f"Campaign status updated to {result.campaign.status.value}"

    return CampaignFinalizeResponse(
        message=message,
        campaign=CampaignResponse.model_validate(result.campaign),
        payouts=payouts,
    )
