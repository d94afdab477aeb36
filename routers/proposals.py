# Proposals Router for the CollabPay pipeline
# Influencer proposals and the brand's accept/reject/pay actions

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database.config import get_db
from database.models import User
from schemas.marketplace import ProposalCreate, ProposalResponse, ProposalPaymentResponse
from auth.roles import Permission
from auth.decorators import require_permission
from core.paystack_service import PaystackService, get_paystack_service
from services.proposal_service import get_proposal_service

router = APIRouter(prefix="/proposals", tags=["Proposals"])


@router.post("", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
async def create_proposal(
    proposal_data: ProposalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.SUBMIT_PROPOSALS))
):
    """Submit a proposal on an active campaign (one per influencer per campaign)."""
    proposal = get_proposal_service(db).create_proposal(
        current_user,
        campaign_id=proposal_data.campaign_id,
        amount=proposal_data.amount,
        delivery_time=proposal_data.delivery_time,
        message=proposal_data.message,
    )
    return ProposalResponse.model_validate(proposal)


@router.patch("/{proposal_id}/accept", response_model=ProposalPaymentResponse)
def accept_proposal(
    proposal_id: str,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
    current_user: User = Depends(require_permission(Permission.REVIEW_PROPOSALS))
):
    """
    Accept a proposal and start the brand payment.
    If the payment cannot be started the proposal is still accepted and
    `payment_error` explains why; retry with POST /proposals/{id}/payment.
    """
    result = get_proposal_service(db, paystack).accept_proposal(proposal_id, current_user)
    return ProposalPaymentResponse(
        proposal=ProposalResponse.model_validate(result["proposal"]),
        authorization_url=result["authorization_url"],
        payment_error=result["payment_error"],
    )


@router.patch("/{proposal_id}/reject", response_model=ProposalResponse)
async def reject_proposal(
    proposal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.REVIEW_PROPOSALS))
):
    """Reject a pending proposal."""
    proposal = get_proposal_service(db).reject_proposal(proposal_id, current_user)
    return ProposalResponse.model_validate(proposal)


@router.post("/{proposal_id}/payment", response_model=ProposalPaymentResponse)
def start_payment(
    proposal_id: str,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
    current_user: User = Depends(require_permission(Permission.PAY_PROPOSALS))
):
    """(Re)start the brand payment for an accepted proposal."""
    result = get_proposal_service(db, paystack).start_payment(proposal_id, current_user)
    return ProposalPaymentResponse(
        proposal=ProposalResponse.model_validate(result["proposal"]),
        authorization_url=result["authorization_url"],
    )
