# Admin Payouts Router for the CollabPay pipeline
# Manual single-proposal payouts and ledger lookup

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from database.config import get_db
from database.models import User
from schemas.marketplace import PayoutResultResponse, TransactionResponse
from auth.roles import Permission
from auth.decorators import require_permission
from core.paystack_service import PaystackService, get_paystack_service
from services.ledger_service import get_ledger_service
from services.payout_service import PayoutPolicy, PayoutResult, get_payout_service

router = APIRouter(prefix="/admin/payouts", tags=["Admin Payouts"])


@router.post("/{proposal_id}", response_model=PayoutResultResponse)
def trigger_payout(
    proposal_id: str,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
    current_user: User = Depends(require_permission(Permission.TRIGGER_PAYOUTS))
):
    """
    Pay out one proposal (Admin only).

    Idempotent: a proposal that already has a payout returns `already_paid`.
    A payout left pending by finalization is settled in place. Any reason the
    transfer cannot be made is returned as a 400.
    """
    result = get_payout_service(db, paystack).execute_payout(proposal_id, PayoutPolicy.RAISE)
    return payout_to_response(result)


@router.get("/transactions", response_model=dict)
async def list_transactions(
    campaign_ids: Optional[List[str]] = Query(None),
    proposal_ids: Optional[List[str]] = Query(None),
    is_payout: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.VIEW_LEDGER))
):
    """
    All transactions for a set of campaigns and/or proposals (Admin only).
    """
    ledger = get_ledger_service(db)
    transactions = ledger.transactions_for(campaign_ids, proposal_ids, is_payout)
    return {
        "transactions": [TransactionResponse.model_validate(t).model_dump() for t in transactions],
        "total_app_fee": str(sum((ledger.effective_app_fee(t) for t in transactions if not t.is_payout), 0)),
        "total": len(transactions),
    }


def payout_to_response(result: PayoutResult) -> PayoutResultResponse:
    """Convert a payout attempt to response."""
    return PayoutResultResponse(
        proposal_id=result.proposal_id,
        outcome=result.outcome.value,
        transaction_id=result.transaction_id,
        app_fee=result.app_fee,
        influencer_amount=result.influencer_amount,
        transfer_code=result.transfer_code,
        reason=result.reason,
    )
