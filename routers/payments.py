# Payments Router for the CollabPay pipeline
# Brand payment confirmation after checkout, and the Paystack webhook

import json
import logging

from fastapi import APIRouter, Depends, Request, HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from database.config import get_db
from database.models import User
from schemas.marketplace import PaymentConfirm, TransactionResponse
from auth.roles import Permission
from auth.decorators import require_permission
from core.paystack_service import (
    PaystackConfig, PaystackService, PaystackWebhookHandler, get_paystack_service,
)
from services.exceptions import PipelineError
from services.ledger_service import get_ledger_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/confirm", response_model=TransactionResponse)
def confirm_payment(
    confirm_data: PaymentConfirm,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
    current_user: User = Depends(require_permission(Permission.PAY_PROPOSALS))
):
    """
    Confirm a brand payment by reference after the Paystack checkout.
    The charge is re-verified with Paystack before the proposal is marked paid.
    """
    tx = get_ledger_service(db, paystack).confirm_brand_payment(confirm_data.reference)
    return TransactionResponse.model_validate(tx)


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    paystack: PaystackService = Depends(get_paystack_service),
):
    """
    Paystack webhook. Only `charge.success` settles anything; the charge is
    re-verified rather than trusting the payload.
    """
    payload = await request.body()
    signature = request.headers.get("x-paystack-signature", "")
    if not PaystackWebhookHandler.verify_webhook(payload, signature, PaystackConfig.SECRET_KEY):
        raise HTTPException(status_code=400, detail="Invalid signature")

    event = json.loads(payload or b"{}")
    if event.get("event") != "charge.success":
        return {"status": "ignored"}

    charge = PaystackWebhookHandler.handle_charge_success(event.get("data") or {})
    try:
        # Paystack verify is a blocking call
        tx = await run_in_threadpool(get_ledger_service(db, paystack).confirm_brand_payment, charge["reference"])
    except PipelineError as e:
        # Charges that are not proposal payments are acknowledged and dropped
        logger.warning(f"Webhook charge {charge['reference']} not settled: {e.detail}")
        return {"status": "ignored"}

    return {"status": "ok", "transaction_status": tx.status.value}
