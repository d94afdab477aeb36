# Payout Service for the CollabPay pipeline
# Fee split + Paystack transfer + payout transaction, at most once per proposal

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config.app_config import DEFAULT_CURRENCY
from core.paystack_service import PaystackService, PaymentServiceError
from database.models import User
from database.marketplace_models import (
    Proposal, Transaction, CampaignStatusDB, PaymentStatusDB,
    TransactionTypeDB, TransactionStatusDB,
)
from services.exceptions import InvalidState, NotFound, PayoutFailed
from services.fees import compute_fee_split, round2  # noqa: F401  re-exported
from services.hooks import run_post_commit
from services.ledger_service import LedgerService
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)


class PayoutPolicy(str, Enum):
    """What to do when a payout cannot be issued."""
    SKIP = "skip"    # batch: report it in the result
    RAISE = "raise"  # manual: raise a 400 for the admin


class PayoutOutcome(str, Enum):
    RELEASED = "released"          # transfer issued, payout approved
    PENDING = "pending"            # payout recorded without a transfer
    ALREADY_PAID = "already_paid"  # payout existed; nothing done
    SKIPPED = "skipped"            # preconditions not met; nothing written
    FAILED = "failed"              # transfer failed; nothing written, retryable


@dataclass
class PayoutResult:
    proposal_id: str
    outcome: PayoutOutcome
    transaction_id: Optional[str] = None
    app_fee: Optional[Decimal] = None
    influencer_amount: Optional[Decimal] = None
    transfer_code: Optional[str] = None
    reason: Optional[str] = None


def payout_reference(proposal_id: str) -> str:
    """Processor idempotency reference for a proposal's payout transfer."""
    return f"payout-{proposal_id}"


class PayoutService:
    """
    Single payout core shared by campaign finalization (SKIP) and the
    admin's manual payout (RAISE).
    """

    def __init__(self, db: Session, paystack: PaystackService):
        self.db = db
        self.paystack = paystack
        self.ledger = LedgerService(db, paystack)

    def execute_payout(self, proposal_id: str, policy: PayoutPolicy = PayoutPolicy.SKIP) -> PayoutResult:
        proposal = (
            self.db.query(Proposal)
            .filter(Proposal.id == proposal_id)
            .with_for_update()
            .first()
        )
        if not proposal:
            return self._stop(policy, proposal_id, "Proposal not found", NotFound)

        # Idempotency anchor, read under the row lock right before any transfer
        existing = None
        if proposal.payout_transaction_id:
            existing = self.ledger.get_transaction(proposal.payout_transaction_id)
            settling = (
                policy == PayoutPolicy.RAISE
                and existing is not None
                and existing.status == TransactionStatusDB.PENDING
                and not existing.transfer_code
            )
            if not settling:
                transaction_id = proposal.payout_transaction_id
                self.db.rollback()
                logger.info(f"Payout for proposal {proposal_id} already recorded ({transaction_id})")
                return PayoutResult(proposal_id, PayoutOutcome.ALREADY_PAID, transaction_id=transaction_id)

        campaign = proposal.campaign
        if campaign.status != CampaignStatusDB.COMPLETED:
            return self._stop(policy, proposal_id, "Campaign must be completed before payout")

        brand_tx = self.ledger.get_transaction(proposal.brand_transaction_id)
        problem = self._source_problem(proposal, brand_tx)
        if problem:
            return self._stop(policy, proposal_id, problem)

        if existing is not None:
            app_fee, influencer_amount = Decimal(existing.app_fee), Decimal(existing.influencer_amount)
        else:
            app_fee, influencer_amount = compute_fee_split(brand_tx.amount)

        influencer = self.db.query(User).filter(User.id == proposal.influencer_id).first()
        recipient_code = influencer.paystack_recipient_code if influencer else None
        problem = self._destination_problem(recipient_code)
        if problem:
            if policy == PayoutPolicy.RAISE:
                self.db.rollback()
                raise PayoutFailed(problem)
            logger.warning(f"Payout for proposal {proposal_id} left pending: {problem}")
            return self._persist(proposal, brand_tx, app_fee, influencer_amount, None, existing, reason=problem)

        try:
            transfer_code = self.paystack.create_transfer(
                amount=influencer_amount,
                currency=brand_tx.currency or DEFAULT_CURRENCY,
                recipient_code=recipient_code,
                reference=payout_reference(proposal.id),
                reason=f"Payout for {campaign.title}",
                funding_reference=brand_tx.charge_reference,
                metadata={
                    "proposal_id": proposal.id,
                    "campaign_id": proposal.campaign_id,
                    "source_transaction_id": brand_tx.id,
                },
            )
        except PaymentServiceError as e:
            self.db.rollback()
            logger.error(f"Payout transfer for proposal {proposal_id} failed: {e}")
            if policy == PayoutPolicy.RAISE:
                raise PayoutFailed(f"Transfer failed: {e}")
            return PayoutResult(proposal_id, PayoutOutcome.FAILED, reason=str(e))

        return self._persist(proposal, brand_tx, app_fee, influencer_amount, transfer_code, existing)

    def run_batch(self, proposal_ids: Iterable[str]) -> List[PayoutResult]:
        """Pay out several proposals; one proposal's failure never stops the rest."""
        results = []
        for proposal_id in proposal_ids:
            try:
                results.append(self.execute_payout(proposal_id, PayoutPolicy.SKIP))
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception(f"Payout for proposal {proposal_id} aborted")
                results.append(PayoutResult(proposal_id, PayoutOutcome.FAILED, reason=str(e)))
        return results

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _source_problem(proposal: Proposal, brand_tx: Optional[Transaction]) -> Optional[str]:
        if not (proposal.influencer_marked_complete or proposal.admin_approved_completion):
            return "Influencer has not completed this proposal"
        if brand_tx is None:
            return "Proposal has no brand payment"
        if proposal.payment_status != PaymentStatusDB.PAID:
            return "Brand payment has not been completed"
        if brand_tx.status != TransactionStatusDB.APPROVED:
            return "Brand payment is not approved"
        if brand_tx.is_payout or not brand_tx.amount or Decimal(brand_tx.amount) <= 0:
            return "Brand payment amount is invalid"
        return None

    def _destination_problem(self, recipient_code: Optional[str]) -> Optional[str]:
        if not recipient_code:
            return "Influencer has not set up a payout account"
        try:
            capable = self.paystack.is_payout_capable(recipient_code)
        except PaymentServiceError as e:
            return f"Could not verify the influencer's payout account: {e}"
        if not capable:
            return "Influencer payout account is not payout-capable"
        return None

    def _stop(self, policy: PayoutPolicy, proposal_id: str, reason: str, error=InvalidState) -> PayoutResult:
        self.db.rollback()
        if policy == PayoutPolicy.RAISE:
            raise error(reason)
        logger.info(f"Payout for proposal {proposal_id} skipped: {reason}")
        return PayoutResult(proposal_id, PayoutOutcome.SKIPPED, reason=reason)

    def _persist(
        self,
        proposal: Proposal,
        brand_tx: Transaction,
        app_fee: Decimal,
        influencer_amount: Decimal,
        transfer_code: Optional[str],
        existing: Optional[Transaction],
        reason: Optional[str] = None,
    ) -> PayoutResult:
        proposal_id = proposal.id
        campaign_id = proposal.campaign_id
        influencer_id = proposal.influencer_id
        currency = brand_tx.currency or DEFAULT_CURRENCY
        status = TransactionStatusDB.APPROVED if transfer_code else TransactionStatusDB.PENDING

        try:
            if existing is not None:
                tx = self.ledger.update_transaction(
                    existing.id, status=status, transfer_code=transfer_code
                )
            else:
                tx = self.ledger.create_transaction(
                    user_id=influencer_id,
                    campaign_id=campaign_id,
                    proposal_id=proposal_id,
                    amount=influencer_amount,
                    currency=currency,
                    transaction_type=TransactionTypeDB.CREDIT,
                    status=status,
                    is_payout=True,
                    app_fee=app_fee,
                    influencer_amount=influencer_amount,
                    source_transaction_id=brand_tx.id,
                    transfer_code=transfer_code,
                    description=f"Payout for proposal {proposal_id}",
                )
                proposal.payout_transaction_id = tx.id

            if transfer_code:
                proposal.payment_status = PaymentStatusDB.RELEASED
                proposal.payout_released_at = datetime.utcnow()
                if not proposal.admin_approved_completion:
                    proposal.admin_approved_completion = True
                    proposal.admin_completion_approved_at = proposal.payout_released_at
            transaction_id = tx.id
            self.db.commit()
        except IntegrityError:
            # Concurrent payout for the same proposal won the unique index
            self.db.rollback()
            logger.warning(f"Concurrent payout detected for proposal {proposal_id}")
            return PayoutResult(proposal_id, PayoutOutcome.ALREADY_PAID)

        outcome = PayoutOutcome.RELEASED if transfer_code else PayoutOutcome.PENDING
        logger.info(f"Payout for proposal {proposal_id}: {outcome.value} ({influencer_amount} net, {app_fee} fee)")

        notifications = get_notification_service(self.db)
        run_post_commit(
            self.db,
            f"payout notification for proposal {proposal_id}",
            notifications.notify_payout,
            influencer_id, campaign_id, influencer_amount, bool(transfer_code), currency,
        )

        return PayoutResult(
            proposal_id,
            outcome,
            transaction_id=transaction_id,
            app_fee=app_fee,
            influencer_amount=influencer_amount,
            transfer_code=transfer_code,
            reason=reason,
        )


def get_payout_service(db: Session, paystack: PaystackService) -> PayoutService:
    """Get PayoutService instance."""
    return PayoutService(db, paystack)
