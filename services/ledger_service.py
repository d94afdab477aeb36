# Ledger Service for the CollabPay pipeline
# Transaction bookkeeping: brand payments (debits) and influencer payouts (credits)

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from config.app_config import DEFAULT_CURRENCY
from core.paystack_service import PaystackService, PaymentServiceError, to_subunit
from database.models import User
from database.marketplace_models import (
    Proposal, Transaction, ProposalStatusDB, PaymentStatusDB,
    TransactionTypeDB, TransactionStatusDB,
)
from services.exceptions import InvalidRequest, InvalidState, NotFound
from services.fees import compute_fee_split
from services.hooks import run_post_commit
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Create/find/update transactions and drive the brand-payment lifecycle.

    Write helpers only flush; the public payment operations commit.
    """

    def __init__(self, db: Session, paystack: Optional[PaystackService] = None):
        self.db = db
        self.paystack = paystack

    # =========================================================================
    # STORE PRIMITIVES
    # =========================================================================

    def create_transaction(self, **fields) -> Transaction:
        fields.setdefault("currency", DEFAULT_CURRENCY)
        tx = Transaction(**fields)
        self.db.add(tx)
        self.db.flush()
        return tx

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        if not transaction_id:
            return None
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()

    def find_by_reference(self, reference: str) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.payment_reference == reference).first()

    def update_transaction(self, transaction_id: str, **fields) -> Transaction:
        tx = self.get_transaction(transaction_id)
        if not tx:
            raise NotFound("Transaction not found")
        for key, value in fields.items():
            setattr(tx, key, value)
        self.db.flush()
        return tx

    def transactions_for(
        self,
        campaign_ids: Optional[Iterable[str]] = None,
        proposal_ids: Optional[Iterable[str]] = None,
        is_payout: Optional[bool] = None,
    ) -> List[Transaction]:
        """All transactions linked to any of the given campaigns or proposals."""
        campaign_ids = list(campaign_ids or [])
        proposal_ids = list(proposal_ids or [])
        if not campaign_ids and not proposal_ids:
            return []

        clauses = []
        if campaign_ids:
            clauses.append(Transaction.campaign_id.in_(campaign_ids))
        if proposal_ids:
            clauses.append(Transaction.proposal_id.in_(proposal_ids))

        query = self.db.query(Transaction).filter(or_(*clauses))
        if is_payout is not None:
            query = query.filter(Transaction.is_payout == is_payout)
        return query.order_by(Transaction.created_at.desc()).all()

    @staticmethod
    def effective_app_fee(tx: Transaction) -> Decimal:
        """Stored platform fee, recomputed from the amount when it was never filled in."""
        if tx.app_fee and Decimal(tx.app_fee) != 0:
            return Decimal(tx.app_fee)
        if tx.is_payout:
            # Payout rows store the net amount; the fee was taken off the source
            source = tx.source_transaction
            return compute_fee_split(source.amount)[0] if source else Decimal("0.00")
        return compute_fee_split(tx.amount)[0]

    # =========================================================================
    # BRAND PAYMENTS
    # =========================================================================

    def record_brand_payment(self, proposal: Proposal, brand: User) -> Tuple[Transaction, str]:
        """
        Initialize the brand's payment for an accepted proposal.

        The processor is called before anything is written, so a processor
        failure leaves the proposal `unpaid` and retryable.

        Returns:
            (pending debit transaction, authorization_url)
        """
        if proposal.status != ProposalStatusDB.ACCEPTED:
            raise InvalidState("Proposal must be accepted before payment")
        if proposal.payment_status in (PaymentStatusDB.PAID, PaymentStatusDB.RELEASED):
            raise InvalidState("Proposal has already been paid")
        if not proposal.amount or Decimal(proposal.amount) <= 0:
            raise InvalidRequest("Invalid proposal amount")

        campaign = proposal.campaign
        currency = campaign.currency or DEFAULT_CURRENCY
        reference = f"pay-{proposal.id}-{uuid.uuid4().hex[:8]}"

        init = self.paystack.initialize_transaction(
            email=brand.email,
            amount=proposal.amount,
            reference=reference,
            currency=currency,
            metadata={
                "proposal_id": proposal.id,
                "campaign_id": proposal.campaign_id,
                "influencer_id": proposal.influencer_id,
            },
        )

        # An abandoned earlier attempt is superseded by this one
        previous = self.get_transaction(proposal.brand_transaction_id)
        if previous and previous.status == TransactionStatusDB.PENDING:
            previous.status = TransactionStatusDB.REJECTED

        app_fee, influencer_amount = compute_fee_split(proposal.amount)
        tx = self.create_transaction(
            user_id=brand.id,
            campaign_id=proposal.campaign_id,
            proposal_id=proposal.id,
            amount=Decimal(proposal.amount),
            currency=currency,
            transaction_type=TransactionTypeDB.DEBIT,
            status=TransactionStatusDB.PENDING,
            is_payout=False,
            app_fee=app_fee,
            influencer_amount=influencer_amount,
            payment_reference=init.get("reference") or reference,
            description=f"Payment for proposal on {campaign.title}",
        )

        proposal.brand_transaction_id = tx.id
        proposal.payment_reference = tx.payment_reference
        proposal.payment_status = PaymentStatusDB.PENDING
        self.db.flush()

        logger.info(f"Brand payment {tx.payment_reference} initialized for proposal {proposal.id}")
        return tx, init.get("authorization_url")

    def confirm_brand_payment(self, reference: str) -> Transaction:
        """
        Verify a brand payment with the processor and settle it.

        Success approves the debit and marks the proposal `paid`; a failed
        charge rejects it and marks the proposal `failed`. Confirming an
        already-settled payment is a no-op, except that a checkout superseded
        by a restart is still re-verified: if the brand completed it after
        all, it becomes the proposal's payment and the newer attempt is
        rejected.
        """
        if not reference:
            raise InvalidRequest("reference is required")

        tx = self.find_by_reference(reference)
        if not tx or tx.is_payout:
            raise NotFound("Payment not found")

        proposal = (
            self.db.query(Proposal)
            .filter(Proposal.id == tx.proposal_id)
            .with_for_update()
            .first()
        )
        superseded = self._is_superseded(tx, proposal)
        if tx.status != TransactionStatusDB.PENDING and not superseded:
            self.db.rollback()
            return tx

        try:
            verification = self.paystack.verify_transaction(reference)
        except PaymentServiceError as e:
            self.db.rollback()
            raise InvalidState(f"Could not verify payment: {e}")

        charge_status = verification.get("status")
        if charge_status not in ("success", "failed", "abandoned", "reversed"):
            # Still processing on the processor side
            self.db.rollback()
            return tx

        # A successful charge for less than the proposal amount counts as failed
        paid = charge_status == "success" and int(verification.get("amount") or 0) >= to_subunit(tx.amount)
        if superseded and not paid:
            self.db.rollback()
            return tx

        if paid:
            tx.status = TransactionStatusDB.APPROVED
            tx.charge_reference = str(verification.get("id") or "")
            if proposal and proposal.brand_transaction_id != tx.id:
                self._repoint_payment(proposal, tx)
            if proposal:
                proposal.payment_status = PaymentStatusDB.PAID
            logger.info(f"Brand payment {reference} approved")
        else:
            tx.status = TransactionStatusDB.REJECTED
            if proposal and proposal.brand_transaction_id == tx.id:
                proposal.payment_status = PaymentStatusDB.FAILED
            logger.warning(f"Brand payment {reference} failed: {verification.get('gateway_response')}")

        tx.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(tx)

        if paid and proposal:
            notifications = get_notification_service(self.db)
            run_post_commit(
                self.db,
                f"payment notification for proposal {proposal.id}",
                notifications.notify_payment_received,
                proposal.influencer_id, proposal.campaign_id, Decimal(tx.amount),
            )
        return tx

    @staticmethod
    def _is_superseded(tx: Transaction, proposal: Optional[Proposal]) -> bool:
        """An earlier checkout rejected by a restart while the proposal is still unpaid."""
        return (
            tx.status == TransactionStatusDB.REJECTED
            and proposal is not None
            and proposal.brand_transaction_id != tx.id
            and proposal.payment_status in (
                PaymentStatusDB.UNPAID, PaymentStatusDB.PENDING, PaymentStatusDB.FAILED,
            )
        )

    def _repoint_payment(self, proposal: Proposal, tx: Transaction):
        current = self.get_transaction(proposal.brand_transaction_id)
        if current and current.status == TransactionStatusDB.PENDING:
            current.status = TransactionStatusDB.REJECTED
        proposal.brand_transaction_id = tx.id
        proposal.payment_reference = tx.payment_reference
        logger.warning(f"Proposal {proposal.id} settled by earlier checkout {tx.payment_reference}")


def get_ledger_service(db: Session, paystack: Optional[PaystackService] = None) -> LedgerService:
    """Get LedgerService instance."""
    return LedgerService(db, paystack)
