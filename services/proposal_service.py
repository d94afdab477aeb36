# Proposal Service for the CollabPay pipeline
# Influencer bids on campaigns, brand acceptance, and brand payment start

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.roles import Permission, UserType, has_permission, get_user_type
from core.paystack_service import PaystackService, PaymentServiceError
from database.models import User
from database.marketplace_models import (
    Campaign, Proposal, CampaignStatusDB, ProposalStatusDB, PaymentStatusDB,
)
from services.exceptions import InvalidRequest, InvalidState, NotFound, PermissionDenied
from services.hooks import run_post_commit
from services.ledger_service import LedgerService
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

DUPLICATE_PROPOSAL = "You have already submitted a proposal for this campaign"


class ProposalService:
    """Tracks each influencer's proposal on a campaign through acceptance and payment."""

    def __init__(self, db: Session, paystack: Optional[PaystackService] = None):
        self.db = db
        self.ledger = LedgerService(db, paystack)

    def _get_owned_proposal(self, proposal_id: str, user: User) -> Proposal:
        if not has_permission(get_user_type(user), Permission.REVIEW_PROPOSALS):
            raise PermissionDenied("Only brands can act on proposals")

        proposal = self.db.query(Proposal).filter(Proposal.id == proposal_id).with_for_update().first()
        if not proposal:
            raise NotFound("Proposal not found")
        if proposal.campaign.brand_id != user.id and get_user_type(user) != UserType.ADMIN:
            raise PermissionDenied("You can only act on proposals for your own campaigns")
        return proposal

    def create_proposal(
        self,
        user: User,
        campaign_id: str,
        amount,
        delivery_time: str,
        message: Optional[str] = None,
    ) -> Proposal:
        if not has_permission(get_user_type(user), Permission.SUBMIT_PROPOSALS):
            raise PermissionDenied("Only influencers can submit proposals")

        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidRequest("Invalid proposal amount")
        if amount <= 0:
            raise InvalidRequest("Invalid proposal amount")
        if not delivery_time or not str(delivery_time).strip():
            raise InvalidRequest("delivery_time is required")

        campaign = self.db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if not campaign:
            raise NotFound("Campaign not found")
        if campaign.status != CampaignStatusDB.ACTIVE:
            raise InvalidState("Campaign is not accepting proposals")
        if not (Decimal(campaign.budget_min) <= amount <= Decimal(campaign.budget_max)):
            raise InvalidRequest(
                f"Proposal amount must be between {campaign.budget_min} and {campaign.budget_max}"
            )

        exists = self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign_id,
            Proposal.influencer_id == user.id,
        ).first()
        if exists:
            raise InvalidState(DUPLICATE_PROPOSAL)

        proposal = Proposal(
            campaign_id=campaign_id,
            influencer_id=user.id,
            amount=amount,
            delivery_time=str(delivery_time).strip(),
            message=message,
            status=ProposalStatusDB.PENDING,
            payment_status=PaymentStatusDB.UNPAID,
        )
        self.db.add(proposal)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidState(DUPLICATE_PROPOSAL)
        self.db.refresh(proposal)
        logger.info(f"Proposal {proposal.id} submitted on campaign {campaign_id}")

        notifications = get_notification_service(self.db)
        run_post_commit(
            self.db,
            f"proposal notification for campaign {campaign_id}",
            notifications.notify_proposal_received,
            campaign.brand_id, user.name or user.email, campaign_id, amount,
        )
        return proposal

    def accept_proposal(self, proposal_id: str, user: User) -> dict:
        """
        Accept a pending proposal, then start the brand payment.

        The acceptance commits on its own. Payment initialization is attempted
        afterwards; if the processor fails the proposal stays `unpaid` and the
        brand can retry with `start_payment`.
        """
        proposal = self._get_owned_proposal(proposal_id, user)
        if proposal.status != ProposalStatusDB.PENDING:
            raise InvalidState(f"Proposal is already {proposal.status.value}")

        proposal.status = ProposalStatusDB.ACCEPTED
        proposal.accepted_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Proposal {proposal_id} accepted")

        notifications = get_notification_service(self.db)
        run_post_commit(
            self.db,
            f"acceptance notification for proposal {proposal_id}",
            notifications.notify_proposal_decided,
            proposal.influencer_id, proposal.campaign_id, True,
        )

        authorization_url = None
        payment_error = None
        try:
            _, authorization_url = self.ledger.record_brand_payment(proposal, proposal.campaign.brand)
            self.db.commit()
        except PaymentServiceError as e:
            self.db.rollback()
            payment_error = str(e)
            logger.warning(f"Payment initialization for proposal {proposal_id} failed: {e}")

        self.db.refresh(proposal)
        return {"proposal": proposal, "authorization_url": authorization_url, "payment_error": payment_error}

    def reject_proposal(self, proposal_id: str, user: User) -> Proposal:
        proposal = self._get_owned_proposal(proposal_id, user)
        if proposal.status != ProposalStatusDB.PENDING:
            raise InvalidState(f"Proposal is already {proposal.status.value}")

        proposal.status = ProposalStatusDB.REJECTED
        proposal.rejected_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(proposal)
        logger.info(f"Proposal {proposal_id} rejected")

        notifications = get_notification_service(self.db)
        run_post_commit(
            self.db,
            f"rejection notification for proposal {proposal_id}",
            notifications.notify_proposal_decided,
            proposal.influencer_id, proposal.campaign_id, False,
        )
        return proposal

    def start_payment(self, proposal_id: str, user: User) -> dict:
        """(Re)start the brand payment for an accepted proposal."""
        proposal = self._get_owned_proposal(proposal_id, user)
        try:
            tx, authorization_url = self.ledger.record_brand_payment(proposal, proposal.campaign.brand)
            self.db.commit()
        except PaymentServiceError as e:
            self.db.rollback()
            raise InvalidState(f"Could not initialize payment: {e}")

        self.db.refresh(proposal)
        return {"proposal": proposal, "authorization_url": authorization_url, "reference": tx.payment_reference}


def get_proposal_service(db: Session, paystack: Optional[PaystackService] = None) -> ProposalService:
    """Get ProposalService instance."""
    return ProposalService(db, paystack)
