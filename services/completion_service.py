# Completion Service for the CollabPay pipeline
# Per-influencer completion marks, the campaign threshold, and admin finalization

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from auth.roles import Permission, has_permission, get_user_type
from config.app_config import COMPLETION_REQUIRES_ACCEPTED, MAX_INFLUENCERS_LIMIT
from core.paystack_service import PaystackService
from database.models import User
from database.marketplace_models import (
    Campaign, Proposal, CampaignStatusDB, ProposalStatusDB,
)
from services.chat_service import get_chat_service
from services.exceptions import InvalidRequest, InvalidState, NotFound, PermissionDenied
from services.hooks import run_post_commit
from services.notification_service import get_notification_service
from services.payout_service import PayoutResult, PayoutService

logger = logging.getLogger(__name__)

# Statuses an admin may set directly; `disputed` is owned by the dispute flow
ADMIN_SETTABLE_STATUSES = (
    CampaignStatusDB.PENDING,
    CampaignStatusDB.ACTIVE,
    CampaignStatusDB.COMPLETED,
    CampaignStatusDB.CANCELLED,
)


@dataclass
class CompletionResult:
    campaign_id: str
    threshold_reached: bool
    completed_count: int
    required_count: int
    already_marked: bool = False

    @property
    def message(self) -> str:
        if self.threshold_reached:
            return "All influencers have completed this campaign. Awaiting admin approval."
        remaining = self.required_count - self.completed_count
        return f"Marked as completed. Waiting for {remaining} more influencer(s) to complete."


@dataclass
class FinalizeResult:
    campaign: Campaign
    payouts: List[PayoutResult] = field(default_factory=list)


class CompletionService:
    """
    Translates influencer self-reports into the campaign completion signal
    and runs the admin's status transition, including payouts on completion.
    """

    def __init__(self, db: Session, paystack: Optional[PaystackService] = None):
        self.db = db
        self.paystack = paystack
        self.chat = get_chat_service(db)

    def _get_campaign(self, campaign_id: str, lock: bool = False) -> Campaign:
        query = self.db.query(Campaign).filter(Campaign.id == campaign_id)
        if lock:
            query = query.with_for_update()
        campaign = query.first()
        if not campaign:
            raise NotFound("Campaign not found")
        return campaign

    def _counted_proposals(self, campaign_id: str):
        """Proposals that count toward the completion threshold."""
        query = self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign_id,
            Proposal.influencer_marked_complete == True,  # noqa: E712
        )
        if COMPLETION_REQUIRES_ACCEPTED:
            query = query.filter(Proposal.status == ProposalStatusDB.ACCEPTED)
        return query

    def completed_count(self, campaign_id: str) -> int:
        return self._counted_proposals(campaign_id).count()

    @staticmethod
    def required_count(campaign: Campaign) -> int:
        return min(max(campaign.max_influencers or 1, 1), MAX_INFLUENCERS_LIMIT)

    # =========================================================================
    # INFLUENCER COMPLETION
    # =========================================================================

    def mark_influencer_complete(self, campaign_id: str, user: User) -> CompletionResult:
        if not has_permission(get_user_type(user), Permission.MARK_COMPLETION):
            raise PermissionDenied("Only influencers can mark a campaign as completed")

        campaign = self._get_campaign(campaign_id)
        if campaign.status != CampaignStatusDB.ACTIVE:
            raise InvalidState("Campaign is not active")

        query = self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign_id,
            Proposal.influencer_id == user.id,
        )
        if COMPLETION_REQUIRES_ACCEPTED:
            query = query.filter(Proposal.status == ProposalStatusDB.ACCEPTED)
        proposal = query.with_for_update().first()
        if not proposal:
            raise PermissionDenied("You do not have an accepted proposal for this campaign")

        already_marked = bool(proposal.influencer_marked_complete)
        if not already_marked:
            proposal.influencer_marked_complete = True
            proposal.influencer_completed_at = datetime.utcnow()
            self.db.commit()
            logger.info(f"Influencer {user.id} marked campaign {campaign_id} complete")
        else:
            self.db.rollback()

        # Recount from the committed proposal rows
        completed = self.completed_count(campaign_id)
        required = self.required_count(campaign)
        threshold_reached = completed >= required

        if threshold_reached:
            campaign = self._get_campaign(campaign_id, lock=True)
            if not campaign.influencer_completed:
                campaign.influencer_completed = True
                campaign.influencer_completed_at = datetime.utcnow()
                self.db.commit()
                logger.info(f"Campaign {campaign_id} reached its completion threshold ({completed}/{required})")
            else:
                self.db.rollback()

        if not already_marked:
            notifications = get_notification_service(self.db)
            run_post_commit(
                self.db,
                f"completion notification for campaign {campaign_id}",
                notifications.notify_completion_marked,
                campaign.brand_id, user.name or user.email, campaign_id, completed, required,
            )

        return CompletionResult(
            campaign_id=campaign_id,
            threshold_reached=threshold_reached,
            completed_count=completed,
            required_count=required,
            already_marked=already_marked,
        )

    def completion_summary(self, campaign_id: str, user: User) -> dict:
        """Per-proposal completion state, visible to the brand owner, its influencers and admins."""
        campaign = self._get_campaign(campaign_id)
        proposals = (
            self.db.query(Proposal)
            .filter(Proposal.campaign_id == campaign_id)
            .order_by(Proposal.created_at)
            .all()
        )

        user_type = get_user_type(user)
        is_party = campaign.brand_id == user.id or any(p.influencer_id == user.id for p in proposals)
        if not is_party and not has_permission(user_type, Permission.FINALIZE_CAMPAIGNS):
            raise PermissionDenied("You don't have access to this campaign")

        counted = {p.id for p in self._counted_proposals(campaign_id).all()}
        return {
            "campaign_id": campaign.id,
            "status": campaign.status.value,
            "max_influencers": campaign.max_influencers,
            "completed_count": len(counted),
            "influencer_completed": campaign.influencer_completed,
            "influencer_completed_at": campaign.influencer_completed_at,
            "review_enabled": campaign.review_enabled,
            "proposals": [
                {
                    "proposal_id": p.id,
                    "influencer_id": p.influencer_id,
                    "status": p.status.value,
                    "influencer_marked_complete": p.influencer_marked_complete,
                    "influencer_completed_at": p.influencer_completed_at,
                    "admin_approved_completion": p.admin_approved_completion,
                    "payment_status": p.payment_status.value,
                    "counts_toward_threshold": p.id in counted,
                }
                for p in proposals
            ],
        }

    # =========================================================================
    # ADMIN STATUS TRANSITION
    # =========================================================================

    def set_campaign_status(self, campaign_id: str, new_status: str, user: User) -> FinalizeResult:
        if not has_permission(get_user_type(user), Permission.FINALIZE_CAMPAIGNS):
            raise PermissionDenied("Admin access required")

        try:
            target = CampaignStatusDB(str(new_status).lower())
        except ValueError:
            raise InvalidRequest("Invalid campaign status")
        if target not in ADMIN_SETTABLE_STATUSES:
            raise InvalidRequest("Invalid campaign status")

        campaign = self._get_campaign(campaign_id, lock=True)
        if campaign.status == CampaignStatusDB.DISPUTED:
            self.db.rollback()
            raise InvalidState("Campaign is under dispute and can only change through a dispute decision")

        if target != CampaignStatusDB.COMPLETED:
            campaign.status = target
            campaign.review_enabled = False
            self.db.commit()
            self.db.refresh(campaign)
            logger.info(f"Campaign {campaign_id} set to {target.value}")
            return FinalizeResult(campaign=campaign)

        return self._finalize(campaign)

    def _finalize(self, campaign: Campaign) -> FinalizeResult:
        if campaign.status not in (CampaignStatusDB.ACTIVE, CampaignStatusDB.COMPLETED):
            self.db.rollback()
            raise InvalidState("Campaign is not active")

        qualifying = self._counted_proposals(campaign.id).order_by(Proposal.influencer_completed_at).all()
        required = self.required_count(campaign)
        if not qualifying:
            self.db.rollback()
            raise InvalidState("No influencer has marked this campaign as completed yet")
        if len(qualifying) < required:
            self.db.rollback()
            raise InvalidState(
                f"All {required} influencers must mark this campaign as completed "
                f"before it can be marked completed ({len(qualifying)} of {required} so far)"
            )

        now = datetime.utcnow()
        for proposal in qualifying:
            if not proposal.admin_approved_completion:
                proposal.admin_approved_completion = True
                proposal.admin_completion_approved_at = now

        campaign.status = CampaignStatusDB.COMPLETED
        campaign.review_enabled = True
        campaign.completed_at = campaign.completed_at or now

        campaign_id = campaign.id
        proposal_ids = [p.id for p in qualifying]
        influencer_ids = [p.influencer_id for p in qualifying]
        self.db.commit()
        logger.info(f"Campaign {campaign_id} finalized with {len(proposal_ids)} approved proposal(s)")

        # Cross-entity consequences run after the status change is durable
        payouts = PayoutService(self.db, self.paystack).run_batch(proposal_ids)

        run_post_commit(
            self.db,
            f"completion chat message for campaign {campaign_id}",
            self._post_completion_message,
            campaign_id, influencer_ids,
        )
        run_post_commit(
            self.db,
            f"completion notifications for campaign {campaign_id}",
            self._notify_completed,
            campaign_id, influencer_ids,
        )

        campaign = self._get_campaign(campaign_id)
        return FinalizeResult(campaign=campaign, payouts=payouts)

    def _post_completion_message(self, campaign_id: str, influencer_ids: List[str]):
        campaign = self._get_campaign(campaign_id)
        users = self.db.query(User).filter(User.id.in_(influencer_ids)).all()
        names = ", ".join(sorted(u.name or u.email for u in users))
        self.chat.post_system_message(
            campaign_id,
            f"Campaign \"{campaign.title}\" has been marked completed by the admin. "
            f"Completed by: {names}.",
        )

    def _notify_completed(self, campaign_id: str, influencer_ids: List[str]):
        campaign = self._get_campaign(campaign_id)
        notifications = get_notification_service(self.db)
        for user_id in [campaign.brand_id, *influencer_ids]:
            notifications.notify_campaign_completed(user_id, campaign_id, campaign.title)


def get_completion_service(db: Session, paystack: Optional[PaystackService] = None) -> CompletionService:
    """Get CompletionService instance."""
    return CompletionService(db, paystack)
