# Dispute Service for the CollabPay pipeline
# Freezes a campaign while a dispute is open and applies the admin decision

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.roles import Permission, UserType, has_permission, get_user_type
from config.app_config import DISPUTE_LOG_LIMIT
from database.models import User
from database.marketplace_models import (
    Campaign, Proposal, Dispute, DisputeEvidence, DisputeMessage,
    CampaignStatusDB, ProposalStatusDB, DisputeStatusDB, DisputeReasonDB,
    DisputeDecisionDB, RaiserRoleDB, EvidenceTypeDB, OPEN_DISPUTE_STATUSES,
)
from services.exceptions import InvalidRequest, InvalidState, NotFound, PermissionDenied
from services.hooks import run_post_commit
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

DUPLICATE_OPEN_DISPUTE = "An open dispute already exists for this campaign"
DECISION_FINAL = "Admin decision is final and cannot be changed"

# Decisions that need a positive amount
AMOUNT_DECISIONS = (DisputeDecisionDB.REFUND_PARTIAL, DisputeDecisionDB.RELEASE_FUNDS)

# Decision -> campaign status after resolution
DECISION_CAMPAIGN_STATUS = {
    DisputeDecisionDB.REFUND_FULL: CampaignStatusDB.CANCELLED,
    DisputeDecisionDB.REFUND_PARTIAL: CampaignStatusDB.CANCELLED,
    DisputeDecisionDB.REJECT: CampaignStatusDB.CANCELLED,
    DisputeDecisionDB.REDO_WORK: CampaignStatusDB.ACTIVE,
    DisputeDecisionDB.RELEASE_FUNDS: CampaignStatusDB.COMPLETED,
}


def normalize_evidence(entries, uploaded_by: str) -> List[DisputeEvidence]:
    """Build evidence rows, dropping entries that carry neither a url nor text."""
    rows = []
    for entry in entries or []:
        if not entry:
            continue
        url = entry.get("url")
        text = entry.get("text")
        if not url and not text:
            continue
        rows.append(DisputeEvidence(
            type=_parse_evidence_type(entry.get("type"), url),
            url=url,
            text=text,
            caption=entry.get("caption"),
            uploaded_by=uploaded_by,
        ))
    return rows


def _parse_evidence_type(value, url) -> EvidenceTypeDB:
    if not value:
        return EvidenceTypeDB.FILE if url else EvidenceTypeDB.TEXT
    try:
        return EvidenceTypeDB(str(value).lower())
    except ValueError:
        raise InvalidRequest(f"Invalid evidence type: {value}")


class DisputeService:
    """
    Dispute state machine.

    Raiser, counterparty and admins may read and post while a dispute is open;
    only admins move it between open statuses or decide it.
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # ACCESS HELPERS
    # =========================================================================

    def _get_dispute(self, dispute_id: str, lock: bool = False) -> Dispute:
        query = self.db.query(Dispute).filter(Dispute.id == dispute_id)
        if lock:
            query = query.with_for_update()
        dispute = query.first()
        if not dispute:
            raise NotFound("Dispute not found")
        return dispute

    def _get_visible_dispute(self, dispute_id: str, user: User, lock: bool = False) -> Dispute:
        user_type = get_user_type(user)
        if not has_permission(user_type, Permission.PARTICIPATE_DISPUTES):
            raise PermissionDenied("You don't have permission to access disputes")

        dispute = self._get_dispute(dispute_id, lock=lock)
        if not has_permission(user_type, Permission.REVIEW_DISPUTES) and user.id not in (dispute.raised_by, dispute.against):
            raise PermissionDenied("Not allowed to access this dispute")
        return dispute

    def _log_size(self, model, dispute_id: str) -> int:
        return self.db.query(model).filter(model.dispute_id == dispute_id).count()

    # =========================================================================
    # CREATE / READ
    # =========================================================================

    def create_dispute(
        self,
        user: User,
        campaign_id: str,
        description: str,
        reason: Optional[str] = None,
        evidence: Optional[List[dict]] = None,
        against: Optional[str] = None,
    ) -> Dispute:
        user_type = get_user_type(user)
        if not has_permission(user_type, Permission.RAISE_DISPUTES):
            raise PermissionDenied("Only brands or influencers can raise a dispute")

        if not campaign_id or not description or not description.strip():
            raise InvalidRequest("campaign_id and description are required")
        try:
            reason = DisputeReasonDB(str(reason).lower()) if reason else DisputeReasonDB.OTHER
        except ValueError:
            raise InvalidRequest(f"Invalid dispute reason: {reason}")
        evidence_rows = normalize_evidence(evidence, user.id)
        if len(evidence_rows) > DISPUTE_LOG_LIMIT:
            raise InvalidRequest(f"A dispute can hold at most {DISPUTE_LOG_LIMIT} evidence entries")

        campaign = self.db.query(Campaign).filter(Campaign.id == campaign_id).with_for_update().first()
        if not campaign:
            raise NotFound("Campaign not found")

        # Standing: brand owns the campaign; influencer holds or held a proposal on it
        if user_type == UserType.BRAND:
            if campaign.brand_id != user.id:
                raise PermissionDenied("Not allowed to dispute this campaign")
        elif not self._has_proposal(campaign_id, user.id):
            raise PermissionDenied("You do not belong to this campaign")

        if self.open_dispute_for(campaign_id):
            raise InvalidState(DUPLICATE_OPEN_DISPUTE)

        counterparty = against or self._default_counterparty(campaign, user_type)
        if against and against != campaign.brand_id and not self._has_proposal(campaign_id, against):
            raise InvalidRequest("The counterparty has no standing on this campaign")

        dispute = Dispute(
            campaign_id=campaign_id,
            raised_by=user.id,
            against=counterparty,
            role_of_raiser=RaiserRoleDB(user_type.value),
            reason=reason,
            description=description.strip(),
            status=DisputeStatusDB.PENDING,
            evidence=evidence_rows,
        )
        self.db.add(dispute)

        # Freeze the completion/payout pipeline
        campaign.status = CampaignStatusDB.DISPUTED
        campaign.review_enabled = False

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidState(DUPLICATE_OPEN_DISPUTE)
        self.db.refresh(dispute)
        logger.info(f"Dispute {dispute.id} opened on campaign {campaign_id} by {user.id}")

        if counterparty:
            notifications = get_notification_service(self.db)
            run_post_commit(
                self.db,
                f"dispute notification for {dispute.id}",
                notifications.notify_dispute_opened,
                counterparty, campaign_id, dispute.id,
            )
        return dispute

    def _has_proposal(self, campaign_id: str, influencer_id: str) -> bool:
        return self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign_id,
            Proposal.influencer_id == influencer_id,
        ).first() is not None

    def _default_counterparty(self, campaign: Campaign, user_type: UserType) -> Optional[str]:
        if user_type == UserType.INFLUENCER:
            return campaign.brand_id
        proposal = (
            self.db.query(Proposal)
            .filter(Proposal.campaign_id == campaign.id, Proposal.status == ProposalStatusDB.ACCEPTED)
            .order_by(Proposal.accepted_at)
            .first()
        )
        return proposal.influencer_id if proposal else None

    def open_dispute_for(self, campaign_id: str) -> Optional[Dispute]:
        return self.db.query(Dispute).filter(
            Dispute.campaign_id == campaign_id,
            Dispute.status.in_(OPEN_DISPUTE_STATUSES),
        ).first()

    def list_disputes(
        self,
        user: User,
        status: Optional[str] = None,
        campaign_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Dispute], int]:
        user_type = get_user_type(user)
        if not has_permission(user_type, Permission.PARTICIPATE_DISPUTES):
            raise PermissionDenied("You don't have permission to access disputes")

        query = self.db.query(Dispute)
        if status:
            try:
                query = query.filter(Dispute.status == DisputeStatusDB(status))
            except ValueError:
                raise InvalidRequest(f"Invalid status: {status}")
        if campaign_id:
            query = query.filter(Dispute.campaign_id == campaign_id)
        if not has_permission(user_type, Permission.REVIEW_DISPUTES):
            query = query.filter(or_(Dispute.raised_by == user.id, Dispute.against == user.id))

        limit = min(max(limit, 1), 100)
        page = max(page, 1)
        total = query.count()
        items = query.order_by(Dispute.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def get_dispute(self, dispute_id: str, user: User) -> Dispute:
        return self._get_visible_dispute(dispute_id, user)

    # =========================================================================
    # EVIDENCE / MESSAGES (append-only while open)
    # =========================================================================

    def add_evidence(
        self,
        dispute_id: str,
        user: User,
        url: Optional[str] = None,
        text: Optional[str] = None,
        type: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> Dispute:
        if not url and not text:
            raise InvalidRequest("url or text is required")

        dispute = self._get_visible_dispute(dispute_id, user, lock=True)
        if not dispute.is_open:
            raise InvalidState("Dispute is closed and cannot accept new evidence")
        if self._log_size(DisputeEvidence, dispute_id) >= DISPUTE_LOG_LIMIT:
            raise InvalidState(f"Evidence limit of {DISPUTE_LOG_LIMIT} entries reached for this dispute")

        self.db.add(DisputeEvidence(
            dispute_id=dispute_id,
            type=_parse_evidence_type(type, url),
            url=url,
            text=text,
            caption=caption,
            uploaded_by=user.id,
        ))
        self.db.commit()
        self.db.refresh(dispute)
        return dispute

    def add_message(
        self,
        dispute_id: str,
        user: User,
        message: str,
        attachments: Optional[List[dict]] = None,
    ) -> DisputeMessage:
        if not message or not message.strip():
            raise InvalidRequest("message is required")

        dispute = self._get_visible_dispute(dispute_id, user, lock=True)
        if not dispute.is_open:
            raise InvalidState("Dispute is closed and cannot accept new messages")
        if self._log_size(DisputeMessage, dispute_id) >= DISPUTE_LOG_LIMIT:
            raise InvalidState(f"Message limit of {DISPUTE_LOG_LIMIT} entries reached for this dispute")

        entry = DisputeMessage(
            dispute_id=dispute_id,
            sender_id=user.id,
            message=message.strip(),
            attachments=list(attachments or []),
            is_system=False,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def list_messages(self, dispute_id: str, user: User, page: int = 1, limit: int = 50) -> Tuple[List[DisputeMessage], int]:
        self._get_visible_dispute(dispute_id, user)
        limit = min(max(limit, 1), 100)
        page = max(page, 1)
        query = self.db.query(DisputeMessage).filter(DisputeMessage.dispute_id == dispute_id)
        total = query.count()
        items = query.order_by(DisputeMessage.created_at).offset((page - 1) * limit).limit(limit).all()
        return items, total

    # =========================================================================
    # ADMIN ACTIONS
    # =========================================================================

    def set_review_status(self, dispute_id: str, status: str, user: User) -> Dispute:
        """Move an open dispute between pending, needs_info and escalated."""
        if not has_permission(get_user_type(user), Permission.REVIEW_DISPUTES):
            raise PermissionDenied("Admin access required")
        try:
            target = DisputeStatusDB(str(status).lower())
        except ValueError:
            raise InvalidRequest(f"Invalid status: {status}")
        if target not in OPEN_DISPUTE_STATUSES:
            raise InvalidRequest("Use the decision endpoint to close a dispute")

        dispute = self._get_dispute(dispute_id, lock=True)
        if dispute.decision is not None or not dispute.is_open:
            raise InvalidState("Dispute is closed")

        dispute.status = target
        self.db.add(DisputeMessage(
            dispute_id=dispute.id,
            sender_id=user.id,
            message=f"Dispute status changed to {target.value.replace('_', ' ')}",
            is_system=True,
        ))
        self.db.commit()
        self.db.refresh(dispute)
        logger.info(f"Dispute {dispute_id} moved to {target.value}")
        return dispute

    def decide(
        self,
        dispute_id: str,
        decision: str,
        user: User,
        notes: Optional[str] = None,
        amount=None,
    ) -> Dispute:
        """
        Record the admin's final decision and transition the campaign.

        refund_full / refund_partial / reject cancel the campaign, redo_work
        reopens it and clears completion marks for the dispute parties, and
        release_funds completes it. Input is validated before anything is read.
        """
        if not has_permission(get_user_type(user), Permission.RESOLVE_DISPUTES):
            raise PermissionDenied("Admin only")

        try:
            decision = DisputeDecisionDB(str(decision).lower())
        except ValueError:
            raise InvalidRequest(f"Invalid decision: {decision}")

        if amount is not None and amount != "":
            try:
                amount = Decimal(str(amount))
            except (InvalidOperation, ValueError):
                raise InvalidRequest("Amount must be a number")
        else:
            amount = None
        if decision in AMOUNT_DECISIONS and (amount is None or amount <= 0):
            raise InvalidRequest("Amount is required and must be greater than 0 for this decision")

        dispute = self._get_dispute(dispute_id, lock=True)
        if dispute.decision is not None or not dispute.is_open:
            raise InvalidState(DECISION_FINAL)

        now = datetime.utcnow()
        dispute.status = DisputeStatusDB.REJECTED if decision == DisputeDecisionDB.REJECT else DisputeStatusDB.RESOLVED
        dispute.decision = decision
        dispute.decision_by = user.id
        dispute.resolution_notes = notes
        dispute.resolution_amount = amount
        dispute.decided_at = now

        campaign = self.db.query(Campaign).filter(Campaign.id == dispute.campaign_id).with_for_update().first()
        if campaign:
            target = DECISION_CAMPAIGN_STATUS[decision]
            campaign.status = target
            campaign.review_enabled = target == CampaignStatusDB.COMPLETED
            if target == CampaignStatusDB.COMPLETED:
                campaign.completed_at = campaign.completed_at or now
            if decision == DisputeDecisionDB.REDO_WORK:
                self._reset_completion(campaign, [dispute.raised_by, dispute.against])
            elif decision == DisputeDecisionDB.RELEASE_FUNDS:
                self._approve_completion(campaign, [dispute.raised_by, dispute.against], now)

        self.db.commit()
        self.db.refresh(dispute)
        logger.info(f"Dispute {dispute_id} decided: {decision.value}")

        notifications = get_notification_service(self.db)
        for party in filter(None, (dispute.raised_by, dispute.against)):
            run_post_commit(
                self.db,
                f"decision notification for dispute {dispute_id}",
                notifications.notify_dispute_resolved,
                party, dispute.campaign_id, dispute.id, decision.value,
            )
        return dispute

    def _approve_completion(self, campaign: Campaign, party_ids: List[Optional[str]], now: datetime):
        """Releasing funds is the admin's approval of the disputed influencer's work."""
        proposals = self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign.id,
            Proposal.influencer_id.in_([p for p in party_ids if p]),
            Proposal.status == ProposalStatusDB.ACCEPTED,
        ).all()
        for proposal in proposals:
            if not proposal.admin_approved_completion:
                proposal.admin_approved_completion = True
                proposal.admin_completion_approved_at = now

    def _reset_completion(self, campaign: Campaign, party_ids: List[Optional[str]]):
        campaign.influencer_completed = False
        campaign.influencer_completed_at = None

        # Brand ids never match an influencer_id, so passing both parties is safe
        proposals = self.db.query(Proposal).filter(
            Proposal.campaign_id == campaign.id,
            Proposal.influencer_id.in_([p for p in party_ids if p]),
        ).all()
        for proposal in proposals:
            proposal.influencer_marked_complete = False
            proposal.influencer_completed_at = None
            proposal.admin_approved_completion = False
            proposal.admin_completion_approved_at = None


def get_dispute_service(db: Session) -> DisputeService:
    """Get DisputeService instance."""
    return DisputeService(db)
