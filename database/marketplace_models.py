# Marketplace Database Models for the completion / dispute / payout pipeline
# Import these in addition to the user directory in database/models.py

from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Text, JSON, Enum, Boolean,
    Numeric, CheckConstraint, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

# Use the same Base from existing models
from database.models import Base, generate_uuid


# ============================================================================
# ENUMS
# ============================================================================

class CampaignStatusDB(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class ProposalStatusDB(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentStatusDB(str, enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    RELEASED = "released"
    FAILED = "failed"


class TransactionTypeDB(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatusDB(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DisputeStatusDB(str, enum.Enum):
    PENDING = "pending"
    NEEDS_INFO = "needs_info"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


OPEN_DISPUTE_STATUSES = (
    DisputeStatusDB.PENDING,
    DisputeStatusDB.NEEDS_INFO,
    DisputeStatusDB.ESCALATED,
)


class DisputeReasonDB(str, enum.Enum):
    QUALITY = "quality"
    DELAY = "delay"
    PAYMENT = "payment"
    FRAUD = "fraud"
    OTHER = "other"


class DisputeDecisionDB(str, enum.Enum):
    REFUND_FULL = "refund_full"
    REFUND_PARTIAL = "refund_partial"
    RELEASE_FUNDS = "release_funds"
    REDO_WORK = "redo_work"
    REJECT = "reject"


class RaiserRoleDB(str, enum.Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"


class EvidenceTypeDB(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    LINK = "link"
    TEXT = "text"


# ============================================================================
# CAMPAIGN
# ============================================================================

class Campaign(Base):
    """A brand's paid collaboration request.

    `influencer_completed` is the aggregate completion flag: it turns on once
    the number of influencers who marked completion reaches `max_influencers`.
    `review_enabled` is only true while the campaign is completed.
    """
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    brand_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))

    budget_min = Column(Numeric(12, 2), nullable=False)
    budget_max = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="KES")

    status = Column(Enum(CampaignStatusDB, values_callable=lambda x: [e.value for e in x], name="campaignstatusdb"), default=CampaignStatusDB.PENDING, nullable=False)

    review_enabled = Column(Boolean, default=False, nullable=False)
    influencer_completed = Column(Boolean, default=False, nullable=False)
    influencer_completed_at = Column(DateTime)
    max_influencers = Column(Integer, default=1, nullable=False)

    completed_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    brand = relationship("User", backref="brand_campaigns")
    proposals = relationship("Proposal", back_populates="campaign", cascade="all, delete-orphan")
    disputes = relationship("Dispute", back_populates="campaign", cascade="all, delete-orphan")
    chat_rooms = relationship("ChatRoom", back_populates="campaign", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("budget_min <= budget_max", name="ck_campaigns_budget_range"),
        CheckConstraint("max_influencers >= 1 AND max_influencers <= 3", name="ck_campaigns_max_influencers"),
    )


# ============================================================================
# PROPOSAL
# ============================================================================

class Proposal(Base):
    """One influencer's engagement with a campaign."""
    __tablename__ = "proposals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    influencer_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    delivery_time = Column(String(100), nullable=False)
    message = Column(Text)

    status = Column(Enum(ProposalStatusDB, values_callable=lambda x: [e.value for e in x], name="proposalstatusdb"), default=ProposalStatusDB.PENDING, nullable=False)
    accepted_at = Column(DateTime)
    rejected_at = Column(DateTime)

    # Brand payment
    payment_status = Column(Enum(PaymentStatusDB, values_callable=lambda x: [e.value for e in x], name="paymentstatusdb"), default=PaymentStatusDB.UNPAID, nullable=False)
    payment_reference = Column(String(100))
    brand_transaction_id = Column(String(36), ForeignKey("transactions.id", use_alter=True, name="fk_proposals_brand_transaction"), nullable=True)
    payout_transaction_id = Column(String(36), ForeignKey("transactions.id", use_alter=True, name="fk_proposals_payout_transaction"), nullable=True)
    payout_released_at = Column(DateTime)

    # Completion
    influencer_marked_complete = Column(Boolean, default=False, nullable=False)
    influencer_completed_at = Column(DateTime)
    admin_approved_completion = Column(Boolean, default=False, nullable=False)
    admin_completion_approved_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    campaign = relationship("Campaign", back_populates="proposals")
    influencer = relationship("User", foreign_keys=[influencer_id], backref="proposals")
    brand_transaction = relationship("Transaction", foreign_keys=[brand_transaction_id], post_update=True)
    payout_transaction = relationship("Transaction", foreign_keys=[payout_transaction_id], post_update=True)

    __table_args__ = (
        UniqueConstraint("campaign_id", "influencer_id", name="uq_proposals_campaign_influencer"),
    )


# ============================================================================
# TRANSACTION (ledger)
# ============================================================================

class Transaction(Base):
    """One monetary movement.

    Brand payments are debits against the brand (`is_payout` false); payouts
    are credits to the influencer that point back at the brand payment through
    `source_transaction_id`.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    campaign_id = Column(String(36), ForeignKey("campaigns.id"), nullable=True, index=True)
    proposal_id = Column(String(36), ForeignKey("proposals.id"), nullable=True, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="KES")
    transaction_type = Column(Enum(TransactionTypeDB, values_callable=lambda x: [e.value for e in x], name="transactiontypedb"), nullable=False)
    status = Column(Enum(TransactionStatusDB, values_callable=lambda x: [e.value for e in x], name="transactionstatusdb"), default=TransactionStatusDB.PENDING, nullable=False)

    # Fee breakdown
    app_fee = Column(Numeric(12, 2), default=0)
    influencer_amount = Column(Numeric(12, 2), default=0)

    is_payout = Column(Boolean, default=False, nullable=False)
    source_transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)

    # Paystack identifiers
    payment_reference = Column(String(100), unique=True)
    charge_reference = Column(String(100))
    transfer_code = Column(String(100))

    description = Column(Text)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", backref="transactions")
    source_transaction = relationship("Transaction", remote_side=[id])

    __table_args__ = (
        # One payout per proposal
        Index(
            "uq_transactions_payout_proposal",
            "proposal_id",
            unique=True,
            postgresql_where=text("is_payout = true"),
            sqlite_where=text("is_payout = 1"),
        ),
    )


# ============================================================================
# DISPUTE
# ============================================================================

class Dispute(Base):
    """Escalation that freezes a campaign's completion/payout pipeline."""
    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    raised_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    against = Column(String(36), ForeignKey("users.id"), nullable=True)
    role_of_raiser = Column(Enum(RaiserRoleDB, values_callable=lambda x: [e.value for e in x], name="raiserroledb"), nullable=False)

    reason = Column(Enum(DisputeReasonDB, values_callable=lambda x: [e.value for e in x], name="disputereasondb"), default=DisputeReasonDB.OTHER, nullable=False)
    description = Column(Text, nullable=False)

    status = Column(Enum(DisputeStatusDB, values_callable=lambda x: [e.value for e in x], name="disputestatusdb"), default=DisputeStatusDB.PENDING, nullable=False)

    # Resolution
    decision = Column(Enum(DisputeDecisionDB, values_callable=lambda x: [e.value for e in x], name="disputedecisiondb"), nullable=True)
    decision_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    resolution_notes = Column(Text)
    resolution_amount = Column(Numeric(12, 2))
    decided_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    campaign = relationship("Campaign", back_populates="disputes")
    raiser = relationship("User", foreign_keys=[raised_by], backref="raised_disputes")
    counterparty = relationship("User", foreign_keys=[against])
    decider = relationship("User", foreign_keys=[decision_by])
    evidence = relationship("DisputeEvidence", back_populates="dispute", cascade="all, delete-orphan", order_by="DisputeEvidence.created_at")
    messages = relationship("DisputeMessage", back_populates="dispute", cascade="all, delete-orphan", order_by="DisputeMessage.created_at")

    __table_args__ = (
        # At most one open dispute per campaign
        Index(
            "uq_disputes_open_campaign",
            "campaign_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'needs_info', 'escalated')"),
            sqlite_where=text("status IN ('pending', 'needs_info', 'escalated')"),
        ),
        Index("ix_disputes_raised_by_status", "raised_by", "status"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DISPUTE_STATUSES


class DisputeEvidence(Base):
    """Append-only evidence entry owned by a dispute."""
    __tablename__ = "dispute_evidence"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    dispute_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(EvidenceTypeDB, values_callable=lambda x: [e.value for e in x], name="evidencetypedb"), default=EvidenceTypeDB.FILE, nullable=False)
    url = Column(String(1000))
    text = Column(Text)
    caption = Column(String(500))
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    dispute = relationship("Dispute", back_populates="evidence")


class DisputeMessage(Base):
    """Append-only message in a dispute thread."""
    __tablename__ = "dispute_messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    dispute_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True)

    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    attachments = Column(JSON)  # [{"type": "image", "url": "..."}]
    is_system = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    dispute = relationship("Dispute", back_populates="messages")


# ============================================================================
# CHAT (consumed by the finalize hook)
# ============================================================================

class ChatRoom(Base):
    """Brand/influencer chat room attached to a campaign."""
    __tablename__ = "chat_rooms"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    influencer_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    last_message_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())

    campaign = relationship("Campaign", back_populates="chat_rooms")
    messages = relationship("ChatMessage", back_populates="room", cascade="all, delete-orphan", order_by="ChatMessage.created_at")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    room_id = Column(String(36), ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=True)  # NULL for system messages
    message = Column(Text, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    room = relationship("ChatRoom", back_populates="messages")


# ============================================================================
# NOTIFICATION
# ============================================================================

class Notification(Base):
    """User notifications."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(50), nullable=False)  # campaign_completed, payout_sent, etc.
    title = Column(String(200), nullable=False)
    message = Column(Text)
    action_url = Column(String(500))
    data = Column(JSON)  # Additional context (campaign_id, amount, etc.)

    read = Column(Boolean, default=False)
    read_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")
