# Pydantic Schemas for the CollabPay pipeline
# Request bodies and response models for campaigns, proposals, payouts and disputes

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class CampaignStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    RELEASED = "released"
    FAILED = "failed"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DisputeStatus(str, Enum):
    PENDING = "pending"
    NEEDS_INFO = "needs_info"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


# ============================================================================
# CAMPAIGN SCHEMAS
# ============================================================================

class CampaignResponse(BaseModel):
    """Schema for campaign response."""
    id: str
    brand_id: str
    title: str
    category: Optional[str] = None
    budget_min: Decimal
    budget_max: Decimal
    currency: Optional[str] = None
    status: CampaignStatus
    review_enabled: bool
    influencer_completed: bool
    influencer_completed_at: Optional[datetime] = None
    max_influencers: int
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampaignStatusUpdate(BaseModel):
    """Schema for the admin status transition."""
    status: str


class CompletionResponse(BaseModel):
    """Schema for the influencer mark-complete response."""
    message: str
    campaign_id: str
    threshold_reached: bool
    completed_count: int
    required_count: int
    already_marked: bool = False


# ============================================================================
# PROPOSAL SCHEMAS
# ============================================================================

class ProposalCreate(BaseModel):
    """Schema for submitting a proposal."""
    campaign_id: str
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    delivery_time: str = Field(..., min_length=1, max_length=100)
    message: Optional[str] = Field(None, max_length=2000)


class ProposalResponse(BaseModel):
    """Schema for proposal response."""
    id: str
    campaign_id: str
    influencer_id: str
    amount: Decimal
    delivery_time: str
    message: Optional[str] = None
    status: ProposalStatus
    accepted_at: Optional[datetime] = None
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    brand_transaction_id: Optional[str] = None
    payout_transaction_id: Optional[str] = None
    influencer_marked_complete: bool
    influencer_completed_at: Optional[datetime] = None
    admin_approved_completion: bool
    admin_completion_approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProposalPaymentResponse(BaseModel):
    """Proposal plus the brand's checkout link."""
    proposal: ProposalResponse
    authorization_url: Optional[str] = None
    payment_error: Optional[str] = None


# ============================================================================
# PAYMENT / LEDGER SCHEMAS
# ============================================================================

class PaymentConfirm(BaseModel):
    """Schema for confirming a brand payment after checkout."""
    reference: str = Field(..., min_length=1)


class TransactionResponse(BaseModel):
    """Schema for transaction response."""
    id: str
    user_id: str
    campaign_id: Optional[str] = None
    proposal_id: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = None
    transaction_type: TransactionType
    status: TransactionStatus
    app_fee: Optional[Decimal] = None
    influencer_amount: Optional[Decimal] = None
    is_payout: bool
    source_transaction_id: Optional[str] = None
    payment_reference: Optional[str] = None
    charge_reference: Optional[str] = None
    transfer_code: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayoutResultResponse(BaseModel):
    """Schema for one payout attempt."""
    proposal_id: str
    outcome: str
    transaction_id: Optional[str] = None
    app_fee: Optional[Decimal] = None
    influencer_amount: Optional[Decimal] = None
    transfer_code: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class CampaignFinalizeResponse(BaseModel):
    """Schema for the admin status transition response."""
    message: str
    campaign: CampaignResponse
    payouts: List[PayoutResultResponse] = []


# ============================================================================
# DISPUTE SCHEMAS
# ============================================================================

class EvidenceItem(BaseModel):
    """One evidence entry; entries with neither url nor text are dropped."""
    type: Optional[str] = None
    url: Optional[str] = Field(None, max_length=1000)
    text: Optional[str] = None
    caption: Optional[str] = Field(None, max_length=500)


class DisputeCreate(BaseModel):
    """Schema for creating a dispute."""
    campaign_id: str
    description: str = Field(..., min_length=1, max_length=5000)
    reason: Optional[str] = None
    evidence: List[EvidenceItem] = []
    against_user_id: Optional[str] = None


class DisputeMessageCreate(BaseModel):
    """Schema for posting into a dispute thread."""
    message: str = Field(..., min_length=1, max_length=5000)
    attachments: List[dict] = []


class DisputeStatusUpdate(BaseModel):
    """Schema for the admin moving a dispute between open statuses."""
    status: str


class DisputeDecision(BaseModel):
    """Schema for the admin's final decision. The amount rule is enforced by the service."""
    decision: str
    notes: Optional[str] = Field(None, max_length=5000)
    amount: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)


class EvidenceResponse(BaseModel):
    id: str
    type: str
    url: Optional[str] = None
    text: Optional[str] = None
    caption: Optional[str] = None
    uploaded_by: str
    created_at: Optional[datetime] = None


class DisputeMessageResponse(BaseModel):
    id: str
    sender_id: str
    message: str
    attachments: List[Any] = []
    is_system: bool = False
    created_at: Optional[datetime] = None


class DisputeResponse(BaseModel):
    """Schema for dispute response."""
    id: str
    campaign_id: str
    campaign_title: Optional[str] = None
    campaign_status: Optional[str] = None
    raised_by: str
    raised_by_name: Optional[str] = None
    against: Optional[str] = None
    against_name: Optional[str] = None
    role_of_raiser: str
    reason: str
    description: str
    status: DisputeStatus
    decision: Optional[str] = None
    decision_by: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolution_amount: Optional[Decimal] = None
    decided_at: Optional[datetime] = None
    evidence: List[EvidenceResponse] = []
    message_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
