# Schemas module for the CollabPay pipeline
# Organizes all Pydantic schemas in a modular structure

from schemas.marketplace import (
    # Enums
    CampaignStatus,
    ProposalStatus,
    PaymentStatus,
    TransactionType,
    TransactionStatus,
    DisputeStatus,

    # Campaign
    CampaignResponse,
    CampaignStatusUpdate,
    CompletionResponse,
    CampaignFinalizeResponse,

    # Proposal
    ProposalCreate,
    ProposalResponse,
    ProposalPaymentResponse,

    # Payments / ledger
    PaymentConfirm,
    TransactionResponse,
    PayoutResultResponse,

    # Dispute
    EvidenceItem,
    DisputeCreate,
    DisputeMessageCreate,
    DisputeStatusUpdate,
    DisputeDecision,
    EvidenceResponse,
    DisputeMessageResponse,
    DisputeResponse,
)

__all__ = [
    "CampaignStatus",
    "ProposalStatus",
    "PaymentStatus",
    "TransactionType",
    "TransactionStatus",
    "DisputeStatus",
    "CampaignResponse",
    "CampaignStatusUpdate",
    "CompletionResponse",
    "CampaignFinalizeResponse",
    "ProposalCreate",
    "ProposalResponse",
    "ProposalPaymentResponse",
    "PaymentConfirm",
    "TransactionResponse",
    "PayoutResultResponse",
    "EvidenceItem",
    "DisputeCreate",
    "DisputeMessageCreate",
    "DisputeStatusUpdate",
    "DisputeDecision",
    "EvidenceResponse",
    "DisputeMessageResponse",
    "DisputeResponse",
]
