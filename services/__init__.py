# Services Module for the CollabPay pipeline
# Contains business logic services

from services.notification_service import NotificationService, NotificationType, get_notification_service
from services.chat_service import ChatService, get_chat_service
from services.ledger_service import LedgerService, get_ledger_service
from services.payout_service import (
    PayoutService, PayoutPolicy, PayoutOutcome, PayoutResult, get_payout_service,
)
from services.completion_service import (
    CompletionService, CompletionResult, FinalizeResult, get_completion_service,
)
from services.proposal_service import ProposalService, get_proposal_service
from services.dispute_service import DisputeService, get_dispute_service

__all__ = [
    'NotificationService',
    'NotificationType',
    'get_notification_service',
    'ChatService',
    'get_chat_service',
    'LedgerService',
    'get_ledger_service',
    'PayoutService',
    'PayoutPolicy',
    'PayoutOutcome',
    'PayoutResult',
    'get_payout_service',
    'CompletionService',
    'CompletionResult',
    'FinalizeResult',
    'get_completion_service',
    'ProposalService',
    'get_proposal_service',
    'DisputeService',
    'get_dispute_service',
]
