# Notification Service for the CollabPay pipeline
# Provides centralized in-app notification creation

from sqlalchemy.orm import Session
from typing import Optional
from decimal import Decimal
from enum import Enum

from core.paystack_service import PaystackService
from database.marketplace_models import Notification


class NotificationType(str, Enum):
    """Notification types stored in Notification.type."""
    PROPOSAL_RECEIVED = "proposal_received"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"
    COMPLETION_MARKED = "completion_marked"
    CAMPAIGN_COMPLETED = "campaign_completed"
    PAYMENT_RECEIVED = "payment_received"
    PAYOUT_SENT = "payout_sent"
    PAYOUT_PENDING = "payout_pending"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    SYSTEM = "system"


class NotificationService:
    """
    Service for creating user notifications.
    Callers own the commit; `create` only flushes.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        data: Optional[dict] = None,
    ) -> Notification:
        """
        Create a new notification for a user.

        Args:
            user_id: The user to notify
            type: Notification type (use NotificationType enum)
            title: Short notification title
            message: Full notification message
            action_url: Optional URL for the notification action
            data: Optional additional data as JSON
        """
        if isinstance(type, NotificationType):
            type = type.value
        elif type not in NotificationType._value2member_map_:
            type = NotificationType.SYSTEM.value

        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            data=data or {},
        )
        self.db.add(notification)
        self.db.flush()  # Get the ID without committing
        return notification

    # =========================================================================
    # PROPOSAL NOTIFICATION HELPERS
    # =========================================================================

    def notify_proposal_received(self, brand_user_id: str, influencer_name: str, campaign_id: str, amount: Decimal):
        """Notify brand of a new proposal on their campaign."""
        return self.create(
            user_id=brand_user_id,
            type=NotificationType.PROPOSAL_RECEIVED,
            title="New Proposal",
            message=f"{influencer_name} sent a proposal for {amount:,.2f}",
            action_url=f"/campaigns/{campaign_id}",
            data={"campaign_id": campaign_id, "amount": str(amount)}
        )

    def notify_proposal_decided(self, influencer_user_id: str, campaign_id: str, accepted: bool):
        """Notify influencer that their proposal was accepted or rejected."""
        if accepted:
            return self.create(
                user_id=influencer_user_id,
                type=NotificationType.PROPOSAL_ACCEPTED,
                title="Proposal Accepted! ✅",
                message="The brand accepted your proposal. You can start working on the campaign.",
                action_url=f"/campaigns/{campaign_id}",
                data={"campaign_id": campaign_id}
            )
        return self.create(
            user_id=influencer_user_id,
            type=NotificationType.PROPOSAL_REJECTED,
            title="Proposal Declined",
            message="The brand declined your proposal.",
            action_url=f"/campaigns/{campaign_id}",
            data={"campaign_id": campaign_id}
        )

    # =========================================================================
    # COMPLETION NOTIFICATION HELPERS
    # =========================================================================

    def notify_completion_marked(
        self,
        brand_user_id: str,
        influencer_name: str,
        campaign_id: str,
        completed_count: int,
        required_count: int,
    ):
        """Notify brand that an influencer marked their part complete."""
        return self.create(
            user_id=brand_user_id,
            type=NotificationType.COMPLETION_MARKED,
            title="Work Marked Complete",
            message=f"{influencer_name} marked the campaign complete ({completed_count} of {required_count}).",
            action_url=f"/campaigns/{campaign_id}",
            data={"campaign_id": campaign_id, "completed": completed_count, "required": required_count}
        )

    def notify_campaign_completed(self, user_id: str, campaign_id: str, title: str):
        """Notify a campaign party that the admin finalized the campaign."""
        return self.create(
            user_id=user_id,
            type=NotificationType.CAMPAIGN_COMPLETED,
            title="Campaign Completed! 🎉",
            message=f"\"{title}\" has been marked completed. Reviews are now open.",
            action_url=f"/campaigns/{campaign_id}",
            data={"campaign_id": campaign_id}
        )

    # =========================================================================
    # PAYMENT NOTIFICATION HELPERS
    # =========================================================================

    def notify_payment_received(self, influencer_user_id: str, campaign_id: str, amount: Decimal):
        """Notify influencer that the brand's payment for their proposal cleared."""
        return self.create(
            user_id=influencer_user_id,
            type=NotificationType.PAYMENT_RECEIVED,
            title="Payment Secured 🔒",
            message=f"The brand paid {amount:,.2f} for your proposal. It is released on completion.",
            action_url=f"/campaigns/{campaign_id}",
            data={"campaign_id": campaign_id, "amount": str(amount)}
        )

    def notify_payout(
        self,
        influencer_user_id: str,
        campaign_id: str,
        amount: Decimal,
        transferred: bool,
        currency: Optional[str] = None,
    ):
        """Notify influencer of a payout, sent or held pending."""
        display = PaystackService.format_amount(amount, currency)
        if transferred:
            return self.create(
                user_id=influencer_user_id,
                type=NotificationType.PAYOUT_SENT,
                title="Payout Sent! 💰",
                message=f"{display} has been sent to your payout account.",
                action_url=f"/campaigns/{campaign_id}",
                data={"campaign_id": campaign_id, "amount": str(amount)}
            )
        return self.create(
            user_id=influencer_user_id,
            type=NotificationType.PAYOUT_PENDING,
            title="Payout Pending",
            message=f"Your payout of {display} is pending. Add or verify your payout account.",
            action_url="/settings/payouts",
            data={"campaign_id": campaign_id, "amount": str(amount)}
        )

    # =========================================================================
    # DISPUTE NOTIFICATION HELPERS
    # =========================================================================

    def notify_dispute_opened(self, user_id: str, campaign_id: str, dispute_id: str):
        """Notify the counterparty that a dispute was opened."""
        return self.create(
            user_id=user_id,
            type=NotificationType.DISPUTE_OPENED,
            title="Dispute Opened ⚠️",
            message="A dispute was opened on your campaign. Our team will review it.",
            action_url=f"/disputes/{dispute_id}",
            data={"campaign_id": campaign_id, "dispute_id": dispute_id}
        )

    def notify_dispute_resolved(self, user_id: str, campaign_id: str, dispute_id: str, decision: str):
        """Notify a dispute party of the admin decision."""
        return self.create(
            user_id=user_id,
            type=NotificationType.DISPUTE_RESOLVED,
            title="Dispute Resolved ✅",
            message=f"Your dispute has been decided: {decision.replace('_', ' ')}",
            action_url=f"/disputes/{dispute_id}",
            data={"campaign_id": campaign_id, "dispute_id": dispute_id, "decision": decision}
        )


# Convenience function to get service
def get_notification_service(db: Session) -> NotificationService:
    """Get NotificationService instance."""
    return NotificationService(db)
