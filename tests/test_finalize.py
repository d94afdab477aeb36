from decimal import Decimal

import pytest

from core.paystack_service import PaymentServiceError
from database.models import UserType
from database.marketplace_models import (
    CampaignStatusDB, ChatMessage, Notification, PaymentStatusDB, Transaction, TransactionStatusDB,
)
from services.completion_service import CompletionService
from services.exceptions import InvalidRequest, InvalidState, PermissionDenied
from services.notification_service import NotificationType
from services.payout_service import PayoutOutcome, PayoutPolicy, PayoutService


def _payouts(db):
    return db.query(Transaction).filter(Transaction.is_payout == True).all()  # noqa: E712


def test_finalize_approves_and_pays_every_completed_proposal(
    db, admin, brand, paystack, make_user, make_campaign, make_proposal
):
    campaign = make_campaign(max_influencers=2)
    first, second = make_user(name="Ann"), make_user(name="Ben")
    p1 = make_proposal(campaign, first, amount="1000.00", paid=True, marked=True, chat_room=True)
    p2 = make_proposal(campaign, second, amount="500.00", paid=True, marked=True, chat_room=True)

    result = CompletionService(db, paystack).set_campaign_status(campaign.id, "completed", admin)

    assert result.campaign.status == CampaignStatusDB.COMPLETED
    assert result.campaign.review_enabled is True
    assert result.campaign.completed_at is not None
    assert [r.outcome for r in result.payouts] == [PayoutOutcome.RELEASED, PayoutOutcome.RELEASED]

    by_proposal = {r.proposal_id: r for r in result.payouts}
    assert by_proposal[p1.id].influencer_amount == Decimal("900.00")
    assert by_proposal[p2.id].app_fee == Decimal("50.00")

    for proposal in (p1, p2):
        db.refresh(proposal)
        assert proposal.admin_approved_completion is True
        assert proposal.payment_status == PaymentStatusDB.RELEASED
        assert proposal.payout_transaction_id is not None
    assert len(_payouts(db)) == 2

    messages = db.query(ChatMessage).filter(ChatMessage.is_system == True).all()  # noqa: E712
    assert len(messages) == 2
    assert "Ann, Ben" in messages[0].message

    completed_notices = db.query(Notification).filter(
        Notification.type == NotificationType.CAMPAIGN_COMPLETED.value
    ).all()
    assert {n.user_id for n in completed_notices} == {brand.id, first.id, second.id}


def test_finalize_refuses_until_threshold_met(db, admin, make_user, make_campaign, make_proposal):
    campaign = make_campaign(max_influencers=2)
    make_proposal(campaign, make_user(), paid=True, marked=True)
    make_proposal(campaign, make_user(), paid=True)

    with pytest.raises(InvalidState, match=r"All 2 influencers must mark .* \(1 of 2 so far\)"):
        CompletionService(db).set_campaign_status(campaign.id, "completed", admin)

    db.refresh(campaign)
    assert campaign.status == CampaignStatusDB.ACTIVE
    assert campaign.review_enabled is False
    assert _payouts(db) == []


def test_finalize_needs_at_least_one_mark(db, admin, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    make_proposal(campaign, make_user(), paid=True)

    with pytest.raises(InvalidState, match="No influencer has marked"):
        CompletionService(db).set_campaign_status(campaign.id, "completed", admin)


def test_only_admin_sets_status(db, brand, make_campaign):
    campaign = make_campaign()
    with pytest.raises(PermissionDenied):
        CompletionService(db).set_campaign_status(campaign.id, "completed", brand)


@pytest.mark.parametrize("value", ["bogus", "disputed"])
def test_invalid_target_status(db, admin, make_campaign, value):
    campaign = make_campaign()
    with pytest.raises(InvalidRequest, match="Invalid campaign status"):
        CompletionService(db).set_campaign_status(campaign.id, value, admin)


def test_disputed_campaign_cannot_be_moved_by_admin(db, admin, make_user, make_campaign, make_proposal):
    campaign = make_campaign(status=CampaignStatusDB.DISPUTED)
    make_proposal(campaign, make_user(), paid=True, marked=True)

    with pytest.raises(InvalidState, match="under dispute"):
        CompletionService(db).set_campaign_status(campaign.id, "completed", admin)
    with pytest.raises(InvalidState):
        CompletionService(db).set_campaign_status(campaign.id, "active", admin)


def test_cancel_closes_reviews_without_payouts(db, admin, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    make_proposal(campaign, make_user(), paid=True, marked=True)

    result = CompletionService(db).set_campaign_status(campaign.id, "Cancelled", admin)
    assert result.campaign.status == CampaignStatusDB.CANCELLED
    assert result.campaign.review_enabled is False
    assert result.payouts == []
    assert _payouts(db) == []


def test_missing_payout_account_leaves_payout_pending(db, admin, make_user, make_campaign, make_proposal, paystack):
    campaign = make_campaign()
    influencer = make_user(recipient_code=None)
    proposal = make_proposal(campaign, influencer, paid=True, marked=True)

    result = CompletionService(db, paystack).set_campaign_status(campaign.id, "completed", admin)

    assert result.campaign.status == CampaignStatusDB.COMPLETED
    assert result.payouts[0].outcome == PayoutOutcome.PENDING
    assert "payout account" in result.payouts[0].reason
    paystack.create_transfer.assert_not_called()

    payout = _payouts(db)[0]
    assert payout.status == TransactionStatusDB.PENDING
    assert payout.influencer_amount == Decimal("900.00")
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.PAID
    assert proposal.payout_transaction_id == payout.id


def test_transfer_failure_does_not_fail_finalize(db, admin, make_user, make_campaign, make_proposal, paystack):
    paystack.create_transfer.side_effect = PaymentServiceError("Insufficient balance")
    campaign = make_campaign()
    make_proposal(campaign, make_user(), paid=True, marked=True)

    result = CompletionService(db, paystack).set_campaign_status(campaign.id, "completed", admin)

    assert result.campaign.status == CampaignStatusDB.COMPLETED
    assert result.payouts[0].outcome == PayoutOutcome.FAILED
    assert "Insufficient balance" in result.payouts[0].reason
    assert _payouts(db) == []


def test_unpaid_proposal_is_approved_but_skipped(db, admin, make_user, make_campaign, make_proposal, paystack):
    campaign = make_campaign()
    proposal = make_proposal(campaign, make_user(), paid=False, marked=True)

    result = CompletionService(db, paystack).set_campaign_status(campaign.id, "completed", admin)

    assert result.payouts[0].outcome == PayoutOutcome.SKIPPED
    db.refresh(proposal)
    assert proposal.admin_approved_completion is True
    assert proposal.payment_status == PaymentStatusDB.UNPAID


def test_refinalizing_does_not_pay_twice(db, admin, make_user, make_campaign, make_proposal, paystack):
    campaign = make_campaign()
    make_proposal(campaign, make_user(), paid=True, marked=True)
    service = CompletionService(db, paystack)

    service.set_campaign_status(campaign.id, "completed", admin)
    again = service.set_campaign_status(campaign.id, "completed", admin)

    assert again.payouts[0].outcome == PayoutOutcome.ALREADY_PAID
    assert paystack.create_transfer.call_count == 1
    assert len(_payouts(db)) == 1


def test_admin_cannot_mark_completion(db, make_user, make_campaign):
    campaign = make_campaign()
    with pytest.raises(PermissionDenied):
        CompletionService(db).mark_influencer_complete(campaign.id, make_user(UserType.ADMIN))


def test_manual_payout_skips_proposal_left_out_of_completion(
    db, admin, paystack, make_user, make_campaign, make_proposal
):
    campaign = make_campaign(max_influencers=1)
    done = make_proposal(campaign, make_user(), paid=True, marked=True)
    idle = make_proposal(campaign, make_user(), paid=True)

    result = CompletionService(db, paystack).set_campaign_status(campaign.id, "completed", admin)
    assert [r.proposal_id for r in result.payouts] == [done.id]

    with pytest.raises(InvalidState, match="not completed this proposal"):
        PayoutService(db, paystack).execute_payout(idle.id, PayoutPolicy.RAISE)

    db.refresh(idle)
    assert idle.admin_approved_completion is False
    assert idle.payment_status == PaymentStatusDB.PAID
    assert paystack.create_transfer.call_count == 1
    assert len(_payouts(db)) == 1
