from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from core.paystack_service import PaymentServiceError
from database.marketplace_models import (
    CampaignStatusDB, Notification, PaymentStatusDB, Transaction, TransactionStatusDB, TransactionTypeDB,
)
from services.exceptions import InvalidState, NotFound, PayoutFailed
from services.payout_service import PayoutOutcome, PayoutPolicy, PayoutService, payout_reference


@pytest.fixture
def completed_campaign(make_campaign):
    return make_campaign(status=CampaignStatusDB.COMPLETED)


def test_release_records_one_credit_per_proposal(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), amount="1000.00", paid=True, marked=True)
    service = PayoutService(db, paystack)

    result = service.execute_payout(proposal.id, PayoutPolicy.RAISE)

    assert result.outcome == PayoutOutcome.RELEASED
    assert (result.app_fee, result.influencer_amount) == (Decimal("100.00"), Decimal("900.00"))
    assert result.transfer_code == f"TRF_{payout_reference(proposal.id)}"

    kwargs = paystack.create_transfer.call_args.kwargs
    assert kwargs["amount"] == Decimal("900.00")
    assert kwargs["reference"] == f"payout-{proposal.id}"
    assert kwargs["recipient_code"] == "RCP_default"
    assert kwargs["funding_reference"].startswith("CHG_")

    tx = db.query(Transaction).filter(Transaction.id == result.transaction_id).one()
    assert tx.is_payout is True
    assert tx.transaction_type == TransactionTypeDB.CREDIT
    assert tx.status == TransactionStatusDB.APPROVED
    assert tx.amount == Decimal("900.00")
    assert tx.source_transaction_id == proposal.brand_transaction_id

    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.RELEASED
    assert proposal.payout_released_at is not None


def test_second_payout_is_already_paid(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True, marked=True)
    service = PayoutService(db, paystack)

    first = service.execute_payout(proposal.id, PayoutPolicy.SKIP)
    second = service.execute_payout(proposal.id, PayoutPolicy.RAISE)

    assert second.outcome == PayoutOutcome.ALREADY_PAID
    assert second.transaction_id == first.transaction_id
    assert paystack.create_transfer.call_count == 1


def test_campaign_must_be_completed(db, paystack, make_user, make_campaign, make_proposal):
    campaign = make_campaign(status=CampaignStatusDB.DISPUTED)
    proposal = make_proposal(campaign, make_user(), paid=True, marked=True)
    service = PayoutService(db, paystack)

    skipped = service.execute_payout(proposal.id, PayoutPolicy.SKIP)
    assert skipped.outcome == PayoutOutcome.SKIPPED
    assert skipped.reason == "Campaign must be completed before payout"

    with pytest.raises(InvalidState):
        service.execute_payout(proposal.id, PayoutPolicy.RAISE)
    paystack.create_transfer.assert_not_called()


def test_unknown_proposal(db, paystack):
    service = PayoutService(db, paystack)
    assert service.execute_payout("missing").outcome == PayoutOutcome.SKIPPED
    with pytest.raises(NotFound):
        service.execute_payout("missing", PayoutPolicy.RAISE)


def test_unpaid_brand_payment_blocks_payout(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True, marked=True)
    brand_tx = db.query(Transaction).filter(Transaction.id == proposal.brand_transaction_id).one()
    brand_tx.status = TransactionStatusDB.PENDING
    db.commit()

    result = PayoutService(db, paystack).execute_payout(proposal.id)
    assert result.outcome == PayoutOutcome.SKIPPED
    assert result.reason == "Brand payment is not approved"


def test_failed_transfer_leaves_proposal_retryable(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True, marked=True)
    service = PayoutService(db, paystack)

    paystack.create_transfer.side_effect = PaymentServiceError("Recipient bank unavailable")
    with pytest.raises(PayoutFailed, match="Recipient bank unavailable"):
        service.execute_payout(proposal.id, PayoutPolicy.RAISE)

    db.refresh(proposal)
    assert proposal.payout_transaction_id is None
    assert proposal.payment_status == PaymentStatusDB.PAID

    paystack.create_transfer.side_effect = lambda **kw: "TRF_retry"
    assert service.execute_payout(proposal.id, PayoutPolicy.RAISE).outcome == PayoutOutcome.RELEASED


def test_manual_payout_settles_pending_payout(db, paystack, make_user, completed_campaign, make_proposal):
    influencer = make_user(recipient_code=None)
    proposal = make_proposal(completed_campaign, influencer, paid=True, marked=True)
    service = PayoutService(db, paystack)

    pending = service.execute_payout(proposal.id, PayoutPolicy.SKIP)
    assert pending.outcome == PayoutOutcome.PENDING

    with pytest.raises(PayoutFailed, match="payout account"):
        service.execute_payout(proposal.id, PayoutPolicy.RAISE)

    influencer.paystack_recipient_code = "RCP_new"
    db.commit()

    settled = service.execute_payout(proposal.id, PayoutPolicy.RAISE)
    assert settled.outcome == PayoutOutcome.RELEASED
    assert settled.transaction_id == pending.transaction_id
    assert db.query(Transaction).filter(Transaction.is_payout == True).count() == 1  # noqa: E712

    # A batch retry never touches a pending row again
    assert service.execute_payout(proposal.id, PayoutPolicy.SKIP).outcome == PayoutOutcome.ALREADY_PAID


def test_recipient_not_payout_capable(db, paystack, make_user, completed_campaign, make_proposal):
    paystack.is_payout_capable.return_value = False
    proposal = make_proposal(completed_campaign, make_user(), paid=True, marked=True)

    with pytest.raises(PayoutFailed, match="not payout-capable"):
        PayoutService(db, paystack).execute_payout(proposal.id, PayoutPolicy.RAISE)
    paystack.create_transfer.assert_not_called()


def test_run_batch_reports_each_proposal(db, paystack, make_user, completed_campaign, make_proposal):
    paid = make_proposal(completed_campaign, make_user(), paid=True, marked=True)
    unpaid = make_proposal(completed_campaign, make_user(), marked=True)

    results = PayoutService(db, paystack).run_batch([paid.id, unpaid.id])

    assert [r.outcome for r in results] == [PayoutOutcome.RELEASED, PayoutOutcome.SKIPPED]


def test_database_allows_one_payout_row_per_proposal(db, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True)

    def payout_row():
        return Transaction(
            user_id=proposal.influencer_id,
            campaign_id=proposal.campaign_id,
            proposal_id=proposal.id,
            amount=Decimal("900.00"),
            transaction_type=TransactionTypeDB.CREDIT,
            status=TransactionStatusDB.APPROVED,
            is_payout=True,
        )

    db.add(payout_row())
    db.commit()
    db.add(payout_row())
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_payout_needs_a_completed_proposal(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True)
    service = PayoutService(db, paystack)

    with pytest.raises(InvalidState, match="not completed this proposal"):
        service.execute_payout(proposal.id, PayoutPolicy.RAISE)
    assert service.execute_payout(proposal.id, PayoutPolicy.SKIP).outcome == PayoutOutcome.SKIPPED
    paystack.create_transfer.assert_not_called()


def test_released_payout_records_admin_approval(db, paystack, make_user, completed_campaign, make_proposal):
    proposal = make_proposal(completed_campaign, make_user(), paid=True, marked=True)
    assert proposal.admin_approved_completion is False

    PayoutService(db, paystack).execute_payout(proposal.id, PayoutPolicy.RAISE)

    db.refresh(proposal)
    assert proposal.admin_approved_completion is True
    assert proposal.admin_completion_approved_at == proposal.payout_released_at

    notice = db.query(Notification).filter(Notification.user_id == proposal.influencer_id).one()
    assert notice.message == "KES 900.00 has been sent to your payout account."
