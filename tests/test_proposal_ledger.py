from decimal import Decimal

import pytest

from core.paystack_service import PaymentServiceError
from database.models import UserType
from database.marketplace_models import (
    CampaignStatusDB, Notification, PaymentStatusDB, ProposalStatusDB, Transaction,
    TransactionStatusDB, TransactionTypeDB,
)
from services.exceptions import InvalidRequest, InvalidState, NotFound, PermissionDenied
from services.ledger_service import LedgerService
from services.notification_service import NotificationType
from services.proposal_service import ProposalService


def test_create_proposal(db, brand, make_user, make_campaign):
    campaign = make_campaign()
    influencer = make_user()
    proposal = ProposalService(db).create_proposal(influencer, campaign.id, "750", "5 days", "Two reels")

    assert proposal.status == ProposalStatusDB.PENDING
    assert proposal.payment_status == PaymentStatusDB.UNPAID
    assert proposal.amount == Decimal("750.00")
    notice = db.query(Notification).filter(Notification.user_id == brand.id).one()
    assert notice.type == NotificationType.PROPOSAL_RECEIVED.value


def test_create_proposal_validation(db, make_user, make_campaign):
    service = ProposalService(db)
    influencer = make_user()
    campaign = make_campaign()

    with pytest.raises(InvalidRequest, match="between"):
        service.create_proposal(influencer, campaign.id, "99.99", "5 days")
    with pytest.raises(InvalidRequest):
        service.create_proposal(influencer, campaign.id, "0", "5 days")
    with pytest.raises(NotFound):
        service.create_proposal(influencer, "missing", "500", "5 days")
    with pytest.raises(PermissionDenied):
        service.create_proposal(make_user(UserType.BRAND), campaign.id, "500", "5 days")

    closed = make_campaign(status=CampaignStatusDB.PENDING)
    with pytest.raises(InvalidState):
        service.create_proposal(influencer, closed.id, "500", "5 days")


def test_one_proposal_per_influencer(db, make_user, make_campaign):
    service = ProposalService(db)
    influencer = make_user()
    campaign = make_campaign()
    service.create_proposal(influencer, campaign.id, "500", "5 days")

    with pytest.raises(InvalidState, match="already submitted"):
        service.create_proposal(influencer, campaign.id, "600", "3 days")


def test_accept_starts_brand_payment(db, brand, paystack, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    proposal = make_proposal(campaign, make_user(), amount="1000.00", status=ProposalStatusDB.PENDING)

    result = ProposalService(db, paystack).accept_proposal(proposal.id, brand)

    accepted = result["proposal"]
    assert accepted.status == ProposalStatusDB.ACCEPTED
    assert accepted.payment_status == PaymentStatusDB.PENDING
    assert result["payment_error"] is None
    assert result["authorization_url"].endswith(accepted.payment_reference)

    kwargs = paystack.initialize_transaction.call_args.kwargs
    assert kwargs["email"] == brand.email
    assert kwargs["amount"] == Decimal("1000.00")

    tx = db.query(Transaction).filter(Transaction.id == accepted.brand_transaction_id).one()
    assert tx.transaction_type == TransactionTypeDB.DEBIT
    assert tx.status == TransactionStatusDB.PENDING
    assert tx.is_payout is False
    assert (tx.app_fee, tx.influencer_amount) == (Decimal("100.00"), Decimal("900.00"))
    assert tx.user_id == brand.id


def test_accept_survives_processor_outage(db, brand, paystack, make_user, make_campaign, make_proposal):
    paystack.initialize_transaction.side_effect = PaymentServiceError("Payment service error: timeout")
    campaign = make_campaign()
    proposal = make_proposal(campaign, make_user(), status=ProposalStatusDB.PENDING)

    result = ProposalService(db, paystack).accept_proposal(proposal.id, brand)

    assert result["proposal"].status == ProposalStatusDB.ACCEPTED
    assert result["proposal"].payment_status == PaymentStatusDB.UNPAID
    assert "timeout" in result["payment_error"]
    assert db.query(Transaction).count() == 0

    paystack.initialize_transaction.side_effect = lambda **kw: {"reference": kw["reference"], "authorization_url": "u"}
    retried = ProposalService(db, paystack).start_payment(proposal.id, brand)
    assert retried["proposal"].payment_status == PaymentStatusDB.PENDING


def test_only_owning_brand_acts_on_proposal(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    proposal = make_proposal(campaign, make_user(), status=ProposalStatusDB.PENDING)
    service = ProposalService(db)

    with pytest.raises(PermissionDenied):
        service.reject_proposal(proposal.id, make_user(UserType.BRAND))
    with pytest.raises(PermissionDenied):
        service.reject_proposal(proposal.id, make_user())


def test_reject_then_reject_again(db, brand, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    influencer = make_user()
    proposal = make_proposal(campaign, influencer, status=ProposalStatusDB.PENDING)
    service = ProposalService(db)

    rejected = service.reject_proposal(proposal.id, brand)
    assert rejected.status == ProposalStatusDB.REJECTED
    assert rejected.rejected_at is not None
    with pytest.raises(InvalidState, match="already rejected"):
        service.reject_proposal(proposal.id, brand)


def test_restarting_payment_supersedes_pending_attempt(db, brand, paystack, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    proposal = make_proposal(campaign, make_user())
    service = ProposalService(db, paystack)

    first = service.start_payment(proposal.id, brand)
    second = service.start_payment(proposal.id, brand)
    assert first["reference"] != second["reference"]

    ledger = LedgerService(db)
    assert ledger.find_by_reference(first["reference"]).status == TransactionStatusDB.REJECTED
    assert ledger.find_by_reference(second["reference"]).status == TransactionStatusDB.PENDING


def test_completing_a_superseded_checkout_still_pays_the_proposal(db, brand, paystack, make_user, make_campaign, make_proposal):
    proposal = make_proposal(make_campaign(), make_user(), amount="1000.00")
    service = ProposalService(db, paystack)
    first = service.start_payment(proposal.id, brand)
    second = service.start_payment(proposal.id, brand)

    paystack.verify_transaction.return_value = {"status": "success", "amount": 100000, "id": 555}
    ledger = LedgerService(db, paystack)
    settled = ledger.confirm_brand_payment(first["reference"])

    assert settled.status == TransactionStatusDB.APPROVED
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.PAID
    assert proposal.brand_transaction_id == settled.id
    assert proposal.payment_reference == first["reference"]
    assert ledger.find_by_reference(second["reference"]).status == TransactionStatusDB.REJECTED

    # The newer attempt is now the superseded one, and the proposal is paid
    assert ledger.confirm_brand_payment(second["reference"]).status == TransactionStatusDB.REJECTED
    assert paystack.verify_transaction.call_count == 1


def test_abandoned_superseded_checkout_stays_rejected(db, brand, paystack, make_user, make_campaign, make_proposal):
    proposal = make_proposal(make_campaign(), make_user())
    service = ProposalService(db, paystack)
    first = service.start_payment(proposal.id, brand)
    second = service.start_payment(proposal.id, brand)

    paystack.verify_transaction.return_value = {"status": "abandoned"}
    ledger = LedgerService(db, paystack)

    assert ledger.confirm_brand_payment(first["reference"]).status == TransactionStatusDB.REJECTED
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.PENDING
    assert proposal.payment_reference == second["reference"]
    assert ledger.find_by_reference(second["reference"]).status == TransactionStatusDB.PENDING


def _pending_payment(db, brand, paystack, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    influencer = make_user()
    proposal = make_proposal(campaign, influencer, amount="1000.00")
    started = ProposalService(db, paystack).start_payment(proposal.id, brand)
    return proposal, influencer, started["reference"]


def test_confirm_success_marks_proposal_paid(db, brand, paystack, make_user, make_campaign, make_proposal):
    proposal, influencer, reference = _pending_payment(db, brand, paystack, make_user, make_campaign, make_proposal)
    paystack.verify_transaction.return_value = {"status": "success", "amount": 100000, "id": 98765}
    ledger = LedgerService(db, paystack)

    tx = ledger.confirm_brand_payment(reference)
    assert tx.status == TransactionStatusDB.APPROVED
    assert tx.charge_reference == "98765"
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.PAID

    notice = db.query(Notification).filter(Notification.user_id == influencer.id).one()
    assert notice.type == NotificationType.PAYMENT_RECEIVED.value

    # Settled payments are not re-verified
    assert ledger.confirm_brand_payment(reference).status == TransactionStatusDB.APPROVED
    assert paystack.verify_transaction.call_count == 1


def test_confirm_underpaid_charge_fails(db, brand, paystack, make_user, make_campaign, make_proposal):
    proposal, _, reference = _pending_payment(db, brand, paystack, make_user, make_campaign, make_proposal)
    paystack.verify_transaction.return_value = {"status": "success", "amount": 99999, "id": 1}

    tx = LedgerService(db, paystack).confirm_brand_payment(reference)
    assert tx.status == TransactionStatusDB.REJECTED
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.FAILED


def test_confirm_leaves_processing_charge_pending(db, brand, paystack, make_user, make_campaign, make_proposal):
    proposal, _, reference = _pending_payment(db, brand, paystack, make_user, make_campaign, make_proposal)
    paystack.verify_transaction.return_value = {"status": "ongoing"}

    assert LedgerService(db, paystack).confirm_brand_payment(reference).status == TransactionStatusDB.PENDING
    db.refresh(proposal)
    assert proposal.payment_status == PaymentStatusDB.PENDING


def test_confirm_errors(db, brand, paystack, make_user, make_campaign, make_proposal):
    _, _, reference = _pending_payment(db, brand, paystack, make_user, make_campaign, make_proposal)
    ledger = LedgerService(db, paystack)

    with pytest.raises(NotFound):
        ledger.confirm_brand_payment("nope")
    with pytest.raises(InvalidRequest):
        ledger.confirm_brand_payment("")

    paystack.verify_transaction.side_effect = PaymentServiceError("down")
    with pytest.raises(InvalidState, match="Could not verify"):
        ledger.confirm_brand_payment(reference)


def test_transactions_for_and_effective_fee(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    other = make_campaign(title="Other")
    p1 = make_proposal(campaign, make_user(), amount="1000.00", paid=True)
    make_proposal(other, make_user(), amount="200.00", paid=True)
    ledger = LedgerService(db)

    assert ledger.transactions_for() == []
    rows = ledger.transactions_for(campaign_ids=[campaign.id])
    assert [t.proposal_id for t in rows] == [p1.id]
    assert len(ledger.transactions_for(campaign_ids=[campaign.id], proposal_ids=[p1.id])) == 1
    assert len(ledger.transactions_for(campaign_ids=[campaign.id, other.id], is_payout=False)) == 2
    assert ledger.transactions_for(campaign_ids=[campaign.id], is_payout=True) == []

    tx = rows[0]
    tx.app_fee = Decimal("0")
    assert LedgerService.effective_app_fee(tx) == Decimal("100.00")


def test_update_transaction(db, make_user, make_campaign, make_proposal):
    proposal = make_proposal(make_campaign(), make_user(), paid=True)
    ledger = LedgerService(db)

    tx = ledger.update_transaction(proposal.brand_transaction_id, description="Adjusted", charge_reference="CHG_x")
    db.commit()
    db.refresh(tx)
    assert (tx.description, tx.charge_reference) == ("Adjusted", "CHG_x")

    with pytest.raises(NotFound):
        ledger.update_transaction("missing", description="nope")
