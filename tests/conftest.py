import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker

from auth.dependencies import JWT_ALGORITHM, JWT_SECRET
from core.paystack_service import PaystackService, get_paystack_service
from database.config import get_db, init_db, make_engine
from database.models import User, UserType
from database.marketplace_models import (
    Campaign, Proposal, Transaction, ChatRoom,
    CampaignStatusDB, ProposalStatusDB, PaymentStatusDB,
    TransactionTypeDB, TransactionStatusDB,
)
from services.fees import compute_fee_split


@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def paystack():
    """Paystack client double: every recipient is payout-capable and transfers succeed."""
    client = MagicMock(spec=PaystackService)
    client.initialize_transaction.side_effect = lambda **kw: {
        "reference": kw["reference"],
        "authorization_url": f"https://checkout.paystack.com/{kw['reference']}",
        "access_code": "ACC_test",
    }
    client.verify_transaction.return_value = {"status": "success", "amount": 10**9, "id": 4242}
    client.is_payout_capable.return_value = True
    client.create_transfer.side_effect = lambda **kw: f"TRF_{kw['reference']}"
    return client


@pytest.fixture
def client(db, paystack):
    from server import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paystack_service] = lambda: paystack
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_token(email: str, expires_delta: timedelta = timedelta(hours=1)) -> str:
    """Sign a token the way the account service does."""
    return jwt.encode({"sub": email, "exp": datetime.utcnow() + expires_delta}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.email)}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(user_type=UserType.INFLUENCER, name=None, recipient_code="RCP_default"):
        counter["n"] += 1
        label = name or f"{user_type.value}{counter['n']}"
        user = User(
            email=f"{label.lower().replace(' ', '.')}@example.com",
            name=label,
            user_type=user_type,
            paystack_recipient_code=recipient_code if user_type == UserType.INFLUENCER else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def brand(make_user):
    return make_user(UserType.BRAND, name="Acme")


@pytest.fixture
def admin(make_user):
    return make_user(UserType.ADMIN, name="Ops")


@pytest.fixture
def make_campaign(db, brand):
    def _make(max_influencers=1, status=CampaignStatusDB.ACTIVE, owner=None, title="Summer Launch"):
        campaign = Campaign(
            brand_id=(owner or brand).id,
            title=title,
            budget_min=Decimal("100.00"),
            budget_max=Decimal("5000.00"),
            currency="KES",
            status=status,
            max_influencers=max_influencers,
        )
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    return _make


@pytest.fixture
def make_proposal(db):
    def _make(campaign, influencer, amount="1000.00", status=ProposalStatusDB.ACCEPTED,
              paid=False, marked=False, chat_room=False):
        proposal = Proposal(
            campaign_id=campaign.id,
            influencer_id=influencer.id,
            amount=Decimal(amount),
            delivery_time="7 days",
            status=status,
            payment_status=PaymentStatusDB.UNPAID,
            influencer_marked_complete=marked,
        )
        db.add(proposal)
        db.flush()

        if paid:
            app_fee, influencer_amount = compute_fee_split(amount)
            tx = Transaction(
                user_id=campaign.brand_id,
                campaign_id=campaign.id,
                proposal_id=proposal.id,
                amount=Decimal(amount),
                currency="KES",
                transaction_type=TransactionTypeDB.DEBIT,
                status=TransactionStatusDB.APPROVED,
                is_payout=False,
                app_fee=app_fee,
                influencer_amount=influencer_amount,
                payment_reference=f"pay-{proposal.id}",
                charge_reference=f"CHG_{proposal.id[:8]}",
            )
            db.add(tx)
            db.flush()
            proposal.brand_transaction_id = tx.id
            proposal.payment_reference = tx.payment_reference
            proposal.payment_status = PaymentStatusDB.PAID

        if chat_room:
            db.add(ChatRoom(campaign_id=campaign.id, brand_id=campaign.brand_id, influencer_id=influencer.id))

        db.commit()
        db.refresh(proposal)
        return proposal

    return _make
