import pytest

from database.models import UserType
from database.marketplace_models import CampaignStatusDB, Notification, ProposalStatusDB
from services.completion_service import CompletionService
from services.exceptions import InvalidState, NotFound, PermissionDenied
from services.notification_service import NotificationType


def test_threshold_reached_only_when_every_slot_marked(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign(max_influencers=2)
    first, second = make_user(), make_user()
    make_proposal(campaign, first)
    make_proposal(campaign, second)
    service = CompletionService(db)

    result = service.mark_influencer_complete(campaign.id, first)
    assert result.threshold_reached is False
    assert (result.completed_count, result.required_count) == (1, 2)
    assert "Waiting for 1 more" in result.message
    db.refresh(campaign)
    assert campaign.influencer_completed is False

    result = service.mark_influencer_complete(campaign.id, second)
    assert result.threshold_reached is True
    assert result.completed_count == 2
    db.refresh(campaign)
    assert campaign.influencer_completed is True
    assert campaign.influencer_completed_at is not None
    # Marking never moves the campaign itself
    assert campaign.status == CampaignStatusDB.ACTIVE


def test_marking_twice_is_a_noop(db, brand, make_user, make_campaign, make_proposal):
    campaign = make_campaign(max_influencers=2)
    influencer = make_user()
    proposal = make_proposal(campaign, influencer)
    service = CompletionService(db)

    service.mark_influencer_complete(campaign.id, influencer)
    db.refresh(proposal)
    first_mark = proposal.influencer_completed_at

    again = service.mark_influencer_complete(campaign.id, influencer)
    assert again.already_marked is True
    assert again.completed_count == 1
    db.refresh(proposal)
    assert proposal.influencer_completed_at == first_mark

    sent = db.query(Notification).filter(
        Notification.user_id == brand.id,
        Notification.type == NotificationType.COMPLETION_MARKED.value,
    ).count()
    assert sent == 1


def test_pending_proposal_cannot_mark(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign()
    influencer = make_user()
    make_proposal(campaign, influencer, status=ProposalStatusDB.PENDING)

    with pytest.raises(PermissionDenied):
        CompletionService(db).mark_influencer_complete(campaign.id, influencer)


def test_pending_proposal_does_not_count(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign(max_influencers=2)
    make_proposal(campaign, make_user(), status=ProposalStatusDB.PENDING, marked=True)
    accepted = make_user()
    make_proposal(campaign, accepted)

    result = CompletionService(db).mark_influencer_complete(campaign.id, accepted)
    assert result.completed_count == 1
    assert result.threshold_reached is False


def test_brand_cannot_mark(db, brand, make_campaign):
    campaign = make_campaign()
    with pytest.raises(PermissionDenied):
        CompletionService(db).mark_influencer_complete(campaign.id, brand)


def test_unknown_campaign(db, make_user):
    with pytest.raises(NotFound):
        CompletionService(db).mark_influencer_complete("missing", make_user())


def test_inactive_campaign_rejects_marks(db, make_user, make_campaign, make_proposal):
    campaign = make_campaign(status=CampaignStatusDB.DISPUTED)
    influencer = make_user()
    make_proposal(campaign, influencer)

    with pytest.raises(InvalidState, match="not active"):
        CompletionService(db).mark_influencer_complete(campaign.id, influencer)


def test_completion_summary_visibility(db, brand, admin, make_user, make_campaign, make_proposal):
    campaign = make_campaign(max_influencers=2)
    influencer = make_user()
    make_proposal(campaign, influencer, marked=True)
    service = CompletionService(db)

    summary = service.completion_summary(campaign.id, brand)
    assert summary["completed_count"] == 1
    assert summary["proposals"][0]["counts_toward_threshold"] is True

    assert service.completion_summary(campaign.id, admin)["max_influencers"] == 2
    assert service.completion_summary(campaign.id, influencer)["status"] == "active"

    with pytest.raises(PermissionDenied):
        service.completion_summary(campaign.id, make_user(UserType.BRAND))


def test_required_count_is_capped(db, monkeypatch, make_user, make_campaign, make_proposal):
    monkeypatch.setattr("services.completion_service.MAX_INFLUENCERS_LIMIT", 1)
    campaign = make_campaign(max_influencers=2)
    influencer = make_user()
    make_proposal(campaign, influencer)

    result = CompletionService(db).mark_influencer_complete(campaign.id, influencer)
    assert result.required_count == 1
    assert result.threshold_reached is True
