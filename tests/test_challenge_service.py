"""Tests for challenge creation, listing and visibility."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from challengehub.models import Challenge, utcnow
from challengehub.services.challenge_service import ChallengeService
from challengehub.services.charge_initiator import ChargeInitiator
from challengehub.services.errors import (
    ConflictError,
    FeeMismatchError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from challengehub.services.payment_store import PaymentStore


async def _create(session, creator, **overrides):
    fields = {
        "title": "Best dance video",
        "description": "Post your best dance with our sound",
        "reward_type": "USD",
        "reward_amount": Decimal("100.00"),
        "platform_fee": Decimal("10.00"),
        "net_payout": Decimal("100.00"),
    }
    fields.update(overrides)
    return await ChallengeService(session).create_challenge(creator, **fields)


class TestCreateChallenge:
    """Test challenge creation rules."""

    async def test_creates_draft_with_server_fees(self, session, creator):
        challenge = await _create(session, creator, required_tags=["#dance", "#brand"])

        assert challenge.status == "DRAFT"
        assert challenge.is_funded is False
        assert challenge.platform_fee == Decimal("10.00")
        assert challenge.net_payout == Decimal("100.00")
        assert challenge.required_tags == ["#dance", "#brand"]
        assert challenge.creator_id == creator.user_id

    async def test_client_fee_within_a_cent_is_accepted(self, session, creator):
        """Server values are stored even when the client rounded differently."""
        challenge = await _create(
            session,
            creator,
            reward_amount=Decimal("123.45"),
            platform_fee=Decimal("12.34"),
            net_payout=Decimal("123.45"),
        )
        assert challenge.platform_fee == Decimal("12.35")

    async def test_fee_mismatch(self, session, creator):
        """A tampered breakdown is rejected with the server breakdown attached."""
        with pytest.raises(FeeMismatchError) as exc_info:
            await _create(session, creator, platform_fee=Decimal("1.00"), net_payout=Decimal("109.00"))

        assert exc_info.value.code == "FEE_MISMATCH"
        assert exc_info.value.context["platform_fee"] == "10.00"
        assert exc_info.value.context["total_cost"] == "110.00"

    async def test_missing_client_fees(self, session, creator):
        with pytest.raises(FeeMismatchError):
            await _create(session, creator, platform_fee=None, net_payout=None)

    async def test_buyout(self, session, creator):
        challenge = await _create(
            session,
            creator,
            buyout_fee_paid=True,
            platform_fee=Decimal("0.00"),
            net_payout=Decimal("100.00"),
        )
        assert challenge.buyout_fee_paid is True
        assert challenge.platform_fee == Decimal("0.00")

    async def test_reward_below_minimum(self, session, creator):
        with pytest.raises(ValidationError) as exc_info:
            await _create(
                session,
                creator,
                reward_amount=Decimal("1.50"),
                platform_fee=Decimal("2.00"),
                net_payout=Decimal("1.50"),
            )
        assert exc_info.value.code == "REWARD_TOO_LOW"

    @pytest.mark.parametrize("amount", ["1e30", "10000000000.00", "NaN", "Infinity"])
    async def test_unrepresentable_reward_rejected(self, session, creator, amount):
        with pytest.raises(ValidationError) as exc_info:
            await _create(session, creator, reward_amount=Decimal(amount))
        assert exc_info.value.code == "INVALID_AMOUNT"

    async def test_total_cost_must_fit(self, session, creator):
        """A reward that fits alone but not with its fee is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await _create(
                session,
                creator,
                reward_amount=Decimal("9999999999.00"),
                platform_fee=Decimal("999999999.90"),
                net_payout=Decimal("9999999999.00"),
            )
        assert exc_info.value.code == "INVALID_AMOUNT"
        assert exc_info.value.context["total_cost"] == "10999999998.90"

    async def test_largest_reward_accepted(self, session, creator):
        challenge = await _create(
            session,
            creator,
            reward_amount=Decimal("9000000000.00"),
            platform_fee=Decimal("900000000.00"),
            net_payout=Decimal("9000000000.00"),
        )
        assert challenge.platform_fee == Decimal("900000000.00")

    async def test_non_creator_rejected(self, session, participant):
        with pytest.raises(PermissionDeniedError):
            await _create(session, participant)

    async def test_missing_title(self, session, creator):
        with pytest.raises(ValidationError) as exc_info:
            await _create(session, creator, title="  ")
        assert exc_info.value.code == "MISSING_FIELD"

    async def test_unknown_reward_type(self, session, creator):
        with pytest.raises(ValidationError) as exc_info:
            await _create(session, creator, reward_type="BTC")
        assert exc_info.value.code == "INVALID_REWARD_TYPE"

    async def test_usd_requires_amount(self, session, creator):
        with pytest.raises(ValidationError):
            await _create(session, creator, reward_amount=None)

    async def test_past_deadline(self, session, creator):
        with pytest.raises(ValidationError) as exc_info:
            await _create(session, creator, deadline=utcnow() - timedelta(hours=1))
        assert exc_info.value.code == "INVALID_DEADLINE"

    async def test_private_requires_company(self, session, creator):
        with pytest.raises(ValidationError):
            await _create(session, creator, visibility="PRIVATE")

        challenge = await _create(session, creator, visibility="PRIVATE", company_id="biz_1")
        assert challenge.visibility == "PRIVATE"

    async def test_subscription_reward(self, session, creator):
        """Subscription rewards carry no money and no fees."""
        challenge = await ChallengeService(session).create_challenge(
            creator,
            title="Win a month",
            description="Best review wins access",
            reward_type="SUBSCRIPTION",
            reward_subscription_id="plan_abc",
        )
        assert challenge.reward_amount == Decimal("0.00")
        assert challenge.platform_fee == Decimal("0.00")
        assert challenge.reward_subscription_id == "plan_abc"

    async def test_subscription_requires_plan(self, session, creator):
        with pytest.raises(ValidationError):
            await ChallengeService(session).create_challenge(
                creator,
                title="Win a month",
                description="Best review wins access",
                reward_type="SUBSCRIPTION",
            )


class TestListAndVisibility:
    """Test public listing and per-viewer visibility."""

    async def test_only_funded_public_challenges_listed(self, session, creator, factory):
        funded = await factory.funded(creator, title="Funded one")
        await factory.draft(creator, title="Draft one")
        await factory.funded(
            creator, title="Private one", visibility="PRIVATE", company_id="biz_1"
        )

        items, total = await ChallengeService(session).list_active_challenges()

        assert total == 1
        assert [c.challenge_id for c in items] == [funded.challenge_id]

    async def test_filters_and_search(self, session, creator, factory):
        await factory.funded(creator, title="Dance challenge", reward="50.00")
        await factory.funded(creator, title="Cooking challenge", reward="200.00")

        service = ChallengeService(session)
        items, total = await service.list_active_challenges(search="cook")
        assert total == 1
        assert items[0].title == "Cooking challenge"

        items, _ = await service.list_active_challenges(sort="reward")
        assert [c.title for c in items] == ["Cooking challenge", "Dance challenge"]

        _, total = await service.list_active_challenges(reward_type="USDC")
        assert total == 0

    async def test_pagination(self, session, creator, factory):
        for i in range(3):
            await factory.funded(creator, title=f"Challenge {i}")

        items, total = await ChallengeService(session).list_active_challenges(page=2, page_size=2)
        assert total == 3
        assert len(items) == 1

    async def test_draft_visible_to_owner_only(self, session, creator, participant, factory):
        draft = await factory.draft(creator)
        service = ChallengeService(session)

        assert (await service.get_challenge(draft.challenge_id, creator)).challenge_id == draft.challenge_id
        with pytest.raises(NotFoundError):
            await service.get_challenge(draft.challenge_id, participant)

    async def test_funding_status_owner_only(self, session, creator, participant, factory):
        challenge = await factory.funded(creator)
        service = ChallengeService(session)

        snapshot = await service.get_funding_status(challenge.challenge_id, creator)
        assert snapshot.breakdown.total_cost == Decimal("110.00")
        assert {p.type for p in snapshot.payments} == {"FUNDING", "PLATFORM_FEE"}

        with pytest.raises(PermissionDeniedError):
            await service.get_funding_status(challenge.challenge_id, participant)

    async def test_subscription_funding_status_has_no_fees(self, session, creator, factory):
        challenge = await factory.funded(creator, reward_type="SUBSCRIPTION")
        snapshot = await ChallengeService(session).get_funding_status(challenge.challenge_id, creator)
        assert snapshot.breakdown.platform_fee == Decimal("0.00")
        assert snapshot.breakdown.total_cost == Decimal("0.00")


class TestCreatorChallenges:
    """Test the creator's own challenge list."""

    async def test_lists_all_statuses_for_owner(self, session, creator, factory):
        draft = await factory.draft(creator, title="Draft one")
        funded = await factory.funded(creator, title="Funded one")

        challenges = await ChallengeService(session).list_creator_challenges(creator)

        assert {c.challenge_id for c in challenges} == {draft.challenge_id, funded.challenge_id}
        assert {c.status for c in challenges} == {"DRAFT", "ACTIVE"}

    async def test_other_users_see_none(self, session, creator, participant, factory):
        await factory.funded(creator)
        assert await ChallengeService(session).list_creator_challenges(participant) == []


class TestDeleteChallenge:
    """Drafts without funding attempts can be deleted by their creator."""

    async def test_delete_draft(self, session, session_factory, creator, factory):
        draft = await factory.draft(creator)
        challenge_id = draft.challenge_id

        await ChallengeService(session).delete_challenge(challenge_id, creator)

        async with session_factory() as fresh:
            assert await fresh.get(Challenge, challenge_id) is None

    async def test_funded_challenge_kept(self, session, session_factory, creator, factory):
        funded = await factory.funded(creator)
        challenge_id = funded.challenge_id

        with pytest.raises(ConflictError) as exc_info:
            await ChallengeService(session).delete_challenge(challenge_id, creator)

        assert exc_info.value.code == "INVALID_STATUS"
        async with session_factory() as fresh:
            assert await fresh.get(Challenge, challenge_id) is not None

    async def test_draft_with_funding_attempt_kept(
        self, session, session_factory, creator, factory, processor
    ):
        """A draft whose charge is pending keeps its payment rows."""
        draft = await factory.draft(creator)
        challenge_id = draft.challenge_id
        await ChargeInitiator(session, processor).initiate_charge(challenge_id, creator)

        with pytest.raises(ConflictError) as exc_info:
            await ChallengeService(session).delete_challenge(challenge_id, creator)

        assert exc_info.value.code == "HAS_PAYMENTS"
        async with session_factory() as fresh:
            assert await fresh.get(Challenge, challenge_id) is not None
            assert len(await PaymentStore(fresh).list_challenge_payments(challenge_id)) == 2

    async def test_only_creator_deletes(self, session, creator, participant, factory):
        draft = await factory.draft(creator)
        with pytest.raises(PermissionDeniedError):
            await ChallengeService(session).delete_challenge(draft.challenge_id, participant)

    async def test_missing_challenge(self, session, creator):
        with pytest.raises(NotFoundError):
            await ChallengeService(session).delete_challenge(uuid4(), creator)
