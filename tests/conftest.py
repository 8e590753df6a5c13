"""Pytest fixtures for ChallengeHub tests."""

from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from challengehub.calculators.fees import compute_fees
from challengehub.database import create_schema, get_engine, make_session_factory
from challengehub.models import Challenge, User
from challengehub.processor.stub import StubProcessor
from challengehub.services.challenge_service import ChallengeService
from challengehub.services.charge_initiator import ChargeInitiator
from challengehub.services.payment_store import PaymentStore
from challengehub.services.submission_service import SubmissionService

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine so separate sessions see committed data."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'challengehub.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def processor() -> StubProcessor:
    return StubProcessor()


async def _make_user(session: AsyncSession, external_id: str, is_creator: bool) -> User:
    store = PaymentStore(session)
    async with store.transaction():
        user = await store.upsert_user(external_id, username=external_id, is_creator=is_creator)
    return user


@pytest.fixture
async def creator(session: AsyncSession) -> User:
    """A user allowed to create challenges."""
    return await _make_user(session, "user_creator_1", is_creator=True)


@pytest.fixture
async def participant(session: AsyncSession) -> User:
    """A user who enters challenges."""
    return await _make_user(session, "user_participant_1", is_creator=False)


@pytest.fixture
async def other_participant(session: AsyncSession) -> User:
    return await _make_user(session, "user_participant_2", is_creator=False)


class ChallengeFactory:
    """Builds challenges in the states tests need."""

    def __init__(self, session: AsyncSession, processor: StubProcessor):
        self.session = session
        self.processor = processor

    async def draft(
        self,
        creator: User,
        reward: Decimal | str = "100.00",
        buyout: bool = False,
        reward_type: str = "USD",
        **kwargs: Any,
    ) -> Challenge:
        """Create a DRAFT challenge with a fee breakdown that matches the policy."""
        service = ChallengeService(self.session)
        if reward_type == "SUBSCRIPTION":
            return await service.create_challenge(
                creator,
                title=kwargs.pop("title", "Subscription challenge"),
                description=kwargs.pop("description", "Win a month of access"),
                reward_type=reward_type,
                reward_subscription_id=kwargs.pop("reward_subscription_id", "plan_test_123"),
                **kwargs,
            )

        breakdown = compute_fees(reward, buyout)
        return await service.create_challenge(
            creator,
            title=kwargs.pop("title", "Best dance video"),
            description=kwargs.pop("description", "Post your best dance with our sound"),
            reward_type=reward_type,
            reward_amount=Decimal(str(reward)),
            buyout_fee_paid=buyout,
            platform_fee=breakdown.platform_fee,
            net_payout=breakdown.net_payout,
            **kwargs,
        )

    async def funded(self, creator: User, **kwargs: Any) -> Challenge:
        """Create a challenge and fund it through the stub processor."""
        challenge = await self.draft(creator, **kwargs)
        initiator = ChargeInitiator(self.session, self.processor)
        if challenge.reward_type == "SUBSCRIPTION":
            await initiator.fund_with_subscription(challenge.challenge_id, creator)
        else:
            result = await initiator.initiate_charge(challenge.challenge_id, creator)
            self.processor.simulate_success(result.processor_payment_id)
            await initiator.confirm_charge(challenge.challenge_id, creator)
        return challenge

    async def submission(self, challenge: Challenge, participant: User):
        return await SubmissionService(self.session).create_submission(
            challenge.challenge_id,
            participant,
            content_url="https://www.tiktok.com/@someone/video/123",
            content_type="TIKTOK",
        )


@pytest.fixture
def factory(session: AsyncSession, processor: StubProcessor) -> ChallengeFactory:
    return ChallengeFactory(session, processor)


def sign_body(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """``sha256=<hex>`` signature header value for a raw body."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def event_body(
    event_type: str,
    processor_payment_id: str | None,
    challenge_id: UUID | str | None = None,
    **data: Any,
) -> bytes:
    """Serialize a processor webhook event."""
    payload: dict[str, Any] = {"id": f"evt_{event_type}", "type": event_type, "data": dict(data)}
    if processor_payment_id is not None:
        payload["data"]["id"] = processor_payment_id
    if challenge_id is not None:
        payload["data"]["metadata"] = {"challenge_id": str(challenge_id), "type": "challenge_funding"}
    return json.dumps(payload).encode()
