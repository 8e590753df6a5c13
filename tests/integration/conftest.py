"""Integration test fixtures: the FastAPI app wired to a SQLite database."""

from collections.abc import AsyncGenerator
from dataclasses import replace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.api.app import create_app
from challengehub.api.dependencies import get_db_session, get_processor
from challengehub.config import get_settings
from tests.conftest import WEBHOOK_SECRET

CREATOR_HEADERS = {
    "X-User-Id": "user_creator_1",
    "X-Username": "creator",
    "X-User-Is-Creator": "true",
}
PARTICIPANT_HEADERS = {
    "X-User-Id": "user_participant_1",
    "X-Username": "participant",
}


@pytest.fixture
def app(session_factory, processor):
    """App with database, processor and settings overridden for tests."""
    app = create_app()

    async def override_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    test_settings = replace(
        get_settings(),
        webhook_secret=WEBHOOK_SECRET,
        company_id="biz_test",
        app_url="http://app.test",
    )

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_processor] = lambda: processor
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for testing the API."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def challenge_payload(reward: str = "100.00", **overrides) -> dict:
    """Create-challenge body with the fee breakdown the UI would show."""
    payload = {
        "title": "Best dance video",
        "description": "Post your best dance with our sound",
        "reward_type": "USD",
        "reward_amount": reward,
        "buyout_fee_paid": False,
        "fee_calculation": {"platform_fee": "10.00", "net_payout": reward},
        "required_tags": ["#dance"],
    }
    payload.update(overrides)
    return payload
