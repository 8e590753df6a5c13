"""Integration tests for the HTTP API.

The app runs against a per-test SQLite database and the stub processor.
"""

from decimal import Decimal
from uuid import uuid4

from tests.integration.conftest import (
    CREATOR_HEADERS,
    PARTICIPANT_HEADERS,
    challenge_payload,
)


async def _create(client, **overrides) -> dict:
    response = await client.post(
        "/api/v1/challenges", json=challenge_payload(**overrides), headers=CREATOR_HEADERS
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _fund(client, processor, challenge_id: str) -> dict:
    started = await client.post(f"/api/v1/challenges/{challenge_id}/fund", headers=CREATOR_HEADERS)
    assert started.status_code == 200, started.text
    processor.simulate_success(started.json()["processor_payment_id"])
    confirmed = await client.post(
        f"/api/v1/challenges/{challenge_id}/funding/confirm", headers=CREATOR_HEADERS
    )
    assert confirmed.status_code == 200, confirmed.text
    return confirmed.json()


async def _enter(client, challenge_id: str) -> dict:
    response = await client.post(
        f"/api/v1/challenges/{challenge_id}/submissions",
        json={"content_url": "https://www.tiktok.com/@p/video/1", "content_type": "TIKTOK"},
        headers=PARTICIPANT_HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["webhooks_configured"] is True

    async def test_readiness_check(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestCreateChallenge:
    """Test challenge creation."""

    async def test_create_draft(self, client):
        data = await _create(client)

        assert data["status"] == "DRAFT"
        assert data["is_funded"] is False
        assert Decimal(data["platform_fee"]) == Decimal("10.00")
        assert Decimal(data["net_payout"]) == Decimal("100.00")
        assert data["required_tags"] == ["#dance"]

    async def test_fee_mismatch(self, client):
        body = challenge_payload(fee_calculation={"platform_fee": "5.00", "net_payout": "100.00"})
        response = await client.post("/api/v1/challenges", json=body, headers=CREATOR_HEADERS)

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "FEE_MISMATCH"
        assert data["context"]["platform_fee"] == "10.00"

    async def test_reward_below_minimum(self, client):
        body = challenge_payload(
            reward="1.00", fee_calculation={"platform_fee": "2.00", "net_payout": "1.00"}
        )
        response = await client.post("/api/v1/challenges", json=body, headers=CREATOR_HEADERS)

        assert response.status_code == 400
        assert response.json()["code"] == "REWARD_TOO_LOW"

    async def test_requires_identity(self, client):
        response = await client.post("/api/v1/challenges", json=challenge_payload())
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    async def test_non_creator_forbidden(self, client):
        response = await client.post(
            "/api/v1/challenges", json=challenge_payload(), headers=PARTICIPANT_HEADERS
        )
        assert response.status_code == 403

    async def test_invalid_body(self, client):
        response = await client.post(
            "/api/v1/challenges", json={"title": ""}, headers=CREATOR_HEADERS
        )
        assert response.status_code == 422

    async def test_oversized_reward_rejected(self, client):
        body = challenge_payload(
            reward="1e30", fee_calculation={"platform_fee": "1e29", "net_payout": "1e30"}
        )
        response = await client.post("/api/v1/challenges", json=body, headers=CREATOR_HEADERS)
        assert response.status_code == 422

    async def test_negative_reward_rejected(self, client):
        response = await client.post(
            "/api/v1/challenges", json=challenge_payload(reward="-5.00"), headers=CREATOR_HEADERS
        )
        assert response.status_code == 422


class TestListChallenges:
    """Only funded public challenges are listed."""

    async def test_lists_funded_only(self, client, processor):
        funded = await _create(client, title="Funded dance")
        await _create(client, title="Still a draft")
        await _fund(client, processor, funded["challenge_id"])

        response = await client.get("/api/v1/challenges")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["total_pages"] == 1
        assert [c["challenge_id"] for c in data["items"]] == [funded["challenge_id"]]

    async def test_search_and_pagination(self, client, processor):
        for title in ("Dance one", "Dance two", "Cooking"):
            created = await _create(client, title=title)
            await _fund(client, processor, created["challenge_id"])

        response = await client.get("/api/v1/challenges", params={"search": "dance", "page_size": 1})

        data = response.json()
        assert data["total"] == 2
        assert data["total_pages"] == 2
        assert len(data["items"]) == 1

    async def test_draft_hidden_from_others(self, client):
        draft = await _create(client)

        response = await client.get(
            f"/api/v1/challenges/{draft['challenge_id']}", headers=PARTICIPANT_HEADERS
        )
        assert response.status_code == 404
        assert response.json()["code"] == "CHALLENGE_NOT_FOUND"

        own = await client.get(f"/api/v1/challenges/{draft['challenge_id']}", headers=CREATOR_HEADERS)
        assert own.status_code == 200


class TestFunding:
    """Test the funding endpoints."""

    async def test_fund_returns_checkout(self, client, processor):
        draft = await _create(client)

        response = await client.post(
            f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "requires_confirmation"
        assert data["redirect_required"] is True
        assert data["checkout_url"].startswith("https://checkout.stub.local/")
        assert Decimal(data["amount"]) == Decimal("110.00")

        request = processor.charge_requests[-1]
        assert request.return_url == f"http://app.test/challenges/{draft['challenge_id']}/fund/success"
        assert request.metadata["challenge_id"] == draft["challenge_id"]

    async def test_confirm_funds_challenge(self, client, processor):
        draft = await _create(client)

        data = await _fund(client, processor, draft["challenge_id"])
        assert data["status"] == "funded"

        status_response = await client.get(
            f"/api/v1/challenges/{draft['challenge_id']}/funding", headers=CREATOR_HEADERS
        )
        funding = status_response.json()
        assert funding["is_funded"] is True
        assert funding["status"] == "ACTIVE"
        assert {p["type"] for p in funding["payments"]} == {"FUNDING", "PLATFORM_FEE"}
        assert {p["status"] for p in funding["payments"]} == {"COMPLETED"}
        assert Decimal(funding["fees"]["total_cost"]) == Decimal("110.00")

    async def test_fund_twice_conflicts(self, client, processor):
        draft = await _create(client)
        await _fund(client, processor, draft["challenge_id"])

        response = await client.post(
            f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS
        )
        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_FUNDED"

    async def test_processor_rejects_charge(self, client, processor):
        draft = await _create(client)
        processor.fail_next("create_charge", "Card declined", code="card_declined", status_code=402)

        response = await client.post(
            f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS
        )
        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "PAYMENT_CREATION_FAILED"
        assert body["context"]["payment_status"] == "FAILED"

    async def test_processor_unavailable_keeps_charge_pending(self, client, processor):
        draft = await _create(client)
        processor.fail_next("create_charge")

        response = await client.post(
            f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS
        )
        assert response.status_code == 502
        assert response.json()["context"]["payment_status"] == "PENDING"

        funding = await client.get(
            f"/api/v1/challenges/{draft['challenge_id']}/funding", headers=CREATOR_HEADERS
        )
        assert {p["status"] for p in funding.json()["payments"]} == {"PENDING"}

    async def test_funding_status_owner_only(self, client):
        draft = await _create(client)
        response = await client.get(
            f"/api/v1/challenges/{draft['challenge_id']}/funding", headers=PARTICIPANT_HEADERS
        )
        assert response.status_code == 403

    async def test_unknown_challenge(self, client):
        response = await client.post(f"/api/v1/challenges/{uuid4()}/fund", headers=CREATOR_HEADERS)
        assert response.status_code == 404

    async def test_unexpected_error_is_500(self, client, processor, monkeypatch):
        draft = await _create(client)

        async def broken(request):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(processor, "create_charge", broken)
        response = await client.post(
            f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS
        )

        assert response.status_code == 500
        assert response.json() == {"detail": "An unexpected error occurred", "code": "INTERNAL_ERROR"}


class TestSubmissionsAndPayouts:
    """Test entering, reviewing and paying."""

    async def test_enter_review_and_pay(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])
        submission = await _enter(client, challenge["challenge_id"])
        assert submission["status"] == "PENDING"

        listed = await client.get(
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions", headers=CREATOR_HEADERS
        )
        assert [s["submission_id"] for s in listed.json()] == [submission["submission_id"]]

        response = await client.patch(
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions/"
            f"{submission['submission_id']}/review",
            json={"action": "approve"},
            headers=CREATOR_HEADERS,
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["submission"]["status"] == "PAID"
        assert Decimal(data["payout"]["amount"]) == Decimal("100.00")
        assert data["payout"]["currency"] == "USD"
        assert processor.payout_requests[-1].destination_id == "user_participant_1"

    async def test_enter_draft_rejected(self, client):
        challenge = await _create(client)
        response = await client.post(
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions",
            json={"content_url": "https://x.test/v"},
            headers=PARTICIPANT_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "CHALLENGE_NOT_ACTIVE"

    async def test_payout_failure_then_retry(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])
        submission = await _enter(client, challenge["challenge_id"])
        base = (
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions/"
            f"{submission['submission_id']}"
        )

        processor.fail_next("pay_user", "Insufficient platform balance")
        failed = await client.patch(
            f"{base}/review", json={"action": "approve"}, headers=CREATOR_HEADERS
        )

        assert failed.status_code == 502
        body = failed.json()
        assert body["code"] == "PAYOUT_FAILED"
        assert body["context"]["submission_status"] == "APPROVED"

        retried = await client.post(f"{base}/payout", headers=CREATOR_HEADERS)
        assert retried.status_code == 200, retried.text
        assert retried.json()["transaction_id"].startswith("tr_stub_")

        again = await client.post(f"{base}/payout", headers=CREATOR_HEADERS)
        assert again.status_code == 409

    async def test_reject(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])
        submission = await _enter(client, challenge["challenge_id"])

        response = await client.patch(
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions/"
            f"{submission['submission_id']}/review",
            json={"action": "reject", "rejection_reason": "Off topic"},
            headers=CREATOR_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["submission"]["status"] == "REJECTED"
        assert data["payout"] is None
        assert processor.payout_requests == []


class TestParticipantSubmissions:
    """Participants see their own entries and payout status."""

    async def test_failed_payout_visible_to_participant(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])
        submission = await _enter(client, challenge["challenge_id"])

        processor.fail_next("pay_user", "Insufficient platform balance")
        await client.patch(
            f"/api/v1/challenges/{challenge['challenge_id']}/submissions/"
            f"{submission['submission_id']}/review",
            json={"action": "approve"},
            headers=CREATOR_HEADERS,
        )

        response = await client.get("/api/v1/submissions", headers=PARTICIPANT_HEADERS)

        assert response.status_code == 200, response.text
        [entry] = response.json()
        assert entry["submission"]["submission_id"] == submission["submission_id"]
        assert entry["submission"]["status"] == "APPROVED"
        assert entry["challenge_title"] == "Best dance video"
        assert Decimal(entry["reward_amount"]) == Decimal("100.00")
        assert entry["payout_status"] == "FAILED"
        assert entry["payouts"][0]["failure_reason"] == "Insufficient platform balance"

    async def test_only_own_submissions(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])
        await _enter(client, challenge["challenge_id"])

        response = await client.get("/api/v1/submissions", headers=CREATOR_HEADERS)
        assert response.status_code == 200
        assert response.json() == []

    async def test_requires_identity(self, client):
        response = await client.get("/api/v1/submissions")
        assert response.status_code == 401


class TestCreatorDashboard:
    """Creators list and clean up their own challenges."""

    async def test_lists_drafts_and_funded(self, client, processor):
        draft = await _create(client, title="Draft one")
        funded = await _create(client, title="Funded one")
        await _fund(client, processor, funded["challenge_id"])

        response = await client.get("/api/v1/user/challenges", headers=CREATOR_HEADERS)

        assert response.status_code == 200
        by_id = {c["challenge_id"]: c for c in response.json()}
        assert by_id[draft["challenge_id"]]["status"] == "DRAFT"
        assert by_id[funded["challenge_id"]]["status"] == "ACTIVE"

        others = await client.get("/api/v1/user/challenges", headers=PARTICIPANT_HEADERS)
        assert others.json() == []

    async def test_delete_draft(self, client):
        draft = await _create(client)

        response = await client.delete(
            f"/api/v1/challenges/{draft['challenge_id']}", headers=CREATOR_HEADERS
        )

        assert response.status_code == 204
        gone = await client.get(f"/api/v1/challenges/{draft['challenge_id']}", headers=CREATOR_HEADERS)
        assert gone.status_code == 404

    async def test_delete_after_funding_attempt_conflicts(self, client, processor):
        draft = await _create(client)
        await client.post(f"/api/v1/challenges/{draft['challenge_id']}/fund", headers=CREATOR_HEADERS)

        response = await client.delete(
            f"/api/v1/challenges/{draft['challenge_id']}", headers=CREATOR_HEADERS
        )

        assert response.status_code == 409
        assert response.json()["code"] == "HAS_PAYMENTS"

    async def test_delete_funded_conflicts(self, client, processor):
        challenge = await _create(client)
        await _fund(client, processor, challenge["challenge_id"])

        response = await client.delete(
            f"/api/v1/challenges/{challenge['challenge_id']}", headers=CREATOR_HEADERS
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATUS"

    async def test_delete_by_other_user_forbidden(self, client):
        draft = await _create(client)
        response = await client.delete(
            f"/api/v1/challenges/{draft['challenge_id']}", headers=PARTICIPANT_HEADERS
        )
        assert response.status_code == 403
