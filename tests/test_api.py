"""Integration tests for API endpoints"""

import pytest
from httpx import AsyncClient

FEEDBACK = (
    "Strong opening line, but the second paragraph repeats the first. "
    "Cut it and end on the question instead."
)


@pytest.fixture
def request_data() -> dict:
    return {
        "category": "writing",
        "media_type": "text",
        "text_content": "Hi! I love hiking and terrible puns.",
        "context": "Does my bio sound friendly enough?",
        "tier": "basic",
    }


def verdict_data(request_id: str) -> dict:
    return {"request_id": request_id, "rating": 7, "feedback": FEEDBACK, "tone": "honest"}


async def initialize(client: AsyncClient, headers: dict) -> dict:
    response = await client.post("/api/v1/auth/initialize", headers=headers)
    assert response.status_code == 200
    return response.json()


class TestAuthAndProfile:
    async def test_initialize_then_profile(self, client, auth_headers):
        headers = auth_headers("sub-1", "pat@example.com")

        first = await initialize(client, headers)
        second = await initialize(client, headers)

        assert first["is_new_user"] is True
        assert first["profile"]["credits"] == 3
        assert first["profile"]["display_name"] == "pat"
        assert second["is_new_user"] is False

        me = await client.get("/api/v1/profile/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["id"] == "sub-1"

    async def test_missing_token(self, client):
        response = await client.get("/api/v1/profile/me")
        assert response.status_code == 401

    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/v1/profile/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_profile_before_initialize(self, client, auth_headers):
        response = await client.get("/api/v1/profile/me", headers=auth_headers("never-initialized"))

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "PROFILE_NOT_FOUND"
        assert "timestamp" in body

    async def test_update_profile(self, client, auth_headers):
        headers = auth_headers("sub-2")
        await initialize(client, headers)

        response = await client.patch(
            "/api/v1/profile/me", json={"display_name": "Riley", "is_judge": False}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["display_name"] == "Riley"
        assert response.json()["is_judge"] is False


class TestRequestFlow:
    async def test_create_request_and_exhaust_credits(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=1)
        headers = auth_headers("submitter")

        created = await client.post("/api/v1/requests", json=request_data, headers=headers)
        assert created.status_code == 201
        body = created.json()
        assert body["status"] == "open"
        assert body["target_verdict_count"] == 3
        assert body["received_verdict_count"] == 0

        rejected = await client.post("/api/v1/requests", json=request_data, headers=headers)
        assert rejected.status_code == 402
        assert rejected.json()["error"] == "INSUFFICIENT_CREDITS"

        listing = await client.get("/api/v1/requests", headers=headers)
        assert listing.json()["total"] == 1

        balance = await client.get("/api/v1/credits/balance", headers=headers)
        assert balance.json()["credits"] == 0

    @pytest.mark.parametrize(
        "changes",
        [
            {"category": "fashion"},
            {"context": "Too short"},
            {"media_type": "photo"},
            {"tier": "platinum"},
        ],
    )
    async def test_validation_errors(self, client, auth_headers, make_profile, request_data, changes):
        await make_profile("submitter", credits=5)

        response = await client.post(
            "/api/v1/requests", json={**request_data, **changes}, headers=auth_headers("submitter")
        )

        assert response.status_code == 422

    async def test_full_judging_round(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=1)
        for judge in ("j1", "j2", "j3", "j4"):
            await make_profile(judge)

        created = await client.post("/api/v1/requests", json=request_data, headers=auth_headers("submitter"))
        request_id = created.json()["id"]

        own = await client.post(
            "/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("submitter")
        )
        assert own.status_code == 409
        assert own.json()["error"] == "CANNOT_JUDGE_OWN_REQUEST"

        first = await client.post("/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("j1"))
        assert first.status_code == 201
        assert first.json()["request"]["status"] == "in_progress"
        assert first.json()["earning_amount"] == 0.5

        again = await client.post("/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("j1"))
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_JUDGED"
        assert again.json()["message"] == "You've already responded to this request"

        await client.post("/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("j2"))
        last = await client.post("/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("j3"))
        assert last.json()["request"]["status"] == "completed"
        assert last.json()["request"]["received_verdict_count"] == 3

        late = await client.post("/api/v1/judge/verdicts", json=verdict_data(request_id), headers=auth_headers("j4"))
        assert late.status_code == 409
        assert late.json()["error"] == "REQUEST_CLOSED"

        summary = await client.get("/api/v1/judge/earnings/summary", headers=auth_headers("j1"))
        assert summary.json() == {
            "total_earned": 0.5,
            "pending": 0.5,
            "available_for_payout": 0.0,
            "paid": 0.0,
        }

        verdicts = await client.get(f"/api/v1/requests/{request_id}/verdicts", headers=auth_headers("submitter"))
        assert len(verdicts.json()) == 3

    async def test_non_judge_cannot_submit(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=1)
        await make_profile("viewer", is_judge=False)
        created = await client.post("/api/v1/requests", json=request_data, headers=auth_headers("submitter"))

        response = await client.post(
            "/api/v1/judge/verdicts", json=verdict_data(created.json()["id"]), headers=auth_headers("viewer")
        )

        assert response.status_code == 403
        assert response.json()["error"] == "NOT_A_JUDGE"

    async def test_short_feedback_is_rejected(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=1)
        await make_profile("j1")
        created = await client.post("/api/v1/requests", json=request_data, headers=auth_headers("submitter"))

        payload = {**verdict_data(created.json()["id"]), "feedback": "Looks fine."}
        response = await client.post("/api/v1/judge/verdicts", json=payload, headers=auth_headers("j1"))

        assert response.status_code == 422

    async def test_cancel_and_delete(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=2)
        headers = auth_headers("submitter")
        first = (await client.post("/api/v1/requests", json=request_data, headers=headers)).json()
        second = (await client.post("/api/v1/requests", json=request_data, headers=headers)).json()

        cancelled = await client.post(f"/api/v1/requests/{first['id']}/cancel", headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        again = await client.post(f"/api/v1/requests/{first['id']}/cancel", headers=headers)
        assert again.status_code == 409
        assert again.json()["error"] == "INVALID_TRANSITION"

        deleted = await client.delete(f"/api/v1/requests/{second['id']}", headers=headers)
        assert deleted.status_code == 204
        missing = await client.get(f"/api/v1/requests/{second['id']}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["error"] == "REQUEST_NOT_FOUND"

    async def test_judge_queue(self, client, auth_headers, make_profile, request_data):
        await make_profile("submitter", credits=1)
        await make_profile("j1")
        created = await client.post("/api/v1/requests", json=request_data, headers=auth_headers("submitter"))

        queue = await client.get("/api/v1/judge/queue", headers=auth_headers("j1"))

        assert queue.status_code == 200
        assert [r["id"] for r in queue.json()["requests"]] == [created.json()["id"]]


class TestCreditsAndAdmin:
    async def test_packages_are_public(self, client):
        response = await client.get("/api/v1/credits/packages")

        assert response.status_code == 200
        prices = {p["package_id"]: p["price"] for p in response.json()}
        assert prices == {"starter": 17.45, "popular": 34.9, "value": 87.25, "pro": 174.5}

    async def test_transactions_after_signup(self, client, auth_headers):
        headers = auth_headers("sub-3")
        await initialize(client, headers)

        response = await client.get("/api/v1/credits/transactions", headers=headers)

        assert response.status_code == 200
        transactions = response.json()["transactions"]
        assert [t["transaction_type"] for t in transactions] == ["signup_bonus"]

    async def test_admin_endpoints_require_admin(self, client, auth_headers, make_profile):
        await make_profile("regular")

        response = await client.post("/api/v1/admin/earnings/release", headers=auth_headers("regular"))

        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"

    async def test_admin_grant_and_release(self, client, auth_headers, make_profile):
        await make_profile("boss", is_admin=True)
        await make_profile("lucky", credits=0)

        granted = await client.post(
            "/api/v1/admin/credits/grant",
            json={"user_id": "lucky", "amount": 5, "reason": "Support goodwill"},
            headers=auth_headers("boss"),
        )
        assert granted.status_code == 200
        assert granted.json()["credits"] == 5

        released = await client.post("/api/v1/admin/earnings/release", headers=auth_headers("boss"))
        assert released.json() == {"released": 0}

        payout = await client.post("/api/v1/admin/earnings/lucky/payout", headers=auth_headers("boss"))
        assert payout.status_code == 400
        assert payout.json()["error"] == "PAYOUT_BELOW_MINIMUM"
