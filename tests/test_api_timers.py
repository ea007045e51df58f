"""Tests for pack timer API endpoints."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from boosterbattle.services import pack_timers
from boosterbattle.services.rate_limits import SlidingWindowRateLimiter

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


async def start(client: AsyncClient, headers=ALICE, pack_type="humanoid", hours=4):
    return await client.post(
        "/timers", json={"pack_type": pack_type, "delay_hours": hours}, headers=headers
    )


class TestStartTimer:
    async def test_start(self, client: AsyncClient) -> None:
        """Starting a timer returns its countdown."""
        response = await start(client, hours=8)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["pack_type"] == "humanoid"
        assert data["target_delay_hours"] == 8
        assert data["ready"] is False
        assert data["time_remaining"] in ("08:00:00", "07:59:59")

    async def test_requires_identity(self, client: AsyncClient) -> None:
        """Missing identity header is 401."""
        response = await client.post("/timers", json={"pack_type": "humanoid", "delay_hours": 4})

        assert response.status_code == 401
        assert response.json()["failure"]["kind"] == "unauthenticated"

    async def test_delay_out_of_range(self, client: AsyncClient) -> None:
        """Out-of-range waits are a 400 with the failure envelope."""
        response = await start(client, hours=30)

        assert response.status_code == 400
        data = response.json()
        assert data["failure"]["kind"] == "invalid_input"
        assert "between 4 and 24" in data["detail"]

    async def test_unknown_pack_type(self, client: AsyncClient) -> None:
        """Unknown pack types are a 400."""
        response = await start(client, pack_type="vehicle")

        assert response.status_code == 400
        assert "humanoid" in response.json()["failure"]["suggestion"]


class TestListTimers:
    async def test_lists_own_timers(self, client: AsyncClient) -> None:
        """Lists the caller's timers only."""
        await start(client)
        await start(client, headers=BOB)

        response = await client.get("/timers", headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert data["owner_id"] == "alice"
        assert len(data["timers"]) == 1
        assert data["timers"][0]["gold_chance_percent"] == pytest.approx(1.0)

    async def test_elapsed_timer_reads_ready(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An elapsed timer is listed as ready before it is claimed."""
        await start(client)
        real_now = pack_timers.utc_now
        monkeypatch.setattr(
            "boosterbattle.api.timers.utc_now", lambda: real_now() + timedelta(hours=5)
        )

        timer = (await client.get("/timers", headers=ALICE)).json()["timers"][0]

        assert timer["status"] == "ready"
        assert timer["ready"] is True
        assert timer["time_remaining"] == "00:00:00"


class TestClaim:
    async def test_claim_too_early(self, client: AsyncClient) -> None:
        """Claiming early is a 400 naming the wait left."""
        timer_id = (await start(client)).json()["id"]

        response = await client.post(f"/timers/{timer_id}/claim", headers=ALICE)

        assert response.status_code == 400
        assert "minutes remaining" in response.json()["detail"]

    async def test_claim_when_ready(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A finished timer grants a card exactly once."""
        timer_id = (await start(client)).json()["id"]
        real_now = pack_timers.utc_now
        monkeypatch.setattr(pack_timers, "utc_now", lambda: real_now() + timedelta(hours=5))

        response = await client.post(f"/timers/{timer_id}/claim", headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert data["card"]["owner_id"] == "alice"
        assert data["card"]["card_type"] == "humanoid"
        assert data["card"]["rarity"] in ("bronze", "silver", "gold")

        again = await client.post(f"/timers/{timer_id}/claim", headers=ALICE)
        assert again.status_code == 400
        assert "already completed" in again.json()["detail"]

        cards = (await client.get("/cards", headers=ALICE)).json()
        assert cards["total_cards"] == 1

    async def test_claim_foreign_timer(self, client: AsyncClient) -> None:
        """Another player's timer is a 404."""
        timer_id = (await start(client)).json()["id"]

        response = await client.post(f"/timers/{timer_id}/claim", headers=BOB)

        assert response.status_code == 404


class TestRateLimit:
    async def test_pack_endpoints_rate_limited(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Too many pack requests from one client is a 429."""
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
        monkeypatch.setattr("boosterbattle.api.deps.get_pack_rate_limiter", lambda: limiter)

        assert (await start(client)).status_code == 201
        assert (await start(client)).status_code == 201
        response = await start(client)

        assert response.status_code == 429
        assert response.json()["failure"]["kind"] == "rate_limited"

    async def test_forwarded_header_does_not_reset_budget(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A player changing X-Forwarded-For still shares one budget."""
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
        monkeypatch.setattr("boosterbattle.api.deps.get_pack_rate_limiter", lambda: limiter)

        statuses = []
        for i in range(5):
            headers = {**ALICE, "X-Forwarded-For": f"10.0.0.{i}"}
            statuses.append((await start(client, headers=headers)).status_code)

        assert statuses == [201, 201, 201, 429, 429]

    async def test_players_have_separate_budgets(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """One player hitting the limit does not block another."""
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        monkeypatch.setattr("boosterbattle.api.deps.get_pack_rate_limiter", lambda: limiter)

        assert (await start(client)).status_code == 201
        assert (await start(client)).status_code == 429
        assert (await start(client, headers=BOB)).status_code == 201

    async def test_listing_not_rate_limited(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Reading timers does not consume the pack budget."""
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        monkeypatch.setattr("boosterbattle.api.deps.get_pack_rate_limiter", lambda: limiter)

        for _ in range(3):
            assert (await client.get("/timers", headers=ALICE)).status_code == 200
