"""Tests for the change notification WebSocket."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketDisconnect

from boosterbattle.api.events import _stop_sender, channel_allowed
from boosterbattle.db.database import get_session
from boosterbattle.db.operations import create_battle
from boosterbattle.main import app


@pytest.fixture
def ws_client():
    """Sync client for WebSocket tests; user channels need no database."""

    async def override_get_session():
        yield AsyncMock()

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestChannelAllowed:
    async def test_own_user_channel(self, session: AsyncSession) -> None:
        """Users may listen on their own channel only."""
        assert await channel_allowed(session, "user:alice", "alice")
        assert not await channel_allowed(session, "user:bob", "alice")

    async def test_battle_channel_participants(self, session: AsyncSession) -> None:
        """Battle channels are open to participants."""
        battle = await create_battle(session, "alice", "bob", None)
        await session.commit()

        assert await channel_allowed(session, f"battle:{battle.id}", "bob")
        assert not await channel_allowed(session, f"battle:{battle.id}", "carol")
        assert not await channel_allowed(session, "battle:missing", "alice")

    async def test_unknown_channel_kind(self, session: AsyncSession) -> None:
        """Anything else is refused."""
        assert not await channel_allowed(session, "global", "alice")


class TestEventsSocket:
    def test_rejects_anonymous(self, ws_client: TestClient) -> None:
        """Connections without identity are closed."""
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with ws_client.websocket_connect("/events/user:alice"):
                pass

        assert exc_info.value.code == 1008

    def test_rejects_other_users_channel(self, ws_client: TestClient) -> None:
        """Users cannot listen on someone else's channel."""
        with pytest.raises(WebSocketDisconnect):
            with ws_client.websocket_connect("/events/user:bob", headers={"X-User-Id": "alice"}):
                pass

    def test_accepts_own_channel(self, ws_client: TestClient) -> None:
        """A user can open their own channel and disconnect cleanly."""
        with ws_client.websocket_connect("/events/user:alice", headers={"X-User-Id": "alice"}):
            pass


class TestStopSender:
    async def test_cancels_running_sender(self) -> None:
        """A sender still waiting for events is cancelled and awaited."""
        sender = asyncio.create_task(asyncio.sleep(3600))

        await _stop_sender(sender, "user:alice")

        assert sender.cancelled()

    async def test_collects_send_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        """A sender that already failed has its error retrieved and logged."""

        async def broken_send() -> None:
            raise RuntimeError("socket already closed")

        sender = asyncio.create_task(broken_send())
        await asyncio.sleep(0)

        await _stop_sender(sender, "user:alice")

        assert sender.done()
        assert "EVENTS_SEND_FAILED" in caplog.text
