"""
WebSocket relay for change notifications.

Clients connect to /events/{channel} and receive every event published on
that channel as JSON. A user may listen on their own user channel and on
the channel of any battle they take part in.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.config import settings
from boosterbattle.db import get_battle
from boosterbattle.db.database import get_session
from boosterbattle.services.notifications import Event, get_event_broker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


async def channel_allowed(session: AsyncSession, channel: str, user_id: str) -> bool:
    """Check that user_id may listen on channel."""
    kind, _, key = channel.partition(":")
    if kind == "user":
        return key == user_id
    if kind == "battle" and key:
        battle = await get_battle(session, key)
        return battle is not None and user_id in (battle.challenger_id, battle.opponent_id)
    return False


async def _forward(websocket: WebSocket, queue: asyncio.Queue[Event]) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message.to_dict())


async def _stop_sender(sender: asyncio.Task[None], channel: str) -> None:
    """Cancel the forwarding task and collect its outcome."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise
    except (RuntimeError, OSError, WebSocketDisconnect) as e:
        logger.warning("EVENTS_SEND_FAILED", extra={"channel": channel, "error": str(e)})


@router.websocket("/events/{channel}")
async def events(
    websocket: WebSocket,
    channel: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Relay events on channel until the client disconnects."""
    user_id = websocket.headers.get(settings.user_id_header, "").strip()
    allowed = bool(user_id) and await channel_allowed(session, channel, user_id)
    # Release the connection; the socket may stay open for hours
    await session.close()
    if not allowed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info("EVENTS_SUBSCRIBED", extra={"channel": channel, "user_id": user_id})
    async with get_event_broker().subscribe(channel) as queue:
        sender = asyncio.create_task(_forward(websocket, queue))
        try:
            # Client messages are ignored; receiving detects the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("EVENTS_UNSUBSCRIBED", extra={"channel": channel, "user_id": user_id})
        finally:
            await _stop_sender(sender, channel)
