"""
Pack timer API endpoints.

Start a timed pack, list running timers, and open finished packs.
Starting and claiming are rate limited per player.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.api.cards import CardResponse
from boosterbattle.api.deps import CurrentUser, enforce_pack_rate_limit
from boosterbattle.config import settings
from boosterbattle.db.database import get_session
from boosterbattle.models.timer import PackTimer, TimerStatus
from boosterbattle.services.card_generation import gold_chance_percent
from boosterbattle.services.pack_timers import (
    claim_reward,
    current_status,
    format_time_remaining,
    get_player_timers,
    remaining_seconds,
    start_timer,
    utc_now,
)

router = APIRouter(prefix="/timers", tags=["timers"])


class StartTimerRequest(BaseModel):
    """Request model for starting a pack timer."""

    pack_type: str = Field(
        ...,
        description="Which pack to wait for: humanoid or weapon",
        examples=["humanoid"],
    )
    delay_hours: int = Field(
        ...,
        description=(
            "Hours to wait before the pack can be opened "
            f"({settings.min_delay_hours}-{settings.max_delay_hours})"
        ),
        examples=[8],
    )


class TimerResponse(BaseModel):
    """A pack timer with its countdown."""

    id: str
    pack_type: str
    start_time: datetime
    ends_at: datetime
    target_delay_hours: int
    status: str
    ready: bool
    remaining_seconds: int
    time_remaining: str = Field(..., description="Countdown as HH:MM:SS")
    gold_chance_percent: float
    reward_card_id: str | None = None

    @classmethod
    def from_model(cls, timer: PackTimer, now: datetime) -> "TimerResponse":
        seconds = remaining_seconds(timer, now)
        status = current_status(timer, now)
        return cls(
            id=timer.id,
            pack_type=timer.pack_type.value,
            start_time=timer.start_time,
            ends_at=timer.ends_at,
            target_delay_hours=timer.target_delay_hours,
            status=status.value,
            ready=status == TimerStatus.READY,
            remaining_seconds=seconds,
            time_remaining=format_time_remaining(seconds),
            gold_chance_percent=round(gold_chance_percent(timer.target_delay_hours), 2),
            reward_card_id=timer.reward_card_id,
        )


class TimerListResponse(BaseModel):
    """Response model for a player's timers."""

    owner_id: str
    timers: list[TimerResponse] = Field(default_factory=list)


class ClaimResponse(BaseModel):
    """Response model for an opened pack."""

    timer_id: str
    card: CardResponse
    message: str


@router.get("", response_model=TimerListResponse)
async def list_my_timers(
    user_id: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_session)],
    include_completed: bool = False,
) -> TimerListResponse:
    """Get the caller's timers with time remaining."""
    now = utc_now()
    timers = await get_player_timers(session, user_id, include_completed=include_completed)
    return TimerListResponse(
        owner_id=user_id,
        timers=[TimerResponse.from_model(t, now) for t in timers],
    )


@router.post(
    "",
    response_model=TimerResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_pack_rate_limit)],
)
async def start_pack_timer(
    request: StartTimerRequest,
    user_id: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TimerResponse:
    """
    Start waiting for a pack.

    Longer waits give a better chance of a gold card.
    """
    timer = await start_timer(session, user_id, request.pack_type, request.delay_hours)
    return TimerResponse.from_model(timer, utc_now())


@router.post(
    "/{timer_id}/claim",
    response_model=ClaimResponse,
    dependencies=[Depends(enforce_pack_rate_limit)],
)
async def claim_pack(
    timer_id: str,
    user_id: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ClaimResponse:
    """
    Open a finished pack.

    A timer can be claimed once. Claiming early returns 400 with the
    minutes remaining.
    """
    card = await claim_reward(session, timer_id, user_id)
    return ClaimResponse(
        timer_id=timer_id,
        card=CardResponse.from_model(card),
        message=f"You got a {card.rarity.value} {card.card_name}!",
    )
