"""
Pack timers and reward claims.

A player commits to waiting 4-24 hours for a pack. Once the wait has
elapsed the timer can be claimed exactly once, granting one generated
card. Longer waits raise the chance of a gold card.

INVARIANTS:
- Completing the timer and inserting the card commit together or not at all
- A timer is claimed at most once, even under concurrent claims
- Rejected claims (foreign, missing, early, repeated) write nothing
- A player never holds more open timers per pack type than the configured cap
"""

import logging
import math
import random
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.config import settings
from boosterbattle.db.operations import (
    card_to_model,
    complete_timer_if_open,
    create_timer,
    get_timer,
    held_timer_slots,
    insert_card,
    list_timers,
    timer_to_model,
)
from boosterbattle.models.card import Card, CardType
from boosterbattle.models.errors import InternalError, NotFoundError, ValidationError
from boosterbattle.models.timer import PackTimer, TimerStatus
from boosterbattle.services.card_generation import (
    generate_card,
    gold_chance_percent,
    parse_card_type,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


def remaining_seconds(timer: PackTimer, now: datetime) -> int:
    """Whole seconds until the timer is ready, never negative."""
    return max(0, math.ceil((timer.ends_at - now).total_seconds()))


def is_ready(timer: PackTimer, now: datetime) -> bool:
    """True once the committed wait has fully elapsed."""
    return now >= timer.ends_at


def current_status(timer: PackTimer, now: datetime) -> TimerStatus:
    """Status as shown to the player: an elapsed active timer reads as ready."""
    if timer.is_completed:
        return TimerStatus.COMPLETED
    if is_ready(timer, now):
        return TimerStatus.READY
    return TimerStatus.ACTIVE


def format_time_remaining(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    if total_seconds <= 0:
        return "00:00:00"
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def validate_delay_hours(delay_hours: int) -> None:
    """Reject waits outside the configured range."""
    low, high = settings.min_delay_hours, settings.max_delay_hours
    if not low <= delay_hours <= high:
        raise ValidationError(
            f"delay_hours must be between {low} and {high}.",
            detail=f"delay_hours={delay_hours}",
        )


def _too_many_timers(card_type: CardType, limit: int, open_timers: int) -> ValidationError:
    return ValidationError(
        f"You can only have {limit} {card_type.value} packs waiting at a time.",
        detail=f"open_timers={open_timers}",
        suggestion="Claim a finished pack before starting another.",
    )


async def start_timer(
    session: AsyncSession,
    owner_id: str,
    pack_type: str | CardType,
    delay_hours: int,
    now: datetime | None = None,
) -> PackTimer:
    """
    Start a pack timer for owner_id.

    Raises:
        ValidationError: Unknown pack type, delay out of range, or the
            player already has the maximum number of open timers for
            this pack type
        InternalError: The store failed; nothing was written
    """
    card_type = pack_type if isinstance(pack_type, CardType) else parse_card_type(pack_type)
    validate_delay_hours(delay_hours)
    now = now or utc_now()

    limit = settings.max_open_timers_per_pack_type
    try:
        # A concurrent start can take the slot we picked; retry with a fresh read
        for _ in range(limit):
            held = await held_timer_slots(session, owner_id, card_type)
            free = [slot for slot in range(1, limit + 1) if slot not in held]
            if len(held) >= limit:
                raise _too_many_timers(card_type, limit, len(held))
            try:
                timer = await create_timer(
                    session, owner_id, card_type, delay_hours, now, open_slot=free[0]
                )
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "TIMER_SLOT_TAKEN",
                    extra={"owner_id": owner_id, "pack_type": card_type.value, "slot": free[0]},
                )
                continue
            break
        else:
            raise _too_many_timers(card_type, limit, limit)

        model = timer_to_model(timer)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("TIMER_START_FAILED", extra={"owner_id": owner_id, "error": str(e)})
        raise InternalError("Failed to start the pack timer.") from e

    logger.info(
        "TIMER_STARTED",
        extra={
            "timer_id": model.id,
            "owner_id": owner_id,
            "pack_type": card_type.value,
            "delay_hours": delay_hours,
        },
    )
    return model


async def get_owned_timer(session: AsyncSession, timer_id: str, owner_id: str) -> PackTimer:
    """Load a timer the caller owns, or raise NotFoundError."""
    timer = await get_timer(session, timer_id)
    if timer is None or timer.owner_id != owner_id:
        raise NotFoundError(
            "Timer not found.",
            detail=f"timer_id={timer_id}",
        )
    return timer_to_model(timer)


async def claim_reward(
    session: AsyncSession,
    timer_id: str,
    owner_id: str,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> Card:
    """
    Open a finished pack and grant its card.

    The timer is completed and the card inserted in one transaction. If
    the store fails part way through, both writes are rolled back and
    InternalError is raised; the claim is safe to retry.

    Raises:
        NotFoundError: Timer missing or owned by someone else
        ValidationError: Timer not ready yet, or already claimed
        InternalError: The store failed; nothing was written
    """
    now = now or utc_now()
    timer = await get_owned_timer(session, timer_id, owner_id)

    if timer.is_completed:
        raise ValidationError(
            "This pack has already been opened (timer already completed).",
            detail=f"timer_id={timer_id}",
        )

    if not is_ready(timer, now):
        seconds = remaining_seconds(timer, now)
        minutes = math.ceil(seconds / 60)
        raise ValidationError(
            f"Timer not ready yet, {minutes} minutes remaining.",
            detail=f"remaining={format_time_remaining(seconds)}",
            suggestion="Come back when the timer has finished.",
        )

    gold_chance = gold_chance_percent(timer.target_delay_hours)
    generated = generate_card(timer.pack_type, gold_chance, rng)

    try:
        card = await insert_card(session, owner_id, generated)
        if not await complete_timer_if_open(session, timer_id, owner_id, card.id):
            await session.rollback()
            raise ValidationError(
                "This pack has already been opened (timer already completed).",
                detail=f"timer_id={timer_id}",
            )
        model = card_to_model(card)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            "TIMER_CLAIM_FAILED",
            extra={"timer_id": timer_id, "owner_id": owner_id, "error": str(e)},
        )
        raise InternalError(
            "Failed to open the pack. No card was granted and the timer is still claimable.",
            detail=f"timer_id={timer_id}",
        ) from e

    logger.info(
        "TIMER_CLAIMED",
        extra={
            "timer_id": timer_id,
            "owner_id": owner_id,
            "card_id": model.id,
            "rarity": model.rarity.value,
            "gold_chance": round(gold_chance, 2),
        },
    )
    return model


async def get_player_timers(
    session: AsyncSession, owner_id: str, include_completed: bool = False
) -> list[PackTimer]:
    """Get a player's timers as domain models."""
    timers = await list_timers(session, owner_id, include_completed=include_completed)
    return [timer_to_model(t) for t in timers]
