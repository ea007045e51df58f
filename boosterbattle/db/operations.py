"""
Database CRUD operations.

Provides async functions for reading and writing cards, pack timers,
battles, selections and ownership history.

Guarded writes are single UPDATE ... WHERE statements whose rowcount
tells the caller whether the guard held. They never raise on a failed
guard; deciding what that means is the caller's job.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.models.battle import (
    Battle,
    BattleSelection,
    BattleStatus,
    OwnershipTransfer,
    can_transition,
)
from boosterbattle.models.card import Card, CardType, GeneratedCard, Rarity
from boosterbattle.models.db import (
    BattleInstanceDB,
    BattleSelectionDB,
    CardOwnershipHistoryDB,
    PackTimerDB,
    PlayerCardDB,
)
from boosterbattle.models.errors import InternalError, InvalidStateError
from boosterbattle.models.timer import PackTimer, TimerStatus


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _optional_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _rowcount(result: Any) -> int:
    # rowcount is available on UPDATE results; type stubs incomplete for async
    return int(result.rowcount)


# --- Card Operations ---


async def get_card(session: AsyncSession, card_id: str) -> PlayerCardDB | None:
    """Get a card by id. Returns None if it does not exist."""
    result = await session.execute(
        select(PlayerCardDB)
        .where(PlayerCardDB.id == card_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_owned_card(
    session: AsyncSession, card_id: str, owner_id: str
) -> PlayerCardDB | None:
    """Get a card only if owner_id currently owns it."""
    card = await get_card(session, card_id)
    if card is None or card.owner_id != owner_id:
        return None
    return card


async def list_cards(session: AsyncSession, owner_id: str) -> list[PlayerCardDB]:
    """Get all cards owned by a player, newest first."""
    result = await session.execute(
        select(PlayerCardDB)
        .where(PlayerCardDB.owner_id == owner_id)
        .order_by(PlayerCardDB.obtained_at.desc())
    )
    return list(result.scalars().all())


async def insert_card(
    session: AsyncSession, owner_id: str, generated: GeneratedCard
) -> PlayerCardDB:
    """Persist a generated card for owner_id."""
    card = PlayerCardDB(
        owner_id=owner_id,
        card_type=generated.card_type.value,
        card_name=generated.card_name,
        attributes=dict(generated.attributes),
        rarity=generated.rarity.value,
    )
    session.add(card)
    await session.flush()
    return card


def card_to_model(card: PlayerCardDB) -> Card:
    """Convert a database card to a domain model."""
    return Card(
        id=card.id,
        owner_id=card.owner_id,
        card_type=CardType(card.card_type),
        card_name=card.card_name,
        attributes=dict(card.attributes),
        rarity=Rarity(card.rarity),
        obtained_at=_optional_utc(card.obtained_at),
    )


# --- Pack Timer Operations ---


async def create_timer(
    session: AsyncSession,
    owner_id: str,
    pack_type: CardType,
    delay_hours: int,
    start_time: datetime,
    open_slot: int,
) -> PackTimerDB:
    """
    Create an active timer holding open_slot.

    Raises IntegrityError on flush if the slot is already held.
    """
    timer = PackTimerDB(
        owner_id=owner_id,
        pack_type=pack_type.value,
        start_time=start_time,
        target_delay_hours=delay_hours,
        status=TimerStatus.ACTIVE.value,
        open_slot=open_slot,
    )
    session.add(timer)
    await session.flush()
    return timer


async def get_timer(session: AsyncSession, timer_id: str) -> PackTimerDB | None:
    """Get a timer by id."""
    result = await session.execute(
        select(PackTimerDB)
        .where(PackTimerDB.id == timer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_timers(
    session: AsyncSession, owner_id: str, include_completed: bool = False
) -> list[PackTimerDB]:
    """Get a player's timers ordered by start time."""
    query = select(PackTimerDB).where(PackTimerDB.owner_id == owner_id)
    if not include_completed:
        query = query.where(PackTimerDB.status != TimerStatus.COMPLETED.value)
    result = await session.execute(query.order_by(PackTimerDB.start_time))
    return list(result.scalars().all())


async def held_timer_slots(session: AsyncSession, owner_id: str, pack_type: CardType) -> set[int]:
    """Slots held by a player's uncompleted timers for one pack type."""
    result = await session.execute(
        select(PackTimerDB.open_slot).where(
            PackTimerDB.owner_id == owner_id,
            PackTimerDB.pack_type == pack_type.value,
            PackTimerDB.open_slot.is_not(None),
        )
    )
    return set(result.scalars().all())


async def complete_timer_if_open(
    session: AsyncSession, timer_id: str, owner_id: str, reward_card_id: str
) -> bool:
    """
    Mark a timer completed, attach its reward card and free its slot.

    Guarded on the timer not being completed yet. Returns False when the
    guard fails (another claim got there first).
    """
    result = await session.execute(
        update(PackTimerDB)
        .where(
            PackTimerDB.id == timer_id,
            PackTimerDB.owner_id == owner_id,
            PackTimerDB.status != TimerStatus.COMPLETED.value,
        )
        .values(
            status=TimerStatus.COMPLETED.value,
            reward_card_id=reward_card_id,
            open_slot=None,
        )
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


def timer_to_model(timer: PackTimerDB) -> PackTimer:
    """Convert a database timer to a domain model."""
    return PackTimer(
        id=timer.id,
        owner_id=timer.owner_id,
        pack_type=CardType(timer.pack_type),
        start_time=ensure_utc(timer.start_time),
        target_delay_hours=timer.target_delay_hours,
        status=TimerStatus(timer.status),
        reward_card_id=timer.reward_card_id,
    )


# --- Battle Operations ---


async def create_battle(
    session: AsyncSession,
    challenger_id: str,
    opponent_id: str | None,
    challenger_stake_id: str | None,
) -> BattleInstanceDB:
    """Create a pending battle."""
    battle = BattleInstanceDB(
        challenger_id=challenger_id,
        opponent_id=opponent_id,
        challenger_stake_id=challenger_stake_id,
        status=BattleStatus.PENDING.value,
        transfer_completed=False,
    )
    session.add(battle)
    await session.flush()
    return battle


async def get_battle(
    session: AsyncSession, battle_id: str, for_update: bool = False
) -> BattleInstanceDB | None:
    """
    Get a battle by id, always re-reading from the store.

    for_update takes a row lock on stores that support it, serializing
    concurrent writers on the same battle until commit.
    """
    query = (
        select(BattleInstanceDB)
        .where(BattleInstanceDB.id == battle_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def list_battles(
    session: AsyncSession, player_id: str, limit: int = 50
) -> list[BattleInstanceDB]:
    """Get battles a player took part in, newest first."""
    result = await session.execute(
        select(BattleInstanceDB)
        .where(
            or_(
                BattleInstanceDB.challenger_id == player_id,
                BattleInstanceDB.opponent_id == player_id,
            )
        )
        .order_by(BattleInstanceDB.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def transition_battle(
    session: AsyncSession,
    battle_id: str,
    expected: BattleStatus,
    target: BattleStatus,
    **values: Any,
) -> bool:
    """
    Move a battle from expected to target status.

    Raises InvalidStateError if the transition table forbids the move.
    Returns False if the battle was no longer in the expected status.
    """
    if not can_transition(expected, target):
        raise InvalidStateError(
            f"Battle cannot move from '{expected.value}' to '{target.value}'.",
            detail=f"battle_id={battle_id}",
        )

    result = await session.execute(
        update(BattleInstanceDB)
        .where(
            BattleInstanceDB.id == battle_id,
            BattleInstanceDB.status == expected.value,
        )
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


async def bind_opponent(session: AsyncSession, battle_id: str, opponent_id: str) -> bool:
    """Bind the opponent of an open challenge. False if already bound."""
    result = await session.execute(
        update(BattleInstanceDB)
        .where(
            BattleInstanceDB.id == battle_id,
            BattleInstanceDB.opponent_id.is_(None),
        )
        .values(opponent_id=opponent_id)
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


async def reveal_if_both_selected(session: AsyncSession, battle_id: str) -> bool:
    """
    Move an active battle to cards_revealed if both slots are filled.

    The status check and the slot check run in one statement, so exactly
    one of two racing selections performs the transition.
    """
    both_selected = (
        select(BattleSelectionDB.id)
        .where(
            BattleSelectionDB.battle_id == battle_id,
            BattleSelectionDB.player1_card_id.is_not(None),
            BattleSelectionDB.player2_card_id.is_not(None),
        )
        .exists()
    )
    result = await session.execute(
        update(BattleInstanceDB)
        .where(
            BattleInstanceDB.id == battle_id,
            BattleInstanceDB.status == BattleStatus.ACTIVE.value,
            both_selected,
        )
        .values(status=BattleStatus.CARDS_REVEALED.value)
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


def battle_to_model(battle: BattleInstanceDB) -> Battle:
    """Convert a database battle to a domain model."""
    return Battle(
        id=battle.id,
        challenger_id=battle.challenger_id,
        opponent_id=battle.opponent_id,
        status=BattleStatus(battle.status),
        challenger_stake_id=battle.challenger_stake_id,
        winner_id=battle.winner_id,
        explanation=battle.explanation,
        completion_reason=battle.completion_reason,
        transfer_completed=bool(battle.transfer_completed),
        created_at=_optional_utc(battle.created_at),
        completed_at=_optional_utc(battle.completed_at),
    )


# --- Selection Operations ---


async def create_selection(session: AsyncSession, battle_id: str) -> BattleSelectionDB:
    """Create the empty selection row for a battle."""
    selection = BattleSelectionDB(battle_id=battle_id)
    session.add(selection)
    await session.flush()
    return selection


async def get_selection(session: AsyncSession, battle_id: str) -> BattleSelectionDB | None:
    """Get the selection row for a battle."""
    result = await session.execute(
        select(BattleSelectionDB)
        .where(BattleSelectionDB.battle_id == battle_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def fill_selection_slot(
    session: AsyncSession,
    battle_id: str,
    slot: int,
    card_id: str,
    submitted_at: datetime,
) -> bool:
    """
    Write a player's card into their slot (1 = challenger, 2 = opponent).

    Guarded on the slot being empty. Returns False if it was already set.
    """
    if slot == 1:
        card_column, time_column = BattleSelectionDB.player1_card_id, "player1_submitted_at"
    elif slot == 2:
        card_column, time_column = BattleSelectionDB.player2_card_id, "player2_submitted_at"
    else:
        raise ValueError(f"Selection slot must be 1 or 2, got {slot}")

    result = await session.execute(
        update(BattleSelectionDB)
        .where(BattleSelectionDB.battle_id == battle_id, card_column.is_(None))
        .values({card_column.key: card_id, time_column: submitted_at})
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


async def card_staked_elsewhere(session: AsyncSession, card_id: str, battle_id: str) -> bool:
    """Check whether a card is selected in another unfinished battle."""
    result = await session.execute(
        select(BattleSelectionDB.id)
        .join(BattleInstanceDB, BattleInstanceDB.id == BattleSelectionDB.battle_id)
        .where(
            BattleSelectionDB.battle_id != battle_id,
            BattleInstanceDB.status != BattleStatus.COMPLETED.value,
            or_(
                BattleSelectionDB.player1_card_id == card_id,
                BattleSelectionDB.player2_card_id == card_id,
            ),
        )
        .limit(1)
    )
    return result.first() is not None


def selection_to_model(selection: BattleSelectionDB) -> BattleSelection:
    """Convert a database selection to a domain model."""
    return BattleSelection(
        battle_id=selection.battle_id,
        player1_card_id=selection.player1_card_id,
        player1_submitted_at=_optional_utc(selection.player1_submitted_at),
        player2_card_id=selection.player2_card_id,
        player2_submitted_at=_optional_utc(selection.player2_submitted_at),
    )


# --- Ownership Transfer Operations ---


async def transfer_card_once(
    session: AsyncSession,
    battle_id: str,
    card_id: str,
    previous_owner_id: str,
    new_owner_id: str,
    transferred_at: datetime,
) -> CardOwnershipHistoryDB | None:
    """
    Transfer a staked card and append the audit row, at most once per battle.

    The battle's transfer_completed flag is checked and set first; if it was
    already set nothing else is written and None is returned.

    Raises InternalError if the card is no longer held by previous_owner_id;
    the caller must roll back, since the flag has been set by then.
    """
    result = await session.execute(
        update(BattleInstanceDB)
        .where(
            BattleInstanceDB.id == battle_id,
            BattleInstanceDB.transfer_completed.is_(False),
        )
        .values(transfer_completed=True)
        .execution_options(synchronize_session=False)
    )
    if _rowcount(result) != 1:
        return None

    result = await session.execute(
        update(PlayerCardDB)
        .where(PlayerCardDB.id == card_id, PlayerCardDB.owner_id == previous_owner_id)
        .values(owner_id=new_owner_id, obtained_at=transferred_at)
        .execution_options(synchronize_session=False)
    )
    if _rowcount(result) != 1:
        raise InternalError(
            "Staked card is no longer held by the losing player.",
            detail=f"battle_id={battle_id} card_id={card_id}",
        )

    record = CardOwnershipHistoryDB(
        card_id=card_id,
        previous_owner_id=previous_owner_id,
        new_owner_id=new_owner_id,
        battle_id=battle_id,
        transferred_at=transferred_at,
    )
    session.add(record)
    await session.flush()
    return record


async def get_card_history(session: AsyncSession, card_id: str) -> list[CardOwnershipHistoryDB]:
    """Get a card's ownership transfers, oldest first."""
    result = await session.execute(
        select(CardOwnershipHistoryDB)
        .where(CardOwnershipHistoryDB.card_id == card_id)
        .order_by(CardOwnershipHistoryDB.transferred_at, CardOwnershipHistoryDB.id)
    )
    return list(result.scalars().all())


async def get_battle_transfer(
    session: AsyncSession, battle_id: str
) -> CardOwnershipHistoryDB | None:
    """Get the transfer a battle produced, if any."""
    result = await session.execute(
        select(CardOwnershipHistoryDB).where(CardOwnershipHistoryDB.battle_id == battle_id)
    )
    return result.scalar_one_or_none()


def transfer_to_model(record: CardOwnershipHistoryDB) -> OwnershipTransfer:
    """Convert a database history row to a domain model."""
    return OwnershipTransfer(
        card_id=record.card_id,
        previous_owner_id=record.previous_owner_id,
        new_owner_id=record.new_owner_id,
        battle_id=record.battle_id,
        transferred_at=_optional_utc(record.transferred_at),
    )
