"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class PlayerCardDB(Base):
    """
    A card owned by a player.

    owner_id changes only through a battle transfer, which also writes a
    CardOwnershipHistoryDB row.
    """

    __tablename__ = "player_cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    card_type: Mapped[str] = mapped_column(String(20))
    card_name: Mapped[str] = mapped_column(String(100))
    attributes: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    rarity: Mapped[str] = mapped_column(String(20))
    obtained_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<PlayerCardDB(id={self.id}, name={self.card_name}, owner={self.owner_id})>"


class PackTimerDB(Base):
    """
    A booster pack wait period.

    Status only moves forward: active -> completed. An open timer holds one
    of its owner's numbered slots for its pack type; the unique constraint
    caps open timers even when starts race. Completing a timer frees its
    slot.
    """

    __tablename__ = "pack_timers"
    __table_args__ = (
        UniqueConstraint("owner_id", "pack_type", "open_slot", name="uq_pack_timers_open_slot"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    pack_type: Mapped[str] = mapped_column(String(20))
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    target_delay_hours: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    open_slot: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reward_card_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("player_cards.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<PackTimerDB(id={self.id}, owner={self.owner_id}, status={self.status})>"


class BattleInstanceDB(Base):
    """
    One battle between a challenger and an opponent.

    Immutable once status is 'completed'.
    """

    __tablename__ = "battle_instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    challenger_id: Mapped[str] = mapped_column(String(255), index=True)
    opponent_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    challenger_stake_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("player_cards.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    winner_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    # resolved, declined or abandoned; set when the battle completes
    completion_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Set in the same transaction as the ownership transfer
    transfer_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<BattleInstanceDB(id={self.id}, status={self.status})>"


class BattleSelectionDB(Base):
    """
    Card submissions for a battle.

    One row per battle. Player 1 is the challenger, player 2 the opponent.
    Each slot is written at most once.
    """

    __tablename__ = "battle_selections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    battle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("battle_instances.id", ondelete="CASCADE"), unique=True
    )
    player1_card_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    player1_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    player2_card_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    player2_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<BattleSelectionDB(battle_id={self.battle_id})>"


class CardOwnershipHistoryDB(Base):
    """
    Append-only audit record of a card transfer.

    battle_id is unique: a battle transfers at most one card.
    """

    __tablename__ = "card_ownership_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("player_cards.id"), index=True)
    previous_owner_id: Mapped[str] = mapped_column(String(255))
    new_owner_id: Mapped[str] = mapped_column(String(255))
    battle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("battle_instances.id"), unique=True
    )
    transferred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<CardOwnershipHistoryDB(card={self.card_id}, battle={self.battle_id})>"
