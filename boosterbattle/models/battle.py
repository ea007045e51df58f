"""
Battle models.

A battle moves through a fixed set of statuses. The transition table below
is the single authority on which status changes are legal; every write of
battle status is checked against it.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal


class BattleStatus(str, Enum):
    """Battle lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    CARDS_REVEALED = "cards_revealed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


BATTLE_TRANSITIONS: dict[BattleStatus, frozenset[BattleStatus]] = {
    BattleStatus.PENDING: frozenset({BattleStatus.ACTIVE, BattleStatus.COMPLETED}),
    BattleStatus.ACTIVE: frozenset({BattleStatus.CARDS_REVEALED, BattleStatus.COMPLETED}),
    BattleStatus.CARDS_REVEALED: frozenset({BattleStatus.IN_PROGRESS, BattleStatus.COMPLETED}),
    BattleStatus.IN_PROGRESS: frozenset({BattleStatus.COMPLETED}),
    BattleStatus.COMPLETED: frozenset(),
}


def can_transition(current: BattleStatus, target: BattleStatus) -> bool:
    """Check whether the transition table allows current -> target."""
    return target in BATTLE_TRANSITIONS[current]


# Which side of a comparison won
Side = Literal["player", "opponent", "tie"]
Verdict = Literal["player", "opponent", "draw"]


@dataclass(frozen=True, slots=True)
class AttributeComparison:
    """One attribute compared between two cards."""

    attribute: str
    player_value: int
    opponent_value: int
    winner: Side


@dataclass(frozen=True, slots=True)
class BattleOutcome:
    """
    Result of scoring two humanoid cards.

    Attributes:
        winner: "player", "opponent" or "draw"
        player_points: Attributes won by the player card
        opponent_points: Attributes won by the opponent card
        player_total: Sum of the player card's attributes (tie-breaker)
        opponent_total: Sum of the opponent card's attributes (tie-breaker)
        comparisons: Per-attribute results in str, dex, int order
        explanation: Human-readable account, reproducible from the attributes
    """

    winner: Verdict
    player_points: int
    opponent_points: int
    player_total: int
    opponent_total: int
    comparisons: tuple[AttributeComparison, ...]
    explanation: str

    @property
    def is_draw(self) -> bool:
        return self.winner == "draw"


@dataclass(frozen=True, slots=True)
class Battle:
    """
    One match between two players.

    The challenger is always player 1 in the selection record and the
    opponent player 2.
    """

    id: str
    challenger_id: str
    opponent_id: str | None
    status: BattleStatus
    challenger_stake_id: str | None = None
    winner_id: str | None = None
    explanation: str | None = None
    completion_reason: str | None = None
    transfer_completed: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None

    def is_participant(self, player_id: str) -> bool:
        return player_id in (self.challenger_id, self.opponent_id)

    @property
    def is_completed(self) -> bool:
        return self.status == BattleStatus.COMPLETED


@dataclass(frozen=True, slots=True)
class BattleSelection:
    """Cards submitted for a battle, one slot per participant."""

    battle_id: str
    player1_card_id: str | None = None
    player1_submitted_at: datetime | None = None
    player2_card_id: str | None = None
    player2_submitted_at: datetime | None = None

    @property
    def both_submitted(self) -> bool:
        return self.player1_card_id is not None and self.player2_card_id is not None


@dataclass(frozen=True, slots=True)
class OwnershipTransfer:
    """Audit record of a card changing hands after a battle."""

    card_id: str
    previous_owner_id: str
    new_owner_id: str
    battle_id: str
    transferred_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BattleResult:
    """What resolve_battle reports back to the caller."""

    battle: Battle
    outcome: BattleOutcome | None = None
    transfer: OwnershipTransfer | None = None
    already_resolved: bool = False
