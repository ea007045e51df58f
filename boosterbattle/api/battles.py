"""
Battle API endpoints.

Thin wrappers over BattleEngine. Every endpoint acts as the caller named
by the identity header; the engine enforces participation.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.api.deps import CurrentUser
from boosterbattle.db.database import get_session
from boosterbattle.models.battle import (
    Battle,
    BattleOutcome,
    BattleSelection,
    OwnershipTransfer,
)
from boosterbattle.services.battle_engine import BattleEngine

router = APIRouter(prefix="/battles", tags=["battles"])


def get_engine(session: Annotated[AsyncSession, Depends(get_session)]) -> BattleEngine:
    return BattleEngine(session)


Engine = Annotated[BattleEngine, Depends(get_engine)]


class CreateChallengeRequest(BaseModel):
    """Request model for challenging another player."""

    staked_card_id: str = Field(..., description="Card the challenger puts up")
    opponent_id: str | None = Field(
        default=None,
        description="Player to challenge. Leave empty for an open challenge.",
    )


class SelectCardRequest(BaseModel):
    """Request model for submitting a card to a battle."""

    card_id: str = Field(..., description="Humanoid card the caller owns")


class BattleResponse(BaseModel):
    """A battle as shown to its participants."""

    id: str
    challenger_id: str
    opponent_id: str | None = None
    status: str
    challenger_stake_id: str | None = None
    winner_id: str | None = None
    explanation: str | None = None
    completion_reason: str | None = None
    transfer_completed: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, battle: Battle) -> "BattleResponse":
        return cls(
            id=battle.id,
            challenger_id=battle.challenger_id,
            opponent_id=battle.opponent_id,
            status=battle.status.value,
            challenger_stake_id=battle.challenger_stake_id,
            winner_id=battle.winner_id,
            explanation=battle.explanation,
            completion_reason=battle.completion_reason,
            transfer_completed=battle.transfer_completed,
            created_at=battle.created_at,
            completed_at=battle.completed_at,
        )


class BattleListResponse(BaseModel):
    """Response model for the caller's battles."""

    player_id: str
    battles: list[BattleResponse] = Field(default_factory=list)


class SelectionResponse(BaseModel):
    """Selection record. Hidden slots are null until the reveal."""

    battle_id: str
    player1_card_id: str | None = None
    player1_submitted: bool = False
    player2_card_id: str | None = None
    player2_submitted: bool = False
    both_submitted: bool = False

    @classmethod
    def from_model(cls, selection: BattleSelection) -> "SelectionResponse":
        return cls(
            battle_id=selection.battle_id,
            player1_card_id=selection.player1_card_id,
            player1_submitted=selection.player1_submitted_at is not None,
            player2_card_id=selection.player2_card_id,
            player2_submitted=selection.player2_submitted_at is not None,
            both_submitted=(
                selection.player1_submitted_at is not None
                and selection.player2_submitted_at is not None
            ),
        )


class ComparisonResponse(BaseModel):
    """One attribute compared between the two cards."""

    attribute: str
    challenger_value: int
    opponent_value: int
    winner: str


class OutcomeResponse(BaseModel):
    """Scoring of a resolved battle."""

    verdict: str = Field(..., description="challenger, opponent or draw")
    challenger_points: int
    opponent_points: int
    challenger_total: int
    opponent_total: int
    comparisons: list[ComparisonResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, outcome: BattleOutcome) -> "OutcomeResponse":
        side = {"player": "challenger", "opponent": "opponent"}
        return cls(
            verdict=side.get(outcome.winner, "draw"),
            challenger_points=outcome.player_points,
            opponent_points=outcome.opponent_points,
            challenger_total=outcome.player_total,
            opponent_total=outcome.opponent_total,
            comparisons=[
                ComparisonResponse(
                    attribute=c.attribute,
                    challenger_value=c.player_value,
                    opponent_value=c.opponent_value,
                    winner=side.get(c.winner, "tie"),
                )
                for c in outcome.comparisons
            ],
        )


class TransferResponse(BaseModel):
    """The card that changed hands."""

    card_id: str
    previous_owner_id: str
    new_owner_id: str
    transferred_at: datetime | None = None

    @classmethod
    def from_model(cls, transfer: OwnershipTransfer) -> "TransferResponse":
        return cls(
            card_id=transfer.card_id,
            previous_owner_id=transfer.previous_owner_id,
            new_owner_id=transfer.new_owner_id,
            transferred_at=transfer.transferred_at,
        )


class ResolveResponse(BaseModel):
    """Response model for a resolved battle."""

    battle: BattleResponse
    outcome: OutcomeResponse | None = None
    transfer: TransferResponse | None = None
    already_resolved: bool = Field(
        default=False,
        description="True if the battle had been resolved by an earlier call",
    )


@router.get("", response_model=BattleListResponse)
async def list_my_battles(
    user_id: CurrentUser,
    engine: Engine,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> BattleListResponse:
    """Get the caller's battles, newest first."""
    battles = await engine.list_battles(user_id, limit=limit)
    return BattleListResponse(
        player_id=user_id,
        battles=[BattleResponse.from_model(b) for b in battles],
    )


@router.post("", response_model=BattleResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    request: CreateChallengeRequest,
    user_id: CurrentUser,
    engine: Engine,
) -> BattleResponse:
    """Challenge a player, or open a challenge anyone may accept."""
    battle = await engine.create_challenge(user_id, request.staked_card_id, request.opponent_id)
    return BattleResponse.from_model(battle)


@router.get("/{battle_id}", response_model=BattleResponse)
async def get_battle(battle_id: str, user_id: CurrentUser, engine: Engine) -> BattleResponse:
    """Get a battle. Participants only."""
    return BattleResponse.from_model(await engine.get_battle(battle_id, user_id))


@router.get("/{battle_id}/selection", response_model=SelectionResponse | None)
async def get_selection(
    battle_id: str, user_id: CurrentUser, engine: Engine
) -> SelectionResponse | None:
    """
    Get the battle's card selections.

    The other player's card stays hidden until both have selected.
    """
    selection = await engine.get_selection(battle_id, user_id)
    return SelectionResponse.from_model(selection) if selection else None


@router.post("/{battle_id}/accept", response_model=BattleResponse)
async def accept_challenge(battle_id: str, user_id: CurrentUser, engine: Engine) -> BattleResponse:
    """Accept a pending challenge."""
    return BattleResponse.from_model(await engine.accept_challenge(battle_id, user_id))


@router.post("/{battle_id}/decline", response_model=BattleResponse)
async def decline_challenge(
    battle_id: str, user_id: CurrentUser, engine: Engine
) -> BattleResponse:
    """Decline a pending challenge. No cards change hands."""
    return BattleResponse.from_model(await engine.decline_challenge(battle_id, user_id))


@router.post("/{battle_id}/abandon", response_model=BattleResponse)
async def abandon_battle(battle_id: str, user_id: CurrentUser, engine: Engine) -> BattleResponse:
    """Leave a battle before it is resolved. No cards change hands."""
    return BattleResponse.from_model(await engine.abandon_battle(battle_id, user_id))


@router.post("/{battle_id}/select", response_model=SelectionResponse)
async def select_card(
    battle_id: str,
    request: SelectCardRequest,
    user_id: CurrentUser,
    engine: Engine,
) -> SelectionResponse:
    """Submit the caller's card. Each player selects once."""
    selection = await engine.select_card(battle_id, user_id, request.card_id)
    return SelectionResponse.from_model(selection)


@router.post("/{battle_id}/resolve", response_model=ResolveResponse)
async def resolve_battle(battle_id: str, user_id: CurrentUser, engine: Engine) -> ResolveResponse:
    """
    Resolve a battle whose cards are revealed.

    Calling again after resolution returns the stored result.
    """
    result = await engine.resolve_battle(battle_id, user_id)
    return ResolveResponse(
        battle=BattleResponse.from_model(result.battle),
        outcome=OutcomeResponse.from_model(result.outcome) if result.outcome else None,
        transfer=TransferResponse.from_model(result.transfer) if result.transfer else None,
        already_resolved=result.already_resolved,
    )
