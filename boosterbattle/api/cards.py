"""
Card API endpoints.

Read-only views of the caller's cards and of a card's ownership trail.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.api.deps import CurrentUser
from boosterbattle.db import card_to_model, get_card, get_card_history, list_cards
from boosterbattle.db.database import get_session
from boosterbattle.models.card import Card
from boosterbattle.models.errors import NotFoundError

router = APIRouter(prefix="/cards", tags=["cards"])


class CardResponse(BaseModel):
    """A card as shown to its owner."""

    id: str
    owner_id: str
    card_type: str
    card_name: str
    attributes: dict[str, int] = Field(
        default_factory=dict,
        description="Integer stats keyed by str, dex, int",
        examples=[{"str": 31, "dex": 22, "int": 24}],
    )
    rarity: str
    obtained_at: datetime | None = None

    @classmethod
    def from_model(cls, card: Card) -> "CardResponse":
        return cls(
            id=card.id,
            owner_id=card.owner_id,
            card_type=card.card_type.value,
            card_name=card.card_name,
            attributes=dict(card.attributes),
            rarity=card.rarity.value,
            obtained_at=card.obtained_at,
        )


class CardListResponse(BaseModel):
    """Response model for a player's cards."""

    owner_id: str
    cards: list[CardResponse] = Field(default_factory=list)
    total_cards: int = 0


class TransferResponse(BaseModel):
    """One ownership change."""

    previous_owner_id: str
    new_owner_id: str
    battle_id: str
    transferred_at: datetime | None = None


class CardHistoryResponse(BaseModel):
    """Response model for a card's ownership trail."""

    card_id: str
    current_owner_id: str
    transfers: list[TransferResponse] = Field(default_factory=list)


@router.get("", response_model=CardListResponse)
async def get_my_cards(
    user_id: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardListResponse:
    """Get the caller's cards, newest first."""
    cards = [CardResponse.from_model(card_to_model(c)) for c in await list_cards(session, user_id)]
    return CardListResponse(owner_id=user_id, cards=cards, total_cards=len(cards))


@router.get("/{card_id}/history", response_model=CardHistoryResponse)
async def get_history(
    card_id: str,
    user_id: CurrentUser,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardHistoryResponse:
    """
    Get the ownership trail of a card.

    Visible to the current owner and to anyone who owned it before.
    """
    card = await get_card(session, card_id)
    if card is None:
        raise NotFoundError("Card not found.", detail=f"card_id={card_id}")

    history = await get_card_history(session, card_id)
    owners = {card.owner_id} | {h.previous_owner_id for h in history}
    if user_id not in owners:
        raise NotFoundError("Card not found.", detail=f"card_id={card_id}")

    return CardHistoryResponse(
        card_id=card_id,
        current_owner_id=card.owner_id,
        transfers=[
            TransferResponse(
                previous_owner_id=h.previous_owner_id,
                new_owner_id=h.new_owner_id,
                battle_id=h.battle_id,
                transferred_at=h.transferred_at,
            )
            for h in history
        ],
    )
