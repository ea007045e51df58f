"""
Battle protocol.

Drives a battle from challenge to resolution:

    pending -> active -> cards_revealed -> in_progress -> completed

Every status write goes through the transition table in
boosterbattle.models.battle and is guarded on the status the operation
read, so two requests racing on the same battle cannot both apply a
transition.

INVARIANTS:
- Only the challenger and the opponent may act on a battle
- Each player fills their selection slot exactly once
- Exactly one of two racing selections moves the battle to cards_revealed
- The loser's card is transferred at most once, together with its audit row
- Declined or abandoned battles complete with no winner and no transfer

Each operation commits its own transaction, then publishes a change event.
"""

import logging
from datetime import UTC, datetime
from typing import NoReturn

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from boosterbattle.db.operations import (
    battle_to_model,
    bind_opponent,
    card_staked_elsewhere,
    card_to_model,
    create_battle,
    create_selection,
    fill_selection_slot,
    get_battle,
    get_battle_transfer,
    get_card,
    get_owned_card,
    get_selection,
    list_battles,
    reveal_if_both_selected,
    selection_to_model,
    transfer_card_once,
    transfer_to_model,
    transition_battle,
)
from boosterbattle.models.battle import (
    Battle,
    BattleOutcome,
    BattleResult,
    BattleSelection,
    BattleStatus,
)
from boosterbattle.models.card import Card
from boosterbattle.models.db import BattleInstanceDB
from boosterbattle.models.errors import (
    AuthorizationError,
    CardAlreadySelectedError,
    CardNotOwnedError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from boosterbattle.services.battle_scoring import score_battle
from boosterbattle.services.notifications import (
    EventBroker,
    battle_channel,
    get_event_broker,
    publish_event,
    user_channel,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class BattleEngine:
    """
    Battle operations bound to one database session.

    Args:
        session: Session for the current request
        broker: Where change events are published after commit
    """

    def __init__(self, session: AsyncSession, broker: EventBroker | None = None) -> None:
        self.session = session
        self.broker = broker or get_event_broker()

    # --- Loading and validation ---

    async def _load_battle(self, battle_id: str, for_update: bool = False) -> BattleInstanceDB:
        battle = await get_battle(self.session, battle_id, for_update=for_update)
        if battle is None:
            raise NotFoundError("Battle not found.", detail=f"battle_id={battle_id}")
        return battle

    @staticmethod
    def _require_participant(battle: Battle, player_id: str) -> None:
        if not battle.is_participant(player_id):
            raise AuthorizationError(
                "You are not a participant in this battle.",
                detail=f"battle_id={battle.id}",
            )

    @staticmethod
    def _require_status(battle: Battle, expected: BattleStatus) -> None:
        if battle.status != expected:
            raise InvalidStateError(
                f"Battle is '{battle.status.value}', expected '{expected.value}'.",
                detail=f"battle_id={battle.id}",
            )

    async def _commit(self, action: str, battle_id: str | None) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "BATTLE_COMMIT_FAILED",
                extra={"action": action, "battle_id": battle_id, "error": str(e)},
            )
            raise InternalError(f"Failed to {action}.", detail=f"battle_id={battle_id}") from e

    async def _rollback_and_raise(
        self, action: str, battle_id: str, error: Exception
    ) -> NoReturn:
        await self.session.rollback()
        logger.error(
            "BATTLE_WRITE_FAILED",
            extra={"action": action, "battle_id": battle_id, "error": str(error)},
        )
        raise InternalError(f"Failed to {action}.", detail=f"battle_id={battle_id}") from error

    async def _reload(self, battle_id: str) -> Battle:
        return battle_to_model(await self._load_battle(battle_id))

    # --- Queries ---

    async def get_battle(self, battle_id: str, player_id: str) -> Battle:
        """Get a battle the caller takes part in."""
        battle = battle_to_model(await self._load_battle(battle_id))
        self._require_participant(battle, player_id)
        return battle

    async def get_selection(self, battle_id: str, player_id: str) -> BattleSelection | None:
        """
        Get the selection record of a battle.

        Before the reveal a player sees only their own slot.
        """
        battle = await self.get_battle(battle_id, player_id)
        selection = await get_selection(self.session, battle_id)
        if selection is None:
            return None
        model = selection_to_model(selection)
        if battle.status in (BattleStatus.PENDING, BattleStatus.ACTIVE):
            if player_id == battle.challenger_id:
                return BattleSelection(
                    battle_id=model.battle_id,
                    player1_card_id=model.player1_card_id,
                    player1_submitted_at=model.player1_submitted_at,
                    player2_submitted_at=model.player2_submitted_at,
                )
            return BattleSelection(
                battle_id=model.battle_id,
                player1_submitted_at=model.player1_submitted_at,
                player2_card_id=model.player2_card_id,
                player2_submitted_at=model.player2_submitted_at,
            )
        return model

    async def list_battles(self, player_id: str, limit: int = 50) -> list[Battle]:
        """Get the caller's battles, newest first."""
        battles = await list_battles(self.session, player_id, limit=limit)
        return [battle_to_model(b) for b in battles]

    # --- Challenge lifecycle ---

    async def create_challenge(
        self,
        challenger_id: str,
        staked_card_id: str,
        opponent_id: str | None = None,
    ) -> Battle:
        """
        Open a challenge, offering staked_card_id.

        With opponent_id set only that player may accept; otherwise the
        first other player to accept becomes the opponent.

        Raises:
            ValidationError: Challenger named themselves as opponent
            CardNotOwnedError: Challenger does not own the staked card
        """
        if opponent_id is not None and opponent_id == challenger_id:
            raise ValidationError("You cannot challenge yourself.")

        card = await get_owned_card(self.session, staked_card_id, challenger_id)
        if card is None:
            raise CardNotOwnedError(staked_card_id)

        try:
            battle_db = await create_battle(
                self.session, challenger_id, opponent_id, staked_card_id
            )
            battle = battle_to_model(battle_db)
        except SQLAlchemyError as e:
            await self._rollback_and_raise("create the challenge", "new", e)
        await self._commit("create the challenge", battle.id)

        logger.info(
            "CHALLENGE_CREATED",
            extra={
                "battle_id": battle.id,
                "challenger_id": challenger_id,
                "opponent_id": opponent_id,
            },
        )
        if opponent_id is not None:
            await publish_event(
                self.broker,
                user_channel(opponent_id),
                "challenge",
                {
                    "battle_id": battle.id,
                    "challenger_id": challenger_id,
                    "staked_card_id": staked_card_id,
                },
            )
        return battle

    async def accept_challenge(self, battle_id: str, responder_id: str) -> Battle:
        """
        Accept a pending challenge, moving the battle to active.

        Raises:
            NotFoundError: Battle does not exist
            AuthorizationError: Responder is not the invited opponent, or is
                the challenger
            InvalidStateError: Battle is no longer pending
        """
        battle = battle_to_model(await self._load_battle(battle_id, for_update=True))

        if responder_id == battle.challenger_id:
            raise AuthorizationError("You cannot accept your own challenge.")
        if battle.opponent_id is not None and battle.opponent_id != responder_id:
            raise AuthorizationError(
                "This challenge was sent to another player.",
                detail=f"battle_id={battle_id}",
            )
        self._require_status(battle, BattleStatus.PENDING)

        try:
            if battle.opponent_id is None and not await bind_opponent(
                self.session, battle_id, responder_id
            ):
                await self.session.rollback()
                raise AuthorizationError(
                    "Another player already accepted this challenge.",
                    detail=f"battle_id={battle_id}",
                )
            moved = await transition_battle(
                self.session, battle_id, BattleStatus.PENDING, BattleStatus.ACTIVE
            )
            if not moved:
                await self.session.rollback()
                raise InvalidStateError(
                    "This challenge is no longer pending.",
                    detail=f"battle_id={battle_id}",
                )
            await create_selection(self.session, battle_id)
        except SQLAlchemyError as e:
            await self._rollback_and_raise("accept the challenge", battle_id, e)
        await self._commit("accept the challenge", battle_id)

        accepted = await self._reload(battle_id)
        logger.info(
            "CHALLENGE_ACCEPTED",
            extra={"battle_id": battle_id, "opponent_id": responder_id},
        )
        await publish_event(
            self.broker,
            battle_channel(battle_id),
            "challenge_accepted",
            {"battle_id": battle_id, "status": accepted.status.value},
        )
        return accepted

    async def decline_challenge(self, battle_id: str, responder_id: str) -> Battle:
        """
        Decline a pending challenge. Completes it with no winner.

        Raises:
            NotFoundError: Battle does not exist
            AuthorizationError: Responder is not the invited opponent
            InvalidStateError: Battle is no longer pending
        """
        battle = battle_to_model(await self._load_battle(battle_id, for_update=True))
        if battle.opponent_id != responder_id:
            raise AuthorizationError(
                "Only the invited opponent can decline this challenge.",
                detail=f"battle_id={battle_id}",
            )
        self._require_status(battle, BattleStatus.PENDING)

        return await self._complete_without_winner(
            battle, "declined", "Challenge declined. No cards changed hands."
        )

    async def abandon_battle(self, battle_id: str, player_id: str) -> Battle:
        """
        Leave a battle before it is resolved. Completes it with no winner.

        Raises:
            NotFoundError: Battle does not exist
            AuthorizationError: Caller is not a participant
            InvalidStateError: Battle is already completed or being resolved
        """
        battle = battle_to_model(await self._load_battle(battle_id, for_update=True))
        self._require_participant(battle, player_id)
        if battle.status not in (
            BattleStatus.PENDING,
            BattleStatus.ACTIVE,
            BattleStatus.CARDS_REVEALED,
        ):
            raise InvalidStateError(
                f"Battle is '{battle.status.value}' and can no longer be abandoned.",
                detail=f"battle_id={battle_id}",
            )

        return await self._complete_without_winner(
            battle, "abandoned", f"Battle abandoned by {player_id}. No cards changed hands."
        )

    async def _complete_without_winner(
        self, battle: Battle, reason: str, explanation: str
    ) -> Battle:
        try:
            moved = await transition_battle(
                self.session,
                battle.id,
                battle.status,
                BattleStatus.COMPLETED,
                winner_id=None,
                explanation=explanation,
                completion_reason=reason,
                completed_at=utc_now(),
            )
            if not moved:
                await self.session.rollback()
                raise InvalidStateError(
                    "Battle changed state while completing it.",
                    detail=f"battle_id={battle.id}",
                )
        except SQLAlchemyError as e:
            await self._rollback_and_raise(f"complete the battle ({reason})", battle.id, e)
        await self._commit(f"complete the battle ({reason})", battle.id)

        completed = await self._reload(battle.id)
        logger.info("BATTLE_CLOSED", extra={"battle_id": battle.id, "reason": reason})
        await publish_event(
            self.broker,
            battle_channel(battle.id),
            "battle_completed",
            {"battle_id": battle.id, "winner_id": None, "reason": reason},
        )
        return completed

    # --- Card selection ---

    async def select_card(self, battle_id: str, player_id: str, card_id: str) -> BattleSelection:
        """
        Submit the caller's card for an active battle.

        When this submission fills the second slot, the battle moves to
        cards_revealed in the same transaction.

        Raises:
            NotFoundError: Battle does not exist
            AuthorizationError: Caller is not a participant
            InvalidStateError: Battle is not active
            CardNotOwnedError: Caller does not own the card
            ValidationError: Card is not a humanoid, or is staked in another
                unfinished battle
            CardAlreadySelectedError: Caller already submitted a card
        """
        battle = battle_to_model(await self._load_battle(battle_id, for_update=True))
        self._require_participant(battle, player_id)
        self._require_status(battle, BattleStatus.ACTIVE)

        card_db = await get_owned_card(self.session, card_id, player_id)
        if card_db is None:
            raise CardNotOwnedError(card_id)
        card = card_to_model(card_db)
        if not card.is_humanoid:
            raise ValidationError(
                "Only humanoid cards can battle.",
                detail=f"card_id={card_id} card_type={card.card_type.value}",
            )
        if await card_staked_elsewhere(self.session, card_id, battle_id):
            raise ValidationError(
                "This card is already staked in another battle.",
                detail=f"card_id={card_id}",
            )

        slot = 1 if player_id == battle.challenger_id else 2
        try:
            if not await fill_selection_slot(self.session, battle_id, slot, card_id, utc_now()):
                await self.session.rollback()
                raise CardAlreadySelectedError(battle_id)
            revealed = await reveal_if_both_selected(self.session, battle_id)
        except SQLAlchemyError as e:
            await self._rollback_and_raise("record the card selection", battle_id, e)
        await self._commit("record the card selection", battle_id)

        logger.info(
            "CARD_SELECTED",
            extra={"battle_id": battle_id, "player_id": player_id, "slot": slot},
        )

        selection_db = await get_selection(self.session, battle_id)
        if selection_db is None:
            raise InternalError("Selection record missing.", detail=f"battle_id={battle_id}")
        selection = selection_to_model(selection_db)

        if revealed:
            logger.info("CARDS_REVEALED", extra={"battle_id": battle_id})
            await publish_event(
                self.broker,
                battle_channel(battle_id),
                "cards_revealed",
                {
                    "battle_id": battle_id,
                    "player1_card_id": selection.player1_card_id,
                    "player2_card_id": selection.player2_card_id,
                },
            )
        else:
            await publish_event(
                self.broker,
                battle_channel(battle_id),
                "card_selected",
                {"battle_id": battle_id, "slot": slot},
            )
        return selection

    # --- Resolution ---

    async def _selected_cards(self, battle_id: str) -> tuple[Card, Card]:
        selection_db = await get_selection(self.session, battle_id)
        if selection_db is None:
            raise InvalidStateError(
                "Battle has no card selections.", detail=f"battle_id={battle_id}"
            )
        selection = selection_to_model(selection_db)
        if selection.player1_card_id is None or selection.player2_card_id is None:
            raise InvalidStateError(
                "Both players must select a card first.", detail=f"battle_id={battle_id}"
            )

        cards = []
        for card_id in (selection.player1_card_id, selection.player2_card_id):
            card = await get_card(self.session, card_id)
            if card is None:
                raise NotFoundError("Selected card not found.", detail=f"card_id={card_id}")
            cards.append(card_to_model(card))
        return cards[0], cards[1]

    def _score(self, challenger_card: Card, opponent_card: Card) -> BattleOutcome:
        return score_battle(
            challenger_card.attributes,
            opponent_card.attributes,
            player_name=challenger_card.card_name,
            opponent_name=opponent_card.card_name,
        )

    async def _stored_result(self, battle: Battle) -> BattleResult:
        """
        Describe a battle that was already completed, without writing.

        Only resolved battles carry an outcome. Declined and abandoned ones
        were never scored, even when both cards had been revealed.
        """
        outcome = None
        if battle.completion_reason == "resolved":
            challenger_card, opponent_card = await self._selected_cards(battle.id)
            outcome = self._score(challenger_card, opponent_card)
        record = await get_battle_transfer(self.session, battle.id)
        return BattleResult(
            battle=battle,
            outcome=outcome,
            transfer=transfer_to_model(record) if record else None,
            already_resolved=True,
        )

    async def resolve_battle(self, battle_id: str, player_id: str | None = None) -> BattleResult:
        """
        Score a revealed battle and transfer the loser's card to the winner.

        Safe to call repeatedly: a completed battle is returned as stored,
        and a resolver that loses the race to another one returns the
        winner's result.

        Args:
            battle_id: Battle to resolve
            player_id: Caller, checked for participation when given. Server
                side callers (watchdogs) pass None.

        Raises:
            NotFoundError: Battle or a selected card does not exist
            AuthorizationError: Caller is not a participant
            InvalidStateError: Cards have not been revealed yet
            InternalError: The store failed; nothing was written
        """
        battle = battle_to_model(await self._load_battle(battle_id, for_update=True))
        if player_id is not None:
            self._require_participant(battle, player_id)

        if battle.is_completed:
            return await self._stored_result(battle)
        self._require_status(battle, BattleStatus.CARDS_REVEALED)

        challenger_card, opponent_card = await self._selected_cards(battle_id)
        if not (challenger_card.is_humanoid and opponent_card.is_humanoid):
            raise ValidationError(
                "Only humanoid cards can battle.", detail=f"battle_id={battle_id}"
            )
        outcome = self._score(challenger_card, opponent_card)

        if outcome.winner == "player":
            winner_id, loser_card = battle.challenger_id, opponent_card
        elif outcome.winner == "opponent":
            winner_id, loser_card = battle.opponent_id, challenger_card
        else:
            winner_id, loser_card = None, None

        now = utc_now()
        transfer = None
        try:
            claimed = await transition_battle(
                self.session,
                battle_id,
                BattleStatus.CARDS_REVEALED,
                BattleStatus.IN_PROGRESS,
            )
            if not claimed:
                # Another resolver got there first
                await self.session.rollback()
                current = await self._reload(battle_id)
                if current.is_completed:
                    return await self._stored_result(current)
                raise InvalidStateError(
                    f"Battle is '{current.status.value}' and cannot be resolved now.",
                    detail=f"battle_id={battle_id}",
                )

            if winner_id is not None and loser_card is not None:
                record = await transfer_card_once(
                    self.session,
                    battle_id,
                    card_id=loser_card.id,
                    previous_owner_id=loser_card.owner_id,
                    new_owner_id=winner_id,
                    transferred_at=now,
                )
                transfer = transfer_to_model(record) if record else None

            await transition_battle(
                self.session,
                battle_id,
                BattleStatus.IN_PROGRESS,
                BattleStatus.COMPLETED,
                winner_id=winner_id,
                explanation=outcome.explanation,
                completion_reason="resolved",
                completed_at=now,
            )
        except InternalError:
            await self.session.rollback()
            logger.error("BATTLE_TRANSFER_FAILED", extra={"battle_id": battle_id})
            raise
        except SQLAlchemyError as e:
            await self._rollback_and_raise("resolve the battle", battle_id, e)
        await self._commit("resolve the battle", battle_id)

        resolved = await self._reload(battle_id)
        logger.info(
            "BATTLE_RESOLVED",
            extra={
                "battle_id": battle_id,
                "winner_id": winner_id,
                "verdict": outcome.winner,
                "transferred_card_id": transfer.card_id if transfer else None,
            },
        )
        await publish_event(
            self.broker,
            battle_channel(battle_id),
            "battle_completed",
            {
                "battle_id": battle_id,
                "winner_id": winner_id,
                "explanation": outcome.explanation,
                "transferred_card_id": transfer.card_id if transfer else None,
            },
        )
        return BattleResult(battle=resolved, outcome=outcome, transfer=transfer)
