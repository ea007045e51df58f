from boosterbattle.db.database import get_session, init_db
from boosterbattle.db.operations import (
    battle_to_model,
    bind_opponent,
    card_staked_elsewhere,
    card_to_model,
    complete_timer_if_open,
    create_battle,
    create_selection,
    create_timer,
    ensure_utc,
    fill_selection_slot,
    get_battle,
    get_battle_transfer,
    get_card,
    get_card_history,
    get_owned_card,
    get_selection,
    get_timer,
    held_timer_slots,
    insert_card,
    list_battles,
    list_cards,
    list_timers,
    reveal_if_both_selected,
    selection_to_model,
    timer_to_model,
    transfer_card_once,
    transfer_to_model,
    transition_battle,
)

__all__ = [
    "battle_to_model",
    "bind_opponent",
    "card_staked_elsewhere",
    "card_to_model",
    "complete_timer_if_open",
    "create_battle",
    "create_selection",
    "create_timer",
    "ensure_utc",
    "fill_selection_slot",
    "get_battle",
    "get_battle_transfer",
    "get_card",
    "get_card_history",
    "get_owned_card",
    "get_selection",
    "get_session",
    "get_timer",
    "held_timer_slots",
    "init_db",
    "insert_card",
    "list_battles",
    "list_cards",
    "list_timers",
    "reveal_if_both_selected",
    "selection_to_model",
    "timer_to_model",
    "transfer_card_once",
    "transfer_to_model",
    "transition_battle",
]
