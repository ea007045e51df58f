"""
BoosterBattle services.

Business logic for pack timers, card generation, battles and scoring.
"""

from boosterbattle.services.battle_engine import BattleEngine
from boosterbattle.services.battle_scoring import score_battle
from boosterbattle.services.card_generation import (
    generate_card,
    gold_chance_percent,
    parse_card_type,
    rarity_for,
)
from boosterbattle.services.notifications import (
    Event,
    EventBroker,
    get_event_broker,
    reset_event_broker,
)
from boosterbattle.services.pack_timers import (
    claim_reward,
    get_player_timers,
    start_timer,
)
from boosterbattle.services.rate_limits import (
    SlidingWindowRateLimiter,
    get_pack_rate_limiter,
    reset_pack_rate_limiter,
)

__all__ = [
    "BattleEngine",
    "score_battle",
    "generate_card",
    "gold_chance_percent",
    "parse_card_type",
    "rarity_for",
    "Event",
    "EventBroker",
    "get_event_broker",
    "reset_event_broker",
    "claim_reward",
    "get_player_timers",
    "start_timer",
    "SlidingWindowRateLimiter",
    "get_pack_rate_limiter",
    "reset_pack_rate_limiter",
]
