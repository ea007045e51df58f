from boosterbattle.api.battles import router as battles_router
from boosterbattle.api.cards import router as cards_router
from boosterbattle.api.events import router as events_router
from boosterbattle.api.health import router as health_router
from boosterbattle.api.timers import router as timers_router

__all__ = [
    "battles_router",
    "cards_router",
    "events_router",
    "health_router",
    "timers_router",
]
