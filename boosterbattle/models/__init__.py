from boosterbattle.models.battle import (
    BATTLE_TRANSITIONS,
    AttributeComparison,
    Battle,
    BattleOutcome,
    BattleResult,
    BattleSelection,
    BattleStatus,
    OwnershipTransfer,
    can_transition,
)
from boosterbattle.models.card import ATTRIBUTE_NAMES, Card, CardType, GeneratedCard, Rarity
from boosterbattle.models.errors import (
    AuthError,
    AuthorizationError,
    CardAlreadySelectedError,
    CardNotOwnedError,
    ErrorResponse,
    FailureDetail,
    FailureKind,
    InternalError,
    InvalidStateError,
    KnownError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from boosterbattle.models.timer import PackTimer, TimerStatus

__all__ = [
    "ATTRIBUTE_NAMES",
    "AttributeComparison",
    "AuthError",
    "AuthorizationError",
    "BATTLE_TRANSITIONS",
    "Battle",
    "BattleOutcome",
    "BattleResult",
    "BattleSelection",
    "BattleStatus",
    "Card",
    "CardAlreadySelectedError",
    "CardNotOwnedError",
    "CardType",
    "ErrorResponse",
    "FailureDetail",
    "FailureKind",
    "GeneratedCard",
    "InternalError",
    "InvalidStateError",
    "KnownError",
    "NotFoundError",
    "OwnershipTransfer",
    "PackTimer",
    "Rarity",
    "RateLimitExceededError",
    "TimerStatus",
    "ValidationError",
    "can_transition",
]
