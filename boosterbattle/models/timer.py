from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from boosterbattle.models.card import CardType


class TimerStatus(str, Enum):
    """
    Timer lifecycle. Never moves backward.

    Only active and completed are stored. Ready is reported for an active
    timer whose wait has elapsed; it is computed, never written.
    """

    ACTIVE = "active"
    READY = "ready"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class PackTimer:
    """
    A player's wait for one booster pack.

    Attributes:
        id: Timer id (uuid string)
        owner_id: Player who started the timer
        pack_type: Card family the pack yields
        start_time: When the wait started (timezone-aware)
        target_delay_hours: Committed wait, 4-24 hours
        status: Stored status, active or completed
        reward_card_id: Card granted on claim, set once completed
    """

    id: str
    owner_id: str
    pack_type: CardType
    start_time: datetime
    target_delay_hours: int
    status: TimerStatus = TimerStatus.ACTIVE
    reward_card_id: str | None = None

    @property
    def ends_at(self) -> datetime:
        return self.start_time + timedelta(hours=self.target_delay_hours)

    @property
    def is_completed(self) -> bool:
        return self.status == TimerStatus.COMPLETED
