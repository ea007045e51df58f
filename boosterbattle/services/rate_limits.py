"""
Rate limiting for pack endpoints.

Starting and claiming packs is throttled per player with a sliding window.
The limiter only decides; endpoints consult it before doing any work.

INVARIANTS:
- Limits are enforced BEFORE any store access
- Exceeding a limit is terminal for the request, no partial execution
- Player ids are hashed before they are stored or logged
"""

import hashlib
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from boosterbattle.config import settings
from boosterbattle.models.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class SlidingWindowRateLimiter:
    """
    Thread-safe per-client sliding-window limiter.

    A client may make at most max_requests within any window_seconds span.
    """

    # Configuration
    max_requests: int = 10
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic

    # State
    _requests: dict[str, deque[float]] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)

    def hash_client(self, client_id: str) -> str:
        """
        Hash a player id for privacy-safe storage and logging.

        Uses SHA-256 truncated to 12 characters.
        """
        return hashlib.sha256(client_id.encode()).hexdigest()[:12]

    def check(self, client_id: str) -> None:
        """
        Record a request for client_id, or reject it.

        Raises:
            RateLimitExceededError: If the client is over its budget
        """
        with self._lock:
            now = self.clock()
            client_hash = self.hash_client(client_id)
            window = self._requests.setdefault(client_hash, deque())

            # Drop requests that fell out of the window
            while window and now - window[0] >= self.window_seconds:
                window.popleft()

            if len(window) >= self.max_requests:
                logger.warning(
                    "RATE_LIMIT_EXCEEDED",
                    extra={
                        "client_hash": client_hash,
                        "requests_in_window": len(window),
                        "limit": self.max_requests,
                    },
                )
                raise RateLimitExceededError(
                    client_hash, self.max_requests, int(self.window_seconds)
                )

            window.append(now)

    def remaining(self, client_id: str) -> int:
        """Requests left for client_id in the current window."""
        with self._lock:
            now = self.clock()
            window = self._requests.get(self.hash_client(client_id), deque())
            live = sum(1 for t in window if now - t < self.window_seconds)
            return max(0, self.max_requests - live)


# Singleton limiter instance
_pack_rate_limiter: SlidingWindowRateLimiter | None = None


def get_pack_rate_limiter() -> SlidingWindowRateLimiter:
    """Get the limiter shared by the pack endpoints."""
    global _pack_rate_limiter
    if _pack_rate_limiter is None:
        _pack_rate_limiter = SlidingWindowRateLimiter(
            max_requests=settings.claim_requests_per_window,
            window_seconds=settings.claim_window_seconds,
        )
    return _pack_rate_limiter


def reset_pack_rate_limiter() -> None:
    """Reset the pack limiter (for testing)."""
    global _pack_rate_limiter
    _pack_rate_limiter = None
