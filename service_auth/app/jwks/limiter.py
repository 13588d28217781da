"""
Sliding-window limiter for signing key refreshes.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Any

from shared.logging import get_logger


class RefreshLimiter:
    """Allow at most ``max_attempts`` refreshes in any rolling ``window_seconds``.

    Callers that exceed the ceiling are refused immediately; the limiter never
    sleeps or queues. One instance is shared by every lookup of a cache.
    """

    def __init__(
        self,
        max_attempts: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Deque[float] = deque()
        self.logger = get_logger("auth.jwks.limiter")

    def _prune(self, now: float) -> None:
        while self._attempts and now - self._attempts[0] >= self.window_seconds:
            self._attempts.popleft()

    def try_acquire(self) -> bool:
        """Record an attempt if the window has room, otherwise refuse it."""
        now = self._clock()
        self._prune(now)
        if len(self._attempts) >= self.max_attempts:
            self.logger.warning(
                "Refresh limit reached",
                attempts=len(self._attempts),
                limit=self.max_attempts,
                window_seconds=self.window_seconds,
            )
            return False

        self._attempts.append(now)
        return True

    @property
    def remaining(self) -> int:
        """Attempts still available in the current window."""
        self._prune(self._clock())
        return self.max_attempts - len(self._attempts)

    def retry_after(self) -> float:
        """Seconds until the oldest attempt leaves the window."""
        now = self._clock()
        self._prune(now)
        if len(self._attempts) < self.max_attempts:
            return 0.0
        return max(0.0, self.window_seconds - (now - self._attempts[0]))

    def get_state(self) -> Dict[str, Any]:
        """Get current limiter state."""
        return {
            "limit": self.max_attempts,
            "window_seconds": self.window_seconds,
            "remaining": self.remaining,
            "retry_after": round(self.retry_after(), 3),
        }

    def reset(self) -> None:
        """Forget every recorded attempt."""
        self._attempts.clear()
