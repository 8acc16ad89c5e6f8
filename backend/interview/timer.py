"""
Per-question countdown timer.

The timer does not schedule anything by itself: a driver calls tick()
once per second. Reaching zero is reported exactly once per arming so
that the auto-submit path cannot fire twice for the same question.
"""
import time
from typing import Callable, Optional


class QuestionTimer:
    """
    Countdown scoped to the current question.

    Features:
    - 1-second resolution remaining-time counter
    - Idempotent expiry (tick and the safety check share one flag)
    - Elapsed time measured against an injectable monotonic clock
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.question_index: Optional[int] = None
        self.limit_seconds = 0
        self.remaining = 0
        self.armed = False
        self.expired = False
        self._started_at: Optional[float] = None
        self._credited = 0

    def arm(self, question_index: int, limit_seconds: int, remaining: Optional[int] = None):
        """
        Start the countdown for a question, replacing any previous one.

        Args:
            question_index: Index of the question the countdown belongs to
            limit_seconds: Full time limit of the question
            remaining: Seconds left, when resuming with time already used
        """
        self.question_index = question_index
        self.limit_seconds = limit_seconds
        if remaining is None:
            self.remaining = limit_seconds
        else:
            self.remaining = max(0, min(limit_seconds, int(remaining)))
        self._credited = limit_seconds - self.remaining
        self._started_at = self._clock()
        self.armed = True
        self.expired = False

    def tick(self) -> bool:
        """
        Advance the countdown by one second.

        Returns:
            True only on the tick that takes the countdown to zero
        """
        if not self.armed:
            return False
        self.remaining = max(0, self.remaining - 1)
        if self.remaining == 0:
            return self._expire()
        return False

    def check_expired(self) -> bool:
        """
        Safety check for a countdown sitting at zero without having fired.

        Returns:
            True if this call is the one that reports the expiry
        """
        if self.question_index is None or self.remaining > 0:
            return False
        return self._expire()

    def _expire(self) -> bool:
        if self.expired:
            return False
        self.expired = True
        self.armed = False
        return True

    def stop(self):
        """Stop counting down. Remaining time is kept for inspection."""
        self.armed = False

    def reset(self):
        """Forget the current question entirely."""
        self.question_index = None
        self.limit_seconds = 0
        self.remaining = 0
        self.armed = False
        self.expired = False
        self._started_at = None
        self._credited = 0

    def elapsed_seconds(self) -> float:
        """Seconds used on the current question, including credited time."""
        if self._started_at is None:
            return 0.0
        return self._credited + (self._clock() - self._started_at)
