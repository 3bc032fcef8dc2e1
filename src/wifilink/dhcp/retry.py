"""
Bounded retry policy for DHCP exchanges.
"""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

UNLIMITED = -1


class RetryState(Enum):
    """Retry state machine states."""
    IDLE = "idle"                 # No attempt made yet
    RETRYING = "retrying"         # At least one failure, attempts remain
    EXHAUSTED = "exhausted"       # Attempt budget used up


class RetryPolicy:
    """
    Counts attempts of one exchange against a budget.

    ``max_attempts`` is the total number of tries; UNLIMITED (-1) never
    exhausts and has to be asked for explicitly.
    """

    def __init__(self, max_attempts: int = 5, delay_seconds: float = 1.0):
        """
        Args:
            max_attempts: Tries before giving up, or UNLIMITED
            delay_seconds: Pause between a failure and the next try
        """
        if max_attempts == 0 or max_attempts < UNLIMITED:
            raise ValueError(f"max_attempts must be positive or {UNLIMITED}")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.state = RetryState.IDLE
        self.attempt_count = 0
        self.last_error: Optional[BaseException] = None

    @property
    def unlimited(self) -> bool:
        return self.max_attempts == UNLIMITED

    def reset(self) -> None:
        """Reset retry state before a new exchange."""
        self.state = RetryState.IDLE
        self.attempt_count = 0
        self.last_error = None

    def record_failure(self, error: BaseException) -> Optional[float]:
        """
        Record a failed attempt.

        Returns:
            Seconds to wait before the next attempt, or None when exhausted
        """
        self.attempt_count += 1
        self.last_error = error

        if not self.unlimited and self.attempt_count >= self.max_attempts:
            self.state = RetryState.EXHAUSTED
            logger.debug(f"Retries exhausted after {self.attempt_count} attempts")
            return None

        self.state = RetryState.RETRYING
        return self.delay_seconds

    def is_exhausted(self) -> bool:
        return self.state == RetryState.EXHAUSTED
