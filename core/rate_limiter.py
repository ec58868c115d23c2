"""
Request pacing between targets.

The pause between two targets is a randomized base +/- jitter delay. The
wait is done on a threading.Event so a stop request ends it immediately.
"""

import logging
import random
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class RequestPacer:
    """Randomized, cancellable inter-request delay."""

    def __init__(self, base_delay: float = 3.0, jitter: float = 1.0,
                 stop_event: Optional[threading.Event] = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize the pacer.

        Args:
            base_delay: Mean delay in seconds
            jitter: Maximum deviation from the mean in seconds
            stop_event: Event that cuts any wait short when set
            rng: Random generator, injectable for deterministic tests
        """
        self.base_delay = base_delay
        self.jitter = jitter
        self.stop_event = stop_event or threading.Event()
        self._rng = rng or random.Random()
        self.total_waited = 0.0
        self.waits = 0

    @classmethod
    def from_config(cls, config, stop_event: Optional[threading.Event] = None) -> 'RequestPacer':
        return cls(config.request_delay, config.request_delay_jitter, stop_event)

    def next_delay(self) -> float:
        return max(0.0, self.base_delay + self._rng.uniform(-self.jitter, self.jitter))

    def wait(self, seconds: Optional[float] = None) -> bool:
        """
        Sleep for the given (or a randomized) delay unless stopped.

        Returns:
            True if the full delay elapsed, False if the wait was cancelled
        """
        delay = self.next_delay() if seconds is None else seconds
        self.waits += 1
        if delay <= 0:
            return not self.stop_event.is_set()

        logger.debug(f"Waiting {delay:.2f}s before next request")
        cancelled = self.stop_event.wait(delay)
        if not cancelled:
            self.total_waited += delay
        return not cancelled
