import logging
import random
from typing import Any, Dict, Optional

from core.service_interface import BaseService

logger = logging.getLogger(__name__)


class RetryManager(BaseService):
    """Retry budget and backoff calculation for page fetches."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._initialized = False
        self._max_attempts = 3
        self._delay_strategy = 'exponential'
        self._base_delay = 2.0
        self._backoff_factor = 2.0
        self._max_delay = 30.0
        self._jitter_factor = 0.1
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config) -> 'RetryManager':
        manager = cls()
        manager.initialize({
            'max_attempts': config.max_attempts,
            'delay_strategy': config.backoff_strategy,
            'base_delay': config.retry_base_delay,
            'backoff_factor': config.backoff_factor,
            'max_delay': config.retry_max_delay,
        })
        return manager

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the retry manager with configuration."""
        if self._initialized:
            return

        config = config or {}
        self._max_attempts = config.get('max_attempts', 3)
        self._delay_strategy = config.get('delay_strategy', 'exponential')
        self._base_delay = config.get('base_delay', 2.0)
        self._backoff_factor = config.get('backoff_factor', 2.0)
        self._max_delay = config.get('max_delay', 30.0)
        self._jitter_factor = config.get('jitter_factor', 0.1)

        self._initialized = True
        logger.info(f"Retry manager initialized: {self._max_attempts} attempts, {self._delay_strategy} backoff")

    def shutdown(self) -> None:
        self._initialized = False

    @property
    def name(self) -> str:
        """Return the name of the service."""
        return "retry_manager"

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def should_retry(self, attempt: int, retryable: bool = True) -> bool:
        """
        Decide whether another attempt is allowed.

        Args:
            attempt: Number of attempts already made (1-based)
            retryable: Whether the last failure is transient

        Returns:
            True if another attempt should be made
        """
        return retryable and attempt < self._max_attempts

    def get_retry_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Calculate the delay before the next retry attempt.

        Args:
            attempt: Number of attempts already made (1-based)
            retry_after: Server-provided Retry-After value in seconds, if any

        Returns:
            Delay in seconds
        """
        index = max(attempt - 1, 0)

        if self._delay_strategy == 'constant':
            delay = self._base_delay
        elif self._delay_strategy == 'linear':
            delay = self._base_delay * (index + 1)
        else:  # Default to exponential
            delay = self._base_delay * (self._backoff_factor ** index)

        # Apply jitter to avoid synchronized retries across workers
        if self._jitter_factor:
            delay += delay * self._jitter_factor * self._rng.uniform(-1, 1)

        if retry_after is not None:
            delay = max(delay, float(retry_after))

        return max(0.0, min(delay, self._max_delay))
