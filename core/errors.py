"""
Error taxonomy for the price scraper.

Per-target errors (NotFound, Blocked, BlockedExhausted, TransportError,
NoPriceFound, PersistenceFailure) are recorded and the run moves on.
FatalConfigurationError and connectivity failures at startup end the run.
"""

from typing import Any, List, Optional


class ScraperError(Exception):
    """Base exception for all scraper errors."""

    kind = "scraper_error"

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class NotFound(ScraperError):
    """The source has no page for the target."""

    kind = "not_found"


class Blocked(ScraperError):
    """The response looked like a block page (captcha, rate limit, tiny body)."""

    kind = "blocked"


class BlockedExhausted(Blocked):
    """Every attempt for a target was blocked."""

    kind = "blocked_exhausted"


class TransportError(ScraperError):
    """Network failure, timeout or unexpected HTTP status."""

    kind = "transport_error"


class NoPriceFound(ScraperError):
    """Extraction ran but no strategy produced a usable price."""

    kind = "no_price_found"

    def __init__(self, message: str, url: Optional[str] = None, trace: Optional[List[Any]] = None):
        self.trace = trace or []
        super().__init__(message, url)


class PersistenceFailure(ScraperError):
    """A database operation failed for a reason other than a duplicate key."""

    kind = "persistence_failure"


class FatalConfigurationError(ScraperError):
    """The run cannot start with the given configuration."""

    kind = "fatal_configuration"


class RunCancelled(ScraperError):
    """The run was stopped before all targets were processed."""

    kind = "cancelled"
