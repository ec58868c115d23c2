"""
Run configuration for the price scraper.

ScraperConfig is an immutable value built once at startup (usually from the
environment via config.py) and passed explicitly to every component.
"""

import logging
import re
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from core.errors import FatalConfigurationError

logger = logging.getLogger(__name__)

# Default user agents to rotate through when no list is configured
DEFAULT_USER_AGENTS = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:125.0) Gecko/20100101 Firefox/125.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0',
)

# Case-insensitive substrings that mark a block or challenge page
DEFAULT_BLOCKING_SIGNATURES = (
    'access denied',
    'forbidden',
    'rate limit',
    'too many requests',
    'captcha',
    'human verification',
    'verify you are human',
    'security check',
    'checking your browser',
    'attention required',
)

DEFAULT_BASE_URL = 'https://www.stromauskunft.de/de/stadt/stromanbieter-in-'

# JSON Schema for the scraper configuration
SCRAPER_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "base_url": {"type": "string", "pattern": "^https?://"},
        "url_suffix": {"type": "string"},
        "request_delay": {"type": "number", "minimum": 0},
        "request_delay_jitter": {"type": "number", "minimum": 0},
        "max_attempts": {"type": "integer", "minimum": 1, "maximum": 10},
        "backoff_strategy": {"type": "string", "enum": ["constant", "linear", "exponential"]},
        "retry_base_delay": {"type": "number", "minimum": 0},
        "backoff_factor": {"type": "number", "minimum": 1},
        "retry_max_delay": {"type": "number", "minimum": 0},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "min_response_bytes": {"type": "integer", "minimum": 0},
        "blocking_signatures": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "proxy_enabled": {"type": "boolean"},
        "proxies": {"type": "array", "items": {"type": "string"}},
        "proxy_file": {"type": ["string", "null"]},
        "include_direct": {"type": "boolean"},
        "tor_enabled": {"type": "boolean"},
        "tor_proxy_url": {"type": "string", "pattern": "^socks5h?://"},
        "max_proxy_failures": {"type": "integer", "minimum": 1},
        "verify_proxies": {"type": "boolean"},
        "proxy_test_url": {"type": "string"},
        "user_agent_source": {"type": "string", "enum": ["static", "fake_useragent"]},
        "user_agents": {"type": "array", "items": {"type": "string"}},
        "min_price": {"type": "number", "exclusiveMinimum": 0},
        "max_price": {"type": "number", "exclusiveMinimum": 0},
        "outlier_high": {"type": "number", "exclusiveMinimum": 0},
        "outlier_very_high": {"type": "number", "exclusiveMinimum": 0},
        "outlier_extreme": {"type": "number", "exclusiveMinimum": 0},
        "correct_inverted_prices": {"type": "boolean"},
        "simple_row_max_chars": {"type": "integer", "minimum": 10},
        "max_targets": {"type": "integer", "minimum": 0},
        "max_workers": {"type": "integer", "minimum": 1, "maximum": 32},
        "data_month": {"type": ["string", "null"], "pattern": "^\\d{4}-(0[1-9]|1[0-2])(-01)?$"},
        "progress_interval": {"type": "integer", "minimum": 1},
        "max_fallback_distance_km": {"type": "number", "minimum": 0},
        "database_url": {"type": "string", "minLength": 1},
        "diagnostics_dir": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}


def validate_scraper_configuration(values: Dict[str, Any]) -> List[str]:
    """
    Validate a configuration dictionary against the schema and the
    cross-field rules (ordered thresholds, sane price range).

    Args:
        values: The configuration dictionary to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    validator = jsonschema.Draft7Validator(SCRAPER_CONFIG_SCHEMA)
    for error in validator.iter_errors(values):
        path = '.'.join([str(p) for p in error.path]) or '<root>'
        errors.append(f"{path}: {error.message}")

    if errors:
        return errors

    if values['min_price'] >= values['max_price']:
        errors.append("min_price: must be lower than max_price")
    if not values['outlier_high'] <= values['outlier_very_high'] <= values['outlier_extreme']:
        errors.append("outlier thresholds: must satisfy high <= very_high <= extreme")
    if values['user_agent_source'] == 'static' and not values['user_agents']:
        errors.append("user_agents: at least one user agent is required")

    return errors


@dataclass(frozen=True)
class ScraperConfig:
    """Immutable settings for one scraping run."""

    # Source
    base_url: str = DEFAULT_BASE_URL
    url_suffix: str = '.html'

    # Pacing and retries
    request_delay: float = 3.0
    request_delay_jitter: float = 1.0
    max_attempts: int = 3
    backoff_strategy: str = 'exponential'
    retry_base_delay: float = 2.0
    backoff_factor: float = 2.0
    retry_max_delay: float = 30.0
    request_timeout: float = 20.0
    min_response_bytes: int = 500
    blocking_signatures: Tuple[str, ...] = DEFAULT_BLOCKING_SIGNATURES

    # Egress rotation
    proxy_enabled: bool = False
    proxies: Tuple[str, ...] = ()
    proxy_file: Optional[str] = None
    include_direct: bool = True
    tor_enabled: bool = False
    tor_proxy_url: str = 'socks5h://127.0.0.1:9050'
    max_proxy_failures: int = 3
    verify_proxies: bool = False
    proxy_test_url: str = 'https://httpbin.org/ip'

    # Identity rotation
    user_agent_source: str = 'static'
    user_agents: Tuple[str, ...] = DEFAULT_USER_AGENTS

    # Price validation (EUR per kWh)
    min_price: float = 0.05
    max_price: float = 2.00
    outlier_high: float = 1.00
    outlier_very_high: float = 1.50
    outlier_extreme: float = 2.00
    correct_inverted_prices: bool = True

    # Extraction
    simple_row_max_chars: int = 100

    # Run limits
    max_targets: int = 0
    max_workers: int = 1
    data_month: Optional[str] = None
    progress_interval: int = 25
    max_fallback_distance_km: float = 50.0

    # Collaborators
    database_url: str = 'sqlite:///electricity_prices.db'
    diagnostics_dir: str = 'logs'

    def __post_init__(self):
        # Lists from callers are frozen into tuples so the value stays hashable
        for name in ('blocking_signatures', 'proxies', 'user_agents'):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value or ()))

        # Resolve the month once so a run never spans two periods
        if not self.data_month:
            object.__setattr__(self, 'data_month', date.today().strftime('%Y-%m'))

        errors = validate_scraper_configuration(self.to_dict(redact=False))
        if errors:
            raise FatalConfigurationError("Invalid scraper configuration: " + "; ".join(errors))

    @classmethod
    def from_env(cls, **overrides) -> 'ScraperConfig':
        """Build a configuration from the settings in config.py."""
        import config

        values = dict(
            base_url=config.SOURCE_BASE_URL,
            url_suffix=config.SOURCE_URL_SUFFIX,
            request_delay=config.REQUEST_DELAY,
            request_delay_jitter=config.REQUEST_DELAY_JITTER,
            max_attempts=config.MAX_RETRY_ATTEMPTS,
            backoff_strategy=config.RETRY_BACKOFF_STRATEGY,
            retry_base_delay=config.RETRY_BASE_DELAY,
            backoff_factor=config.RETRY_BACKOFF_FACTOR,
            retry_max_delay=config.RETRY_MAX_DELAY,
            request_timeout=config.REQUEST_TIMEOUT,
            min_response_bytes=config.MIN_RESPONSE_BYTES,
            proxy_enabled=config.PROXY_ENABLED,
            proxies=tuple(config.PROXY_LIST),
            proxy_file=config.PROXY_FILE,
            include_direct=config.PROXY_INCLUDE_DIRECT,
            tor_enabled=config.TOR_ENABLED,
            tor_proxy_url=config.TOR_PROXY_URL,
            max_proxy_failures=config.MAX_PROXY_FAILURES,
            verify_proxies=config.PROXY_VERIFY_ON_STARTUP,
            proxy_test_url=config.PROXY_TEST_URL,
            user_agent_source=config.USER_AGENT_SOURCE,
            user_agents=tuple(config.USER_AGENTS) or DEFAULT_USER_AGENTS,
            min_price=config.MIN_VALID_PRICE,
            max_price=config.MAX_VALID_PRICE,
            outlier_high=config.OUTLIER_HIGH_THRESHOLD,
            outlier_very_high=config.OUTLIER_VERY_HIGH_THRESHOLD,
            outlier_extreme=config.OUTLIER_EXTREME_THRESHOLD,
            correct_inverted_prices=config.CORRECT_INVERTED_PRICES,
            simple_row_max_chars=config.SIMPLE_ROW_MAX_CHARS,
            max_targets=config.MAX_TARGETS,
            max_workers=config.MAX_WORKERS,
            data_month=config.DATA_MONTH,
            progress_interval=config.PROGRESS_INTERVAL,
            max_fallback_distance_km=config.MAX_FALLBACK_DISTANCE_KM,
            database_url=config.DATABASE_URL,
            diagnostics_dir=config.DIAGNOSTICS_DIR,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides) -> 'ScraperConfig':
        """Return a copy with the given (non-None) fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise FatalConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def period(self) -> date:
        """First day of the month the run writes records for."""
        year, month = self.data_month.split('-')[:2]
        return date(int(year), int(month), 1)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """
        Convert the configuration to a JSON-friendly dictionary.

        Args:
            redact: Mask credentials embedded in proxy URLs

        Returns:
            Dictionary of all settings
        """
        values = asdict(self)
        for name in ('blocking_signatures', 'proxies', 'user_agents'):
            values[name] = list(values[name])
        if redact:
            values['proxies'] = [_redact_credentials(p) for p in values['proxies']]
            values['database_url'] = _redact_credentials(values['database_url'])
        return values


_CREDENTIALS_PATTERN = re.compile(r'(?<=://)[^/@\s]+@')


def _redact_credentials(url: str) -> str:
    return _CREDENTIALS_PATTERN.sub('***@', url)
