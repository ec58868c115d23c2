"""
Configuration settings for the electricity price scraper.
All values are read once from the environment (and an optional .env file).
Core components never read these directly; they receive a ScraperConfig
built by core.configuration.ScraperConfig.from_env().
"""

import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

def get_env_bool(key: str, default: bool = False) -> bool:
    """Convert environment variable to boolean."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on')

def get_env_int(key: str, default: int) -> int:
    """Convert environment variable to integer."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default

def get_env_float(key: str, default: float) -> float:
    """Convert environment variable to float."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default

def get_env_list(key: str, default: List[str] = None) -> List[str]:
    """Convert a comma-separated environment variable to a list of strings."""
    value = os.getenv(key)
    if not value:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]

# Environment Configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Source Website
SOURCE_BASE_URL = os.getenv("SOURCE_BASE_URL", "https://www.stromauskunft.de/de/stadt/stromanbieter-in-")
SOURCE_URL_SUFFIX = os.getenv("SOURCE_URL_SUFFIX", ".html")

# Reference Data
CSV_PATH = os.getenv("CSV_PATH", "data/georef-germany-postleitzahl.csv")
CSV_DELIMITER = os.getenv("CSV_DELIMITER", ";")

# Request Pacing & Retries
REQUEST_DELAY = get_env_float("REQUEST_DELAY", 3.0)  # seconds between targets
REQUEST_DELAY_JITTER = get_env_float("REQUEST_DELAY_JITTER", 1.0)
MAX_RETRY_ATTEMPTS = get_env_int("MAX_RETRY_ATTEMPTS", 3)
RETRY_BACKOFF_STRATEGY = os.getenv("RETRY_BACKOFF_STRATEGY", "exponential")  # constant, linear, exponential
RETRY_BASE_DELAY = get_env_float("RETRY_BASE_DELAY", 2.0)
RETRY_BACKOFF_FACTOR = get_env_float("RETRY_BACKOFF_FACTOR", 2.0)
RETRY_MAX_DELAY = get_env_float("RETRY_MAX_DELAY", 30.0)
REQUEST_TIMEOUT = get_env_float("REQUEST_TIMEOUT", 20.0)
MIN_RESPONSE_BYTES = get_env_int("MIN_RESPONSE_BYTES", 500)

# Proxy Settings
PROXY_ENABLED = get_env_bool("PROXY_ENABLED", False)
PROXY_LIST = get_env_list("PROXY_LIST")
PROXY_FILE = os.getenv("PROXY_FILE")
PROXY_INCLUDE_DIRECT = get_env_bool("PROXY_INCLUDE_DIRECT", True)
TOR_ENABLED = get_env_bool("TOR_ENABLED", False)
TOR_PROXY_URL = os.getenv("TOR_PROXY_URL", "socks5h://127.0.0.1:9050")
MAX_PROXY_FAILURES = get_env_int("MAX_PROXY_FAILURES", 3)
PROXY_VERIFY_ON_STARTUP = get_env_bool("PROXY_VERIFY_ON_STARTUP", False)
PROXY_TEST_URL = os.getenv("PROXY_TEST_URL", "https://httpbin.org/ip")

# User Agent Rotation
USER_AGENT_SOURCE = os.getenv("USER_AGENT_SOURCE", "static")  # static, fake_useragent
USER_AGENTS = get_env_list("USER_AGENTS")

# Price Validation
MIN_VALID_PRICE = get_env_float("MIN_VALID_PRICE", 0.05)  # EUR/kWh
MAX_VALID_PRICE = get_env_float("MAX_VALID_PRICE", 2.00)
OUTLIER_HIGH_THRESHOLD = get_env_float("OUTLIER_HIGH_THRESHOLD", 1.00)
OUTLIER_VERY_HIGH_THRESHOLD = get_env_float("OUTLIER_VERY_HIGH_THRESHOLD", 1.50)
OUTLIER_EXTREME_THRESHOLD = get_env_float("OUTLIER_EXTREME_THRESHOLD", 2.00)
CORRECT_INVERTED_PRICES = get_env_bool("CORRECT_INVERTED_PRICES", True)

# Extraction
SIMPLE_ROW_MAX_CHARS = get_env_int("SIMPLE_ROW_MAX_CHARS", 100)

# Run Limits
MAX_TARGETS = get_env_int("MAX_TARGETS", 0)  # 0 = no limit
MAX_WORKERS = get_env_int("MAX_WORKERS", 1)
DATA_MONTH = os.getenv("DATA_MONTH")  # YYYY-MM, defaults to the month the run starts in
PROGRESS_INTERVAL = get_env_int("PROGRESS_INTERVAL", 25)

# Geographic Completion
MAX_FALLBACK_DISTANCE_KM = get_env_float("MAX_FALLBACK_DISTANCE_KM", 50.0)

# Database Settings
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///electricity_prices.db")  # Default to SQLite
DATABASE_ECHO = get_env_bool("DB_ECHO", False)  # Set to True for SQL query logging

# Monitoring & Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
DIAGNOSTICS_DIR = os.getenv("DIAGNOSTICS_DIR", "logs")

# Application settings
APP_NAME = "strompreis-scraper"
APP_VERSION = "0.4.0"
