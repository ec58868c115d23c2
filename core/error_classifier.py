import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern

import requests

from core.configuration import DEFAULT_BLOCKING_SIGNATURES
from core.service_interface import BaseService

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of fetch outcomes."""
    NONE = "none"                 # usable page
    NOT_FOUND = "not_found"       # 404/410 or empty body
    BLOCKED = "blocked"           # challenge page, rate limit, 403/429, tiny body
    NETWORK = "network"           # connection problems
    TIMEOUT = "timeout"           # read/connect timeout
    PROXY = "proxy"               # proxy refused or failed
    HTTP = "http"                 # other error status

    @property
    def retryable(self) -> bool:
        return self not in (ErrorCategory.NONE, ErrorCategory.NOT_FOUND)


@dataclass
class Classification:
    category: ErrorCategory
    reason: str = ""


NOT_FOUND_STATUSES = {404, 410}
BLOCKED_STATUSES = {403, 429}


class ErrorClassifier(BaseService):
    """Classifies HTTP responses and request exceptions for the fetch loop."""

    def __init__(self):
        self._initialized = False
        self._signatures: List[Pattern] = []
        self._min_response_bytes = 500
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config) -> 'ErrorClassifier':
        classifier = cls()
        classifier.initialize({
            'blocking_signatures': list(config.blocking_signatures),
            'min_response_bytes': config.min_response_bytes,
        })
        return classifier

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the error classifier with configuration."""
        if self._initialized:
            return

        config = config or {}
        self._min_response_bytes = config.get('min_response_bytes', 500)
        with self._lock:
            self._signatures = [
                re.compile(re.escape(s), re.IGNORECASE)
                for s in config.get('blocking_signatures', DEFAULT_BLOCKING_SIGNATURES)
            ]

        self._initialized = True
        logger.info(f"Error classifier initialized with {len(self._signatures)} blocking signatures")

    def shutdown(self) -> None:
        """Clean up resources."""
        with self._lock:
            self._signatures = []
        self._initialized = False

    @property
    def name(self) -> str:
        """Return the name of the service."""
        return "error_classifier"

    def find_blocking_signature(self, body: str) -> Optional[str]:
        """Return the first blocking signature found in a body, if any."""
        for pattern in self._signatures:
            match = pattern.search(body)
            if match:
                return match.group(0)
        return None

    def classify_response(self, status_code: int, body: Optional[str]) -> Classification:
        """
        Classify an HTTP response.

        Args:
            status_code: HTTP status code
            body: Decoded response body

        Returns:
            Classification with the outcome category and a short reason
        """
        if status_code in NOT_FOUND_STATUSES:
            return Classification(ErrorCategory.NOT_FOUND, f"HTTP {status_code}")
        if status_code in BLOCKED_STATUSES:
            return Classification(ErrorCategory.BLOCKED, f"HTTP {status_code}")
        if status_code >= 400:
            return Classification(ErrorCategory.HTTP, f"HTTP {status_code}")

        if not body or not body.strip():
            return Classification(ErrorCategory.NOT_FOUND, "empty body")

        size = len(body.encode('utf-8'))
        if size < self._min_response_bytes:
            return Classification(ErrorCategory.BLOCKED, f"body too short ({size} bytes)")

        signature = self.find_blocking_signature(body)
        if signature:
            return Classification(ErrorCategory.BLOCKED, f"blocking signature '{signature.lower()}'")

        return Classification(ErrorCategory.NONE)

    def classify_exception(self, error: Exception) -> Classification:
        """Classify an exception raised by requests."""
        if isinstance(error, requests.exceptions.ProxyError):
            return Classification(ErrorCategory.PROXY, f"proxy error: {error}")
        if isinstance(error, requests.exceptions.Timeout):
            return Classification(ErrorCategory.TIMEOUT, f"timeout: {error}")
        if isinstance(error, requests.exceptions.ConnectionError):
            return Classification(ErrorCategory.NETWORK, f"connection error: {error}")
        return Classification(ErrorCategory.NETWORK, f"{type(error).__name__}: {error}")
