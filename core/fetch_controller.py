"""
Fetch Controller

Fetches one city page with a rotated user agent and egress endpoint,
classifies the response, and retries transient failures in an explicit
bounded loop. Each retry uses a different user agent and, when more than
one is available, a different endpoint.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter

from core.error_classifier import Classification, ErrorCategory, ErrorClassifier
from core.proxy_manager import ProxyEndpoint, ProxyManager
from core.retry_manager import RetryManager
from core.user_agent_rotation import UserAgentRotator
from models.target import Target

logger = logging.getLogger(__name__)


class FetchStatus(Enum):
    """Outcome of a fetch."""
    OK = "ok"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"


@dataclass
class FetchAttempt:
    """One HTTP attempt within a fetch."""
    number: int
    endpoint: str
    user_agent: str
    status_code: Optional[int]
    category: str
    reason: str
    elapsed_ms: int


@dataclass
class FetchResult:
    """Result of fetching a target page, including every attempt made."""
    status: FetchStatus
    url: str
    document: Optional[BeautifulSoup] = None
    raw_text: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    exhausted: bool = False
    elapsed_ms: int = 0
    attempts: List[FetchAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class FetchController:
    """Resilient single-page fetcher."""

    def __init__(self,
                 proxy_manager: ProxyManager,
                 user_agents: UserAgentRotator,
                 classifier: ErrorClassifier,
                 retry_manager: RetryManager,
                 base_url: str,
                 url_suffix: str = '.html',
                 timeout: float = 20.0,
                 stop_event: Optional[threading.Event] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the fetch controller.

        Args:
            proxy_manager: Rotation table of egress endpoints
            user_agents: User agent rotator
            classifier: Response and exception classifier
            retry_manager: Attempt budget and backoff
            base_url: Source URL prefix
            url_suffix: Source URL suffix
            timeout: Per-request timeout in seconds
            stop_event: Cancels pending retries and backoff waits when set
            session: requests session to reuse; one is created when omitted
        """
        self.proxy_manager = proxy_manager
        self.user_agents = user_agents
        self.classifier = classifier
        self.retry_manager = retry_manager
        self.base_url = base_url
        self.url_suffix = url_suffix
        self.timeout = timeout
        self.stop_event = stop_event or threading.Event()
        self.session = session or self._create_session()

    @classmethod
    def from_config(cls, config, stop_event: Optional[threading.Event] = None,
                    proxy_manager: Optional[ProxyManager] = None) -> 'FetchController':
        return cls(
            proxy_manager=proxy_manager or ProxyManager.from_config(config),
            user_agents=UserAgentRotator.from_config(config),
            classifier=ErrorClassifier.from_config(config),
            retry_manager=RetryManager.from_config(config),
            base_url=config.base_url,
            url_suffix=config.url_suffix,
            timeout=config.request_timeout,
            stop_event=stop_event,
        )

    @staticmethod
    def _create_session() -> requests.Session:
        session = requests.Session()
        # Retries are handled by the fetch loop, not by urllib3
        adapter = HTTPAdapter(max_retries=0, pool_connections=4, pool_maxsize=8)
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def close(self) -> None:
        self.session.close()

    def url_for(self, target: Target) -> str:
        return target.build_url(self.base_url, self.url_suffix)

    def fetch(self, target: Target) -> FetchResult:
        """
        Fetch the page of a target.

        Args:
            target: The target to fetch

        Returns:
            FetchResult; on failure the status of the last attempt, with
            exhausted=True when the retry budget ran out
        """
        url = self.url_for(target)
        started = time.monotonic()
        attempts: List[FetchAttempt] = []
        previous_endpoint: Optional[ProxyEndpoint] = None
        previous_agent: Optional[str] = None
        result: Optional[FetchResult] = None
        attempt = 0

        while True:
            if self.stop_event.is_set():
                result = FetchResult(FetchStatus.CANCELLED, url, error="cancelled before attempt")
                break

            attempt += 1
            endpoint = self.proxy_manager.select(exclude=previous_endpoint)
            user_agent = self.user_agents.next(exclude=previous_agent)
            previous_endpoint, previous_agent = endpoint, user_agent

            result, classification = self._attempt(url, endpoint, user_agent, attempt, attempts)

            if result.ok or classification.category is ErrorCategory.NOT_FOUND:
                break

            if not self.retry_manager.should_retry(attempt, classification.category.retryable):
                result.exhausted = True
                logger.warning(f"Giving up on {target.display_name} ({target.postal_code}) after "
                               f"{attempt} attempts: {classification.reason}")
                break

            delay = self.retry_manager.get_retry_delay(attempt)
            logger.info(f"Attempt {attempt} for {url} failed ({classification.reason}), "
                        f"retrying in {delay:.1f}s")
            if self.stop_event.wait(delay):
                result = FetchResult(FetchStatus.CANCELLED, url, error="cancelled during backoff")
                break

        result.attempts = attempts
        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        return result

    def _attempt(self, url: str, endpoint: ProxyEndpoint, user_agent: str, number: int,
                 attempts: List[FetchAttempt]):
        attempt_started = time.monotonic()
        status_code = None

        try:
            response = self.session.get(
                url,
                headers=self.user_agents.headers(user_agent),
                proxies=endpoint.get_dict_for_requests(),
                timeout=self.timeout,
                allow_redirects=True,
            )
            status_code = response.status_code
            body = response.text
            classification = self.classifier.classify_response(status_code, body)
        except requests.RequestException as e:
            body = None
            classification = self.classifier.classify_exception(e)

        elapsed_ms = int((time.monotonic() - attempt_started) * 1000)
        attempts.append(FetchAttempt(number, endpoint.label, user_agent, status_code,
                                     classification.category.value, classification.reason, elapsed_ms))

        # A 404 says nothing about the endpoint's health
        self.proxy_manager.record_result(
            endpoint, classification.category in (ErrorCategory.NONE, ErrorCategory.NOT_FOUND))

        return self._to_result(url, status_code, body, classification), classification

    @staticmethod
    def _to_result(url: str, status_code: Optional[int], body: Optional[str],
                   classification: Classification) -> FetchResult:
        category = classification.category
        if category is ErrorCategory.NONE:
            return FetchResult(FetchStatus.OK, url, document=BeautifulSoup(body, 'lxml'),
                               raw_text=body, status_code=status_code)
        if category is ErrorCategory.NOT_FOUND:
            status = FetchStatus.NOT_FOUND
        elif category is ErrorCategory.BLOCKED:
            status = FetchStatus.BLOCKED
        else:
            status = FetchStatus.TRANSPORT_ERROR
        return FetchResult(status, url, status_code=status_code, error=classification.reason)
