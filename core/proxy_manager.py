"""
Egress rotation for page fetches.

Each rotation entry is a ProxyEndpoint: a direct connection, an HTTP(S)
forward proxy or a SOCKS proxy (typically a local Tor daemon). Entries that
fail too often are skipped until every entry is over the threshold, at
which point all failure counts are reset.
"""

import logging
import os
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from core.errors import FatalConfigurationError
from core.service_interface import BaseService

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ('http', 'https', 'socks4', 'socks5', 'socks5h')


class EgressKind(Enum):
    """Types of network egress a fetch can use."""
    DIRECT = "direct"                 # no proxy
    FORWARD_PROXY = "forward-proxy"   # HTTP(S) proxy
    ONION_PROXY = "onion-proxy"       # SOCKS proxy, e.g. Tor


class ProxyEndpoint:
    """One rotation entry with its usage and failure counters."""

    def __init__(self, address: Optional[str], kind: EgressKind = EgressKind.FORWARD_PROXY):
        """
        Initialize a rotation entry.

        Args:
            address: Proxy URL ("http://host:port", "socks5h://127.0.0.1:9050"), None for direct
            kind: Egress kind
        """
        self.address = address
        self.kind = kind
        self.requests_made = 0
        self.failures = 0
        self.last_used: Optional[datetime] = None

    @classmethod
    def direct(cls) -> 'ProxyEndpoint':
        return cls(None, EgressKind.DIRECT)

    @classmethod
    def parse(cls, entry: str) -> 'ProxyEndpoint':
        """
        Parse a proxy string. "host:port" is treated as an HTTP proxy.

        Raises:
            ValueError: If the entry is not a usable proxy URL
        """
        entry = entry.strip()
        if '://' not in entry:
            entry = f"http://{entry}"

        parsed = urlparse(entry)
        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported proxy scheme '{parsed.scheme}' in {entry}")
        try:
            port = parsed.port
        except ValueError:
            raise ValueError(f"Invalid proxy port in {entry}")
        if not parsed.hostname or not port:
            raise ValueError(f"Proxy entry needs host and port: {entry}")

        kind = EgressKind.ONION_PROXY if parsed.scheme.startswith('socks') else EgressKind.FORWARD_PROXY
        return cls(entry, kind)

    @property
    def label(self) -> str:
        """Address without credentials, safe to log."""
        if self.address is None:
            return 'direct'
        parsed = urlparse(self.address)
        return f"{parsed.scheme}://{parsed.hostname}:{parsed.port}"

    def get_dict_for_requests(self) -> Optional[Dict[str, str]]:
        """Get the proxy configuration in the format expected by the requests library."""
        if self.address is None:
            return None
        return {'http': self.address, 'https': self.address}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.label,
            'kind': self.kind.value,
            'requests_made': self.requests_made,
            'failures': self.failures,
            'last_used': self.last_used.isoformat() if self.last_used else None,
        }

    def __repr__(self) -> str:
        return f"<ProxyEndpoint {self.label} failures={self.failures}>"


def load_proxy_file(file_path: str) -> List[ProxyEndpoint]:
    """
    Load proxies from a text file, one entry per line. Blank lines and
    lines starting with '#' are ignored, malformed entries are logged and skipped.
    """
    endpoints = []
    if not os.path.exists(file_path):
        logger.warning(f"Proxy file does not exist: {file_path}")
        return endpoints

    with open(file_path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            try:
                endpoints.append(ProxyEndpoint.parse(line))
            except ValueError as e:
                logger.warning(f"Skipping proxy on line {line_number} of {file_path}: {e}")

    logger.info(f"Loaded {len(endpoints)} proxies from {file_path}")
    return endpoints


class ProxyManager(BaseService):
    """
    Round-robin rotation over egress endpoints with failure tracking.

    All counter updates happen under one lock so concurrent workers never
    race on failure counts.
    """

    def __init__(self, endpoints: Optional[List[ProxyEndpoint]] = None, max_failures: int = 3):
        self._initialized = False
        self._endpoints: List[ProxyEndpoint] = list(endpoints or [])
        self._max_failures = max_failures
        self._cursor = 0
        self._resets = 0
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config) -> 'ProxyManager':
        """Build and initialize a manager from a ScraperConfig."""
        manager = cls(max_failures=config.max_proxy_failures)
        manager.initialize({
            'proxy_enabled': config.proxy_enabled,
            'proxies': list(config.proxies),
            'proxy_file': config.proxy_file,
            'include_direct': config.include_direct,
            'tor_enabled': config.tor_enabled,
            'tor_proxy_url': config.tor_proxy_url,
            'verify': config.verify_proxies,
            'test_url': config.proxy_test_url,
            'timeout': config.request_timeout,
        })
        return manager

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Build the rotation table.

        Args:
            config: Dictionary with proxy_enabled, proxies, proxy_file,
                include_direct, tor_enabled, tor_proxy_url, verify, test_url

        Raises:
            FatalConfigurationError: If no rotation entry is available
        """
        if self._initialized:
            return

        config = config or {}

        if config.get('proxy_enabled', False):
            for entry in config.get('proxies', []):
                try:
                    self._endpoints.append(ProxyEndpoint.parse(entry))
                except ValueError as e:
                    logger.warning(f"Ignoring proxy entry: {e}")
            if config.get('proxy_file'):
                self._endpoints.extend(load_proxy_file(config['proxy_file']))
            if config.get('tor_enabled', False):
                self._endpoints.append(ProxyEndpoint(config.get('tor_proxy_url', 'socks5h://127.0.0.1:9050'),
                                                     EgressKind.ONION_PROXY))
            if config.get('verify', False):
                self.verify_endpoints(config.get('test_url', 'https://httpbin.org/ip'),
                                      config.get('timeout', 10))
            if config.get('include_direct', True):
                self._endpoints.append(ProxyEndpoint.direct())
        elif not self._endpoints:
            self._endpoints.append(ProxyEndpoint.direct())

        if not self._endpoints:
            raise FatalConfigurationError("No eligible rotation entries: proxy rotation is enabled but no proxy is usable")

        self._initialized = True
        logger.info(f"Proxy manager initialized with {len(self._endpoints)} rotation entries: "
                    f"{[e.label for e in self._endpoints]}")

    def shutdown(self) -> None:
        """Clear the rotation table."""
        with self._lock:
            self._endpoints.clear()
        self._initialized = False
        logger.info("Proxy manager shut down")

    @property
    def name(self) -> str:
        """Return the name of the service."""
        return "proxy_manager"

    @property
    def endpoints(self) -> List[ProxyEndpoint]:
        with self._lock:
            return list(self._endpoints)

    @property
    def max_failures(self) -> int:
        return self._max_failures

    @property
    def reset_count(self) -> int:
        return self._resets

    def __len__(self) -> int:
        return len(self._endpoints)

    def eligible_endpoints(self) -> List[ProxyEndpoint]:
        with self._lock:
            return [e for e in self._endpoints if e.failures < self._max_failures]

    def select(self, exclude: Optional[ProxyEndpoint] = None) -> ProxyEndpoint:
        """
        Pick the next rotation entry.

        Args:
            exclude: Entry used for the previous attempt; avoided when another is eligible

        Returns:
            The selected endpoint, with its usage counters already updated

        Raises:
            FatalConfigurationError: If the rotation table is empty
        """
        with self._lock:
            if not self._endpoints:
                raise FatalConfigurationError("No rotation entries configured")

            eligible = [e for e in self._endpoints if e.failures < self._max_failures]
            if not eligible:
                logger.warning(f"All {len(self._endpoints)} rotation entries reached {self._max_failures} "
                               f"failures, resetting failure counts")
                self._reset_locked()
                eligible = list(self._endpoints)

            if exclude is not None and len(eligible) > 1:
                eligible = [e for e in eligible if e is not exclude]

            endpoint = eligible[self._cursor % len(eligible)]
            self._cursor += 1
            endpoint.requests_made += 1
            endpoint.last_used = datetime.now()
            return endpoint

    def record_result(self, endpoint: ProxyEndpoint, success: bool) -> None:
        """Record the outcome of an attempt made through an endpoint."""
        with self._lock:
            if success:
                return
            endpoint.failures += 1
            if endpoint.failures == self._max_failures:
                logger.warning(f"Rotation entry {endpoint.label} reached {self._max_failures} failures, excluding it")

    def reset_failures(self) -> None:
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        for endpoint in self._endpoints:
            endpoint.failures = 0
        self._resets += 1

    def verify_endpoints(self, test_url: str, timeout: float = 10) -> List[ProxyEndpoint]:
        """
        Probe every proxy entry against an IP echo URL and drop the ones
        that do not answer. Direct entries are never probed.

        Returns:
            The endpoints that failed verification
        """
        failed = []
        for endpoint in list(self._endpoints):
            if endpoint.kind is EgressKind.DIRECT:
                continue
            try:
                response = requests.get(test_url, proxies=endpoint.get_dict_for_requests(), timeout=timeout)
                response.raise_for_status()
                logger.info(f"Proxy {endpoint.label} verified")
            except requests.RequestException as e:
                logger.warning(f"Proxy {endpoint.label} failed verification: {e}")
                failed.append(endpoint)

        with self._lock:
            self._endpoints = [e for e in self._endpoints if e not in failed]
        return failed

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'entries': [e.to_dict() for e in self._endpoints],
                'eligible': sum(1 for e in self._endpoints if e.failures < self._max_failures),
                'resets': self._resets,
            }
