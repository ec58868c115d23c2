"""
User agent rotation.

Hands out a browser user agent per attempt, never repeating the agent of
the previous attempt when an alternative exists.
"""

import logging
import random
import threading
from typing import List, Optional, Sequence

from fake_useragent import UserAgent

from core.configuration import DEFAULT_USER_AGENTS

logger = logging.getLogger(__name__)

# Headers a German desktop browser sends with a page request
BROWSER_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Accept-Language': 'de-DE,de;q=0.9,en-US;q=0.8,en;q=0.7',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
    'Cache-Control': 'no-cache',
}


class UserAgentRotator:
    """Random user agent selection from a static pool or fake_useragent."""

    def __init__(self, user_agents: Optional[Sequence[str]] = None, source: str = 'static',
                 rng: Optional[random.Random] = None):
        """
        Initialize the rotator.

        Args:
            user_agents: Static pool; the built-in list is used when empty
            source: 'static' or 'fake_useragent'
            rng: Random generator, injectable for deterministic tests
        """
        self._user_agents: List[str] = list(user_agents or DEFAULT_USER_AGENTS)
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._generator = None

        if source == 'fake_useragent':
            try:
                self._generator = UserAgent()
            except Exception as e:
                logger.warning(f"Failed to initialize UserAgent, using static list: {str(e)}")
                self._generator = None

    @classmethod
    def from_config(cls, config) -> 'UserAgentRotator':
        return cls(config.user_agents, config.user_agent_source)

    @property
    def pool_size(self) -> int:
        return len(self._user_agents)

    def next(self, exclude: Optional[str] = None) -> str:
        """
        Pick a user agent.

        Args:
            exclude: Agent of the previous attempt, avoided when possible

        Returns:
            A user agent string
        """
        if self._generator is not None:
            for _ in range(5):
                candidate = self._generator.random
                if candidate != exclude:
                    return candidate

        with self._lock:
            choices = [ua for ua in self._user_agents if ua != exclude] or self._user_agents
            return self._rng.choice(choices)

    def headers(self, user_agent: str) -> dict:
        """Full request headers for a user agent."""
        headers = dict(BROWSER_HEADERS)
        headers['User-Agent'] = user_agent
        return headers
