from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class BaseService(ABC):
    """Base interface for the fetch-side services (proxy rotation, retries, classification)."""

    @abstractmethod
    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the service from a plain settings dictionary."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Release state held by the service."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the service."""
        pass

    @property
    def is_initialized(self) -> bool:
        return getattr(self, '_initialized', False)

    def describe(self) -> Dict[str, Any]:
        """Name and readiness, stored with the run configuration."""
        return {'name': self.name, 'initialized': self.is_initialized}

    def __enter__(self):
        if not self.is_initialized:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
