"""Base class for fetchers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class FetcherBase(ABC):
    """Base class for all fetchers.

    A fetcher wraps one remote API client and turns one round of calls into
    an immutable snapshot.
    """

    # These should be overridden by subclasses
    NAME: str
    VERSION: str = "0.0.0"

    def __init__(self, client: Any):
        if not hasattr(self, 'NAME') or not self.NAME:
            raise NotImplementedError("Subclasses must define NAME")
        self.client = client

    @abstractmethod
    def fetch(self) -> Any:
        """Fetch and return one snapshot."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.NAME} url={getattr(self.client, 'url', None)!r}>"
