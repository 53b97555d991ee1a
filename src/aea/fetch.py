"""
Remote key fetching.

``KeyFetcher`` is the interface the key resolver depends on; the
``HTTPKeyFetcher`` implementation performs a plain GET with ``requests``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from .types import DEFAULT_FETCH_TIMEOUT, KeyFetchError

logger = logging.getLogger(__name__)


class KeyFetcher(ABC):
    """Abstract source of private keys addressed by URL."""

    @abstractmethod
    def fetch(self, url: str) -> bytes:
        """
        Fetch the key stored at a URL.

        Args:
            url: The fcs-key-url from the container metadata

        Returns:
            The response body (PEM-encoded private key)

        Raises:
            KeyFetchError: If the key cannot be fetched
        """
        pass


class HTTPKeyFetcher(KeyFetcher):
    """Fetch keys over HTTP(S) with a GET request."""

    def __init__(
        self,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            timeout: Connect and read timeout in seconds
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        logger.info("Fetching private key from %s", url)
        try:
            with self.session.get(url, timeout=self.timeout) as response:
                response.raise_for_status()
                return response.content
        except requests.HTTPError as e:
            raise KeyFetchError(url, f"HTTP {e.response.status_code}") from e
        except requests.RequestException as e:
            raise KeyFetchError(url, str(e)) from e
