"""Private key resolution for AEA containers."""

import logging
import posixpath
from collections.abc import Mapping
from typing import Optional, Union
from urllib.parse import unquote, urlparse

from .fetch import KeyFetcher
from .keys import PrivateKeyMaterial
from .models import Metadata
from .storage import KeyDatabase, LazyKeyDatabase
from .types import (
    FCS_KEY_URL,
    KeyDatabaseError,
    KeyNotFoundError,
    KeyResolutionError,
)

logger = logging.getLogger(__name__)


def key_identifier(url: str) -> str:
    """
    Return the key identifier for an fcs-key-url: the last segment of its path.

    The path is percent-decoded and trailing slashes are ignored. A URL
    without a path gives ".", a path of only slashes gives "/".

    Args:
        url: Key URL from the container metadata

    Returns:
        The final path segment, e.g. "abc.p8"
    """
    try:
        path = unquote(urlparse(url).path)
    except ValueError as e:
        raise KeyResolutionError(f"Invalid key URL {url!r}: {e}") from e
    if not path:
        return "."
    return posixpath.basename(path.rstrip("/")) or "/"


class KeyResolver:
    """
    Resolves the private key that unwraps an archive key.

    Resolution order:
    1. Override key bytes supplied by the caller
    2. The key database, matching the URL file name case-insensitively
    3. A remote fetch of the key URL (skipped when no fetcher is set)
    """

    def __init__(
        self,
        database: Union[KeyDatabase, LazyKeyDatabase, None] = None,
        fetcher: Optional[KeyFetcher] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            database: Key database, loaded lazily if given as LazyKeyDatabase
            fetcher: Remote fetcher; None disables network access
        """
        self.database = database
        self.fetcher = fetcher

    def resolve(
        self,
        metadata: Union[Metadata, Mapping[str, bytes]],
        override: Optional[bytes] = None,
    ) -> dict[str, PrivateKeyMaterial]:
        """
        Resolve the private key for a container.

        Args:
            metadata: Container metadata
            override: Raw PEM key bytes that bypass all lookups

        Returns:
            Mapping of key identifier to private key material

        Raises:
            KeyURLMissingError: If no override is given and the metadata has no key URL
            KeyFetchError: If the remote fetch fails
            KeyNotFoundError: If the key is not local and remote fetch is disabled
        """
        if override:
            logger.debug("Using caller-supplied private key")
            return {FCS_KEY_URL: PrivateKeyMaterial(override)}

        if not isinstance(metadata, Metadata):
            metadata = Metadata(metadata)

        url = metadata.key_url()
        identifier = key_identifier(url)

        found = self._lookup_local(identifier)
        if found is not None:
            name, key = found
            logger.debug("Found key %s in key database", name)
            return {name: PrivateKeyMaterial(key)}

        if self.fetcher is None:
            raise KeyNotFoundError(identifier)

        return {identifier: PrivateKeyMaterial(self.fetcher.fetch(url))}

    def _lookup_local(self, identifier: str) -> Optional[tuple[str, bytes]]:
        if self.database is None:
            return None

        database = self.database
        if isinstance(database, LazyKeyDatabase):
            try:
                database = database.get()
            except KeyDatabaseError as e:
                logger.warning("Key database unavailable, skipping local lookup: %s", e)
                return None

        return database.lookup(identifier)
