"""
AEA client for unwrapping archive keys and decrypting archives.

The AEAClient ties together container parsing, key resolution, HPKE key
unwrapping and the platform ``aea`` utility.
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from .container import Source, parse_container
from .crypto import unwrap_key
from .fetch import HTTPKeyFetcher, KeyFetcher
from .keys import PrivateKeyMaterial
from .models import Metadata
from .resolver import KeyResolver
from .storage import EMBEDDED_KEYS, KeyDatabase, LazyKeyDatabase
from .tool import AEATool
from .types import (
    DEFAULT_AEA_BINARY,
    DEFAULT_FETCH_TIMEOUT,
    AEAError,
    DecryptError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AEAConfig:
    """Configuration for an AEAClient."""

    key_db_path: Optional[Path] = None
    """Key database file (default: the embedded database)."""

    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    """Timeout in seconds for remote key fetches."""

    allow_remote_fetch: bool = True
    """Fetch keys missing from the database from their URL."""

    aea_binary: str = DEFAULT_AEA_BINARY
    """Path to the platform aea utility."""

    @classmethod
    def default(cls) -> "AEAConfig":
        """Embedded database with remote fallback."""
        return cls()

    @classmethod
    def offline(cls) -> "AEAConfig":
        """Embedded database only, no network access."""
        return cls(allow_remote_fetch=False)

    def with_key_db(self, path: Union[str, Path]) -> "AEAConfig":
        """Use a key database file instead of the embedded one."""
        return replace(self, key_db_path=Path(path))


class AEAClient:
    """
    High-level client for AEA archives.

    Example usage:
        ```python
        client = AEAClient()

        # Inspect metadata
        metadata = client.info("archive.aea")

        # Recover the archive key (base64)
        key = client.unwrap("archive.aea")

        # Decrypt on macOS
        out = client.decrypt("archive.aea", "/tmp/out")
        ```
    """

    def __init__(
        self,
        config: Optional[AEAConfig] = None,
        database: Union[KeyDatabase, LazyKeyDatabase, None] = None,
        fetcher: Optional[KeyFetcher] = None,
        tool: Optional[AEATool] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Client configuration (default: AEAConfig.default())
            database: Key database (default: from config, else the shared embedded one)
            fetcher: Remote key fetcher (default: HTTP, unless remote fetch is disabled)
            tool: aea utility wrapper (default: from config)
        """
        self.config = config or AEAConfig.default()

        if database is None:
            if self.config.key_db_path is not None:
                database = LazyKeyDatabase.from_path(self.config.key_db_path)
            else:
                database = EMBEDDED_KEYS

        if fetcher is None and self.config.allow_remote_fetch:
            fetcher = HTTPKeyFetcher(timeout=self.config.fetch_timeout)

        self.resolver = KeyResolver(database, fetcher)
        self.tool = tool or AEATool(binary=self.config.aea_binary)

    def info(self, path: Source) -> Metadata:
        """Parse a container and return its metadata."""
        return parse_container(path)

    def resolve_key(
        self, metadata: Metadata, override: Optional[bytes] = None
    ) -> dict[str, PrivateKeyMaterial]:
        """Resolve the private key candidates for a container."""
        return self.resolver.resolve(metadata, override)

    def unwrap(self, path: Source, override: Optional[bytes] = None) -> str:
        """
        Recover the archive key of a container.

        Args:
            path: Container path or stream
            override: Raw PEM private key bytes, bypassing key lookup

        Returns:
            The archive key as base64 text

        Raises:
            DecryptError: With phase "parse", "resolve" or "unwrap"
        """
        metadata = self._run("parse", self.info, path)
        candidates = self._run("resolve", self.resolve_key, metadata, override)

        # With several candidates the last one wins
        material = list(candidates.values())[-1]
        return self._run("unwrap", unwrap_key, metadata, material)

    def decrypt(
        self,
        input_path: Union[str, Path],
        output_dir: Union[str, Path],
        override: Optional[bytes] = None,
    ) -> str:
        """
        Decrypt an archive with the platform aea utility.

        Args:
            input_path: Encrypted .aea file
            output_dir: Directory receiving the decrypted archive
            override: Raw PEM private key bytes, bypassing key lookup

        Returns:
            Path of the decrypted archive

        Raises:
            UnsupportedPlatformError: If the platform has no aea binary
            DecryptError: If any phase fails; ``phase`` names it
        """
        self.tool.ensure_supported()

        input_path = os.fspath(input_path)
        key = self.unwrap(input_path, override)
        output_path = output_path_for(input_path, output_dir)
        existed = os.path.lexists(output_path)

        try:
            return self.tool.decrypt(input_path, output_path, key)
        except AEAError as e:
            # Never remove output that was there before this run
            if not existed:
                _remove_partial_output(output_path)
            raise DecryptError("decrypt", e) from e

    @staticmethod
    def _run(phase: str, func, *args):
        try:
            return func(*args)
        except (AEAError, OSError) as e:
            raise DecryptError(phase, e) from e


def output_path_for(input_path: Union[str, Path], output_dir: Union[str, Path]) -> str:
    """Output path: the input file name without its extension, inside output_dir."""
    stem, _ = os.path.splitext(os.path.basename(os.fspath(input_path)))
    return os.path.join(os.fspath(output_dir), stem)


def _remove_partial_output(output_path: str) -> None:
    try:
        os.remove(output_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", output_path, e)


# MARK: - Module-level helpers


def info(path: Source) -> Metadata:
    """Parse a container and return its metadata."""
    return parse_container(path)


def unwrap(path: Source, override: Optional[bytes] = None, config: Optional[AEAConfig] = None) -> str:
    """Recover the archive key of a container with a default client."""
    return AEAClient(config).unwrap(path, override)


def decrypt(
    input_path: Union[str, Path],
    output_dir: Union[str, Path],
    override: Optional[bytes] = None,
    config: Optional[AEAConfig] = None,
) -> str:
    """Decrypt an archive with a default client."""
    return AEAClient(config).decrypt(input_path, output_dir, override)
