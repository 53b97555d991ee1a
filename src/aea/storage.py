"""
Key database storage for AEA private keys.

The database maps key identifiers (the file name at the end of an
fcs-key-url) to PEM-encoded private keys. It is stored as a gzip-compressed
JSON object whose values are base64 strings, the format ``ipsw`` writes;
lists of byte values are accepted as well.
"""

import base64
import binascii
import gzip
import json
import logging
import threading
import zlib
from collections.abc import Iterator, Mapping
from importlib import resources
from pathlib import Path
from typing import Callable, Optional, Union

from .types import KeyDatabaseError

logger = logging.getLogger(__name__)

EMBEDDED_KEY_DB = "fcs-keys.json.gz"

_GZIP_MAGIC = b"\x1f\x8b"


class KeyDatabase(Mapping):
    """Read-only mapping of key identifier to private key bytes."""

    def __init__(self, keys: Optional[Mapping[str, bytes]] = None) -> None:
        self._keys: dict[str, bytes] = dict(keys or {})

    def __getitem__(self, identifier: str) -> bytes:
        return self._keys[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeyDatabase(<{len(self._keys)} keys>)"

    def lookup(self, identifier: str) -> Optional[tuple[str, bytes]]:
        """
        Find a key by identifier, ignoring case.

        Args:
            identifier: Key identifier, e.g. the fcs-key-url file name

        Returns:
            Tuple of (stored identifier, key bytes), or None if absent
        """
        wanted = identifier.casefold()
        for name, key in self._keys.items():
            if name.casefold() == wanted:
                return name, key
        return None

    @classmethod
    def from_bytes(cls, data: bytes) -> "KeyDatabase":
        """
        Load a database from JSON bytes, gzip-compressed or not.

        Raises:
            KeyDatabaseError: If the data is not a valid key database
        """
        try:
            if data[:2] == _GZIP_MAGIC:
                data = gzip.decompress(data)
            payload = json.loads(data.decode("utf-8"))
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise KeyDatabaseError(f"failed unmarshaling key database: {e}") from e

        if not isinstance(payload, dict):
            raise KeyDatabaseError("Key database must be a JSON object")

        return cls({name: _decode_value(name, value) for name, value in payload.items()})

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "KeyDatabase":
        """Load a database from a file."""
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise KeyDatabaseError(f"Cannot read key database {path}: {e}") from e
        return cls.from_bytes(data)

    @classmethod
    def embedded(cls) -> "KeyDatabase":
        """Load the database bundled with the package (empty unless populated at build time)."""
        try:
            data = resources.files("aea").joinpath("data").joinpath(EMBEDDED_KEY_DB).read_bytes()
        except OSError as e:
            raise KeyDatabaseError(f"Cannot read embedded key database: {e}") from e
        return cls.from_bytes(data)

    def to_bytes(self) -> bytes:
        """Serialize to the gzip-compressed JSON format."""
        payload = {name: base64.b64encode(key).decode("ascii") for name, key in self._keys.items()}
        return gzip.compress(json.dumps(payload, sort_keys=True).encode("utf-8"), mtime=0)


def _decode_value(name: str, value: object) -> bytes:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise KeyDatabaseError(f"Invalid base64 for key {name}: {e}") from e
    if isinstance(value, list) and all(isinstance(b, int) and 0 <= b <= 255 for b in value):
        return bytes(value)
    raise KeyDatabaseError(f"Invalid value for key {name}")


class LazyKeyDatabase:
    """
    Key database loaded on first use.

    The loader runs at most once, even with concurrent callers. A failed
    load is not cached, so a later call retries it.
    """

    def __init__(self, loader: Callable[[], KeyDatabase] = KeyDatabase.embedded) -> None:
        self._loader = loader
        self._database: Optional[KeyDatabase] = None
        self._lock = threading.Lock()

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "LazyKeyDatabase":
        """Lazily load a database file."""
        return cls(lambda: KeyDatabase.from_path(path))

    @property
    def loaded(self) -> bool:
        return self._database is not None

    def get(self) -> KeyDatabase:
        """
        Return the database, loading it on first call.

        Raises:
            KeyDatabaseError: If loading fails
        """
        database = self._database
        if database is not None:
            return database

        with self._lock:
            if self._database is None:
                self._database = self._loader()
                logger.debug("Loaded key database with %d keys", len(self._database))
            return self._database


# Process-wide embedded database, shared by default clients
EMBEDDED_KEYS = LazyKeyDatabase()
