"""Data models for AEA containers."""

import base64
import binascii
import json
import struct
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Optional

from .types import (
    MAGIC,
    FCS_KEY_URL,
    FCS_RESPONSE,
    ENC_REQUEST_FIELD,
    WRAPPED_KEY_FIELD,
    ResponseMissingError,
    MalformedResponseError,
    Base64DecodeError,
    KeyURLMissingError,
)

_HEADER_STRUCT = struct.Struct("<4sII")


@dataclass(frozen=True)
class Header:
    """Fixed 12-byte AEA header."""

    magic: bytes
    """Format tag, b"AEA1"."""

    version: int
    """Container version (uint32 LE)."""

    length: int
    """Size in bytes of the metadata region that follows the header."""

    @classmethod
    def unpack(cls, data: bytes) -> "Header":
        """Unpack a header from exactly 12 bytes."""
        magic, version, length = _HEADER_STRUCT.unpack(data)
        return cls(magic=magic, version=version, length=length)

    def to_bytes(self) -> bytes:
        """Pack the header to its 12-byte wire form."""
        return _HEADER_STRUCT.pack(self.magic, self.version, self.length)

    @property
    def is_valid(self) -> bool:
        return self.magic == MAGIC


@dataclass(frozen=True)
class FCSResponse:
    """Decoded 'com.apple.wkms.fcs-response' metadata value."""

    enc_request: bytes
    """HPKE encapsulated key (serialized ephemeral public key)."""

    wrapped_key: bytes
    """AES-256-GCM ciphertext of the archive key."""

    @classmethod
    def from_json(cls, data: bytes) -> "FCSResponse":
        """
        Parse the JSON form of an FCS response.

        Args:
            data: Raw metadata value

        Returns:
            Decoded FCSResponse

        Raises:
            MalformedResponseError: If the value is not a JSON object with both fields
            Base64DecodeError: If a field is not standard padded base64
        """
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedResponseError(f"Invalid FCS response JSON: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedResponseError("FCS response must be a JSON object")

        fields = {}
        for name in (ENC_REQUEST_FIELD, WRAPPED_KEY_FIELD):
            value = payload.get(name)
            if not isinstance(value, str) or not value:
                raise MalformedResponseError(f"FCS response is missing '{name}'")
            try:
                fields[name] = base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise Base64DecodeError(f"Invalid base64 in '{name}': {e}") from e

        return cls(enc_request=fields[ENC_REQUEST_FIELD], wrapped_key=fields[WRAPPED_KEY_FIELD])

    def to_json(self) -> bytes:
        """Encode to the JSON form stored in metadata."""
        payload = {
            ENC_REQUEST_FIELD: base64.b64encode(self.enc_request).decode("ascii"),
            WRAPPED_KEY_FIELD: base64.b64encode(self.wrapped_key).decode("ascii"),
        }
        return json.dumps(payload).encode("utf-8")


class Metadata(Mapping):
    """
    Read-only view of the key/value metadata of an AEA container.

    Values are raw bytes. Keys keep the order they were first seen in;
    a later duplicate replaces the earlier value.
    """

    def __init__(self, entries: Optional[Mapping[str, bytes]] = None) -> None:
        self._entries: dict[str, bytes] = dict(entries or {})

    def __getitem__(self, key: str) -> bytes:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Metadata({list(self._entries)!r})"

    def key_url(self) -> str:
        """
        The private key URL.

        Raises:
            KeyURLMissingError: If the entry is absent
        """
        value = self._entries.get(FCS_KEY_URL)
        if value is None:
            raise KeyURLMissingError()
        return value.decode("utf-8", errors="surrogateescape")

    def fcs_response(self) -> FCSResponse:
        """
        The decoded FCS response.

        Raises:
            ResponseMissingError: If the entry is absent
            MalformedResponseError: If the entry is not valid JSON
            Base64DecodeError: If a field is not valid base64
        """
        value = self._entries.get(FCS_RESPONSE)
        if value is None:
            raise ResponseMissingError()
        return FCSResponse.from_json(value)
