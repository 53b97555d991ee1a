"""Header and metadata parsing for AEA containers."""

import io
import logging
import os
import struct
from collections.abc import Mapping
from typing import BinaryIO, Optional, Union

from .models import Header, Metadata
from .types import (
    MAGIC,
    HEADER_SIZE,
    LENGTH_FIELD_SIZE,
    MalformedHeaderError,
    MalformedEntryError,
    TruncatedEntryError,
)

logger = logging.getLogger(__name__)

Source = Union[str, os.PathLike, BinaryIO]

_LENGTH_STRUCT = struct.Struct("<I")


def read_header(stream: BinaryIO) -> Header:
    """
    Read and validate the fixed header.

    Raises:
        MalformedHeaderError: If the stream is too short or the magic is wrong
    """
    data = stream.read(HEADER_SIZE)
    if len(data) < HEADER_SIZE:
        raise MalformedHeaderError(f"Header too short: {len(data)} bytes (need {HEADER_SIZE})")

    header = Header.unpack(data)
    if not header.is_valid:
        raise MalformedHeaderError(
            f"invalid AEA header: found {header.magic!r} expected {MAGIC!r}"
        )
    return header


def parse_metadata(region: bytes) -> Metadata:
    """
    Parse the key/value entries of a metadata region.

    Each entry is a uint32 LE length (counting the length field itself)
    followed by ``key + b"\\x00" + value``.

    Args:
        region: Exactly the metadata bytes declared by the header

    Returns:
        Parsed Metadata

    Raises:
        TruncatedEntryError: If an entry runs past the end of the region
        MalformedEntryError: If an entry declares a length below 4
    """
    entries: dict[str, bytes] = {}
    offset = 0
    end = len(region)

    while offset < end:
        if end - offset < LENGTH_FIELD_SIZE:
            raise TruncatedEntryError(
                f"Partial length field at offset {offset}: {end - offset} bytes left"
            )
        (length,) = _LENGTH_STRUCT.unpack_from(region, offset)
        if length < LENGTH_FIELD_SIZE:
            raise MalformedEntryError(f"Entry at offset {offset} declares length {length}")

        payload_end = offset + length
        if payload_end > end:
            raise TruncatedEntryError(
                f"Entry at offset {offset} declares {length} bytes, only {end - offset} left"
            )

        payload = region[offset + LENGTH_FIELD_SIZE : payload_end]
        key, _, value = payload.partition(b"\x00")
        entries[key.decode("utf-8", errors="surrogateescape")] = value
        offset = payload_end

    return Metadata(entries)


def _read_container(stream: BinaryIO) -> tuple[Header, Metadata]:
    header = read_header(stream)

    remaining = _remaining(stream)
    if remaining is not None and header.length > remaining:
        raise MalformedHeaderError(
            f"Header declares {header.length} metadata bytes, file has {remaining}"
        )

    region = stream.read(header.length)
    if len(region) < header.length:
        raise MalformedHeaderError(
            f"Header declares {header.length} metadata bytes, file has {len(region)}"
        )

    metadata = parse_metadata(region)
    logger.debug("Parsed AEA v%d header with %d metadata entries", header.version, len(metadata))
    return header, metadata


def _remaining(stream: BinaryIO) -> Optional[int]:
    if not stream.seekable():
        return None
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return end - position


def read_container(source: Source) -> tuple[Header, Metadata]:
    """
    Read the header and metadata of an AEA container.

    Args:
        source: Path to the container or a binary stream positioned at its start

    Returns:
        Tuple of (header, metadata)
    """
    if hasattr(source, "read"):
        return _read_container(source)
    with open(source, "rb") as f:
        return _read_container(f)


def parse_container(source: Source) -> Metadata:
    """Parse an AEA container and return its metadata."""
    _, metadata = read_container(source)
    return metadata


def is_aea_file(source: Union[Source, bytes]) -> bool:
    """
    Check if a path, stream or byte string starts with the AEA magic.

    Args:
        source: Data to check

    Returns:
        True if the magic matches
    """
    if isinstance(source, (bytes, bytearray)):
        return bytes(source[: len(MAGIC)]) == MAGIC
    if hasattr(source, "read"):
        seekable = getattr(source, "seekable", None)
        if seekable is not None and seekable():
            position = source.tell()
            try:
                return source.read(len(MAGIC)) == MAGIC
            finally:
                source.seek(position)
        return source.read(len(MAGIC)) == MAGIC
    try:
        with open(source, "rb") as f:
            return f.read(len(MAGIC)) == MAGIC
    except OSError:
        return False


# MARK: - Encoding


def encode_entry(key: str, value: bytes) -> bytes:
    """Encode one metadata entry."""
    payload = key.encode("utf-8", errors="surrogateescape") + b"\x00" + value
    return _LENGTH_STRUCT.pack(len(payload) + LENGTH_FIELD_SIZE) + payload


def encode_metadata(metadata: Mapping[str, bytes]) -> bytes:
    """Encode a metadata mapping to its region bytes, in iteration order."""
    return b"".join(encode_entry(key, value) for key, value in metadata.items())


def encode_container(metadata: Mapping[str, bytes], version: int = 1) -> bytes:
    """
    Encode a header and metadata region.

    The result holds no archive payload; it is what ``read_container`` reads.
    """
    region = encode_metadata(metadata)
    header = Header(magic=MAGIC, version=version, length=len(region))
    return header.to_bytes() + region
