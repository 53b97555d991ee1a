"""Shared fixtures for AEA tests."""

from typing import Optional

import pytest

from aea.container import encode_container
from aea.fetch import KeyFetcher
from aea.keys import PrivateKeyMaterial, private_key_from_scalar
from aea.models import FCSResponse
from aea.storage import KeyDatabase
from aea.tool import AEATool
from aea.types import FCS_KEY_URL, FCS_RESPONSE, CollaboratorError, KeyFetchError
from . import hpke_reference
from .test_vectors import (
    RECEIVER_SCALAR_HEX,
    EPHEMERAL_SCALAR_HEX,
    ARCHIVE_KEY_HEX,
    KEY_URL,
    DB_KEY_NAME,
)


class CountingFetcher(KeyFetcher):
    """Fetcher that serves fixed responses and counts calls."""

    def __init__(self, responses=None) -> None:
        self.responses = responses or {}
        self.calls = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.responses:
            raise KeyFetchError(url, "HTTP 404")
        return self.responses[url]


class FakeTool(AEATool):
    """aea tool stand-in that records calls instead of running a binary."""

    def __init__(
        self,
        supported: bool = True,
        output: Optional[bytes] = b"decrypted",
        fail: bool = False,
    ) -> None:
        super().__init__(platform="darwin" if supported else "linux")
        self.output = output
        self.fail = fail
        self.calls = []

    def decrypt(self, input_path: str, output_path: str, key: str) -> str:
        self.ensure_supported()
        self.calls.append((input_path, output_path, key))
        if self.output is not None:
            with open(output_path, "wb") as f:
                f.write(self.output)
        if self.fail:
            raise CollaboratorError(1, "aea: bad key")
        return output_path


@pytest.fixture
def receiver_key():
    """Receiver's P-256 private key."""
    return private_key_from_scalar(bytes.fromhex(RECEIVER_SCALAR_HEX))


@pytest.fixture
def ephemeral_key():
    """Fixed ephemeral P-256 private key."""
    return private_key_from_scalar(bytes.fromhex(EPHEMERAL_SCALAR_HEX))


@pytest.fixture
def receiver_pem(receiver_key) -> bytes:
    """Receiver key as PKCS8 PEM."""
    return PrivateKeyMaterial.from_private_key(receiver_key).data


@pytest.fixture
def archive_key() -> bytes:
    return bytes.fromhex(ARCHIVE_KEY_HEX)


@pytest.fixture
def fcs_response(receiver_key, ephemeral_key, archive_key):
    """FCS response wrapping the archive key to the receiver, built by the reference HPKE."""
    enc, wrapped = hpke_reference.seal(receiver_key.public_key(), ephemeral_key, archive_key)
    return FCSResponse(enc_request=enc, wrapped_key=wrapped)


@pytest.fixture
def metadata(fcs_response) -> dict:
    """Metadata of a container encrypted to the receiver key."""
    return {
        FCS_KEY_URL: KEY_URL.encode(),
        FCS_RESPONSE: fcs_response.to_json(),
    }


@pytest.fixture
def container_path(tmp_path, metadata):
    """AEA container file holding the metadata."""
    path = tmp_path / "archive.aea"
    path.write_bytes(encode_container(metadata, version=1) + b"\xaa" * 64)
    return path


@pytest.fixture
def key_database(receiver_pem) -> KeyDatabase:
    """Key database holding the receiver key under an upper-cased name."""
    return KeyDatabase({DB_KEY_NAME: receiver_pem})


@pytest.fixture
def fetcher() -> CountingFetcher:
    return CountingFetcher()
