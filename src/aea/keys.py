"""Private key decoding for FCS keys."""

import base64
import binascii
import re
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_der_private_key,
)

from .types import P256_SCALAR_SIZE, KeyParseError, UnsupportedKeyTypeError

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\s*(.*?)\s*-----END \1-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class PrivateKeyMaterial:
    """
    PEM-encoded PKCS8 private key, as stored in the key database.

    Decoding happens in stages, each with its own failure:
    ``to_der`` (PEM armor), ``to_private_key`` (PKCS8, curve check)
    and ``to_scalar`` (raw P-256 private scalar).
    """

    data: bytes

    def __repr__(self) -> str:
        return f"PrivateKeyMaterial(<{len(self.data)} bytes>)"

    @classmethod
    def from_private_key(cls, private_key: ec.EllipticCurvePrivateKey) -> "PrivateKeyMaterial":
        """Serialize a private key to PKCS8 PEM."""
        pem = private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
        return cls(pem)

    def to_der(self) -> bytes:
        """
        Strip the PEM armor.

        Raises:
            KeyParseError: If no PEM block is found or its body is not base64
        """
        match = _PEM_BLOCK.search(self.data)
        if match is None:
            raise KeyParseError("No PEM block found in private key data")
        label, body = match.groups()
        if label != b"PRIVATE KEY":
            raise KeyParseError(f"Expected a PKCS8 'PRIVATE KEY' PEM block, got {label.decode()!r}")
        try:
            return base64.b64decode(b"".join(body.split()), validate=True)
        except binascii.Error as e:
            raise KeyParseError(f"Invalid PEM body: {e}") from e

    def to_private_key(self) -> ec.EllipticCurvePrivateKey:
        """
        Parse the PKCS8 structure and check the key is on P-256.

        Raises:
            KeyParseError: If the DER is not a valid private key
            UnsupportedKeyTypeError: If the key is not an EC P-256 key
        """
        der = self.to_der()
        try:
            private_key = load_der_private_key(der, password=None)
        except (ValueError, TypeError) as e:
            raise KeyParseError(f"Failed to parse p8 key: {e}") from e
        except UnsupportedAlgorithm as e:
            raise UnsupportedKeyTypeError(f"Unsupported private key: {e}") from e

        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise UnsupportedKeyTypeError(
                f"Key must be an EC private key, got {type(private_key).__name__}"
            )
        if private_key.curve.name != ec.SECP256R1.name:
            raise UnsupportedKeyTypeError(f"Key must be on P-256, got {private_key.curve.name}")
        return private_key

    def to_scalar(self) -> bytes:
        """Return the 32-byte big-endian private scalar."""
        return private_key_to_scalar(self.to_private_key())


def private_key_to_scalar(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Convert a P-256 private key to its 32-byte scalar."""
    value = private_key.private_numbers().private_value
    return value.to_bytes(P256_SCALAR_SIZE, "big")


def private_key_from_scalar(scalar: bytes) -> ec.EllipticCurvePrivateKey:
    """
    Create a P-256 private key from a 32-byte scalar.

    Raises:
        KeyParseError: If the scalar is the wrong size or out of range
    """
    if len(scalar) != P256_SCALAR_SIZE:
        raise KeyParseError(f"Scalar must be {P256_SCALAR_SIZE} bytes, got {len(scalar)}")
    try:
        return ec.derive_private_key(int.from_bytes(scalar, "big"), ec.SECP256R1())
    except ValueError as e:
        raise KeyParseError(f"Invalid P-256 scalar: {e}") from e


def public_key_to_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Serialize a P-256 public key as an uncompressed SEC1 point."""
    return public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)


def public_key_from_bytes(data: bytes) -> ec.EllipticCurvePublicKey:
    """Deserialize an uncompressed SEC1 P-256 point."""
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)


def generate_keypair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generate a random P-256 key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()
