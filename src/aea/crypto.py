"""
Unwrapping and wrapping of AEA archive keys.

FCS responses are HPKE (RFC 9180) base-mode messages with the suite

    KEM:  DHKEM(P-256, HKDF-SHA256)
    KDF:  HKDF-SHA256
    AEAD: AES-256-GCM

with empty info and empty associated data. HPKE itself is provided by pyhpke.
"""

import base64
from collections.abc import Mapping
from typing import Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec
from pyhpke import AEADId, CipherSuite, KDFId, KEMId, KEMKey, KEMKeyPair, OpenError

from .keys import PrivateKeyMaterial
from .models import FCSResponse, Metadata
from .types import P256_PUBLIC_KEY_SIZE, AuthenticationError, DecapsulationError

SUITE = CipherSuite.new(KEMId.DHKEM_P256_HKDF_SHA256, KDFId.HKDF_SHA256, AEADId.AES256_GCM)


def unwrap_key(
    metadata: Union[Metadata, Mapping[str, bytes]],
    private_key: Union[PrivateKeyMaterial, bytes],
) -> str:
    """
    Recover the archive key from the FCS response in the metadata.

    Args:
        metadata: Container metadata holding 'com.apple.wkms.fcs-response'
        private_key: PEM-encoded PKCS8 P-256 private key

    Returns:
        The archive key as standard base64 text

    Raises:
        ResponseMissingError: If the metadata has no FCS response
        MalformedResponseError: If the FCS response is not valid JSON
        Base64DecodeError: If an FCS response field is not valid base64
        KeyParseError: If the private key is not valid PEM/PKCS8
        UnsupportedKeyTypeError: If the private key is not P-256
        DecapsulationError: If the encapsulated key is invalid
        AuthenticationError: If the wrapped key fails authentication
    """
    if not isinstance(metadata, Metadata):
        metadata = Metadata(metadata)
    if not isinstance(private_key, PrivateKeyMaterial):
        private_key = PrivateKeyMaterial(private_key)

    response = metadata.fcs_response()
    return base64.b64encode(open_fcs_response(response, private_key)).decode("ascii")


def open_fcs_response(response: FCSResponse, private_key: PrivateKeyMaterial) -> bytes:
    """Open an FCS response and return the raw archive key bytes."""
    receiver_key = SUITE.kem.deserialize_private_key(private_key.to_scalar())

    enc = response.enc_request
    if len(enc) != P256_PUBLIC_KEY_SIZE:
        raise DecapsulationError(
            f"Encapsulated key must be {P256_PUBLIC_KEY_SIZE} bytes, got {len(enc)}"
        )
    try:
        context = SUITE.create_recipient_context(enc, receiver_key)
    except ValueError as e:
        raise DecapsulationError(f"Invalid encapsulated key: {e}") from e

    try:
        return context.open(response.wrapped_key)
    except OpenError as e:
        raise AuthenticationError("HPKE open failed: authentication tag mismatch") from e


def wrap_key(
    archive_key: bytes,
    public_key: ec.EllipticCurvePublicKey,
    ephemeral_key: Optional[ec.EllipticCurvePrivateKey] = None,
) -> FCSResponse:
    """
    Wrap an archive key to a receiver public key.

    This is the inverse of ``unwrap_key``.

    Args:
        archive_key: Symmetric key to wrap
        public_key: Receiver's P-256 public key
        ephemeral_key: Ephemeral private key (random if omitted)

    Returns:
        FCSResponse holding the encapsulated key and the wrapped key
    """
    eks = None
    if ephemeral_key is not None:
        eks = KEMKeyPair(
            KEMKey.from_pyca_cryptography_key(ephemeral_key),
            KEMKey.from_pyca_cryptography_key(ephemeral_key.public_key()),
        )

    enc, context = SUITE.create_sender_context(
        KEMKey.from_pyca_cryptography_key(public_key), eks=eks
    )
    return FCSResponse(enc_request=enc, wrapped_key=context.seal(archive_key))
