"""Type definitions and constants for AEA key extraction."""

# Container constants
MAGIC = b"AEA1"
HEADER_SIZE = 12
LENGTH_FIELD_SIZE = 4

# Metadata keys
FCS_KEY_URL = "com.apple.wkms.fcs-key-url"
FCS_RESPONSE = "com.apple.wkms.fcs-response"

# FCS response JSON fields
ENC_REQUEST_FIELD = "enc-request"
WRAPPED_KEY_FIELD = "wrapped-key"

# P-256 key sizes
P256_SCALAR_SIZE = 32
P256_PUBLIC_KEY_SIZE = 65

# Platform utility
DEFAULT_AEA_BINARY = "/usr/bin/aea"
SUPPORTED_PLATFORMS = ("darwin",)

# Remote fetch
DEFAULT_FETCH_TIMEOUT = 30.0


# Exception types
class AEAError(Exception):
    """Base exception for AEA errors."""
    pass


class ContainerFormatError(AEAError):
    """Container does not match the AEA format."""
    pass


class MalformedHeaderError(ContainerFormatError):
    """Header is short, has the wrong magic or declares too much metadata."""
    pass


class TruncatedEntryError(ContainerFormatError):
    """Metadata entry ends before its declared length."""
    pass


class MalformedEntryError(ContainerFormatError):
    """Metadata entry declares a length smaller than its own length field."""
    pass


class KeyResolutionError(AEAError):
    """Private key could not be resolved."""
    pass


class KeyURLMissingError(KeyResolutionError):
    """Metadata has no fcs-key-url entry."""

    def __init__(self) -> None:
        super().__init__(f"'{FCS_KEY_URL}' not found in AEA metadata")


class KeyFetchError(KeyResolutionError):
    """Remote key fetch failed."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch key from {url}: {reason}")


class KeyNotFoundError(KeyResolutionError):
    """Key is not in the database and remote fetch is disabled."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Key not found in key database: {identifier}")


class KeyDatabaseError(KeyResolutionError):
    """Key database could not be loaded."""
    pass


class FCSResponseError(AEAError):
    """FCS response entry is missing or invalid."""
    pass


class ResponseMissingError(FCSResponseError):
    """Metadata has no fcs-response entry."""

    def __init__(self) -> None:
        super().__init__(f"'{FCS_RESPONSE}' not found in AEA metadata")


class MalformedResponseError(FCSResponseError):
    """FCS response is not the expected JSON object."""
    pass


class Base64DecodeError(FCSResponseError):
    """FCS response field is not valid base64."""
    pass


class KeyDecodeError(AEAError):
    """Private key material could not be decoded."""
    pass


class KeyParseError(KeyDecodeError):
    """PEM or PKCS8 structure is invalid."""
    pass


class UnsupportedKeyTypeError(KeyDecodeError):
    """Private key is not a P-256 elliptic curve key."""
    pass


class HPKEError(AEAError):
    """HPKE operation failed."""
    pass


class DecapsulationError(HPKEError):
    """Encapsulated key could not be decapsulated."""
    pass


class AuthenticationError(HPKEError):
    """AEAD open failed (wrong key or tampered data)."""
    pass


class UnsupportedPlatformError(AEAError):
    """The aea utility is not available on this platform."""

    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(
            f"AEA decryption is only supported on macOS (requires the `aea` binary), not {platform}"
        )


class CollaboratorError(AEAError):
    """The aea utility failed."""

    def __init__(self, returncode: int, output: str) -> None:
        self.returncode = returncode
        self.output = output
        super().__init__(f"aea exited with status {returncode}: {output}")


class DecryptError(AEAError):
    """A phase of the decrypt pipeline failed."""

    def __init__(self, phase: str, cause: Exception) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(f"failed to {phase} AEA: {cause}")
