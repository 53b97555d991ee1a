"""
py-aea - Apple Encrypted Archive key extraction

Parses AEA container metadata, resolves the FCS private key and unwraps the
archive key with HPKE (DHKEM P-256 + HKDF-SHA256 + AES-256-GCM).

The bundled key database (``aea/data/fcs-keys.json.gz``) ships empty, so
the default client only finds keys by fetching their fcs-key-url. To look
keys up locally, point the client at your own database:

    client = AEAClient(AEAConfig.offline().with_key_db("fcs-keys.json.gz"))
"""

from .container import (
    read_header,
    read_container,
    parse_container,
    parse_metadata,
    is_aea_file,
    encode_entry,
    encode_metadata,
    encode_container,
)
from .models import Header, Metadata, FCSResponse
from .keys import PrivateKeyMaterial, generate_keypair
from .storage import KeyDatabase, LazyKeyDatabase, EMBEDDED_KEYS
from .fetch import KeyFetcher, HTTPKeyFetcher
from .resolver import KeyResolver, key_identifier
from .crypto import unwrap_key, wrap_key, open_fcs_response
from .tool import AEATool
from .client import (
    AEAConfig,
    AEAClient,
    info,
    unwrap,
    decrypt,
    output_path_for,
)
from .types import (
    MAGIC,
    FCS_KEY_URL,
    FCS_RESPONSE,
    AEAError,
    ContainerFormatError,
    MalformedHeaderError,
    TruncatedEntryError,
    MalformedEntryError,
    KeyResolutionError,
    KeyURLMissingError,
    KeyFetchError,
    KeyNotFoundError,
    KeyDatabaseError,
    FCSResponseError,
    ResponseMissingError,
    MalformedResponseError,
    Base64DecodeError,
    KeyDecodeError,
    KeyParseError,
    UnsupportedKeyTypeError,
    HPKEError,
    DecapsulationError,
    AuthenticationError,
    UnsupportedPlatformError,
    CollaboratorError,
    DecryptError,
)

__version__ = "0.1.0"

__all__ = [
    # Container
    "read_header",
    "read_container",
    "parse_container",
    "parse_metadata",
    "is_aea_file",
    "encode_entry",
    "encode_metadata",
    "encode_container",
    # Models
    "Header",
    "Metadata",
    "FCSResponse",
    # Keys
    "PrivateKeyMaterial",
    "generate_keypair",
    # Storage
    "KeyDatabase",
    "LazyKeyDatabase",
    "EMBEDDED_KEYS",
    # Fetch
    "KeyFetcher",
    "HTTPKeyFetcher",
    # Resolver
    "KeyResolver",
    "key_identifier",
    # Crypto
    "unwrap_key",
    "wrap_key",
    "open_fcs_response",
    # Tool
    "AEATool",
    # Client
    "AEAConfig",
    "AEAClient",
    "info",
    "unwrap",
    "decrypt",
    "output_path_for",
    # Constants
    "MAGIC",
    "FCS_KEY_URL",
    "FCS_RESPONSE",
    # Errors
    "AEAError",
    "ContainerFormatError",
    "MalformedHeaderError",
    "TruncatedEntryError",
    "MalformedEntryError",
    "KeyResolutionError",
    "KeyURLMissingError",
    "KeyFetchError",
    "KeyNotFoundError",
    "KeyDatabaseError",
    "FCSResponseError",
    "ResponseMissingError",
    "MalformedResponseError",
    "Base64DecodeError",
    "KeyDecodeError",
    "KeyParseError",
    "UnsupportedKeyTypeError",
    "HPKEError",
    "DecapsulationError",
    "AuthenticationError",
    "UnsupportedPlatformError",
    "CollaboratorError",
    "DecryptError",
]
