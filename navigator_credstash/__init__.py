"""Navigator CredStash — versioned secret storage with KMS envelope encryption.

Security Note (Threat Model):
    Data keys are minted by KMS per secret and only exist in process memory
    while a secret is sealed or opened. Access control is delegated to KMS
    key policies and DynamoDB table permissions.
"""

from .credstash import CredStash, render_listing, dump_json
from .config import CredStashConfig
from .models import SecretMetadata, SecretRecord, SealedSecret, format_version, parse_version
from .exceptions import (
    CredStashError,
    NotFoundError,
    VersionConflictError,
    DecryptionError,
    IntegrityError,
    BinarySecretError,
    KmsError,
    StoreError,
    AlreadyExistsError,
    MalformedRecordError,
)
from .version import __version__

__all__ = [
    "CredStash",
    "CredStashConfig",
    "render_listing",
    "dump_json",
    "SecretMetadata",
    "SecretRecord",
    "SealedSecret",
    "format_version",
    "parse_version",
    "CredStashError",
    "NotFoundError",
    "VersionConflictError",
    "DecryptionError",
    "IntegrityError",
    "BinarySecretError",
    "KmsError",
    "StoreError",
    "AlreadyExistsError",
    "MalformedRecordError",
    "__version__",
]
