"""
CredStash Exceptions.

Security Note:
    Messages carry names, versions and table names only. Never put
    plaintext, key material or encryption context values in an error.
"""
from typing import Optional


class CredStashError(Exception):
    """Base class for every error raised by navigator_credstash."""


class NotFoundError(CredStashError):
    """No record matches the requested name (and version)."""

    def __init__(self, name: str, version: Optional[str] = None):
        self.name = name
        self.version = version
        if version is None:
            message = f"Item {{'name': '{name}'}} couldn't be found."
        else:
            message = (
                f"Item {{'name': '{name}', 'version': {_display(version)}}} "
                "couldn't be found."
            )
        super().__init__(message)


class VersionConflictError(CredStashError):
    """A record already occupies (name, version)."""

    def __init__(self, name: str, version: str, highest: Optional[int] = None):
        self.name = name
        self.version = version
        self.highest = highest
        if highest is None:
            message = f"{name} version {_display(version)} already exists"
        else:
            message = (
                f"{name} version {highest} is already in the credential store. "
                "Use a new version."
            )
        super().__init__(message)


class DecryptionError(CredStashError):
    """KMS refused to unwrap the data key of a record."""

    MISSING_CONTEXT = "missing_context"
    WRONG_CONTEXT = "wrong_context"

    _reasons = {
        MISSING_CONTEXT: (
            "The credential may require that an encryption context "
            "be provided to decrypt it."
        ),
        WRONG_CONTEXT: (
            "The encryption context provided may not match the one "
            "used when the credential was stored."
        ),
    }

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(
            f"{name}: Could not decrypt hmac key with KMS. {self._reasons[reason]}"
        )


class IntegrityError(CredStashError):
    """Stored HMAC does not match the one computed over the ciphertext."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Computed HMAC on {name} does not match stored HMAC")


class BinarySecretError(CredStashError):
    """The plaintext of a secret is not valid UTF-8 text."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"{name}: plaintext is not valid UTF-8; use get_bytes to read it"
        )


class KmsError(CredStashError):
    """Key-management service failure not covered by DecryptionError."""


class StoreError(CredStashError):
    """DynamoDB transport or service failure."""


class AlreadyExistsError(CredStashError):
    """The credential table is already provisioned."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Credential Store table already exists -- {table}")


class MalformedRecordError(CredStashError):
    """A persisted item cannot be decoded; the stored data is corrupt."""

    def __init__(self, name: str, field: str, detail: str = ""):
        self.name = name
        self.field = field
        message = f"Stored record {name!r} has a malformed {field!r} attribute"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def _display(version: str) -> str:
    try:
        return str(int(version))
    except (TypeError, ValueError):
        return repr(version)
