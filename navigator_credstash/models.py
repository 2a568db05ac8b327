"""
CredStash Models — sealed payloads, stored records and their metadata.

Persisted item layout (DynamoDB, every attribute typed ``S``)::

    name      secret name (HASH key)
    version   version string (RANGE key)
    key       base64(KMS-wrapped 64-byte data key)
    contents  base64(AES-CTR ciphertext)
    hmac      hex(HMAC-SHA256 of the ciphertext)

Field names and encodings are shared with every credstash-compatible tool.
"""
import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field

from .exceptions import MalformedRecordError


def parse_version(version: str) -> int:
    """Return the integer value of a version string.

    Raises:
        ValueError: If ``version`` is not a non-negative decimal integer.
    """
    if not isinstance(version, str) or not (version.isascii() and version.isdigit()):
        raise ValueError(f"Version must be a non-negative integer string, got {version!r}")
    return int(version)


def format_version(number: int, width: int = 0) -> str:
    """Render a version number, zero-padded to ``width`` when width > 0."""
    if number < 0:
        raise ValueError(f"Version cannot be negative: {number}")
    return str(number).zfill(width) if width else str(number)


def _attr(item: dict[str, Any], attr: str, name: str) -> str:
    try:
        return item[attr]["S"]
    except (KeyError, TypeError) as err:
        raise MalformedRecordError(name, attr, "missing string attribute") from err


class SealedSecret(BaseModel):
    """Output of envelope sealing: everything needed to open a secret."""

    wrapped_key: bytes
    ciphertext: bytes
    hmac: str = Field(..., description="hex-encoded HMAC-SHA256 tag")

    model_config = {"frozen": True}


class SecretMetadata(BaseModel):
    """A (name, version) pair, without payload."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @property
    def number(self) -> int:
        """Version as an integer."""
        try:
            return parse_version(self.version)
        except ValueError as err:
            raise MalformedRecordError(self.name, "version", str(err)) from err

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "SecretMetadata":
        name = _attr(item, "name", "<unknown>")
        return cls(name=name, version=_attr(item, "version", name))


class SecretRecord(SealedSecret):
    """A sealed secret as stored under (name, version)."""

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)

    @property
    def metadata(self) -> SecretMetadata:
        return SecretMetadata(name=self.name, version=self.version)

    def to_item(self) -> dict[str, dict[str, str]]:
        """Encode as a DynamoDB item."""
        return {
            "name": {"S": self.name},
            "version": {"S": self.version},
            "key": {"S": base64.b64encode(self.wrapped_key).decode("ascii")},
            "contents": {"S": base64.b64encode(self.ciphertext).decode("ascii")},
            "hmac": {"S": self.hmac},
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "SecretRecord":
        """Decode a DynamoDB item.

        The ``hmac`` attribute is kept as stored; a bad hex tag surfaces as
        an integrity failure when the record is opened.

        Raises:
            MalformedRecordError: If an attribute is missing or not valid base64.
        """
        name = _attr(item, "name", "<unknown>")
        version = _attr(item, "version", name)
        decoded = {}
        for attr in ("key", "contents"):
            try:
                decoded[attr] = base64.b64decode(_attr(item, attr, name), validate=True)
            except (binascii.Error, ValueError) as err:
                raise MalformedRecordError(name, attr, "invalid base64") from err
        return cls(
            name=name,
            version=version,
            wrapped_key=decoded["key"],
            ciphertext=decoded["contents"],
            hmac=_attr(item, "hmac", name),
        )

    @classmethod
    def from_sealed(cls, name: str, version: str, sealed: SealedSecret) -> "SecretRecord":
        return cls(
            name=name,
            version=version,
            wrapped_key=sealed.wrapped_key,
            ciphertext=sealed.ciphertext,
            hmac=sealed.hmac,
        )
