"""
CredStash — versioned secrets encrypted with KMS data keys, stored in DynamoDB.

Provides the public API:
- ``put(name, plaintext, version)`` — seal and insert a new version
- ``put_next(name, plaintext)`` — same, at highest version + 1
- ``get(name, version="")`` — fetch and open a version ("" = latest)
- ``get_all()`` — open the latest version of every secret
- ``list_secrets()`` — (name, version) pairs, no decryption
- ``delete(name, version="")`` — remove one version or all of them
- ``create_store()`` — provision the DynamoDB table

Security Note:
    Never log plaintext, ciphertext or context values. Only log names,
    versions and table names.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

import boto3
import orjson

from .config import DEFAULT_KMS_KEY, DEFAULT_TABLE, CredStashConfig
from .envelope import EnvelopeCodec
from .exceptions import BinarySecretError, NotFoundError, VersionConflictError
from .models import SecretMetadata, SecretRecord, format_version, parse_version
from .store import StoreClient

logger = logging.getLogger("navigator.credstash")


class CredStash:
    """Credential store facade.

    KMS and DynamoDB clients are created by the caller (or by
    ``from_config``) and reused for every operation.

    Args:
        kms: boto3 KMS client.
        dynamodb: boto3 DynamoDB client.
        table: Credential table name.
        kms_key_id: Default KMS key used by ``put``.
        version_width: Zero-pad width for versions generated by ``put_next``.
    """

    def __init__(
        self,
        kms: Any,
        dynamodb: Any,
        table: str = DEFAULT_TABLE,
        kms_key_id: str = DEFAULT_KMS_KEY,
        version_width: int = 0,
        wait_delay: int = 20,
        wait_max_attempts: int = 25,
    ):
        self.codec = EnvelopeCodec(kms)
        self.store = StoreClient(
            dynamodb,
            table,
            wait_delay=wait_delay,
            wait_max_attempts=wait_max_attempts,
        )
        self.kms_key_id = kms_key_id
        self.version_width = version_width

    @classmethod
    def from_config(
        cls,
        config: Optional[CredStashConfig] = None,
        session: Optional[boto3.session.Session] = None,
    ) -> "CredStash":
        """Build a CredStash with boto3 clients for ``config``.

        Args:
            config: Settings; loaded from the environment when omitted.
            session: boto3 session to create clients from.

        Returns:
            Configured CredStash instance.
        """
        if config is None:
            config = CredStashConfig.from_env()
        if session is None:
            session = boto3.session.Session(region_name=config.region)
        kms = session.client("kms", endpoint_url=config.endpoint_url)
        dynamodb = session.client("dynamodb", endpoint_url=config.endpoint_url)
        return cls(
            kms,
            dynamodb,
            table=config.table,
            kms_key_id=config.kms_key_id,
            version_width=config.version_width,
            wait_delay=config.wait_delay,
            wait_max_attempts=config.wait_max_attempts,
        )

    @property
    def table(self) -> str:
        return self.store.table

    def _validate_name(self, name: str) -> None:
        if not name:
            raise ValueError("Secret name cannot be empty")

    def _max_version(self, name: str) -> int:
        try:
            return max(meta.number for meta in self.store.scan_by_name(name))
        except NotFoundError:
            return 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(
        self,
        name: str,
        plaintext: Union[str, bytes],
        version: str,
        key_id: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Seal ``plaintext`` and store it as ``name`` at ``version``.

        Args:
            name: Secret name.
            plaintext: Secret value; ``str`` is stored UTF-8 encoded.
            version: Version string (non-negative integer).
            key_id: KMS key; defaults to the configured one.
            context: Encryption context required again by ``get``.

        Raises:
            ValueError: If name or version is invalid.
            VersionConflictError: If the version already exists; ``highest``
                carries the current highest version.
            KmsError: If KMS cannot generate a data key.
            StoreError: On DynamoDB failure.
        """
        self._validate_name(name)
        parse_version(version)
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        sealed = self.codec.seal(plaintext, key_id or self.kms_key_id, context)
        try:
            self.store.put_if_absent(SecretRecord.from_sealed(name, version, sealed))
        except VersionConflictError as err:
            highest = self.store.highest_version(name)
            raise VersionConflictError(name, version, highest) from err
        logger.debug("Put %s version %s into %s", name, version, self.table)

    def put_next(
        self,
        name: str,
        plaintext: Union[str, bytes],
        key_id: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Store ``plaintext`` at the highest existing version + 1.

        The highest version is taken numerically over every stored version,
        so unpadded versions past 9 are handled.

        A concurrent writer can still take that version first; the loser
        gets VersionConflictError and may retry.

        Returns:
            The version written.
        """
        self._validate_name(name)
        version = format_version(self._max_version(name) + 1, self.version_width)
        self.put(name, plaintext, version, key_id=key_id, context=context)
        return version

    def get_bytes(
        self,
        name: str,
        version: str = "",
        context: Optional[Mapping[str, str]] = None,
    ) -> bytes:
        """Return the raw plaintext of ``name`` ("" version means latest).

        Raises:
            NotFoundError: If the secret (version) does not exist.
            DecryptionError: If KMS rejects the key for the given context.
            IntegrityError: If the stored HMAC does not match.
        """
        self._validate_name(name)
        if version:
            record = self.store.get_version(name, version)
        else:
            record = self.store.get_latest(name)
        return self.codec.open(record, context, name=name)

    def get(
        self,
        name: str,
        version: str = "",
        context: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Like ``get_bytes``, decoded as UTF-8.

        Raises:
            BinarySecretError: If the plaintext is not valid UTF-8.
        """
        plaintext = self.get_bytes(name, version, context)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise BinarySecretError(name) from err

    def get_all(self, context: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Return {name: plaintext} for the latest version of every secret."""
        latest: dict[str, SecretMetadata] = {}
        for meta in self.store.scan_all():
            current = latest.get(meta.name)
            if current is None or meta.number > current.number:
                latest[meta.name] = meta
        return {
            name: self.get(name, meta.version, context)
            for name, meta in latest.items()
        }

    def list_secrets(self) -> list[SecretMetadata]:
        """Return every stored (name, version), in no particular order."""
        return self.store.scan_all()

    def delete(self, name: str, version: str = "") -> list[SecretMetadata]:
        """Delete one version of ``name``, or every version when ``version`` is "".

        Returns:
            The deleted (name, version) pairs, one per removed record.

        Raises:
            NotFoundError: If nothing matches.
        """
        self._validate_name(name)
        if version:
            targets = [self.store.get_metadata(name, version)]
        else:
            targets = self.store.scan_by_name(name)
        # malformed versions must fail before anything is deleted
        numbered = [(meta, meta.number) for meta in targets]
        for meta, number in numbered:
            self.store.delete_key(meta.name, meta.version)
            logger.info("Deleting %s -- version %d", meta.name, number)
        return [meta for meta, _ in numbered]

    def create_store(self) -> None:
        """Create the credential table and wait until it is active.

        Raises:
            AlreadyExistsError: If the table already exists.
        """
        self.store.ensure_table()


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

def render_listing(secrets: Iterable[SecretMetadata]) -> list[str]:
    """Render ``name -- version: N`` lines, names padded, sorted by line."""
    secrets = list(secrets)
    width = max((len(meta.name) for meta in secrets), default=0)
    return sorted(
        f"{meta.name:<{width}} -- version: {meta.number}" for meta in secrets
    )


def dump_json(secrets: Mapping[str, str]) -> str:
    """Serialize decrypted secrets as a JSON object with sorted keys."""
    return orjson.dumps(
        dict(secrets), option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2,
    ).decode("utf-8")
