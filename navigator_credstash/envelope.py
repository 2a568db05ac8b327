"""
CredStash Envelope Codec — seal and open secrets with one-time KMS data keys.

Seal:
    KMS GenerateDataKey(64 bytes, context) → key[:32] AES-CTR → ciphertext
                                           → key[32:] HMAC-SHA256 → tag
Open:
    KMS Decrypt(wrapped key, context) → verify tag → AES-CTR → plaintext

Security Note:
    The plaintext data key lives only for the duration of a call and is
    never persisted, cached or logged. Encryption context values are never
    logged either; only their keys are.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .crypto import DATA_KEY_LENGTH, mac, split_data_key, stream_cipher, verify_hex_mac
from .exceptions import DecryptionError, IntegrityError, KmsError
from .models import SealedSecret

logger = logging.getLogger("navigator.credstash")

INVALID_CIPHERTEXT = "InvalidCiphertextException"


def validate_context(context: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Return ``context`` as a plain dict, checking it maps str to str.

    Raises:
        ValueError: If a key or value is not a string or a key is empty.
    """
    if not context:
        return {}
    validated = {}
    for key, value in context.items():
        if not isinstance(key, str) or not key:
            raise ValueError(f"Encryption context keys must be non-empty strings, got {key!r}")
        if not isinstance(value, str):
            raise ValueError(f"Encryption context value for {key!r} must be a string")
        validated[key] = value
    return validated


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


class EnvelopeCodec:
    """Envelope encryption backed by a KMS client.

    Args:
        kms: boto3 KMS client (or any object with ``generate_data_key`` and
            ``decrypt`` of the same shape).
    """

    def __init__(self, kms: Any):
        self._kms = kms

    def _kms_params(self, context: dict[str, str], **params: Any) -> dict[str, Any]:
        if context:
            params["EncryptionContext"] = context
        return params

    def seal(
        self,
        plaintext: bytes,
        key_id: str,
        context: Optional[Mapping[str, str]] = None,
    ) -> SealedSecret:
        """Encrypt ``plaintext`` under a fresh data key minted by ``key_id``.

        Args:
            plaintext: Secret bytes.
            key_id: KMS key id, ARN or alias wrapping the data key.
            context: Optional encryption context bound to the wrapped key.

        Returns:
            SealedSecret with the wrapped key, ciphertext and hex HMAC.

        Raises:
            KmsError: If KMS cannot generate a data key.
        """
        ctx = validate_context(context)
        try:
            response = self._kms.generate_data_key(
                **self._kms_params(ctx, KeyId=key_id, NumberOfBytes=DATA_KEY_LENGTH)
            )
        except (ClientError, BotoCoreError) as err:
            logger.debug("GenerateDataKey failed for key=%s: %s", key_id, err)
            raise KmsError(f"Could not generate key using KMS key {key_id}") from err

        enc_key, mac_key = split_data_key(response["Plaintext"])
        ciphertext = stream_cipher(plaintext, enc_key)
        tag = mac(ciphertext, mac_key)
        logger.debug(
            "Sealed secret with key=%s context_keys=%s", key_id, sorted(ctx),
        )
        return SealedSecret(
            wrapped_key=response["CiphertextBlob"],
            ciphertext=ciphertext,
            hmac=tag.hex(),
        )

    def open(
        self,
        sealed: SealedSecret,
        context: Optional[Mapping[str, str]] = None,
        name: str = "",
    ) -> bytes:
        """Decrypt a sealed secret.

        Args:
            sealed: Wrapped key, ciphertext and hex HMAC.
            context: Encryption context; must equal the one used at seal time.
            name: Secret name, used in error messages only.

        Returns:
            Plaintext bytes.

        Raises:
            DecryptionError: If KMS rejects the wrapped key as invalid
                ciphertext (missing or mismatched context).
            IntegrityError: If the stored HMAC does not match.
            KmsError: For any other KMS failure.
        """
        ctx = validate_context(context)
        try:
            response = self._kms.decrypt(
                **self._kms_params(ctx, CiphertextBlob=sealed.wrapped_key)
            )
        except ClientError as err:
            if _error_code(err) == INVALID_CIPHERTEXT:
                reason = (
                    DecryptionError.WRONG_CONTEXT if ctx
                    else DecryptionError.MISSING_CONTEXT
                )
                raise DecryptionError(name, reason) from err
            raise KmsError(str(err)) from err
        except BotoCoreError as err:
            raise KmsError(str(err)) from err

        enc_key, mac_key = split_data_key(response["Plaintext"])
        if not verify_hex_mac(sealed.ciphertext, sealed.hmac, mac_key):
            logger.warning("HMAC mismatch on secret %s", name)
            raise IntegrityError(name)
        return stream_cipher(sealed.ciphertext, enc_key)
