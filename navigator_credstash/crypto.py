"""
CredStash Crypto Primitives — AES-CTR stream cipher and HMAC-SHA256.

Pure functions, no I/O.

Security Note:
    ``stream_cipher`` uses a fixed counter block (zeros, last byte 0x01).
    This is only safe because every record is encrypted under a freshly
    minted KMS data key. Never call it twice with the same key for
    different plaintexts; caching data keys requires a random nonce.
"""
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_LENGTH = 32  # AES-256 / HMAC-SHA256 key size
DATA_KEY_LENGTH = 2 * KEY_LENGTH
MAC_LENGTH = 32

FIXED_IV = b"\x00" * 15 + b"\x01"


def mac(message: bytes, key: bytes) -> bytes:
    """Return the HMAC-SHA256 tag of ``message`` under ``key``."""
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(message)
    return h.finalize()


def verify_mac(message: bytes, tag: bytes, key: bytes) -> bool:
    """Check ``tag`` against a freshly computed HMAC in constant time."""
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(message)
    try:
        h.verify(tag)
    except InvalidSignature:
        return False
    return True


def verify_hex_mac(message: bytes, hex_tag: str, key: bytes) -> bool:
    """Like ``verify_mac`` for a hex-encoded tag.

    An undecodable tag is reported as a mismatch, never raised.
    """
    try:
        tag = binascii.unhexlify(hex_tag)
    except (binascii.Error, TypeError, ValueError):
        return False
    return verify_mac(message, tag, key)


def stream_cipher(data: bytes, key: bytes) -> bytes:
    """AES-CTR transform of ``data``; encryption and decryption are the same call.

    Args:
        data: Plaintext or ciphertext.
        key: 16, 24 or 32 byte AES key (credstash uses 32).

    Returns:
        Transformed bytes, same length as ``data``.
    """
    encryptor = Cipher(algorithms.AES(key), modes.CTR(FIXED_IV)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def split_data_key(data_key: bytes) -> tuple[bytes, bytes]:
    """Split a 64-byte data key into (encryption key, MAC key)."""
    if len(data_key) != DATA_KEY_LENGTH:
        raise ValueError(
            f"data key must be exactly {DATA_KEY_LENGTH} bytes, "
            f"got {len(data_key)}"
        )
    return data_key[:KEY_LENGTH], data_key[KEY_LENGTH:]
