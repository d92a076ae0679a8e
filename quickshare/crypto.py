"""
AES-256-GCM encryption for shared notes.

Every share gets a fresh 256-bit key and 128-bit nonce. The key is derived
from a 512-bit random seed with PBKDF2-HMAC-SHA256 (100,000 iterations, zero
salt). The key only ever leaves the process inside a share URL fragment.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass

from quickshare.errors import CryptoError

SEED_BYTES = 64
IV_BYTES = 16
KEY_BYTES = 32
KDF_ITERATIONS = 100_000
KEY_TEXT_LENGTH = 43  # unpadded base64 length of 32 bytes


@dataclass(frozen=True)
class SymmetricSecret:
    """Key material for a single share. Never persisted, never sent to the server."""

    key: bytes
    iv: bytes

    def __repr__(self) -> str:
        return "SymmetricSecret(key=<redacted>, iv=<redacted>)"


@dataclass(frozen=True)
class EncodedSecret:
    """URL-safe text form of a SymmetricSecret."""

    key: str
    iv: str


def _derive_key(seed: bytes) -> bytes:
    from cryptography.hazmat.primitives.hashes import SHA256
    from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_BYTES,
        salt=bytes(16),
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(seed)


def generate_key() -> SymmetricSecret:
    """Generate a fresh random key and nonce."""
    try:
        seed = secrets.token_bytes(SEED_BYTES)
        iv = secrets.token_bytes(IV_BYTES)
        key = _derive_key(seed)
    except (OSError, NotImplementedError, ValueError) as e:
        raise CryptoError(f"Key generation failed: {e}") from e
    return SymmetricSecret(key=key, iv=iv)


def encode_secret(secret: SymmetricSecret) -> EncodedSecret:
    """Encode key and nonce as URL-safe base64. The key text is cut to 43 chars."""
    key_text = base64.urlsafe_b64encode(secret.key).decode("ascii")[:KEY_TEXT_LENGTH]
    iv_text = base64.urlsafe_b64encode(secret.iv).decode("ascii")
    return EncodedSecret(key=key_text, iv=iv_text)


def decode_key(key_text: str) -> bytes:
    """Restore raw key bytes from the 43-char fragment key."""
    padded = key_text + "=" * (-len(key_text) % 4)
    try:
        key = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Invalid key text: {e}") from e
    if len(key) != KEY_BYTES:
        raise CryptoError(f"Key must be {KEY_BYTES} bytes, got {len(key)}")
    return key


def _aesgcm(secret: SymmetricSecret):
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    if len(secret.key) != KEY_BYTES:
        raise CryptoError(f"Key must be {KEY_BYTES} bytes, got {len(secret.key)}")
    return AESGCM(secret.key)


def encrypt(plaintext: bytes, secret: SymmetricSecret) -> str:
    """Encrypt with AES-256-GCM. Returns base64 of ciphertext + tag (16 bytes).

    Deterministic for a given (key, iv, plaintext): never reuse a secret
    across different plaintexts.
    """
    aesgcm = _aesgcm(secret)
    try:
        ciphertext = aesgcm.encrypt(secret.iv, plaintext, None)
    except (ValueError, TypeError, OverflowError) as e:
        raise CryptoError(f"Encryption failed: {e}") from e
    return base64.b64encode(ciphertext).decode("ascii")


def encrypt_string(text: str, secret: SymmetricSecret) -> str:
    """UTF-8 encode and encrypt a string."""
    return encrypt(text.encode("utf-8"), secret)


def decrypt(ciphertext_b64: str, secret: SymmetricSecret) -> bytes:
    """Decrypt base64 ciphertext + tag back to plaintext bytes."""
    from cryptography.exceptions import InvalidTag

    aesgcm = _aesgcm(secret)
    try:
        data = base64.b64decode(ciphertext_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Ciphertext is not valid base64: {e}") from e
    if len(data) < 16:
        raise CryptoError("Encrypted data too short")
    try:
        return aesgcm.decrypt(secret.iv, data, None)
    except (InvalidTag, ValueError) as e:
        raise CryptoError("Decryption failed: authentication tag mismatch") from e
