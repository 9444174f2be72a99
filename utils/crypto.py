"""
Credential Encryption

Site passwords are stored encrypted with AES-256-GCM and decrypted only at the
moment a request is made. Stored values have the form
``<nonce hex>:<auth tag hex>:<ciphertext hex>``.
"""

import hashlib
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config import settings
from utils.exceptions import CredentialError

ASSOCIATED_DATA = b"fiddy-autopublisher"
NONCE_SIZE = 12
TAG_SIZE = 16


def _derive_key(secret: Optional[str]) -> bytes:
    """Use a 64-char hex secret as-is, otherwise hash the secret down to 32 bytes."""
    if not secret:
        raise CredentialError("ENCRYPTION_KEY is not configured")
    try:
        key = bytes.fromhex(secret)
        if len(key) == 32:
            return key
    except ValueError:
        pass
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(plaintext: Optional[str], secret: Optional[str] = None) -> Optional[str]:
    """
    Encrypt a credential for storage.

    Args:
        plaintext: The value to encrypt; empty values are returned as None
        secret: Encryption key, defaults to settings.ENCRYPTION_KEY

    Returns:
        Optional[str]: The encoded ciphertext
    """
    if not plaintext:
        return None

    key = _derive_key(secret or settings.ENCRYPTION_KEY)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), ASSOCIATED_DATA)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(encoded: Optional[str], secret: Optional[str] = None) -> Optional[str]:
    """
    Decrypt a stored credential.

    Args:
        encoded: Value produced by encrypt()
        secret: Encryption key, defaults to settings.ENCRYPTION_KEY

    Returns:
        Optional[str]: The plaintext, or None for an empty value

    Raises:
        CredentialError: If the value is malformed or fails authentication
    """
    if not encoded:
        return None

    parts = encoded.split(":")
    if len(parts) != 3:
        raise CredentialError("Invalid encrypted data format")

    try:
        nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    except ValueError as e:
        raise CredentialError(f"Invalid encrypted data format: {e}") from e

    key = _derive_key(secret or settings.ENCRYPTION_KEY)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, ASSOCIATED_DATA)
    except (InvalidTag, ValueError) as e:
        raise CredentialError("Decryption failed") from e
    return plaintext.decode("utf-8")
