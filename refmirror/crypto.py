"""
Symmetric encryption for private citation payloads.

Implements:
- PBKDF2-HMAC-SHA256 key derivation from an opaque identity string
- AES-256-GCM authenticated encryption with a fresh 96-bit nonce per call
- base64(nonce || ciphertext) text blobs
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from refmirror.errors import AuthenticationFailure


# Fixed application salt: the same identity always derives the same key
APP_SALT = b"KnowTation-Reference-Encryption"

MIN_ITERATIONS = 100_000
KEY_LENGTH = 32
NONCE_LENGTH = 12


def derive_key(identity_key: str, iterations: int = MIN_ITERATIONS,
               salt: bytes = APP_SALT) -> bytes:
    """
    Derive a 256-bit symmetric key from an identity string.

    Args:
        identity_key: Opaque identity (e.g. a hex public key)
        iterations: PBKDF2 iteration count (at least 100,000)
        salt: Application salt

    Returns:
        32-byte key

    Raises:
        ValueError: If iterations is below the minimum or identity is empty
    """
    if iterations < MIN_ITERATIONS:
        raise ValueError(f"PBKDF2 iterations must be >= {MIN_ITERATIONS}, got {iterations}")
    if not identity_key:
        raise ValueError("Identity key must not be empty")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(identity_key.encode('utf-8'))


def encrypt(plaintext: str, key: bytes) -> str:
    """
    Encrypt text with AES-GCM under a fresh random nonce.

    Args:
        plaintext: Text to encrypt
        key: 32-byte key from derive_key

    Returns:
        base64(nonce || ciphertext+tag)
    """
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode('utf-8'), None)
    return base64.b64encode(nonce + ciphertext).decode('ascii')


def decrypt(blob: str, key: bytes) -> str:
    """
    Decrypt a blob produced by encrypt().

    Args:
        blob: base64(nonce || ciphertext+tag)
        key: 32-byte key from derive_key

    Returns:
        Decrypted text

    Raises:
        AuthenticationFailure: On malformed blob, wrong key or tampering
    """
    try:
        data = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise AuthenticationFailure(f"Encrypted payload is not valid base64: {e}") from e

    # 16-byte GCM tag follows the nonce
    if len(data) < NONCE_LENGTH + 16:
        raise AuthenticationFailure("Encrypted payload too short")

    nonce, ciphertext = data[:NONCE_LENGTH], data[NONCE_LENGTH:]
    try:
        cipher = AESGCM(key)
    except (ValueError, TypeError) as e:
        raise AuthenticationFailure(f"Unusable decryption key: {e}") from e

    try:
        plaintext = cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise AuthenticationFailure("Authentication tag mismatch") from e

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError as e:
        raise AuthenticationFailure("Decrypted payload is not UTF-8") from e
