# repomirror/core/crypto.py
"""
Encryption of GitHub tokens at rest.

AES-256-GCM with a fresh 12 byte IV per value. Ciphertext and IV are stored
base64-encoded in separate columns. The key comes from settings.ENCRYPTION_KEY
(base64, 32 bytes once decoded).
"""

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from repomirror.core.config import settings

logger = logging.getLogger(__name__)

IV_LENGTH = 12


class TokenCipher:
    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("Encryption key must be 32 bytes")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> tuple[str, str]:
        """Encrypt plaintext. Returns (ciphertext, iv), both base64 text."""
        if not plaintext:
            raise ValueError("Cannot encrypt empty token")

        iv = os.urandom(IV_LENGTH)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return (
            base64.b64encode(ciphertext).decode("ascii"),
            base64.b64encode(iv).decode("ascii"),
        )

    def decrypt(self, ciphertext: str, iv: str) -> str | None:
        """Decrypt a stored value. Returns None if it cannot be authenticated."""
        try:
            raw = self._aesgcm.decrypt(
                base64.b64decode(iv, validate=True),
                base64.b64decode(ciphertext, validate=True),
                None,
            )
            return raw.decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError, TypeError) as e:
            logger.warning("Failed to decrypt token: %s", type(e).__name__)
            return None


def get_cipher() -> TokenCipher:
    if not settings.ENCRYPTION_KEY:
        raise ValueError("ENCRYPTION_KEY is not set")
    try:
        key = base64.b64decode(settings.ENCRYPTION_KEY, validate=True)
    except binascii.Error as e:
        raise ValueError("ENCRYPTION_KEY is not valid base64") from e
    return TokenCipher(key)
