"""Encrypt/decrypt primitive for stored provider credentials.

Tokens are sealed with `cryptography.fernet.Fernet` (AES with a random IV
per call, HMAC-authenticated). The key comes from `APP_ENCRYPTION_KEY`, a
urlsafe base64 Fernet key. Generate one with:

  from cryptography.fernet import Fernet
  print(Fernet.generate_key().decode())

Without a usable key the cipher falls back to a fixed development key and
logs a warning: stored tokens are then only obfuscated, not protected.
"""
import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from connectors.logs import get_logger

logger = get_logger('crypto')

DEV_FALLBACK_KEY = base64.urlsafe_b64encode(b'\0' * 32)


class TokenCipher:
    def __init__(self, key: Optional[str] = None):
        self.using_fallback_key = False
        self._fernet = self._build_fernet(key)

    def _build_fernet(self, key: Optional[str]) -> Fernet:
        if key:
            try:
                return Fernet(key.encode() if isinstance(key, str) else key)
            except (ValueError, TypeError):
                logger.warning('APP_ENCRYPTION_KEY is not a valid Fernet key. Using dummy key for development.')
        else:
            logger.warning('APP_ENCRYPTION_KEY not set. Using dummy key for development.')
        self.using_fallback_key = True
        return Fernet(DEV_FALLBACK_KEY)

    def encrypt(self, plaintext: Optional[str]) -> str:
        return self._fernet.encrypt(str(plaintext or '').encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> str:
        """Best-effort decrypt: any failure yields '' and callers treat that as not connected."""
        if not ciphertext:
            return ''
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError, TypeError):
            logger.warning('Failed to decrypt stored credential; treating it as empty.')
            return ''
