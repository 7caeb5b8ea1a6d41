"""
Encryption Service

Handles encryption and decryption of aggregator access tokens at rest.
Uses Fernet symmetric encryption (AES-128-CBC with HMAC authentication).
"""
import base64
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from fintrack.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class EncryptionService:
    """Service for encrypting and decrypting sensitive data"""

    def __init__(self, secret_key: Optional[str] = None):
        """
        Initialize the encryption service with a key derived from SECRET_KEY.

        Args:
            secret_key: Overrides settings.SECRET_KEY (32+ characters)
        """
        if secret_key is None:
            from fintrack.config import settings
            secret_key = settings.SECRET_KEY
        if not secret_key or len(secret_key) < 32:
            raise ConfigurationError("SECRET_KEY must be set (32+ characters) to store access tokens")

        # Fernet requires a URL-safe base64-encoded 32-byte key
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'bank_link_token_encryption_salt',  # Fixed salt for key derivation
            iterations=100000,
        )
        key_bytes = kdf.derive(secret_key.encode())
        self.cipher = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string and return base64-encoded ciphertext.

        Args:
            plaintext: The string to encrypt

        Returns:
            Base64-encoded encrypted string
        """
        if not plaintext:
            return ""
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a base64-encoded ciphertext and return plaintext.

        Args:
            ciphertext: Base64-encoded encrypted string

        Returns:
            Decrypted plaintext string
        """
        if not ciphertext:
            return ""

        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Decryption error: token was not encrypted with the current SECRET_KEY")
            raise
