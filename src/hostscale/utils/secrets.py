"""
hostscale Secret Handling

Symmetric encryption for credentials kept at rest (managed database
passwords). Decryption only happens on an explicit read.
"""

import base64
import hashlib
import logging
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import SecretError

logger = logging.getLogger(__name__)

_KDF_ITERATIONS = 100000


class SecretBox:
    """
    Fernet wrapper bound to one key.

    Example:
        box = SecretBox(SecretBox.generate_key())
        token = box.encrypt("s3cret")
        box.decrypt(token)  # "s3cret"
    """

    def __init__(self, key: Union[str, bytes]):
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise SecretError(
                f"Invalid encryption key: {e}",
                guidance="Use a urlsafe base64 32-byte key, or build the box with SecretBox.from_passphrase()."
            ) from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key"""
        return Fernet.generate_key().decode("ascii")

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: Optional[bytes] = None) -> "SecretBox":
        """Derive a key from a passphrase using PBKDF2"""
        if salt is None:
            # Stable per passphrase so previously stored tokens stay readable
            salt = hashlib.sha256(b"hostscale:" + passphrase.encode("utf-8")).digest()[:16]

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_KDF_ITERATIONS,
        )
        return cls(base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8"))))

    @classmethod
    def from_setting(cls, secret_key: Optional[str]) -> "SecretBox":
        """
        Build a box from the configured secret.

        A valid Fernet key is used as-is; anything else is treated as a
        passphrase.
        """
        if not secret_key:
            raise SecretError(
                "No encryption key configured",
                guidance="Set HOSTSCALE_SECRET_KEY or security.secret_key in hostscale.toml."
            )
        try:
            return cls(secret_key)
        except SecretError:
            logger.debug("Configured secret is not a Fernet key, deriving one from it")
            return cls.from_passphrase(secret_key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return the token as text"""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by encrypt()"""
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            logger.error("Failed to decrypt stored secret")
            raise SecretError(
                "Stored secret cannot be decrypted",
                guidance="The encryption key may have changed since the secret was stored."
            ) from e
