"""
Key vault for custodial wallets.

Private keys are stored AES-256-GCM encrypted as hex(iv + ciphertext + tag),
with the cipher key derived from ENCRYPTION_KEY through scrypt. A decrypted
key is handed out per signing operation and never cached here.
"""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from lpbot.errors import ExecutionError, WalletNotProvisionedError

logger = logging.getLogger(__name__)

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_SALT = b"salt"


def derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=2 ** 14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class KeyVault:

    def __init__(self, user_store, encryption_key: str):
        if not encryption_key:
            raise ValueError("ENCRYPTION_KEY is not configured")
        self.user_store = user_store
        self._aead = AESGCM(derive_key(encryption_key))

    def encrypt(self, data: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, data.encode("utf-8"), None)
        return (iv + sealed).hex()

    def decrypt(self, encrypted_hex: str) -> str:
        raw = bytes.fromhex(encrypted_hex)
        if len(raw) < IV_LENGTH + AUTH_TAG_LENGTH:
            raise ValueError("Encrypted payload is too short")
        iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
        return self._aead.decrypt(iv, sealed, None).decode("utf-8")

    def get_signing_key(self, user_id: str) -> str:
        """Decrypt and return the user's private key for a single signing call."""
        user = self.user_store.get_user(user_id)
        if user is None or not user.has_wallet:
            raise WalletNotProvisionedError(user_id)

        try:
            return self.decrypt(user.encrypted_private_key)
        except (InvalidTag, ValueError) as e:
            logger.error(f"Error retrieving signing key for user {user_id}: {type(e).__name__}")
            raise ExecutionError(
                "Failed to retrieve wallet key",
                detail="Failed to retrieve your wallet key. Please ensure the encryption key is correct.",
            ) from e
