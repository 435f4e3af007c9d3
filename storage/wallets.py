"""
Custodial wallet provisioning.

A wallet is a freshly generated Solana keypair. The base58 secret key only
ever reaches the user store encrypted by the key vault.
"""

import logging
from typing import Tuple

from solders.keypair import Keypair

from .key_vault import KeyVault
from .user_store import UserProfile, UserStore

logger = logging.getLogger(__name__)


class WalletProvisioner:

    def __init__(self, user_store: UserStore, key_vault: KeyVault):
        self.user_store = user_store
        self.key_vault = key_vault

    def ensure_wallet(self, user_id: str, telegram_id: int) -> Tuple[UserProfile, bool]:
        """Return the user's wallet, creating one first if needed.

        The flag is True when a new wallet was created by this call.
        """
        existing = self.user_store.get_user(user_id)
        if existing is not None and existing.has_wallet:
            return existing, False

        keypair = Keypair()
        address = str(keypair.pubkey())
        profile = self.user_store.save_wallet(user_id, telegram_id, address, self.key_vault.encrypt(str(keypair)))
        logger.info(f"Created custodial wallet {address} for user {user_id}")
        return profile, True

    def export_private_key(self, user_id: str) -> str:
        """Base58 secret key of the user's wallet, for the export button."""
        return self.key_vault.get_signing_key(user_id)
