"""
UserStore (SQLite).

Keeps one row per chat user with the wallet address and the encrypted
private key. Only the key vault ever reads the encrypted key.
"""

import logging
import os
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from utils.config import DB_PATH

logger = logging.getLogger(__name__)


class UserProfile(BaseModel):
    id: str
    telegram_id: int = 0
    wallet_address: Optional[str] = None
    encrypted_private_key: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_address and self.encrypted_private_key)


class UserStore:
    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self._ensure_table()

    def _connect(self):
        return closing(sqlite3.connect(self.db_path))

    def _ensure_table(self):
        with self._connect() as conn, conn:
            conn.execute('''CREATE TABLE IF NOT EXISTS users (
                id                     TEXT PRIMARY KEY,
                telegram_id            INTEGER,
                wallet_address         TEXT,
                encrypted_private_key  TEXT,
                created_at             TEXT,
                last_active            TEXT
            )''')

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, telegram_id, wallet_address, encrypted_private_key, created_at, last_active "
                "FROM users WHERE id = ?",
                (user_id,)
            ).fetchone()
        if row is None:
            return None
        return UserProfile(
            id=row[0],
            telegram_id=row[1] or 0,
            wallet_address=row[2],
            encrypted_private_key=row[3],
            created_at=row[4],
            last_active=row[5],
        )

    def save_wallet(self, user_id: str, telegram_id: int, wallet_address: str, encrypted_private_key: str) -> UserProfile:
        """Create the user or replace their wallet."""
        now = datetime.now(timezone.utc).isoformat()
        existing = self.get_user(user_id)
        created_at = existing.created_at.isoformat() if existing and existing.created_at else now

        # the inner "with conn" commits, or rolls back on error
        with self._connect() as conn, conn:
            conn.execute(
                '''
                REPLACE INTO users (id, telegram_id, wallet_address, encrypted_private_key, created_at, last_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ''',
                (user_id, telegram_id, wallet_address, encrypted_private_key, created_at, now)
            )
        logger.info(f"Saved wallet {wallet_address} for user {user_id}")
        return self.get_user(user_id)

    def has_wallet(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        return user is not None and user.has_wallet

    def get_wallet_address(self, user_id: str) -> Optional[str]:
        user = self.get_user(user_id)
        if user is None or not user.has_wallet:
            return None
        return user.wallet_address
