"""Currency wallet boundary plus in-memory and sqlite implementations."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger("gachaspire.ledger")


class Ledger(Protocol):
    def try_spend(self, amount: int) -> bool:
        ...

    def credit(self, amount: int) -> None:
        ...

    def current_balance(self) -> int:
        ...


class MemoryLedger:
    """Process-local wallet, used by tests and offline simulations."""

    def __init__(self, balance: int = 0) -> None:
        if balance < 0:
            raise ValueError("Starting balance must not be negative.")
        self._balance = balance

    def try_spend(self, amount: int) -> bool:
        if amount < 0:
            logger.warning("Refusing negative spend of %s", amount)
            return False
        if self._balance < amount:
            return False
        self._balance -= amount
        return True

    def credit(self, amount: int) -> None:
        if amount <= 0:
            logger.warning("Ignoring non-positive credit of %s", amount)
            return
        self._balance += amount

    def current_balance(self) -> int:
        return self._balance


class UnlimitedLedger(MemoryLedger):
    """Wallet that never runs dry; spends are still tallied."""

    def __init__(self) -> None:
        super().__init__(0)
        self.spent = 0

    def try_spend(self, amount: int) -> bool:
        if amount < 0:
            return False
        self.spent += amount
        return True


def connect_wallet_db(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS gacha_wallets (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                gold INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, user_id)
            )
            """
        )
    return conn


class SqliteLedger:
    """Wallet row keyed by (guild_id, user_id) in a shared sqlite database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        guild_id: int,
        user_id: int,
        *,
        starting_balance: int = 0,
        lock: Optional[threading.Lock] = None,
    ) -> None:
        self._conn = conn
        self.guild_id = guild_id
        self.user_id = user_id
        self._lock = lock or threading.Lock()
        with self._lock:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO gacha_wallets (guild_id, user_id, gold)
                VALUES (?, ?, ?)
                """,
                (guild_id, user_id, max(starting_balance, 0)),
            )

    def try_spend(self, amount: int) -> bool:
        if amount < 0:
            logger.warning("Refusing negative spend of %s for %s/%s", amount, self.guild_id, self.user_id)
            return False
        with self._lock:
            cur = self._conn.execute(
                """
                UPDATE gacha_wallets
                SET gold = gold - ?
                WHERE guild_id = ? AND user_id = ? AND gold >= ?
                """,
                (amount, self.guild_id, self.user_id, amount),
            )
            return cur.rowcount == 1

    def credit(self, amount: int) -> None:
        if amount <= 0:
            logger.warning("Ignoring non-positive credit of %s for %s/%s", amount, self.guild_id, self.user_id)
            return
        with self._lock:
            self._conn.execute(
                """
                UPDATE gacha_wallets
                SET gold = gold + ?
                WHERE guild_id = ? AND user_id = ?
                """,
                (amount, self.guild_id, self.user_id),
            )

    def current_balance(self) -> int:
        with self._lock:
            cur = self._conn.execute(
                "SELECT gold FROM gacha_wallets WHERE guild_id = ? AND user_id = ?",
                (self.guild_id, self.user_id),
            )
            row = cur.fetchone()
        return int(row[0]) if row else 0


__all__ = ["Ledger", "MemoryLedger", "SqliteLedger", "UnlimitedLedger", "connect_wallet_db"]
