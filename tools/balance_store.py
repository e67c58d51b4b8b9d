"""
PUMP CASINO — Balance Store Backends

The persistence collaborator behind the Ledger. A store only knows balances:
it creates a player on first access with the starting bankroll, performs an
atomic check-and-decrement on debit, and an increment on credit.

Backends:
    MemoryBalanceStore   dict + lock, process-local (default)
    SQLiteBalanceStore   single-file SQLite, survives restarts

Usage:
    from tools.balance_store import SQLiteBalanceStore
    store = SQLiteBalanceStore("balances.db", initial_balance=Decimal("1000"))
    store.debit("wallet_abc", Decimal("10.00"))   # -> True / False
"""

from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from round_engine.money import to_money


class BalanceStore(ABC):
    """debit() -> ok | insufficient funds; credit() -> new balance."""

    def __init__(self, initial_balance=Decimal("1000")):
        self.initial_balance = to_money(initial_balance)

    @abstractmethod
    def get_balance(self, player_id: str) -> Decimal:
        """Current balance. Creates the player with the starting bankroll if new."""
        ...

    @abstractmethod
    def debit(self, player_id: str, amount: Decimal) -> bool:
        """Atomically subtract `amount` if the balance covers it."""
        ...

    @abstractmethod
    def credit(self, player_id: str, amount: Decimal) -> Decimal:
        """Add `amount` and return the new balance."""
        ...

    def close(self) -> None:
        pass


# ═══════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════

class MemoryBalanceStore(BalanceStore):

    def __init__(self, initial_balance=Decimal("1000"), balances: Optional[dict] = None):
        super().__init__(initial_balance)
        self._balances = {k: to_money(v) for k, v in (balances or {}).items()}
        self._lock = threading.Lock()

    def _ensure(self, player_id: str) -> Decimal:
        if player_id not in self._balances:
            self._balances[player_id] = self.initial_balance
        return self._balances[player_id]

    def get_balance(self, player_id: str) -> Decimal:
        with self._lock:
            return self._ensure(player_id)

    def debit(self, player_id: str, amount: Decimal) -> bool:
        with self._lock:
            current = self._ensure(player_id)
            if current < amount:
                return False
            self._balances[player_id] = current - amount
            return True

    def credit(self, player_id: str, amount: Decimal) -> Decimal:
        with self._lock:
            self._balances[player_id] = self._ensure(player_id) + amount
            return self._balances[player_id]


# ═══════════════════════════════════════════════════════════════
# SQLite
# ═══════════════════════════════════════════════════════════════

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    balance_cents INTEGER NOT NULL CHECK (balance_cents >= 0),
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);
"""


def _cents(amount: Decimal) -> int:
    return int(to_money(amount) * 100)


def _from_cents(cents: int) -> Decimal:
    return to_money(Decimal(cents) / 100)


class SQLiteBalanceStore(BalanceStore):
    """Balances stored as integer cents; debit is a guarded single UPDATE."""

    def __init__(self, db_path: str = "balances.db", initial_balance=Decimal("1000")):
        super().__init__(initial_balance)
        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _db(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, timeout=10, isolation_level=None)
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    def _init_db(self):
        self._db().executescript(SCHEMA_SQL)

    def _ensure(self, db: sqlite3.Connection, player_id: str) -> None:
        db.execute(
            "INSERT OR IGNORE INTO players (id, balance_cents) VALUES (?, ?)",
            (player_id, _cents(self.initial_balance)),
        )

    def get_balance(self, player_id: str) -> Decimal:
        db = self._db()
        self._ensure(db, player_id)
        row = db.execute("SELECT balance_cents FROM players WHERE id=?",
                         (player_id,)).fetchone()
        return _from_cents(row["balance_cents"])

    def debit(self, player_id: str, amount: Decimal) -> bool:
        db = self._db()
        self._ensure(db, player_id)
        cur = db.execute(
            """UPDATE players SET balance_cents = balance_cents - ?,
                                  updated_at = datetime('now')
               WHERE id=? AND balance_cents >= ?""",
            (_cents(amount), player_id, _cents(amount)),
        )
        return cur.rowcount == 1

    def credit(self, player_id: str, amount: Decimal) -> Decimal:
        db = self._db()
        self._ensure(db, player_id)
        db.execute(
            """UPDATE players SET balance_cents = balance_cents + ?,
                                  updated_at = datetime('now')
               WHERE id=?""",
            (_cents(amount), player_id),
        )
        return self.get_balance(player_id)

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


def build_store(config) -> BalanceStore:
    """Store selected by config: SQLite when BALANCE_DB_PATH is set."""
    if config.BALANCE_DB_PATH:
        return SQLiteBalanceStore(config.BALANCE_DB_PATH, initial_balance=config.INITIAL_BALANCE)
    return MemoryBalanceStore(initial_balance=config.INITIAL_BALANCE)
