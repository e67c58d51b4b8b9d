"""
PUMP CASINO — Ledger

Atomic debit/credit against one player's balance. Guarantees:

  - Debits and credits for the same player never interleave (per-player lock),
    so two rapid bets cannot both pass the funds check on a stale balance.
  - Balance is never negative: the store's debit is check-and-decrement.
  - Each round is debited at most once and credited at most once. A second
    attempt raises DuplicateSettlement instead of moving money.
  - Memory is bounded: the journal keeps the last `journal_size` entries and
    the same number of settled round ids. Open rounds are always remembered.

Losses are captured by the initial debit; there is no negative credit.

Usage:
    from tools.ledger import Ledger
    ledger = Ledger(store)
    ledger.debit("alice", Decimal("10"), round_id="r1")
    ledger.credit("alice", Decimal("20"), round_id="r1")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict, defaultdict, deque
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional

from round_engine.errors import DuplicateSettlement, InsufficientFunds, InvalidParams
from round_engine.money import to_money
from tools.balance_store import BalanceStore, MemoryBalanceStore

logger = logging.getLogger("pumpcasino.ledger")

DEBIT = "debit"
CREDIT = "credit"
DEFAULT_JOURNAL_SIZE = 10_000


@dataclass(frozen=True)
class LedgerEntry:
    player_id: str
    round_id: str
    kind: str               # debit / credit
    amount: Decimal
    balance_after: Decimal
    reason: str = ""
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["amount"] = str(self.amount)
        d["balance_after"] = str(self.balance_after)
        return d


class Ledger:
    """Serialized money movements with a per-round journal."""

    def __init__(self, store: Optional[BalanceStore] = None,
                 journal_size: int = DEFAULT_JOURNAL_SIZE):
        self.store = store or MemoryBalanceStore()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self._journal: deque[LedgerEntry] = deque(maxlen=journal_size)
        # round ids: debited and awaiting payout, and recently paid (oldest first)
        self._index_lock = threading.Lock()
        self._open: set[str] = set()
        self._closed: OrderedDict[str, None] = OrderedDict()
        self._closed_limit = journal_size

    def _player_lock(self, player_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[player_id]

    @staticmethod
    def _check_amount(amount) -> Decimal:
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise InvalidParams(str(e)) from e
        if amount < 0:
            raise InvalidParams(f"Amount must be non-negative, got {amount}")
        return amount

    def balance(self, player_id: str) -> Decimal:
        with self._player_lock(player_id):
            return self.store.get_balance(player_id)

    def debit(self, player_id: str, amount, round_id: str, reason: str = "wager") -> Decimal:
        """Take `amount` from the player. Returns the new balance."""
        amount = self._check_amount(amount)
        with self._player_lock(player_id):
            if self._is_known(round_id):
                raise DuplicateSettlement(f"Round {round_id} already debited")
            if not self.store.debit(player_id, amount):
                balance = self.store.get_balance(player_id)
                logger.info(f"Debit refused for {player_id}: {balance} < {amount}")
                raise InsufficientFunds(player_id, balance, amount)
            balance = self.store.get_balance(player_id)
            self._record(player_id, round_id, DEBIT, amount, balance, reason)
            return balance

    def credit(self, player_id: str, amount, round_id: str, reason: str = "payout") -> Decimal:
        """Pay `amount` to the player. Returns the new balance."""
        amount = self._check_amount(amount)
        with self._player_lock(player_id):
            if self.is_settled(round_id):
                raise DuplicateSettlement(f"Round {round_id} already credited")
            balance = self.store.credit(player_id, amount)
            self._record(player_id, round_id, CREDIT, amount, balance, reason)
            return balance

    def _is_known(self, round_id: str) -> bool:
        with self._index_lock:
            return round_id in self._open or round_id in self._closed

    def _record(self, player_id, round_id, kind, amount, balance, reason):
        with self._index_lock:
            if kind == DEBIT:
                self._open.add(round_id)
            else:
                self._open.discard(round_id)
                self._closed[round_id] = None
                while len(self._closed) > self._closed_limit:
                    self._closed.popitem(last=False)
        entry = LedgerEntry(
            player_id=player_id, round_id=round_id, kind=kind, amount=amount,
            balance_after=balance, reason=reason, timestamp=time.time(),
        )
        self._journal.append(entry)
        logger.debug(f"{kind} {amount} {player_id} round={round_id} -> {balance}")

    def entries(self, player_id: Optional[str] = None,
                round_id: Optional[str] = None) -> list[LedgerEntry]:
        return [
            e for e in list(self._journal)
            if (player_id is None or e.player_id == player_id)
            and (round_id is None or e.round_id == round_id)
        ]

    def is_settled(self, round_id: str) -> bool:
        with self._index_lock:
            return round_id in self._closed

    def open_rounds(self) -> int:
        """Rounds debited but not yet paid out."""
        with self._index_lock:
            return len(self._open)
