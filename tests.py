#!/usr/bin/env python3
"""
PUMP CASINO — Core Unit Test Suite

Run: python tests.py
     python tests.py -v          # verbose
     python tests.py TestLedger  # run specific class

Test categories:
  TestMoney           — cent rounding, multiplier rounding
  TestRNGProvider     — backends, Fisher-Yates, entropy failure
  TestBalanceStores   — memory + SQLite stores, non-negative balances
  TestLedger          — atomic debit/credit, per-round exactly-once
  TestPhaseMachine    — transition table, terminal rejection, timeouts
  TestScheduler       — deadline ordering, replacement, manual clock
  TestSchema          — bet parameter validation
  TestConfig          — env-driven settings and overrides

Shared fixtures (ScriptedRNG, FailingRNG, FlakyStore, stacked_deck) live here
and are imported by the other tests_*.py modules.
"""

import os
import sys
import tempfile
import threading
import unittest
from decimal import Decimal
from enum import Enum
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import GameType, MinesParams, parse_params
from config.settings import EngineConfig
from round_engine.errors import (
    DuplicateSettlement, EntropyUnavailable, InsufficientFunds, InvalidParams,
    InvalidTransition,
)
from round_engine.machine import PhaseMachine
from round_engine.money import apply_multiplier, to_money
from round_engine.scheduler import ManualClock, Scheduler
from tools.balance_store import MemoryBalanceStore, SQLiteBalanceStore, build_store
from tools.ledger import Ledger
from tools.rng_provider import RNGProvider, SecureRNG, SeededRNG, get_rng


# ============================================================
# Fixtures
# ============================================================

class ScriptedRNG(RNGProvider):
    """Replays queued draws, then falls back to a seeded generator.

    `shuffles` holds ready-made permutations returned by shuffle() (and so by
    sample()) in order, which is how tests stack decks and mine boards.
    """

    name = "scripted"

    def __init__(self, uniforms=(), ints=(), shuffles=(), seed=7):
        self.uniforms = list(uniforms)
        self.ints = list(ints)
        self.shuffles = [list(s) for s in shuffles]
        self._fallback = SeededRNG(seed)

    def uniform(self) -> float:
        if self.uniforms:
            return self.uniforms.pop(0)
        return self._fallback.uniform()

    def int_range(self, lo: int, hi: int) -> int:
        if self.ints:
            value = self.ints.pop(0)
            assert lo <= value <= hi, f"scripted {value} outside [{lo}, {hi}]"
            return value
        return self._fallback.int_range(lo, hi)

    def shuffle(self, seq):
        if self.shuffles:
            return self.shuffles.pop(0)
        return super().shuffle(seq)

    def check(self) -> None:
        pass


class FailingRNG(RNGProvider):
    """Entropy source that is always down."""

    def uniform(self) -> float:
        raise EntropyUnavailable("entropy source offline")

    def int_range(self, lo: int, hi: int) -> int:
        raise EntropyUnavailable("entropy source offline")


class FlakyStore(MemoryBalanceStore):
    """In-memory balances that refuse the next `failures` credits (and every
    debit while `fail_debits` is set), like a locked database."""

    def __init__(self, failures=0, fail_debits=False, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.fail_debits = fail_debits

    def debit(self, player_id, amount):
        if self.fail_debits:
            raise OSError("database is locked")
        return super().debit(player_id, amount)

    def credit(self, player_id, amount):
        if self.failures:
            self.failures -= 1
            raise OSError("database is locked")
        return super().credit(player_id, amount)


def stacked_deck(*ranks):
    """A full deck whose first draws (pop from the end) are `ranks` in order."""
    from round_engine.games.blackjack import SUITS, Card, new_deck
    top, used = [], {}
    for r in ranks:
        top.append(Card(SUITS[used.get(r, 0)], r))
        used[r] = used.get(r, 0) + 1
    rest = [c for c in new_deck() if c not in top]
    return rest + list(reversed(top))


def fast_config(**overrides):
    values = dict(
        INITIAL_BALANCE=Decimal("1000"),
        BALANCE_DB_PATH="",
        CRASH_BETTING_SECONDS=5.0,
        CRASH_COOLDOWN_SECONDS=3.0,
        DEALER_TICK_SECONDS=0.8,
        PLAYER_TURN_TIMEOUT_SECONDS=60.0,
        MINES_IDLE_TIMEOUT_SECONDS=300.0,
        SETTLEMENT_RETRY_SECONDS=1.0,
    )
    values.update(overrides)
    return EngineConfig.override(**values)


# ============================================================
# Money
# ============================================================

class TestMoney(unittest.TestCase):

    def test_to_money_quantizes_down(self):
        self.assertEqual(to_money("10.999"), Decimal("10.99"))
        self.assertEqual(to_money(5), Decimal("5.00"))

    def test_float_goes_through_str(self):
        self.assertEqual(to_money(0.1), Decimal("0.10"))
        self.assertEqual(to_money(19.6), Decimal("19.60"))

    def test_rejects_garbage(self):
        for bad in ("abc", None, "NaN", [1]):
            with self.assertRaises(ValueError):
                to_money(bad)

    def test_rejects_amounts_beyond_precision(self):
        for huge in ("1e30", "1e26", 10 ** 40, Decimal("9" * 30)):
            with self.assertRaises(ValueError, msg=repr(huge)):
                to_money(huge)
        self.assertEqual(to_money("1e20"), Decimal("100000000000000000000.00"))

    def test_apply_multiplier_never_overpays(self):
        self.assertEqual(apply_multiplier(Decimal("10.00"), 1.999), Decimal("19.99"))
        self.assertEqual(apply_multiplier(Decimal("10.00"), Decimal("1.96")), Decimal("19.60"))
        self.assertEqual(apply_multiplier(Decimal("0.01"), 0.5), Decimal("0.00"))


# ============================================================
# RNG
# ============================================================

class TestRNGProvider(unittest.TestCase):

    def test_secure_uniform_range(self):
        rng = SecureRNG()
        for _ in range(1000):
            u = rng.uniform()
            self.assertGreaterEqual(u, 0.0)
            self.assertLess(u, 1.0)

    def test_int_range_inclusive(self):
        rng = SeededRNG(1)
        seen = {rng.int_range(0, 3) for _ in range(500)}
        self.assertEqual(seen, {0, 1, 2, 3})

    def test_int_range_empty(self):
        with self.assertRaises(ValueError):
            SeededRNG().int_range(5, 4)

    def test_shuffle_is_permutation(self):
        items = list(range(52))
        out = SecureRNG().shuffle(items)
        self.assertEqual(sorted(out), items)
        self.assertEqual(items, list(range(52)))  # input untouched

    def test_shuffle_is_uniform_over_small_set(self):
        rng = SeededRNG(3)
        counts = {}
        for _ in range(6000):
            key = tuple(rng.shuffle("abc"))
            counts[key] = counts.get(key, 0) + 1
        self.assertEqual(len(counts), 6)
        for n in counts.values():
            self.assertTrue(800 < n < 1200, counts)

    def test_seeded_is_deterministic(self):
        a, b = SeededRNG(99), SeededRNG(99)
        self.assertEqual([a.uniform() for _ in range(5)], [b.uniform() for _ in range(5)])

    def test_sample_distinct(self):
        picks = SeededRNG(5).sample(range(25), 10)
        self.assertEqual(len(set(picks)), 10)
        with self.assertRaises(ValueError):
            SeededRNG().sample(range(3), 4)

    def test_entropy_failure_is_fatal(self):
        rng = SecureRNG()

        class Broken:
            def random(self):
                raise OSError("getrandom failed")

            def randbelow(self, n):
                raise OSError("getrandom failed")

        rng._sys = Broken()
        with self.assertRaises(EntropyUnavailable):
            rng.uniform()
        with self.assertRaises(EntropyUnavailable):
            rng.int_range(0, 10)
        with self.assertRaises(EntropyUnavailable):
            rng.check()

    def test_get_rng(self):
        self.assertIsInstance(get_rng("secure"), SecureRNG)
        self.assertEqual(get_rng("seeded", 11).seed, 11)
        with self.assertRaises(ValueError):
            get_rng("lava-lamp")


# ============================================================
# Balance stores
# ============================================================

class TestBalanceStores(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.stores = [
            MemoryBalanceStore(initial_balance=Decimal("100")),
            SQLiteBalanceStore(os.path.join(self.tmp.name, "bal.db"),
                               initial_balance=Decimal("100")),
        ]

    def tearDown(self):
        for s in self.stores:
            s.close()
        self.tmp.cleanup()

    def test_new_player_gets_initial_balance(self):
        for store in self.stores:
            self.assertEqual(store.get_balance("alice"), Decimal("100.00"))

    def test_debit_and_credit(self):
        for store in self.stores:
            self.assertTrue(store.debit("bob", Decimal("30.50")))
            self.assertEqual(store.get_balance("bob"), Decimal("69.50"))
            self.assertEqual(store.credit("bob", Decimal("0.50")), Decimal("70.00"))

    def test_debit_never_goes_negative(self):
        for store in self.stores:
            self.assertFalse(store.debit("carol", Decimal("100.01")))
            self.assertEqual(store.get_balance("carol"), Decimal("100.00"))
            self.assertTrue(store.debit("carol", Decimal("100.00")))
            self.assertEqual(store.get_balance("carol"), Decimal("0.00"))

    def test_sqlite_persists_across_instances(self):
        path = os.path.join(self.tmp.name, "persist.db")
        first = SQLiteBalanceStore(path, initial_balance=Decimal("50"))
        first.debit("dave", Decimal("20"))
        first.close()
        second = SQLiteBalanceStore(path, initial_balance=Decimal("50"))
        self.assertEqual(second.get_balance("dave"), Decimal("30.00"))
        second.close()

    def test_build_store_from_config(self):
        self.assertIsInstance(build_store(fast_config()), MemoryBalanceStore)
        path = os.path.join(self.tmp.name, "cfg.db")
        store = build_store(fast_config(BALANCE_DB_PATH=path))
        self.assertIsInstance(store, SQLiteBalanceStore)
        store.close()


# ============================================================
# Ledger
# ============================================================

class TestLedger(unittest.TestCase):

    def setUp(self):
        self.ledger = Ledger(MemoryBalanceStore(initial_balance=Decimal("100")))

    def test_debit_returns_new_balance(self):
        self.assertEqual(self.ledger.debit("p", "25", round_id="r1"), Decimal("75.00"))

    def test_insufficient_funds_leaves_balance(self):
        with self.assertRaises(InsufficientFunds) as ctx:
            self.ledger.debit("p", "100.01", round_id="r1")
        self.assertEqual(ctx.exception.balance, Decimal("100.00"))
        self.assertEqual(self.ledger.balance("p"), Decimal("100.00"))
        self.assertEqual(self.ledger.entries("p"), [])

    def test_round_debited_once(self):
        self.ledger.debit("p", "10", round_id="r1")
        with self.assertRaises(DuplicateSettlement):
            self.ledger.debit("p", "10", round_id="r1")
        self.assertEqual(self.ledger.balance("p"), Decimal("90.00"))

    def test_round_credited_once(self):
        self.ledger.debit("p", "10", round_id="r1")
        self.ledger.credit("p", "20", round_id="r1")
        with self.assertRaises(DuplicateSettlement):
            self.ledger.credit("p", "20", round_id="r1")
        self.assertEqual(self.ledger.balance("p"), Decimal("110.00"))
        self.assertTrue(self.ledger.is_settled("r1"))

    def test_zero_credit_is_journaled(self):
        self.ledger.debit("p", "10", round_id="r1")
        self.ledger.credit("p", "0", round_id="r1")
        kinds = [e.kind for e in self.ledger.entries(round_id="r1")]
        self.assertEqual(kinds, ["debit", "credit"])

    def test_negative_amount_rejected(self):
        with self.assertRaises(InvalidParams):
            self.ledger.credit("p", "-1", round_id="r1")
        with self.assertRaises(InvalidParams):
            self.ledger.debit("p", "junk", round_id="r1")

    def test_concurrent_debits_cannot_overdraw(self):
        """Twenty threads race to spend 10 each from 100: exactly ten win."""
        results = []
        lock = threading.Lock()

        def bet(i):
            try:
                self.ledger.debit("p", "10", round_id=f"r{i}")
                ok = True
            except InsufficientFunds:
                ok = False
            with lock:
                results.append(ok)

        threads = [threading.Thread(target=bet, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(results.count(True), 10)
        self.assertEqual(self.ledger.balance("p"), Decimal("0.00"))

    def test_store_failure_records_nothing(self):
        ledger = Ledger(FlakyStore(failures=1, initial_balance=Decimal("100")))
        ledger.debit("p", "10", round_id="r1")
        with self.assertRaises(OSError):
            ledger.credit("p", "20", round_id="r1")
        self.assertFalse(ledger.is_settled("r1"))
        self.assertEqual(ledger.open_rounds(), 1)
        # nothing was recorded, so the retry goes through
        self.assertEqual(ledger.credit("p", "20", round_id="r1"), Decimal("110.00"))
        self.assertEqual(ledger.open_rounds(), 0)

    def test_journal_and_round_index_are_bounded(self):
        ledger = Ledger(MemoryBalanceStore(initial_balance=Decimal("100")), journal_size=4)
        for i in range(10):
            ledger.debit("p", "1", round_id=f"r{i}")
            ledger.credit("p", "1", round_id=f"r{i}")
        self.assertEqual(len(ledger.entries()), 4)
        self.assertEqual([e.round_id for e in ledger.entries()], ["r8", "r8", "r9", "r9"])
        self.assertTrue(ledger.is_settled("r9"))
        self.assertFalse(ledger.is_settled("r0"))
        self.assertEqual(ledger.open_rounds(), 0)

    def test_paid_round_cannot_be_debited_again(self):
        self.ledger.debit("p", "10", round_id="r1")
        self.ledger.credit("p", "0", round_id="r1")
        with self.assertRaises(DuplicateSettlement):
            self.ledger.debit("p", "10", round_id="r1")

    def test_entry_to_dict(self):
        self.ledger.debit("p", "1.50", round_id="r9")
        d = self.ledger.entries("p")[0].to_dict()
        self.assertEqual(d["amount"], "1.50")
        self.assertEqual(d["balance_after"], "98.50")
        self.assertEqual(d["reason"], "wager")


# ============================================================
# Phase machine
# ============================================================

class _Light(str, Enum):
    RED = "red"
    GREEN = "green"
    OFF = "off"


class TrafficLight(PhaseMachine):
    Phase = _Light
    initial_phase = _Light.RED
    terminal_phases = frozenset({_Light.OFF})
    transitions = {
        _Light.RED: {"go": "_go", "shutdown": "_off"},
        _Light.GREEN: {"stop": "_stop"},
    }
    timeouts = {_Light.GREEN: ("DEALER_TICK_SECONDS", "stop")}

    def _go(self, now):
        self._enter(_Light.GREEN, now)

    def _stop(self, now):
        self._enter(_Light.RED, now)

    def _off(self, now):
        self._enter(_Light.OFF, now)


class TestPhaseMachine(unittest.TestCase):

    def setUp(self):
        self.m = TrafficLight(config=fast_config(DEALER_TICK_SECONDS=2.0), now=0.0)

    def test_transition_table(self):
        self.assertEqual(self.m.allowed_events(), ["go", "shutdown"])
        self.m.transition("go", 1.0)
        self.assertEqual(self.m.phase, _Light.GREEN)
        self.assertEqual(self.m.history[-1], ("green", 1.0))

    def test_unknown_event_rejected(self):
        with self.assertRaises(InvalidTransition):
            self.m.transition("stop", 1.0)
        self.assertEqual(self.m.phase, _Light.RED)

    def test_terminal_rejects_everything(self):
        self.m.transition("shutdown", 1.0)
        self.assertTrue(self.m.is_terminal)
        self.assertEqual(self.m.allowed_events(), [])
        with self.assertRaises(InvalidTransition):
            self.m.transition("go", 2.0)
        self.assertIsNone(self.m.deadline())

    def test_timeout_measured_from_last_activity(self):
        self.assertIsNone(self.m.deadline())
        self.m.transition("go", 10.0)
        self.assertEqual(self.m.deadline(), (12.0, "stop"))
        self.assertFalse(self.m.fire_due(11.9))
        self.assertTrue(self.m.fire_due(12.0))
        self.assertEqual(self.m.phase, _Light.RED)


# ============================================================
# Scheduler
# ============================================================

class TestScheduler(unittest.TestCase):

    def test_fires_in_deadline_order(self):
        s = Scheduler()
        fired = []
        s.schedule("b", 2.0, lambda at: fired.append(("b", at)))
        s.schedule("a", 1.0, lambda at: fired.append(("a", at)))
        s.schedule("c", 9.0, lambda at: fired.append(("c", at)))
        self.assertEqual(s.run_pending(5.0), 2)
        self.assertEqual(fired, [("a", 1.0), ("b", 2.0)])
        self.assertEqual(s.next_due(), 9.0)

    def test_reschedule_replaces(self):
        s = Scheduler()
        fired = []
        s.schedule("k", 1.0, lambda at: fired.append(at))
        s.schedule("k", 3.0, lambda at: fired.append(at))
        s.run_pending(2.0)
        self.assertEqual(fired, [])
        s.run_pending(3.0)
        self.assertEqual(fired, [3.0])
        self.assertEqual(s.pending(), 0)

    def test_cancel(self):
        s = Scheduler()
        fired = []
        s.schedule("k", 1.0, lambda at: fired.append(at))
        s.cancel("k")
        self.assertEqual(s.run_pending(10.0), 0)
        self.assertIsNone(s.next_due())

    def test_self_rescheduling_chain_catches_up(self):
        s = Scheduler()
        ticks = []

        def tick(at):
            ticks.append(at)
            if len(ticks) < 4:
                s.schedule("dealer", at + 0.5, tick)

        s.schedule("dealer", 1.0, tick)
        s.run_pending(10.0)
        self.assertEqual(ticks, [1.0, 1.5, 2.0, 2.5])

    def test_failing_callback_does_not_stop_others(self):
        s = Scheduler()
        fired = []

        def boom(at):
            raise RuntimeError("kaboom")

        s.schedule("bad", 1.0, boom)
        s.schedule("good", 2.0, lambda at: fired.append(at))
        self.assertEqual(s.run_pending(5.0), 2)
        self.assertEqual(fired, [2.0])

    def test_manual_clock(self):
        clock = ManualClock(100.0)
        self.assertEqual(clock.advance(2.5), 102.5)
        clock.set(7)
        self.assertEqual(clock.now(), 7.0)


# ============================================================
# Schema
# ============================================================

class TestSchema(unittest.TestCase):

    def test_game_type_parse(self):
        self.assertEqual(GameType.parse("DICE"), GameType.DICE)
        with self.assertRaises(InvalidParams):
            GameType.parse("baccarat")

    def test_dice_bounds_exclusive(self):
        self.assertEqual(parse_params("dice", {"prediction": 2.01}).prediction, 2.01)
        for bad in (2, 98, -5, "lots"):
            with self.assertRaises(InvalidParams):
                parse_params("dice", {"prediction": bad})

    def test_roulette_color(self):
        self.assertEqual(parse_params("roulette", {"color": "RED"}).color, "red")
        with self.assertRaises(InvalidParams):
            parse_params("roulette", {"color": "blue"})
        with self.assertRaises(InvalidParams):
            parse_params("roulette", {})

    def test_mines_count_options(self):
        self.assertEqual(parse_params("mines", {}).mine_count, 3)
        for n in (1, 3, 5, 10, 20):
            self.assertEqual(MinesParams(mine_count=n).mine_count, n)
        for bad in (0, 2, 24, 25):
            with self.assertRaises(InvalidParams):
                parse_params("mines", {"mine_count": bad})

    def test_crash_auto_cashout(self):
        self.assertIsNone(parse_params("crash", {}).auto_cashout)
        with self.assertRaises(InvalidParams):
            parse_params("crash", {"auto_cashout": 1.0})

    def test_unknown_fields_rejected(self):
        with self.assertRaises(InvalidParams):
            parse_params("blackjack", {"double_down": True})


# ============================================================
# Config
# ============================================================

class TestConfig(unittest.TestCase):

    def test_defaults(self):
        self.assertEqual(EngineConfig.CRASH_HISTORY_SIZE, int(os.getenv("CRASH_HISTORY_SIZE", "10")))
        self.assertEqual(EngineConfig.timeout_for("DEALER_TICK_SECONDS"),
                         float(EngineConfig.DEALER_TICK_SECONDS))
        self.assertEqual(EngineConfig.ROUND_HISTORY_SIZE, int(os.getenv("ROUND_HISTORY_SIZE", "1000")))
        self.assertEqual(EngineConfig.LEDGER_JOURNAL_SIZE, int(os.getenv("LEDGER_JOURNAL_SIZE", "10000")))

    def test_override_is_isolated(self):
        cfg = EngineConfig.override(DEALER_TICK_SECONDS=0.1)
        self.assertEqual(cfg.DEALER_TICK_SECONDS, 0.1)
        self.assertNotEqual(EngineConfig.DEALER_TICK_SECONDS, 0.1)
        with self.assertRaises(AttributeError):
            EngineConfig.override(NOT_A_SETTING=1)


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
