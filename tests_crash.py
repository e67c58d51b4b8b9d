#!/usr/bin/env python3
"""
PUMP CASINO — Crash Tests

  TestCrashMath     — crash point draw, curve and its inverse
  TestCrashTable    — launch, cash-out vs crash ordering, auto cash-out
  TestCrashEngine   — shared table through the engine, next-round joining,
                      concurrent cash-outs racing the crash

Run: python tests_crash.py
"""

import sys
import threading
import unittest
from decimal import Decimal
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import parse_params
from round_engine.engine import RoundEngine
from round_engine.errors import InvalidTransition, RoundInProgress
from round_engine.games.crash import (
    BetPhase, CrashRound, CrashTable, TablePhase, crash_point_from, floor_2dp,
    multiplier_at, time_to_reach,
)
from round_engine.machine import LOSE, PUSH, WIN
from round_engine.money import to_money
from round_engine.scheduler import ManualClock
from tests import FlakyStore, ScriptedRNG, fast_config
from tools.balance_store import MemoryBalanceStore
from tools.event_sink import MemoryEventSink
from tools.ledger import Ledger
from tools.rng_provider import SeededRNG


# ============================================================
# Math
# ============================================================

class TestCrashMath(unittest.TestCase):

    def test_zero_draw_busts_instantly(self):
        self.assertEqual(crash_point_from(0.0), 1.0)
        self.assertEqual(crash_point_from(0.005), 1.0)

    def test_crash_point_formula(self):
        self.assertAlmostEqual(crash_point_from(0.5), 1.98)
        self.assertAlmostEqual(crash_point_from(0.9), 9.9)

    def test_distribution_tail(self):
        """P(crash >= 2) is 0.99 / 2."""
        rng = SeededRNG(77)
        n = 40_000
        hits = sum(1 for _ in range(n) if crash_point_from(rng.uniform()) >= 2.0)
        self.assertAlmostEqual(hits / n, 0.495, delta=0.015)

    def test_curve(self):
        self.assertEqual(multiplier_at(0), 1.0)
        self.assertAlmostEqual(multiplier_at(1.0), 1.2)
        self.assertAlmostEqual(multiplier_at(4.0), 2.6)

    def test_time_to_reach_inverts_curve(self):
        for m in (1.01, 1.5, 2.0, 10.0, 100.0):
            self.assertAlmostEqual(multiplier_at(time_to_reach(m)), m, places=9)
        self.assertEqual(time_to_reach(1.0), 0.0)

    def test_floor_2dp_keeps_exact_cents(self):
        for value in (1.15, 2.01, 4.35, 1.0, 9.9):
            self.assertEqual(floor_2dp(value), value)
        self.assertEqual(floor_2dp(1.159), 1.15)
        self.assertEqual(floor_2dp(1.9999999), 1.99)
        self.assertEqual(floor_2dp(float("inf")), float("inf"))


# ============================================================
# Table
# ============================================================

def make_bet(round_id="b1", params=None, wager="10", config=None):
    return CrashRound(round_id, f"player-{round_id}", to_money(wager),
                      parse_params("crash", params or {}), ScriptedRNG(),
                      config or fast_config(), 0.0)


class TestCrashTable(unittest.TestCase):

    def launched(self, u=0.5, bets=1, params=None):
        table = CrashTable("t1", ScriptedRNG(uniforms=[u]), fast_config(), now=0.0)
        for i in range(bets):
            table.join(make_bet(f"b{i}", params))
        table.open_countdown(0.0)
        self.assertEqual(table.deadline(), (5.0, "launch"))
        self.assertTrue(table.fire_due(5.0))
        return table

    def test_crash_point_drawn_before_bets(self):
        table = CrashTable("t1", ScriptedRNG(uniforms=[0.5]), fast_config(), now=0.0)
        self.assertAlmostEqual(table.crash_point, 1.98)
        self.assertIsNone(table.revealed_crash_point())
        self.assertIsNone(table.public_state(0.0)["crash_point"])

    def test_no_countdown_without_opening(self):
        table = CrashTable("t1", ScriptedRNG(uniforms=[0.5]), fast_config(), now=0.0)
        self.assertIsNone(table.deadline())

    def test_launch_moves_bets_to_running(self):
        table = self.launched()
        self.assertEqual(table.phase, TablePhase.RUNNING)
        bet = table.bets["b0"]
        self.assertEqual(bet.phase, BetPhase.RUNNING)
        self.assertEqual(bet.state().allowed_actions, ["cash_out"])
        self.assertIsNone(bet.public_state()["crash_point"])

    def test_cash_out_before_crash_wins(self):
        table = self.launched()
        bet = table.cash_out(table.bets["b0"], 6.0)      # 1s in: 1.20x
        self.assertEqual(bet.phase, BetPhase.CASHED_OUT)
        self.assertEqual(bet.result, WIN)
        self.assertEqual(bet.cashed_multiplier, 1.2)
        self.assertEqual(bet.settle(), Decimal("12.00"))
        self.assertEqual(table.phase, TablePhase.RUNNING)

    def test_cash_out_at_launch_is_a_push(self):
        table = self.launched()
        bet = table.cash_out(table.bets["b0"], 5.0)
        self.assertEqual(bet.cashed_multiplier, 1.0)
        self.assertEqual(bet.result, PUSH)
        self.assertEqual(bet.settle(), Decimal("10.00"))

    def test_cash_out_at_or_after_crash_loses(self):
        table = self.launched()
        crash_at = table.crash_at
        bet = table.cash_out(table.bets["b0"], crash_at)
        self.assertEqual(bet.phase, BetPhase.CRASHED)
        self.assertEqual(bet.result, LOSE)
        self.assertEqual(bet.settle(), Decimal("0.00"))
        self.assertEqual(table.phase, TablePhase.CRASHED)
        self.assertEqual(table.revealed_crash_point(), 1.98)

    def test_cash_out_in_betting_rejected(self):
        table = CrashTable("t1", ScriptedRNG(uniforms=[0.5]), fast_config(), now=0.0)
        bet = make_bet()
        table.join(bet)
        with self.assertRaises(InvalidTransition):
            table.cash_out(bet, 1.0)

    def test_second_cash_out_rejected(self):
        table = self.launched()
        bet = table.cash_out(table.bets["b0"], 6.0)
        with self.assertRaises(InvalidTransition):
            table.cash_out(bet, 6.5)

    def test_join_after_launch_rejected(self):
        table = self.launched()
        with self.assertRaises(InvalidTransition):
            table.join(make_bet("late"))

    def test_instant_bust(self):
        table = self.launched(u=0.0, bets=3)
        self.assertEqual(table.phase, TablePhase.CRASHED)
        self.assertTrue(all(b.result == LOSE for b in table.bets.values()))

    def test_crash_tick_settles_everyone(self):
        table = self.launched(bets=3)
        due, event = table.deadline()
        self.assertEqual(event, "advance")
        self.assertAlmostEqual(due, 5.0 + time_to_reach(1.98))
        table.fire_due(due)
        self.assertEqual(table.phase, TablePhase.CRASHED)
        self.assertTrue(all(b.phase == BetPhase.CRASHED for b in table.bets.values()))

    def test_auto_cashout_fires_before_crash(self):
        table = self.launched(params={"auto_cashout": 1.5})
        due, _ = table.deadline()
        self.assertAlmostEqual(due, 5.0 + time_to_reach(1.5))
        table.fire_due(due)
        bet = table.bets["b0"]
        self.assertEqual(bet.phase, BetPhase.CASHED_OUT)
        self.assertTrue(bet.auto)
        self.assertEqual(bet.settle(), Decimal("15.00"))
        self.assertEqual(table.phase, TablePhase.RUNNING)

    def test_auto_cashout_above_crash_point_loses(self):
        table = self.launched(params={"auto_cashout": 2.5})
        table.fire_due(table.deadline()[0])
        self.assertEqual(table.phase, TablePhase.CRASHED)
        self.assertEqual(table.bets["b0"].result, LOSE)

    def test_late_manual_cash_out_honours_earlier_auto(self):
        table = self.launched(params={"auto_cashout": 1.5})
        bet = table.cash_out(table.bets["b0"], 7.5)       # past the 1.5x mark
        self.assertEqual(bet.phase, BetPhase.CASHED_OUT)
        self.assertEqual(bet.cashed_multiplier, 1.5)


# ============================================================
# Engine
# ============================================================

class TestCrashEngine(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(0.0)
        self.sink = MemoryEventSink()
        self.engine = RoundEngine(
            ledger=Ledger(MemoryBalanceStore(initial_balance=Decimal("1000"))),
            rng=ScriptedRNG(uniforms=[0.5, 0.9]),
            config=fast_config(),
            clock=self.clock,
            sink=self.sink,
        )

    def at(self, t):
        self.clock.set(t)
        self.engine.tick()

    def test_cash_out_round_trip(self):
        rid = self.engine.place_bet("alice", "crash", {}, "10")
        self.assertEqual(self.engine.get_balance("alice"), Decimal("990.00"))
        view = self.engine.crash_state()["current"]
        self.assertEqual(view["phase"], "betting")
        self.assertEqual(view["countdown"], 5.0)

        self.at(5.0)
        self.assertEqual(self.engine.crash_state()["current"]["phase"], "running")
        self.clock.set(6.0)
        state = self.engine.act(rid, "cash_out")
        self.assertEqual(state.result, WIN)
        self.assertEqual(state.payout, Decimal("12.00"))
        self.assertEqual(self.engine.get_balance("alice"), Decimal("1002.00"))
        self.assertEqual(len(self.sink.for_round(rid)), 1)

    def test_late_cash_out_is_a_loss(self):
        rid = self.engine.place_bet("alice", "crash", {}, "10")
        self.at(5.0)
        self.clock.set(9.0)                       # crash was at ~7.88, no tick ran
        state = self.engine.act(rid, "cash_out")
        self.assertEqual(state.result, LOSE)
        self.assertEqual(state.payout, Decimal("0.00"))
        self.assertEqual(self.engine.get_balance("alice"), Decimal("990.00"))
        crash = self.engine.crash_state()
        self.assertEqual(crash["history"], [1.98])
        again = self.engine.act(rid, "cash_out")
        self.assertEqual(again.result, LOSE)
        self.assertEqual(len(self.sink.for_round(rid)), 1)

    def test_one_crash_bet_per_player(self):
        self.engine.place_bet("alice", "crash", {}, "10")
        with self.assertRaises(RoundInProgress):
            self.engine.place_bet("alice", "crash", {}, "10")
        self.assertEqual(self.engine.get_balance("alice"), Decimal("990.00"))

    def test_bet_while_running_joins_next_round(self):
        first = self.engine.place_bet("alice", "crash", {}, "10")
        self.at(5.0)
        second = self.engine.place_bet("bob", "crash", {}, "10")
        a = self.engine.get_round_state(first).state
        b = self.engine.get_round_state(second).state
        self.assertNotEqual(a["table_id"], b["table_id"])
        self.assertEqual(b["table_phase"], "betting")
        self.assertIsNotNone(self.engine.crash_state()["next"])

        crash_at = 5.0 + time_to_reach(1.98)
        self.at(crash_at)
        self.assertEqual(self.engine.get_round_state(first).result, LOSE)
        # cool-down, then a full countdown
        self.at(crash_at + 3.0 + 5.0 - 0.01)
        self.assertEqual(self.engine.get_round_state(second).state["table_phase"], "betting")
        self.at(crash_at + 3.0 + 5.0 + 0.01)
        self.assertEqual(self.engine.get_round_state(second).state["table_phase"], "running")

    def test_auto_cashout_through_scheduler(self):
        rid = self.engine.place_bet("alice", "crash", {"auto_cashout": 1.5}, "10")
        self.at(20.0)
        state = self.engine.get_round_state(rid)
        self.assertEqual(state.result, WIN)
        self.assertEqual(state.payout, Decimal("15.00"))
        self.assertEqual(self.engine.get_balance("alice"), Decimal("1005.00"))

    def test_concurrent_cash_outs_race_the_crash(self):
        players = [f"p{i}" for i in range(20)]
        rids = {p: self.engine.place_bet(p, "crash", {}, "10") for p in players}
        self.at(5.0)
        crash_at = 5.0 + time_to_reach(1.98)
        self.clock.set(crash_at - 0.05)

        barrier = threading.Barrier(len(players) + 1)
        errors = []

        def cash_out(rid):
            barrier.wait()
            try:
                self.engine.act(rid, "cash_out")
            except InvalidTransition as e:
                errors.append(e)

        def crash():
            barrier.wait()
            self.clock.set(crash_at + 0.05)
            self.engine.tick()

        threads = [threading.Thread(target=cash_out, args=(r,)) for r in rids.values()]
        threads.append(threading.Thread(target=crash))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual(errors, [])
        for player, rid in rids.items():
            state = self.engine.get_round_state(rid)
            self.assertTrue(state.is_terminal)
            balance = self.engine.get_balance(player)
            if state.result == WIN:
                self.assertEqual(state.phase, "cashed_out")
                self.assertLess(state.state["cashed_out_at"], 1.98)
                self.assertEqual(state.payout, Decimal("10") * Decimal(str(state.state["cashed_out_at"])))
            else:
                self.assertEqual(state.phase, "crashed")
                self.assertEqual(state.payout, Decimal("0.00"))
            self.assertEqual(balance, Decimal("990.00") + state.payout)
            self.assertEqual(len(self.sink.for_round(rid)), 1)

    def test_refused_payouts_do_not_stall_the_table(self):
        store = FlakyStore(initial_balance=Decimal("1000"))
        self.engine = RoundEngine(
            ledger=Ledger(store), rng=ScriptedRNG(uniforms=[0.5, 0.9]),
            config=fast_config(), clock=self.clock, sink=self.sink,
        )
        alice = self.engine.place_bet("alice", "crash", {}, "10")
        bob = self.engine.place_bet("bob", "crash", {}, "10")
        self.at(5.0)

        store.failures = 2
        with self.assertLogs("pumpcasino.engine", level="ERROR"):
            self.at(8.0)                          # crash at ~7.88, both credits refused
        crash = self.engine.crash_state()
        self.assertEqual(crash["history"], [1.98])
        self.assertIsNone(crash["current"])
        for rid in (alice, bob):
            self.assertEqual(self.engine.get_round_state(rid).result, LOSE)
            self.assertFalse(self.engine.ledger.is_settled(rid))
        with self.assertRaises(RoundInProgress):
            self.engine.place_bet("alice", "crash", {}, "10")

        self.at(9.0)
        for rid in (alice, bob):
            self.assertTrue(self.engine.ledger.is_settled(rid))
            self.assertEqual(len(self.sink.for_round(rid)), 1)
            self.assertEqual(self.engine.get_round_state(rid).state["crash_point"], 1.98)
        self.assertEqual(self.engine.get_balance("alice"), Decimal("990.00"))
        # slot free again; the next table waits out its cool-down
        nxt = self.engine.place_bet("alice", "crash", {}, "10")
        self.assertEqual(self.engine.get_round_state(nxt).state["table_phase"], "betting")


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
