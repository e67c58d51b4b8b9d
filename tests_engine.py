#!/usr/bin/env python3
"""
PUMP CASINO — Round Engine Tests

The engine end to end with an in-memory ledger, manual clock and scripted
draws:

  TestRoundTrips        — every game settles, balances add up, one outcome per round
  TestBetValidation     — nothing is debited for a rejected bet
  TestEngineTimers      — dealer play, forced stand and idle mines cash-out via tick()
  TestQueries           — round state, active rounds, history, NotFound, retention
  TestCollaborators     — failing sinks and stores, default sinks, SQLite balances

Run: python tests_engine.py
"""

import logging
import os
import sys
import tempfile
import threading
import unittest
from decimal import Decimal
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine.engine import RoundEngine
from round_engine.errors import (
    EntropyUnavailable, InsufficientFunds, InvalidParams, InvalidTransition, NotFound,
    RoundInProgress,
)
from round_engine.games import GAME_TYPES
from round_engine.machine import LOSE, PUSH, WIN
from round_engine.scheduler import ManualClock
from tests import FailingRNG, FlakyStore, ScriptedRNG, fast_config, stacked_deck
from tools.balance_store import SQLiteBalanceStore
from tools.event_sink import EventSink, MemoryEventSink
from tools.ledger import Ledger

# three mines in the last row, everything else safe
MINE_BOARD = [22, 23, 24] + list(range(22))

ROUND_PARAMS = {
    "blackjack": {},
    "dice": {"prediction": 50},
    "slots": {},
    "roulette": {"color": "red"},
    "crash": {"auto_cashout": 1.5},
    "mines": {"mine_count": 3},
}


class EngineTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(0.0)
        self.sink = MemoryEventSink()

    def build(self, rng=None, config=None, sink="memory", **kw):
        return RoundEngine(
            rng=rng or ScriptedRNG(),
            config=config or fast_config(),
            clock=self.clock,
            sink=self.sink if sink == "memory" else sink,
            **kw,
        )

    def at(self, engine, t):
        self.clock.set(t)
        return engine.tick()

    def play_out(self, engine, round_id):
        """Drive a round to the end: stand, reveal one cell then cash out,
        otherwise let the timers run."""
        state = engine.get_round_state(round_id)
        while not state.is_terminal:
            actions = state.allowed_actions
            if "stand" in actions:
                state = engine.act(round_id, "stand")
                continue
            if "reveal" in actions:
                if state.state["safe_reveals"] == 0:
                    state = engine.act(round_id, "reveal", {"index": 0})
                else:
                    state = engine.act(round_id, "cash_out")
                continue
            due = engine.scheduler.next_due()
            self.assertIsNotNone(due, f"{state.game_type} round stuck in {state.phase}")
            self.at(engine, max(self.clock.now(), due))
            state = engine.get_round_state(round_id)
        return state


# ============================================================
# Round trips
# ============================================================

class TestRoundTrips(EngineTestCase):

    def test_dice_win(self):
        engine = self.build(ScriptedRNG(uniforms=[0.75]))
        rid = engine.place_bet("alice", "dice", {"prediction": 50}, "10")
        state = engine.get_round_state(rid)
        self.assertTrue(state.is_terminal)
        self.assertEqual(state.result, WIN)
        self.assertEqual(state.payout, Decimal("19.60"))
        self.assertEqual(engine.get_balance("alice"), Decimal("1009.60"))
        [outcome] = self.sink.for_round(rid)
        self.assertTrue(outcome.is_win)
        self.assertEqual(outcome.net, Decimal("9.60"))

    def test_dice_loss_still_credits_zero(self):
        engine = self.build(ScriptedRNG(uniforms=[0.25]))
        rid = engine.place_bet("alice", "dice", {"prediction": 50}, "10")
        self.assertEqual(engine.get_round_state(rid).payout, Decimal("0"))
        self.assertEqual(engine.get_balance("alice"), Decimal("990"))
        kinds = [(e.kind, e.amount) for e in engine.ledger.entries(round_id=rid)]
        self.assertEqual(kinds, [("debit", Decimal("10.00")), ("credit", Decimal("0.00"))])
        [outcome] = self.sink.for_round(rid)
        self.assertFalse(outcome.is_win)

    def test_slots_jackpot(self):
        engine = self.build(ScriptedRNG(ints=[0, 0, 0]))
        rid = engine.place_bet("alice", "slots", {}, "2")
        state = engine.get_round_state(rid)
        self.assertEqual(state.state["reels"], ["seven"] * 3)
        self.assertEqual(state.payout, Decimal("100"))
        self.assertEqual(engine.get_balance("alice"), Decimal("1098"))

    def test_roulette_red(self):
        engine = self.build(ScriptedRNG(ints=[1]))
        rid = engine.place_bet("alice", "roulette", {"color": "RED"}, "5")
        state = engine.get_round_state(rid)
        self.assertEqual(state.state["winning_color"], "red")
        self.assertEqual(state.payout, Decimal("10"))

    def test_three_rounds_of_every_game_balance_out(self):
        engine = self.build(ScriptedRNG(seed=11))
        wagered, paid, ids = Decimal("0"), Decimal("0"), []
        for game in GAME_TYPES:
            for _ in range(3):
                rid = engine.place_bet("bob", game, ROUND_PARAMS[game], "10")
                state = self.play_out(engine, rid)
                self.assertIn(state.result, (WIN, LOSE, PUSH))
                wagered += state.wager
                paid += state.payout
                ids.append(rid)

        self.assertEqual(engine.get_balance("bob"), Decimal("1000") - wagered + paid)
        self.assertEqual(len(self.sink.outcomes), len(ids))
        self.assertEqual(len(set(ids)), len(ids))
        for rid in ids:
            self.assertEqual(len(self.sink.for_round(rid)), 1)
            kinds = sorted(e.kind for e in engine.ledger.entries(round_id=rid))
            self.assertEqual(kinds, ["credit", "debit"])
        self.assertEqual(engine.active_rounds("bob"), [])

    def test_settlement_is_idempotent(self):
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        machine = engine._rounds[rid]
        engine.act(rid, "cash_out")
        with machine.lock:
            self.assertIsNone(engine.settlement.apply(machine))
            engine._finish(machine)
        self.assertEqual(len(self.sink.for_round(rid)), 1)
        self.assertEqual(engine.get_balance("alice"), Decimal("1000.00"))

    def test_finished_round_rejects_actions(self):
        engine = self.build(ScriptedRNG(uniforms=[0.75]))
        rid = engine.place_bet("alice", "dice", {}, "10")
        with self.assertRaises(InvalidTransition):
            engine.act(rid, "roll")
        self.assertEqual(engine.get_balance("alice"), Decimal("1009.60"))

    def test_engine_events_refused_from_players(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "10", "7")]))
        rid = engine.place_bet("alice", "blackjack", {}, "10")
        for action in ("deal", "dealer_draw", "split"):
            with self.assertRaises(InvalidTransition):
                engine.act(rid, action)
        with self.assertRaises(InvalidParams):
            engine.act(rid, "hit", {"index": 3})
        self.assertEqual(engine.get_round_state(rid).phase, "player_turn")

    def test_action_params_must_be_an_object(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "10", "7"), MINE_BOARD]))
        bj = engine.place_bet("alice", "blackjack", {}, "10")
        mines = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        for params in ([1], "index", 3, [("index", 1)]):
            with self.assertRaises(InvalidParams, msg=repr(params)):
                engine.act(bj, "hit", params)
            with self.assertRaises(InvalidParams, msg=repr(params)):
                engine.act(mines, "reveal", params)
        self.assertEqual(engine.get_round_state(bj).phase, "player_turn")
        self.assertEqual(engine.get_round_state(mines).state["safe_reveals"], 0)


# ============================================================
# Bet validation
# ============================================================

class TestBetValidation(EngineTestCase):

    def assertUntouched(self, engine, player="alice"):
        self.assertEqual(engine.get_balance(player), Decimal("1000"))
        self.assertEqual(engine.ledger.entries(player_id=player), [])
        self.assertEqual(engine.active_rounds(player), [])

    def test_bad_wagers(self):
        engine = self.build()
        for wager in (None, "0", "-5", "abc", "NaN", "0.001", "1e30", 10 ** 40):
            with self.assertRaises(InvalidParams, msg=repr(wager)):
                engine.place_bet("alice", "dice", {}, wager)
        self.assertUntouched(engine)

    def test_bad_params(self):
        engine = self.build()
        cases = [
            ("dice", {"prediction": 99}),
            ("dice", {"prediction": 1}),
            ("roulette", {}),
            ("roulette", {"color": "blue"}),
            ("mines", {"mine_count": 4}),
            ("crash", {"auto_cashout": 1.0}),
            ("slots", {"lines": 5}),
        ]
        for game, params in cases:
            with self.assertRaises(InvalidParams, msg=f"{game} {params}"):
                engine.place_bet("alice", game, params, "10")
        self.assertUntouched(engine)

    def test_unknown_game_and_missing_player(self):
        engine = self.build()
        with self.assertRaises(InvalidParams):
            engine.place_bet("alice", "poker", {}, "10")
        with self.assertRaises(InvalidParams):
            engine.place_bet("", "dice", {}, "10")
        self.assertUntouched(engine)

    def test_insufficient_funds(self):
        engine = self.build()
        with self.assertRaises(InsufficientFunds):
            engine.place_bet("alice", "dice", {}, "1000.01")
        self.assertUntouched(engine)
        # the slot was released
        engine.place_bet("alice", "dice", {}, "1000")

    def test_entropy_failure_takes_nothing(self):
        engine = self.build(FailingRNG())
        for game in GAME_TYPES:
            with self.assertRaises(EntropyUnavailable):
                engine.place_bet("alice", game, ROUND_PARAMS[game], "10")
        self.assertUntouched(engine)

    def test_failed_start_is_refunded(self):
        class DeadShuffle(ScriptedRNG):
            def shuffle(self, seq):
                raise EntropyUnavailable("entropy source dropped mid-deal")

        engine = self.build(DeadShuffle())
        with self.assertRaises(EntropyUnavailable):
            engine.place_bet("alice", "blackjack", {}, "10")
        self.assertEqual(engine.get_balance("alice"), Decimal("1000"))
        reasons = [e.reason for e in engine.ledger.entries(player_id="alice")]
        self.assertEqual(reasons, ["wager", "refund"])
        self.assertEqual(self.sink.outcomes, [])
        self.assertEqual(engine.active_rounds("alice"), [])

    def test_one_active_round_per_game(self):
        engine = self.build(ScriptedRNG(shuffles=[
            stacked_deck("10", "9", "10", "7"), stacked_deck("10", "9", "10", "7"),
        ]))
        first = engine.place_bet("alice", "blackjack", {}, "10")
        with self.assertRaises(RoundInProgress):
            engine.place_bet("alice", "blackjack", {}, "10")
        # other games and other players are unaffected
        dice = engine.place_bet("alice", "dice", {}, "10")
        engine.place_bet("bob", "blackjack", {}, "10")
        payout = engine.get_round_state(dice).payout
        self.assertEqual(engine.get_balance("alice"), Decimal("980") + payout)

        self.play_out(engine, first)
        engine.place_bet("alice", "blackjack", {}, "10")

    def test_concurrent_bets_claim_one_slot(self):
        engine = self.build()
        barrier = threading.Barrier(10)
        placed, refused = [], []

        def bet():
            barrier.wait()
            try:
                placed.append(engine.place_bet("alice", "blackjack", {}, "10"))
            except RoundInProgress:
                refused.append(True)

        threads = [threading.Thread(target=bet) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(placed), 1)
        self.assertEqual(len(refused), 9)
        self.assertFalse(engine.get_round_state(placed[0]).is_terminal)
        self.assertEqual(engine.get_balance("alice"), Decimal("990"))


# ============================================================
# Engine-initiated transitions
# ============================================================

class TestEngineTimers(EngineTestCase):

    def test_dealer_draws_on_ticks(self):
        # player 19, dealer 16, dealer's next card a 2
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "10", "6", "2")]))
        rid = engine.place_bet("alice", "blackjack", {}, "10")
        state = engine.act(rid, "stand")
        self.assertEqual(state.phase, "dealer_turn")
        self.assertEqual(state.allowed_actions, [])

        self.assertEqual(self.at(engine, 0.5), 0)
        self.at(engine, 1.0)
        state = engine.get_round_state(rid)
        self.assertEqual(state.state["dealer_score"], 18)
        self.assertEqual(state.result, WIN)
        self.assertEqual(engine.get_balance("alice"), Decimal("1010"))

    def test_idle_hand_is_force_stood(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "10", "7")]))
        rid = engine.place_bet("alice", "blackjack", {}, "10")
        self.at(engine, 59.0)
        self.assertEqual(engine.get_round_state(rid).phase, "player_turn")

        self.at(engine, 61.0)
        state = engine.get_round_state(rid)
        self.assertTrue(state.state["forced_stand"])
        self.assertEqual(state.result, WIN)
        self.assertEqual(len(self.sink.for_round(rid)), 1)

    def test_action_restarts_idle_timer(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("2", "3", "10", "7", "4")]))
        rid = engine.place_bet("alice", "blackjack", {}, "10")
        self.clock.set(50.0)
        engine.act(rid, "hit")
        self.at(engine, 100.0)
        self.assertEqual(engine.get_round_state(rid).phase, "player_turn")
        self.at(engine, 111.0)
        self.assertTrue(engine.get_round_state(rid).is_terminal)

    def test_idle_mines_board_cashes_out(self):
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        self.clock.set(10.0)
        state = engine.act(rid, "reveal", {"index": 0})
        self.assertEqual(state.state["safe_reveals"], 1)

        self.at(engine, 309.0)
        self.assertFalse(engine.get_round_state(rid).is_terminal)
        self.at(engine, 310.0)
        state = engine.get_round_state(rid)
        self.assertEqual(state.result, WIN)
        self.assertEqual(state.payout, Decimal("11.36"))   # 10 * 25/22
        self.assertEqual(engine.get_balance("alice"), Decimal("1001.36"))

    def test_mine_hit_loses(self):
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        engine.act(rid, "reveal", {"index": 5})
        state = engine.act(rid, "reveal", {"index": 23})
        self.assertEqual(state.result, LOSE)
        self.assertEqual(state.state["hit_index"], 23)
        self.assertNotIn(None, state.state["cells"])
        self.assertEqual(engine.get_balance("alice"), Decimal("990"))
        self.assertEqual(engine.scheduler.pending(), 0)

    def test_mines_bad_reveal_leaves_round_open(self):
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        with self.assertRaises(InvalidParams):
            engine.act(rid, "reveal", {"index": 25})
        with self.assertRaises(InvalidParams):
            engine.act(rid, "reveal")
        engine.act(rid, "reveal", {"index": 1})
        with self.assertRaises(InvalidTransition):
            engine.act(rid, "reveal", {"index": 1})
        self.assertEqual(engine.get_round_state(rid).phase, "playing")


# ============================================================
# Queries
# ============================================================

class TestQueries(EngineTestCase):

    def test_not_found(self):
        engine = self.build()
        with self.assertRaises(NotFound):
            engine.get_round_state("missing")
        with self.assertRaises(NotFound):
            engine.act("missing", "hit")

    def test_active_and_history(self):
        engine = self.build(ScriptedRNG(
            uniforms=[0.75], shuffles=[stacked_deck("10", "9", "10", "7")]))
        bj = engine.place_bet("alice", "blackjack", {}, "10")
        dice = engine.place_bet("alice", "dice", {}, "10")

        self.assertEqual([s.round_id for s in engine.active_rounds("alice")], [bj])
        self.assertEqual([s.round_id for s in engine.player_rounds("alice")], [dice, bj])
        self.assertEqual([s.round_id for s in engine.player_rounds("alice", limit=1)], [dice])
        self.assertEqual(engine.player_rounds("nobody"), [])

    def test_hole_card_never_leaks(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "K", "7")]))
        rid = engine.place_bet("alice", "blackjack", {}, "10")
        state = engine.get_round_state(rid).to_dict()
        self.assertEqual(state["state"]["dealer_hand"][1], {"hidden": True})
        self.assertEqual(state["state"]["dealer_score"], 10)
        self.assertEqual(state["allowed_actions"], ["hit", "stand"])
        self.assertEqual(state["wager"], "10.00")

    def test_mines_never_leak_while_playing(self):
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        cells = engine.act(rid, "reveal", {"index": 0}).state["cells"]
        self.assertEqual(cells[0], "gem")
        self.assertEqual(cells[1:], [None] * 24)

    def test_settled_rounds_are_retired_to_snapshots(self):
        engine = self.build(ScriptedRNG(uniforms=[0.75]))
        rid = engine.place_bet("alice", "dice", {}, "10")
        self.assertNotIn(rid, engine._rounds)
        state = engine.get_round_state(rid)
        self.assertEqual(state.result, WIN)
        self.assertEqual(state.payout, Decimal("19.60"))
        with self.assertRaises(InvalidTransition):
            engine.act(rid, "roll")

    def test_history_is_bounded(self):
        engine = self.build(ScriptedRNG(shuffles=[stacked_deck("10", "9", "10", "7")]),
                            config=fast_config(ROUND_HISTORY_SIZE=3))
        bj = engine.place_bet("alice", "blackjack", {}, "10")
        rids = [engine.place_bet(player, "dice", {}, "1")
                for _ in range(4) for player in ("alice", "bob")]

        self.assertEqual(len(engine._settled), 3)
        with self.assertRaises(NotFound):
            engine.get_round_state(rids[0])
        # the open hand is never dropped, however many rounds finish after it
        self.assertEqual([s.round_id for s in engine.active_rounds("alice")], [bj])
        self.assertEqual([s.round_id for s in engine.player_rounds("alice")], [rids[6], bj])
        self.assertEqual([s.round_id for s in engine.player_rounds("bob")], [rids[7], rids[5]])


# ============================================================
# Collaborators
# ============================================================

class BrokenSink(EventSink):
    def publish(self, outcome):
        raise RuntimeError("downstream is down")


class TestCollaborators(EngineTestCase):

    def test_refused_payout_is_retried(self):
        store = FlakyStore(failures=1, initial_balance=Decimal("1000"))
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD, MINE_BOARD]), ledger=Ledger(store))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        with self.assertLogs("pumpcasino.engine", level="ERROR"):
            state = engine.act(rid, "cash_out")
        self.assertEqual(state.result, PUSH)
        self.assertEqual(engine.get_balance("alice"), Decimal("990"))
        self.assertFalse(engine.ledger.is_settled(rid))
        self.assertEqual(self.sink.outcomes, [])
        # the slot stays taken until the payout lands
        with self.assertRaises(RoundInProgress):
            engine.place_bet("alice", "mines", {"mine_count": 3}, "10")

        self.at(engine, 1.0)
        self.assertEqual(engine.get_balance("alice"), Decimal("1000.00"))
        self.assertTrue(engine.ledger.is_settled(rid))
        self.assertEqual(engine.get_round_state(rid).payout, Decimal("10.00"))
        self.assertEqual(len(self.sink.for_round(rid)), 1)
        self.assertEqual(engine.scheduler.pending(), 0)
        engine.place_bet("alice", "mines", {"mine_count": 3}, "10")

    def test_retries_until_the_store_recovers(self):
        store = FlakyStore(failures=3, initial_balance=Decimal("1000"))
        engine = self.build(ScriptedRNG(uniforms=[0.75]), ledger=Ledger(store))
        with self.assertLogs("pumpcasino.engine", level="ERROR") as logs:
            rid = engine.place_bet("alice", "dice", {}, "10")
            self.at(engine, 1.0)
            self.at(engine, 2.0)
        self.assertEqual(len(logs.records), 3)
        self.assertFalse(engine.ledger.is_settled(rid))
        self.at(engine, 3.0)
        self.assertTrue(engine.ledger.is_settled(rid))
        self.assertEqual(engine.get_balance("alice"), Decimal("1009.60"))
        self.assertEqual(len(self.sink.for_round(rid)), 1)

    def test_action_on_unpaid_round_settles_it(self):
        store = FlakyStore(failures=1, initial_balance=Decimal("1000"))
        engine = self.build(ScriptedRNG(shuffles=[MINE_BOARD]), ledger=Ledger(store))
        rid = engine.place_bet("alice", "mines", {"mine_count": 3}, "10")
        engine.act(rid, "reveal", {"index": 0})
        with self.assertLogs("pumpcasino.engine", level="ERROR"):
            engine.act(rid, "cash_out")
        with self.assertRaises(InvalidTransition):
            engine.act(rid, "cash_out")
        self.assertEqual(engine.get_balance("alice"), Decimal("1001.36"))
        self.assertEqual(len(self.sink.for_round(rid)), 1)
        self.assertEqual(engine.scheduler.pending(), 0)

    def test_store_failure_on_debit_takes_nothing(self):
        store = FlakyStore(fail_debits=True, initial_balance=Decimal("1000"))
        engine = self.build(ScriptedRNG(uniforms=[0.5, 0.75]), ledger=Ledger(store))
        for game in ("dice", "crash"):
            with self.assertRaises(OSError):
                engine.place_bet("alice", game, ROUND_PARAMS[game], "10")
        self.assertEqual(engine.get_balance("alice"), Decimal("1000"))
        self.assertEqual(engine.ledger.entries(player_id="alice"), [])
        self.assertEqual(engine.player_rounds("alice"), [])
        self.assertEqual(engine._rounds, {})

        store.fail_debits = False
        engine.place_bet("alice", "dice", {}, "10")
        self.assertEqual(engine.get_balance("alice"), Decimal("1009.60"))

    def test_sink_failure_does_not_undo_settlement(self):
        engine = self.build(ScriptedRNG(uniforms=[0.75]), sink=BrokenSink())
        with self.assertLogs("pumpcasino.settlement", level="ERROR"):
            rid = engine.place_bet("alice", "dice", {}, "10")
        state = engine.get_round_state(rid)
        self.assertEqual(state.payout, Decimal("19.60"))
        self.assertEqual(engine.get_balance("alice"), Decimal("1009.60"))
        self.assertTrue(engine.ledger.is_settled(rid))

    def test_default_sinks_feed_leaderboard(self):
        engine = self.build(ScriptedRNG(uniforms=[0.75, 0.25]), sink=None)
        win = engine.place_bet("alice", "dice", {}, "10")
        engine.place_bet("bob", "dice", {}, "10")

        feed = engine.feed.recent(5)
        self.assertEqual(len(feed), 2)
        self.assertEqual(feed[1]["round_id"], win)
        board = engine.leaderboard.top()
        self.assertEqual([row["player_id"] for row in board], ["alice", "bob"])
        self.assertEqual(board[0]["net"], "9.60")

    def test_sqlite_balances_survive_engines(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        config = fast_config(BALANCE_DB_PATH=os.path.join(tmp.name, "balances.db"))

        first = self.build(ScriptedRNG(uniforms=[0.75]), config=config)
        self.addCleanup(first.ledger.store.close)
        self.assertIsInstance(first.ledger.store, SQLiteBalanceStore)
        first.place_bet("alice", "dice", {}, "10")

        second = self.build(config=config)
        self.addCleanup(second.ledger.store.close)
        self.assertEqual(second.get_balance("alice"), Decimal("1009.60"))


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    unittest.main(verbosity=2)
