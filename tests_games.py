#!/usr/bin/env python3
"""
PUMP CASINO — Game Machine Tests

Each game's state machine driven directly with scripted draws, no engine:

  TestBlackjack   — scoring, dealer rule, push, bust, hidden hole card, forced stand
  TestDice        — threshold, multiplier formula, boundary roll
  TestSlots       — three of a kind paytable
  TestRoulette    — color weights, 14x green, cosmetic pocket
  TestMines       — fair-odds multiplier, loss reveal, full clear, idle cash-out

Run: python tests_games.py
"""

import sys
import unittest
from collections import Counter
from decimal import Decimal
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import parse_params
from round_engine.errors import InvalidParams, InvalidTransition
from round_engine.games.blackjack import BlackjackRound, hand_score
from round_engine.games.dice import DiceRound, dice_multiplier
from round_engine.games.mines import MinesRound, multiplier_after
from round_engine.games.roulette import (
    RED_NUMBERS, SLOTS_BY_COLOR, WHEEL_LAYOUT, RouletteRound, draw_color, slot_color,
)
from round_engine.games.slots import PAYTABLE, SYMBOLS, SlotsRound
from round_engine.machine import LOSE, PUSH, WIN
from round_engine.money import to_money
from tests import ScriptedRNG, fast_config, stacked_deck
from tools.rng_provider import SeededRNG


def make(cls, params=None, wager="10", rng=None, config=None, now=0.0, start=True):
    machine = cls(
        "r1", "alice", to_money(wager), parse_params(cls.game_type, params or {}),
        rng or ScriptedRNG(), config or fast_config(), now,
    )
    if start:
        machine.start(now)
    return machine


# ============================================================
# Blackjack
# ============================================================

class TestBlackjack(unittest.TestCase):

    def deal(self, *ranks, **kw):
        return make(BlackjackRound, rng=ScriptedRNG(shuffles=[stacked_deck(*ranks)]), **kw)

    def test_hand_score_examples(self):
        self.assertEqual(hand_score(["10", "6", "A"]), 17)
        self.assertEqual(hand_score(["A", "A", "9"]), 21)
        self.assertEqual(hand_score(["A", "K"]), 21)
        self.assertEqual(hand_score(["K", "Q", "5"]), 25)
        self.assertEqual(hand_score(["A", "A", "A", "A"]), 14)

    def test_deal_enters_player_turn(self):
        bj = self.deal("10", "6", "9", "7")
        self.assertEqual(bj.phase, BlackjackRound.Phase.PLAYER_TURN)
        self.assertEqual(len(bj.player_hand), 2)
        self.assertEqual(len(bj.dealer_hand), 2)
        self.assertEqual(len(bj.deck), 48)
        self.assertEqual(bj.state().allowed_actions, ["hit", "stand"])

    def test_hole_card_hidden_until_dealer_turn(self):
        bj = self.deal("10", "6", "9", "7")
        view = bj.public_state()
        self.assertEqual(view["dealer_hand"][1], {"hidden": True})
        self.assertEqual(view["dealer_score"], 9)
        bj.transition("stand", 1.0)
        view = bj.public_state()
        self.assertEqual(view["dealer_hand"][1]["rank"], "7")
        self.assertEqual(view["dealer_score"], 16)

    def test_player_bust_loses_immediately(self):
        bj = self.deal("10", "6", "9", "7", "K")
        bj.apply_action("hit", 1.0)
        self.assertTrue(bj.is_terminal)
        self.assertEqual(bj.result, LOSE)
        self.assertEqual(bj.settle(), Decimal("0.00"))

    def test_dealer_draws_to_seventeen_on_ticks(self):
        bj = self.deal("10", "9", "10", "2", "3", "4")
        bj.apply_action("stand", 1.0)
        self.assertEqual(bj.phase, BlackjackRound.Phase.DEALER_TURN)
        due, event = bj.deadline()
        self.assertAlmostEqual(due, 1.8)
        self.assertEqual(event, "dealer_draw")
        self.assertTrue(bj.fire_due(2.0))          # 12 + 3 = 15
        self.assertFalse(bj.is_terminal)
        self.assertFalse(bj.fire_due(2.5))
        self.assertTrue(bj.fire_due(3.0))          # 15 + 4 = 19
        self.assertTrue(bj.is_terminal)
        self.assertEqual(hand_score(bj.dealer_hand), 19)
        self.assertEqual(bj.result, PUSH)
        self.assertEqual(bj.settle(), Decimal("10.00"))

    def test_dealer_bust_pays_double(self):
        bj = self.deal("10", "9", "10", "6", "K")
        bj.apply_action("stand", 1.0)
        bj.fire_due(2.0)
        self.assertEqual(bj.result, WIN)
        self.assertEqual(bj.settle(), Decimal("20.00"))

    def test_dealer_on_seventeen_stands(self):
        bj = self.deal("10", "8", "10", "7")
        bj.apply_action("stand", 1.0)
        bj.fire_due(2.0)
        self.assertEqual(len(bj.dealer_hand), 2)
        self.assertEqual(bj.result, WIN)

    def test_natural_pays_like_any_win(self):
        bj = self.deal("A", "K", "10", "7")
        self.assertTrue(bj.natural)
        bj.apply_action("stand", 1.0)
        bj.fire_due(2.0)
        self.assertEqual(bj.result, WIN)
        self.assertEqual(bj.settle(), Decimal("20.00"))

    def test_idle_player_is_force_stood(self):
        bj = self.deal("10", "9", "10", "8", config=fast_config(PLAYER_TURN_TIMEOUT_SECONDS=60))
        self.assertEqual(bj.deadline(), (60.0, "stand"))
        self.assertFalse(bj.fire_due(59.0))
        self.assertTrue(bj.fire_due(60.0))
        self.assertTrue(bj.forced_stand)
        self.assertEqual(bj.phase, BlackjackRound.Phase.DEALER_TURN)

    def test_hit_resets_idle_clock(self):
        bj = self.deal("2", "3", "10", "8", "4")
        bj.apply_action("hit", 30.0)
        self.assertEqual(bj.deadline(), (90.0, "stand"))

    def test_finished_round_rejects_actions(self):
        bj = self.deal("10", "6", "9", "7", "K")
        bj.apply_action("hit", 1.0)
        with self.assertRaises(InvalidTransition):
            bj.apply_action("stand", 2.0)

    def test_engine_events_are_not_player_actions(self):
        bj = self.deal("10", "6", "9", "7")
        with self.assertRaises(InvalidTransition):
            bj.apply_action("dealer_draw", 1.0)
        with self.assertRaises(InvalidParams):
            bj.apply_action("hit", 1.0, {"cards": 2})


# ============================================================
# Dice
# ============================================================

class TestDice(unittest.TestCase):

    def test_multiplier_formula(self):
        self.assertEqual(dice_multiplier(50), Decimal("1.96"))
        self.assertEqual(dice_multiplier(75), Decimal("3.92"))

    def test_roll_over_wins(self):
        d = make(DiceRound, {"prediction": 50}, rng=ScriptedRNG(uniforms=[0.75]))
        self.assertTrue(d.is_terminal)
        self.assertEqual(d.result, WIN)
        self.assertEqual(d.settle(), Decimal("19.60"))
        self.assertEqual(d.public_state()["roll"], 75.0)

    def test_roll_equal_to_prediction_loses(self):
        d = make(DiceRound, {"prediction": 50}, rng=ScriptedRNG(uniforms=[0.5]))
        self.assertEqual(d.result, LOSE)
        self.assertEqual(d.settle(), Decimal("0.00"))

    def test_no_player_actions(self):
        d = make(DiceRound, {"prediction": 60}, rng=ScriptedRNG(uniforms=[0.1]))
        with self.assertRaises(InvalidTransition):
            d.apply_action("roll", 1.0)


# ============================================================
# Slots
# ============================================================

class TestSlots(unittest.TestCase):

    def test_three_sevens(self):
        s = make(SlotsRound, rng=ScriptedRNG(ints=[0, 0, 0]))
        self.assertEqual(s.reels, ["seven"] * 3)
        self.assertEqual(s.result, WIN)
        self.assertEqual(s.settle(), Decimal("500.00"))

    def test_each_symbol_pays_its_multiplier(self):
        for i, symbol in enumerate(SYMBOLS):
            s = make(SlotsRound, rng=ScriptedRNG(ints=[i, i, i]))
            self.assertEqual(s.settle(), Decimal("10.00") * PAYTABLE[symbol])

    def test_mismatch_loses(self):
        s = make(SlotsRound, rng=ScriptedRNG(ints=[0, 1, 0]))
        self.assertEqual(s.result, LOSE)
        self.assertEqual(s.settle(), Decimal("0.00"))


# ============================================================
# Roulette
# ============================================================

class TestRoulette(unittest.TestCase):

    def test_wheel_layout(self):
        self.assertEqual(sorted(WHEEL_LAYOUT), list(range(37)))
        self.assertEqual(len(SLOTS_BY_COLOR["red"]), 18)
        self.assertEqual(len(SLOTS_BY_COLOR["black"]), 18)
        self.assertEqual(SLOTS_BY_COLOR["green"], (0,))
        self.assertEqual(slot_color(32), "red")

    def test_green_pays_fourteen(self):
        r = make(RouletteRound, {"color": "green"}, rng=ScriptedRNG(ints=[0, 0]))
        self.assertEqual(r.winning_color, "green")
        self.assertEqual(r.number, 0)
        self.assertEqual(r.settle(), Decimal("140.00"))

    def test_red_pays_double(self):
        r = make(RouletteRound, {"color": "red"}, rng=ScriptedRNG(ints=[5, 2]))
        self.assertEqual(r.result, WIN)
        self.assertIn(r.number, RED_NUMBERS)
        self.assertEqual(r.settle(), Decimal("20.00"))

    def test_mismatch_loses(self):
        r = make(RouletteRound, {"color": "black"}, rng=ScriptedRNG(ints=[5, 0]))
        self.assertEqual(r.winning_color, "red")
        self.assertEqual(r.result, LOSE)
        self.assertEqual(r.settle(), Decimal("0.00"))

    def test_color_frequencies_match_wheel(self):
        rng = SeededRNG(2024)
        n = 37_000
        counts = Counter(draw_color(rng) for _ in range(n))
        self.assertTrue(800 < counts["green"] < 1200, counts)
        self.assertTrue(17_300 < counts["red"] < 18_700, counts)
        self.assertTrue(17_300 < counts["black"] < 18_700, counts)


# ============================================================
# Mines
# ============================================================

class TestMines(unittest.TestCase):

    def board(self, mines, mine_count=None, **kw):
        """Mines at the given indices (they come first in the shuffle)."""
        order = list(mines) + [i for i in range(25) if i not in mines]
        params = {"mine_count": mine_count or len(mines)}
        return make(MinesRound, params, rng=ScriptedRNG(shuffles=[order]), **kw)

    def test_mines_placed(self):
        m = self.board([0, 1, 2])
        self.assertEqual(m.mines, frozenset({0, 1, 2}))
        self.assertEqual(m.phase, MinesRound.Phase.PLAYING)

    def test_safe_reveals_grow_multiplier(self):
        m = self.board([0, 1, 2])
        m.apply_action("reveal", 1.0, {"index": 3})
        self.assertAlmostEqual(m.current_multiplier, 25 / 22)
        m.apply_action("reveal", 2.0, {"index": 4})
        self.assertAlmostEqual(m.current_multiplier, 25 / 22 * 24 / 21)
        m.apply_action("cash_out", 3.0)
        self.assertEqual(m.result, WIN)
        self.assertEqual(m.settle(), Decimal("12.98"))

    def test_multiplier_after(self):
        self.assertEqual(multiplier_after(0, 3), 1.0)
        self.assertAlmostEqual(multiplier_after(1, 3), 25 / 22)
        self.assertAlmostEqual(multiplier_after(24, 1), 25.0)

    def test_mine_loses_and_reveals_board(self):
        m = self.board([0, 1, 2])
        m.apply_action("reveal", 1.0, {"index": 5})
        m.apply_action("reveal", 2.0, {"index": 1})
        self.assertEqual(m.result, LOSE)
        self.assertEqual(m.hit_index, 1)
        self.assertEqual(m.settle(), Decimal("0.00"))
        cells = m.public_state()["cells"]
        self.assertEqual(cells.count("mine"), 3)
        self.assertNotIn(None, cells)

    def test_unrevealed_cells_hidden_while_playing(self):
        m = self.board([0, 1, 2])
        m.apply_action("reveal", 1.0, {"index": 9})
        cells = m.public_state()["cells"]
        self.assertEqual(cells[9], "gem")
        self.assertEqual(cells.count(None), 24)

    def test_full_clear_auto_cashes_out(self):
        m = self.board([24], mine_count=1)
        for i in range(24):
            m.apply_action("reveal", float(i), {"index": i})
        self.assertEqual(m.phase, MinesRound.Phase.CASHED)
        self.assertEqual(m.settle(), Decimal("250.00"))

    def test_reveal_twice_rejected(self):
        m = self.board([0, 1, 2])
        m.apply_action("reveal", 1.0, {"index": 7})
        with self.assertRaises(InvalidTransition):
            m.apply_action("reveal", 2.0, {"index": 7})

    def test_bad_index(self):
        m = self.board([0, 1, 2])
        for params in ({"index": 25}, {"index": -1}, {}, {"index": "x"}):
            with self.assertRaises(InvalidParams):
                m.apply_action("reveal", 1.0, params)
        self.assertEqual(m.safe_reveals, 0)

    def test_cash_out_without_reveals_is_push(self):
        m = self.board([0, 1, 2])
        m.apply_action("cash_out", 1.0)
        self.assertEqual(m.result, PUSH)
        self.assertEqual(m.settle(), Decimal("10.00"))

    def test_idle_board_cashes_out(self):
        m = self.board([0, 1, 2], config=fast_config(MINES_IDLE_TIMEOUT_SECONDS=300))
        m.apply_action("reveal", 10.0, {"index": 3})
        self.assertEqual(m.deadline(), (310.0, "cash_out"))
        self.assertTrue(m.fire_due(310.0))
        self.assertEqual(m.phase, MinesRound.Phase.CASHED)
        self.assertEqual(m.result, WIN)


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
