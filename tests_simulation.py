#!/usr/bin/env python3
"""
PUMP CASINO — Simulation & CLI Tests

Closed-form RTPs, Monte Carlo runs through the real engine, and the
command-line entry point.

Run: python tests_simulation.py
"""

import io
import json
import logging
import sys
import unittest
from contextlib import redirect_stdout
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine.errors import InvalidParams
from round_engine.simulate import mines_expected_multiplier, simulate, theoretical_rtp
from tools.casino_cli import main, parse_actions, parse_kv


class TestTheoreticalRTP(unittest.TestCase):

    def test_dice_is_98_everywhere(self):
        for prediction in (5, 50, 90):
            self.assertAlmostEqual(theoretical_rtp("dice", {"prediction": prediction}), 0.98)

    def test_roulette(self):
        self.assertAlmostEqual(theoretical_rtp("roulette", {"color": "red"}), 36 / 37)
        self.assertAlmostEqual(theoretical_rtp("roulette", {"color": "green"}), 14 / 37)

    def test_slots_paytable(self):
        self.assertAlmostEqual(theoretical_rtp("slots"), 90 / 64)

    def test_crash_needs_a_target(self):
        self.assertAlmostEqual(theoretical_rtp("crash", {"auto_cashout": 3.0}), 0.99)
        self.assertIsNone(theoretical_rtp("crash", {"auto_cashout": None}))

    def test_no_closed_form(self):
        self.assertIsNone(theoretical_rtp("blackjack"))
        self.assertIsNone(theoretical_rtp("mines"))

    def test_mines_fair_odds(self):
        for mines in (1, 3, 5, 10, 20):
            for reveals in (0, 1, 4):
                self.assertAlmostEqual(mines_expected_multiplier(reveals, mines), 1.0)
        # clamps to the number of safe cells
        self.assertAlmostEqual(mines_expected_multiplier(30, 20), 1.0)


class TestSimulate(unittest.TestCase):

    def test_dice_rtp_converges(self):
        result = simulate("dice", rounds=5000, seed=3, params={"prediction": 50})
        self.assertEqual(result.rounds, 5000)
        self.assertAlmostEqual(result.total_wagered, 500_000)
        self.assertLess(abs(result.rtp - 0.98), 0.08)
        self.assertLess(result.confidence_95[0], result.rtp)
        self.assertGreater(result.confidence_95[1], result.rtp)
        self.assertEqual(set(result.distribution), {"0x", "1-2x"})
        self.assertAlmostEqual(result.max_multiplier_hit, 1.96)

    def test_mines_rtp_near_one(self):
        result = simulate("mines", rounds=3000, seed=5, params={"mine_count": 3}, mines_reveals=3)
        self.assertAlmostEqual(result.rtp_theoretical, 1.0)
        self.assertLess(abs(result.rtp - 1.0), 0.1)

    def test_blackjack_and_crash_run(self):
        bj = simulate("blackjack", rounds=300, seed=8)
        self.assertIsNone(bj.rtp_theoretical)
        self.assertTrue(0.5 < bj.rtp < 1.5, bj.rtp)

        crash = simulate("crash", rounds=300, seed=8, params={"auto_cashout": 2.0})
        self.assertAlmostEqual(crash.rtp_theoretical, 0.99)
        self.assertTrue(0.3 < crash.hit_rate < 0.7, crash.hit_rate)
        self.assertLessEqual(crash.max_multiplier_hit, 2.0)

    def test_seed_reproduces(self):
        a = simulate("roulette", rounds=500, seed=21, params={"color": "black"})
        b = simulate("roulette", rounds=500, seed=21, params={"color": "black"})
        self.assertEqual(a.rtp, b.rtp)

    def test_crash_without_target_rejected(self):
        with self.assertRaises(ValueError):
            simulate("crash", rounds=10, params={})

    def test_bad_params_rejected(self):
        with self.assertRaises(InvalidParams):
            simulate("dice", rounds=10, params={"prediction": 0})


class TestCLI(unittest.TestCase):

    def test_parse_kv(self):
        self.assertEqual(parse_kv(["prediction=60", "color=red", "auto_cashout=2.5"]),
                         {"prediction": 60, "color": "red", "auto_cashout": 2.5})
        self.assertEqual(parse_kv(None), {})

    def test_parse_actions(self):
        self.assertEqual(parse_actions("reveal:3, reveal:8,cash_out"),
                         [("reveal", {"index": 3}), ("reveal", {"index": 8}), ("cash_out", {})])
        self.assertEqual(parse_actions(""), [])

    def test_simulate_json(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["simulate", "dice", "--rounds", "200", "--param", "prediction=75", "--json"])
        self.assertEqual(code, 0)
        [row] = json.loads(out.getvalue())
        self.assertEqual(row["game_type"], "dice")
        self.assertEqual(row["rounds"], 200)
        self.assertEqual(row["params"], {"prediction": 75})

    def test_simulate_all_table(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["simulate", "all", "--rounds", "30"])
        self.assertEqual(code, 0)
        for game in ("blackjack", "dice", "slots", "roulette", "crash", "mines"):
            self.assertIn(game, out.getvalue())

    def test_play_dice(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["play", "dice", "--wager", "10", "--param", "prediction=50"])
        self.assertEqual(code, 0)
        self.assertIn("Balance", out.getvalue())


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    unittest.main(verbosity=2)
