#!/usr/bin/env python3
"""
PUMP CASINO — HTTP API Tests

Flask test client against a RoundEngine on a manual clock (no scheduler
thread). Covers status codes, JSON error bodies and the shared views.

Run: python tests_api.py
"""

import logging
import sys
import unittest
from decimal import Decimal
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from round_engine.engine import RoundEngine
from round_engine.scheduler import ManualClock
from tests import FailingRNG, ScriptedRNG, fast_config, stacked_deck
from tools.event_sink import MemoryEventSink
from web_app import create_app

BETS = "/api/casino/bets"


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(0.0)
        self.client = self.make_client(ScriptedRNG(
            uniforms=[0.75], shuffles=[stacked_deck("10", "9", "10", "6", "2")]))

    def make_client(self, rng, sink=None):
        self.engine = RoundEngine(rng=rng, config=fast_config(), clock=self.clock, sink=sink)
        app = create_app(engine=self.engine, start_scheduler=False)
        app.testing = True
        return app.test_client()

    def bet(self, game="dice", params=None, wager="10", player="alice"):
        return self.client.post(BETS, json={
            "player_id": player, "game_type": game, "params": params or {}, "wager": wager,
        })


class TestBets(ApiTestCase):

    def test_dice_bet_settles_in_response(self):
        r = self.bet(params={"prediction": 50})
        self.assertEqual(r.status_code, 201)
        data = r.get_json()
        self.assertEqual(data["result"], "win")
        self.assertEqual(data["payout"], "19.60")
        self.assertEqual(data["balance"], "1009.60")
        self.assertTrue(data["is_terminal"])

    def test_invalid_params_400(self):
        for body in (
            {"player_id": "alice", "game_type": "poker", "wager": "10"},
            {"player_id": "alice", "game_type": "dice", "params": {"prediction": 120}, "wager": "10"},
            {"player_id": "alice", "game_type": "dice"},
            {"game_type": "dice", "wager": "10"},
            {"player_id": "alice", "game_type": "dice", "wager": "1e30"},
            {"player_id": "alice", "game_type": "dice", "params": [1], "wager": "10"},
        ):
            r = self.client.post(BETS, json=body)
            self.assertEqual(r.status_code, 400, body)
            self.assertEqual(r.get_json()["error"], "invalid_params")

    def test_body_must_be_object(self):
        r = self.client.post(BETS, json=[1, 2, 3])
        self.assertEqual(r.status_code, 400)

    def test_insufficient_funds_402(self):
        r = self.bet(wager="5000")
        self.assertEqual(r.status_code, 402)
        self.assertEqual(r.get_json()["error"], "insufficient_funds")
        player = self.client.get("/api/casino/players/alice").get_json()
        self.assertEqual(Decimal(player["balance"]), Decimal("1000"))

    def test_round_in_progress_409(self):
        self.assertEqual(self.bet("blackjack").status_code, 201)
        r = self.bet("blackjack")
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.get_json()["error"], "round_in_progress")

    def test_entropy_unavailable_503(self):
        self.client = self.make_client(FailingRNG())
        r = self.bet()
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.get_json()["error"], "entropy_unavailable")


class TestRounds(ApiTestCase):

    def test_blackjack_flow(self):
        data = self.bet("blackjack").get_json()
        rid = data["round_id"]
        self.assertEqual(data["allowed_actions"], ["hit", "stand"])
        self.assertEqual(data["state"]["dealer_hand"][1], {"hidden": True})

        r = self.client.post(f"/api/casino/rounds/{rid}/act", json={"action": "stand"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json()["phase"], "dealer_turn")

        self.clock.set(1.0)
        self.engine.tick()
        final = self.client.get(f"/api/casino/rounds/{rid}").get_json()
        self.assertEqual(final["result"], "win")
        self.assertEqual(final["payout"], "20.00")

    def test_act_errors(self):
        rid = self.bet().get_json()["round_id"]
        r = self.client.post(f"/api/casino/rounds/{rid}/act", json={})
        self.assertEqual(r.status_code, 400)
        r = self.client.post(f"/api/casino/rounds/{rid}/act", json={"action": "roll"})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.get_json()["error"], "invalid_transition")

    def test_act_params_must_be_an_object(self):
        rid = self.bet("blackjack").get_json()["round_id"]
        for params in ([1], "index", 7):
            r = self.client.post(f"/api/casino/rounds/{rid}/act",
                                 json={"action": "hit", "params": params})
            self.assertEqual(r.status_code, 400, params)
            self.assertEqual(r.get_json()["error"], "invalid_params")
        self.assertEqual(self.client.get(f"/api/casino/rounds/{rid}").get_json()["phase"], "player_turn")

    def test_unknown_round_404(self):
        self.assertEqual(self.client.get("/api/casino/rounds/nope").status_code, 404)
        r = self.client.post("/api/casino/rounds/nope/act", json={"action": "hit"})
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.get_json()["error"], "not_found")


class TestPlayers(ApiTestCase):

    def test_player_view_and_history(self):
        bj = self.bet("blackjack").get_json()["round_id"]
        dice = self.bet("dice").get_json()["round_id"]

        player = self.client.get("/api/casino/players/alice").get_json()
        self.assertEqual(player["balance"], "999.60")
        self.assertEqual([s["round_id"] for s in player["active_rounds"]], [bj])

        history = self.client.get("/api/casino/players/alice/rounds?limit=1").get_json()
        self.assertEqual([s["round_id"] for s in history["rounds"]], [dice])

    def test_bad_limit(self):
        r = self.client.get("/api/casino/players/alice/rounds?limit=lots")
        self.assertEqual(r.status_code, 400)


class TestSharedViews(ApiTestCase):

    def test_crash_table(self):
        self.client = self.make_client(ScriptedRNG(uniforms=[0.5]))
        self.assertEqual(self.bet("crash", {"auto_cashout": 2}).status_code, 201)
        view = self.client.get("/api/casino/crash").get_json()
        self.assertEqual(view["current"]["phase"], "betting")
        self.assertEqual(view["current"]["countdown"], 5.0)
        self.assertIsNone(view["current"]["crash_point"])
        self.assertEqual(view["history"], [])

    def test_leaderboard_and_feed(self):
        rid = self.bet().get_json()["round_id"]
        board = self.client.get("/api/casino/leaderboard").get_json()
        self.assertTrue(board["enabled"])
        self.assertEqual(board["leaderboard"][0]["player_id"], "alice")
        feed = self.client.get("/api/casino/feed?limit=5").get_json()
        self.assertEqual([o["round_id"] for o in feed["feed"]], [rid])

    def test_views_disabled_with_custom_sink(self):
        self.client = self.make_client(ScriptedRNG(), sink=MemoryEventSink())
        self.assertFalse(self.client.get("/api/casino/leaderboard").get_json()["enabled"])
        self.assertFalse(self.client.get("/api/casino/feed").get_json()["enabled"])


class TestService(ApiTestCase):

    def test_health(self):
        r = self.client.get("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json()["status"], "ok")

    def test_health_reports_entropy_outage(self):
        self.client = self.make_client(FailingRNG())
        self.assertEqual(self.client.get("/api/health").status_code, 503)

    def test_json_404_and_405(self):
        r = self.client.get("/api/nothing-here")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.get_json()["error"], "not_found")
        r = self.client.get(BETS)
        self.assertEqual(r.status_code, 405)


if __name__ == "__main__":
    logging.disable(logging.WARNING)
    unittest.main(verbosity=2)
