"""
PUMP CASINO — Game Round Engine

Runs blackjack, dice, slots, roulette, crash and mines rounds against a
player bankroll. Entry point is round_engine.engine.RoundEngine.

Usage:
    from round_engine.engine import RoundEngine
    engine = RoundEngine()
    rid = engine.place_bet("alice", "dice", {"prediction": 50}, "10")
    print(engine.get_round_state(rid).to_dict())
"""

__version__ = "1.0.0"
