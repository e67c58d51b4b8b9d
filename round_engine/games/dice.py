"""Dice — roll over a chosen threshold. 2% edge baked into the 98 numerator."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from config.game_schema import GameType
from round_engine.machine import LOSE, WIN, RoundMachine
from round_engine.money import ZERO, apply_multiplier

EDGE_NUMERATOR = Decimal("98")


def dice_multiplier(prediction) -> Decimal:
    """98 / (100 - prediction)."""
    return EDGE_NUMERATOR / (Decimal("100") - Decimal(str(prediction)))


class Phase(str, Enum):
    BETTING = "betting"
    ROLLED = "rolled"


class DiceRound(RoundMachine):
    game_type = GameType.DICE
    Phase = Phase
    initial_phase = Phase.BETTING
    terminal_phases = frozenset({Phase.ROLLED})
    transitions = {Phase.BETTING: {"roll": "_on_roll"}}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.prediction = float(self.params.prediction)
        self.roll = None

    def start(self, now: float) -> None:
        self.transition("roll", now)

    def _on_roll(self, now: float) -> None:
        self.roll = self.rng.uniform() * 100
        self.result = WIN if self.roll > self.prediction else LOSE
        self._enter(Phase.ROLLED, now)

    def settle(self) -> Decimal:
        if self.result != WIN:
            return ZERO
        return apply_multiplier(self.wager, dice_multiplier(self.prediction))

    def public_state(self) -> dict:
        return {
            "prediction": self.prediction,
            "win_chance": round(100 - self.prediction, 4),
            "payout_multiplier": round(float(dice_multiplier(self.prediction)), 4),
            "roll": None if self.roll is None else round(self.roll, 2),
        }
