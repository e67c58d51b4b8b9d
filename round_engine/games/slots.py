"""Slots — three independent reels, pays only on three of a kind."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from config.game_schema import GameType
from round_engine.machine import LOSE, WIN, RoundMachine
from round_engine.money import ZERO

REEL_COUNT = 3

# symbol -> multiplier on three of a kind
PAYTABLE = {
    "seven": 50,
    "diamond": 25,
    "cherry": 10,
    "lemon": 5,
}
SYMBOLS = list(PAYTABLE)
SYMBOL_ICONS = {"seven": "7️⃣", "diamond": "💎", "cherry": "🍒", "lemon": "🍋"}


class Phase(str, Enum):
    BETTING = "betting"
    SPUN = "spun"


class SlotsRound(RoundMachine):
    game_type = GameType.SLOTS
    Phase = Phase
    initial_phase = Phase.BETTING
    terminal_phases = frozenset({Phase.SPUN})
    transitions = {Phase.BETTING: {"spin": "_on_spin"}}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reels: list[str] = []

    def start(self, now: float) -> None:
        self.transition("spin", now)

    def _on_spin(self, now: float) -> None:
        self.reels = [self.rng.choice(SYMBOLS) for _ in range(REEL_COUNT)]
        self.result = WIN if len(set(self.reels)) == 1 else LOSE
        self._enter(Phase.SPUN, now)

    def settle(self) -> Decimal:
        if self.result != WIN:
            return ZERO
        return self.wager * PAYTABLE[self.reels[0]]

    def public_state(self) -> dict:
        return {
            "reels": list(self.reels),
            "icons": [SYMBOL_ICONS[s] for s in self.reels],
            "paytable": dict(PAYTABLE),
        }
