"""Roulette — European wheel, color bets only."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from config.game_schema import GameType
from round_engine.machine import LOSE, WIN, RoundMachine
from round_engine.money import ZERO

# Clockwise slot order of a single-zero wheel.
WHEEL_LAYOUT = (
    0, 32, 15, 19, 4, 21, 2, 25, 17, 34, 6, 27, 13, 36, 11, 30, 8, 23, 10,
    5, 24, 16, 33, 1, 20, 14, 31, 9, 22, 18, 29, 7, 28, 12, 35, 3, 26,
)
RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})


def slot_color(number: int) -> str:
    if number == 0:
        return "green"
    return "red" if number in RED_NUMBERS else "black"


SLOTS_BY_COLOR = {
    color: tuple(n for n in WHEEL_LAYOUT if slot_color(n) == color)
    for color in ("green", "red", "black")
}

PAYOUT_MULTIPLIERS = {"green": 14, "red": 2, "black": 2}


def draw_color(rng) -> str:
    """green 1/37, red 18/37, black 18/37 — the wheel's true slot weights."""
    ticket = rng.int_range(0, len(WHEEL_LAYOUT) - 1)
    if ticket < len(SLOTS_BY_COLOR["green"]):
        return "green"
    if ticket < len(SLOTS_BY_COLOR["green"]) + len(SLOTS_BY_COLOR["red"]):
        return "red"
    return "black"


class Phase(str, Enum):
    BETTING = "betting"
    SPUN = "spun"


class RouletteRound(RoundMachine):
    game_type = GameType.ROULETTE
    Phase = Phase
    initial_phase = Phase.BETTING
    terminal_phases = frozenset({Phase.SPUN})
    transitions = {Phase.BETTING: {"spin": "_on_spin"}}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.bet_color = self.params.color
        self.winning_color = None
        self.number = None

    def start(self, now: float) -> None:
        self.transition("spin", now)

    def _on_spin(self, now: float) -> None:
        self.winning_color = draw_color(self.rng)
        # cosmetic: which pocket of that color the ball shows
        self.number = self.rng.choice(SLOTS_BY_COLOR[self.winning_color])
        self.result = WIN if self.winning_color == self.bet_color else LOSE
        self._enter(Phase.SPUN, now)

    def settle(self) -> Decimal:
        if self.result != WIN:
            return ZERO
        return self.wager * PAYOUT_MULTIPLIERS[self.winning_color]

    def public_state(self) -> dict:
        return {
            "bet_color": self.bet_color,
            "winning_color": self.winning_color,
            "number": self.number,
            "wheel_position": None if self.number is None else WHEEL_LAYOUT.index(self.number),
        }
