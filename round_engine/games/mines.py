"""Mines — 5x5 board, push-your-luck reveals with a fair-odds multiplier."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from fractions import Fraction

from config.game_schema import MINES_GRID_SIZE, GameType, MinesRevealParams, validate_model
from round_engine.errors import InvalidTransition
from round_engine.machine import LOSE, PUSH, WIN, RoundMachine
from round_engine.money import ZERO, apply_multiplier


def multiplier_after(reveals: int, mine_count: int, grid_size: int = MINES_GRID_SIZE) -> float:
    """Running multiplier after `reveals` safe picks.

    Each safe pick multiplies by tiles_left / safe_left, counted before the
    pick is removed. The product is 1 / P(surviving that many picks).
    """
    mult = Fraction(1)
    for step in range(reveals):
        mult *= Fraction(grid_size - step, grid_size - mine_count - step)
    return float(mult)


class Phase(str, Enum):
    BETTING = "betting"
    PLAYING = "playing"
    CASHED = "cashed"
    LOST = "lost"


class MinesRound(RoundMachine):
    game_type = GameType.MINES
    Phase = Phase
    initial_phase = Phase.BETTING
    terminal_phases = frozenset({Phase.CASHED, Phase.LOST})
    transitions = {
        Phase.BETTING: {"place_mines": "_on_place_mines"},
        Phase.PLAYING: {"reveal": "_on_reveal", "cash_out": "_on_cash_out"},
    }
    player_actions = frozenset({"reveal", "cash_out"})
    action_params = {"reveal": ("index",)}
    timeouts = {Phase.PLAYING: ("MINES_IDLE_TIMEOUT_SECONDS", "cash_out")}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.mine_count = self.params.mine_count
        self.mines: frozenset = frozenset()
        self.revealed = [False] * MINES_GRID_SIZE
        self.safe_reveals = 0
        self.exact_multiplier = Fraction(1)
        self.hit_index = None

    def start(self, now: float) -> None:
        self.transition("place_mines", now)

    @property
    def current_multiplier(self) -> float:
        return float(self.exact_multiplier)

    @property
    def safe_total(self) -> int:
        return MINES_GRID_SIZE - self.mine_count

    # ── Handlers ──────────────────────────────────────────────

    def _on_place_mines(self, now: float) -> None:
        self.mines = frozenset(self.rng.sample(range(MINES_GRID_SIZE), self.mine_count))
        self._enter(Phase.PLAYING, now)

    def _on_reveal(self, now: float, index=None) -> None:
        index = validate_model(MinesRevealParams, {"index": index}).index
        if self.revealed[index]:
            raise InvalidTransition(f"Cell {index} already revealed in {self.describe()}")
        self.revealed[index] = True
        if index in self.mines:
            self.hit_index = index
            self.revealed = [True] * MINES_GRID_SIZE
            self.result = LOSE
            self._enter(Phase.LOST, now)
            return
        tiles_left = MINES_GRID_SIZE - self.safe_reveals
        safe_left = self.safe_total - self.safe_reveals
        self.exact_multiplier *= Fraction(tiles_left, safe_left)
        self.safe_reveals += 1
        if self.safe_reveals == self.safe_total:
            self._cash_out(now)

    def _on_cash_out(self, now: float) -> None:
        self._cash_out(now)

    def _cash_out(self, now: float) -> None:
        self.result = WIN if self.exact_multiplier > 1 else PUSH
        self._enter(Phase.CASHED, now)

    # ── Settlement / view ─────────────────────────────────────

    def settle(self) -> Decimal:
        if self.phase != Phase.CASHED:
            return ZERO
        m = self.exact_multiplier
        return apply_multiplier(self.wager, Decimal(m.numerator) / Decimal(m.denominator))

    def public_state(self) -> dict:
        cells = []
        for i in range(MINES_GRID_SIZE):
            if self.revealed[i] or self.is_terminal:
                cells.append("mine" if i in self.mines else "gem")
            else:
                cells.append(None)
        return {
            "mine_count": self.mine_count,
            "cells": cells,
            "revealed": [i for i, r in enumerate(self.revealed) if r],
            "safe_reveals": self.safe_reveals,
            "current_multiplier": round(self.current_multiplier, 4),
            "next_multiplier": (
                round(multiplier_after(self.safe_reveals + 1, self.mine_count), 4)
                if self.safe_reveals < self.safe_total else None
            ),
            "hit_index": self.hit_index,
        }
