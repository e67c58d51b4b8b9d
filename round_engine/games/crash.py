"""
PUMP CASINO — Crash

One shared curve, many independent wagers. A CrashTable is one round
instance:

    Betting(countdown) → Running → Crashed

and every wager on it is a CrashRound whose phase follows the table:

    Betting → Running → CashedOut | Crashed

The crash point is drawn when the table is created, before any wager is
accepted, and only shown once the table has crashed:

    crash_point = max(1.00, 0.99 / (1 - u))      # 1% edge, ~1% instant busts

While running, the multiplier is a deterministic function of elapsed time:

    m(t) = 1 + 0.2 * t^1.5

Cash-outs and the crash are linearizable: the caller holds `table.lock`, the
clock is read once, and the crash is evaluated for that instant before the
cash-out is considered. A cash-out at or after the crash instant loses.
"""

from __future__ import annotations

import math
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Optional

from config.game_schema import GameType
from config.settings import EngineConfig
from round_engine.errors import InvalidTransition
from round_engine.machine import LOSE, PUSH, WIN, PhaseMachine, RoundMachine
from round_engine.money import CENT, ZERO, apply_multiplier

HOUSE_FACTOR = 0.99
GROWTH = 0.2
EXPONENT = 1.5


def crash_point_from(u: float) -> float:
    """Inverse-CDF draw: P(crash >= x) = 0.99 / x for x >= 1."""
    if u >= 1.0:
        return math.inf
    return max(1.0, HOUSE_FACTOR / (1.0 - u))


def multiplier_at(elapsed: float) -> float:
    if elapsed <= 0:
        return 1.0
    return 1.0 + GROWTH * elapsed ** EXPONENT


def time_to_reach(multiplier: float) -> float:
    """Seconds of running until the curve reaches `multiplier`."""
    if multiplier <= 1.0:
        return 0.0
    if math.isinf(multiplier):
        return math.inf
    return ((multiplier - 1.0) / GROWTH) ** (1.0 / EXPONENT)


def floor_2dp(value: float) -> float:
    """Round a multiplier down to the cent. Goes through the decimal string so
    1.15 stays 1.15 instead of flooring its binary expansion to 1.14."""
    if math.isinf(value):
        return value
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_DOWN))


# ═══════════════════════════════════════════════════════════════
# Per-player wager
# ═══════════════════════════════════════════════════════════════

class BetPhase(str, Enum):
    BETTING = "betting"
    RUNNING = "running"
    CASHED_OUT = "cashed_out"
    CRASHED = "crashed"


class CrashRound(RoundMachine):
    game_type = GameType.CRASH
    Phase = BetPhase
    initial_phase = BetPhase.BETTING
    terminal_phases = frozenset({BetPhase.CASHED_OUT, BetPhase.CRASHED})
    transitions = {
        BetPhase.BETTING: {"launch": "_on_launch"},
        BetPhase.RUNNING: {"cash_out": "_on_cash_out", "crash": "_on_crash"},
    }
    player_actions = frozenset({"cash_out"})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.auto_cashout: Optional[float] = self.params.auto_cashout
        self.table: Optional["CrashTable"] = None
        self.cashed_multiplier: Optional[float] = None
        self.auto = False

    def _on_launch(self, now: float) -> None:
        self._enter(BetPhase.RUNNING, now)

    def _on_cash_out(self, now: float, multiplier: float, auto: bool = False) -> None:
        self.cashed_multiplier = multiplier
        self.auto = auto
        self.result = WIN if multiplier > 1.0 else PUSH
        self._enter(BetPhase.CASHED_OUT, now)

    def _on_crash(self, now: float) -> None:
        self.result = LOSE
        self._enter(BetPhase.CRASHED, now)

    def auto_cashout_at(self) -> Optional[float]:
        """Clock time at which this bet's auto cash-out triggers, if it can."""
        if self.auto_cashout is None or self.table is None or self.table.started_at is None:
            return None
        return self.table.started_at + time_to_reach(self.auto_cashout)

    def settle(self) -> Decimal:
        if self.phase != BetPhase.CASHED_OUT:
            return ZERO
        return apply_multiplier(self.wager, self.cashed_multiplier)

    def public_state(self) -> dict:
        table = self.table
        return {
            "table_id": table.table_id if table else None,
            "table_phase": table.phase.value if table else None,
            "auto_cashout": self.auto_cashout,
            "cashed_out_at": self.cashed_multiplier,
            "auto": self.auto,
            "crash_point": table.revealed_crash_point() if table else None,
        }


# ═══════════════════════════════════════════════════════════════
# Shared curve
# ═══════════════════════════════════════════════════════════════

class TablePhase(str, Enum):
    BETTING = "betting"
    RUNNING = "running"
    CRASHED = "crashed"


class CrashTable(PhaseMachine):
    """One crash round instance. All mutation must happen under `self.lock`."""

    Phase = TablePhase
    initial_phase = TablePhase.BETTING
    terminal_phases = frozenset({TablePhase.CRASHED})
    transitions = {
        TablePhase.BETTING: {"launch": "_on_launch"},
        TablePhase.RUNNING: {"advance": "_on_advance"},
    }

    def __init__(self, table_id: str, rng, config=EngineConfig, now: Optional[float] = None):
        super().__init__(config=config, now=now)
        self.table_id = table_id
        self.crash_point = crash_point_from(rng.uniform())
        self.countdown_started_at: Optional[float] = None
        self.started_at: Optional[float] = None
        self.crashed_at: Optional[float] = None
        self.bets: dict[str, CrashRound] = {}
        self.archived = False

    # ── Wagers ────────────────────────────────────────────────

    def join(self, bet: CrashRound) -> None:
        if self.phase != TablePhase.BETTING:
            raise InvalidTransition(f"Crash table {self.table_id} is {self.phase.value}; bets closed")
        bet.table = self
        self.bets[bet.round_id] = bet

    def open_countdown(self, at: float) -> None:
        """Start the betting countdown at `at`, which may lie in the future
        while the previous table cools down."""
        if self.countdown_started_at is None:
            self.countdown_started_at = at

    # ── Curve ─────────────────────────────────────────────────

    @property
    def crash_at(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return self.started_at + time_to_reach(self.crash_point)

    def current_multiplier(self, now: float) -> float:
        if self.phase == TablePhase.BETTING:
            return 1.0
        if self.phase == TablePhase.CRASHED:
            return self.crash_point
        return min(multiplier_at(now - self.started_at), self.crash_point)

    def _has_crashed_by(self, now: float) -> bool:
        return now >= self.crash_at or multiplier_at(now - self.started_at) >= self.crash_point

    def revealed_crash_point(self) -> Optional[float]:
        if self.phase != TablePhase.CRASHED:
            return None
        return floor_2dp(self.crash_point)

    # ── Transitions ───────────────────────────────────────────

    def _on_launch(self, now: float) -> None:
        self.started_at = now
        self._enter(TablePhase.RUNNING, now)
        for bet in self.bets.values():
            bet.transition("launch", now)
        self._advance(now)

    def _on_advance(self, now: float) -> None:
        self._advance(now)

    def _advance(self, now: float) -> None:
        """Settle everything that is due at `now`: auto cash-outs strictly
        before the crash instant, then the crash itself."""
        for bet in self._live_bets():
            target = bet.auto_cashout
            if target is None or target >= self.crash_point:
                continue
            at = bet.auto_cashout_at()
            if at <= now:
                bet.transition("cash_out", at, multiplier=target, auto=True)
        if self._has_crashed_by(now):
            self.crashed_at = max(now, self.started_at)
            for bet in self._live_bets():
                bet.transition("crash", now)
            self._enter(TablePhase.CRASHED, now)

    def cash_out(self, bet: CrashRound, now: float) -> CrashRound:
        """Player cash-out. The caller must hold `self.lock`.

        A bet that already went down with the table reports its loss again;
        one that already cashed out is an invalid transition.
        """
        if bet.phase == BetPhase.CRASHED:
            return bet
        if bet.is_terminal:
            bet.transition("cash_out", now)  # raises InvalidTransition
        if self.phase == TablePhase.BETTING:
            raise InvalidTransition(f"Crash table {self.table_id} has not launched yet")
        if self.phase == TablePhase.RUNNING:
            self._advance(now)
        if bet.is_terminal:
            # crashed (or auto-cashed) at or before this instant
            return bet
        bet.transition("cash_out", now, multiplier=floor_2dp(self.current_multiplier(now)))
        return bet

    def _live_bets(self) -> list[CrashRound]:
        return [b for b in self.bets.values() if not b.is_terminal]

    # ── Timers ────────────────────────────────────────────────

    def deadline(self) -> Optional[tuple[float, str]]:
        if self.phase == TablePhase.BETTING:
            if self.countdown_started_at is None:
                return None
            return self.countdown_started_at + self.config.CRASH_BETTING_SECONDS, "launch"
        if self.phase == TablePhase.RUNNING:
            due = [self.crash_at]
            for bet in self._live_bets():
                if bet.auto_cashout is not None and bet.auto_cashout < self.crash_point:
                    due.append(bet.auto_cashout_at())
            return min(due), "advance"
        return None

    def public_state(self, now: float) -> dict:
        countdown = None
        if self.phase == TablePhase.BETTING and self.countdown_started_at is not None:
            countdown = max(0.0, self.countdown_started_at
                            + self.config.CRASH_BETTING_SECONDS - now)
        return {
            "table_id": self.table_id,
            "phase": self.phase.value,
            "multiplier": round(self.current_multiplier(now), 2),
            "countdown": None if countdown is None else round(countdown, 2),
            "cooling_down": (self.countdown_started_at is not None
                             and now < self.countdown_started_at),
            "players": len(self.bets),
            "cashed_out": sum(1 for b in self.bets.values()
                              if b.phase == BetPhase.CASHED_OUT),
            "crash_point": self.revealed_crash_point(),
        }

    def describe(self) -> str:
        return f"crash table {self.table_id}"
