"""
PUMP CASINO — Round State Machine Core

Generic finite-state machine shared by all six games:

    Created → {in-progress phases…} → Terminal(outcome)

A concrete game declares:
    Phase               its phase enum
    initial_phase       where a new machine starts
    terminal_phases     phases that accept nothing further
    transitions         {phase: {event: handler method name}}
    player_actions      events a player may send through Act()
    timeouts            {phase: (config attribute, event)} fired by the scheduler
    settle()            pure payout of the terminal state

`transition()` rejects anything not in the table for the current phase with
InvalidTransition, so an action on a finished round can never re-apply.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from config.game_schema import GameType
from config.settings import EngineConfig
from round_engine.errors import InvalidParams, InvalidTransition
from round_engine.money import ZERO

WIN = "win"
LOSE = "lose"
PUSH = "push"


@dataclass
class RoundState:
    """Caller-visible snapshot of a round. Secret state is never included."""
    round_id: str
    game_type: str
    player_id: str
    phase: str
    wager: Decimal
    payout: Decimal
    result: Optional[str]         # win / lose / push, None until terminal
    is_terminal: bool
    multiplier: Optional[float]
    created_at: float
    allowed_actions: list = field(default_factory=list)
    state: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "game_type": self.game_type,
            "player_id": self.player_id,
            "phase": self.phase,
            "wager": str(self.wager),
            "payout": str(self.payout),
            "result": self.result,
            "is_terminal": self.is_terminal,
            "multiplier": self.multiplier,
            "created_at": self.created_at,
            "allowed_actions": list(self.allowed_actions),
            "state": self.state,
        }


# ═══════════════════════════════════════════════════════════════
# Phase machine
# ═══════════════════════════════════════════════════════════════

class PhaseMachine(ABC):
    """Phase storage, guarded transitions and declarative phase timeouts."""

    Phase: type[Enum]
    initial_phase: Enum
    terminal_phases: frozenset = frozenset()
    transitions: dict = {}
    timeouts: dict = {}

    def __init__(self, config=EngineConfig, now: Optional[float] = None):
        now = time.monotonic() if now is None else now
        self.config = config
        self.phase = self.initial_phase
        self.phase_entered_at = now
        self.last_activity_at = now
        self.history: list[tuple[str, float]] = [(self.phase.value, now)]
        self.lock = threading.RLock()

    # ── Introspection ─────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.phase in self.terminal_phases

    def allowed_events(self) -> list[str]:
        if self.is_terminal:
            return []
        return sorted(self.transitions.get(self.phase, {}))

    # ── Transitions ───────────────────────────────────────────

    def transition(self, event: str, now: float, **payload) -> None:
        """Apply `event`. Raises InvalidTransition if the current phase
        does not accept it."""
        if self.is_terminal:
            raise InvalidTransition(
                f"{self.describe()} is finished ({self.phase.value}); '{event}' rejected")
        handler = self.transitions.get(self.phase, {}).get(event)
        if handler is None:
            raise InvalidTransition(
                f"'{event}' is not valid in phase {self.phase.value} of {self.describe()}")
        getattr(self, handler)(now, **payload)
        self.last_activity_at = now

    def _enter(self, phase: Enum, now: float) -> None:
        self.phase = phase
        self.phase_entered_at = now
        self.history.append((phase.value, now))

    # ── Timers ────────────────────────────────────────────────

    def deadline(self) -> Optional[tuple[float, str]]:
        """(due time, event) of the next engine-initiated transition, if any.

        The clock restarts on every accepted event, so idle timeouts measure
        inactivity and repeating ticks (dealer draws) re-arm themselves.
        """
        if self.is_terminal:
            return None
        timeout = self.timeouts.get(self.phase)
        if timeout is None:
            return None
        key, event = timeout
        return self.last_activity_at + self.config.timeout_for(key), event

    def fire_due(self, now: float) -> bool:
        """Fire the pending timeout if it is due. Returns True if one fired."""
        due = self.deadline()
        if due is None or now < due[0]:
            return False
        self.transition(due[1], now)
        return True

    def describe(self) -> str:
        return type(self).__name__


# ═══════════════════════════════════════════════════════════════
# Round machine (one wager, one player)
# ═══════════════════════════════════════════════════════════════

class RoundMachine(PhaseMachine):
    """A PhaseMachine that owns a single debited wager."""

    game_type: GameType
    player_actions: frozenset = frozenset()
    action_params: dict = {}      # action -> accepted parameter names

    def __init__(self, round_id: str, player_id: str, wager: Decimal, params,
                 rng, config=EngineConfig, now: Optional[float] = None):
        super().__init__(config=config, now=now)
        self.round_id = round_id
        self.player_id = player_id
        self.wager = wager
        self.params = params
        self.rng = rng
        self.created_at = time.time()
        self.payout: Decimal = ZERO
        self.result: Optional[str] = None
        self.settled = False

    def start(self, now: float) -> None:
        """Advance out of the initial phase. Draws that fix the outcome of
        single-phase games happen here."""

    def apply_action(self, action: str, now: float, params: Optional[dict] = None) -> None:
        """Player-initiated transition. Engine-only events (deal, dealer_draw,
        launch…) are refused here even when the phase would accept them."""
        if action not in self.player_actions:
            raise InvalidTransition(f"'{action}' is not a player action for {self.describe()}")
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            raise InvalidParams(f"Parameters for '{action}' must be an object, got {type(params).__name__}")
        params = dict(params)
        accepted = self.action_params.get(action, ())
        unexpected = sorted(set(params) - set(accepted))
        if unexpected:
            raise InvalidParams(f"Unexpected parameters for '{action}': {unexpected}")
        self.transition(action, now, **params)

    @abstractmethod
    def settle(self) -> Decimal:
        """Payout of the terminal state. Pure: no draws, no side effects."""
        ...

    def multiplier(self) -> Optional[float]:
        if not self.is_terminal or not self.wager:
            return None
        return round(float(self.payout / self.wager), 4)

    def public_state(self) -> dict:
        return {}

    def state(self) -> RoundState:
        return RoundState(
            round_id=self.round_id,
            game_type=self.game_type.value,
            player_id=self.player_id,
            phase=self.phase.value,
            wager=self.wager,
            payout=self.payout,
            result=self.result,
            is_terminal=self.is_terminal,
            multiplier=self.multiplier(),
            created_at=self.created_at,
            allowed_actions=[a for a in self.allowed_events() if a in self.player_actions],
            state=self.public_state(),
        )

    def describe(self) -> str:
        return f"{self.game_type.value} round {self.round_id}"
