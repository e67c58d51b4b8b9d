"""
PUMP CASINO — Round Engine

Owns every live round and is the only thing that moves money:

    place_bet(player, game, params, wager)  → round_id
    act(round_id, action, params)            → RoundState
    get_round_state(round_id)                → RoundState
    active_rounds(player)                    → [RoundState]
    get_balance(player)                      → Decimal
    crash_state()                            → shared crash table view

Order of a bet: validate params → probe entropy → claim the (player, game)
slot → debit → start the machine. Anything that fails before the debit
leaves the balance untouched; a failure after it is refunded. Terminal
rounds are settled exactly once through Settlement. A payout the balance
store refuses is retried from the Scheduler; the round keeps its slot until
the credit lands. Settled rounds are swapped for a RoundState snapshot, and
only the most recent ROUND_HISTORY_SIZE snapshots are kept.

Concurrency: one lock per round (crash wagers share their table's lock), one
lock per player inside the Ledger. Engine-initiated transitions run from the
Scheduler, either via tick() or the background SchedulerThread.

Usage:
    engine = RoundEngine()
    engine.start()                                  # background timers
    rid = engine.place_bet("alice", "blackjack", {}, "25")
    engine.act(rid, "hit")
    engine.act(rid, "stand")
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict, defaultdict, deque
from collections.abc import Mapping
from decimal import Decimal
from functools import partial
from typing import Optional

from config.game_schema import GameType, parse_params
from config.settings import EngineConfig
from round_engine.errors import (
    EngineError, InvalidParams, InvalidTransition, NotFound, RoundInProgress,
)
from round_engine.games import get_game_engine
from round_engine.games.crash import BetPhase, CrashRound, CrashTable, TablePhase
from round_engine.machine import RoundMachine, RoundState
from round_engine.money import ZERO, to_money
from round_engine.scheduler import MonotonicClock, Scheduler, SchedulerThread
from round_engine.settlement import Settlement
from tools.balance_store import build_store
from tools.event_sink import (
    EventSink, FanoutSink, LeaderboardSink, LiveFeedSink, LoggingEventSink,
)
from tools.ledger import Ledger
from tools.rng_provider import RNGProvider, get_rng

logger = logging.getLogger("pumpcasino.engine")

MIN_RETRY_SECONDS = 0.05


def _new_id() -> str:
    return str(uuid.uuid4())[:12]


class RoundEngine:

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        rng: Optional[RNGProvider] = None,
        config=EngineConfig,
        clock=None,
        sink: Optional[EventSink] = None,
    ):
        self.config = config
        self.ledger = ledger or Ledger(build_store(config), journal_size=config.LEDGER_JOURNAL_SIZE)
        self.rng = rng or get_rng(config.RNG_BACKEND, config.RNG_SEED)
        self.clock = clock or MonotonicClock()

        self.leaderboard: Optional[LeaderboardSink] = None
        self.feed: Optional[LiveFeedSink] = None
        if sink is None:
            self.leaderboard = LeaderboardSink(config.LEADERBOARD_SIZE)
            self.feed = LiveFeedSink(config.LIVE_FEED_SIZE)
            sink = FanoutSink([LoggingEventSink(), self.leaderboard, self.feed])
        self.sink = sink
        self.settlement = Settlement(self.ledger, sink)
        self.scheduler = Scheduler()

        self._lock = threading.RLock()
        self._rounds: dict[str, RoundMachine] = {}
        self._player_rounds: dict[str, list[str]] = defaultdict(list)
        self._active: dict[tuple[str, GameType], str] = {}
        self._settled: OrderedDict[str, RoundState] = OrderedDict()   # snapshots, oldest first

        # ── Crash tables ──
        self._crash_lock = threading.RLock()
        self._betting_table: Optional[CrashTable] = None
        self._running_table: Optional[CrashTable] = None
        self._last_crash_at: Optional[float] = None
        self._crash_history: deque = deque(maxlen=config.CRASH_HISTORY_SIZE)

        self._thread: Optional[SchedulerThread] = None

    # ═══════════════════════════════════════════════════════════
    # Public API
    # ═══════════════════════════════════════════════════════════

    def place_bet(self, player_id: str, game_type, params: Optional[dict] = None,
                  wager=None) -> str:
        """Open a round. Returns its id; the wager is debited on success."""
        if not player_id or not str(player_id).strip():
            raise InvalidParams("player_id is required")
        game = GameType.parse(game_type)
        parsed = parse_params(game, params or {})
        amount = self._check_wager(wager)
        self.rng.check()

        round_id = _new_id()
        slot = (player_id, game)
        with self._lock:
            if slot in self._active:
                raise RoundInProgress(
                    f"{player_id} already has a {game.value} round in progress "
                    f"({self._active[slot]})")
            self._active[slot] = round_id

        try:
            now = self.clock.now()
            machine = get_game_engine(game)(
                round_id, player_id, amount, parsed, self.rng, self.config, now)
            if isinstance(machine, CrashRound):
                self._join_crash(machine, now)
            else:
                self._debit_and_start(machine, now)
        except Exception:
            self._release(slot, round_id)
            raise

        with self._lock:
            self._rounds[round_id] = machine
            self._player_rounds[player_id].append(round_id)
        logger.info(f"Bet {round_id}: {player_id} {amount} on {game.value}")

        if not isinstance(machine, CrashRound):
            with machine.lock:
                self._after_change(machine)
        return round_id

    def act(self, round_id: str, action: str, params: Optional[dict] = None) -> RoundState:
        """Apply a player action. Returns the round state after it."""
        if params is not None and not isinstance(params, Mapping):
            raise InvalidParams(f"Parameters for '{action}' must be an object, got {type(params).__name__}")
        machine, snapshot = self._lookup(round_id)
        if machine is None:
            return self._act_on_settled(snapshot, action)
        if isinstance(machine, CrashRound):
            if action != "cash_out":
                raise InvalidTransition(f"'{action}' is not a player action for {machine.describe()}")
            if params:
                raise InvalidParams(f"Unexpected parameters for 'cash_out': {sorted(params)}")
            return self._crash_cash_out(machine)
        with machine.lock:
            if machine.is_terminal:
                # payout still owed after a store failure
                self._finish(machine)
            now = self.clock.now()
            machine.apply_action(action, now, params)
            self._after_change(machine)
            return machine.state()

    def get_round_state(self, round_id: str) -> RoundState:
        machine, snapshot = self._lookup(round_id)
        if machine is None:
            return snapshot
        with machine.lock:
            return machine.state()

    def active_rounds(self, player_id: str) -> list[RoundState]:
        return [s for s in self.player_rounds(player_id) if not s.is_terminal]

    def player_rounds(self, player_id: str, limit: Optional[int] = None) -> list[RoundState]:
        """Newest first. Settled rounds past ROUND_HISTORY_SIZE are gone."""
        with self._lock:
            ids = list(reversed(self._player_rounds.get(player_id, [])))
        if limit is not None:
            ids = ids[:limit]
        states = []
        for rid in ids:
            try:
                states.append(self.get_round_state(rid))
            except NotFound:
                continue  # dropped from history since the ids were copied
        return states

    def get_balance(self, player_id: str) -> Decimal:
        return self.ledger.balance(player_id)

    def crash_state(self) -> dict:
        now = self.clock.now()
        with self._crash_lock:
            running, betting = self._running_table, self._betting_table
            history = list(self._crash_history)
        current = running or betting
        view = {"current": None, "next": None, "history": history}
        if current is not None:
            with current.lock:
                view["current"] = current.public_state(now)
        if running is not None and betting is not None:
            with betting.lock:
                view["next"] = betting.public_state(now)
        return view

    # ── Timers ────────────────────────────────────────────────

    def tick(self, now: Optional[float] = None) -> int:
        """Fire every engine-initiated transition due by `now`."""
        return self.scheduler.run_pending(self.clock.now() if now is None else now)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = SchedulerThread(
            self.scheduler, self.clock, self.config.SCHEDULER_INTERVAL_SECONDS)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is not None:
            self._thread.stop()
            self._thread = None

    # ═══════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def _check_wager(wager) -> Decimal:
        if wager is None:
            raise InvalidParams("wager is required")
        try:
            amount = to_money(wager)
        except ValueError as e:
            raise InvalidParams(str(e)) from e
        if amount <= ZERO:
            raise InvalidParams(f"Wager must be positive, got {wager}")
        return amount

    def _lookup(self, round_id: str) -> tuple[Optional[RoundMachine], Optional[RoundState]]:
        """The live machine, or the snapshot of a settled round."""
        with self._lock:
            machine = self._rounds.get(round_id)
            snapshot = None if machine is not None else self._settled.get(round_id)
        if machine is None and snapshot is None:
            raise NotFound(f"Round not found: {round_id}")
        return machine, snapshot

    @staticmethod
    def _act_on_settled(snapshot: RoundState, action: str) -> RoundState:
        # a crash wager that went down with its table reports the loss again
        if (snapshot.game_type == GameType.CRASH.value and action == "cash_out"
                and snapshot.phase == BetPhase.CRASHED.value):
            return snapshot
        raise InvalidTransition(
            f"'{action}' not allowed: {snapshot.game_type} round {snapshot.round_id} "
            f"is {snapshot.phase}")

    def _retire(self, machine: RoundMachine) -> None:
        """Swap a settled round for its snapshot. Crash wagers wait until
        their table is archived so the snapshot shows the crash point.
        Caller holds machine.lock."""
        if isinstance(machine, CrashRound) and not machine.table.archived:
            return
        snapshot = machine.state()
        with self._lock:
            if self._rounds.pop(machine.round_id, None) is None:
                return
            self._settled[machine.round_id] = snapshot
            while len(self._settled) > max(self.config.ROUND_HISTORY_SIZE, 1):
                old_id, old = self._settled.popitem(last=False)
                ids = self._player_rounds.get(old.player_id)
                if ids and old_id in ids:
                    ids.remove(old_id)
                if not ids:
                    self._player_rounds.pop(old.player_id, None)

    def _release(self, slot: tuple, round_id: str) -> None:
        with self._lock:
            if self._active.get(slot) == round_id:
                del self._active[slot]

    def _debit_and_start(self, machine: RoundMachine, now: float) -> None:
        self.ledger.debit(machine.player_id, machine.wager, machine.round_id)
        try:
            with machine.lock:
                machine.start(now)
        except EngineError as e:
            logger.error(f"{machine.describe()} failed to start, refunding: {e}")
            self.ledger.credit(machine.player_id, machine.wager, machine.round_id, reason="refund")
            raise

    def _after_change(self, machine: RoundMachine) -> None:
        """Settle or re-arm after any transition. Caller holds machine.lock."""
        if machine.is_terminal:
            self.scheduler.cancel(machine.round_id)
            self._finish(machine)
            return
        due = machine.deadline()
        if due is None:
            self.scheduler.cancel(machine.round_id)
        else:
            self.scheduler.schedule(machine.round_id, due[0], partial(self._on_round_timer, machine))

    def _on_round_timer(self, machine: RoundMachine, at: float) -> None:
        with machine.lock:
            if machine.is_terminal:
                return
            if machine.fire_due(at):
                logger.debug(f"{machine.describe()} timer fired -> {machine.phase.value}")
            self._after_change(machine)

    def _finish(self, machine: RoundMachine, now: Optional[float] = None) -> None:
        """Settle a terminal round, free its slot and retire it. If the
        payout cannot be credited the round stays registered, keeps its slot
        and is retried from the scheduler. Caller holds machine.lock."""
        if machine.settled:
            return
        key = f"settle:{machine.round_id}"
        try:
            outcome = self.settlement.apply(machine)
        except Exception as e:
            base = self.clock.now() if now is None else now
            retry_at = base + max(self.config.SETTLEMENT_RETRY_SECONDS, MIN_RETRY_SECONDS)
            logger.error(f"Settlement of {machine.describe()} failed, retrying at {retry_at:.2f}: {e}")
            self.scheduler.schedule(key, retry_at, partial(self._on_settle_retry, machine))
            return
        self.scheduler.cancel(key)
        self._release((machine.player_id, machine.game_type), machine.round_id)
        if outcome is not None:
            logger.info(
                f"Settled {machine.round_id}: {machine.result} "
                f"payout={outcome.payout} ({machine.player_id})")
        self._retire(machine)

    def _on_settle_retry(self, machine: RoundMachine, at: float) -> None:
        with machine.lock:
            self._finish(machine, at)

    # ── Crash ─────────────────────────────────────────────────

    def _open_table(self, now: float) -> CrashTable:
        """The table currently taking bets. Caller holds _crash_lock."""
        table = self._betting_table
        if table is not None and table.phase == TablePhase.BETTING:
            return table
        if table is not None and table.phase == TablePhase.RUNNING:
            self._running_table = table
        table = CrashTable(_new_id(), self.rng, self.config, now)
        self._betting_table = table
        logger.debug(f"Opened crash table {table.table_id}")
        return table

    def _arm_countdown(self, table: CrashTable, now: float) -> None:
        """Start the countdown once the table has a bet and nothing is
        running. Caller holds _crash_lock and table.lock."""
        if not table.bets or table.countdown_started_at is not None:
            return
        if self._running_table is not None and not self._running_table.is_terminal:
            return
        at = now
        if self._last_crash_at is not None:
            at = max(now, self._last_crash_at + self.config.CRASH_COOLDOWN_SECONDS)
        table.open_countdown(at)
        self._schedule_table(table)

    def _join_crash(self, bet: CrashRound, now: float) -> None:
        with self._crash_lock:
            while True:
                table = self._open_table(now)
                with table.lock:
                    if table.phase != TablePhase.BETTING:
                        continue
                    self.ledger.debit(bet.player_id, bet.wager, bet.round_id)
                    table.join(bet)
                    bet.lock = table.lock
                    self._arm_countdown(table, now)
                    return

    def _crash_cash_out(self, bet: CrashRound) -> RoundState:
        table = bet.table
        try:
            with table.lock:
                if bet.is_terminal and not bet.settled:
                    # payout still owed after a store failure
                    self._finish(bet)
                # clock read under the table lock: cash-out and crash are ordered
                now = self.clock.now()
                table.cash_out(bet, now)
                self._sync_table(table)
                return bet.state()
        finally:
            self._after_table_change(table)

    def _schedule_table(self, table: CrashTable) -> None:
        key = f"crash:{table.table_id}"
        due = table.deadline()
        if due is None:
            self.scheduler.cancel(key)
        else:
            self.scheduler.schedule(key, due[0], partial(self._on_table_timer, table))

    def _on_table_timer(self, table: CrashTable, at: float) -> None:
        try:
            with table.lock:
                if table.is_terminal:
                    return
                table.fire_due(at)
                self._sync_table(table)
        finally:
            self._after_table_change(table)

    def _sync_table(self, table: CrashTable) -> None:
        """Settle finished wagers and re-arm the table. Caller holds table.lock."""
        try:
            for bet in list(table.bets.values()):
                if bet.is_terminal and not bet.settled:
                    self._finish(bet)
        finally:
            self._schedule_table(table)

    def _after_table_change(self, table: CrashTable) -> None:
        """Table bookkeeping that needs _crash_lock (taken after table.lock
        is released, never while holding it)."""
        with self._crash_lock:
            if table.phase == TablePhase.RUNNING:
                if self._betting_table is table:
                    self._betting_table = None
                self._running_table = table
                return
            if table.phase != TablePhase.CRASHED or table.archived:
                return
            table.archived = True
            if self._running_table is table:
                self._running_table = None
            if self._betting_table is table:
                self._betting_table = None
            self._last_crash_at = table.crashed_at
            self._crash_history.appendleft(table.revealed_crash_point())
            logger.info(
                f"Crash table {table.table_id} busted at {table.revealed_crash_point():.2f}x "
                f"({len(table.bets)} bets)")
            with table.lock:
                for bet in list(table.bets.values()):
                    if bet.settled:
                        self._retire(bet)
            upcoming = self._betting_table
            if upcoming is not None:
                with upcoming.lock:
                    self._arm_countdown(upcoming, table.crashed_at)
