"""
PUMP CASINO — Monte Carlo Simulation

Plays many rounds of one game through the real RoundEngine (seeded RNG,
manual clock, in-memory ledger) and reports measured RTP against the
closed-form value where one exists. Every round goes through the same
place_bet → act → settle path as live play, so this doubles as a soak test
of the state machines.

Usage:
    from round_engine.simulate import simulate
    result = simulate("dice", rounds=50_000, params={"prediction": 50})
    print(result.to_dict())
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from config.game_schema import MINES_GRID_SIZE, GameType, parse_params
from config.settings import EngineConfig
from round_engine.engine import RoundEngine
from round_engine.games.blackjack import DEALER_STANDS_ON
from round_engine.games.dice import dice_multiplier
from round_engine.games.mines import multiplier_after
from round_engine.games.roulette import PAYOUT_MULTIPLIERS, SLOTS_BY_COLOR, WHEEL_LAYOUT
from round_engine.games.slots import PAYTABLE, REEL_COUNT
from round_engine.scheduler import ManualClock
from tools.balance_store import MemoryBalanceStore
from tools.event_sink import MemoryEventSink
from tools.ledger import Ledger
from tools.rng_provider import SeededRNG

SIM_PLAYER = "simulator"
SIM_BANKROLL = Decimal("1000000000")

DEFAULT_PARAMS = {
    GameType.ROULETTE: {"color": "red"},
    GameType.CRASH: {"auto_cashout": 2.0},
}


@dataclass
class SimResult:
    """Simulation results for one game."""
    game_type: str
    rounds: int
    rtp_theoretical: Optional[float]
    rtp: float
    avg_multiplier: float
    max_multiplier_hit: float
    hit_rate: float  # share of rounds with payout > wager
    total_wagered: float
    total_returned: float
    confidence_95: tuple = (0.0, 0.0)
    distribution: dict = field(default_factory=dict)
    params: dict = field(default_factory=dict)

    @property
    def house_edge_measured(self) -> float:
        return 1 - self.rtp

    def to_dict(self) -> dict:
        return {
            "game_type": self.game_type,
            "rounds": self.rounds,
            "params": self.params,
            "rtp_theoretical": None if self.rtp_theoretical is None else round(self.rtp_theoretical, 6),
            "rtp": round(self.rtp, 6),
            "house_edge_measured": round(self.house_edge_measured, 6),
            "avg_multiplier": round(self.avg_multiplier, 4),
            "max_multiplier_hit": round(self.max_multiplier_hit, 2),
            "hit_rate": round(self.hit_rate, 4),
            "total_wagered": round(self.total_wagered, 2),
            "total_returned": round(self.total_returned, 2),
            "confidence_95": [round(x, 6) for x in self.confidence_95],
            "distribution": self.distribution,
        }


def theoretical_rtp(game_type, params: Optional[dict] = None) -> Optional[float]:
    """Closed-form return to player, or None where there isn't a simple one."""
    game = GameType.parse(game_type)
    p = parse_params(game, params or DEFAULT_PARAMS.get(game, {}))
    if game == GameType.DICE:
        return (100 - p.prediction) / 100 * float(dice_multiplier(p.prediction))
    if game == GameType.SLOTS:
        per_symbol = (1 / len(PAYTABLE)) ** REEL_COUNT
        return sum(per_symbol * mult for mult in PAYTABLE.values())
    if game == GameType.ROULETTE:
        return len(SLOTS_BY_COLOR[p.color]) / len(WHEEL_LAYOUT) * PAYOUT_MULTIPLIERS[p.color]
    if game == GameType.CRASH:
        # P(crash point > a) = 0.99 / a
        return 0.99 if p.auto_cashout else None
    return None


def _bucket(mult: float) -> str:
    if mult == 0:
        return "0x"
    if mult < 2:
        return "1-2x"
    if mult < 5:
        return "2-5x"
    if mult < 10:
        return "5-10x"
    if mult < 50:
        return "10-50x"
    if mult < 100:
        return "50-100x"
    return "100x+"


def _run_timers_until_done(engine: RoundEngine, clock: ManualClock, round_id: str) -> None:
    while not engine.get_round_state(round_id).is_terminal:
        due = engine.scheduler.next_due()
        if due is None:
            raise RuntimeError(f"Round {round_id} is stuck with no pending timer")
        clock.set(max(clock.now(), due))
        engine.tick()


def _play_one(engine: RoundEngine, clock: ManualClock, game: GameType, params: dict,
              wager: Decimal, mines_reveals: int) -> str:
    rid = engine.place_bet(SIM_PLAYER, game, params, wager)
    if game == GameType.BLACKJACK:
        # mimic the dealer: hit below 17
        state = engine.get_round_state(rid)
        while not state.is_terminal and state.state["player_score"] < DEALER_STANDS_ON:
            state = engine.act(rid, "hit")
        if not state.is_terminal:
            engine.act(rid, "stand")
    elif game == GameType.MINES:
        state = engine.get_round_state(rid)
        for index in range(mines_reveals):
            if state.is_terminal:
                break
            state = engine.act(rid, "reveal", {"index": index})
        if not state.is_terminal:
            engine.act(rid, "cash_out")
    _run_timers_until_done(engine, clock, rid)
    return rid


def simulate(game_type, rounds: int = 10_000, seed: int = 42, params: Optional[dict] = None,
             wager="100", mines_reveals: int = 3) -> SimResult:
    """Run a Monte Carlo simulation through the engine."""
    game = GameType.parse(game_type)
    params = dict(params if params is not None else DEFAULT_PARAMS.get(game, {}))
    if game == GameType.CRASH and not params.get("auto_cashout"):
        raise ValueError("Crash simulation needs an auto_cashout target")

    config = EngineConfig.override(INITIAL_BALANCE=SIM_BANKROLL, BALANCE_DB_PATH="")
    clock = ManualClock()
    sink = MemoryEventSink()
    engine = RoundEngine(
        ledger=Ledger(MemoryBalanceStore(initial_balance=SIM_BANKROLL),
                      journal_size=config.LEDGER_JOURNAL_SIZE),
        rng=SeededRNG(seed),
        config=config,
        clock=clock,
        sink=sink,
    )
    stake = Decimal(str(wager))

    total_wagered = 0.0
    total_returned = 0.0
    wins = 0
    max_mult = 0.0
    buckets = {}
    multipliers = []

    for _ in range(rounds):
        rid = _play_one(engine, clock, game, params, stake, mines_reveals)
        state = engine.get_round_state(rid)
        mult = float(state.payout / state.wager)
        total_wagered += float(state.wager)
        total_returned += float(state.payout)
        if state.payout > state.wager:
            wins += 1
        max_mult = max(max_mult, mult)
        multipliers.append(mult)
        bucket = _bucket(mult)
        buckets[bucket] = buckets.get(bucket, 0) + 1

    rtp = total_returned / total_wagered if total_wagered > 0 else 0
    avg_mult = sum(multipliers) / rounds if rounds else 0
    variance = sum((m - avg_mult) ** 2 for m in multipliers) / rounds if rounds else 0
    std_err = math.sqrt(variance / rounds) if rounds > 0 else 0
    ci = (rtp - 1.96 * std_err, rtp + 1.96 * std_err)

    theoretical = theoretical_rtp(game, params)
    if game == GameType.MINES:
        theoretical = mines_expected_multiplier(mines_reveals, parse_params(game, params).mine_count)

    return SimResult(
        game_type=game.value,
        rounds=rounds,
        rtp_theoretical=theoretical,
        rtp=rtp,
        avg_multiplier=avg_mult,
        max_multiplier_hit=max_mult,
        hit_rate=wins / rounds if rounds else 0,
        total_wagered=total_wagered,
        total_returned=total_returned,
        confidence_95=ci,
        distribution={k: round(v / rounds, 4) for k, v in sorted(buckets.items())},
        params=params,
    )


def mines_expected_multiplier(reveals: int, mine_count: int) -> float:
    """Probability of surviving `reveals` picks times the cash-out multiplier.
    Fair odds, so this is 1.0 for any reachable number of reveals."""
    reveals = min(reveals, MINES_GRID_SIZE - mine_count)
    survive = 1.0
    for step in range(reveals):
        tiles = MINES_GRID_SIZE - step
        survive *= (tiles - mine_count) / tiles
    return survive * multiplier_after(reveals, mine_count)
