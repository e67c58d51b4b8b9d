"""
PUMP CASINO — Round Outcome Event Sinks

Exactly one RoundOutcome is published per settled round. Sinks are
observers only: they never move money and a sink failure never undoes a
settlement (the engine logs it and carries on).

    MemoryEventSink     keeps everything (tests, simulation)
    LoggingEventSink    one INFO line per outcome
    LeaderboardSink     net winnings per player
    LiveFeedSink        last N outcomes, newest first
    FanoutSink          publishes to several sinks

Usage:
    from tools.event_sink import FanoutSink, LeaderboardSink, LiveFeedSink
    board, feed = LeaderboardSink(), LiveFeedSink(size=20)
    engine = RoundEngine(sink=FanoutSink([board, feed]))
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from round_engine.money import ZERO

logger = logging.getLogger("pumpcasino.events")


@dataclass(frozen=True)
class RoundOutcome:
    round_id: str
    player_id: str
    game_type: str
    wager: Decimal
    payout: Decimal
    is_win: bool                 # payout > wager
    multiplier: Optional[float]
    result: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def net(self) -> Decimal:
        return self.payout - self.wager

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "player_id": self.player_id,
            "game_type": self.game_type,
            "wager": str(self.wager),
            "payout": str(self.payout),
            "is_win": self.is_win,
            "multiplier": self.multiplier,
            "result": self.result,
            "timestamp": self.timestamp,
        }


class EventSink(ABC):
    @abstractmethod
    def publish(self, outcome: RoundOutcome) -> None:
        ...


class MemoryEventSink(EventSink):
    def __init__(self):
        self.outcomes: list[RoundOutcome] = []
        self._lock = threading.Lock()

    def publish(self, outcome: RoundOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    def for_round(self, round_id: str) -> list[RoundOutcome]:
        with self._lock:
            return [o for o in self.outcomes if o.round_id == round_id]


class LoggingEventSink(EventSink):
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def publish(self, outcome: RoundOutcome) -> None:
        self.log.info(
            f"{outcome.game_type} {outcome.round_id} {outcome.player_id}: "
            f"wager={outcome.wager} payout={outcome.payout} "
            f"{'WIN' if outcome.is_win else 'no win'}"
        )


class LeaderboardSink(EventSink):
    """Per-player totals, ranked by net winnings."""

    def __init__(self, size: int = 10):
        self.size = size
        self._stats: dict[str, dict] = defaultdict(lambda: {
            "rounds": 0, "wins": 0, "wagered": ZERO, "paid": ZERO,
            "biggest_multiplier": 0.0,
        })
        self._lock = threading.Lock()

    def publish(self, outcome: RoundOutcome) -> None:
        with self._lock:
            s = self._stats[outcome.player_id]
            s["rounds"] += 1
            s["wins"] += 1 if outcome.is_win else 0
            s["wagered"] += outcome.wager
            s["paid"] += outcome.payout
            if outcome.multiplier is not None:
                s["biggest_multiplier"] = max(s["biggest_multiplier"], outcome.multiplier)

    def top(self, n: Optional[int] = None) -> list[dict]:
        with self._lock:
            rows = [
                {
                    "player_id": pid,
                    "rounds": s["rounds"],
                    "wins": s["wins"],
                    "wagered": str(s["wagered"]),
                    "net": str(s["paid"] - s["wagered"]),
                    "biggest_multiplier": s["biggest_multiplier"],
                    "_net": s["paid"] - s["wagered"],
                }
                for pid, s in self._stats.items()
            ]
        rows.sort(key=lambda r: (-r["_net"], r["player_id"]))
        for r in rows:
            del r["_net"]
        return rows[: n or self.size]


class LiveFeedSink(EventSink):
    def __init__(self, size: int = 20):
        self._feed: deque[RoundOutcome] = deque(maxlen=size)
        self._lock = threading.Lock()

    def publish(self, outcome: RoundOutcome) -> None:
        with self._lock:
            self._feed.appendleft(outcome)

    def recent(self, n: Optional[int] = None) -> list[dict]:
        with self._lock:
            items = list(self._feed)
        return [o.to_dict() for o in items[:n]]


class FanoutSink(EventSink):
    """Publish to every child. One failing child does not starve the rest."""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def publish(self, outcome: RoundOutcome) -> None:
        errors = []
        for sink in self.sinks:
            try:
                sink.publish(outcome)
            except Exception as e:
                logger.warning(f"{type(sink).__name__} failed for {outcome.round_id}: {e}")
                errors.append(e)
        if errors:
            raise errors[0]
