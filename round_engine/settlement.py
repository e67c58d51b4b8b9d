"""
PUMP CASINO — Settlement

Turns a terminal round into money and an event, exactly once:

    payout = machine.settle()          # pure, >= 0
    ledger.credit(player, payout)      # journaled per round, refuses repeats
    sink.publish(RoundOutcome)         # failures logged, never unwind

The wager was debited at bet time, so a loss is a credit of 0.
"""

from __future__ import annotations

import logging
from typing import Optional

from round_engine.errors import DuplicateSettlement, EngineError
from round_engine.machine import RoundMachine
from round_engine.money import ZERO, to_money
from tools.event_sink import EventSink, RoundOutcome
from tools.ledger import Ledger

logger = logging.getLogger("pumpcasino.settlement")


class Settlement:
    def __init__(self, ledger: Ledger, sink: Optional[EventSink] = None):
        self.ledger = ledger
        self.sink = sink

    def apply(self, machine: RoundMachine) -> Optional[RoundOutcome]:
        """Settle a terminal round. Returns None if it was already settled.
        The caller holds `machine.lock`."""
        if not machine.is_terminal:
            raise EngineError(f"{machine.describe()} is not finished")
        if machine.settled:
            return None

        payout = to_money(machine.settle())
        if payout < ZERO:
            raise EngineError(f"Negative payout {payout} for {machine.describe()}")
        try:
            self.ledger.credit(machine.player_id, payout, machine.round_id)
        except DuplicateSettlement:
            logger.warning(f"{machine.describe()} was already credited; skipping")
            machine.settled = True
            return None
        machine.payout = payout
        machine.settled = True

        outcome = RoundOutcome(
            round_id=machine.round_id,
            player_id=machine.player_id,
            game_type=machine.game_type.value,
            wager=machine.wager,
            payout=payout,
            is_win=payout > machine.wager,
            multiplier=machine.multiplier(),
            result=machine.result,
        )
        self._publish(outcome)
        return outcome

    def _publish(self, outcome: RoundOutcome) -> None:
        if self.sink is None:
            return
        try:
            self.sink.publish(outcome)
        except Exception as e:
            logger.error(f"Event sink failed for round {outcome.round_id}: {e}")
