"""Blackjack — single deck, dealer stands on 17, wins pay 2x."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from config.game_schema import GameType
from round_engine.machine import LOSE, PUSH, WIN, RoundMachine
from round_engine.money import ZERO

SUITS = ["♥", "♦", "♣", "♠"]
RANKS = ["2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"]
DEALER_STANDS_ON = 17


@dataclass(frozen=True)
class Card:
    suit: str
    rank: str

    @property
    def value(self) -> int:
        if self.rank in ("J", "Q", "K"):
            return 10
        if self.rank == "A":
            return 11
        return int(self.rank)

    def to_dict(self) -> dict:
        return {"suit": self.suit, "rank": self.rank, "value": self.value}

    def __str__(self):
        return f"{self.rank}{self.suit}"


def new_deck() -> list[Card]:
    return [Card(s, r) for s in SUITS for r in RANKS]


def hand_score(hand) -> int:
    """Aces count 11, dropping to 1 one at a time while the hand is over 21.

    Accepts Cards or bare rank strings: hand_score(["10", "6", "A"]) == 17.
    """
    ranks = [c.rank if isinstance(c, Card) else str(c) for c in hand]
    score = sum(Card("♠", r).value for r in ranks)
    aces = ranks.count("A")
    while score > 21 and aces > 0:
        score -= 10
        aces -= 1
    return score


class Phase(str, Enum):
    BETTING = "betting"
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    FINISHED = "finished"


class BlackjackRound(RoundMachine):
    game_type = GameType.BLACKJACK
    Phase = Phase
    initial_phase = Phase.BETTING
    terminal_phases = frozenset({Phase.FINISHED})
    transitions = {
        Phase.BETTING: {"deal": "_on_deal"},
        Phase.PLAYER_TURN: {"hit": "_on_hit", "stand": "_on_stand"},
        Phase.DEALER_TURN: {"dealer_draw": "_on_dealer_draw"},
    }
    player_actions = frozenset({"hit", "stand"})
    timeouts = {
        # abandoned hand: forced stand
        Phase.PLAYER_TURN: ("PLAYER_TURN_TIMEOUT_SECONDS", "stand"),
        Phase.DEALER_TURN: ("DEALER_TICK_SECONDS", "dealer_draw"),
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.deck: list[Card] = []
        self.player_hand: list[Card] = []
        self.dealer_hand: list[Card] = []
        self.natural = False
        self.forced_stand = False

    def start(self, now: float) -> None:
        self.transition("deal", now)

    # ── Handlers ──────────────────────────────────────────────

    def _draw(self) -> Card:
        return self.deck.pop()

    def _on_deal(self, now: float) -> None:
        self.deck = self.rng.shuffle(new_deck())
        self.player_hand = [self._draw(), self._draw()]
        self.dealer_hand = [self._draw(), self._draw()]
        # noted, but paid like any other win at showdown
        self.natural = hand_score(self.player_hand) == 21
        self._enter(Phase.PLAYER_TURN, now)

    def _on_hit(self, now: float) -> None:
        self.player_hand.append(self._draw())
        if hand_score(self.player_hand) > 21:
            self.result = LOSE
            self._enter(Phase.FINISHED, now)

    def _on_stand(self, now: float) -> None:
        if now - self.last_activity_at >= self.config.PLAYER_TURN_TIMEOUT_SECONDS:
            self.forced_stand = True
        self._enter(Phase.DEALER_TURN, now)

    def _on_dealer_draw(self, now: float) -> None:
        if hand_score(self.dealer_hand) < DEALER_STANDS_ON:
            self.dealer_hand.append(self._draw())
        if hand_score(self.dealer_hand) >= DEALER_STANDS_ON:
            self._showdown(now)

    def _showdown(self, now: float) -> None:
        player = hand_score(self.player_hand)
        dealer = hand_score(self.dealer_hand)
        if dealer > 21 or player > dealer:
            self.result = WIN
        elif player == dealer:
            self.result = PUSH
        else:
            self.result = LOSE
        self._enter(Phase.FINISHED, now)

    # ── Settlement / view ─────────────────────────────────────

    def settle(self) -> Decimal:
        if self.result == WIN:
            return self.wager * 2
        if self.result == PUSH:
            return self.wager
        return ZERO

    def public_state(self) -> dict:
        reveal_dealer = self.phase in (Phase.DEALER_TURN, Phase.FINISHED)
        if reveal_dealer:
            dealer = [c.to_dict() for c in self.dealer_hand]
            dealer_score = hand_score(self.dealer_hand)
        else:
            dealer = [c.to_dict() for c in self.dealer_hand[:1]]
            dealer += [{"hidden": True}] * (len(self.dealer_hand) - 1)
            dealer_score = hand_score(self.dealer_hand[:1])
        return {
            "player_hand": [c.to_dict() for c in self.player_hand],
            "player_score": hand_score(self.player_hand),
            "dealer_hand": dealer,
            "dealer_score": dealer_score,
            "natural": self.natural,
            "forced_stand": self.forced_stand,
            "cards_remaining": len(self.deck),
        }
