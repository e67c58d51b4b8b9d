"""
PUMP CASINO — Game Round Machines

One RoundMachine subclass per game. Crash wagers additionally share a
CrashTable (see round_engine.games.crash).

Usage:
    from round_engine.games import get_game_engine
    cls = get_game_engine("dice")
"""

from config.game_schema import GameType
from round_engine.games.blackjack import BlackjackRound
from round_engine.games.crash import CrashRound, CrashTable
from round_engine.games.dice import DiceRound
from round_engine.games.mines import MinesRound
from round_engine.games.roulette import RouletteRound
from round_engine.games.slots import SlotsRound

GAME_ENGINES = {
    GameType.BLACKJACK: BlackjackRound,
    GameType.DICE: DiceRound,
    GameType.SLOTS: SlotsRound,
    GameType.ROULETTE: RouletteRound,
    GameType.CRASH: CrashRound,
    GameType.MINES: MinesRound,
}

GAME_TYPES = [g.value for g in GAME_ENGINES]


def get_game_engine(game_type):
    """Get the round machine class for a game type."""
    return GAME_ENGINES[GameType.parse(game_type)]


__all__ = ["GAME_ENGINES", "GAME_TYPES", "get_game_engine", "CrashTable"]
