"""
Pump Casino - Bet Parameter Schema

Pydantic models for the player-chosen parameters of each game. The engine
validates `params` against these before touching the ledger, so a bad request
never debits anything.

Usage:
    from config.game_schema import GameType, parse_params
    params = parse_params(GameType.DICE, {"prediction": 50})
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from round_engine.errors import InvalidParams


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class GameType(str, Enum):
    BLACKJACK = "blackjack"
    DICE      = "dice"
    SLOTS     = "slots"
    ROULETTE  = "roulette"
    CRASH     = "crash"
    MINES     = "mines"

    @classmethod
    def parse(cls, value) -> "GameType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidParams(
                f"Unknown game type: {value}. Available: {[g.value for g in cls]}")


MINES_GRID_SIZE = 25
MINES_COUNT_OPTIONS = (1, 3, 5, 10, 20)


# ═══════════════════════════════════════════════════════════════
# Per-game parameters
# ═══════════════════════════════════════════════════════════════

class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class BlackjackParams(_Params):
    pass


class SlotsParams(_Params):
    pass


class DiceParams(_Params):
    """Win if the roll lands strictly above `prediction`."""
    prediction: float = Field(50.0, gt=2, lt=98)


class RouletteParams(_Params):
    color: Literal["red", "black", "green"]

    @field_validator("color", mode="before")
    @classmethod
    def lower_color(cls, v):
        return v.lower() if isinstance(v, str) else v


class CrashParams(_Params):
    auto_cashout: Optional[float] = Field(None, ge=1.01)


class MinesParams(_Params):
    mine_count: int = 3

    @field_validator("mine_count")
    @classmethod
    def allowed_counts(cls, v):
        if v not in MINES_COUNT_OPTIONS:
            raise ValueError(f"mine_count must be one of {list(MINES_COUNT_OPTIONS)}")
        return v


class MinesRevealParams(_Params):
    index: int = Field(..., ge=0, lt=MINES_GRID_SIZE)


PARAM_MODELS = {
    GameType.BLACKJACK: BlackjackParams,
    GameType.DICE: DiceParams,
    GameType.SLOTS: SlotsParams,
    GameType.ROULETTE: RouletteParams,
    GameType.CRASH: CrashParams,
    GameType.MINES: MinesParams,
}


def _explain(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "params"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def validate_model(model: type[BaseModel], data: Optional[dict]) -> BaseModel:
    """Validate raw data against a model, raising InvalidParams on failure."""
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise InvalidParams(_explain(e)) from e


def parse_params(game_type, data: Optional[dict]) -> BaseModel:
    return validate_model(PARAM_MODELS[GameType.parse(game_type)], data)
