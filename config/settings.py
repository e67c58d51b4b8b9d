"""
Pump Casino - Engine Configuration

All tunables come from the environment (or a .env file) so deployments can
change timings and the starting bankroll without code changes.

    INITIAL_BALANCE              starting balance for a new player (1000)
    CRASH_BETTING_SECONDS        countdown before a crash round launches (5)
    CRASH_COOLDOWN_SECONDS       pause after a crash before the next countdown (3)
    CRASH_HISTORY_SIZE           recent crash points kept for display (10)
    DEALER_TICK_SECONDS          delay between dealer draws in blackjack (0.8)
    PLAYER_TURN_TIMEOUT_SECONDS  idle blackjack hand is force-stood after this (60)
    MINES_IDLE_TIMEOUT_SECONDS   idle mines board is force-cashed after this (300)
    SCHEDULER_INTERVAL_SECONDS   background scheduler poll interval (0.05)
    BALANCE_DB_PATH              SQLite balance store path; empty = in-memory
    LIVE_FEED_SIZE               outcomes kept in the live feed (20)
    LEADERBOARD_SIZE             players shown on the leaderboard (10)
    ROUND_HISTORY_SIZE           settled rounds kept for lookup after they finish (1000)
    LEDGER_JOURNAL_SIZE          ledger entries and settled round ids remembered (10000)
    SETTLEMENT_RETRY_SECONDS     delay before retrying a payout the balance store refused (1)
    RNG_BACKEND                  "secure" (default) or "seeded"
    RNG_SEED                     seed for the seeded backend
    LOG_LEVEL                    logging level (INFO)
"""

import logging
import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger("pumpcasino.config").warning(
            f"Ignoring non-numeric {key}={raw!r}, using {default}")
        return default


def _env_int(key: str, default: int) -> int:
    return int(_env_float(key, default))


class EngineConfig:

    # --- Bankroll ---
    INITIAL_BALANCE = Decimal(os.getenv("INITIAL_BALANCE", "1000"))

    # --- Crash timings (seconds) ---
    CRASH_BETTING_SECONDS = _env_float("CRASH_BETTING_SECONDS", 5.0)
    CRASH_COOLDOWN_SECONDS = _env_float("CRASH_COOLDOWN_SECONDS", 3.0)
    CRASH_HISTORY_SIZE = _env_int("CRASH_HISTORY_SIZE", 10)

    # --- Blackjack / Mines timings (seconds) ---
    DEALER_TICK_SECONDS = _env_float("DEALER_TICK_SECONDS", 0.8)
    PLAYER_TURN_TIMEOUT_SECONDS = _env_float("PLAYER_TURN_TIMEOUT_SECONDS", 60.0)
    MINES_IDLE_TIMEOUT_SECONDS = _env_float("MINES_IDLE_TIMEOUT_SECONDS", 300.0)

    # --- Scheduler ---
    SCHEDULER_INTERVAL_SECONDS = _env_float("SCHEDULER_INTERVAL_SECONDS", 0.05)

    # --- Storage / collaborators ---
    BALANCE_DB_PATH = os.getenv("BALANCE_DB_PATH", "")
    LIVE_FEED_SIZE = _env_int("LIVE_FEED_SIZE", 20)
    LEADERBOARD_SIZE = _env_int("LEADERBOARD_SIZE", 10)

    # --- Retention / settlement ---
    ROUND_HISTORY_SIZE = _env_int("ROUND_HISTORY_SIZE", 1000)
    LEDGER_JOURNAL_SIZE = _env_int("LEDGER_JOURNAL_SIZE", 10000)
    SETTLEMENT_RETRY_SECONDS = _env_float("SETTLEMENT_RETRY_SECONDS", 1.0)

    # --- RNG ---
    RNG_BACKEND = os.getenv("RNG_BACKEND", "secure")
    RNG_SEED = _env_int("RNG_SEED", 42)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def timeout_for(cls, key: str) -> float:
        """Look up a timing by attribute name (used by phase timeout tables)."""
        return float(getattr(cls, key))

    @classmethod
    def override(cls, **overrides) -> type:
        """Return a subclass with some values replaced. Handy for tests:

            cfg = EngineConfig.override(CRASH_BETTING_SECONDS=0, DEALER_TICK_SECONDS=0)
        """
        unknown = [k for k in overrides if not hasattr(cls, k)]
        if unknown:
            raise AttributeError(f"Unknown config keys: {unknown}")
        return type(f"{cls.__name__}Override", (cls,), dict(overrides))


def configure_logging(level: str = None) -> None:
    """Structured logging for the engine processes."""
    logging.basicConfig(
        level=getattr(logging, (level or EngineConfig.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
