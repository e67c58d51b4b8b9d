"""
PUMP CASINO — Round Engine HTTP API

Flask blueprint: /api/casino/*

    POST /bets                       {player_id, game_type, params, wager} → round state
    POST /rounds/<id>/act            {action, params}                      → round state
    GET  /rounds/<id>                                                      → round state
    GET  /players/<id>                                                     → balance + active rounds
    GET  /players/<id>/rounds?limit=                                       → round history
    GET  /crash                                                            → shared crash table
    GET  /leaderboard?limit=
    GET  /feed?limit=

Engine errors come back as JSON {"error": code, "message": ...} with a status
from ERROR_STATUS.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from round_engine.errors import (
    DuplicateSettlement, EngineError, EntropyUnavailable, InsufficientFunds,
    InvalidParams, InvalidTransition, NotFound,
)

logger = logging.getLogger("pumpcasino.api")

casino_bp = Blueprint("casino", __name__, url_prefix="/api/casino")

# most specific first
ERROR_STATUS = [
    (InsufficientFunds, 402),
    (NotFound, 404),
    (InvalidParams, 400),
    (InvalidTransition, 409),
    (DuplicateSettlement, 409),
    (EntropyUnavailable, 503),
]


def _get_engine():
    """The RoundEngine attached by web_app.create_app()."""
    return current_app.extensions["round_engine"]


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidParams("Request body must be a JSON object")
    return data


def _limit(default: int) -> int:
    raw = request.args.get("limit", default)
    try:
        return max(1, min(int(raw), 100))
    except (TypeError, ValueError):
        raise InvalidParams(f"limit must be an integer, got {raw!r}")


@casino_bp.errorhandler(EngineError)
def engine_error(e: EngineError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(e, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.path}: {e}")
    return jsonify(e.to_dict()), status


# ═══════════════════════════════════════════════════════════
# Rounds
# ═══════════════════════════════════════════════════════════

@casino_bp.route("/bets", methods=["POST"])
def place_bet():
    data = _body()
    engine = _get_engine()
    round_id = engine.place_bet(
        data.get("player_id"),
        data.get("game_type"),
        data.get("params") or {},
        data.get("wager"),
    )
    state = engine.get_round_state(round_id).to_dict()
    state["balance"] = str(engine.get_balance(state["player_id"]))
    return jsonify(state), 201


@casino_bp.route("/rounds/<round_id>/act", methods=["POST"])
def act(round_id):
    data = _body()
    action = data.get("action")
    if not action:
        raise InvalidParams("action is required")
    engine = _get_engine()
    state = engine.act(round_id, action, data.get("params") or {}).to_dict()
    state["balance"] = str(engine.get_balance(state["player_id"]))
    return jsonify(state)


@casino_bp.route("/rounds/<round_id>")
def round_state(round_id):
    return jsonify(_get_engine().get_round_state(round_id).to_dict())


# ═══════════════════════════════════════════════════════════
# Players
# ═══════════════════════════════════════════════════════════

@casino_bp.route("/players/<player_id>")
def player(player_id):
    engine = _get_engine()
    return jsonify({
        "player_id": player_id,
        "balance": str(engine.get_balance(player_id)),
        "active_rounds": [s.to_dict() for s in engine.active_rounds(player_id)],
    })


@casino_bp.route("/players/<player_id>/rounds")
def player_rounds(player_id):
    rounds = _get_engine().player_rounds(player_id, limit=_limit(20))
    return jsonify({"player_id": player_id, "rounds": [s.to_dict() for s in rounds]})


# ═══════════════════════════════════════════════════════════
# Shared views
# ═══════════════════════════════════════════════════════════

@casino_bp.route("/crash")
def crash():
    return jsonify(_get_engine().crash_state())


@casino_bp.route("/leaderboard")
def leaderboard():
    board = _get_engine().leaderboard
    if board is None:
        return jsonify({"leaderboard": [], "enabled": False})
    return jsonify({"leaderboard": board.top(_limit(board.size)), "enabled": True})


@casino_bp.route("/feed")
def feed():
    live = _get_engine().feed
    if live is None:
        return jsonify({"feed": [], "enabled": False})
    return jsonify({"feed": live.recent(_limit(20)), "enabled": True})
