"""
PUMP CASINO — Engine Error Taxonomy

Every failure the engine reports to a caller is one of these. They are all
synchronous and local; the engine never retries them on its own.
"""


class EngineError(Exception):
    """Base for all round-engine failures."""

    code = "engine_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class InsufficientFunds(EngineError):
    """Wager exceeds the player's balance. Raised before any state mutation."""
    code = "insufficient_funds"

    def __init__(self, player_id: str, balance, amount):
        self.player_id = player_id
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient balance for {player_id}: {balance} < {amount}")


class InvalidParams(EngineError):
    code = "invalid_params"


class InvalidTransition(EngineError):
    """Action is not legal in the round's current phase."""
    code = "invalid_transition"


class RoundInProgress(InvalidTransition):
    """Player already has an unfinished round in this game slot."""
    code = "round_in_progress"


class NotFound(EngineError):
    code = "not_found"


class EntropyUnavailable(EngineError):
    """The entropy source failed. Fatal for the bet attempt; nothing was debited."""
    code = "entropy_unavailable"


class DuplicateSettlement(EngineError):
    """A second debit or credit was attempted for the same round."""
    code = "duplicate_settlement"
