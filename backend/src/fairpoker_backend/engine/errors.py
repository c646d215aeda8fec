from __future__ import annotations


class EngineRejectedAction(Exception):
    """A recoverable rejection: state is unchanged and the caller may retry."""

    default_code = "REJECTED"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message


class IllegalPhaseTransition(EngineRejectedAction):
    default_code = "WRONG_PHASE"


class IllegalTurn(EngineRejectedAction):
    default_code = "NOT_YOUR_TURN"


class InvalidCommitment(EngineRejectedAction):
    default_code = "INVALID_COMMITMENT"


class CommitmentMismatch(InvalidCommitment):
    default_code = "COMMITMENT_MISMATCH"


class InsufficientChips(EngineRejectedAction):
    default_code = "INSUFFICIENT_CHIPS"


class InvalidAction(EngineRejectedAction):
    default_code = "INVALID_ACTION"


class GameFull(EngineRejectedAction):
    default_code = "GAME_FULL"


class GameNotFound(EngineRejectedAction):
    default_code = "GAME_NOT_FOUND"


class PlayerAlreadySeated(EngineRejectedAction):
    default_code = "ALREADY_SEATED"


class EngineInvariantViolation(RuntimeError):
    """Internal bug; never surfaced to players as a retryable condition."""


class DeckExhausted(EngineInvariantViolation):
    pass
