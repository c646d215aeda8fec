from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


ENGINE_VERSION = "1.0"
SHUFFLE_ALGORITHM = "Fisher-Yates"
COMMITMENT_SCHEME = "SHA256"
AI_PLAYER_ID = "poker-bot-ai"
AI_DISPLAY_NAME = "PokerBot AI"


class Phase(str, Enum):
    JOINING = "joining"
    COMMITTING = "committing"
    REVEALING = "revealing"
    PLAYING = "playing"
    FINISHED = "finished"


PHASE_ORDER = [Phase.JOINING, Phase.COMMITTING, Phase.REVEALING, Phase.PLAYING, Phase.FINISHED]


class BettingRound(str, Enum):
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"


class ActionKind(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class RecordKind(str, Enum):
    GAME_ANNOUNCEMENT = "game_announcement"
    PLAYER_COMMIT = "player_commit"
    PLAYER_REVEAL = "player_reveal"
    DECK_GENERATION = "deck_generation"
    GAME_ACTION = "game_action"
    GAME_RESULT = "game_result"
    BOT_IDENTITY = "bot_identity"


RECORD_KIND_CODES = {
    RecordKind.GAME_ANNOUNCEMENT: 1,
    RecordKind.PLAYER_COMMIT: 30100,
    RecordKind.PLAYER_REVEAL: 30101,
    RecordKind.DECK_GENERATION: 30102,
    RecordKind.GAME_ACTION: 30103,
    RecordKind.GAME_RESULT: 30104,
    RecordKind.BOT_IDENTITY: 30105,
}


class EndReason(str, Enum):
    OPPONENTS_FOLDED = "opponents_folded"
    SHOWDOWN = "showdown"
    ABANDONED = "abandoned"


class EngineConfig(BaseModel):
    min_ante: int = 100
    default_ante: int = 1000
    default_max_players: int = 6
    min_players: int = 2
    max_players_limit: int = 10
    chips_per_ante: int = 100
    ai_think_delay_min_s: float = 1.5
    ai_think_delay_max_s: float = 3.5
    ai_seed: int | None = None
    display_name_fallback_len: int = 8

    model_config = ConfigDict(extra="forbid")


class GameConfig(BaseModel):
    ante: int
    max_players: int = 6
    solo: bool = False
    difficulty: Difficulty = Difficulty.MEDIUM

    model_config = ConfigDict(extra="forbid")


class CommitmentRecord(BaseModel):
    player_id: str
    commitment: str
    committed_at: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class RevealRecord(BaseModel):
    player_id: str
    number: int
    salt: str
    revealed_at: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class GameAction(BaseModel):
    player_id: str
    action: ActionKind
    amount: int | None = None
    betting_round: BettingRound
    timestamp: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class AuditEvent(BaseModel):
    seq: int
    game_id: str
    kind: RecordKind
    ts: str
    payload: dict[str, Any]
    tags: list[list[str]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)


class SignedReceipt(BaseModel):
    event_id: str
    kind: int
    pubkey: str
    created_at: int
    tags: list[list[str]]
    content: str
    sig: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class PotAward(BaseModel):
    player_id: str
    amount: int
    odd_chips: int = 0

    model_config = ConfigDict(extra="forbid")


class ShowdownRow(BaseModel):
    player_id: str
    display_name: str
    hole_cards: list[str]
    best_cards: list[str]
    best_hand_name: str
    hand_rank_value: int
    amount_won: int

    model_config = ConfigDict(extra="forbid")


class GameResult(BaseModel):
    reason: EndReason
    winners: list[PotAward]
    pot: int
    showdown: list[ShowdownRow] = Field(default_factory=list)
    final_hands: dict[str, list[str]] = Field(default_factory=dict)
    community_cards: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SeatView(BaseModel):
    player_id: str
    display_name: str
    chips: int
    round_contribution: int
    folded: bool
    all_in: bool
    is_ai: bool
    committed: bool
    revealed: bool

    model_config = ConfigDict(extra="forbid")


class GameView(BaseModel):
    game_id: str
    host_id: str
    ante: int
    max_players: int
    solo: bool
    difficulty: Difficulty | None
    phase: Phase
    betting_round: BettingRound
    pot: int
    current_bet: int
    community_cards: list[str]
    seats: list[SeatView]
    current_player_id: str | None
    seed: int | None
    created_at: str
    result: GameResult | None = None

    model_config = ConfigDict(extra="forbid")


class HandView(BaseModel):
    game_id: str
    player_id: str
    cards: list[str]
    hand_type: str
    hand_description: str
    community_cards: list[str]
    betting_round: BettingRound
    pot: int

    model_config = ConfigDict(extra="forbid")


class ActionOutcome(BaseModel):
    game_id: str
    player_id: str
    action: ActionKind
    amount: int | None
    pot: int
    current_bet: int
    betting_round: BettingRound
    phase: Phase
    round_advanced: bool
    community_cards: list[str]
    next_player_id: str | None
    result: GameResult | None = None

    model_config = ConfigDict(extra="forbid")


class CommitmentRow(BaseModel):
    player_id: str
    display_name: str
    commitment: str
    committed_at: str
    revealed_number: int | None = None
    salt: str | None = None
    revealed_at: str | None = None
    recomputed_commitment: str | None = None
    valid: bool | None = None

    model_config = ConfigDict(extra="forbid")


class SeedDerivation(BaseModel):
    contributions: list[dict[str, Any]]
    expression: str
    total: int
    master_seed: int | None
    matches: bool

    model_config = ConfigDict(extra="forbid")


class DeckVerification(BaseModel):
    algorithm: str
    lcg_multiplier: int
    lcg_modulus: int
    standard_deck: list[str]
    shuffled_deck: list[str]
    recomputed_match: bool
    digest_match: bool
    cards_dealt: int
    steps: list[str]

    model_config = ConfigDict(extra="forbid")


class AuditTrailRow(BaseModel):
    seq: int
    kind: RecordKind
    kind_code: int
    ts: str
    summary: str

    model_config = ConfigDict(extra="forbid")


class VerificationReport(BaseModel):
    game_id: str
    phase: Phase
    engine_version: str
    commitment_scheme: str
    commitments: list[CommitmentRow]
    all_reveals_valid: bool
    seed: SeedDerivation | None
    deck_digest: str | None
    deck: DeckVerification | None
    deck_hidden_reason: str | None
    showdown_confirmed: bool | None
    actions: list[GameAction]
    audit_trail: list[AuditTrailRow]
    report_hash: str

    model_config = ConfigDict(extra="forbid")


class GameSummary(BaseModel):
    game_id: str
    host_id: str
    host_name: str
    ante: int
    players: int
    max_players: int
    phase: Phase
    solo: bool

    model_config = ConfigDict(extra="forbid")


class CommandContext(BaseModel):
    player_id: str
    channel_id: str | None = None
    timestamp: int | None = None

    model_config = ConfigDict(extra="forbid")


class CommandRequest(BaseModel):
    command: str
    args: list[str] = Field(default_factory=list)
    context: CommandContext

    model_config = ConfigDict(extra="forbid")


class EngineError(BaseModel):
    code: str
    message: str

    model_config = ConfigDict(extra="forbid")


class CommandResponse(BaseModel):
    ok: bool
    text: str
    structured_data: dict[str, Any] = Field(default_factory=dict)
    error: EngineError | None = None

    model_config = ConfigDict(extra="forbid")
