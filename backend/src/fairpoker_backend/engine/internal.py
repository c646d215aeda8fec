from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fairpoker_backend.engine.errors import DeckExhausted
from fairpoker_backend.engine.models import (
    AI_DISPLAY_NAME,
    AI_PLAYER_ID,
    AuditEvent,
    BettingRound,
    CommitmentRecord,
    Difficulty,
    GameAction,
    GameResult,
    Phase,
    RevealRecord,
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlayerRuntime:
    player_id: str
    display_name: str
    chips: int
    is_ai: bool = False
    round_contribution: int = 0
    total_contribution: int = 0
    acted_this_round: bool = False
    folded: bool = False
    all_in: bool = False
    hole_cards: list[str] = field(default_factory=list)
    joined_at: str = field(default_factory=now_iso)

    @property
    def can_act(self) -> bool:
        return not self.folded and not self.all_in

    def pay(self, amount: int) -> None:
        self.chips -= amount
        self.round_contribution += amount
        self.total_contribution += amount
        if self.chips == 0:
            self.all_in = True

    def reset_for_round(self) -> None:
        self.round_contribution = 0
        self.acted_this_round = False


@dataclass
class AIOpponent:
    difficulty: Difficulty
    secret_number: int
    salt: str
    player_id: str = AI_PLAYER_ID
    display_name: str = AI_DISPLAY_NAME


@dataclass
class GameRuntime:
    game_id: str
    host_id: str
    ante: int
    max_players: int
    solo: bool
    ai: AIOpponent | None
    channel_id: str | None = None
    phase: Phase = Phase.JOINING
    betting_round: BettingRound = BettingRound.PREFLOP
    pot: int = 0
    current_bet: int = 0
    players: dict[str, PlayerRuntime] = field(default_factory=dict)
    turn_order: list[str] = field(default_factory=list)
    turn_index: int | None = None
    community_cards: list[str] = field(default_factory=list)
    commitments: dict[str, CommitmentRecord] = field(default_factory=dict)
    reveals: dict[str, RevealRecord] = field(default_factory=dict)
    pending_secrets: dict[str, tuple[int, str]] = field(default_factory=dict)
    deck: list[str] = field(default_factory=list)
    deck_cursor: int = 0
    deck_digest: str | None = None
    seed: int | None = None
    actions: list[GameAction] = field(default_factory=list)
    audit_log: list[AuditEvent] = field(default_factory=list)
    result: GameResult | None = None
    created_at: str = field(default_factory=now_iso)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def current_player_id(self) -> str | None:
        if self.phase is not Phase.PLAYING or self.turn_index is None:
            return None
        return self.turn_order[self.turn_index]

    def live_players(self) -> list[PlayerRuntime]:
        return [self.players[pid] for pid in self.turn_order if not self.players[pid].folded]

    def next_card(self) -> str:
        if self.deck_cursor >= len(self.deck):
            raise DeckExhausted(f"game {self.game_id} dealt past card {len(self.deck)}")
        card = self.deck[self.deck_cursor]
        self.deck_cursor += 1
        return card
