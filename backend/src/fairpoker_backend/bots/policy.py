from __future__ import annotations

import random
import secrets
from dataclasses import dataclass

from fairpoker_backend.engine.hands import evaluate_any, rank_value
from fairpoker_backend.engine.models import ActionKind, BettingRound, Difficulty


@dataclass(frozen=True)
class PlayingStyle:
    aggression: float
    bluff_frequency: float
    fold_threshold: float
    call_threshold: float
    raise_threshold: float


STYLES = {
    Difficulty.EASY: PlayingStyle(0.2, 0.1, 0.6, 0.4, 0.8),
    Difficulty.MEDIUM: PlayingStyle(0.4, 0.25, 0.4, 0.6, 0.8),
    Difficulty.HARD: PlayingStyle(0.7, 0.4, 0.3, 0.7, 0.85),
}

STRENGTH_BY_CATEGORY = {
    10: 0.99,
    9: 0.95,
    8: 0.90,
    7: 0.85,
    6: 0.75,
    5: 0.65,
    4: 0.55,
    3: 0.45,
    2: 0.35,
    1: 0.20,
}


@dataclass(frozen=True)
class AIView:
    hole_cards: list[str]
    community_cards: list[str]
    pot: int
    to_call: int
    chips: int
    current_bet: int
    betting_round: BettingRound
    ante: int


@dataclass
class BotDecision:
    action: ActionKind
    amount: int | None = None
    think_delay_s: float = 2.0


def hand_strength(hole_cards: list[str], community_cards: list[str]) -> float:
    cards = list(hole_cards) + list(community_cards)
    evaluation = evaluate_any(cards)
    strength = STRENGTH_BY_CATEGORY[evaluation.strength]
    if evaluation.strength <= 2:
        high_card = max(rank_value(card) for card in cards)
        if high_card >= 12:
            strength += 0.1
        if high_card == 14:
            strength += 0.15
    return min(strength, 1.0)


def pot_odds(pot: int, to_call: int) -> float:
    if to_call == 0:
        return 1.0
    return pot / (pot + to_call)


def generate_secret() -> tuple[int, str]:
    # Not third-party verifiable; the AI is a fixed, known party.
    return secrets.randbelow(1_000_000), f"ai-salt-{secrets.token_hex(6)}"


class BotPolicy:
    def __init__(self, difficulty: Difficulty = Difficulty.MEDIUM) -> None:
        self.difficulty = difficulty
        self.style = STYLES[difficulty]

    def choose_action(
        self,
        *,
        view: AIView,
        rng: random.Random,
        delay_range: tuple[float, float] = (1.5, 3.5),
    ) -> BotDecision:
        kind, amount = self.propose(view, rng)
        action, legal_amount = self.legalize(view, kind, amount)
        return BotDecision(
            action=action,
            amount=legal_amount,
            think_delay_s=rng.uniform(*delay_range),
        )

    def propose(self, view: AIView, rng: random.Random) -> tuple[ActionKind, int | None]:
        strength = hand_strength(view.hole_cards, view.community_cards)
        odds = pot_odds(view.pot, view.to_call)
        roll = rng.random()
        if view.betting_round is BettingRound.PREFLOP:
            return self._preflop(view, strength, odds, roll)
        return self._postflop(view, strength, odds, roll)

    def _preflop(
        self,
        view: AIView,
        strength: float,
        odds: float,
        roll: float,
    ) -> tuple[ActionKind, int | None]:
        style = self.style
        base = view.to_call or view.ante

        if strength >= 0.8:
            if roll < style.aggression:
                return ActionKind.RAISE, int(base * (1.5 + roll))
            return ActionKind.CALL, None

        if strength >= style.call_threshold:
            if roll < style.aggression * 0.7:
                return ActionKind.RAISE, int(base * 1.2)
            return ActionKind.CALL, None

        if strength < style.fold_threshold:
            if roll < style.bluff_frequency and view.to_call < view.ante:
                return ActionKind.RAISE, view.to_call * 2 + view.ante // 2
            return ActionKind.FOLD, None

        if odds > strength:
            return ActionKind.CALL, None
        return ActionKind.FOLD, None

    def _postflop(
        self,
        view: AIView,
        strength: float,
        odds: float,
        roll: float,
    ) -> tuple[ActionKind, int | None]:
        style = self.style
        base = view.to_call or view.ante

        if strength >= style.raise_threshold:
            return ActionKind.RAISE, int(view.pot * (0.5 + roll * 0.5)) + view.ante * 3 // 10

        if strength >= 0.6:
            if roll < style.aggression * 0.6:
                return ActionKind.RAISE, int(base * 1.5)
            return ActionKind.CALL, None

        if strength >= 0.4:
            if odds > 0.3 or view.to_call < view.pot * 0.2:
                return ActionKind.CALL, None
            return ActionKind.FOLD, None

        if roll < style.bluff_frequency and view.to_call < view.pot * 0.5:
            return ActionKind.RAISE, int(view.pot * (0.7 + roll * 0.5))

        return ActionKind.FOLD, None

    @staticmethod
    def legalize(
        view: AIView,
        kind: ActionKind,
        amount: int | None,
    ) -> tuple[ActionKind, int | None]:
        """Map a proposal onto an action the table will accept for this seat."""
        if kind is ActionKind.FOLD or kind is ActionKind.CHECK:
            return (ActionKind.CHECK, None) if view.to_call == 0 else (ActionKind.FOLD, None)

        if kind is ActionKind.CALL:
            if view.to_call > view.chips:
                return ActionKind.FOLD, None
            return ActionKind.CALL, None

        size = max(1, amount or 0)
        if view.current_bet == 0:
            if view.chips == 0:
                return ActionKind.CHECK, None
            return ActionKind.BET, min(size, view.chips)

        headroom = view.chips - view.to_call
        if headroom <= 0:
            if view.to_call <= view.chips:
                return ActionKind.CALL, None
            return ActionKind.FOLD, None
        return ActionKind.RAISE, min(size, headroom)
