from __future__ import annotations

import itertools
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from fairpoker_backend.utils.cards import validate_card


RANK_VALUE = {"A": 14, "K": 13, "Q": 12, "J": 11, "T": 10}
RANK_VALUE.update({str(value): value for value in range(2, 10)})
WHEEL = (14, 5, 4, 3, 2)


class HandCategory(str, Enum):
    ROYAL_FLUSH = "royal-flush"
    STRAIGHT_FLUSH = "straight-flush"
    FOUR_KIND = "four-kind"
    FULL_HOUSE = "full-house"
    FLUSH = "flush"
    STRAIGHT = "straight"
    THREE_KIND = "three-kind"
    TWO_PAIR = "two-pair"
    PAIR = "pair"
    HIGH_CARD = "high-card"


CATEGORY_STRENGTH = {
    HandCategory.ROYAL_FLUSH: 10,
    HandCategory.STRAIGHT_FLUSH: 9,
    HandCategory.FOUR_KIND: 8,
    HandCategory.FULL_HOUSE: 7,
    HandCategory.FLUSH: 6,
    HandCategory.STRAIGHT: 5,
    HandCategory.THREE_KIND: 4,
    HandCategory.TWO_PAIR: 3,
    HandCategory.PAIR: 2,
    HandCategory.HIGH_CARD: 1,
}

CATEGORY_NAMES = {
    HandCategory.ROYAL_FLUSH: "Royal Flush",
    HandCategory.STRAIGHT_FLUSH: "Straight Flush",
    HandCategory.FOUR_KIND: "Four of a Kind",
    HandCategory.FULL_HOUSE: "Full House",
    HandCategory.FLUSH: "Flush",
    HandCategory.STRAIGHT: "Straight",
    HandCategory.THREE_KIND: "Three of a Kind",
    HandCategory.TWO_PAIR: "Two Pair",
    HandCategory.PAIR: "Pair",
    HandCategory.HIGH_CARD: "High Card",
}


class Comparison(int, Enum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


@dataclass(frozen=True)
class HandEvaluation:
    category: HandCategory
    cards: tuple[str, ...]
    ranks: tuple[int, ...]

    @property
    def strength(self) -> int:
        return CATEGORY_STRENGTH[self.category]

    @property
    def description(self) -> str:
        return CATEGORY_NAMES[self.category]

    @property
    def sort_key(self) -> tuple[int, tuple[int, ...]]:
        return (self.strength, self.ranks)


def rank_value(card: str) -> int:
    return RANK_VALUE[card[0]]


def evaluate(cards: Iterable[str]) -> HandEvaluation:
    """Return the best five-card hand that can be made from ``cards``."""
    pool = [validate_card(card) for card in cards]
    if len(pool) < 5:
        raise ValueError(f"need at least 5 cards to evaluate, got {len(pool)}")
    if len(set(pool)) != len(pool):
        raise ValueError("duplicate cards in hand")

    best: HandEvaluation | None = None
    for combo in itertools.combinations(pool, 5):
        candidate = _evaluate_five(combo)
        if best is None or candidate.sort_key > best.sort_key:
            best = candidate
    assert best is not None
    return best


def evaluate_partial(cards: Iterable[str]) -> HandEvaluation:
    """Rank fewer than five cards; only multiplicity categories can apply."""
    pool = [validate_card(card) for card in cards]
    if not pool:
        raise ValueError("cannot evaluate an empty hand")
    if len(pool) >= 5:
        return evaluate(pool)
    ordered = _group_order(pool)
    counts = sorted(Counter(card[0] for card in pool).values(), reverse=True)
    if counts[0] == 4:
        category = HandCategory.FOUR_KIND
    elif counts[0] == 3:
        category = HandCategory.THREE_KIND
    elif counts[0] == 2 and len(counts) > 1 and counts[1] == 2:
        category = HandCategory.TWO_PAIR
    elif counts[0] == 2:
        category = HandCategory.PAIR
    else:
        category = HandCategory.HIGH_CARD
    return HandEvaluation(category, tuple(ordered), tuple(rank_value(c) for c in ordered))


def evaluate_any(cards: Sequence[str]) -> HandEvaluation:
    if len(cards) >= 5:
        return evaluate(cards)
    return evaluate_partial(cards)


def compare(left: HandEvaluation, right: HandEvaluation) -> Comparison:
    if left.strength != right.strength:
        return Comparison.GREATER if left.strength > right.strength else Comparison.LESS
    for left_rank, right_rank in zip(left.ranks, right.ranks):
        if left_rank != right_rank:
            return Comparison.GREATER if left_rank > right_rank else Comparison.LESS
    return Comparison.EQUAL


def _group_order(cards: Sequence[str]) -> list[str]:
    counts = Counter(card[0] for card in cards)
    return sorted(cards, key=lambda card: (counts[card[0]], rank_value(card)), reverse=True)


def _straight_ranks(values: list[int]) -> tuple[int, ...] | None:
    distinct = sorted(set(values), reverse=True)
    if len(distinct) != 5:
        return None
    if tuple(distinct) == WHEEL:
        return (5, 4, 3, 2, 1)
    if distinct[0] - distinct[4] == 4:
        return tuple(distinct)
    return None


def _evaluate_five(cards: Sequence[str]) -> HandEvaluation:
    ordered = _group_order(cards)
    values = [rank_value(card) for card in ordered]
    counts = sorted(Counter(values).values(), reverse=True)
    is_flush = len({card[1] for card in cards}) == 1
    straight = _straight_ranks(values)

    if straight is not None:
        if straight == (5, 4, 3, 2, 1):
            # the ace plays low
            ordered = ordered[1:] + ordered[:1]
        if is_flush:
            category = HandCategory.ROYAL_FLUSH if straight[0] == 14 else HandCategory.STRAIGHT_FLUSH
        else:
            category = HandCategory.STRAIGHT
        return HandEvaluation(category, tuple(ordered), straight)

    if counts[0] == 4:
        category = HandCategory.FOUR_KIND
    elif counts[0] == 3 and counts[1] == 2:
        category = HandCategory.FULL_HOUSE
    elif is_flush:
        category = HandCategory.FLUSH
    elif counts[0] == 3:
        category = HandCategory.THREE_KIND
    elif counts[0] == 2 and counts[1] == 2:
        category = HandCategory.TWO_PAIR
    elif counts[0] == 2:
        category = HandCategory.PAIR
    else:
        category = HandCategory.HIGH_CARD
    return HandEvaluation(category, tuple(ordered), tuple(values))
