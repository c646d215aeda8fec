from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator


SUITS = "HDCS"
RANKS = "A23456789TJQK"

LCG_MULTIPLIER = 16807
LCG_MODULUS = 2**31 - 1


def standard_deck() -> list[str]:
    return [f"{rank}{suit}" for suit in SUITS for rank in RANKS]


def derive_master_seed(numbers: Iterable[int]) -> int:
    return sum(numbers)


def lcg(seed: int) -> Iterator[float]:
    """Park-Miller generator yielding floats in [0, 1).

    A state of 0 would stay 0 forever (and yield a negative draw), so it is
    replaced by 1.
    """
    state = seed % LCG_MODULUS
    if state == 0:
        state = 1
    while True:
        state = (state * LCG_MULTIPLIER) % LCG_MODULUS
        yield (state - 1) / (LCG_MODULUS - 1)


def shuffle_with_seed(deck: list[str], seed: int) -> list[str]:
    rng = lcg(seed)
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(next(rng) * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def build_shuffled_deck(seed: int) -> list[str]:
    return shuffle_with_seed(standard_deck(), seed)


def derive_seed(base_seed: int, counter: int, label: str) -> int:
    raw = f"{base_seed}:{counter}:{label}".encode("utf-8")
    digest = hashlib.sha256(raw).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def validate_card(code: str) -> str:
    if len(code) != 2 or code[0] not in RANKS or code[1] not in SUITS:
        raise ValueError(f"Invalid card code: {code}")
    return code


def to_pokerkit_notation(cards: Iterable[str]) -> str:
    return "".join(f"{card[0]}{card[1].lower()}" for card in cards)
