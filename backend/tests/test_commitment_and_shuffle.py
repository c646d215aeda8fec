from __future__ import annotations

import hashlib
import itertools

from hypothesis import given, settings
from hypothesis import strategies as st

from fairpoker_backend.utils.cards import (
    LCG_MODULUS,
    LCG_MULTIPLIER,
    build_shuffled_deck,
    derive_master_seed,
    lcg,
    shuffle_with_seed,
    standard_deck,
    to_pokerkit_notation,
)
from fairpoker_backend.utils.hashing import create_commitment, deck_digest, verify_commitment


def test_commitment_is_sha256_of_number_then_salt() -> None:
    expected = hashlib.sha256(b"12345mysecret").hexdigest()
    assert create_commitment(12345, "mysecret") == expected


def test_verify_commitment_accepts_upper_case_digest() -> None:
    commitment = create_commitment(7, "pepper").upper()
    assert verify_commitment(7, "pepper", commitment)


def test_verify_commitment_rejects_other_number_or_salt() -> None:
    commitment = create_commitment(111, "salt")
    assert not verify_commitment(112, "salt", commitment)
    assert not verify_commitment(111, "salT", commitment)


@given(number=st.integers(min_value=0, max_value=10**12), salt=st.text(min_size=1, max_size=24))
def test_only_the_committed_pair_verifies(number: int, salt: str) -> None:
    commitment = create_commitment(number, salt)
    assert verify_commitment(number, salt, commitment)
    assert not verify_commitment(number + 1, salt, commitment)


def test_standard_deck_order() -> None:
    deck = standard_deck()
    assert len(deck) == 52
    assert deck[:13] == ["AH", "2H", "3H", "4H", "5H", "6H", "7H", "8H", "9H", "TH", "JH", "QH", "KH"]
    assert deck[13] == "AD"
    assert deck[-1] == "KS"


def test_master_seed_is_sum_of_reveals() -> None:
    assert derive_master_seed([111, 222]) == 333


def test_lcg_first_draws_follow_park_miller() -> None:
    state = 333
    draws = list(itertools.islice(lcg(333), 3))
    for draw in draws:
        state = state * LCG_MULTIPLIER % LCG_MODULUS
        assert draw == (state - 1) / (LCG_MODULUS - 1)


def test_lcg_zero_state_does_not_stall() -> None:
    draws = list(itertools.islice(lcg(LCG_MODULUS), 5))
    assert draws == list(itertools.islice(lcg(1), 5))
    assert all(0.0 <= draw < 1.0 for draw in draws)


def test_seed_333_shuffle_is_reproducible() -> None:
    first = build_shuffled_deck(333)
    second = shuffle_with_seed(standard_deck(), 333)
    assert first == second
    assert first != standard_deck()
    assert deck_digest(first) == deck_digest(second)


def test_shuffle_does_not_mutate_input() -> None:
    deck = standard_deck()
    shuffle_with_seed(deck, 99)
    assert deck == standard_deck()


@settings(max_examples=50)
@given(seed=st.integers(min_value=0, max_value=10**15))
def test_any_seed_yields_a_permutation_of_the_standard_deck(seed: int) -> None:
    deck = build_shuffled_deck(seed)
    assert len(deck) == 52
    assert len(set(deck)) == 52
    assert sorted(deck) == sorted(standard_deck())


def test_pokerkit_notation_lower_cases_suits() -> None:
    assert to_pokerkit_notation(["AH", "TD", "2S"]) == "AhTd2s"
