from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any


def stable_hash(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode(
        "utf-8",
    )
    return hashlib.sha256(encoded).hexdigest()


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def create_commitment(number: int, salt: str) -> str:
    """Commit to ``number`` by hashing its decimal form immediately followed by ``salt``."""
    return sha256_hex(f"{number}{salt}")


def verify_commitment(number: int, salt: str, commitment: str) -> bool:
    return hmac.compare_digest(create_commitment(number, salt), commitment.lower())


def deck_digest(deck: list[str]) -> str:
    return sha256_hex(",".join(deck))
