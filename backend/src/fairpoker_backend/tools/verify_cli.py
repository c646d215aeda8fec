from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from fairpoker_backend.engine.models import VerificationReport
from fairpoker_backend.utils.cards import build_shuffled_deck, derive_master_seed
from fairpoker_backend.utils.hashing import deck_digest, stable_hash, verify_commitment


def check_report(report: VerificationReport) -> dict[str, bool | None]:
    """Recompute everything a saved report claims, using only its public data."""
    checks: dict[str, bool | None] = {}
    checks["commitments"] = all(
        verify_commitment(row.revealed_number, row.salt, row.commitment)
        for row in report.commitments
        if row.revealed_number is not None and row.salt is not None
    )

    seed = None
    if report.seed is not None:
        seed = derive_master_seed(row.revealed_number for row in report.commitments if row.revealed_number is not None)
        checks["seed"] = seed == report.seed.total and seed == report.seed.master_seed
    else:
        checks["seed"] = None

    if report.deck is not None and seed is not None:
        checks["deck"] = build_shuffled_deck(seed) == report.deck.shuffled_deck
        checks["deck_digest"] = deck_digest(report.deck.shuffled_deck) == report.deck_digest
    else:
        checks["deck"] = None
        checks["deck_digest"] = None

    body = report.model_dump(mode="json", exclude={"report_hash"})
    checks["report_hash"] = stable_hash(body) == report.report_hash
    return checks


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Independently re-check a saved verification report")
    parser.add_argument("report_file", type=Path)
    args = parser.parse_args(argv)

    report = VerificationReport.model_validate(json.loads(args.report_file.read_text()))
    checks = check_report(report)
    print(json.dumps({"game_id": report.game_id, "checks": checks}, indent=2))
    return 0 if all(value is not False for value in checks.values()) else 1


if __name__ == "__main__":
    sys.exit(main())
