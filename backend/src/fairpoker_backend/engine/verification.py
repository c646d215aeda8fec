"""Fairness report for a single game.

The report is a pure function of the game's recorded commitments, reveals,
actions and audit events, so building it twice yields the same report. The
shuffled deck is withheld until the game has finished.
"""

from __future__ import annotations

from pokerkit import StandardHighHand

from fairpoker_backend.engine.errors import IllegalPhaseTransition
from fairpoker_backend.engine.internal import GameRuntime
from fairpoker_backend.engine.models import (
    COMMITMENT_SCHEME,
    ENGINE_VERSION,
    RECORD_KIND_CODES,
    SHUFFLE_ALGORITHM,
    AuditEvent,
    AuditTrailRow,
    CommitmentRow,
    DeckVerification,
    EndReason,
    Phase,
    RecordKind,
    SeedDerivation,
    VerificationReport,
)
from fairpoker_backend.utils.cards import (
    LCG_MODULUS,
    LCG_MULTIPLIER,
    build_shuffled_deck,
    derive_master_seed,
    standard_deck,
    to_pokerkit_notation,
)
from fairpoker_backend.utils.hashing import create_commitment, deck_digest, stable_hash


def build_verification_report(game: GameRuntime) -> VerificationReport:
    if game.phase in (Phase.JOINING, Phase.COMMITTING):
        raise IllegalPhaseTransition(
            "Game not yet verifiable - still in setup phase.",
            "NOT_VERIFIABLE",
        )

    commitments = _commitment_rows(game)
    finished = game.phase is Phase.FINISHED

    deck = None
    hidden_reason = None
    if not game.deck:
        hidden_reason = "Deck has not been generated."
    elif not finished:
        hidden_reason = "Full deck verification is available after the game finishes."
    else:
        deck = _deck_verification(game)

    report = VerificationReport(
        game_id=game.game_id,
        phase=game.phase,
        engine_version=ENGINE_VERSION,
        commitment_scheme=COMMITMENT_SCHEME,
        commitments=commitments,
        all_reveals_valid=bool(game.reveals) and all(row.valid for row in commitments if row.valid is not None),
        seed=_seed_derivation(game),
        deck_digest=game.deck_digest,
        deck=deck,
        deck_hidden_reason=hidden_reason,
        showdown_confirmed=confirm_showdown(game) if finished else None,
        actions=list(game.actions),
        audit_trail=[_trail_row(game, event) for event in game.audit_log],
        report_hash="",
    )
    digest = stable_hash(report.model_dump(mode="json", exclude={"report_hash"}))
    return report.model_copy(update={"report_hash": digest})


def _commitment_rows(game: GameRuntime) -> list[CommitmentRow]:
    rows = []
    for player_id, record in game.commitments.items():
        player = game.players[player_id]
        row = CommitmentRow(
            player_id=player_id,
            display_name=player.display_name,
            commitment=record.commitment,
            committed_at=record.committed_at,
        )
        reveal = game.reveals.get(player_id)
        if reveal is not None:
            recomputed = create_commitment(reveal.number, reveal.salt)
            row.revealed_number = reveal.number
            row.salt = reveal.salt
            row.revealed_at = reveal.revealed_at
            row.recomputed_commitment = recomputed
            row.valid = recomputed == record.commitment
        rows.append(row)
    return rows


def _seed_derivation(game: GameRuntime) -> SeedDerivation | None:
    if not game.reveals:
        return None
    reveals = [game.reveals[pid] for pid in game.players if pid in game.reveals]
    total = derive_master_seed(reveal.number for reveal in reveals)
    expression = " + ".join(str(reveal.number) for reveal in reveals) + f" = {total}"
    return SeedDerivation(
        contributions=[{"player_id": reveal.player_id, "number": reveal.number} for reveal in reveals],
        expression=expression,
        total=total,
        master_seed=game.seed,
        matches=game.seed is not None and game.seed == total,
    )


def _deck_verification(game: GameRuntime) -> DeckVerification:
    assert game.seed is not None
    recomputed = build_shuffled_deck(game.seed)
    numbers = " + ".join(str(game.reveals[pid].number) for pid in game.players)
    steps = [
        f"Add all revealed numbers: {numbers} = {game.seed}.",
        f"Start a Park-Miller generator at state = {game.seed} mod {LCG_MODULUS} (use 1 if that is 0).",
        f"Each draw: state = state * {LCG_MULTIPLIER} mod {LCG_MODULUS}; value = (state - 1) / {LCG_MODULUS - 1}.",
        "Take the standard deck: suits H, D, C, S, each A, 2..9, T, J, Q, K.",
        "For i from 51 down to 1: j = floor(value * (i + 1)); swap positions i and j.",
        f"Compare with the published deck; its SHA-256 over the comma-joined codes is {game.deck_digest}.",
    ]
    return DeckVerification(
        algorithm=SHUFFLE_ALGORITHM,
        lcg_multiplier=LCG_MULTIPLIER,
        lcg_modulus=LCG_MODULUS,
        standard_deck=standard_deck(),
        shuffled_deck=list(game.deck),
        recomputed_match=recomputed == game.deck,
        digest_match=deck_digest(game.deck) == game.deck_digest,
        cards_dealt=game.deck_cursor,
        steps=steps,
    )


def confirm_showdown(game: GameRuntime) -> bool | None:
    """Re-rank the showdown with pokerkit and check the same players won."""
    result = game.result
    if result is None or result.reason is not EndReason.SHOWDOWN:
        return None
    board = to_pokerkit_notation(game.community_cards)
    hands = {
        row.player_id: StandardHighHand.from_game(to_pokerkit_notation(row.hole_cards), board)
        for row in result.showdown
    }
    best = max(hands.values())
    expected = {player_id for player_id, hand in hands.items() if not hand < best}
    return expected == {award.player_id for award in result.winners}


def _name(game: GameRuntime, player_id: str) -> str:
    player = game.players.get(player_id)
    return player.display_name if player else player_id


def _trail_row(game: GameRuntime, event: AuditEvent) -> AuditTrailRow:
    payload = event.payload
    if event.kind is RecordKind.BOT_IDENTITY:
        summary = (
            f"Bot identity: {payload['algorithm']} shuffle, "
            f"{payload['commitment_scheme']} commitments"
        )
    elif event.kind is RecordKind.GAME_ANNOUNCEMENT:
        summary = f"Game announced: ante {payload['ante']}, max {payload['max_players']} players"
    elif event.kind is RecordKind.PLAYER_COMMIT:
        summary = f"{_name(game, payload['player_pubkey'])} committed {payload['commitment'][:16]}..."
    elif event.kind is RecordKind.PLAYER_REVEAL:
        summary = (
            f"{_name(game, payload['player_pubkey'])} revealed {payload['random_number']} "
            f"(salt {payload['salt']})"
        )
    elif event.kind is RecordKind.DECK_GENERATION:
        numbers = " + ".join(str(item["number"]) for item in payload["player_contributions"])
        summary = f"Deck generated: {numbers} = {payload['master_seed']}"
    elif event.kind is RecordKind.GAME_ACTION:
        amount = f" {payload['amount']}" if payload["amount"] else ""
        summary = (
            f"{_name(game, payload['player_pubkey'])} {payload['action']}{amount} "
            f"({payload['betting_round']}, pot {payload['pot_size']})"
        )
    else:
        winners = ", ".join(
            f"{_name(game, item['player_id'])} +{item['amount']}" for item in payload["winners"]
        )
        summary = f"Game over ({payload['reason']}): {winners or 'no winner'}"
    return AuditTrailRow(
        seq=event.seq,
        kind=event.kind,
        kind_code=RECORD_KIND_CODES[event.kind],
        ts=event.ts,
        summary=summary,
    )
