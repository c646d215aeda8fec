from __future__ import annotations

import pytest

from fairpoker_backend.engine.errors import (
    CommitmentMismatch,
    DeckExhausted,
    EngineInvariantViolation,
    GameFull,
    IllegalPhaseTransition,
    IllegalTurn,
    InsufficientChips,
    InvalidAction,
    InvalidCommitment,
    PlayerAlreadySeated,
)
from fairpoker_backend.engine.internal import GameRuntime, PlayerRuntime
from fairpoker_backend.engine.machine import (
    GameStateMachine,
    is_betting_round_complete,
    pot_matches_contributions,
)
from fairpoker_backend.engine.models import (
    ActionKind,
    BettingRound,
    EndReason,
    EngineConfig,
    GameConfig,
    Phase,
    RecordKind,
)
from fairpoker_backend.engine.service import PokerEngineService
from fairpoker_backend.utils.cards import build_shuffled_deck
from fairpoker_backend.utils.hashing import create_commitment

from .test_utils import check_down, create_committed_game, create_playing_game


def _players(contributions: list[int], acted: bool = True) -> list[PlayerRuntime]:
    return [
        PlayerRuntime(player_id=f"p{i}", display_name=f"P{i}", chips=1000, round_contribution=c, acted_this_round=acted)
        for i, c in enumerate(contributions)
    ]


def test_round_complete_when_all_matched() -> None:
    assert is_betting_round_complete(_players([100, 100, 100]))


def test_round_incomplete_when_contributions_differ() -> None:
    assert not is_betting_round_complete(_players([100, 50, 100]))


def test_round_incomplete_until_everyone_acted() -> None:
    players = _players([0, 0])
    players[1].acted_this_round = False
    assert not is_betting_round_complete(players)


def test_folded_and_all_in_players_do_not_block_completion() -> None:
    players = _players([100, 30, 100, 0])
    players[1].all_in = True
    players[3].folded = True
    assert is_betting_round_complete(players)


def test_single_survivor_completes_round() -> None:
    players = _players([100, 0], acted=False)
    players[1].folded = True
    assert is_betting_round_complete(players)


@pytest.mark.asyncio
async def test_reveals_derive_seed_and_deal(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine, numbers=(111, 222))

    view = await engine.get_status(game_id)
    assert view.phase is Phase.PLAYING
    assert view.betting_round is BettingRound.PREFLOP
    assert view.seed == 333
    assert view.pot == 0
    assert view.current_player_id == "alice"
    assert all(seat.chips == 100_000 for seat in view.seats)

    game = engine._registry.get(game_id)  # noqa: SLF001
    assert game.deck == build_shuffled_deck(333)
    assert game.players["alice"].hole_cards == game.deck[0:2]
    assert game.players["bob"].hole_cards == game.deck[2:4]
    assert game.deck_cursor == 4


@pytest.mark.asyncio
async def test_bet_without_chips_leaves_state_unchanged(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    game = engine._registry.get(game_id)  # noqa: SLF001
    game.players["alice"].chips = 0
    before = (game.pot, game.phase, game.turn_index, len(game.actions), len(game.audit_log))

    with pytest.raises(InsufficientChips) as excinfo:
        await engine.act(game_id, "alice", ActionKind.BET, 100)

    assert excinfo.value.code == "INSUFFICIENT_CHIPS"
    assert (game.pot, game.phase, game.turn_index, len(game.actions), len(game.audit_log)) == before


@pytest.mark.asyncio
async def test_fold_on_flop_awards_pot_without_more_cards(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    await engine.act(game_id, "alice", ActionKind.CHECK)
    outcome = await engine.act(game_id, "bob", ActionKind.CHECK)
    assert outcome.round_advanced
    assert outcome.betting_round is BettingRound.FLOP
    assert len(outcome.community_cards) == 3

    await engine.act(game_id, "alice", ActionKind.BET, 500)
    outcome = await engine.act(game_id, "bob", ActionKind.FOLD)

    assert outcome.phase is Phase.FINISHED
    assert outcome.result is not None
    assert outcome.result.reason is EndReason.OPPONENTS_FOLDED
    assert outcome.result.winners[0].player_id == "alice"
    assert outcome.result.winners[0].amount == 500
    game = engine._registry.get(game_id)  # noqa: SLF001
    assert len(game.community_cards) == 3
    assert game.deck_cursor == 7
    assert game.players["alice"].chips == 100_000


@pytest.mark.asyncio
async def test_acting_out_of_turn_is_rejected(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    with pytest.raises(IllegalTurn) as excinfo:
        await engine.act(game_id, "bob", ActionKind.CHECK)
    assert "alice" in excinfo.value.message.lower()


@pytest.mark.asyncio
async def test_betting_rules(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)

    with pytest.raises(InvalidAction) as excinfo:
        await engine.act(game_id, "alice", ActionKind.RAISE, 100)
    assert excinfo.value.code == "NO_BET_TO_RAISE"
    with pytest.raises(InvalidAction) as excinfo:
        await engine.act(game_id, "alice", ActionKind.BET, 0)
    assert excinfo.value.code == "INVALID_AMOUNT"

    # calling with nothing owed pays nothing and passes the turn like a check
    outcome = await engine.act(game_id, "alice", ActionKind.CALL)
    assert outcome.action is ActionKind.CALL
    assert outcome.amount == 0
    assert outcome.pot == 0
    assert outcome.next_player_id == "bob"
    outcome = await engine.act(game_id, "bob", ActionKind.CHECK)
    assert outcome.round_advanced
    assert outcome.betting_round is BettingRound.FLOP
    assert outcome.next_player_id == "alice"

    await engine.act(game_id, "alice", ActionKind.BET, 200)
    with pytest.raises(InvalidAction) as excinfo:
        await engine.act(game_id, "bob", ActionKind.CHECK)
    assert excinfo.value.code == "BET_OWED"
    with pytest.raises(InvalidAction) as excinfo:
        await engine.act(game_id, "bob", ActionKind.BET, 300)
    assert excinfo.value.code == "BET_EXISTS"

    outcome = await engine.act(game_id, "bob", ActionKind.RAISE, 300)
    assert outcome.current_bet == 500
    assert outcome.pot == 700
    assert outcome.next_player_id == "alice"

    outcome = await engine.act(game_id, "alice", ActionKind.CALL)
    assert outcome.amount == 300
    assert outcome.round_advanced
    assert outcome.pot == 1000
    assert outcome.current_bet == 0

    game = engine._registry.get(game_id)  # noqa: SLF001
    assert pot_matches_contributions(game)


@pytest.mark.asyncio
async def test_all_in_runs_out_the_board(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    game = engine._registry.get(game_id)  # noqa: SLF001
    stack = game.players["alice"].chips

    await engine.act(game_id, "alice", ActionKind.BET, stack)
    assert game.players["alice"].all_in
    outcome = await engine.act(game_id, "bob", ActionKind.CALL)

    assert outcome.phase is Phase.FINISHED
    assert outcome.result is not None
    assert outcome.result.reason is EndReason.SHOWDOWN
    assert len(outcome.community_cards) == 5
    assert sum(player.chips for player in game.players.values()) == 2 * stack


@pytest.mark.asyncio
async def test_check_down_reaches_showdown(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    await check_down(engine, game_id)

    view = await engine.get_status(game_id)
    assert view.phase is Phase.FINISHED
    assert view.result is not None
    assert view.result.reason is EndReason.SHOWDOWN
    assert len(view.community_cards) == 5
    assert {row.player_id for row in view.result.showdown} == {"alice", "bob"}


@pytest.mark.asyncio
async def test_tied_hands_split_the_pot_with_odd_chip_in_turn_order(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    game = engine._registry.get(game_id)  # noqa: SLF001
    alice, bob = game.players["alice"], game.players["bob"]
    alice.hole_cards, bob.hole_cards = ["2C", "3D"], ["4C", "5D"]
    game.community_cards = ["AH", "KH", "QH", "JH", "TH"]
    game.betting_round = BettingRound.RIVER
    alice.chips -= 51
    alice.total_contribution = 51
    bob.chips -= 50
    bob.total_contribution = 50
    game.pot = 101

    await engine.act(game_id, "alice", ActionKind.CHECK)
    outcome = await engine.act(game_id, "bob", ActionKind.CHECK)

    assert outcome.result is not None
    awards = {award.player_id: award for award in outcome.result.winners}
    assert awards["alice"].amount == 51
    assert awards["alice"].odd_chips == 1
    assert awards["bob"].amount == 50
    assert alice.chips == 100_000
    assert bob.chips == 100_000


@pytest.mark.asyncio
async def test_commit_and_reveal_errors(engine: PokerEngineService) -> None:
    view = await engine.create_game("alice", GameConfig(ante=1000, max_players=2))
    game_id = view.game_id

    with pytest.raises(IllegalPhaseTransition):
        await engine.commit(game_id, "alice", 1, "salt")
    with pytest.raises(IllegalPhaseTransition) as excinfo:
        await engine.start_game(game_id, "alice")
    assert excinfo.value.code == "NOT_ENOUGH_PLAYERS"

    await engine.join_game(game_id, "bob")
    with pytest.raises(PlayerAlreadySeated):
        await engine.join_game(game_id, "bob")
    with pytest.raises(GameFull):
        await engine.join_game(game_id, "carol")
    with pytest.raises(InvalidAction) as excinfo:
        await engine.start_game(game_id, "bob")
    assert excinfo.value.code == "NOT_HOST"

    await engine.start_game(game_id, "alice")
    with pytest.raises(IllegalPhaseTransition):
        await engine.join_game(game_id, "carol")
    with pytest.raises(InvalidCommitment) as excinfo:
        await engine.commit_hash(game_id, "alice", "not-a-digest")
    assert excinfo.value.code == "MALFORMED_COMMITMENT"

    await engine.commit_hash(game_id, "alice", create_commitment(5, "five"))
    with pytest.raises(InvalidCommitment) as excinfo:
        await engine.commit(game_id, "alice", 6, "six")
    assert excinfo.value.code == "ALREADY_COMMITTED"
    await engine.commit(game_id, "bob", 9, "nine")

    with pytest.raises(InvalidCommitment) as excinfo:
        await engine.reveal(game_id, "alice")
    assert excinfo.value.code == "NO_SECRET"
    with pytest.raises(CommitmentMismatch):
        await engine.reveal(game_id, "alice", 6, "five")

    await engine.reveal(game_id, "alice", 5, "five")
    with pytest.raises(InvalidCommitment) as excinfo:
        await engine.reveal(game_id, "alice", 5, "five")
    assert excinfo.value.code == "ALREADY_REVEALED"

    view = await engine.reveal(game_id, "bob")
    assert view.phase is Phase.PLAYING
    assert view.seed == 14


@pytest.mark.asyncio
async def test_game_config_limits(engine: PokerEngineService) -> None:
    with pytest.raises(InvalidAction) as excinfo:
        await engine.create_game("alice", GameConfig(ante=99))
    assert excinfo.value.code == "ANTE_TOO_LOW"
    with pytest.raises(InvalidAction) as excinfo:
        await engine.create_game("alice", GameConfig(ante=100, max_players=11))
    assert excinfo.value.code == "INVALID_MAX_PLAYERS"


@pytest.mark.asyncio
async def test_audit_log_is_sequential(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    await check_down(engine, game_id)
    game = engine._registry.get(game_id)  # noqa: SLF001

    assert [event.seq for event in game.audit_log] == list(range(1, len(game.audit_log) + 1))
    kinds = [event.kind for event in game.audit_log]
    assert kinds[:2] == [RecordKind.BOT_IDENTITY, RecordKind.GAME_ANNOUNCEMENT]
    assert kinds.count(RecordKind.PLAYER_COMMIT) == 2
    assert kinds.count(RecordKind.PLAYER_REVEAL) == 2
    assert kinds.count(RecordKind.DECK_GENERATION) == 1
    assert kinds.count(RecordKind.GAME_ACTION) == len(game.actions)
    assert kinds[-1] is RecordKind.GAME_RESULT
    deck_event = next(event for event in game.audit_log if event.kind is RecordKind.DECK_GENERATION)
    assert "deck" not in deck_event.payload


@pytest.mark.asyncio
async def test_abandon_refunds_contributions(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine)
    await engine.act(game_id, "alice", ActionKind.BET, 300)
    with pytest.raises(InvalidAction):
        await engine.abandon_game(game_id, requested_by="bob")

    view = await engine.abandon_game(game_id, requested_by="alice")

    assert view.phase is Phase.FINISHED
    assert view.result is not None
    assert view.result.reason is EndReason.ABANDONED
    assert all(seat.chips == 100_000 for seat in view.seats)


def test_deck_exhaustion_is_an_invariant_violation() -> None:
    game = GameRuntime(game_id="g", host_id="a", ante=100, max_players=2, solo=False, ai=None)
    game.deck = ["AH"]
    assert game.next_card() == "AH"
    with pytest.raises(DeckExhausted):
        game.next_card()
    assert issubclass(DeckExhausted, EngineInvariantViolation)


def test_phase_transitions_never_go_backwards() -> None:
    machine = GameStateMachine(EngineConfig())
    game = GameRuntime(game_id="g", host_id="a", ante=100, max_players=2, solo=False, ai=None)
    game.phase = Phase.PLAYING
    with pytest.raises(EngineInvariantViolation):
        machine._transition(game, Phase.REVEALING)  # noqa: SLF001


@pytest.mark.asyncio
async def test_three_player_commit_phase(engine: PokerEngineService) -> None:
    game_id = await create_committed_game(engine, players=("a", "b", "c"), numbers=(1, 2, 3))
    view = await engine.get_status(game_id)
    assert view.phase is Phase.REVEALING
    assert all(seat.committed for seat in view.seats)
    assert not any(seat.revealed for seat in view.seats)


@pytest.mark.asyncio
async def test_three_player_betting_skips_folded_seat(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine, players=("a", "b", "c"), numbers=(1, 2, 3))

    outcome = await engine.act(game_id, "a", ActionKind.FOLD)
    assert outcome.next_player_id == "b"
    outcome = await engine.act(game_id, "b", ActionKind.BET, 300)
    assert outcome.next_player_id == "c"
    outcome = await engine.act(game_id, "c", ActionKind.CALL)

    assert outcome.round_advanced
    assert outcome.betting_round is BettingRound.FLOP
    assert len(outcome.community_cards) == 3
    assert outcome.pot == 600
    assert outcome.next_player_id == "b"

    await engine.act(game_id, "b", ActionKind.BET, 100)
    outcome = await engine.act(game_id, "c", ActionKind.RAISE, 100)
    assert outcome.current_bet == 200
    assert outcome.next_player_id == "b"

    game = engine._registry.get(game_id)  # noqa: SLF001
    assert game.players["a"].folded
    assert pot_matches_contributions(game)


@pytest.mark.asyncio
async def test_two_of_three_fold_on_the_flop(engine: PokerEngineService) -> None:
    game_id = await create_playing_game(engine, players=("a", "b", "c"), numbers=(1, 2, 3))
    for player_id in ("a", "b", "c"):
        outcome = await engine.act(game_id, player_id, ActionKind.CHECK)
    assert outcome.betting_round is BettingRound.FLOP
    assert outcome.next_player_id == "a"

    await engine.act(game_id, "a", ActionKind.BET, 400)
    outcome = await engine.act(game_id, "b", ActionKind.FOLD)
    assert outcome.phase is Phase.PLAYING
    assert outcome.next_player_id == "c"
    outcome = await engine.act(game_id, "c", ActionKind.FOLD)

    assert outcome.phase is Phase.FINISHED
    assert outcome.result is not None
    assert outcome.result.reason is EndReason.OPPONENTS_FOLDED
    assert [(award.player_id, award.amount) for award in outcome.result.winners] == [("a", 400)]
    game = engine._registry.get(game_id)  # noqa: SLF001
    assert len(game.community_cards) == 3
    assert game.deck_cursor == 9
    assert game.players["a"].chips == 100_000
