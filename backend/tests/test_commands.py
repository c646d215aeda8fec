from __future__ import annotations

import pytest

from fairpoker_backend.api.commands import CommandRouter
from fairpoker_backend.engine.models import CommandContext, CommandRequest, CommandResponse
from fairpoker_backend.engine.service import PokerEngineService


@pytest.fixture
def router(engine: PokerEngineService) -> CommandRouter:
    return CommandRouter(engine)


async def send(router: CommandRouter, player_id: str, command: str, *args: str, channel_id: str | None = "lobby") -> CommandResponse:
    return await router.handle(
        CommandRequest(
            command=command,
            args=list(args),
            context=CommandContext(player_id=player_id, channel_id=channel_id, timestamp=1_700_000_000),
        ),
    )


def test_every_command_has_a_handler(router: CommandRouter) -> None:
    assert set(router.commands) == {
        "poker", "solo", "join", "start", "commit", "reveal", "bet", "call", "check",
        "fold", "raise", "verify", "games", "hand", "chips", "status", "cards",
    }


@pytest.mark.asyncio
async def test_multiplayer_game_through_commands(router: CommandRouter) -> None:
    created = await send(router, "alice", "poker", "1000", "2")
    assert created.ok
    game_id = created.structured_data["game"]["game_id"]
    assert "join 1000" in created.text

    early = await send(router, "alice", "verify", game_id)
    assert not early.ok
    assert early.text == "Game not yet verifiable - still in setup phase."

    assert (await send(router, "bob", "join", "1000")).ok
    assert (await send(router, "alice", "start")).ok
    assert (await send(router, "alice", "commit", "111", "a-salt")).ok
    committed = await send(router, "bob", "commit", "222", "b-salt")
    assert committed.structured_data["commits_received"] == 2
    assert "reveal" in committed.text

    assert (await send(router, "alice", "reveal")).ok
    dealt = await send(router, "bob", "reveal")
    assert dealt.ok
    assert "333" in dealt.text

    hand = await send(router, "alice", "hand")
    assert hand.ok
    assert len(hand.structured_data["hand"]["cards"]) == 2
    cards = await send(router, "alice", "cards")
    assert cards.structured_data["hand"]["cards"] == hand.structured_data["hand"]["cards"]

    bet = await send(router, "alice", "bet", "500")
    assert bet.ok
    assert bet.structured_data["outcome"]["pot"] == 500
    folded = await send(router, "bob", "fold")
    assert folded.ok
    assert "Winner" in folded.text

    chips = await send(router, "alice", "chips")
    assert chips.structured_data["chips"] == 100_000
    status = await send(router, "alice", "status")
    assert status.structured_data["game"]["phase"] == "finished"

    report = await send(router, "bob", "verify", game_id)
    assert report.ok
    assert "111 + 222 = 333" in report.text
    assert report.structured_data["report"]["deck"]["recomputed_match"] is True


@pytest.mark.asyncio
async def test_solo_through_commands(router: CommandRouter, engine: PokerEngineService) -> None:
    created = await send(router, "alice", "!SOLO", "1000", "hard")
    assert created.ok
    assert created.structured_data["game"]["difficulty"] == "hard"

    assert (await send(router, "alice", "commit", "31337", "pepper")).ok
    dealt = await send(router, "alice", "reveal")
    assert dealt.ok
    assert dealt.structured_data["game"]["phase"] == "playing"

    checked = await send(router, "alice", "check")
    assert checked.ok
    await engine.drain_ai()
    status = await send(router, "alice", "status")
    assert "(AI)" in status.text


@pytest.mark.asyncio
async def test_command_errors_become_responses(router: CommandRouter) -> None:
    unknown = await send(router, "alice", "shuffle")
    assert not unknown.ok
    assert unknown.error is not None and unknown.error.code == "UNKNOWN_COMMAND"

    low = await send(router, "alice", "poker", "50")
    assert low.error is not None and low.error.code == "ANTE_TOO_LOW"
    bad = await send(router, "alice", "poker", "lots")
    assert bad.error is not None and bad.error.code == "INVALID_NUMBER"
    difficulty = await send(router, "alice", "solo", "1000", "expert")
    assert difficulty.error is not None and difficulty.error.code == "INVALID_DIFFICULTY"

    nothing = await send(router, "alice", "status")
    assert nothing.error is not None and nothing.error.code == "GAME_NOT_FOUND"
    no_game = await send(router, "alice", "check")
    assert no_game.text == "No active game in playing phase."
    usage = await send(router, "alice", "join")
    assert usage.error is not None and usage.error.code == "USAGE"


@pytest.mark.asyncio
async def test_games_lists_open_tables(router: CommandRouter) -> None:
    empty = await send(router, "alice", "games")
    assert empty.text == "No active poker games."

    await send(router, "alice", "poker", "2000")
    listed = await send(router, "bob", "games")
    assert listed.structured_data["active_games"] == 1
    assert "join 2000" in listed.text


@pytest.mark.asyncio
async def test_cards_is_scoped_to_the_channel(router: CommandRouter) -> None:
    await send(router, "alice", "poker", "1000", "2", channel_id="table-1")
    await send(router, "bob", "join", "1000", channel_id="table-1")
    await send(router, "alice", "start", channel_id="table-1")
    await send(router, "alice", "commit", "1", "x", channel_id="table-1")
    await send(router, "bob", "commit", "2", "y", channel_id="table-1")
    await send(router, "alice", "reveal", channel_id="table-1")
    await send(router, "bob", "reveal", channel_id="table-1")

    elsewhere = await send(router, "alice", "cards", channel_id="table-2")
    assert not elsewhere.ok
    here = await send(router, "alice", "cards", channel_id="table-1")
    assert here.ok
