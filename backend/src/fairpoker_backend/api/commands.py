from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fairpoker_backend.engine.errors import EngineRejectedAction, GameNotFound, InvalidAction
from fairpoker_backend.engine.machine import COMMITMENT_PATTERN
from fairpoker_backend.engine.models import (
    ActionKind,
    ActionOutcome,
    CommandContext,
    CommandRequest,
    CommandResponse,
    Difficulty,
    EndReason,
    EngineError,
    GameConfig,
    GameResult,
    GameView,
    Phase,
)
from fairpoker_backend.engine.service import PokerEngineService


logger = logging.getLogger(__name__)

Handler = Callable[[list[str], CommandContext], Awaitable[CommandResponse]]


@dataclass(frozen=True)
class CommandEntry:
    handler: Handler
    usage: str


def _parse_int(value: str, label: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidAction(f"{label} must be a whole number, got {value!r}.", "INVALID_NUMBER") from None


def _cards(cards: list[str]) -> str:
    return " ".join(cards) if cards else "None yet"


def _result_text(result: GameResult, names: dict[str, str]) -> str:
    if result.reason is EndReason.ABANDONED:
        return "Game abandoned; contributions were returned."
    winners = ", ".join(f"{names.get(award.player_id, award.player_id)} (+{award.amount})" for award in result.winners)
    if result.reason is EndReason.OPPONENTS_FOLDED:
        return f"Everyone else folded. Winner: {winners}."
    lines = [f"Showdown on {_cards(result.community_cards)}:"]
    for row in result.showdown:
        lines.append(f"- {row.display_name}: {' '.join(row.hole_cards)} -> {row.best_hand_name}")
    lines.append(f"Winner: {winners}.")
    return "\n".join(lines)


class CommandRouter:
    """Maps chat-style commands onto the engine service.

    Rejections from the engine become ``ok=False`` responses; anything else
    propagates to the caller.
    """

    def __init__(self, engine: PokerEngineService) -> None:
        self._engine = engine
        self._commands: dict[str, CommandEntry] = {
            "poker": CommandEntry(self._poker, "poker <ante> [maxPlayers]"),
            "solo": CommandEntry(self._solo, "solo <ante> [easy|medium|hard]"),
            "join": CommandEntry(self._join, "join <ante>"),
            "start": CommandEntry(self._start, "start"),
            "commit": CommandEntry(self._commit, "commit <number> <salt>"),
            "reveal": CommandEntry(self._reveal, "reveal"),
            "bet": CommandEntry(self._betting(ActionKind.BET), "bet <amount>"),
            "call": CommandEntry(self._betting(ActionKind.CALL), "call"),
            "check": CommandEntry(self._betting(ActionKind.CHECK), "check"),
            "fold": CommandEntry(self._betting(ActionKind.FOLD), "fold"),
            "raise": CommandEntry(self._betting(ActionKind.RAISE), "raise <amount>"),
            "verify": CommandEntry(self._verify, "verify <gameId>"),
            "games": CommandEntry(self._games, "games"),
            "hand": CommandEntry(self._hand, "hand"),
            "chips": CommandEntry(self._chips, "chips"),
            "status": CommandEntry(self._status, "status"),
            "cards": CommandEntry(self._cards, "cards"),
        }

    @property
    def commands(self) -> dict[str, str]:
        return {name: entry.usage for name, entry in self._commands.items()}

    async def handle(self, request: CommandRequest) -> CommandResponse:
        name = request.command.strip().lstrip("!").lower()
        entry = self._commands.get(name)
        if entry is None:
            return self._error(
                "UNKNOWN_COMMAND",
                f"Unknown command {request.command!r}. Try: {', '.join(self._commands)}.",
            )
        try:
            return await entry.handler(request.args, request.context)
        except EngineRejectedAction as exc:
            logger.debug("command %s from %s rejected: %s", name, request.context.player_id, exc.code)
            return self._error(exc.code, exc.message)

    @staticmethod
    def _error(code: str, message: str) -> CommandResponse:
        return CommandResponse(ok=False, text=message, error=EngineError(code=code, message=message))

    def _locate(self, ctx: CommandContext, phase: Phase | None, channel_id: str | None = None) -> str:
        game_id = self._engine.locate_game(ctx.player_id, phase=phase, channel_id=channel_id)
        if game_id is None:
            if phase is None:
                raise GameNotFound("You are not in any active poker game.")
            raise GameNotFound(f"No active game in {phase.value} phase.")
        return game_id

    # Setup -----------------------------------------------------------

    async def _poker(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        config = self._engine.config
        ante = _parse_int(args[0], "Ante") if args else config.default_ante
        max_players = _parse_int(args[1], "Max players") if len(args) > 1 else config.default_max_players
        view = await self._engine.create_game(
            ctx.player_id,
            GameConfig(ante=ante, max_players=max_players),
            channel_id=ctx.channel_id,
        )
        host = view.seats[0].display_name
        return CommandResponse(
            ok=True,
            text=(
                f"Poker game {view.game_id} created by {host}.\n"
                f"Ante: {view.ante} chips, players 1/{view.max_players}.\n"
                f"Join with: join {view.ante}"
            ),
            structured_data={"game": view.model_dump(mode="json")},
        )

    async def _solo(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        ante = _parse_int(args[0], "Ante") if args else self._engine.config.default_ante
        difficulty = Difficulty.MEDIUM
        if len(args) > 1:
            try:
                difficulty = Difficulty(args[1].lower())
            except ValueError:
                raise InvalidAction(
                    "Difficulty must be one of: easy, medium, hard.",
                    "INVALID_DIFFICULTY",
                ) from None
        view = await self._engine.create_game(
            ctx.player_id,
            GameConfig(ante=ante, max_players=2, solo=True, difficulty=difficulty),
            channel_id=ctx.channel_id,
        )
        return CommandResponse(
            ok=True,
            text=(
                f"Solo game {view.game_id} against PokerBot AI ({difficulty.value}).\n"
                f"Ante: {view.ante} chips. The AI has committed.\n"
                "Commit with: commit <number> <salt>"
            ),
            structured_data={"game": view.model_dump(mode="json")},
        )

    async def _join(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        if not args:
            raise InvalidAction("Usage: join <ante>", "USAGE")
        view = await self._engine.join_by_ante(ctx.player_id, _parse_int(args[0], "Ante"))
        return CommandResponse(
            ok=True,
            text=f"Joined game {view.game_id} ({len(view.seats)}/{view.max_players} players).",
            structured_data={"game": view.model_dump(mode="json")},
        )

    async def _start(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        game_id = self._locate(ctx, Phase.JOINING)
        view = await self._engine.start_game(game_id, ctx.player_id)
        return CommandResponse(
            ok=True,
            text=(
                f"Game {game_id} started with {len(view.seats)} players.\n"
                "Everyone commit with: commit <number> <salt>"
            ),
            structured_data={"game": view.model_dump(mode="json")},
        )

    async def _commit(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        game_id = self._locate(ctx, Phase.COMMITTING)
        if len(args) == 1 and COMMITMENT_PATTERN.match(args[0].lower()):
            view = await self._engine.commit_hash(game_id, ctx.player_id, args[0])
        elif len(args) >= 2:
            view = await self._engine.commit(game_id, ctx.player_id, _parse_int(args[0], "Number"), args[1])
        else:
            raise InvalidAction("Must provide number and salt: commit <number> <salt>", "USAGE")

        committed = sum(1 for seat in view.seats if seat.committed)
        if view.phase is Phase.REVEALING:
            text = f"All players committed to game {game_id}. Now reveal with: reveal"
        else:
            text = f"Committed. Waiting for {len(view.seats) - committed} more commitment(s)."
        return CommandResponse(
            ok=True,
            text=text,
            structured_data={"game_id": game_id, "commits_received": committed, "total_players": len(view.seats)},
        )

    async def _reveal(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        game_id = self._locate(ctx, Phase.REVEALING)
        number = salt = None
        if len(args) >= 2:
            number, salt = _parse_int(args[0], "Number"), args[1]
        view = await self._engine.reveal(game_id, ctx.player_id, number, salt)

        if view.phase is Phase.PLAYING:
            current = next(seat.display_name for seat in view.seats if seat.player_id == view.current_player_id)
            text = (
                f"All players revealed. Master seed {view.seed}; cards dealt.\n"
                f"Use hand to see your cards. {current} acts first."
            )
        else:
            remaining = sum(1 for seat in view.seats if not seat.revealed)
            text = f"Reveal accepted. Waiting for {remaining} more reveal(s)."
        return CommandResponse(ok=True, text=text, structured_data={"game": view.model_dump(mode="json")})

    # Betting ---------------------------------------------------------

    def _betting(self, action: ActionKind) -> Handler:
        async def handler(args: list[str], ctx: CommandContext) -> CommandResponse:
            amount = None
            if action in (ActionKind.BET, ActionKind.RAISE):
                if not args:
                    raise InvalidAction(f"Usage: {action.value} <amount>", "USAGE")
                amount = _parse_int(args[0], "Amount")
            game_id = self._locate(ctx, Phase.PLAYING)
            outcome = await self._engine.act(game_id, ctx.player_id, action, amount)
            return await self._outcome_response(outcome)

        return handler

    async def _outcome_response(self, outcome: ActionOutcome) -> CommandResponse:
        view = await self._engine.get_status(outcome.game_id)
        names = {seat.player_id: seat.display_name for seat in view.seats}
        verb = outcome.action.value
        if outcome.amount:
            verb += f" {outcome.amount}"
        lines = [f"{names[outcome.player_id]}: {verb}. Pot: {outcome.pot}."]
        if outcome.result is not None:
            lines.append(_result_text(outcome.result, names))
            lines.append(f"Verify with: verify {outcome.game_id}")
        else:
            if outcome.round_advanced:
                lines.append(f"{outcome.betting_round.value.capitalize()}: {_cards(outcome.community_cards)}")
            if outcome.next_player_id is not None:
                lines.append(f"{names[outcome.next_player_id]} to act.")
        return CommandResponse(
            ok=True,
            text="\n".join(lines),
            structured_data={"outcome": outcome.model_dump(mode="json")},
        )

    # Reads -----------------------------------------------------------

    async def _verify(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        game_id = args[0] if args else self._locate(ctx, None)
        report = await self._engine.verify(game_id)

        lines = [f"Provable fairness verification: {game_id}", "Commitments:"]
        for row in report.commitments:
            status = "committed but not revealed"
            if row.valid is not None:
                status = f"revealed {row.revealed_number} (salt {row.salt}): {'valid' if row.valid else 'INVALID'}"
            lines.append(f"- {row.display_name}: {row.commitment[:16]}... {status}")
        if report.seed is not None:
            lines.append(f"Seed: {report.seed.expression}")
        if report.deck is not None:
            lines.append(
                f"Deck: recomputed {'matches' if report.deck.recomputed_match else 'DOES NOT match'}, "
                f"{report.deck.cards_dealt} cards dealt."
            )
        elif report.deck_hidden_reason:
            lines.append(report.deck_hidden_reason)
        if report.showdown_confirmed is not None:
            lines.append(f"Showdown cross-check: {'confirmed' if report.showdown_confirmed else 'MISMATCH'}")
        lines.append(f"Report hash: {report.report_hash}")
        return CommandResponse(
            ok=True,
            text="\n".join(lines),
            structured_data={"report": report.model_dump(mode="json")},
        )

    async def _games(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        games = self._engine.list_games()
        if not games:
            return CommandResponse(ok=True, text="No active poker games.", structured_data={"active_games": 0})
        lines = ["Active poker games:"]
        for summary in games:
            line = (
                f"- {summary.game_id}: host {summary.host_name}, ante {summary.ante}, "
                f"players {summary.players}/{summary.max_players}, phase {summary.phase.value}"
            )
            if summary.phase is Phase.JOINING and not summary.solo:
                line += f" (join {summary.ante})"
            lines.append(line)
        return CommandResponse(
            ok=True,
            text="\n".join(lines),
            structured_data={
                "active_games": len(games),
                "games": [summary.model_dump(mode="json") for summary in games],
            },
        )

    async def _hand(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        return await self._private_hand(ctx, self._locate(ctx, Phase.PLAYING))

    async def _cards(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        return await self._private_hand(ctx, self._locate(ctx, Phase.PLAYING, channel_id=ctx.channel_id))

    async def _private_hand(self, ctx: CommandContext, game_id: str) -> CommandResponse:
        hand = await self._engine.get_private_hand(game_id, ctx.player_id)
        return CommandResponse(
            ok=True,
            text=(
                f"Your hand (game {game_id}): {' '.join(hand.cards)}\n"
                f"Hand type: {hand.hand_description}\n"
                f"Community cards: {_cards(hand.community_cards)}\n"
                f"Round: {hand.betting_round.value}, pot {hand.pot}"
            ),
            structured_data={"hand": hand.model_dump(mode="json")},
        )

    async def _chips(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        view = await self._engine.get_status(self._locate(ctx, None))
        seat = next(seat for seat in view.seats if seat.player_id == ctx.player_id)
        return CommandResponse(
            ok=True,
            text=(
                f"Stack: {seat.chips} chips\n"
                f"Current bet: {seat.round_contribution}\n"
                f"Game: {view.game_id}, ante {view.ante}"
            ),
            structured_data={
                "game_id": view.game_id,
                "chips": seat.chips,
                "current_bet": seat.round_contribution,
                "ante": view.ante,
            },
        )

    async def _status(self, args: list[str], ctx: CommandContext) -> CommandResponse:
        view = await self._engine.get_status(self._locate(ctx, None))
        return CommandResponse(ok=True, text=self._status_text(view), structured_data={"game": view.model_dump(mode="json")})

    @staticmethod
    def _status_text(view: GameView) -> str:
        names = {seat.player_id: seat.display_name for seat in view.seats}
        lines = [
            f"Game status ({view.game_id})",
            f"Phase: {view.phase.value}",
            f"Betting round: {view.betting_round.value}",
            f"Current player: {names.get(view.current_player_id, 'none') if view.current_player_id else 'none'}",
            f"Pot: {view.pot}, current bet: {view.current_bet}",
            f"Community cards: {_cards(view.community_cards)}",
            "Players:",
        ]
        for seat in view.seats:
            flags = "".join([" (AI)" if seat.is_ai else "", " (folded)" if seat.folded else "", " (all-in)" if seat.all_in else ""])
            lines.append(f"- {seat.display_name}{flags}: {seat.chips} chips")
        if view.result is not None:
            lines.append(_result_text(view.result, names))
        return "\n".join(lines)
