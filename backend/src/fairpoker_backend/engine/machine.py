from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from fairpoker_backend.engine.errors import (
    CommitmentMismatch,
    EngineInvariantViolation,
    GameFull,
    IllegalPhaseTransition,
    IllegalTurn,
    InsufficientChips,
    InvalidAction,
    InvalidCommitment,
    PlayerAlreadySeated,
)
from fairpoker_backend.engine.hands import Comparison, compare, evaluate
from fairpoker_backend.engine.internal import GameRuntime, PlayerRuntime, now_iso
from fairpoker_backend.engine.models import (
    COMMITMENT_SCHEME,
    ENGINE_VERSION,
    PHASE_ORDER,
    SHUFFLE_ALGORITHM,
    ActionKind,
    ActionOutcome,
    AuditEvent,
    BettingRound,
    CommitmentRecord,
    EndReason,
    EngineConfig,
    GameAction,
    GameResult,
    Phase,
    PotAward,
    RecordKind,
    RevealRecord,
    ShowdownRow,
)
from fairpoker_backend.utils.cards import build_shuffled_deck, derive_master_seed
from fairpoker_backend.utils.hashing import deck_digest, verify_commitment


logger = logging.getLogger(__name__)

COMMITMENT_PATTERN = re.compile(r"^[0-9a-f]{64}$")
NEXT_ROUND = {
    BettingRound.PREFLOP: (BettingRound.FLOP, 3),
    BettingRound.FLOP: (BettingRound.TURN, 1),
    BettingRound.TURN: (BettingRound.RIVER, 1),
}


def validate_secret(number: Any, salt: Any) -> tuple[int, str]:
    if isinstance(number, bool) or not isinstance(number, int) or number < 0:
        raise InvalidAction("Secret number must be a non-negative integer.", "INVALID_SECRET")
    if not isinstance(salt, str) or not salt or any(ch.isspace() for ch in salt):
        raise InvalidAction("Salt must be a non-empty string without whitespace.", "INVALID_SALT")
    return number, salt


def is_betting_round_complete(players: Iterable[PlayerRuntime]) -> bool:
    live = [player for player in players if not player.folded]
    if len(live) <= 1:
        return True
    actors = [player for player in live if not player.all_in]
    if any(not player.acted_this_round for player in actors):
        return False
    level = max(player.round_contribution for player in live)
    return all(player.round_contribution == level for player in actors)


def pot_matches_contributions(game: GameRuntime) -> bool:
    return game.pot == sum(player.total_contribution for player in game.players.values())


# Each rule validates before anything is written and returns the chips to move.
def _owed(game: GameRuntime, player: PlayerRuntime) -> int:
    return game.current_bet - player.round_contribution


def _reject_amount(action: ActionKind, amount: int | None) -> None:
    if amount is not None:
        raise InvalidAction(f"{action.value} does not take an amount.", "UNEXPECTED_AMOUNT")


def _require_amount(action: ActionKind, amount: int | None) -> int:
    if amount is None or isinstance(amount, bool) or amount <= 0:
        raise InvalidAction(f"Invalid {action.value} amount.", "INVALID_AMOUNT")
    return amount


def _validate_fold(game: GameRuntime, player: PlayerRuntime, amount: int | None) -> int:
    _reject_amount(ActionKind.FOLD, amount)
    return 0


def _validate_check(game: GameRuntime, player: PlayerRuntime, amount: int | None) -> int:
    _reject_amount(ActionKind.CHECK, amount)
    if _owed(game, player) > 0:
        raise InvalidAction(
            "Cannot check when there is a bet to call (use call, fold, or raise instead).",
            "BET_OWED",
        )
    return 0


def _validate_call(game: GameRuntime, player: PlayerRuntime, amount: int | None) -> int:
    _reject_amount(ActionKind.CALL, amount)
    owed = max(0, _owed(game, player))
    if owed > player.chips:
        raise InsufficientChips(f"Not enough chips to call {owed} (stack {player.chips}).")
    return owed


def _validate_bet(game: GameRuntime, player: PlayerRuntime, amount: int | None) -> int:
    if game.current_bet > 0:
        raise InvalidAction("Cannot bet when there is already a bet (use raise instead).", "BET_EXISTS")
    size = _require_amount(ActionKind.BET, amount)
    if size > player.chips:
        raise InsufficientChips(f"Not enough chips to bet {size} (stack {player.chips}).")
    return size


def _validate_raise(game: GameRuntime, player: PlayerRuntime, amount: int | None) -> int:
    if game.current_bet == 0:
        raise InvalidAction("Cannot raise when there is no bet (use bet instead).", "NO_BET_TO_RAISE")
    size = _require_amount(ActionKind.RAISE, amount)
    total = game.current_bet + size - player.round_contribution
    if total > player.chips:
        raise InsufficientChips(f"Not enough chips to raise: need {total}, stack {player.chips}.")
    return total


def _apply_fold(game: GameRuntime, player: PlayerRuntime, payment: int) -> None:
    player.folded = True


def _apply_check(game: GameRuntime, player: PlayerRuntime, payment: int) -> None:
    return None


def _apply_payment(game: GameRuntime, player: PlayerRuntime, payment: int) -> None:
    player.pay(payment)
    game.pot += payment


def _apply_bet_level(game: GameRuntime, player: PlayerRuntime, payment: int) -> None:
    _apply_payment(game, player, payment)
    game.current_bet = player.round_contribution


@dataclass(frozen=True)
class ActionRule:
    validate: Callable[[GameRuntime, PlayerRuntime, int | None], int]
    apply: Callable[[GameRuntime, PlayerRuntime, int], None]


ACTION_RULES: dict[ActionKind, ActionRule] = {
    ActionKind.FOLD: ActionRule(_validate_fold, _apply_fold),
    ActionKind.CHECK: ActionRule(_validate_check, _apply_check),
    ActionKind.CALL: ActionRule(_validate_call, _apply_payment),
    ActionKind.BET: ActionRule(_validate_bet, _apply_bet_level),
    ActionKind.RAISE: ActionRule(_validate_raise, _apply_bet_level),
}
assert set(ACTION_RULES) == set(ActionKind), "every action kind needs a rule"


class GameStateMachine:
    """Synchronous rules for a single game. Callers serialize access per game."""

    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    # Seating ---------------------------------------------------------

    def seat_player(
        self,
        game: GameRuntime,
        player_id: str,
        display_name: str,
        *,
        is_ai: bool = False,
    ) -> PlayerRuntime:
        if game.phase is not Phase.JOINING:
            raise IllegalPhaseTransition("Cannot join game in progress.")
        if player_id in game.players:
            raise PlayerAlreadySeated("You are already in this game.")
        if len(game.players) >= game.max_players:
            raise GameFull("Game is full.")

        player = PlayerRuntime(
            player_id=player_id,
            display_name=display_name,
            chips=game.ante * self._config.chips_per_ante,
            is_ai=is_ai,
        )
        game.players[player_id] = player
        return player

    def announce(self, game: GameRuntime, host_name: str, publisher_pubkey: str | None) -> None:
        self._emit(
            game,
            RecordKind.BOT_IDENTITY,
            {
                "type": "poker_bot",
                "game_id": game.game_id,
                "version": ENGINE_VERSION,
                "algorithm": SHUFFLE_ALGORITHM,
                "commitment_scheme": COMMITMENT_SCHEME,
                "created_at": game.created_at,
            },
            [["poker_bot", "true"], ["version", ENGINE_VERSION]],
        )
        tags = [
            ["poker_game", "true"],
            ["ante", str(game.ante)],
            ["max_players", str(game.max_players)],
        ]
        if game.channel_id:
            tags.insert(0, ["e", game.channel_id])
        if publisher_pubkey:
            tags.append(["bot_pubkey", publisher_pubkey])
        self._emit(
            game,
            RecordKind.GAME_ANNOUNCEMENT,
            {
                "game_id": game.game_id,
                "host": host_name,
                "ante": game.ante,
                "max_players": game.max_players,
                "solo": game.solo,
            },
            tags,
        )

    # Commit / reveal -------------------------------------------------

    def start_commit_phase(self, game: GameRuntime, requested_by: str | None) -> list[str]:
        if game.phase is not Phase.JOINING:
            raise IllegalPhaseTransition("No active game in joining phase.")
        if requested_by is not None and requested_by != game.host_id:
            raise InvalidAction("Only the game host can start the game.", "NOT_HOST")
        if len(game.players) < self._config.min_players:
            raise IllegalPhaseTransition(
                f"Need at least {self._config.min_players} players to start.",
                "NOT_ENOUGH_PLAYERS",
            )
        self._transition(game, Phase.COMMITTING)
        return list(game.players)

    def add_commitment(
        self,
        game: GameRuntime,
        player_id: str,
        commitment: str,
        secret: tuple[int, str] | None = None,
    ) -> bool:
        if game.phase is not Phase.COMMITTING:
            raise IllegalPhaseTransition("No active game in commit phase.")
        self._seated(game, player_id)
        if player_id in game.commitments:
            raise InvalidCommitment("You have already committed for this game.", "ALREADY_COMMITTED")
        normalized = commitment.strip().lower()
        if not COMMITMENT_PATTERN.match(normalized):
            raise InvalidCommitment("Commitment must be a 64-character SHA-256 hex digest.", "MALFORMED_COMMITMENT")

        record = CommitmentRecord(player_id=player_id, commitment=normalized, committed_at=now_iso())
        game.commitments[player_id] = record
        if secret is not None:
            game.pending_secrets[player_id] = secret
        self._emit(
            game,
            RecordKind.PLAYER_COMMIT,
            {
                "player_pubkey": player_id,
                "commitment": normalized,
                "phase": "commit",
                "timestamp": record.committed_at,
            },
            [["player", player_id], ["phase", "commit"], ["commitment", normalized]],
        )

        all_committed = len(game.commitments) == len(game.players)
        if all_committed:
            self._transition(game, Phase.REVEALING)
        return all_committed

    def add_reveal(self, game: GameRuntime, player_id: str, number: int, salt: str) -> bool:
        if game.phase is not Phase.REVEALING:
            raise IllegalPhaseTransition("No active game in reveal phase.")
        self._seated(game, player_id)
        commitment = game.commitments.get(player_id)
        if commitment is None:
            raise InvalidCommitment("You need to commit first.", "NOT_COMMITTED")
        if player_id in game.reveals:
            raise InvalidCommitment("You have already revealed for this game.", "ALREADY_REVEALED")
        number, salt = validate_secret(number, salt)
        if not verify_commitment(number, salt, commitment.commitment):
            raise CommitmentMismatch(f"Invalid reveal from {player_id}: commitment mismatch.")

        record = RevealRecord(player_id=player_id, number=number, salt=salt, revealed_at=now_iso())
        game.reveals[player_id] = record
        self._emit(
            game,
            RecordKind.PLAYER_REVEAL,
            {
                "player_pubkey": player_id,
                "random_number": number,
                "salt": salt,
                "phase": "reveal",
                "timestamp": record.revealed_at,
            },
            [["player", player_id], ["phase", "reveal"], ["number", str(number)], ["salt", salt]],
        )

        all_revealed = len(game.reveals) == len(game.players)
        if all_revealed:
            self._generate_deck_and_deal(game)
        return all_revealed

    def _generate_deck_and_deal(self, game: GameRuntime) -> None:
        if game.deck:
            raise EngineInvariantViolation(f"deck for {game.game_id} already generated")
        contributions = [game.reveals[player_id] for player_id in game.players]
        game.seed = derive_master_seed(reveal.number for reveal in contributions)
        game.deck = build_shuffled_deck(game.seed)
        game.deck_cursor = 0
        game.deck_digest = deck_digest(game.deck)
        self._emit(
            game,
            RecordKind.DECK_GENERATION,
            {
                "master_seed": game.seed,
                "deck_digest": game.deck_digest,
                "deck_size": len(game.deck),
                "algorithm": SHUFFLE_ALGORITHM,
                "player_contributions": [
                    {"player": reveal.player_id, "number": reveal.number, "salt": reveal.salt}
                    for reveal in contributions
                ],
                "verifiable": True,
            },
            [
                ["phase", "deck_generated"],
                ["master_seed", str(game.seed)],
                ["deck_size", str(len(game.deck))],
                ["algorithm", SHUFFLE_ALGORITHM],
            ],
        )
        logger.info("game %s deck generated from seed %s", game.game_id, game.seed)

        for player in game.players.values():
            player.hole_cards = [game.next_card(), game.next_card()]

        order = list(game.players)
        if game.solo and game.ai is not None:
            humans = [player_id for player_id in order if player_id != game.ai.player_id]
            order = humans + [game.ai.player_id]
        game.turn_order = order
        game.betting_round = BettingRound.PREFLOP
        game.current_bet = 0
        self._transition(game, Phase.PLAYING)
        game.turn_index = 0

    # Betting ---------------------------------------------------------

    def apply_action(
        self,
        game: GameRuntime,
        player_id: str,
        action: ActionKind,
        amount: int | None = None,
    ) -> ActionOutcome:
        if game.phase is not Phase.PLAYING:
            raise IllegalPhaseTransition("No active game in playing phase.")
        player = self._seated(game, player_id)
        current = game.current_player_id
        if current != player_id:
            name = game.players[current].display_name if current else "nobody"
            raise IllegalTurn(f"It's {name}'s turn to act.")

        rule = ACTION_RULES[action]
        payment = rule.validate(game, player, amount)

        acting_round = game.betting_round
        rule.apply(game, player, payment)
        player.acted_this_round = True
        logged_amount = payment if action is ActionKind.CALL else amount
        game.actions.append(
            GameAction(
                player_id=player_id,
                action=action,
                amount=logged_amount,
                betting_round=acting_round,
                timestamp=now_iso(),
            ),
        )
        self._emit_action(game, player_id, action, logged_amount)
        logger.debug("game %s: %s %s %s", game.game_id, player_id, action.value, logged_amount)

        round_advanced = False
        live = game.live_players()
        if len(live) == 1:
            self._award_uncontested(game, live[0])
        elif is_betting_round_complete(live):
            self._advance_round(game)
            round_advanced = True
        else:
            self._rotate_turn(game)

        return ActionOutcome(
            game_id=game.game_id,
            player_id=player_id,
            action=action,
            amount=logged_amount,
            pot=game.pot,
            current_bet=game.current_bet,
            betting_round=game.betting_round,
            phase=game.phase,
            round_advanced=round_advanced,
            community_cards=list(game.community_cards),
            next_player_id=game.current_player_id,
            result=game.result,
        )

    def _rotate_turn(self, game: GameRuntime) -> None:
        assert game.turn_index is not None
        size = len(game.turn_order)
        for step in range(1, size + 1):
            index = (game.turn_index + step) % size
            if game.players[game.turn_order[index]].can_act:
                game.turn_index = index
                return
        raise EngineInvariantViolation(f"game {game.game_id} has no player able to act")

    def _advance_round(self, game: GameRuntime) -> None:
        while True:
            if game.betting_round is BettingRound.RIVER:
                self._showdown(game)
                return

            for player in game.players.values():
                player.reset_for_round()
            game.current_bet = 0
            next_round, count = NEXT_ROUND[game.betting_round]
            game.community_cards.extend(game.next_card() for _ in range(count))
            game.betting_round = next_round
            logger.debug("game %s: %s %s", game.game_id, next_round.value, game.community_cards)

            actors = [index for index, pid in enumerate(game.turn_order) if game.players[pid].can_act]
            if len(actors) >= 2:
                game.turn_index = actors[0]
                return
            # nobody left to bet against: run the board out

    def _award_uncontested(self, game: GameRuntime, winner: PlayerRuntime) -> None:
        winner.chips += game.pot
        result = GameResult(
            reason=EndReason.OPPONENTS_FOLDED,
            winners=[PotAward(player_id=winner.player_id, amount=game.pot)],
            pot=game.pot,
            final_hands={pid: list(player.hole_cards) for pid, player in game.players.items()},
            community_cards=list(game.community_cards),
        )
        self._finish(game, result)

    def _showdown(self, game: GameRuntime) -> None:
        live = game.live_players()
        evaluations = {
            player.player_id: evaluate(player.hole_cards + game.community_cards)
            for player in live
        }
        best = max(evaluations.values(), key=lambda evaluation: evaluation.sort_key)
        winners = [
            player for player in live
            if compare(evaluations[player.player_id], best) is Comparison.EQUAL
        ]

        share, remainder = divmod(game.pot, len(winners))
        awards: list[PotAward] = []
        for index, player in enumerate(winners):
            odd = 1 if index < remainder else 0
            player.chips += share + odd
            awards.append(PotAward(player_id=player.player_id, amount=share + odd, odd_chips=odd))
        won = {award.player_id: award.amount for award in awards}

        rows = [
            ShowdownRow(
                player_id=player.player_id,
                display_name=player.display_name,
                hole_cards=list(player.hole_cards),
                best_cards=list(evaluations[player.player_id].cards),
                best_hand_name=evaluations[player.player_id].description,
                hand_rank_value=evaluations[player.player_id].strength,
                amount_won=won.get(player.player_id, 0),
            )
            for player in live
        ]
        rows.sort(key=lambda row: evaluations[row.player_id].sort_key, reverse=True)
        result = GameResult(
            reason=EndReason.SHOWDOWN,
            winners=awards,
            pot=game.pot,
            showdown=rows,
            final_hands={pid: list(player.hole_cards) for pid, player in game.players.items()},
            community_cards=list(game.community_cards),
        )
        self._finish(game, result)

    def abandon(self, game: GameRuntime) -> None:
        if game.phase is Phase.FINISHED:
            return
        # chips already in the pot go back to whoever put them in
        for player in game.players.values():
            player.chips += player.total_contribution
        result = GameResult(
            reason=EndReason.ABANDONED,
            winners=[],
            pot=game.pot,
            final_hands={pid: list(player.hole_cards) for pid, player in game.players.items()},
            community_cards=list(game.community_cards),
        )
        self._finish(game, result)

    def _finish(self, game: GameRuntime, result: GameResult) -> None:
        game.result = result
        game.turn_index = None
        self._transition(game, Phase.FINISHED)
        winner = result.winners[0].player_id if result.winners else ""
        self._emit(
            game,
            RecordKind.GAME_RESULT,
            {
                "game_id": game.game_id,
                "winners": [award.model_dump(mode="json") for award in result.winners],
                "reason": result.reason.value,
                "final_pot": game.pot,
                "final_hands": [
                    {"player": pid, "cards": cards} for pid, cards in result.final_hands.items()
                ],
                "community_cards": result.community_cards,
                "master_seed": game.seed,
                "deck": list(game.deck),
                "verifiable": True,
            },
            [
                ["winner", winner],
                ["reason", result.reason.value],
                ["win_amount", str(sum(award.amount for award in result.winners))],
                ["game_finished", "true"],
            ],
        )
        logger.info("game %s finished (%s), pot %s", game.game_id, result.reason.value, game.pot)

    # Helpers ---------------------------------------------------------

    def _seated(self, game: GameRuntime, player_id: str) -> PlayerRuntime:
        player = game.players.get(player_id)
        if player is None:
            raise InvalidAction("Player not in game.", "NOT_SEATED")
        return player

    def _transition(self, game: GameRuntime, target: Phase) -> None:
        if PHASE_ORDER.index(target) <= PHASE_ORDER.index(game.phase):
            raise EngineInvariantViolation(
                f"game {game.game_id}: backward transition {game.phase.value} -> {target.value}",
            )
        logger.info("game %s: %s -> %s", game.game_id, game.phase.value, target.value)
        game.phase = target

    def _emit_action(
        self,
        game: GameRuntime,
        player_id: str,
        action: ActionKind,
        amount: int | None,
    ) -> None:
        tags = [
            ["player", player_id],
            ["action", action.value],
            ["betting_round", game.betting_round.value],
            ["pot", str(game.pot)],
        ]
        if amount:
            tags.append(["amount", str(amount)])
        self._emit(
            game,
            RecordKind.GAME_ACTION,
            {
                "player_pubkey": player_id,
                "action": action.value,
                "amount": amount,
                "betting_round": game.betting_round.value,
                "pot_size": game.pot,
                "current_bet": game.current_bet,
                "phase": "action",
                "community_cards": list(game.community_cards),
            },
            tags,
        )

    def _emit(
        self,
        game: GameRuntime,
        kind: RecordKind,
        payload: dict[str, Any],
        tags: list[list[str]],
    ) -> AuditEvent:
        event = AuditEvent(
            seq=len(game.audit_log) + 1,
            game_id=game.game_id,
            kind=kind,
            ts=now_iso(),
            payload=payload,
            tags=[["d", game.game_id], ["game_id", game.game_id], *tags],
        )
        game.audit_log.append(event)
        return event
