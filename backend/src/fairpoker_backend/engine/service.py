from __future__ import annotations

import logging
import random
from uuid import uuid4

from fairpoker_backend.bots.policy import AIView, BotDecision, BotPolicy, generate_secret
from fairpoker_backend.engine.errors import (
    EngineRejectedAction,
    GameNotFound,
    IllegalPhaseTransition,
    InvalidAction,
    InvalidCommitment,
)
from fairpoker_backend.engine.hands import evaluate_any
from fairpoker_backend.engine.internal import AIOpponent, GameRuntime
from fairpoker_backend.engine.machine import GameStateMachine, validate_secret
from fairpoker_backend.engine.models import (
    ActionKind,
    ActionOutcome,
    EngineConfig,
    GameConfig,
    GameSummary,
    GameView,
    HandView,
    Phase,
    SeatView,
    VerificationReport,
)
from fairpoker_backend.engine.scheduler import DeferredTaskScheduler
from fairpoker_backend.engine.verification import build_verification_report
from fairpoker_backend.identity.base import DisplayNameResolver
from fairpoker_backend.identity.in_memory import CachedDisplayNameResolver
from fairpoker_backend.publish.base import RecordPublisher
from fairpoker_backend.repo.base import GameRegistry
from fairpoker_backend.utils.cards import derive_seed
from fairpoker_backend.utils.hashing import create_commitment


logger = logging.getLogger(__name__)


class PokerEngineService:
    """Serialized async facade over the game rules.

    Every write runs under the game's lock; audit events produced by a write
    are published before the lock is released so records leave in order.
    """

    def __init__(
        self,
        registry: GameRegistry,
        publisher: RecordPublisher | None = None,
        resolver: DisplayNameResolver | None = None,
        config: EngineConfig | None = None,
        scheduler: DeferredTaskScheduler | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or EngineConfig()
        self._publisher = publisher
        self._resolver = resolver or CachedDisplayNameResolver(
            fallback_length=self._config.display_name_fallback_len,
        )
        self._scheduler = scheduler or DeferredTaskScheduler()
        self._machine = GameStateMachine(self._config)
        self._ai_rngs: dict[str, random.Random] = {}
        self._ai_rng_count = 0
        self._generation = registry.claim_generation()
        logger.info("engine instance claimed generation %s", self._generation)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def generation(self) -> int:
        return self._generation

    # Lifecycle -------------------------------------------------------

    async def create_game(
        self,
        host_id: str,
        config: GameConfig,
        channel_id: str | None = None,
    ) -> GameView:
        self._validate_game_config(config)
        host_name = await self._resolver.resolve_display_name(host_id)

        ai = None
        if config.solo:
            number, salt = generate_secret()
            ai = AIOpponent(difficulty=config.difficulty, secret_number=number, salt=salt)

        game = GameRuntime(
            game_id=f"game_{uuid4().hex[:12]}",
            host_id=host_id,
            ante=config.ante,
            max_players=2 if config.solo else config.max_players,
            solo=config.solo,
            ai=ai,
            channel_id=channel_id,
        )
        async with game.lock:
            self._machine.seat_player(game, host_id, host_name)
            pubkey = self._publisher.pubkey if self._publisher is not None else None
            self._machine.announce(game, host_name, pubkey)
            if ai is not None:
                self._machine.seat_player(game, ai.player_id, ai.display_name, is_ai=True)
                self._machine.start_commit_phase(game, requested_by=None)
                self._machine.add_commitment(
                    game,
                    ai.player_id,
                    create_commitment(ai.secret_number, ai.salt),
                    secret=(ai.secret_number, ai.salt),
                )
            self._registry.create(game)
            logger.info(
                "game %s created by %s (ante %s, max %s, solo=%s)",
                game.game_id,
                host_id,
                game.ante,
                game.max_players,
                game.solo,
            )
            await self._publish_since(game, 0)
            return self._build_view(game)

    async def join_game(self, game_id: str, player_id: str) -> GameView:
        display_name = await self._resolver.resolve_display_name(player_id)
        game = self._registry.get(game_id)
        async with game.lock:
            self._machine.seat_player(game, player_id, display_name)
            logger.info("game %s: %s joined (%s/%s)", game_id, player_id, len(game.players), game.max_players)
            return self._build_view(game)

    async def join_by_ante(self, player_id: str, ante: int) -> GameView:
        game = self._registry.find_open_by_ante(ante)
        if game is None:
            raise GameNotFound(f"No open game found with ante {ante}.", "NO_OPEN_GAME")
        return await self.join_game(game.game_id, player_id)

    async def start_game(self, game_id: str, player_id: str) -> GameView:
        game = self._registry.get(game_id)
        async with game.lock:
            self._machine.start_commit_phase(game, requested_by=player_id)
            return self._build_view(game)

    async def abandon_game(self, game_id: str, requested_by: str | None = None) -> GameView:
        game = self._registry.get(game_id)
        async with game.lock:
            if requested_by is not None and requested_by != game.host_id:
                raise InvalidAction("Only the game host can abandon the game.", "NOT_HOST")
            self._scheduler.cancel(game_id)
            start = len(game.audit_log)
            self._machine.abandon(game)
            self._release_ai(game)
            await self._publish_since(game, start)
            return self._build_view(game)

    # Commit / reveal -------------------------------------------------

    async def commit(self, game_id: str, player_id: str, number: int, salt: str) -> GameView:
        """Commit to ``number``/``salt``; the pair is remembered for ``reveal``."""
        number, salt = validate_secret(number, salt)
        return await self._commit(game_id, player_id, create_commitment(number, salt), (number, salt))

    async def commit_hash(self, game_id: str, player_id: str, commitment: str) -> GameView:
        return await self._commit(game_id, player_id, commitment, None)

    async def _commit(
        self,
        game_id: str,
        player_id: str,
        commitment: str,
        secret: tuple[int, str] | None,
    ) -> GameView:
        game = self._registry.get(game_id)
        async with game.lock:
            start = len(game.audit_log)
            self._machine.add_commitment(game, player_id, commitment, secret=secret)
            await self._publish_since(game, start)
            return self._build_view(game)

    async def reveal(
        self,
        game_id: str,
        player_id: str,
        number: int | None = None,
        salt: str | None = None,
    ) -> GameView:
        game = self._registry.get(game_id)
        async with game.lock:
            if game.phase is not Phase.REVEALING:
                raise IllegalPhaseTransition("No active game in reveal phase.")
            if number is None or salt is None:
                remembered = game.pending_secrets.get(player_id)
                if remembered is None:
                    raise InvalidCommitment(
                        "No remembered secret; reveal with your number and salt.",
                        "NO_SECRET",
                    )
                number, salt = remembered

            start = len(game.audit_log)
            self._machine.add_reveal(game, player_id, number, salt)
            ai = game.ai
            if ai is not None and game.phase is Phase.REVEALING and ai.player_id not in game.reveals:
                self._machine.add_reveal(game, ai.player_id, ai.secret_number, ai.salt)
            await self._publish_since(game, start)
            self._schedule_ai_turn(game)
            return self._build_view(game)

    # Betting ---------------------------------------------------------

    async def act(
        self,
        game_id: str,
        player_id: str,
        action: ActionKind,
        amount: int | None = None,
    ) -> ActionOutcome:
        game = self._registry.get(game_id)
        async with game.lock:
            self._resume_if_idle(game)
            start = len(game.audit_log)
            outcome = self._machine.apply_action(game, player_id, action, amount)
            await self._publish_since(game, start)
            self._release_ai(game)
            self._schedule_ai_turn(game)
            return outcome

    # Reads -----------------------------------------------------------

    async def verify(self, game_id: str) -> VerificationReport:
        game = self._registry.get(game_id)
        async with game.lock:
            return build_verification_report(game)

    async def get_status(self, game_id: str) -> GameView:
        game = self._registry.get(game_id)
        async with game.lock:
            self._resume_if_idle(game)
            return self._build_view(game)

    async def get_private_hand(self, game_id: str, player_id: str) -> HandView:
        game = self._registry.get(game_id)
        async with game.lock:
            player = game.players.get(player_id)
            if player is None:
                raise InvalidAction("Player not in game.", "NOT_SEATED")
            if not player.hole_cards:
                raise IllegalPhaseTransition("No cards dealt yet.", "NO_CARDS")
            evaluation = evaluate_any(player.hole_cards + game.community_cards)
            return HandView(
                game_id=game.game_id,
                player_id=player_id,
                cards=list(player.hole_cards),
                hand_type=evaluation.category.value,
                hand_description=evaluation.description,
                community_cards=list(game.community_cards),
                betting_round=game.betting_round,
                pot=game.pot,
            )

    def list_games(self) -> list[GameSummary]:
        return [
            GameSummary(
                game_id=game.game_id,
                host_id=game.host_id,
                host_name=game.players[game.host_id].display_name,
                ante=game.ante,
                players=len(game.players),
                max_players=game.max_players,
                phase=game.phase,
                solo=game.solo,
            )
            for game in self._registry.all()
            if game.phase is not Phase.FINISHED
        ]

    def locate_game(
        self,
        player_id: str,
        phase: Phase | None = None,
        channel_id: str | None = None,
    ) -> str | None:
        game = self._registry.find_for_player(player_id, phase=phase, channel_id=channel_id)
        return game.game_id if game is not None else None

    async def resume_ai(self) -> int:
        """Schedule AI turns left waiting by a superseded owner; returns how many."""
        resumed = 0
        for game in self._registry.all():
            async with game.lock:
                if self._resume_if_idle(game):
                    resumed += 1
        return resumed

    async def drain_ai(self) -> None:
        await self.resume_ai()
        await self._scheduler.drain()

    # AI --------------------------------------------------------------

    def _schedule_ai_turn(self, game: GameRuntime) -> None:
        ai = game.ai
        if ai is None or game.current_player_id != ai.player_id:
            return
        decision = self._decide(game, ai)
        expected_actions = len(game.actions)
        game_id = game.game_id

        async def _trigger() -> None:
            await self._run_ai_turn(game_id, expected_actions, decision)

        self._scheduler.schedule(game_id, decision.think_delay_s, _trigger)
        logger.debug(
            "game %s: AI %s scheduled in %.2fs",
            game_id,
            decision.action.value,
            decision.think_delay_s,
        )

    def _decide(self, game: GameRuntime, ai: AIOpponent) -> BotDecision:
        seat = game.players[ai.player_id]
        view = AIView(
            hole_cards=list(seat.hole_cards),
            community_cards=list(game.community_cards),
            pot=game.pot,
            to_call=max(0, game.current_bet - seat.round_contribution),
            chips=seat.chips,
            current_bet=game.current_bet,
            betting_round=game.betting_round,
            ante=game.ante,
        )
        return BotPolicy(ai.difficulty).choose_action(
            view=view,
            rng=self._ai_rng(game.game_id),
            delay_range=(self._config.ai_think_delay_min_s, self._config.ai_think_delay_max_s),
        )

    def _resume_if_idle(self, game: GameRuntime) -> bool:
        ai = game.ai
        if (
            ai is None
            or game.phase is not Phase.PLAYING
            or game.current_player_id != ai.player_id
            or self._scheduler.pending(game.game_id)
            or not self._registry.is_current_generation(self._generation)
        ):
            return False
        logger.info("game %s: resuming AI turn under generation %s", game.game_id, self._generation)
        self._schedule_ai_turn(game)
        return True

    def _release_ai(self, game: GameRuntime) -> None:
        if game.phase is Phase.FINISHED:
            self._ai_rngs.pop(game.game_id, None)

    def _ai_rng(self, game_id: str) -> random.Random:
        rng = self._ai_rngs.get(game_id)
        if rng is None:
            if self._config.ai_seed is None:
                rng = random.Random()
            else:
                rng = random.Random(derive_seed(self._config.ai_seed, self._ai_rng_count, "ai"))
            self._ai_rng_count += 1
            self._ai_rngs[game_id] = rng
        return rng

    async def _run_ai_turn(self, game_id: str, expected_actions: int, decision: BotDecision) -> None:
        try:
            game = self._registry.get(game_id)
        except GameNotFound:
            logger.debug("AI trigger for unknown game %s ignored", game_id)
            return

        async with game.lock:
            if not self._registry.is_current_generation(self._generation):
                logger.debug("generation %s superseded; AI trigger for %s declined", self._generation, game_id)
                return
            ai = game.ai
            if (
                ai is None
                or game.phase is not Phase.PLAYING
                or game.current_player_id != ai.player_id
                or len(game.actions) != expected_actions
            ):
                logger.debug("stale AI trigger for %s ignored", game_id)
                return

            start = len(game.audit_log)
            try:
                self._machine.apply_action(game, ai.player_id, decision.action, decision.amount)
            except EngineRejectedAction as exc:
                logger.warning(
                    "game %s: AI %s rejected (%s); folding instead",
                    game_id,
                    decision.action.value,
                    exc.code,
                )
                self._machine.apply_action(game, ai.player_id, ActionKind.FOLD)
            await self._publish_since(game, start)
            self._release_ai(game)
            self._schedule_ai_turn(game)

    # Helpers ---------------------------------------------------------

    def _validate_game_config(self, config: GameConfig) -> None:
        if config.ante < self._config.min_ante:
            raise InvalidAction(f"Minimum ante is {self._config.min_ante} chips.", "ANTE_TOO_LOW")
        if not self._config.min_players <= config.max_players <= self._config.max_players_limit:
            raise InvalidAction(
                f"Max players must be between {self._config.min_players} "
                f"and {self._config.max_players_limit}.",
                "INVALID_MAX_PLAYERS",
            )

    async def _publish_since(self, game: GameRuntime, start: int) -> None:
        if self._publisher is None:
            return
        for event in game.audit_log[start:]:
            try:
                await self._publisher.publish(event.kind, event.payload, event.tags)
            except Exception:
                logger.warning(
                    "publishing %s #%s for game %s failed",
                    event.kind.value,
                    event.seq,
                    game.game_id,
                    exc_info=True,
                )

    def _build_view(self, game: GameRuntime) -> GameView:
        seats = [
            SeatView(
                player_id=player.player_id,
                display_name=player.display_name,
                chips=player.chips,
                round_contribution=player.round_contribution,
                folded=player.folded,
                all_in=player.all_in,
                is_ai=player.is_ai,
                committed=player.player_id in game.commitments,
                revealed=player.player_id in game.reveals,
            )
            for player in game.players.values()
        ]
        return GameView(
            game_id=game.game_id,
            host_id=game.host_id,
            ante=game.ante,
            max_players=game.max_players,
            solo=game.solo,
            difficulty=game.ai.difficulty if game.ai is not None else None,
            phase=game.phase,
            betting_round=game.betting_round,
            pot=game.pot,
            current_bet=game.current_bet,
            community_cards=list(game.community_cards),
            seats=seats,
            current_player_id=game.current_player_id,
            seed=game.seed,
            created_at=game.created_at,
            result=game.result,
        )
