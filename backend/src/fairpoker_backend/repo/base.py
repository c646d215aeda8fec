from __future__ import annotations

from abc import ABC, abstractmethod

from fairpoker_backend.engine.internal import GameRuntime
from fairpoker_backend.engine.models import Phase


class GameRegistry(ABC):
    @abstractmethod
    def create(self, game: GameRuntime) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, game_id: str) -> GameRuntime:
        raise NotImplementedError

    @abstractmethod
    def all(self) -> list[GameRuntime]:
        raise NotImplementedError

    @abstractmethod
    def claim_generation(self) -> int:
        """Register a new engine instance as the owner of AI behaviour."""
        raise NotImplementedError

    @abstractmethod
    def is_current_generation(self, generation: int) -> bool:
        raise NotImplementedError

    def find_for_player(
        self,
        player_id: str,
        phase: Phase | None = None,
        channel_id: str | None = None,
    ) -> GameRuntime | None:
        """Most recently created game seating ``player_id``, optionally filtered."""
        for game in reversed(self.all()):
            if channel_id is not None and game.channel_id != channel_id:
                continue
            if player_id not in game.players:
                continue
            if phase is None or game.phase is phase:
                return game
        return None

    def find_open_by_ante(self, ante: int) -> GameRuntime | None:
        for game in self.all():
            if game.ante == ante and game.phase is Phase.JOINING and not game.solo:
                return game
        return None
