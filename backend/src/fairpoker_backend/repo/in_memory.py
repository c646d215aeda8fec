from __future__ import annotations

import itertools

from fairpoker_backend.engine.errors import GameNotFound
from fairpoker_backend.engine.internal import GameRuntime
from fairpoker_backend.repo.base import GameRegistry


class InMemoryGameRegistry(GameRegistry):
    def __init__(self) -> None:
        self._games: dict[str, GameRuntime] = {}
        self._generations = itertools.count(1)
        self._owner_generation = 0

    def create(self, game: GameRuntime) -> None:
        self._games[game.game_id] = game

    def get(self, game_id: str) -> GameRuntime:
        if game_id not in self._games:
            raise GameNotFound(f"Game {game_id} not found.")
        return self._games[game_id]

    def all(self) -> list[GameRuntime]:
        return list(self._games.values())

    def claim_generation(self) -> int:
        self._owner_generation = next(self._generations)
        return self._owner_generation

    def is_current_generation(self, generation: int) -> bool:
        return generation == self._owner_generation
