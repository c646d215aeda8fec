from __future__ import annotations

from fairpoker_backend.api.commands import CommandRouter
from fairpoker_backend.engine.service import PokerEngineService
from fairpoker_backend.publish.in_memory import InMemoryRecordPublisher
from fairpoker_backend.repo.in_memory import InMemoryGameRegistry


registry = InMemoryGameRegistry()
publisher = InMemoryRecordPublisher()
engine_service = PokerEngineService(registry, publisher=publisher)
command_router = CommandRouter(engine_service)
