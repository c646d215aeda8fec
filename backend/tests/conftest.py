from __future__ import annotations

import pytest

from fairpoker_backend.engine.models import EngineConfig
from fairpoker_backend.engine.service import PokerEngineService
from fairpoker_backend.publish.in_memory import InMemoryRecordPublisher
from fairpoker_backend.repo.in_memory import InMemoryGameRegistry


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(ai_think_delay_min_s=0.0, ai_think_delay_max_s=0.0, ai_seed=7)


@pytest.fixture
def registry() -> InMemoryGameRegistry:
    return InMemoryGameRegistry()


@pytest.fixture
def publisher() -> InMemoryRecordPublisher:
    return InMemoryRecordPublisher(secret_key=b"test-secret")


@pytest.fixture
def engine(
    registry: InMemoryGameRegistry,
    publisher: InMemoryRecordPublisher,
    config: EngineConfig,
) -> PokerEngineService:
    return PokerEngineService(registry, publisher=publisher, config=config)
