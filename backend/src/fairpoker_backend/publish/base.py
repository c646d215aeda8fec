from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from fairpoker_backend.engine.models import RecordKind, SignedReceipt


class RecordPublisher(ABC):
    """Signs and ships audit records; delivery is best effort."""

    @property
    @abstractmethod
    def pubkey(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def publish(
        self,
        kind: RecordKind,
        content: dict[str, Any],
        tags: list[list[str]],
    ) -> SignedReceipt:
        raise NotImplementedError
