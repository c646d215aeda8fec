from __future__ import annotations

from abc import ABC, abstractmethod


class DisplayNameResolver(ABC):
    @abstractmethod
    async def resolve_display_name(self, player_id: str) -> str:
        raise NotImplementedError
