from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fairpoker_backend.identity.base import DisplayNameResolver


logger = logging.getLogger(__name__)

ProfileLookup = Callable[[str], Awaitable[str | None]]


def fallback_name(player_id: str, length: int = 8) -> str:
    return f"User_{player_id[:length]}"


class CachedDisplayNameResolver(DisplayNameResolver):
    """Caches names from an optional profile lookup, falling back to a short id."""

    def __init__(
        self,
        lookup: ProfileLookup | None = None,
        known: dict[str, str] | None = None,
        fallback_length: int = 8,
    ) -> None:
        self._lookup = lookup
        self._cache: dict[str, str] = dict(known or {})
        self._fallback_length = fallback_length

    async def resolve_display_name(self, player_id: str) -> str:
        if player_id in self._cache:
            return self._cache[player_id]

        name = None
        if self._lookup is not None:
            try:
                name = await self._lookup(player_id)
            except Exception:
                logger.warning("profile lookup failed for %s", player_id, exc_info=True)
        if not name:
            name = fallback_name(player_id, self._fallback_length)
        self._cache[player_id] = name
        return name
