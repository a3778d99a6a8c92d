"""
Authorised moderator set, refreshed from an external membership provider.

The registry keeps an immutable snapshot that is replaced in a single
assignment after each successful refresh. Readers (``contains``,
``snapshot``) never touch the provider and never see a half-updated set.
"""

from __future__ import annotations

import asyncio
import time
from types import MappingProxyType
from typing import Iterable, Mapping, Protocol

from anoncord.datatypes.relay_datatypes import Moderator, ModeratorID
from anoncord.util.logger import get_logger

logger = get_logger("moderator_registry")


class MembershipProvider(Protocol):
    """Source of truth for who may moderate."""

    async def fetch_moderator_ids(self) -> Iterable[ModeratorID]:
        ...


class ModeratorRegistry:
    """
    Cached moderator snapshot.

    Args:
        provider: External membership provider queried by :meth:`refresh`.
        initial: Optional moderator IDs to seed the snapshot with before the
            first refresh completes.
    """

    def __init__(self, provider: MembershipProvider | None = None, initial: Iterable[ModeratorID] = ()) -> None:
        self._provider = provider
        self._snapshot: Mapping[ModeratorID, Moderator] = self._build(initial, time.time())
        self._refresh_lock = asyncio.Lock()
        self.last_refresh: float | None = None

    @staticmethod
    def _build(ids: Iterable[ModeratorID], seen_at: float) -> Mapping[ModeratorID, Moderator]:
        return MappingProxyType({mid: Moderator(moderator_id=mid, last_seen_in_snapshot=seen_at) for mid in ids})

    def set_provider(self, provider: MembershipProvider) -> None:
        self._provider = provider

    async def refresh(self) -> bool:
        """
        Query the provider and replace the snapshot.

        Returns True when a new snapshot was published. On provider failure
        the previous snapshot stays in place and the error is logged.
        """
        if self._provider is None:
            logger.warning("[REGISTRY] No membership provider configured; keeping current snapshot")
            return False

        async with self._refresh_lock:
            try:
                ids = list(await self._provider.fetch_moderator_ids())
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[REGISTRY] Failed to fetch moderators: %s", exc)
                return False

            previous = self._snapshot
            self._snapshot = self._build(ids, time.time())
            self.last_refresh = time.time()

        added = self._snapshot.keys() - previous.keys()
        removed = previous.keys() - self._snapshot.keys()
        if added or removed:
            logger.info("[REGISTRY] Moderator set updated: %d total (+%d / -%d)", len(self._snapshot), len(added), len(removed))
        else:
            logger.debug("[REGISTRY] Moderator set unchanged (%d)", len(self._snapshot))
        return True

    def replace(self, ids: Iterable[ModeratorID]) -> None:
        """Publish a snapshot directly, bypassing the provider."""
        self._snapshot = self._build(ids, time.time())

    def contains(self, moderator_id: ModeratorID) -> bool:
        return moderator_id in self._snapshot

    def snapshot(self) -> tuple[Moderator, ...]:
        return tuple(self._snapshot.values())

    def moderator_ids(self) -> tuple[ModeratorID, ...]:
        return tuple(self._snapshot.keys())

    def __len__(self) -> int:
        return len(self._snapshot)
