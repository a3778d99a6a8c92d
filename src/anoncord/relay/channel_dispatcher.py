"""
Round-robin outbound dispatch.

Every relayed message goes out through the next connection in rotation,
regardless of which connection it came in on, so the sender seen in the
shared channel says nothing about the author. Delivery is fire-and-forget: a
failed send is logged and not retried on another connection.
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
from typing import Any, List, Protocol, Sequence

from anoncord.datatypes.content_datatypes import RelayContent, RelayFile
from anoncord.datatypes.relay_datatypes import (
    ChannelConnection,
    ConnectionID,
    DeliveryResult,
    DeliveryStatus,
)
from anoncord.util.logger import get_logger

logger = get_logger("channel_dispatcher")


class DeliveryChannel(Protocol):
    """Delivery layer: posts rendered text, plus any captured files, through one connection."""

    async def send(
        self,
        connection_id: ConnectionID,
        rendered_content: str,
        files: Sequence[RelayFile] = (),
    ) -> Any:
        ...


class ChannelDispatcher:
    """
    Selects connections in strict rotation and hands content to the delivery layer.

    The rotation index advances by exactly one per dispatch call that had a
    connection to choose from, whether or not the send then succeeds.
    """

    def __init__(self, delivery: DeliveryChannel, connections: Sequence[ChannelConnection]) -> None:
        self._delivery = delivery
        self._connections: List[ChannelConnection] = list(connections)
        self._index = 0
        self._lock = threading.Lock()

    @property
    def connections(self) -> tuple[ChannelConnection, ...]:
        with self._lock:
            return tuple(self._connections)

    @property
    def rotation_index(self) -> int:
        return self._index

    def next_connection(self) -> ChannelConnection | None:
        """Return the connection at the rotation index and advance it, or None if there are none."""
        with self._lock:
            if not self._connections:
                return None
            connection = self._connections[self._index]
            self._index = (self._index + 1) % len(self._connections)
            return connection

    async def dispatch(self, handle: str, content: RelayContent) -> DeliveryResult:
        connection = self.next_connection()
        if connection is None:
            logger.error("[DISPATCHER] No outbound connections configured; message from %s is undeliverable", handle)
            return DeliveryResult(status=DeliveryStatus.UNDELIVERABLE, detail="no outbound connections")

        rendered = content.render(handle)
        try:
            await self._delivery.send(connection.connection_id, rendered, files=content.files)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[DISPATCHER] Delivery via %s failed: %s", connection.connection_id, exc)
            self._set_health(connection.connection_id, False)
            return DeliveryResult(
                status=DeliveryStatus.DELIVERY_FAILED,
                connection_id=connection.connection_id,
                detail=str(exc),
            )

        if not connection.healthy:
            self._set_health(connection.connection_id, True)
        logger.debug("[DISPATCHER] Delivered message from %s via %s", handle, connection.connection_id)
        return DeliveryResult(status=DeliveryStatus.DELIVERED, connection_id=connection.connection_id)

    def _set_health(self, connection_id: ConnectionID, healthy: bool) -> None:
        with self._lock:
            for position, existing in enumerate(self._connections):
                if existing.connection_id == connection_id:
                    self._connections[position] = dataclasses.replace(existing, healthy=healthy)
                    break
