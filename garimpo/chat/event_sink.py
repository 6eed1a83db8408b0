"""
Event sink and transports.

The sink is the only writer to a client stream. Writes to a transport that is
no longer writable are dropped instead of raised, and ``close()`` emits the
terminal ``close`` event exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

from garimpo.chat.models import (
    ChunkEvent,
    CloseEvent,
    ErrorEvent,
    StatusEvent,
    StreamEvent,
    encode_sse,
)

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Outbound channel to one client."""

    def is_writable(self) -> bool: ...

    async def write(self, data: str) -> None: ...

    async def close(self) -> None: ...


class QueueTransport:
    """In-process transport drained by the HTTP response generator.

    When the client goes away the response calls ``detach()``; from then on
    the transport reports itself unwritable and the producer keeps running
    without an audience.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._detached = False
        self._closed = False

    def is_writable(self) -> bool:
        return not (self._detached or self._closed)

    async def write(self, data: str) -> None:
        if not self.is_writable():
            raise ConnectionError("Transport is no longer writable")
        self._queue.put_nowait(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def detach(self) -> None:
        """Mark the client as gone."""
        if not self._detached:
            logger.info("Client disconnected; further events will be dropped")
        self._detached = True

    async def frames(self) -> AsyncIterator[str]:
        """Yield written frames until the transport is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class EventSink:
    def __init__(self, transport: Transport):
        self._transport = transport
        self._closed = False
        self._dead = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StreamEvent) -> None:
        """Write one event; silently dropped if the client is gone."""
        if self._closed or self._dead or not self._transport.is_writable():
            logger.debug("Dropping %s event for unwritable transport", event.type)
            return
        try:
            await self._transport.write(encode_sse(event))
        except (ConnectionError, OSError, RuntimeError) as e:
            self._dead = True
            logger.warning("Client stream write failed, dropping further events: %s", e)

    async def status(self, message: str) -> None:
        await self.send(StatusEvent(message=message))

    async def chunk(self, content: str) -> None:
        await self.send(ChunkEvent(content=content))

    async def error(self, message: str) -> None:
        await self.send(ErrorEvent(message=message))

    async def close(self) -> None:
        """Send the terminal ``close`` event once, then close the transport."""
        if self._closed:
            return
        await self.send(CloseEvent())
        self._closed = True
        try:
            await self._transport.close()
        except (ConnectionError, OSError, RuntimeError) as e:
            logger.warning("Error closing client stream: %s", e)
