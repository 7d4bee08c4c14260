"""Per-request reply queues.

Every request opens its own channel on the shared connection, declares an
exclusive, auto-deleting, server-named queue on it and consumes from that
queue with automatic acknowledgement. The queue, its consumer and the channel
are torn down when the request leaves :func:`acquire_reply_channel`, whatever
the outcome.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue

from mqgw.utils.logging import get_logger

LOG = get_logger(__name__)


class ReplyChannel:
    def __init__(self, channel: AbstractChannel, queue: AbstractQueue) -> None:
        self.channel = channel
        self.queue = queue
        self.consumer_tag: Optional[str] = None
        self._delivered: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def queue_name(self) -> str:
        return self.queue.name

    async def start(self) -> None:
        self.consumer_tag = await self.queue.consume(self._on_message, no_ack=True)

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        if self._delivered.done():
            LOG.debug(
                "Dropping extra message on reply queue",
                extra={"queue": self.queue_name, "correlation_id": message.correlation_id},
            )
            return
        self._delivered.set_result(message)

    async def next_message(self) -> AbstractIncomingMessage:
        return await self._delivered

    async def release(self) -> None:
        try:
            if self.consumer_tag is not None:
                await self.queue.cancel(self.consumer_tag)
            await self.queue.delete(if_unused=False, if_empty=False)
        except Exception as exc:
            LOG.warning("Failed to delete reply queue", extra={"queue": self.queue_name, "error": str(exc)})
        finally:
            await _close_channel(self.channel)


async def _close_channel(channel: AbstractChannel) -> None:
    if channel.is_closed:
        return
    try:
        await channel.close()
    except Exception as exc:
        LOG.warning("Failed to close reply channel", extra={"error": str(exc)})


@asynccontextmanager
async def acquire_reply_channel(connection: AbstractConnection) -> AsyncIterator[ReplyChannel]:
    channel = await connection.channel()
    try:
        queue = await channel.declare_queue(exclusive=True, auto_delete=True)
    except BaseException:
        await _close_channel(channel)
        raise
    reply = ReplyChannel(channel, queue)
    try:
        await reply.start()
        yield reply
    finally:
        await reply.release()
