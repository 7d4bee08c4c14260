"""Request-reply over the work queue."""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from pydantic import ValidationError

from mqgw.broker.connection import ConnectionManager
from mqgw.broker.errors import (
    BridgeError,
    CorrelationMismatchError,
    MalformedReplyError,
    PublishError,
    ReplyTimeoutError,
)
from mqgw.broker.reply import ReplyChannel, acquire_reply_channel
from mqgw.monitoring.metrics import observe_bridge
from mqgw.serving.schemas import PredictRequest, PredictResponse
from mqgw.utils.logging import get_logger

LOG = get_logger(__name__)

CONTENT_TYPE = "application/json"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class RequestReplyBridge:
    """Publishes a request and waits for the one reply that carries its correlation id.

    A mismatched correlation id on the private reply queue fails the call at
    once instead of waiting for another delivery: the queue is exclusive to
    this request, so a foreign id means something upstream is broken.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        request_queue: str,
        timeout_seconds: float = 5.0,
        token_factory: Callable[[], str] = new_correlation_id,
    ) -> None:
        self.connection_manager = connection_manager
        self.request_queue = request_queue
        self.timeout_seconds = timeout_seconds
        self._token_factory = token_factory

    async def send(self, envelope: PredictRequest, timeout: Optional[float] = None) -> PredictResponse:
        """Publish ``envelope`` and return its reply.

        ``timeout`` bounds the whole round trip: opening the reply channel,
        the publish (which waits for the broker's confirm) and the reply wait.
        Running out of time before the publish is confirmed is a
        :class:`PublishError`; after it, a :class:`ReplyTimeoutError`.
        """
        timeout = self.timeout_seconds if timeout is None else timeout
        connection = self.connection_manager.connection
        start = time.perf_counter()
        correlation_id: Optional[str] = None
        published = False
        outcome = "success"

        async def round_trip() -> PredictResponse:
            nonlocal correlation_id, published
            try:
                async with acquire_reply_channel(connection) as reply:
                    correlation_id = self._token_factory()
                    await self._publish(reply, envelope, correlation_id)
                    published = True
                    message = await self._await_reply(reply, correlation_id)
                    return self._decode(message, correlation_id)
            except BridgeError:
                raise
            except Exception as exc:
                raise PublishError(f"Reply queue setup failed: {exc}", correlation_id) from exc

        try:
            if connection is None or connection.is_closed:
                raise PublishError("Broker connection is not available")
            try:
                response = await asyncio.wait_for(round_trip(), timeout)
            except asyncio.TimeoutError:
                if published:
                    raise ReplyTimeoutError(f"No reply within {timeout}s", correlation_id) from None
                raise PublishError(f"Publish not confirmed within {timeout}s", correlation_id) from None
        except BridgeError as exc:
            outcome = exc.outcome
            LOG.error(
                "Request-reply failed",
                extra={"correlation_id": exc.correlation_id, "outcome": outcome, "error": str(exc)},
            )
            raise
        finally:
            observe_bridge(outcome, time.perf_counter() - start)
        LOG.info("Received reply", extra={"correlation_id": correlation_id})
        return response

    async def _publish(self, reply: ReplyChannel, envelope: PredictRequest, correlation_id: str) -> None:
        try:
            body = envelope.model_dump_json().encode("utf-8")
            message = aio_pika.Message(
                body=body,
                content_type=CONTENT_TYPE,
                correlation_id=correlation_id,
                reply_to=reply.queue_name,
            )
            await reply.channel.default_exchange.publish(message, routing_key=self.request_queue, mandatory=False)
        except Exception as exc:
            raise PublishError(f"Failed to publish request: {exc}", correlation_id) from exc
        LOG.info(
            "Sent request",
            extra={"correlation_id": correlation_id, "queue": self.request_queue, "reply_to": reply.queue_name},
        )

    async def _await_reply(self, reply: ReplyChannel, correlation_id: str) -> AbstractIncomingMessage:
        message = await reply.next_message()
        if message.correlation_id != correlation_id:
            raise CorrelationMismatchError(correlation_id, message.correlation_id)
        return message

    def _decode(self, message: AbstractIncomingMessage, correlation_id: str) -> PredictResponse:
        try:
            return PredictResponse.model_validate_json(message.body)
        except ValidationError as exc:
            raise MalformedReplyError(f"Malformed reply: {exc}", correlation_id) from exc
