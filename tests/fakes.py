"""In-memory stand-in for the broker, shaped like the parts of aio-pika the gateway touches."""

import asyncio
import itertools
import json
from typing import Callable, Dict, List, Optional, Tuple


class FakeMessage:
    def __init__(self, body: bytes, correlation_id: Optional[str] = None) -> None:
        self.body = body
        self.correlation_id = correlation_id


class FakeQueue:
    def __init__(self, broker: "FakeBroker", name: str, durable: bool, exclusive: bool, auto_delete: bool) -> None:
        self.broker = broker
        self.name = name
        self.durable = durable
        self.exclusive = exclusive
        self.auto_delete = auto_delete
        self.consumers: Dict[str, Callable] = {}
        self.no_ack: Optional[bool] = None

    async def consume(self, callback, no_ack: bool = False) -> str:
        tag = f"ctag-{next(self.broker._ids)}"
        self.consumers[tag] = callback
        self.no_ack = no_ack
        return tag

    async def cancel(self, consumer_tag: str) -> None:
        self.consumers.pop(consumer_tag, None)

    async def delete(self, if_unused: bool = True, if_empty: bool = True) -> None:
        self.broker.deleted.append(self.name)
        self.broker.queues.pop(self.name, None)

    async def deliver(self, message: FakeMessage) -> None:
        for callback in list(self.consumers.values()):
            await callback(message)


class FakeExchange:
    def __init__(self, broker: "FakeBroker") -> None:
        self.broker = broker

    async def publish(self, message, routing_key: str, mandatory: bool = True) -> None:
        if self.broker.stall_publish:
            # never confirmed, like a broker applying flow control
            await asyncio.Event().wait()
        self.broker.on_publish(message, routing_key, mandatory)


class FakeChannel:
    def __init__(self, broker: "FakeBroker") -> None:
        self.broker = broker
        self.is_closed = False
        self.default_exchange = FakeExchange(broker)

    async def declare_queue(
        self,
        name: Optional[str] = None,
        *,
        durable: bool = False,
        exclusive: bool = False,
        auto_delete: bool = False,
    ) -> FakeQueue:
        if name:
            if self.broker.fail_work_queue_declare:
                raise RuntimeError("access refused")
        else:
            if self.broker.fail_reply_declare:
                raise RuntimeError("resource locked")
            name = f"amq.gen-{next(self.broker._ids)}"
        queue = self.broker.queues.get(name) or FakeQueue(self.broker, name, durable, exclusive, auto_delete)
        self.broker.queues[name] = queue
        self.broker.declared.append(queue)
        return queue

    async def close(self) -> None:
        self.is_closed = True


class FakeConnection:
    def __init__(self, broker: "FakeBroker") -> None:
        self.broker = broker
        self.is_closed = False
        self.channels: List[FakeChannel] = []

    async def channel(self) -> FakeChannel:
        if self.broker.fail_channel_open:
            raise RuntimeError("channel max reached")
        channel = FakeChannel(self.broker)
        self.channels.append(channel)
        return channel

    async def close(self) -> None:
        self.is_closed = True
        for channel in self.channels:
            channel.is_closed = True


class FakeBroker:
    """Records publishes, declarations and deletions; a responder plays the worker."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.queues: Dict[str, FakeQueue] = {}
        self.declared: List[FakeQueue] = []
        self.deleted: List[str] = []
        self.published: List[Tuple[str, object, bool]] = []
        self.connections: List[FakeConnection] = []
        self.urls: List[str] = []
        self.connect_attempts = 0
        self.connect_failures = 0
        self.fail_channel_open = False
        self.fail_work_queue_declare = False
        self.fail_reply_declare = False
        self.fail_publish = False
        self.stall_publish = False
        self.responder: Optional[Callable[[object], Optional[FakeMessage]]] = None
        self._tasks: List[asyncio.Task] = []

    async def connect(self, url: str) -> FakeConnection:
        self.connect_attempts += 1
        self.urls.append(url)
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionError("connection refused")
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection

    def on_publish(self, message, routing_key: str, mandatory: bool) -> None:
        if self.fail_publish:
            raise RuntimeError("channel closed by broker")
        self.published.append((routing_key, message, mandatory))
        if self.responder is None:
            return
        reply = self.responder(message)
        queue = self.queues.get(message.reply_to)
        if reply is not None and queue is not None:
            self._tasks.append(asyncio.get_running_loop().create_task(queue.deliver(reply)))

    @property
    def reply_queues(self) -> List[FakeQueue]:
        return [q for q in self.declared if q.exclusive]


def digit_worker(digit: int) -> Callable[[object], FakeMessage]:
    """Answers every request with a one-hot prediction for ``digit``."""

    def respond(message) -> FakeMessage:
        probabilities = [0.0] * 10
        probabilities[digit] = 1.0
        body = json.dumps({"digit": digit, "probabilities": probabilities}).encode()
        return FakeMessage(body, correlation_id=message.correlation_id)

    return respond

