"""Broker connection management with a startup retry loop."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection

from mqgw.broker.errors import BrokerSetupError, BrokerUnavailableError
from mqgw.monitoring.metrics import CONNECT_ATTEMPT_COUNTER, set_broker_connected
from mqgw.utils.config import BrokerConfig, RetryPolicy
from mqgw.utils.logging import get_logger

LOG = get_logger(__name__)

Connector = Callable[[str], Awaitable[AbstractConnection]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """Owns the process-wide broker connection and its primary channel.

    The connector is injectable so tests can hand in a fake broker; in
    production it is :func:`aio_pika.connect`. A plain (non-robust) connection
    is used so that ``is_closed`` reflects a broker-side drop immediately.
    """

    def __init__(
        self,
        broker_cfg: BrokerConfig,
        retry: Optional[RetryPolicy] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.broker_cfg = broker_cfg
        self.retry = retry or RetryPolicy()
        self._connector: Connector = connector or aio_pika.connect
        self._sleep = sleep
        self._connecting = False
        self.connection: Optional[AbstractConnection] = None
        self.channel: Optional[AbstractChannel] = None

    @property
    def state(self) -> ConnectionState:
        if self._connecting:
            return ConnectionState.CONNECTING
        if self.is_live():
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    def is_live(self) -> bool:
        live = self.connection is not None and not self.connection.is_closed
        set_broker_connected(live)
        return live

    async def connect(self) -> AbstractConnection:
        """Block until the broker accepts a connection, then open the primary channel."""
        url = self.broker_cfg.url()
        attempt = 0
        self._connecting = True
        try:
            while True:
                attempt += 1
                try:
                    connection = await self._connector(url)
                    break
                except Exception as exc:
                    CONNECT_ATTEMPT_COUNTER.labels(result="failure").inc()
                    LOG.warning(
                        "Failed to connect to broker",
                        extra={
                            "attempt": attempt,
                            "host": self.broker_cfg.host,
                            "port": self.broker_cfg.port,
                            "error": str(exc),
                            "retry_in": self.retry.interval_seconds,
                        },
                    )
                    if self.retry.max_attempts is not None and attempt >= self.retry.max_attempts:
                        raise BrokerUnavailableError(
                            f"Broker at {self.broker_cfg.host}:{self.broker_cfg.port} unreachable after {attempt} attempts"
                        ) from exc
                    await self._sleep(self.retry.interval_seconds)
        finally:
            self._connecting = False

        CONNECT_ATTEMPT_COUNTER.labels(result="success").inc()
        LOG.info(
            "Connected to broker",
            extra={"host": self.broker_cfg.host, "port": self.broker_cfg.port, "attempt": attempt},
        )
        try:
            channel = await connection.channel()
        except Exception as exc:
            await connection.close()
            LOG.error("Failed to open a channel", extra={"error": str(exc)})
            raise BrokerSetupError(f"Failed to open a channel: {exc}") from exc
        self.connection = connection
        self.channel = channel
        set_broker_connected(True)
        return connection

    async def declare(self, queue_name: Optional[str] = None) -> str:
        """Ensure the durable work queue exists. Failure here is fatal."""
        name = queue_name or self.broker_cfg.request_queue
        if self.channel is None:
            raise BrokerSetupError("Cannot declare a queue before connecting")
        try:
            await self.channel.declare_queue(name, durable=True)
        except Exception as exc:
            LOG.error("Failed to declare a queue", extra={"queue": name, "error": str(exc)})
            await self.close()
            raise BrokerSetupError(f"Failed to declare queue {name}: {exc}") from exc
        LOG.info("Declared request queue", extra={"queue": name})
        return name

    async def close(self) -> None:
        connection = self.connection
        self.connection = None
        self.channel = None
        if connection is not None and not connection.is_closed:
            await connection.close()
            LOG.info("Closed broker connection")
        set_broker_connected(False)
