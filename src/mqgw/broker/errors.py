"""Exceptions raised by the broker layer."""

from __future__ import annotations

from typing import Optional


class BrokerError(Exception):
    """Base class for connection-level failures."""


class BrokerUnavailableError(BrokerError):
    """The broker could not be reached within the retry policy."""


class BrokerSetupError(BrokerError):
    """Channel open or work queue declaration failed; the process cannot serve."""


class BridgeError(Exception):
    """Base class for failures of a single request-reply round trip."""

    outcome = "error"

    def __init__(self, message: str, correlation_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.correlation_id = correlation_id


class PublishError(BridgeError):
    """Reply queue setup, serialisation or publish failed."""

    outcome = "publish_error"


class ReplyTimeoutError(BridgeError):
    """No matching reply arrived in time."""

    outcome = "timeout"


class CorrelationMismatchError(ReplyTimeoutError):
    """The reply queue delivered a message carrying someone else's correlation id."""

    outcome = "mismatch"

    def __init__(self, expected: str, received: Optional[str]) -> None:
        super().__init__(
            f"Received message with mismatched correlation id: expected {expected}, got {received}",
            correlation_id=expected,
        )
        self.received = received


class MalformedReplyError(BridgeError):
    """A correlated reply could not be decoded."""

    outcome = "malformed_reply"
