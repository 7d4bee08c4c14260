import pytest

from fakes import FakeBroker
from mqgw.broker.connection import ConnectionManager
from mqgw.utils.config import BridgeConfig, PlatformConfig, RetryPolicy


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def platform_cfg() -> PlatformConfig:
    return PlatformConfig(
        retry=RetryPolicy(interval_seconds=0, max_attempts=3),
        bridge=BridgeConfig(timeout_seconds=0.2),
    )


@pytest.fixture
def connection_manager(fake_broker: FakeBroker, platform_cfg: PlatformConfig) -> ConnectionManager:
    return ConnectionManager(platform_cfg.broker, platform_cfg.retry, connector=fake_broker.connect)
