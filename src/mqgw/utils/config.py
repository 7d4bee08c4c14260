"""Typed configuration loading for the gateway."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field
from yarl import URL

DEFAULT_CONFIG_PATH = "configs/gateway.yaml"


class BrokerConfig(BaseModel):
    user: str = "guest"
    password: str = "guest"
    host: str = "rabbitmq"
    port: int = 5672
    vhost: str = "/"
    request_queue: str = "mnist_requests"

    def url(self) -> str:
        vhost = "" if self.vhost == "/" else self.vhost.lstrip("/")
        url = URL.build(
            scheme="amqp", user=self.user, password=self.password, host=self.host, port=self.port, path="/" + vhost
        )
        return str(url)


class RetryPolicy(BaseModel):
    """How long to wait between broker connection attempts, and how many to make.

    ``max_attempts=None`` retries forever.
    """

    interval_seconds: float = Field(default=2.0, ge=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)


class BridgeConfig(BaseModel):
    timeout_seconds: float = Field(default=5.0, gt=0)


class GatewayConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    service_name: str = "mnist-predictor"
    cors_enabled: bool = False


class PlatformConfig(BaseModel):
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)


def load_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "t", "true", "y", "yes", "on"):
        return True
    if lowered in ("0", "f", "false", "n", "no", "off"):
        return False
    return default


def apply_env_overrides(data: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    broker = data.setdefault("broker", {})
    for env_key, field in (
        ("RABBITMQ_USER", "user"),
        ("RABBITMQ_PASS", "password"),
        ("RABBITMQ_HOST", "host"),
        ("RABBITMQ_PORT", "port"),
    ):
        value = env.get(env_key)
        if value:
            broker[field] = value
    gateway = data.setdefault("gateway", {})
    gateway["cors_enabled"] = parse_bool(env.get("RUN_LOCALLY"), bool(gateway.get("cors_enabled", False)))
    return data


def load_platform_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> PlatformConfig:
    env = os.environ if env is None else env
    config_path = path or env.get("MQGW_CONFIG")
    if not config_path and Path(DEFAULT_CONFIG_PATH).exists():
        config_path = DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}
    if config_path:
        raw = load_yaml(config_path)
        if "platform" not in raw:
            raise ValueError(f"Invalid config file, expected 'platform' root at {config_path}")
        data = dict(raw["platform"] or {})
    return PlatformConfig(**apply_env_overrides(data, env))
