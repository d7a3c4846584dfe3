"""Configuration for tickfeed.

Settings come from an optional TOML file and are overridden by the
environment variables API_KEY, SECRET_KEY, CACHE_ADDR and CACHE_PASS.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

import toml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tickfeed" / "config.toml"

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "API_KEY": ("binance", "api_key"),
    "SECRET_KEY": ("binance", "secret_key"),
    "CACHE_ADDR": ("cache", "addr"),
    "CACHE_PASS": ("cache", "password"),
}


class BinanceSettings(BaseModel):
    """Upstream feed credentials and endpoints."""

    api_key: str = Field(default="", description="API key sent with REST requests")
    secret_key: str = Field(default="", description="API secret (public endpoints do not sign)")
    rest_url: str = Field(default="https://api.binance.com", description="REST base URL")
    ws_url: str = Field(default="wss://stream.binance.com:9443/ws", description="Websocket base URL")
    request_timeout: float = Field(default=10.0, gt=0, description="REST timeout in seconds")


class CacheSettings(BaseModel):
    """Redis endpoint."""

    addr: str = Field(default="localhost:6379", description="host:port of the redis server")
    password: Optional[str] = Field(default=None, description="Redis password")
    db: int = Field(default=0, ge=0, description="Redis database index")

    @property
    def host(self) -> str:
        host, _, _ = self.addr.rpartition(":")
        return host or self.addr

    @property
    def port(self) -> int:
        _, sep, port = self.addr.rpartition(":")
        return int(port) if sep and port.isdigit() else 6379


class PipelineSettings(BaseModel):
    """Ingestion knobs."""

    interval: str = Field(default="1m", description="Kline interval")
    seed_limit: int = Field(default=100, ge=1, le=1000, description="Candles fetched per symbol at startup")
    seed_attempts: int = Field(default=3, ge=1, description="Attempts per symbol when seeding")
    seed_retry_delay: float = Field(default=1.0, ge=0, description="Seconds between seed attempts")
    seed_trades: bool = Field(default=False, description="Also seed the trade window over REST")
    seed_depth: bool = Field(default=False, description="Also seed the depth window over REST")
    backoff_cap: int = Field(default=6, ge=0, description="Max exponent of the reconnect backoff")


class Settings(BaseModel):
    """Top-level application settings."""

    binance: BinanceSettings = Field(default_factory=BinanceSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    log_level: str = Field(default="INFO", description="Root log level")


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from TOML and the environment.

    Args:
        config_path: TOML file to read. Defaults to ~/.config/tickfeed/config.toml;
            a missing file is not an error.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Validated Settings.

    Raises:
        toml.TomlDecodeError: If the file exists but is not valid TOML.
        pydantic.ValidationError: If a value has the wrong type.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    data: dict = toml.load(path) if path.exists() else {}

    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data.setdefault(section, {})[key] = value

    return Settings.model_validate(data)
