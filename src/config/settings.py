"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class HyperliquidConfig(BaseModel):
    """Hyperliquid API configuration."""

    base_url: str = "https://api.hyperliquid.xyz"
    testnet_base_url: str = "https://api.hyperliquid-testnet.xyz"
    use_testnet: bool = Field(default=False, validation_alias="HYPERLIQUID_USE_TESTNET")
    request_timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    # Market orders are IOC limit orders priced this far through the mid.
    market_slippage_bps: int = Field(default=200, ge=1, le=1000)

    model_config = {
        "populate_by_name": True,
    }


class AlloraConfig(BaseModel):
    """Allora prediction feed configuration."""

    base_url: str = "https://api.allora.network"
    chain_slug: str = "ethereum-11155111"
    token: str = "BTC"
    timeframes: list[Literal["5m", "8h"]] = Field(default_factory=lambda: ["5m", "8h"])
    request_timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)


class TradingConfig(BaseModel):
    """Trade staging and submission configuration."""

    default_symbol: str = "BTC-PERP"
    min_leverage: float = Field(default=1.0, ge=1.0, le=100.0)
    max_leverage: float = Field(default=40.0, ge=1.0, le=100.0)
    default_leverage: float = Field(default=10.0, ge=1.0, le=100.0)
    quote_before_submit: bool = True

    @field_validator("max_leverage")
    @classmethod
    def validate_max_leverage(cls, v: float, info) -> float:
        min_lev = info.data.get("min_leverage", 1.0)
        if v < min_lev:
            raise ValueError(f"max_leverage ({v}) cannot be below min_leverage ({min_lev})")
        return v


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    backend: Literal["jsonl", "memory"] = "jsonl"
    trade_log_path: str = "./data/trade_log"
    templates_path: str = "./data/templates.json"
    preferences_path: str = "./data/preferences.yaml"
    logs_path: str = "./logs"


class MonitoringConfig(BaseModel):
    """Monitoring and alerting configuration."""

    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    metrics_enabled: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_http: bool = False
    log_http_responses: bool = False
    log_http_max_body_chars: int = Field(default=500, ge=0, le=5000)
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    # Credentials from environment
    hyperliquid_account_address: str = Field(default="", alias="HYPERLIQUID_ACCOUNT_ADDRESS")
    hyperliquid_api_secret: str = Field(default="", alias="HYPERLIQUID_API_SECRET")
    allora_api_key: str = Field(default="", alias="ALLORA_API_KEY")

    # Sub-configurations
    hyperliquid: HyperliquidConfig = Field(default_factory=HyperliquidConfig)
    allora: AlloraConfig = Field(default_factory=AlloraConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @property
    def hyperliquid_base_url(self) -> str:
        """Get the Hyperliquid base URL for the selected network."""
        if self.hyperliquid.use_testnet:
            return self.hyperliquid.testnet_base_url
        return self.hyperliquid.base_url

    def validate_for_trading(self) -> list[str]:
        """Validate settings are suitable for order placement. Returns list of errors."""
        errors = []
        if not self.hyperliquid_account_address:
            errors.append("HYPERLIQUID_ACCOUNT_ADDRESS not set")
        if not self.hyperliquid_api_secret:
            errors.append("HYPERLIQUID_API_SECRET not set")
        if self.trading.default_leverage > self.trading.max_leverage:
            errors.append("default_leverage exceeds max_leverage")
        return errors


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file values
    3. Default values
    """
    config_data = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    env_testnet = os.environ.get("HYPERLIQUID_USE_TESTNET")
    if env_testnet is not None:
        config_data.setdefault("hyperliquid", {})["use_testnet"] = env_testnet

    env_path = config_file.parent / ".env"
    return Settings(**config_data, _env_file=env_path)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "hyperliquid": {
            "base_url": "https://api.hyperliquid.xyz",
            "testnet_base_url": "https://api.hyperliquid-testnet.xyz",
            "use_testnet": True,
            "request_timeout_sec": 10.0,
            "retry_attempts": 3,
            "market_slippage_bps": 200,
        },
        "allora": {
            "base_url": "https://api.allora.network",
            "chain_slug": "ethereum-11155111",
            "token": "BTC",
            "timeframes": ["5m", "8h"],
        },
        "trading": {
            "default_symbol": "BTC-PERP",
            "min_leverage": 1.0,
            "max_leverage": 40.0,
            "default_leverage": 10.0,
            "quote_before_submit": True,
        },
        "storage": {
            "backend": "jsonl",
            "trade_log_path": "./data/trade_log",
            "templates_path": "./data/templates.json",
            "preferences_path": "./data/preferences.yaml",
            "logs_path": "./logs",
        },
        "monitoring": {
            "metrics_port": 9090,
            "metrics_enabled": False,
            "api_host": "127.0.0.1",
            "api_port": 8000,
            "log_level": "INFO",
            "log_http": False,
            "log_http_responses": False,
            "log_http_max_body_chars": 500,
        },
    }

    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
