"""
config.py
---------
Centralised configuration management for the system-database object copier.

Loads settings from environment variables (with .env file support via
python-dotenv). Provides typed settings as frozen dataclasses so
configuration is immutable at runtime.

Design Decision:
    Using a dataclass with class-level defaults means the tool works
    "out of the box" without any .env file, while still allowing
    environment-based overrides for production deployments.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)


@dataclass(frozen=True)
class ServerConfig:
    """SQL Server connection settings."""
    port: int = field(default_factory=lambda: int(os.getenv("SQL_PORT", "1433")))
    connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("SQL_CONNECT_TIMEOUT", "15"))
    )
    login_timeout: int = field(
        default_factory=lambda: int(os.getenv("SQL_LOGIN_TIMEOUT", "15"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("SQL_CONNECT_RETRIES", "3"))
    )
    retry_delay: float = field(
        default_factory=lambda: float(os.getenv("SQL_RETRY_DELAY", "1.0"))
    )
    # Username / password are NOT stored here; they are collected at runtime
    # by the CLI so credentials never persist in config files.

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"SQL_PORT out of range: {self.port}")
        if self.max_retries < 1:
            raise ValueError("SQL_CONNECT_RETRIES must be at least 1")


@dataclass(frozen=True)
class TransferConfig:
    """Transfer engine settings."""
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    log_file: str | None = field(
        default_factory=lambda: os.getenv("LOG_FILE")  # None → log to stderr only
    )
    workers: int = field(
        default_factory=lambda: int(os.getenv("TRANSFER_WORKERS", "1"))
    )

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("TRANSFER_WORKERS must be at least 1")


@dataclass(frozen=True)
class AppConfig:
    """Root application configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    app_name: str = "System Database Object Copier"
    app_version: str = "1.0.0"


def load_config() -> AppConfig:
    """
    Build and return the application configuration.

    Returns:
        AppConfig: Fully populated (and frozen) configuration object.

    Example::

        cfg = load_config()
        print(cfg.server.port)        # 1433
        print(cfg.transfer.workers)   # 1
    """
    return AppConfig()


# Module-level singleton used throughout the application
CONFIG: AppConfig = load_config()


def get_log_level() -> int:
    """Convert string log level from config to logging module constant."""
    level = getattr(logging, CONFIG.transfer.log_level, None)
    if not isinstance(level, int):
        return logging.INFO
    return level
