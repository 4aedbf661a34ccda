"""
tests/test_config.py
--------------------
Unit tests for config.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import logging

import pytest

import config
from config import ServerConfig, TransferConfig


class TestServerConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("SQL_PORT", "SQL_CONNECT_RETRIES", "SQL_RETRY_DELAY"):
            monkeypatch.delenv(name, raising=False)
        cfg = ServerConfig()
        assert cfg.port == 1433
        assert cfg.max_retries == 3
        assert cfg.retry_delay == 1.0

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQL_PORT", "1533")
        assert ServerConfig().port == 1533

    def test_invalid_port(self) -> None:
        with pytest.raises(ValueError, match="SQL_PORT"):
            ServerConfig(port=0)

    def test_invalid_retries(self) -> None:
        with pytest.raises(ValueError, match="SQL_CONNECT_RETRIES"):
            ServerConfig(max_retries=0)


class TestTransferConfig:
    def test_workers_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRANSFER_WORKERS", "4")
        assert TransferConfig().workers == 4

    def test_invalid_workers(self) -> None:
        with pytest.raises(ValueError, match="TRANSFER_WORKERS"):
            TransferConfig(workers=0)

    def test_log_level_upper_cased(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert TransferConfig().log_level == "DEBUG"


def test_unknown_log_level_falls_back_to_info(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "CONFIG", config.AppConfig(transfer=TransferConfig(log_level="LOUD")))
    assert config.get_log_level() == logging.INFO
