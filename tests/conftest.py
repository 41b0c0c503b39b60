"""Shared fixtures for bridge tests."""

import logging
from pathlib import Path

import pytest

from antigravity_bridge.config import BridgeConfig, ConfigManager, reset_config_manager
from antigravity_bridge.session import AdapterSession


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch, tmp_path):
    """
    Isolate the config location and clear bridge env vars between tests.

    ConfigManager reads ~/.antigravity-bridge/config.yaml, so the default
    path is pointed at a temp directory and the manager cache is reset.
    """
    config_path = Path(tmp_path) / ".antigravity-bridge" / "config.yaml"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_PATH", config_path)
    for var in ["ANTIGRAVITY_BRIDGE_SYSTEM_INSTRUCTION", "ANTIGRAVITY_BRIDGE_TIMEOUT", "LOG_LEVEL"]:
        monkeypatch.delenv(var, raising=False)
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo the CLI's logging.basicConfig(force=True) after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def config():
    return BridgeConfig()


@pytest.fixture
def session(config):
    return AdapterSession(config)
