"""Unit tests for configuration loading."""

import yaml

from antigravity_bridge.config import (
    BridgeConfig,
    ConfigManager,
    get_config,
    get_config_manager,
)
from antigravity_bridge.constants import ANTIGRAVITY_ENDPOINT_PROD, CLAUDE_ENDPOINT_FALLBACKS
from antigravity_bridge.session import AdapterSession


def _write_config(path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_defaults_without_file():
    config = get_config()
    assert config.defaults.temperature == 1.0
    assert config.defaults.top_p == 0.85
    assert config.defaults.top_k == 50
    assert config.defaults.max_tokens == 8096
    assert config.system_instruction == ""
    assert config.signature_cache.ttl_seconds == 7200
    assert config.signature_cache.max_entries == 1000


def test_manager_is_cached():
    assert get_config_manager() is get_config_manager()
    assert get_config() is get_config()


def test_reads_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    _write_config(
        path,
        {
            "defaults": {"temperature": 0.3, "max_tokens": 2048},
            "system_instruction": "Prefix",
            "timeout": 5,
            "signature_cache": {"ttl_seconds": 60, "max_entries": 10},
        },
    )

    config = ConfigManager(path).load()

    assert config.defaults.temperature == 0.3
    assert config.defaults.max_tokens == 2048
    assert config.defaults.top_k == 50
    assert config.system_instruction == "Prefix"
    assert config.timeout == 5
    assert config.signature_cache.max_entries == 10


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("defaults: [unclosed", encoding="utf-8")
    assert ConfigManager(path).load() == BridgeConfig()


def test_invalid_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    _write_config(path, {"timeout": -1})
    assert ConfigManager(path).load().timeout == 30.0


def test_env_overrides(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    _write_config(path, {"system_instruction": "from file", "timeout": 10})
    monkeypatch.setenv("ANTIGRAVITY_BRIDGE_SYSTEM_INSTRUCTION", "from env")
    monkeypatch.setenv("ANTIGRAVITY_BRIDGE_TIMEOUT", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = ConfigManager(path).load()

    assert config.system_instruction == "from env"
    assert config.timeout == 2.5
    assert config.log_level == "debug"


def test_invalid_timeout_env_is_ignored(monkeypatch, tmp_path):
    monkeypatch.setenv("ANTIGRAVITY_BRIDGE_TIMEOUT", "soon")
    assert ConfigManager(tmp_path / "missing.yaml").load().timeout == 30.0


def test_reload_picks_up_changes(tmp_path):
    path = tmp_path / "config.yaml"
    _write_config(path, {"system_instruction": "one"})
    manager = ConfigManager(path)
    assert manager.load().system_instruction == "one"

    _write_config(path, {"system_instruction": "two"})
    assert manager.load().system_instruction == "one"
    assert manager.reload().system_instruction == "two"


def test_endpoints_for_model():
    config = BridgeConfig()
    assert config.endpoints.for_model("claude-sonnet-4-5") == CLAUDE_ENDPOINT_FALLBACKS
    assert config.endpoints.for_model("gemini-3-pro-high")[1] == ANTIGRAVITY_ENDPOINT_PROD


def test_session_uses_cache_settings():
    config = BridgeConfig.model_validate({"signature_cache": {"ttl_seconds": 30, "max_entries": 5}})
    session = AdapterSession(config)
    assert session.call_cache.ttl_seconds == 30
    assert session.call_cache.max_entries == 5


def test_session_defaults_to_global_config():
    assert AdapterSession().config is get_config()


def test_session_reset():
    session = AdapterSession(BridgeConfig())
    session.record_signature("SIG", "id:c1")
    session.reset()
    assert len(session.ledger) == 0
    assert len(session.call_cache) == 0
