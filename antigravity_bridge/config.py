"""Configuration for the Antigravity bridge.

Settings are read from ``~/.antigravity-bridge/config.yaml`` and validated
with pydantic. A handful of environment variables override the file.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from antigravity_bridge.constants import (
    ANTIGRAVITY_ENDPOINT_FALLBACKS,
    CLAUDE_ENDPOINT_FALLBACKS,
    DEFAULT_SIGNATURE_CACHE_MAX_ENTRIES,
    DEFAULT_SIGNATURE_CACHE_TTL_SECONDS,
)

logger = logging.getLogger(__name__)


class SamplingDefaults(BaseModel):
    temperature: float = 1.0
    top_p: float = 0.85
    top_k: int = 50
    max_tokens: int = 8096


class SignatureCacheConfig(BaseModel):
    ttl_seconds: float = DEFAULT_SIGNATURE_CACHE_TTL_SECONDS
    max_entries: int = Field(default=DEFAULT_SIGNATURE_CACHE_MAX_ENTRIES, gt=0)


class EndpointConfig(BaseModel):
    gemini: List[str] = Field(default_factory=lambda: list(ANTIGRAVITY_ENDPOINT_FALLBACKS))
    claude: List[str] = Field(default_factory=lambda: list(CLAUDE_ENDPOINT_FALLBACKS))

    def for_model(self, model: str) -> List[str]:
        """Endpoint fallback order for a model."""
        if "claude" in (model or "").lower():
            return self.claude
        return self.gemini


class BridgeConfig(BaseModel):
    """Top-level bridge settings."""

    defaults: SamplingDefaults = Field(default_factory=SamplingDefaults)
    system_instruction: str = ""
    timeout: float = Field(default=30.0, gt=0)
    signature_cache: SignatureCacheConfig = Field(default_factory=SignatureCacheConfig)
    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)
    log_level: str = "info"


class ConfigManager:
    """Loads and caches the bridge configuration."""

    DEFAULT_CONFIG_PATH = Path.home() / ".antigravity-bridge" / "config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self._config: Optional[BridgeConfig] = None

    def load(self) -> BridgeConfig:
        if self._config is None:
            self._config = self._apply_env_overrides(self._read_file())
        return self._config

    def reload(self) -> BridgeConfig:
        self._config = None
        return self.load()

    def _read_file(self) -> BridgeConfig:
        if not self.config_path.exists():
            return BridgeConfig()
        try:
            data = yaml.safe_load(self.config_path.read_text(encoding="utf-8")) or {}
            return BridgeConfig.model_validate(data)
        except (yaml.YAMLError, ValidationError, OSError) as e:
            logger.warning("Ignoring invalid config %s: %s", self.config_path, e)
            return BridgeConfig()

    @staticmethod
    def _apply_env_overrides(config: BridgeConfig) -> BridgeConfig:
        updates = {}
        system_instruction = os.environ.get("ANTIGRAVITY_BRIDGE_SYSTEM_INSTRUCTION")
        if system_instruction is not None:
            updates["system_instruction"] = system_instruction

        timeout = os.environ.get("ANTIGRAVITY_BRIDGE_TIMEOUT")
        if timeout:
            try:
                value = float(timeout)
                if value > 0:
                    updates["timeout"] = value
            except ValueError:
                logger.warning("Ignoring invalid ANTIGRAVITY_BRIDGE_TIMEOUT=%r", timeout)

        log_level = os.environ.get("LOG_LEVEL")
        if log_level:
            updates["log_level"] = log_level.lower()

        if not updates:
            return config
        return config.model_copy(update=updates)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> BridgeConfig:
    return get_config_manager().load()


def reset_config_manager() -> None:
    """Drop the cached manager (tests and reloads)."""
    global _config_manager
    _config_manager = None
