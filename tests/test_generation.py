"""Unit tests for generation.py."""

import pytest

from antigravity_bridge.config import SamplingDefaults
from antigravity_bridge.constants import DEFAULT_STOP_SEQUENCES
from antigravity_bridge.generation import build_generation_config, is_enable_thinking, resolve_model_name


class TestModelResolution:
    """Tests for aliases and thinking detection."""

    @pytest.mark.parametrize(
        "model,expected",
        [
            ("claude-sonnet-4-5-thinking", "claude-sonnet-4-5"),
            ("claude-opus-4-5", "claude-opus-4-5-thinking"),
            ("gemini-2.5-flash-thinking", "gemini-2.5-flash"),
            ("gemini-3-pro-high", "gemini-3-pro-high"),
        ],
    )
    def test_resolve_model_name(self, model, expected):
        assert resolve_model_name(model) == expected

    @pytest.mark.parametrize(
        "model",
        [
            "claude-sonnet-4-5-thinking",
            "gemini-2.5-pro",
            "gemini-3-pro-high",
            "rev19-uic3-1p",
            "gpt-oss-120b-medium",
        ],
    )
    def test_thinking_models(self, model):
        assert is_enable_thinking(model)

    @pytest.mark.parametrize("model", ["claude-sonnet-4-5", "gemini-2.5-flash", "gemini-3-flash", ""])
    def test_non_thinking_models(self, model):
        assert not is_enable_thinking(model)


class TestBuildGenerationConfig:
    """Tests for build_generation_config."""

    def test_defaults_without_thinking(self):
        config = build_generation_config({}, False, "gemini-2.5-flash", SamplingDefaults())

        assert config["topP"] == 0.85
        assert config["topK"] == 50
        assert config["temperature"] == 1.0
        assert config["candidateCount"] == 1
        assert config["maxOutputTokens"] == 8096
        assert config["stopSequences"] == DEFAULT_STOP_SEQUENCES
        assert config["thinkingConfig"] == {"includeThoughts": False, "thinkingBudget": 0}

    def test_parameters_override_defaults(self):
        config = build_generation_config(
            {"temperature": 0.2, "top_p": 0.5, "top_k": 5, "max_tokens": 1000},
            False,
            "gemini-2.5-flash",
        )
        assert config["temperature"] == 0.2
        assert config["topP"] == 0.5
        assert config["topK"] == 5
        assert config["maxOutputTokens"] == 1000

    def test_zero_temperature_is_kept(self):
        config = build_generation_config({"temperature": 0}, False, "gemini-2.5-flash")
        assert config["temperature"] == 0

    def test_minimum_output_tokens(self):
        assert build_generation_config({"max_tokens": 100}, False, "gemini-2.5-flash")["maxOutputTokens"] == 512
        assert build_generation_config({"max_tokens": 100}, True, "gemini-2.5-pro")["maxOutputTokens"] == 16384

    def test_thinking_config(self):
        config = build_generation_config({}, True, "gemini-3-pro-high")
        assert config["thinkingConfig"] == {"includeThoughts": True, "thinkingBudget": 1024}
        assert "topP" in config

    def test_claude_thinking_omits_top_p(self):
        config = build_generation_config({"top_p": 0.9}, True, "claude-opus-4-5-thinking")
        assert "topP" not in config

    def test_claude_without_thinking_keeps_top_p(self):
        config = build_generation_config({"top_p": 0.9}, False, "claude-sonnet-4-5")
        assert config["topP"] == 0.9

    def test_stop_sequences_are_a_copy(self):
        config = build_generation_config({}, False, "gemini-2.5-flash")
        config["stopSequences"].append("x")
        assert "x" not in DEFAULT_STOP_SEQUENCES
