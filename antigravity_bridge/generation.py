"""Model resolution and generation config for Antigravity requests."""

from typing import Any, Dict, Optional

from antigravity_bridge.config import SamplingDefaults
from antigravity_bridge.constants import (
    DEFAULT_MIN_OUTPUT_TOKENS,
    DEFAULT_STOP_SEQUENCES,
    MODEL_ALIASES,
    THINKING_BUDGET_TOKENS,
    THINKING_MIN_OUTPUT_TOKENS,
    THINKING_MODEL_PREFIXES,
    THINKING_MODEL_SUFFIX,
    THINKING_MODELS,
)
from antigravity_bridge.signatures import get_model_family


def resolve_model_name(model: str) -> str:
    """Map a client-facing model name to the upstream model name."""
    return MODEL_ALIASES.get(model, model)


def is_enable_thinking(model: str) -> bool:
    """Whether requests for this client-facing model run with thinking enabled."""
    if not model:
        return False
    return (
        model.endswith(THINKING_MODEL_SUFFIX)
        or model in THINKING_MODELS
        or model.startswith(THINKING_MODEL_PREFIXES)
    )


def _param(parameters: Dict[str, Any], key: str, default: Any) -> Any:
    value = parameters.get(key)
    return default if value is None else value


def build_generation_config(
    parameters: Optional[Dict[str, Any]],
    enable_thinking: bool,
    model_name: str,
    defaults: Optional[SamplingDefaults] = None,
) -> Dict[str, Any]:
    """Build the ``generationConfig`` block.

    Missing sampling parameters fall back to the configured defaults. Claude
    rejects ``topP`` together with thinking, so it is omitted in that case.
    """
    parameters = parameters or {}
    defaults = defaults or SamplingDefaults()

    max_tokens = _param(parameters, "max_tokens", defaults.max_tokens)
    min_tokens = THINKING_MIN_OUTPUT_TOKENS if enable_thinking else DEFAULT_MIN_OUTPUT_TOKENS

    config: Dict[str, Any] = {
        "topP": _param(parameters, "top_p", defaults.top_p),
        "topK": _param(parameters, "top_k", defaults.top_k),
        "temperature": _param(parameters, "temperature", defaults.temperature),
        "candidateCount": 1,
        "maxOutputTokens": max(max_tokens, min_tokens),
        "stopSequences": list(DEFAULT_STOP_SEQUENCES),
        "thinkingConfig": {
            "includeThoughts": enable_thinking,
            "thinkingBudget": THINKING_BUDGET_TOKENS if enable_thinking else 0,
        },
    }

    if enable_thinking and get_model_family(model_name).is_strict:
        del config["topP"]

    return config
