"""Protocol constants for the Antigravity bridge.

Contains endpoints, headers, model aliases, generation defaults and the
thought signature sentinel shared by the converter and the stream interceptor.
"""

from typing import Dict, List

# ============================================================================
# Antigravity endpoints
# ============================================================================

ANTIGRAVITY_ENDPOINT_DAILY = "https://daily-cloudcode-pa.sandbox.googleapis.com"
ANTIGRAVITY_ENDPOINT_AUTOPUSH = "https://autopush-cloudcode-pa.sandbox.googleapis.com"
ANTIGRAVITY_ENDPOINT_PROD = "https://cloudcode-pa.googleapis.com"

# Gemini models: DAILY first - has broader access for consumer subscriptions
ANTIGRAVITY_ENDPOINT_FALLBACKS = [
    ANTIGRAVITY_ENDPOINT_DAILY,
    ANTIGRAVITY_ENDPOINT_PROD,
    ANTIGRAVITY_ENDPOINT_AUTOPUSH,
]

# Claude models: PROD first for proper license/quota handling
CLAUDE_ENDPOINT_FALLBACKS = [
    ANTIGRAVITY_ENDPOINT_PROD,
    ANTIGRAVITY_ENDPOINT_DAILY,
]

GENERATE_CONTENT_PATH = "/v1internal:generateContent"
STREAM_GENERATE_CONTENT_PATH = "/v1internal:streamGenerateContent?alt=sse"

ANTIGRAVITY_HEADERS = {
    "User-Agent": "antigravity/1.11.5 windows/amd64",
    "X-Goog-Api-Client": "google-cloud-sdk vscode_cloudshelleditor/0.1",
    "Client-Metadata": '{"ideType":"IDE_UNSPECIFIED","platform":"PLATFORM_UNSPECIFIED","pluginType":"GEMINI"}',
}

ANTIGRAVITY_USER_AGENT = "antigravity"

# ============================================================================
# Thought signatures
# ============================================================================

# Sentinel value to bypass thought signature validation
SKIP_THOUGHT_SIGNATURE = "skip_thought_signature_validator"

# Characters of a signature shown in log lines
SIGNATURE_LOG_PREFIX = 15

# Call signature cache defaults
DEFAULT_SIGNATURE_CACHE_TTL_SECONDS = 2 * 60 * 60  # 2 hours TTL
DEFAULT_SIGNATURE_CACHE_MAX_ENTRIES = 1000

# ============================================================================
# Model families and aliases
# ============================================================================

FAMILY_CLAUDE = "claude"
FAMILY_GEMINI = "gemini"
FAMILY_OTHER = "other"

# Client-facing model name -> upstream model name
MODEL_ALIASES: Dict[str, str] = {
    "claude-sonnet-4-5-thinking": "claude-sonnet-4-5",
    "claude-opus-4-5": "claude-opus-4-5-thinking",
    "gemini-2.5-flash-thinking": "gemini-2.5-flash",
}

# Models that run with thinking enabled regardless of suffix
THINKING_MODELS = {
    "gemini-2.5-pro",
    "rev19-uic3-1p",
    "gpt-oss-120b-medium",
}
THINKING_MODEL_PREFIXES = ("gemini-3-pro-",)
THINKING_MODEL_SUFFIX = "-thinking"

# ============================================================================
# Generation config
# ============================================================================

DEFAULT_STOP_SEQUENCES: List[str] = [
    "<|user|>",
    "<|bot|>",
    "<|context_request|>",
    "<|endoftext|>",
    "<|end_of_turn|>",
]

THINKING_BUDGET_TOKENS = 1024
THINKING_MIN_OUTPUT_TOKENS = 16384
DEFAULT_MIN_OUTPUT_TOKENS = 512

# ============================================================================
# Tool schemas
# ============================================================================

# JSON schema keywords Claude rejects in VALIDATED mode
CLAUDE_UNSUPPORTED_SCHEMA_KEYS = [
    "default",
    "minItems",
    "maxItems",
    "minLength",
    "maxLength",
    "pattern",
    "minimum",
    "maximum",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "multipleOf",
    "format",
    "examples",
    "const",
]

TOOL_CALLING_MODE = "VALIDATED"
