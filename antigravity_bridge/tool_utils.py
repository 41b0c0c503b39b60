"""Tool calling utilities for the Antigravity bridge.

Covers the per-conversion tool call registry, deterministic call ids,
argument parsing and the conversion of OpenAI tool definitions into
``functionDeclarations`` (with schema sanitizing for Claude).
"""

import copy
import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from antigravity_bridge.constants import CLAUDE_UNSUPPORTED_SCHEMA_KEYS
from antigravity_bridge.errors import MalformedToolArguments
from antigravity_bridge.signatures import get_model_family

logger = logging.getLogger(__name__)

# Schema keys holding a list of sub-schemas
_COMPOSITE_KEYS = ("anyOf", "oneOf", "allOf")


class ToolCallRegistry:
    """Maps tool call ids to function names for one conversion."""

    def __init__(self):
        self._names: Dict[str, str] = {}

    def register(self, call_id: Optional[str], function_name: str) -> None:
        if not call_id:
            return
        self._names[call_id] = function_name

    def get(self, call_id: Optional[str]) -> Optional[str]:
        if not call_id:
            return None
        return self._names.get(call_id)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._names

    def __len__(self) -> int:
        return len(self._names)


def synthesize_call_id(function_name: str, arguments: Optional[str]) -> str:
    """Deterministic id for a tool call that arrived without one."""
    digest = hashlib.sha256(f"{function_name}{arguments or ''}".encode("utf-8")).hexdigest()
    return f"call_{digest[:8]}"


def parse_tool_arguments(function_name: str, arguments: Optional[str]) -> Dict[str, Any]:
    """Parse a tool call's arguments string into a dict.

    An empty string is treated as ``{}``.

    Raises:
        MalformedToolArguments: when the text is not valid JSON or not an object
    """
    if arguments is None or not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise MalformedToolArguments(function_name, arguments, str(e)) from e
    if not isinstance(parsed, dict):
        raise MalformedToolArguments(
            function_name, arguments, f"expected an object, got {type(parsed).__name__}"
        )
    return parsed


def sanitize_schema_for_claude(schema: Any) -> Any:
    """Remove JSON schema keywords Claude rejects, returning a new schema.

    Recurses through ``properties``, ``items``, object-valued
    ``additionalProperties`` and ``anyOf``/``oneOf``/``allOf`` members.
    """
    if not isinstance(schema, dict):
        return schema

    result = {key: value for key, value in schema.items() if key not in CLAUDE_UNSUPPORTED_SCHEMA_KEYS}

    properties = result.get("properties")
    if isinstance(properties, dict):
        result["properties"] = {
            name: sanitize_schema_for_claude(prop) for name, prop in properties.items()
        }

    items = result.get("items")
    if isinstance(items, dict):
        result["items"] = sanitize_schema_for_claude(items)
    elif isinstance(items, list):
        result["items"] = [sanitize_schema_for_claude(item) for item in items]

    additional = result.get("additionalProperties")
    if isinstance(additional, dict):
        result["additionalProperties"] = sanitize_schema_for_claude(additional)

    for key in _COMPOSITE_KEYS:
        members = result.get(key)
        if isinstance(members, list):
            result[key] = [sanitize_schema_for_claude(member) for member in members]

    return result


def convert_tools(tools: Optional[List[Dict[str, Any]]], model_name: Optional[str]) -> List[Dict[str, Any]]:
    """Convert OpenAI-style tools to Antigravity functionDeclarations.

    OpenAI format:
        [{"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}]

    Antigravity format (one entry per tool):
        [{"functionDeclarations": [{"name": "...", "description": "...", "parameters": {...}}]}]

    ``$schema`` is always dropped; the remaining keywords are only sanitized
    for Claude. The caller's tool list is left untouched.
    """
    if not tools:
        return []

    sanitize = get_model_family(model_name).is_strict
    converted = []

    for tool in tools:
        if not isinstance(tool, dict):
            continue
        func = tool.get("function")
        if not isinstance(func, dict):
            logger.debug("Skipping non-function tool: %s", tool.get("type"))
            continue

        declaration: Dict[str, Any] = {
            "name": func.get("name", ""),
            "description": func.get("description", ""),
        }
        parameters = func.get("parameters")
        if isinstance(parameters, dict):
            parameters = {key: value for key, value in copy.deepcopy(parameters).items() if key != "$schema"}
            if sanitize:
                parameters = sanitize_schema_for_claude(parameters)
            declaration["parameters"] = parameters

        converted.append({"functionDeclarations": [declaration]})

    return converted
