"""Antigravity request envelope construction."""

import logging
import uuid
from typing import Any, Dict, List, Optional

import aiohttp

from antigravity_bridge.constants import ANTIGRAVITY_USER_AGENT, TOOL_CALLING_MODE
from antigravity_bridge.converter import MessageConverter
from antigravity_bridge.generation import build_generation_config, is_enable_thinking, resolve_model_name
from antigravity_bridge.models import AccountContext
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.tool_utils import convert_tools

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    return f"agent-{uuid.uuid4()}"


async def build_request_body(
    messages: List[Dict[str, Any]],
    model_name: str,
    parameters: Optional[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]],
    account: AccountContext,
    session: AdapterSession,
    http_session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    """Build the Antigravity request envelope for a chat-completion request.

    Signatures the client dropped are restored from the session's call cache
    before conversion. Thinking is decided on the client-facing model name,
    everything else uses the resolved upstream name.

    Args:
        messages: OpenAI-style chat history
        model_name: client-facing model name
        parameters: sampling parameters (temperature, top_p, top_k, max_tokens)
        tools: OpenAI-style tool definitions
        account: project and session identifiers of the upstream account
        session: adapter session holding the signature state
        http_session: optional session reused for image fetches
    """
    enable_thinking = is_enable_thinking(model_name)
    actual_model = resolve_model_name(model_name)

    # a family switch has to drop the previous thinking signature before restore
    session.observe_model(actual_model)
    restored = session.call_cache.restore(messages)
    converter = MessageConverter(session, http_session=http_session)
    conversion = await converter.convert(restored, actual_model, enable_thinking=enable_thinking)

    prefix = session.config.system_instruction
    system_text = (f"{prefix}\n" if prefix else "") + conversion.system_instruction

    logger.debug(
        "Built request for %s (thinking=%s, contents=%d)",
        actual_model,
        enable_thinking,
        len(conversion.contents),
    )

    return {
        "project": account.project_id,
        "requestId": generate_request_id(),
        "request": {
            "contents": conversion.contents,
            "systemInstruction": {"role": "user", "parts": [{"text": system_text}]},
            "tools": convert_tools(tools, actual_model),
            "toolConfig": {"functionCallingConfig": {"mode": TOOL_CALLING_MODE}},
            "generationConfig": build_generation_config(
                parameters, enable_thinking, actual_model, session.config.defaults
            ),
            "sessionId": account.session_id,
        },
        "model": actual_model,
        "userAgent": ANTIGRAVITY_USER_AGENT,
    }
