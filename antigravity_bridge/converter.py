"""OpenAI chat history to Antigravity ``contents`` conversion.

The converter works on a private copy of the history. Before any turn is
converted the session ledger observes the target model (which may clear it
on a family switch) and a pre-pass redacts signatures the ledger cannot
vouch for:

- Claude is strict: stale signatures are rejected upstream, so stale
  thinking, stale tool call signatures and stale ``<think>`` blocks are
  stripped, and thinking followed by a fresh user turn is dropped.
- Gemini and other families are lenient: missing or stale signatures are
  replaced with the bypass sentinel.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import aiohttp

from antigravity_bridge.constants import SKIP_THOUGHT_SIGNATURE
from antigravity_bridge.content import extract_content
from antigravity_bridge.generation import is_enable_thinking
from antigravity_bridge.models import ChatMessage, PartList, TextContent, ThoughtBlock, ToolCall
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.signatures import ModelFamily, short_signature
from antigravity_bridge.thinking import (
    SIGNATURE_ATTR_RE,
    find_tag_signature,
    parse_think_block,
    replace_tag_signatures,
    strip_think_blocks,
)
from antigravity_bridge.tool_utils import ToolCallRegistry, parse_tool_arguments, synthesize_call_id

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    contents: List[Dict[str, Any]] = field(default_factory=list)
    system_instruction: str = ""


def _is_thinking_part(part: Any) -> bool:
    return isinstance(part, dict) and (part.get("type") == "thinking" or part.get("thinking") is True)


def _thought_from_parts(content: Any) -> Optional[ThoughtBlock]:
    """First thinking part of a part list as a thought block."""
    if not isinstance(content, PartList):
        return None
    for part in content.parts:
        if _is_thinking_part(part):
            text = part.get("thinking")
            if not isinstance(text, str):
                text = part.get("text") or ""
            return ThoughtBlock(content=text, signature=part.get("signature") or None)
    return None


def _first_function_call_name(contents: List[Dict[str, Any]]) -> Optional[str]:
    """Name of the first function call in the nearest model content that has one."""
    for content in reversed(contents):
        if content.get("role") != "model":
            continue
        for part in content.get("parts", []):
            if "functionCall" in part:
                return part["functionCall"].get("name")
    return None


class MessageConverter:
    """Converts chat history into Antigravity contents for one session."""

    def __init__(
        self,
        session: AdapterSession,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.session = session
        self.http_session = http_session

    @property
    def ledger(self):
        return self.session.ledger

    async def convert(
        self,
        history: List[Union[ChatMessage, Dict[str, Any]]],
        model_name: str,
        enable_thinking: Optional[bool] = None,
    ) -> ConversionResult:
        """Convert a chat history for ``model_name``.

        Args:
            history: chat messages as dicts or parsed ``ChatMessage`` objects
            model_name: resolved upstream model name
            enable_thinking: whether the request runs with thinking; derived
                from the model name when omitted

        Raises:
            MalformedToolArguments: when a tool call's arguments are not a JSON object
        """
        messages = [
            ChatMessage.from_dict(msg.to_dict() if isinstance(msg, ChatMessage) else msg)
            for msg in history or []
            if isinstance(msg, (ChatMessage, dict))
        ]
        if enable_thinking is None:
            enable_thinking = is_enable_thinking(model_name)

        family, _ = self.session.observe_model(model_name)
        logger.debug(
            "Converting %d messages for %s (family=%s, ledger size=%d)",
            len(messages),
            model_name,
            family.value,
            len(self.ledger),
        )

        if family.is_strict:
            self._strip_stale_signatures(messages)
            self._drop_interrupted_thinking(messages)
        else:
            self._replace_stale_signatures(messages)

        result = ConversionResult()
        registry = ToolCallRegistry()

        for msg in messages:
            if msg.role == "system":
                if family.has_system_channel:
                    text = self._system_text(msg)
                    result.system_instruction += ("\n" if result.system_instruction else "") + text
                else:
                    await self._handle_user(msg, model_name, result.contents)
            elif msg.role == "user":
                await self._handle_user(msg, model_name, result.contents)
            elif msg.role == "assistant":
                self._handle_assistant(msg, family, enable_thinking, registry, result.contents)
            elif msg.role == "tool":
                self._handle_tool(msg, registry, result.contents)
            else:
                logger.debug("Skipping message with unsupported role %r", msg.role)

        return result

    # ------------------------------------------------------------------
    # Pre-pass
    # ------------------------------------------------------------------

    def _has_stale_signature(self, messages: List[ChatMessage]) -> bool:
        for msg in messages:
            if msg.role != "assistant":
                continue
            if msg.thinking and self.ledger.is_stale(msg.thinking.signature):
                return True
            if any(self.ledger.is_stale(call.thought_signature) for call in msg.tool_calls):
                return True
        return False

    def _strip_stale_signatures(self, messages: List[ChatMessage]) -> None:
        if not self._has_stale_signature(messages):
            return

        logger.warning("Stale signatures in history, stripping them for a strict model")
        for idx, msg in enumerate(messages):
            if msg.role != "assistant":
                continue

            if msg.thinking and not self.ledger.is_valid(msg.thinking.signature):
                logger.info(
                    "Message %d: removing stale thinking (sig=%s)",
                    idx,
                    short_signature(msg.thinking.signature),
                )
                msg.thinking = None

            for call_idx, call in enumerate(msg.tool_calls):
                if self.ledger.is_stale(call.thought_signature):
                    logger.info("Message %d call %d: removing stale thought_signature", idx, call_idx)
                    call.thought_signature = None

            if isinstance(msg.content, TextContent) and "<think" in msg.content.text:
                if not self.ledger.is_valid(find_tag_signature(msg.content.text)):
                    msg.content = TextContent(strip_think_blocks(msg.content.text))
                    logger.info("Message %d: removed stale <think> block", idx)
            elif isinstance(msg.content, PartList):
                kept = [
                    part
                    for part in msg.content.parts
                    if not (_is_thinking_part(part) and not self.ledger.is_valid(part.get("signature")))
                ]
                if len(kept) != len(msg.content.parts):
                    logger.info("Message %d: removed stale thinking parts", idx)
                    msg.content = PartList(kept)

    @staticmethod
    def _drop_interrupted_thinking(messages: List[ChatMessage]) -> None:
        """Drop thinking on assistant turns followed by a fresh user turn."""
        for idx, msg in enumerate(messages[:-1]):
            if msg.role != "assistant" or msg.thinking is None:
                continue
            following = messages[idx + 1]
            if following.role == "user" and not following.is_tool_result():
                logger.info("Message %d: dropping thinking followed by a user turn", idx)
                msg.thinking = None

    def _replace_stale_signatures(self, messages: List[ChatMessage]) -> None:
        for idx, msg in enumerate(messages):
            if msg.role != "assistant":
                continue

            if msg.thinking and self.ledger.is_stale(msg.thinking.signature):
                logger.info(
                    "Message %d: thinking signature %s replaced with sentinel",
                    idx,
                    short_signature(msg.thinking.signature),
                )
                msg.thinking.signature = SKIP_THOUGHT_SIGNATURE

            for call_idx, call in enumerate(msg.tool_calls):
                if self.ledger.is_stale(call.thought_signature):
                    logger.debug("Message %d call %d: signature replaced with sentinel", idx, call_idx)
                    call.thought_signature = SKIP_THOUGHT_SIGNATURE

            if isinstance(msg.content, TextContent) and "<think" in msg.content.text:
                tag_signatures = SIGNATURE_ATTR_RE.findall(msg.content.text)
                if any(sig and not self.ledger.is_valid(sig) for sig in tag_signatures):
                    msg.content = TextContent(replace_tag_signatures(msg.content.text, SKIP_THOUGHT_SIGNATURE))
                    logger.info("Message %d: stale <think> signature replaced with sentinel", idx)
            elif isinstance(msg.content, PartList):
                for part in msg.content.parts:
                    if _is_thinking_part(part) and self.ledger.is_stale(part.get("signature")):
                        part["signature"] = SKIP_THOUGHT_SIGNATURE
                        logger.info("Message %d: stale thinking part signature replaced", idx)

    # ------------------------------------------------------------------
    # Role handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _system_text(msg: ChatMessage) -> str:
        if isinstance(msg.content, TextContent):
            return msg.content.text
        if isinstance(msg.content, PartList):
            return msg.content.joined_text("\n")
        return ""

    async def _handle_user(self, msg: ChatMessage, model_name: str, contents: List[Dict[str, Any]]) -> None:
        extracted = await extract_content(
            msg.content,
            model_name,
            http_session=self.http_session,
            timeout=self.session.config.timeout,
        )
        parts: List[Dict[str, Any]] = []
        if extracted.text or not extracted.images:
            parts.append({"text": extracted.text})
        parts.extend(extracted.images)
        contents.append({"role": "user", "parts": parts})

    def _thought_part(self, text: str, signature: Optional[str], family: ModelFamily) -> Dict[str, Any]:
        """Emit a thought, demoting it to text when the signature cannot be used."""
        if self.ledger.is_valid(signature):
            logger.debug("Thought with valid signature %s", short_signature(signature))
            return {"text": text, "thought": True, "thoughtSignature": signature}
        if family.is_strict:
            logger.warning("Thought signature %s is not valid, sending as plain text", short_signature(signature))
            return {"text": text}
        logger.debug("Thought without usable signature, using sentinel")
        return {"text": text, "thought": True, "thoughtSignature": SKIP_THOUGHT_SIGNATURE}

    def _function_call_parts(
        self,
        tool_calls: List[ToolCall],
        family: ModelFamily,
        registry: ToolCallRegistry,
    ) -> List[Dict[str, Any]]:
        if not tool_calls:
            return []

        # providers sign only the first call of a parallel batch
        first_signature = tool_calls[0].thought_signature
        parts = []
        for call in tool_calls:
            args = parse_tool_arguments(call.name, call.arguments)
            call_id = call.id or synthesize_call_id(call.name, call.arguments)
            registry.register(call_id, call.name)

            part: Dict[str, Any] = {"functionCall": {"name": call.name, "args": args, "id": call_id}}
            signature = call.thought_signature or first_signature
            if signature:
                if family.is_strict and not self.ledger.is_valid(signature):
                    logger.warning(
                        "Omitting stale signature %s for call %s", short_signature(signature), call_id
                    )
                else:
                    part["thoughtSignature"] = signature
            elif not family.is_strict:
                part["thoughtSignature"] = SKIP_THOUGHT_SIGNATURE
            parts.append(part)
        return parts

    def _handle_assistant(
        self,
        msg: ChatMessage,
        family: ModelFamily,
        enable_thinking: bool,
        registry: ToolCallRegistry,
        contents: List[Dict[str, Any]],
    ) -> None:
        thought = msg.thinking or _thought_from_parts(msg.content)
        text = msg.text.rstrip()
        has_tool_calls = bool(msg.tool_calls)
        has_content = bool(text.strip()) or thought is not None

        call_parts = self._function_call_parts(msg.tool_calls, family, registry)

        previous = contents[-1] if contents else None
        if previous is not None and previous["role"] == "model" and has_tool_calls and not has_content:
            previous["parts"].extend(call_parts)
            logger.debug("Merged %d function calls into the previous model turn", len(call_parts))
            return

        parts: List[Dict[str, Any]] = []
        if thought is not None:
            if thought.content:
                parts.append(self._thought_part(thought.content, thought.signature, family))
            visible = strip_think_blocks(text) if "<think" in text else text
            if visible:
                parts.append({"text": visible})
        elif text:
            block = parse_think_block(text)
            if block is not None:
                if block.thought:
                    parts.append(self._thought_part(block.thought, block.signature, family))
                if block.remaining:
                    parts.append({"text": block.remaining})
            else:
                if has_tool_calls and family.is_strict and enable_thinking:
                    logger.info("Sending reasoning text before tool calls as plain text")
                parts.append({"text": text})

        parts.extend(call_parts)
        contents.append({"role": "model", "parts": parts})

    @staticmethod
    def _handle_tool(msg: ChatMessage, registry: ToolCallRegistry, contents: List[Dict[str, Any]]) -> None:
        name = registry.get(msg.tool_call_id)
        if not name:
            name = _first_function_call_name(contents) or msg.name or ""
            logger.debug("Tool result %s not in registry, resolved name %r", msg.tool_call_id, name)

        part = {
            "functionResponse": {
                "name": name,
                "id": msg.tool_call_id,
                "response": {"output": msg.text},
            }
        }

        previous = contents[-1] if contents else None
        if (
            previous is not None
            and previous["role"] == "user"
            and any("functionResponse" in p for p in previous["parts"])
        ):
            previous["parts"].append(part)
        else:
            contents.append({"role": "user", "parts": [part]})
