"""Chat message model used by the converter.

Incoming OpenAI-style message dicts are parsed into these dataclasses before
conversion. Parsing always produces a private copy, so the converter can
redact thinking blocks and signatures without touching the caller's payload.
"""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class TextContent:
    """Plain string message content."""

    text: str


@dataclass
class PartList:
    """Multimodal message content: an ordered list of typed parts."""

    parts: List[Dict[str, Any]]

    def joined_text(self, separator: str = "") -> str:
        """Concatenate the text of every text-typed part."""
        texts = []
        for part in self.parts:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text" or (part.get("text") and "type" not in part):
                texts.append(part.get("text") or "")
        return separator.join(texts)

    def has_tool_result(self) -> bool:
        return any(isinstance(p, dict) and p.get("type") == "tool_result" for p in self.parts)


Content = Union[TextContent, PartList]


def parse_content(raw: Any) -> Optional[Content]:
    """Parse a raw ``content`` value into the tagged union."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return TextContent(raw)
    if isinstance(raw, list):
        return PartList(copy.deepcopy(raw))
    return TextContent(str(raw))


def content_to_raw(content: Optional[Content]) -> Any:
    if content is None:
        return None
    if isinstance(content, TextContent):
        return content.text
    return copy.deepcopy(content.parts)


def _first_str(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


@dataclass
class ThoughtBlock:
    """A reasoning segment attached to an assistant turn."""

    content: str
    signature: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["ThoughtBlock"]:
        if raw is None:
            return None
        if isinstance(raw, str):
            return cls(content=raw)
        if not isinstance(raw, dict):
            return None
        text = raw.get("content")
        if text is None:
            text = raw.get("thinking", raw.get("text", ""))
        return cls(
            content=text if isinstance(text, str) else str(text),
            signature=_first_str(raw.get("signature"), raw.get("thoughtSignature")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        if self.signature:
            data["signature"] = self.signature
        return data


@dataclass
class ToolCall:
    """An OpenAI-style function tool call."""

    name: str
    arguments: str = "{}"
    id: Optional[str] = None
    thought_signature: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        func = data.get("function") or {}
        if not isinstance(func, dict):
            func = {}
        name = func.get("name", data.get("name", "")) or ""
        arguments = func.get("arguments", data.get("arguments", "{}"))
        if arguments is None:
            arguments = "{}"
        elif not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        signature = _first_str(
            func.get("thought_signature"),
            func.get("thoughtSignature"),
            data.get("thought_signature"),
            data.get("thoughtSignature"),
        )
        return cls(name=name, arguments=arguments, id=data.get("id") or None, thought_signature=signature)

    def to_dict(self) -> Dict[str, Any]:
        func: Dict[str, Any] = {"name": self.name, "arguments": self.arguments}
        if self.thought_signature:
            func["thought_signature"] = self.thought_signature
        data: Dict[str, Any] = {"type": "function", "function": func}
        if self.id:
            data["id"] = self.id
        return data


@dataclass
class ChatMessage:
    """One turn of an OpenAI-style chat history."""

    role: str
    content: Optional[Content] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    thinking: Optional[ThoughtBlock] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        tool_calls = [
            ToolCall.from_dict(call) for call in data.get("tool_calls") or [] if isinstance(call, dict)
        ]
        return cls(
            role=data.get("role", "user"),
            content=parse_content(data.get("content")),
            tool_calls=tool_calls,
            thinking=ThoughtBlock.from_raw(data.get("thinking")),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": content_to_raw(self.content)}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.thinking is not None:
            data["thinking"] = self.thinking.to_dict()
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name:
            data["name"] = self.name
        return data

    @property
    def text(self) -> str:
        """Text of the message; text parts are concatenated for part lists."""
        if isinstance(self.content, TextContent):
            return self.content.text
        if isinstance(self.content, PartList):
            return self.content.joined_text()
        return ""

    def is_tool_result(self) -> bool:
        if self.role == "tool":
            return True
        return isinstance(self.content, PartList) and self.content.has_tool_result()


@dataclass
class AccountContext:
    """Account identifiers handed in by the token provider."""

    project_id: str
    session_id: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountContext":
        return cls(
            project_id=data.get("project_id") or data.get("projectId") or "",
            session_id=data.get("session_id") or data.get("sessionId") or "",
        )
