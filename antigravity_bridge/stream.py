"""Signature capture from streaming responses.

The interceptor reads an SSE body to completion, keeps every chunk exactly as
received and harvests thought signatures from the ``data:`` lines before
replaying the chunks to the caller. Two payload shapes are recognised:

OpenAI deltas::

    {"choices": [{"delta": {"thinking": {"signature": "..."},
                            "tool_calls": [{"id": "...", "function": {
                                "name": "...", "arguments": "...",
                                "thought_signature": "..."}}]}}]}

Antigravity / Gemini candidates (optionally wrapped in ``response``)::

    {"response": {"candidates": [{"content": {"parts": [
        {"text": "...", "thought": true, "thoughtSignature": "..."},
        {"functionCall": {"name": "...", "args": {...}, "id": "..."},
         "thoughtSignature": "..."}]}}]}}
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

import aiohttp

from antigravity_bridge.errors import StreamParseFailure
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.signatures import call_fingerprint, short_signature

logger = logging.getLogger(__name__)

STREAM_READ_CHUNK_SIZE = 4096


@dataclass
class CapturedSignature:
    """A signature harvested from a stream."""

    kind: str  # "thinking" or "tool_call"
    signature: str
    fingerprint: Optional[str] = None


class SSELineBuffer:
    """Reassembles complete lines from arbitrarily split byte chunks."""

    def __init__(self):
        self._pending = b""

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += chunk
        *lines, self._pending = self._pending.split(b"\n")
        return [line.decode("utf-8", errors="replace").rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        if not self._pending:
            return []
        tail, self._pending = self._pending, b""
        return [tail.decode("utf-8", errors="replace").rstrip("\r")]


def parse_data_line(line: str) -> Optional[Dict[str, Any]]:
    """Parse one SSE line, returning its JSON payload or None.

    Raises:
        StreamParseFailure: when a data line does not hold a JSON object
    """
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise StreamParseFailure(line, str(e)) from e
    if not isinstance(payload, dict):
        raise StreamParseFailure(line, "payload is not an object")
    return payload


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _str_value(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _part_signature(part: Dict[str, Any]) -> Optional[str]:
    """thoughtSignature of a Gemini part, on the part or its functionCall."""
    sig = part.get("thoughtSignature")
    if isinstance(sig, str) and sig:
        return sig
    func_call = part.get("functionCall")
    if isinstance(func_call, dict):
        sig = func_call.get("thoughtSignature") or func_call.get("thought_signature")
        if isinstance(sig, str) and sig:
            return sig
    return None


class StreamInterceptor:
    """Captures signatures from a response stream and replays it unchanged."""

    def __init__(self, session: AdapterSession):
        self.session = session
        self.captured: List[CapturedSignature] = []

    @property
    def call_cache(self):
        return self.session.call_cache

    async def intercept(
        self, chunks: AsyncIterable[bytes], timeout: Optional[float] = None
    ) -> AsyncIterator[bytes]:
        """Read ``chunks`` to completion, then yield them byte for byte.

        Raises:
            asyncio.TimeoutError: when the source is not exhausted within ``timeout``
        """
        buffered: List[bytes] = []
        await asyncio.wait_for(self._consume(chunks, buffered), timeout)
        logger.debug(
            "Stream read complete: %d chunks, %d signatures captured",
            len(buffered),
            len(self.captured),
        )
        for chunk in buffered:
            yield chunk

    async def intercept_response(
        self, response: aiohttp.ClientResponse, timeout: Optional[float] = None
    ) -> AsyncIterator[bytes]:
        """Intercept the body of an upstream aiohttp response."""
        async for chunk in self.intercept(response.content.iter_chunked(STREAM_READ_CHUNK_SIZE), timeout):
            yield chunk

    async def _consume(self, chunks: AsyncIterable[bytes], buffered: List[bytes]) -> None:
        lines = SSELineBuffer()
        async for chunk in chunks:
            if not chunk:
                continue
            buffered.append(chunk)
            for line in lines.feed(chunk):
                self.process_line(line)
        for line in lines.flush():
            self.process_line(line)

    def process_line(self, line: str) -> List[CapturedSignature]:
        """Harvest signatures from one SSE line. Malformed lines are skipped."""
        try:
            payload = parse_data_line(line)
        except StreamParseFailure as e:
            logger.debug("Skipping stream line: %s (%s)", e, e.detail)
            return []
        if payload is None:
            return []
        return self.process_payload(payload)

    def process_payload(self, payload: Dict[str, Any]) -> List[CapturedSignature]:
        """Harvest signatures from one decoded response payload."""
        found: List[CapturedSignature] = []
        for choice in _as_list(payload.get("choices")):
            if isinstance(choice, dict):
                found.extend(self._process_delta(choice.get("delta")))

        response = payload.get("response") if isinstance(payload.get("response"), dict) else payload
        for candidate in _as_list(response.get("candidates")):
            if isinstance(candidate, dict):
                found.extend(self._process_candidate(candidate))

        self.captured.extend(found)
        return found

    def _capture_thinking(self, signature: str) -> CapturedSignature:
        self.session.record_signature(signature)
        self.call_cache.set_latest_thinking(signature)
        return CapturedSignature(kind="thinking", signature=signature)

    def _capture_call(
        self, own_signature: Optional[str], fingerprint: Optional[str]
    ) -> Optional[CapturedSignature]:
        """Cache a call's signature under its fingerprint.

        Only a signature carried by the payload itself is registered with the
        ledger. A call without one borrows the latest thinking signature, and
        that borrowed value goes to the call cache only.
        """
        if not fingerprint:
            return None
        if own_signature:
            self.session.record_signature(own_signature, fingerprint)
            signature = own_signature
        else:
            # signatures usually arrive on the thinking delta, not on each call
            signature = self.call_cache.latest_thinking
            if not signature:
                return None
            self.call_cache.put(fingerprint, signature)
        logger.debug("Captured call signature %s for %s", short_signature(signature), fingerprint)
        return CapturedSignature(kind="tool_call", signature=signature, fingerprint=fingerprint)

    def _process_delta(self, delta: Any) -> List[CapturedSignature]:
        if not isinstance(delta, dict):
            return []
        found = []

        thinking = delta.get("thinking")
        if isinstance(thinking, dict):
            signature = _str_value(thinking.get("signature"))
            if signature:
                found.append(self._capture_thinking(signature))

        for call in _as_list(delta.get("tool_calls")):
            if not isinstance(call, dict):
                continue
            func = call.get("function") if isinstance(call.get("function"), dict) else {}
            fingerprint = call_fingerprint(
                func.get("name") or call.get("name"),
                func.get("arguments") or call.get("args"),
                call.get("id"),
            )
            own_signature = _str_value(func.get("thought_signature")) or _str_value(func.get("thoughtSignature"))
            captured = self._capture_call(own_signature, fingerprint)
            if captured:
                found.append(captured)
        return found

    def _process_candidate(self, candidate: Dict[str, Any]) -> List[CapturedSignature]:
        content = candidate.get("content")
        if not isinstance(content, dict):
            return []
        found = []
        for part in _as_list(content.get("parts")):
            if not isinstance(part, dict):
                continue
            func_call = part.get("functionCall")
            signature = _part_signature(part)

            if isinstance(func_call, dict):
                fingerprint = call_fingerprint(func_call.get("name"), func_call.get("args"), func_call.get("id"))
                captured = self._capture_call(signature, fingerprint)
                if captured:
                    found.append(captured)
            elif signature:
                found.append(self._capture_thinking(signature))
        return found
