"""Unit tests for the stream interceptor."""

import asyncio
import json

import pytest

from antigravity_bridge.constants import SKIP_THOUGHT_SIGNATURE
from antigravity_bridge.converter import MessageConverter
from antigravity_bridge.errors import StreamParseFailure
from antigravity_bridge.signatures import call_fingerprint
from antigravity_bridge.stream import SSELineBuffer, StreamInterceptor, parse_data_line


async def aiter_chunks(chunks):
    for chunk in chunks:
        yield chunk


async def collect(interceptor, chunks, timeout=None):
    return [chunk async for chunk in interceptor.intercept(aiter_chunks(chunks), timeout=timeout)]


def sse(payload):
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


TOOL_CALL_DELTA = {
    "choices": [
        {
            "index": 0,
            "delta": {
                "tool_calls": [
                    {
                        "index": 0,
                        "id": "call_x",
                        "function": {"name": "search", "arguments": '{"q": "x"}', "thought_signature": "SIGX"},
                    }
                ]
            },
        }
    ]
}


class TestSSELineBuffer:
    """Tests for line reassembly."""

    def test_split_across_chunks(self):
        buffer = SSELineBuffer()
        assert buffer.feed(b"data: {\"a\"") == []
        assert buffer.feed(b": 1}\r\n\n") == ['data: {"a": 1}', ""]
        assert buffer.flush() == []

    def test_flush_tail(self):
        buffer = SSELineBuffer()
        buffer.feed(b"data: tail")
        assert buffer.flush() == ["data: tail"]


class TestParseDataLine:
    """Tests for parse_data_line."""

    def test_ignores_non_data_lines(self):
        assert parse_data_line("event: ping") is None
        assert parse_data_line("") is None
        assert parse_data_line("data: [DONE]") is None

    def test_json_payload(self):
        assert parse_data_line('data: {"a": 1}') == {"a": 1}
        assert parse_data_line('data:{"a": 1}') == {"a": 1}

    def test_malformed(self):
        with pytest.raises(StreamParseFailure):
            parse_data_line("data: {nope")
        with pytest.raises(StreamParseFailure):
            parse_data_line("data: [1, 2]")


class TestStreamInterceptor:
    """Tests for StreamInterceptor."""

    @pytest.mark.asyncio
    async def test_replay_is_byte_identical_and_signature_cached(self, session):
        upstream = [sse(TOOL_CALL_DELTA), b"data: [DONE]\n\n"]
        interceptor = StreamInterceptor(session)

        replayed = await collect(interceptor, upstream)

        assert replayed == upstream
        assert b"".join(replayed) == b"".join(upstream)
        assert session.call_cache.get("id:call_x") == "SIGX"
        assert session.ledger.is_valid("SIGX")

    @pytest.mark.asyncio
    async def test_line_split_across_chunks(self, session):
        raw = sse(TOOL_CALL_DELTA)
        upstream = [raw[:17], raw[17:40], raw[40:]]

        replayed = await collect(StreamInterceptor(session), upstream)

        assert replayed == upstream
        assert session.call_cache.get("id:call_x") == "SIGX"

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped(self, session):
        upstream = [b"data: {not json\n\n", b": keepalive\n\n", sse(TOOL_CALL_DELTA)]

        replayed = await collect(StreamInterceptor(session), upstream)

        assert replayed == upstream
        assert session.call_cache.get("id:call_x") == "SIGX"

    @pytest.mark.asyncio
    async def test_thinking_signature_is_fallback_for_calls(self, session):
        thinking = {"choices": [{"delta": {"thinking": {"content": "hmm", "signature": "THINK1"}}}]}
        call = {
            "choices": [
                {"delta": {"tool_calls": [{"function": {"name": "search", "arguments": '{"q": 1}'}}]}}
            ]
        }
        interceptor = StreamInterceptor(session)

        await collect(interceptor, [sse(thinking), sse(call)])

        assert session.call_cache.latest_thinking == "THINK1"
        assert session.call_cache.get(call_fingerprint("search", '{"q": 1}')) == "THINK1"
        assert [c.kind for c in interceptor.captured] == ["thinking", "tool_call"]

    @pytest.mark.asyncio
    async def test_camel_case_call_signature(self, session):
        delta = {
            "choices": [
                {"delta": {"tool_calls": [{"id": "c9", "function": {"name": "f", "thoughtSignature": "CAMEL"}}]}}
            ]
        }
        await collect(StreamInterceptor(session), [sse(delta)])
        assert session.call_cache.get("id:c9") == "CAMEL"

    @pytest.mark.asyncio
    async def test_call_without_any_signature_is_not_cached(self, session):
        delta = {"choices": [{"delta": {"tool_calls": [{"id": "c1", "function": {"name": "f"}}]}}]}
        await collect(StreamInterceptor(session), [sse(delta)])
        assert len(session.call_cache) == 0

    @pytest.mark.asyncio
    async def test_gemini_candidate_parts(self, session):
        payload = {
            "response": {
                "candidates": [
                    {
                        "content": {
                            "role": "model",
                            "parts": [
                                {"text": "plan", "thought": True, "thoughtSignature": "GSIG"},
                                {"functionCall": {"name": "run", "args": {"x": 1}, "id": "fc1"}, "thoughtSignature": "GSIG2"},
                            ],
                        }
                    }
                ]
            }
        }
        interceptor = StreamInterceptor(session)

        await collect(interceptor, [sse(payload)])

        assert session.call_cache.latest_thinking == "GSIG"
        assert session.call_cache.get("id:fc1") == "GSIG2"
        assert session.ledger.is_valid("GSIG")
        assert session.ledger.is_valid("GSIG2")

    @pytest.mark.asyncio
    async def test_unwrapped_candidates(self, session):
        payload = {"candidates": [{"content": {"parts": [{"functionCall": {"name": "run", "args": {}}, "thoughtSignature": "S"}]}}]}
        await collect(StreamInterceptor(session), [sse(payload)])
        assert session.call_cache.get(call_fingerprint("run", {})) == "S"

    @pytest.mark.asyncio
    async def test_timeout(self, session):
        async def slow():
            yield b"data: {}\n\n"
            await asyncio.sleep(10)
            yield b"never"

        interceptor = StreamInterceptor(session)
        with pytest.raises(asyncio.TimeoutError):
            async for _ in interceptor.intercept(slow(), timeout=0.05):
                pass

    @pytest.mark.asyncio
    async def test_intercept_response(self, session):
        chunks = [sse(TOOL_CALL_DELTA)]

        class Content:
            def iter_chunked(self, size):
                return aiter_chunks(chunks)

        class Response:
            content = Content()

        replayed = [c async for c in StreamInterceptor(session).intercept_response(Response())]

        assert replayed == chunks
        assert session.call_cache.get("id:call_x") == "SIGX"

    @pytest.mark.asyncio
    async def test_unexpected_field_types_are_skipped(self, session):
        upstream = [
            b'data: {"candidates": 1}\n\n',
            b'data: {"choices": "x"}\n\n',
            b'data: {"candidates": [{"content": {"parts": {"a": 1}}}]}\n\n',
            b'data: {"choices": [{"delta": {"tool_calls": 7}}]}\n\n',
            sse(TOOL_CALL_DELTA),
        ]

        replayed = await collect(StreamInterceptor(session), upstream)

        assert replayed == upstream
        assert session.call_cache.get("id:call_x") == "SIGX"

    @pytest.mark.asyncio
    async def test_borrowed_thinking_signature_is_not_registered(self, session):
        session.call_cache.set_latest_thinking("EARLIER")
        call = {"candidates": [{"content": {"parts": [{"functionCall": {"name": "run", "args": {}}}]}}]}

        await collect(StreamInterceptor(session), [sse(call)])

        assert session.call_cache.get(call_fingerprint("run", {})) == "EARLIER"
        assert not session.ledger.is_valid("EARLIER")


class TestSignatureRecovery:
    """Tests for signatures carried from a stream into later requests."""

    @pytest.mark.asyncio
    async def test_gemini_call_without_id_restores_into_openai_history(self, session):
        payload = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"functionCall": {"name": "search", "args": {"q": "x"}}, "thoughtSignature": "GSIG"}
                        ]
                    }
                }
            ]
        }
        await collect(StreamInterceptor(session), [sse(payload)])

        history = [
            {"role": "user", "content": "find x"},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{"type": "function", "function": {"name": "search", "arguments": '{"q":"x"}'}}],
            },
        ]
        restored = session.call_cache.restore(history)

        assert restored[1]["tool_calls"][0]["function"]["thought_signature"] == "GSIG"

    @pytest.mark.asyncio
    async def test_claude_thinking_does_not_leak_into_gemini(self, session):
        converter = MessageConverter(session)
        await converter.convert([{"role": "user", "content": "hi"}], "claude-sonnet-4-5")
        claude_stream = {"choices": [{"delta": {"thinking": {"content": "plan", "signature": "CLAUDE_SIG"}}}]}
        await collect(StreamInterceptor(session), [sse(claude_stream)])
        assert session.ledger.is_valid("CLAUDE_SIG")

        await converter.convert([{"role": "user", "content": "hi"}], "gemini-3-pro-high")
        unsigned_call = {"candidates": [{"content": {"parts": [{"functionCall": {"name": "search", "args": {}}}]}}]}
        await collect(StreamInterceptor(session), [sse(unsigned_call)])

        assert not session.ledger.is_valid("CLAUDE_SIG")
        assert session.call_cache.latest_thinking is None

        history = [
            {"role": "user", "content": "hi"},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": "c1",
                        "function": {"name": "search", "arguments": "{}", "thought_signature": "CLAUDE_SIG"},
                    }
                ],
            },
            {"role": "tool", "tool_call_id": "c1", "content": "ok"},
        ]
        result = await converter.convert(history, "gemini-3-pro-high")

        call_part = result.contents[1]["parts"][0]
        assert call_part["thoughtSignature"] == SKIP_THOUGHT_SIGNATURE
