"""Upstream Antigravity client with endpoint fallback."""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from antigravity_bridge.config import BridgeConfig
from antigravity_bridge.constants import (
    ANTIGRAVITY_HEADERS,
    GENERATE_CONTENT_PATH,
    STREAM_GENERATE_CONTENT_PATH,
)
from antigravity_bridge.errors import UpstreamError
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.stream import StreamInterceptor

logger = logging.getLogger(__name__)


class AntigravityClient:
    """Sends converted envelopes upstream and feeds signatures back to the session."""

    def __init__(self, session: AdapterSession, config: Optional[BridgeConfig] = None):
        self.session = session
        self.config = config or session.config

    def _headers(self, access_token: str, stream: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            **ANTIGRAVITY_HEADERS,
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.config.timeout)

    def _stream_timeout(self) -> aiohttp.ClientTimeout:
        # the body read is bounded by the interceptor, so no total limit here
        return aiohttp.ClientTimeout(
            total=None, connect=self.config.timeout, sock_read=self.config.timeout
        )

    async def generate(self, body: Dict[str, Any], access_token: str) -> Dict[str, Any]:
        """POST a non-streaming request, trying each endpoint in order.

        Every thoughtSignature in the response is registered with the session.

        Raises:
            UpstreamError: when all endpoints fail
        """
        endpoints = self.config.endpoints.for_model(body.get("model", ""))
        headers = self._headers(access_token)
        last_error = ""
        last_status: Optional[int] = None

        for endpoint in endpoints:
            try:
                async with aiohttp.ClientSession(timeout=self._timeout()) as http:
                    async with http.post(
                        f"{endpoint}{GENERATE_CONTENT_PATH}", json=body, headers=headers
                    ) as response:
                        if response.ok:
                            data = await response.json()
                            captured = StreamInterceptor(self.session).process_payload(data)
                            logger.debug("Response from %s carried %d signatures", endpoint, len(captured))
                            return data

                        error_text = await response.text()
                        last_status = response.status
                        last_error = error_text
                        logger.warning(
                            "Antigravity endpoint %s failed (%s): %s",
                            endpoint,
                            response.status,
                            error_text[:200],
                        )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e) or type(e).__name__
                logger.warning("Antigravity endpoint %s unreachable: %s", endpoint, last_error)

        raise UpstreamError(
            "Antigravity API error (all endpoints failed)", status=last_status, body=last_error
        )

    async def stream(self, body: Dict[str, Any], access_token: str) -> AsyncIterator[bytes]:
        """POST a streaming request and yield the raw SSE bytes unchanged.

        Signatures are captured by the stream interceptor before the bytes
        are yielded.

        Raises:
            UpstreamError: when all endpoints fail
        """
        endpoints = self.config.endpoints.for_model(body.get("model", ""))
        headers = self._headers(access_token, stream=True)
        last_error = ""
        last_status: Optional[int] = None

        for endpoint in endpoints:
            try:
                async with aiohttp.ClientSession(timeout=self._stream_timeout()) as http:
                    async with http.post(
                        f"{endpoint}{STREAM_GENERATE_CONTENT_PATH}", json=body, headers=headers
                    ) as response:
                        if not response.ok:
                            error_text = await response.text()
                            last_status = response.status
                            last_error = error_text
                            logger.warning(
                                "Antigravity streaming endpoint %s failed (%s): %s",
                                endpoint,
                                response.status,
                                error_text[:200],
                            )
                            continue

                        interceptor = StreamInterceptor(self.session)
                        async for chunk in interceptor.intercept_response(response, self.config.timeout):
                            yield chunk
                        return
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e) or type(e).__name__
                logger.warning("Antigravity streaming endpoint %s unreachable: %s", endpoint, last_error)

        raise UpstreamError(
            "Antigravity streaming API error (all endpoints failed)", status=last_status, body=last_error
        )
