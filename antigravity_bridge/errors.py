"""Error types raised by the Antigravity bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base error for all bridge failures."""


class MalformedToolArguments(BridgeError, ValueError):
    """A tool call's arguments string is not a JSON object."""

    def __init__(self, function_name: str, arguments: str, detail: str = "") -> None:
        self.function_name = function_name
        self.arguments = arguments
        self.detail = detail
        msg = f"Malformed arguments for tool call '{function_name}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ImageFetchFailure(BridgeError):
    """A remote image could not be fetched and inlined."""

    def __init__(self, url: str, detail: str = "") -> None:
        self.url = url
        self.detail = detail
        super().__init__(f"Failed to fetch image {url}" + (f": {detail}" if detail else ""))


class StreamParseFailure(BridgeError):
    """A single SSE data line could not be parsed."""

    def __init__(self, line: str, detail: str = "") -> None:
        self.line = line
        self.detail = detail
        super().__init__(f"Unparsable stream line: {line[:80]!r}")


class UpstreamError(BridgeError):
    """Every upstream endpoint rejected the request."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        self.status = status
        self.body = body[:500]
        super().__init__(message)
