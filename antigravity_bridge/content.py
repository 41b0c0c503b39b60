"""Text and inline image extraction from chat message content."""

import asyncio
import base64
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from antigravity_bridge.errors import ImageFetchFailure
from antigravity_bridge.models import PartList, TextContent, parse_content
from antigravity_bridge.signatures import get_model_family

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(r"^data:image/(\w+);base64,(.+)$", re.DOTALL)
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"


@dataclass
class ExtractedContent:
    text: str = ""
    images: List[Dict[str, Any]] = field(default_factory=list)


def _inline_image(mime_type: str, data: str) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": data}}


def decode_data_uri(url: str) -> Optional[Dict[str, Any]]:
    """Convert a ``data:image/<fmt>;base64,<data>`` URI into an inline image part."""
    match = DATA_URI_RE.match(url or "")
    if not match:
        return None
    return _inline_image(f"image/{match.group(1)}", match.group(2))


async def fetch_image(
    url: str, http_session: aiohttp.ClientSession, timeout: Optional[float] = None
) -> Dict[str, Any]:
    """Download a remote image and return it as an inline image part.

    Raises:
        ImageFetchFailure: on HTTP errors, network errors or timeouts
    """
    try:
        request_kwargs: Dict[str, Any] = {}
        if timeout:
            request_kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        async with http_session.get(url, **request_kwargs) as response:
            if not response.ok:
                raise ImageFetchFailure(url, f"HTTP {response.status}")
            body = await response.read()
            mime_type = response.headers.get("Content-Type") or DEFAULT_IMAGE_MIME_TYPE
            mime_type = mime_type.split(";")[0].strip() or DEFAULT_IMAGE_MIME_TYPE
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ImageFetchFailure(url, str(e) or type(e).__name__) from e

    return _inline_image(mime_type, base64.b64encode(body).decode("ascii"))


async def _resolve_image(
    url: str,
    fetch_remote: bool,
    http_session: Optional[aiohttp.ClientSession],
    timeout: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    if fetch_remote and http_session is not None and url.startswith("http"):
        try:
            return await fetch_image(url, http_session, timeout)
        except ImageFetchFailure as e:
            logger.warning("Omitting image: %s", e)
            return None

    image = decode_data_uri(url)
    if image is None:
        logger.debug("Skipping unsupported image url: %s", url[:80])
    return image


def _image_url(part: Dict[str, Any]) -> str:
    image_url = part.get("image_url")
    if isinstance(image_url, dict):
        return image_url.get("url") or ""
    if isinstance(image_url, str):
        return image_url
    return ""


async def extract_content(
    content: Any,
    model_name: Optional[str],
    *,
    http_session: Optional[aiohttp.ClientSession] = None,
    timeout: Optional[float] = None,
) -> ExtractedContent:
    """Pull text and inline images out of message content.

    String content passes through unchanged. For part lists, text parts are
    concatenated and image parts become inline images. Remote URLs are only
    fetched for families that accept nothing but inline bytes; fetches run
    concurrently but the image order follows the part order.

    Args:
        content: a ``Content`` value or a raw ``content`` field
        model_name: resolved upstream model name
        http_session: session reused for image fetches; one is created if needed
        timeout: per-request fetch timeout in seconds
    """
    if not isinstance(content, (TextContent, PartList)):
        content = parse_content(content)

    result = ExtractedContent()
    if content is None:
        return result
    if isinstance(content, TextContent):
        result.text = content.text
        return result

    urls: List[str] = []
    for part in content.parts:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == "text":
            result.text += part.get("text") or ""
        elif part_type == "image_url":
            urls.append(_image_url(part))

    if not urls:
        return result

    fetch_remote = get_model_family(model_name).requires_inline_images
    needs_session = fetch_remote and any(url.startswith("http") for url in urls)

    if needs_session and http_session is None:
        session_kwargs: Dict[str, Any] = {}
        if timeout:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(**session_kwargs) as session:
            images = await asyncio.gather(
                *(_resolve_image(url, True, session, timeout) for url in urls)
            )
    else:
        images = await asyncio.gather(
            *(_resolve_image(url, fetch_remote, http_session, timeout) for url in urls)
        )

    result.images = [image for image in images if image is not None]
    return result
