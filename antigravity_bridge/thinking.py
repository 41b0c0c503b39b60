"""Parsing of reasoning embedded in assistant text.

Clients that cannot carry structured thinking blocks echo them back inline.
The grammar accepted here is deliberately small::

    block   := "<think" [WS attrs] ">" body "</think" [WS] ">"
    attrs   := ... 'signature="' SIG '"' ...
    marker  := '<!-- signature="' SIG '" -->'      (anywhere inside body)

A marker inside the body takes priority over the attribute and is removed
from the visible thought text. Only the first block is treated as the
turn's thought. Anything that does not match is "no structured thought".
"""

import re
from dataclasses import dataclass
from typing import Optional

THINK_BLOCK_RE = re.compile(r"<think(\s[^>]*)?>(.*?)</think\s*>", re.DOTALL)
SIGNATURE_ATTR_RE = re.compile(r'signature="([^"]*)"')
SIGNATURE_MARKER_RE = re.compile(r'<!--\s*signature="([^"]*)"\s*-->')


@dataclass
class ThinkBlock:
    """The first think block found in a message."""

    thought: str
    signature: Optional[str]
    remaining: str


def parse_think_block(text: str) -> Optional[ThinkBlock]:
    """Split text into its first think block and the remaining visible text."""
    if not text or "<think" not in text:
        return None
    match = THINK_BLOCK_RE.search(text)
    if not match:
        return None

    attrs = match.group(1) or ""
    body = match.group(2)

    signature = None
    attr_match = SIGNATURE_ATTR_RE.search(attrs)
    if attr_match and attr_match.group(1):
        signature = attr_match.group(1)

    marker_match = SIGNATURE_MARKER_RE.search(body)
    if marker_match:
        if marker_match.group(1):
            signature = marker_match.group(1)
        body = SIGNATURE_MARKER_RE.sub("", body)

    remaining = (text[: match.start()] + text[match.end() :]).strip()
    return ThinkBlock(thought=body.strip(), signature=signature, remaining=remaining)


def find_tag_signature(text: str) -> Optional[str]:
    """Signature carried by the first think block, if any."""
    block = parse_think_block(text)
    return block.signature if block else None


def strip_think_blocks(text: str) -> str:
    """Remove every think block from text."""
    return THINK_BLOCK_RE.sub("", text).strip()


def replace_tag_signatures(text: str, replacement: str) -> str:
    """Rewrite every ``signature="..."`` occurrence in text.

    Comment markers carry the same ``signature="..."`` form as the tag
    attribute, so one pattern covers both.
    """
    return SIGNATURE_ATTR_RE.sub(f'signature="{replacement}"', text)
