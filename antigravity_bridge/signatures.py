"""Thought signature bookkeeping.

Two stores live here:

- ``SignatureLedger``: the set of signatures issued by the currently active
  model family. Signatures are bound to the model that produced them, so the
  ledger is cleared whenever the family changes and anything outside it is
  treated as stale.
- ``CallSignatureCache``: signatures captured from response streams, keyed by
  a fingerprint of the tool call they arrived with. Providers emit one
  signature per turn rather than per call, so a later request can recover a
  signature for a call whose own echo omitted it.

Both are thread-safe via a ``threading.Lock``. Concurrent updates are
last-writer-wins; a lost update only makes a signature unavailable.
"""

import copy
import hashlib
import json
import logging
import re
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from antigravity_bridge.constants import (
    DEFAULT_SIGNATURE_CACHE_MAX_ENTRIES,
    DEFAULT_SIGNATURE_CACHE_TTL_SECONDS,
    FAMILY_CLAUDE,
    FAMILY_GEMINI,
    FAMILY_OTHER,
    SIGNATURE_LOG_PREFIX,
    SKIP_THOUGHT_SIGNATURE,
)

logger = logging.getLogger(__name__)


class ModelFamily(str, Enum):
    """Coarse model grouping sharing signature requirements."""

    CLAUDE = FAMILY_CLAUDE
    GEMINI = FAMILY_GEMINI
    OTHER = FAMILY_OTHER

    @property
    def is_strict(self) -> bool:
        """Strict families reject stale signatures instead of accepting the sentinel."""
        return self is ModelFamily.CLAUDE

    @property
    def has_system_channel(self) -> bool:
        return self is ModelFamily.CLAUDE

    @property
    def requires_inline_images(self) -> bool:
        return self is ModelFamily.CLAUDE


def get_model_family(model: Optional[str]) -> ModelFamily:
    """Derive the model family with a case-insensitive substring test."""
    lower = (model or "").lower()
    if "claude" in lower:
        return ModelFamily.CLAUDE
    if "gemini" in lower:
        return ModelFamily.GEMINI
    return ModelFamily.OTHER


def short_signature(signature: Optional[str]) -> str:
    """Truncate a signature for log output."""
    if not signature:
        return "none"
    if len(signature) <= SIGNATURE_LOG_PREFIX:
        return signature
    return f"{signature[:SIGNATURE_LOG_PREFIX]}..."


class SignatureLedger:
    """Signatures known to be valid for the active model family."""

    def __init__(self):
        self._signatures: set = set()
        self._family: Optional[ModelFamily] = None
        self._lock = threading.Lock()

    @property
    def active_family(self) -> Optional[ModelFamily]:
        """The family of the last processed model, or None before the first request."""
        return self._family

    def observe_model(self, model: Optional[str]) -> Tuple[ModelFamily, bool]:
        """Apply the family transition for a new request.

        Returns the new family and whether a switch happened. A switch clears
        every stored signature.
        """
        family = get_model_family(model)
        with self._lock:
            previous = self._family
            switched = previous is not None and previous is not family
            if switched:
                dropped = len(self._signatures)
                self._signatures.clear()
                logger.warning(
                    "Model family switch %s -> %s, cleared %d signatures",
                    previous.value,
                    family.value,
                    dropped,
                )
            self._family = family
        return family, switched

    def register(self, signature: Optional[str]) -> None:
        """Record a signature observed from the active model."""
        if not signature or not isinstance(signature, str):
            return
        if signature == SKIP_THOUGHT_SIGNATURE:
            return
        with self._lock:
            self._signatures.add(signature)
            size = len(self._signatures)
        logger.info("Registered valid signature %s (ledger size: %d)", short_signature(signature), size)

    def is_valid(self, signature: Optional[str]) -> bool:
        if not signature:
            return False
        if signature == SKIP_THOUGHT_SIGNATURE:
            return True
        with self._lock:
            return signature in self._signatures

    def is_stale(self, signature: Optional[str]) -> bool:
        """True for a present signature that the ledger does not vouch for."""
        return bool(signature) and not self.is_valid(signature)

    def clear(self) -> None:
        with self._lock:
            self._signatures.clear()

    def __contains__(self, signature: object) -> bool:
        with self._lock:
            return signature in self._signatures

    def __len__(self) -> int:
        with self._lock:
            return len(self._signatures)


def call_fingerprint(function_name: Optional[str], arguments: Any, call_id: Optional[str] = None) -> Optional[str]:
    """Build the cache key for a tool call.

    An explicit id wins; otherwise the key is derived from the function name
    and its arguments text. Returns None when neither is available.
    """
    if call_id:
        return f"id:{call_id}"
    if not function_name:
        return None
    if isinstance(arguments, str):
        args_text = arguments
    else:
        args_text = json.dumps(
            arguments if arguments is not None else {}, separators=(",", ":"), ensure_ascii=False
        )
    digest = hashlib.sha256(f"{function_name}:{args_text}".encode("utf-8")).hexdigest()[:16]
    return f"call:{function_name}:{digest}"


_THINK_CLOSE_RE = re.compile(r"</think[^>]*>")


class CallSignatureCache:
    """Signatures captured from response streams, keyed by call fingerprint."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SIGNATURE_CACHE_TTL_SECONDS,
        max_entries: int = DEFAULT_SIGNATURE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._latest_thinking: Optional[Tuple[str, float]] = None
        self._lock = threading.Lock()
        self._clock = clock

    def put(self, fingerprint: str, signature: str) -> None:
        if not fingerprint or not signature:
            return
        now = self._clock()
        with self._lock:
            self._entries[fingerprint] = (signature, now)
            self._cleanup_unlocked(now)
        logger.info("Cached tool call signature for %s: %s", fingerprint, short_signature(signature))

    def get(self, fingerprint: Optional[str]) -> Optional[str]:
        if not fingerprint:
            return None
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if not entry:
                return None
            signature, captured_at = entry
            if now - captured_at >= self.ttl_seconds:
                del self._entries[fingerprint]
                return None
            return signature

    def set_latest_thinking(self, signature: str) -> None:
        if not signature:
            return
        with self._lock:
            self._latest_thinking = (signature, self._clock())
        logger.info("Cached thinking signature: %s", short_signature(signature))

    @property
    def latest_thinking(self) -> Optional[str]:
        with self._lock:
            if not self._latest_thinking:
                return None
            signature, captured_at = self._latest_thinking
            if self._clock() - captured_at >= self.ttl_seconds:
                self._latest_thinking = None
                return None
            return signature

    def clear_latest_thinking(self) -> None:
        """Forget the latest thinking signature; it belongs to the previous family."""
        with self._lock:
            self._latest_thinking = None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._latest_thinking = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._entries

    def _cleanup_unlocked(self, now: float) -> None:
        """Drop expired entries and enforce the size limit.

        MUST be called while holding _lock.
        """
        expired = [key for key, (_, ts) in self._entries.items() if now - ts >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]

        if len(self._entries) > self.max_entries:
            oldest = sorted(self._entries.items(), key=lambda item: item[1][1])
            for key, _ in oldest[: len(self._entries) - self.max_entries]:
                del self._entries[key]

    def restore(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Fill in signatures the client dropped when echoing history back.

        Works on a deep copy. Only the first tool call of a turn needs a
        signature; the converter shares it with the parallel calls.
        """
        restored = copy.deepcopy(messages or [])
        thinking_sig = self.latest_thinking
        filled = 0

        for idx, msg in enumerate(restored):
            if not isinstance(msg, dict) or msg.get("role") != "assistant":
                continue

            content = msg.get("content")
            if thinking_sig and isinstance(content, str) and "<think" in content:
                if 'signature="' not in content and _THINK_CLOSE_RE.search(content):
                    msg["content"] = _THINK_CLOSE_RE.sub(
                        lambda m: f'\n<!-- signature="{thinking_sig}" -->\n{m.group(0)}',
                        content,
                        count=1,
                    )
                    logger.info("Restored thinking signature marker in message %d", idx)

            tool_calls = msg.get("tool_calls")
            if not isinstance(tool_calls, list) or not tool_calls:
                continue
            first = tool_calls[0]
            if not isinstance(first, dict):
                continue
            func = first.get("function")
            if not isinstance(func, dict):
                continue
            if func.get("thought_signature") or func.get("thoughtSignature"):
                continue

            key = call_fingerprint(func.get("name"), func.get("arguments", "{}"), first.get("id"))
            signature = self.get(key) or thinking_sig
            if signature:
                func["thought_signature"] = signature
                filled += 1
                logger.debug("Restored signature for %s: %s", key, short_signature(signature))
            else:
                logger.debug("No cached signature for %s", key)

        if filled:
            logger.info("Restored %d tool call signatures from cache", filled)
        return restored
