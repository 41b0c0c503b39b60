"""Adapter session context.

One ``AdapterSession`` is built per adapter instance (or per conversation when
tenants must be isolated) and passed to every conversion and stream
interception call. It owns the signature ledger and the call signature cache.
"""

from typing import Optional, Tuple

from antigravity_bridge.config import BridgeConfig, get_config
from antigravity_bridge.signatures import CallSignatureCache, ModelFamily, SignatureLedger


class AdapterSession:
    """Shared mutable state for one adapter instance."""

    def __init__(self, config: Optional[BridgeConfig] = None):
        self.config = config or get_config()
        self.ledger = SignatureLedger()
        self.call_cache = CallSignatureCache(
            ttl_seconds=self.config.signature_cache.ttl_seconds,
            max_entries=self.config.signature_cache.max_entries,
        )

    def observe_model(self, model: Optional[str]) -> Tuple[ModelFamily, bool]:
        """Apply the family transition for a request to both stores.

        A switch clears the ledger and the latest thinking signature. Call
        cache entries are kept; they are only restored into history, where the
        ledger still judges them.
        """
        family, switched = self.ledger.observe_model(model)
        if switched:
            self.call_cache.clear_latest_thinking()
        return family, switched

    def record_signature(self, signature: Optional[str], fingerprint: Optional[str] = None) -> None:
        """Register a signature issued by the active model, optionally tied to a call."""
        if not signature:
            return
        self.ledger.register(signature)
        if fingerprint:
            self.call_cache.put(fingerprint, signature)

    def reset(self) -> None:
        self.ledger.clear()
        self.call_cache.clear()
