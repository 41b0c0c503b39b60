"""OpenAI chat-completion to Antigravity protocol bridge with thought signature tracking."""

from antigravity_bridge.converter import ConversionResult, MessageConverter
from antigravity_bridge.request import build_request_body
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.signatures import CallSignatureCache, ModelFamily, SignatureLedger
from antigravity_bridge.stream import StreamInterceptor

__version__ = "0.1.0"

__all__ = [
    "AdapterSession",
    "CallSignatureCache",
    "ConversionResult",
    "MessageConverter",
    "ModelFamily",
    "SignatureLedger",
    "StreamInterceptor",
    "build_request_body",
]
