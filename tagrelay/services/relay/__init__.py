"""
Relay services

- Fragment decoding and target reconstruction
- Upstream forwarding with streamed, cookie-rewritten responses
- Usage accounting
"""

from .pipeline import (
    RelayPipeline,
    InboundRequest,
    OutboundRequest,
    DecodedBody,
    BodyMode,
)
from .usage import UsageTracker

__all__ = [
    "RelayPipeline",
    "InboundRequest",
    "OutboundRequest",
    "DecodedBody",
    "BodyMode",
    "UsageTracker",
]
