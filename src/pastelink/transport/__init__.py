"""
Peer transport layer

The controller only talks to PeerTransport / DataChannel. AiortcTransport is
imported lazily so that the protocol code can be used without aiortc loaded.
"""
from typing import List, Optional

from .base import DataChannel, PeerTransport


def create_transport(ice_servers: Optional[List[str]] = None, buffered_low_threshold: int = 0) -> PeerTransport:
    """Create the default (aiortc) transport"""
    from .rtc import AiortcTransport
    return AiortcTransport(ice_servers=ice_servers, buffered_low_threshold=buffered_low_threshold)


__all__ = [
    'DataChannel',
    'PeerTransport',
    'create_transport',
]
