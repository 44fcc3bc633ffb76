"""
Events delivered by a peer transport.

Everything the transport observes reaches the connection controller through
ConnectionController.on_event() as one of these, so a session can be driven
(and replayed in tests) without a live network.
"""
from dataclasses import dataclass
from typing import Any, Union

from pastelink.common.signaling import SessionDescription


@dataclass(frozen=True)
class LocalDescriptionReady:
    """Candidate gathering finished; this is the description to hand out"""
    description: SessionDescription


@dataclass(frozen=True)
class ChannelOpened:
    """The data channel is ready for messages"""
    channel: Any  # pastelink.transport.base.DataChannel


@dataclass(frozen=True)
class ChannelClosed:
    """The data channel closed"""


@dataclass(frozen=True)
class MessageReceived:
    """A message arrived on the data channel (str or bytes)"""
    data: Union[str, bytes]


@dataclass(frozen=True)
class TransportFailed:
    """Negotiation or the connection failed"""
    reason: str


Event = Union[LocalDescriptionReady, ChannelOpened, ChannelClosed, MessageReceived, TransportFailed]
