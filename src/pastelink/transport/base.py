"""
Base classes for the peer transport abstraction
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from pastelink.common.signaling import SessionDescription
from pastelink.events import Event

logger = logging.getLogger(__name__)


class DataChannel(ABC):
    """
    Ordered, reliable, message-oriented channel between the two peers.

    All implementations must inherit from this class.
    """

    label: str = ""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether messages can be sent"""
        pass

    @abstractmethod
    def send(self, data: Union[str, bytes]) -> None:
        """
        Queue one message (text or binary)

        Args:
            data: Message payload
        """
        pass

    @abstractmethod
    async def drain(self) -> None:
        """Wait until previously queued messages have left the send buffer"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the channel"""
        pass


class PeerTransport(ABC):
    """
    Abstract base class for peer transports

    A transport holds one peer connection. It reports what happens on that
    connection by emitting events to its listener.
    """

    def __init__(self):
        self._listener: Optional[Callable[[Event], None]] = None

    def set_listener(self, listener: Optional[Callable[[Event], None]]) -> None:
        """Set the callback that receives this transport's events"""
        self._listener = listener

    def emit(self, event: Event) -> None:
        """Deliver an event to the listener"""
        if self._listener is None:
            logger.debug(f"Dropping {type(event).__name__}: no listener")
            return
        self._listener(event)

    @abstractmethod
    async def create_local_offer(self) -> SessionDescription:
        """Create an offer describing this endpoint"""
        pass

    @abstractmethod
    async def create_local_answer(self, remote: SessionDescription) -> SessionDescription:
        """
        Create an answer to a remote offer

        Args:
            remote: The offer, already applied with set_remote_description()
        """
        pass

    @abstractmethod
    async def set_local_description(self, description: SessionDescription) -> None:
        """
        Apply the local description.

        Emits LocalDescriptionReady once candidate gathering has completed.
        """
        pass

    @abstractmethod
    async def set_remote_description(self, description: SessionDescription) -> None:
        """Apply the remote peer's description"""
        pass

    @abstractmethod
    def open_channel(self) -> DataChannel:
        """Create the data channel (initiator side, before the offer)"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the channel and the peer connection"""
        pass


__all__ = ['DataChannel', 'PeerTransport']
