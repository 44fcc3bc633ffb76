"""
WebRTC peer transport built on aiortc

One RTCPeerConnection with one data channel. ICE, DTLS and SCTP are handled
by aiortc; this module only translates its callbacks into pastelink events.
"""
import asyncio
import logging
from typing import List, Optional, Union

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription

from pastelink import config
from pastelink.common.errors import TransportFailure
from pastelink.common.signaling import SessionDescription
from pastelink.events import (
    ChannelClosed,
    ChannelOpened,
    LocalDescriptionReady,
    MessageReceived,
    TransportFailed,
)
from pastelink.transport.base import DataChannel, PeerTransport

logger = logging.getLogger(__name__)


def _to_rtc(description: SessionDescription) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=description.sdp, type=description.type)


def _from_rtc(description: RTCSessionDescription) -> SessionDescription:
    return SessionDescription(type=description.type, sdp=description.sdp)


class AiortcDataChannel(DataChannel):
    """DataChannel over an aiortc RTCDataChannel"""

    def __init__(self, channel, buffered_low_threshold: int = config.BUFFERED_AMOUNT_LOW_THRESHOLD):
        self._channel = channel
        self._channel.bufferedAmountLowThreshold = buffered_low_threshold
        self.label = channel.label

    @property
    def is_open(self) -> bool:
        return self._channel.readyState == "open"

    def send(self, data: Union[str, bytes]) -> None:
        if not self.is_open:
            raise TransportFailure(f"Channel is {self._channel.readyState}")
        self._channel.send(data)

    async def drain(self) -> None:
        if not self.is_open:
            return
        if self._channel.bufferedAmount <= self._channel.bufferedAmountLowThreshold:
            return

        waiter = asyncio.get_running_loop().create_future()

        def wake(*args):
            if not waiter.done():
                waiter.set_result(None)

        self._channel.on("bufferedamountlow", wake)
        self._channel.on("close", wake)
        try:
            await waiter
        finally:
            self._channel.remove_listener("bufferedamountlow", wake)
            self._channel.remove_listener("close", wake)

    def close(self) -> None:
        self._channel.close()


class AiortcTransport(PeerTransport):
    """
    PeerTransport over aiortc.

    Usage:
        transport = AiortcTransport(ice_servers=["stun:stun.l.google.com:19302"])
        transport.set_listener(controller.on_event)
    """

    def __init__(
        self,
        ice_servers: Optional[List[str]] = None,
        buffered_low_threshold: int = config.BUFFERED_AMOUNT_LOW_THRESHOLD,
        label: str = config.CHANNEL_LABEL
    ):
        super().__init__()
        servers = config.ICE_SERVERS if ice_servers is None else ice_servers
        self.label = label
        self.buffered_low_threshold = buffered_low_threshold
        self._channel: Optional[AiortcDataChannel] = None
        self._closing = False

        self._pc = RTCPeerConnection(
            configuration=RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in servers])
        )

        @self._pc.on("datachannel")
        def on_datachannel(channel):
            logger.info(f"Peer opened data channel '{channel.label}'")
            self._adopt_channel(channel)

        @self._pc.on("connectionstatechange")
        async def on_connectionstatechange():
            state = self._pc.connectionState
            logger.info(f"Peer connection state: {state}")
            if state == "failed" and not self._closing:
                self.emit(TransportFailed("Peer connection failed"))

    @property
    def channel(self) -> Optional[AiortcDataChannel]:
        return self._channel

    def _adopt_channel(self, channel):
        wrapped = AiortcDataChannel(channel, self.buffered_low_threshold)
        self._channel = wrapped

        @channel.on("open")
        def on_open():
            self.emit(ChannelOpened(wrapped))

        @channel.on("close")
        def on_close():
            if not self._closing:
                self.emit(ChannelClosed())

        @channel.on("message")
        def on_message(message):
            self.emit(MessageReceived(message))

        # Channels announced by the peer arrive already open
        if channel.readyState == "open":
            self.emit(ChannelOpened(wrapped))

        return wrapped

    async def create_local_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        return _from_rtc(offer)

    async def create_local_answer(self, remote: SessionDescription) -> SessionDescription:
        answer = await self._pc.createAnswer()
        return _from_rtc(answer)

    async def set_local_description(self, description: SessionDescription) -> None:
        # aiortc completes candidate gathering inside setLocalDescription
        await self._pc.setLocalDescription(_to_rtc(description))
        self.emit(LocalDescriptionReady(_from_rtc(self._pc.localDescription)))

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(_to_rtc(description))

    def open_channel(self) -> DataChannel:
        if self._channel is not None:
            return self._channel
        return self._adopt_channel(self._pc.createDataChannel(self.label))

    async def close(self) -> None:
        self._closing = True
        self.set_listener(None)
        if self._channel is not None:
            self._channel.close()
        await self._pc.close()
        logger.debug("Peer connection closed")
