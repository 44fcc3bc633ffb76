"""
Channel Protocol Engine - chat and file transfer over an open data channel

Outgoing:
- Chat lines are sent as-is and echoed to the local chat log at once
- Files are sent as FILE_META, fixed-size binary chunks, FILE_END, waiting
  for each chunk to leave the send buffer before queueing the next

Incoming messages are classified by pastelink.common.protocol and fed to a
TransferTracker that rebuilds the file. Problems with a transfer are reported
through on_transfer_error; they never close the channel.
"""
import logging
from contextlib import closing
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union
from dataclasses import dataclass

from pastelink import config
from pastelink.common.errors import InvalidState, ProtocolViolation, PasteLinkError
from pastelink.common.protocol import (
    ChatText,
    FileChunk,
    FileEnd,
    FileMeta,
    encode_message,
    is_control_text,
    parse_message,
)
from pastelink.common.chunked_transfer import (
    ChunkedFileReader,
    ReceivedFile,
    TransferDirection,
    TransferTracker,
    format_size,
    iter_chunks,
)
from pastelink.transport.base import DataChannel

logger = logging.getLogger(__name__)


class Sender(Enum):
    """Who a chat log line came from"""
    LOCAL = "local"
    PEER = "peer"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatEntry:
    """One line of the chat log"""
    sender: Sender
    text: str


class ChannelEngine:
    """
    Speaks the chat/file protocol on one data channel.

    The engine outlives the channel: the connection controller attaches the
    channel when it opens and detaches it when it closes or is reset.
    """

    def __init__(
        self,
        chunk_size: int = config.CHUNK_SIZE,
        on_chat: Optional[Callable[[ChatEntry], None]] = None,
        on_progress: Optional[Callable[[TransferDirection, str, int], None]] = None,
        on_file_received: Optional[Callable[[ReceivedFile], None]] = None,
        on_transfer_error: Optional[Callable[[PasteLinkError], None]] = None
    ):
        """
        Args:
            chunk_size: Bytes per binary chunk when sending
            on_chat: Called for every chat log line (local echo, peer, notices)
            on_progress: Called after every chunk with (direction, file name, percent)
            on_file_received: Called with each completely received file
            on_transfer_error: Called when a transfer fails; the channel stays open
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        self.chunk_size = chunk_size
        self.on_chat = on_chat
        self.on_progress = on_progress
        self.on_file_received = on_file_received
        self.on_transfer_error = on_transfer_error

        self.chat_log: List[ChatEntry] = []
        self.tracker = TransferTracker()
        self._channel: Optional[DataChannel] = None

    # ========== Channel lifecycle ==========

    @property
    def is_open(self) -> bool:
        return self._channel is not None and self._channel.is_open

    def attach(self, channel: DataChannel):
        """Start using an open channel"""
        self._channel = channel
        self._add_chat(Sender.SYSTEM, "Connected")
        logger.info(f"Channel '{channel.label}' attached")

    def detach(self):
        """Stop using the channel; any half-received file is discarded"""
        if self._channel is None:
            return
        self._channel = None
        self._discard_partial_receive()
        self.tracker.abort_send()
        self._add_chat(Sender.SYSTEM, "Disconnected")
        logger.info("Channel detached")

    def reset(self):
        """Forget the channel, transfers and chat log"""
        self._channel = None
        self._discard_partial_receive()
        self.tracker.reset()
        self.chat_log.clear()

    def _discard_partial_receive(self):
        partial = self.tracker.abort_receive()
        if partial is not None:
            logger.warning(
                f"Discarded incomplete file {partial.file_name} "
                f"({partial.bytes_transferred}/{partial.total_size_bytes} bytes)"
            )

    def _require_channel(self) -> DataChannel:
        if not self.is_open:
            raise InvalidState("Channel is not open")
        return self._channel

    # ========== Chat ==========

    def send_chat(self, text: str) -> Optional[ChatEntry]:
        """
        Send a chat line and echo it locally.

        Returns:
            The local echo, or None for blank text (nothing is sent)

        Raises:
            InvalidState: If the channel is not open
            ValueError: If the text would be read as a control message
        """
        if not text.strip():
            return None
        if is_control_text(text):
            raise ValueError(f"Chat text may not be a control message: {text[:20]!r}")

        channel = self._require_channel()
        channel.send(encode_message(ChatText(text)))
        return self._add_chat(Sender.LOCAL, text)

    def _add_chat(self, sender: Sender, text: str) -> ChatEntry:
        entry = ChatEntry(sender=sender, text=text)
        self.chat_log.append(entry)
        if self.on_chat:
            self.on_chat(entry)
        return entry

    # ========== Sending files ==========

    async def send_file(self, path: Union[str, Path]) -> bool:
        """
        Stream a file from disk to the peer.

        Returns:
            True when the whole file was sent, False if the channel went away
        """
        reader = ChunkedFileReader(Path(path), self.chunk_size)
        return await self._send_stream(reader.filepath.name, reader.file_size, reader.read_chunks())

    async def send_bytes(self, name: str, data: bytes) -> bool:
        """Send in-memory data as a file named `name`"""
        return await self._send_stream(name, len(data), iter_chunks(data, self.chunk_size))

    async def _send_stream(self, name: str, size: int, chunks: Iterator[bytes]) -> bool:
        channel = self._require_channel()
        state = self.tracker.begin_send(name, size)

        try:
            with closing(chunks):
                channel.send(encode_message(FileMeta(name=name, size_bytes=size)))
                self._add_chat(Sender.SYSTEM, f"Sending file: {name} ({format_size(size)})")
                logger.info(f"Sending {name} ({size} bytes, chunk size {self.chunk_size})")

                for chunk in chunks:
                    channel.send(encode_message(FileChunk(chunk)))
                    await channel.drain()
                    if self._channel is not channel or not channel.is_open:
                        logger.warning(f"Channel closed while sending {name}")
                        return False

                    percent = self.tracker.on_chunk_sent(len(chunk))
                    logger.debug(f"Sent chunk of {name}: {percent}%")
                    self._notify_progress(TransferDirection.SEND, name, percent)

                channel.send(encode_message(FileEnd()))
                if size == 0:
                    self._notify_progress(TransferDirection.SEND, name, 100)

                self.tracker.end_send()
                self._add_chat(Sender.SYSTEM, f"File sent: {name}")
                logger.info(f"Sent {name}")
                return True
        finally:
            if self.tracker.sending is state:
                self.tracker.abort_send()

    def _notify_progress(self, direction: TransferDirection, name: str, percent: int):
        if self.on_progress:
            self.on_progress(direction, name, percent)

    # ========== Receiving ==========

    def handle_message(self, raw: Union[str, bytes]):
        """Process one message received on the channel"""
        try:
            message = parse_message(raw)
        except ProtocolViolation as e:
            self._discard_partial_receive()
            self._report(e)
            return

        if isinstance(message, ChatText):
            self._add_chat(Sender.PEER, message.text)
        elif isinstance(message, FileMeta):
            self._on_file_meta(message)
        elif isinstance(message, FileChunk):
            self._on_file_chunk(message)
        elif isinstance(message, FileEnd):
            self._on_file_end()

    def _on_file_meta(self, meta: FileMeta):
        replaced = self.tracker.begin_receive(meta.name, meta.size_bytes)
        if replaced is not None:
            self._report(ProtocolViolation(
                f"Transfer of {replaced.file_name} interrupted by {meta.name} "
                f"after {replaced.bytes_transferred}/{replaced.total_size_bytes} bytes"
            ))

        self._add_chat(Sender.SYSTEM, f"Receiving file: {meta.name} ({format_size(meta.size_bytes)})")
        logger.info(f"Receiving {meta.name} ({meta.size_bytes} bytes)")

    def _on_file_chunk(self, chunk: FileChunk):
        state = self.tracker.receiving
        if state is None:
            self._report(ProtocolViolation(
                f"Received {len(chunk.data)} bytes of file data with no transfer in progress"
            ))
            return

        percent = self.tracker.on_chunk_received(chunk.data)
        logger.debug(f"Received chunk of {state.file_name}: {percent}%")
        self._notify_progress(TransferDirection.RECEIVE, state.file_name, percent)

    def _on_file_end(self):
        state = self.tracker.receiving
        if state is None:
            self._report(ProtocolViolation("Received end of file with no transfer in progress"))
            return

        try:
            received = self.tracker.finalize_received()
        except ProtocolViolation as e:
            self._report(e)
            return

        if received.size == 0:
            self._notify_progress(TransferDirection.RECEIVE, received.name, 100)

        self._add_chat(Sender.SYSTEM, f"File received: {received.name}")
        logger.info(f"Received {received.name} ({received.size} bytes)")
        if self.on_file_received:
            self.on_file_received(received)

    def _report(self, error: PasteLinkError):
        logger.warning(f"Transfer error: {error}")
        if self.on_transfer_error:
            self.on_transfer_error(error)
