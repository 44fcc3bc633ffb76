"""
Chunked file transfer bookkeeping.

Provides:
- ChunkedFileReader: Read files in chunks without loading entire file into memory
- iter_chunks: Split in-memory bytes the same way
- TransferTracker: Per-direction transfer state, progress and reassembly
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional
from dataclasses import dataclass, field

from pastelink import config
from pastelink.common.errors import InvalidState, TransferIntegrityError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = config.CHUNK_SIZE


class TransferDirection(Enum):
    """Which way a transfer flows"""
    SEND = "send"
    RECEIVE = "receive"


@dataclass
class TransferState:
    """State of the one transfer in flight in one direction"""
    file_name: str
    total_size_bytes: int
    bytes_transferred: int = 0
    chunks: List[bytes] = field(default_factory=list)  # receive side only

    @property
    def percent(self) -> int:
        return progress_percent(self.bytes_transferred, self.total_size_bytes)


@dataclass
class ReceivedFile:
    """A completely received file"""
    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def progress_percent(done: int, total: int) -> int:
    """
    round(done / total * 100), rounding halves up.

    An empty transfer is complete as soon as it starts.
    """
    if total <= 0:
        return 100
    return (done * 200 + total) // (2 * total)


def iter_chunks(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield consecutive slices of at most chunk_size bytes"""
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield bytes(view[offset:offset + chunk_size])


class ChunkedFileReader:
    """
    Read a file in chunks for memory-efficient streaming.

    Usage:
        reader = ChunkedFileReader(filepath, chunk_size=16000)
        for data in reader.read_chunks():
            send_chunk(data)
    """

    def __init__(self, filepath: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.filepath = Path(filepath)
        self.chunk_size = chunk_size
        self.file_size = self.filepath.stat().st_size
        self.total_chunks = (self.file_size + chunk_size - 1) // chunk_size

    def read_chunks(self) -> Iterator[bytes]:
        """Yield the file's bytes, one chunk at a time"""
        with open(self.filepath, 'rb') as f:
            for data in iter(lambda: f.read(self.chunk_size), b''):
                yield data


class TransferTracker:
    """
    Tracks at most one outgoing and one incoming transfer.

    The send side only counts bytes; the receive side also keeps the chunks
    in arrival order until the transfer is finalized.
    """

    def __init__(self):
        self.sending: Optional[TransferState] = None
        self.receiving: Optional[TransferState] = None

    # ========== Send side ==========

    def begin_send(self, file_name: str, size_bytes: int) -> TransferState:
        if self.sending is not None:
            raise InvalidState(f"Already sending {self.sending.file_name}")
        self.sending = TransferState(file_name=file_name, total_size_bytes=size_bytes)
        return self.sending

    def on_chunk_sent(self, n: int) -> int:
        """Record n more bytes sent and return the progress percent"""
        if self.sending is None:
            raise InvalidState("No file is being sent")
        self.sending.bytes_transferred += n
        return self.sending.percent

    def end_send(self) -> TransferState:
        if self.sending is None:
            raise InvalidState("No file is being sent")
        state, self.sending = self.sending, None
        return state

    def abort_send(self):
        self.sending = None

    # ========== Receive side ==========

    def begin_receive(self, file_name: str, size_bytes: int) -> Optional[TransferState]:
        """
        Start a new incoming transfer.

        Returns:
            The incomplete transfer this one replaced, if any
        """
        replaced = self.receiving
        self.receiving = TransferState(file_name=file_name, total_size_bytes=size_bytes)
        return replaced

    def on_chunk_received(self, data: bytes) -> int:
        """Append a chunk and return the progress percent"""
        if self.receiving is None:
            raise InvalidState("No file is being received")
        self.receiving.chunks.append(data)
        self.receiving.bytes_transferred += len(data)
        return self.receiving.percent

    def finalize_received(self) -> ReceivedFile:
        """
        Concatenate the received chunks in arrival order.

        Raises:
            TransferIntegrityError: If the byte count differs from the declared size
        """
        if self.receiving is None:
            raise InvalidState("No file is being received")

        state, self.receiving = self.receiving, None
        received = sum(len(c) for c in state.chunks)
        if received != state.total_size_bytes:
            raise TransferIntegrityError(state.file_name, state.total_size_bytes, received)

        return ReceivedFile(name=state.file_name, data=b''.join(state.chunks))

    def abort_receive(self) -> Optional[TransferState]:
        state, self.receiving = self.receiving, None
        return state

    def reset(self):
        self.sending = None
        self.receiving = None


def format_size(size_bytes: int) -> str:
    """Format bytes as human-readable string"""
    if size_bytes < 1024:
        return f"{size_bytes} bytes"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
