"""
Unit tests for chunked_transfer.py - Chunking, progress and reassembly
"""
import pytest

from pastelink.common.errors import InvalidState, TransferIntegrityError
from pastelink.common.chunked_transfer import (
    ChunkedFileReader, TransferTracker, ReceivedFile,
    progress_percent, iter_chunks, format_size
)


class TestProgressPercent:

    @pytest.mark.parametrize("done,total,expected", [
        (0, 10, 0),
        (10, 10, 100),
        (1, 3, 33),
        (2, 3, 67),
        (1, 2, 50),
        (1, 200, 1),    # 0.5 rounds up
        (1, 201, 0),
        (16000, 16001, 100),
    ])
    def test_rounding(self, done, total, expected):
        assert progress_percent(done, total) == expected

    def test_empty_transfer_is_complete(self):
        assert progress_percent(0, 0) == 100


class TestIterChunks:

    @pytest.mark.parametrize("size", [0, 1, 9, 10, 11, 107])
    def test_chunk_count_and_content(self, size):
        data = bytes(range(256))[:size] if size <= 256 else bytes(size)
        chunks = list(iter_chunks(data, 10))
        assert len(chunks) == (size + 9) // 10
        assert b"".join(chunks) == data
        assert all(len(c) == 10 for c in chunks[:-1])


class TestChunkedFileReader:

    def test_reads_whole_file(self, large_sample_file):
        reader = ChunkedFileReader(large_sample_file, chunk_size=16000)
        chunks = list(reader.read_chunks())
        assert len(chunks) == reader.total_chunks
        assert reader.total_chunks == (reader.file_size + 15999) // 16000
        assert b"".join(chunks) == large_sample_file.read_bytes()

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.txt"
        path.write_bytes(b"")
        reader = ChunkedFileReader(path)
        assert reader.total_chunks == 0
        assert list(reader.read_chunks()) == []

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ChunkedFileReader(temp_dir / "nope.bin")


class TestTransferTrackerSend:

    def test_send_progress(self):
        tracker = TransferTracker()
        state = tracker.begin_send("a.bin", 30)
        assert tracker.sending is state
        assert tracker.on_chunk_sent(10) == 33
        assert tracker.on_chunk_sent(10) == 67
        assert tracker.on_chunk_sent(10) == 100
        assert tracker.end_send() is state
        assert tracker.sending is None

    def test_one_send_at_a_time(self):
        tracker = TransferTracker()
        tracker.begin_send("a.bin", 1)
        with pytest.raises(InvalidState):
            tracker.begin_send("b.bin", 1)

    def test_chunk_without_send(self):
        with pytest.raises(InvalidState):
            TransferTracker().on_chunk_sent(5)

    def test_abort_send(self):
        tracker = TransferTracker()
        tracker.begin_send("a.bin", 1)
        tracker.abort_send()
        assert tracker.sending is None
        tracker.begin_send("b.bin", 1)


class TestTransferTrackerReceive:

    def test_reassembles_in_order(self):
        tracker = TransferTracker()
        assert tracker.begin_receive("x.txt", 11) is None
        assert tracker.on_chunk_received(b"hello") == 45
        assert tracker.on_chunk_received(b" ") == 55
        assert tracker.on_chunk_received(b"world") == 100

        received = tracker.finalize_received()
        assert received == ReceivedFile(name="x.txt", data=b"hello world")
        assert received.size == 11
        assert tracker.receiving is None

    def test_empty_file(self):
        tracker = TransferTracker()
        tracker.begin_receive("empty", 0)
        received = tracker.finalize_received()
        assert received.data == b""

    def test_short_file_is_integrity_error(self):
        tracker = TransferTracker()
        tracker.begin_receive("x.txt", 10)
        tracker.on_chunk_received(b"12345")
        with pytest.raises(TransferIntegrityError) as exc_info:
            tracker.finalize_received()
        assert exc_info.value.expected == 10
        assert exc_info.value.actual == 5
        assert tracker.receiving is None

    def test_long_file_is_integrity_error(self):
        tracker = TransferTracker()
        tracker.begin_receive("x.txt", 2)
        tracker.on_chunk_received(b"123")
        with pytest.raises(TransferIntegrityError):
            tracker.finalize_received()

    def test_progress_can_exceed_declared_size(self):
        tracker = TransferTracker()
        tracker.begin_receive("x.txt", 2)
        assert tracker.on_chunk_received(b"1234") == 200

    def test_new_receive_replaces_partial(self):
        tracker = TransferTracker()
        tracker.begin_receive("first", 10)
        tracker.on_chunk_received(b"123")
        replaced = tracker.begin_receive("second", 2)
        assert replaced.file_name == "first"
        assert replaced.bytes_transferred == 3
        tracker.on_chunk_received(b"ok")
        assert tracker.finalize_received().data == b"ok"

    def test_chunk_without_receive(self):
        with pytest.raises(InvalidState):
            TransferTracker().on_chunk_received(b"x")

    def test_finalize_without_receive(self):
        with pytest.raises(InvalidState):
            TransferTracker().finalize_received()

    def test_abort_receive(self):
        tracker = TransferTracker()
        assert tracker.abort_receive() is None
        tracker.begin_receive("x", 3)
        assert tracker.abort_receive().file_name == "x"
        assert tracker.receiving is None

    def test_reset_clears_both_directions(self):
        tracker = TransferTracker()
        tracker.begin_send("a", 1)
        tracker.begin_receive("b", 1)
        tracker.reset()
        assert tracker.sending is None
        assert tracker.receiving is None


class TestFormatSize:

    def test_bytes(self):
        assert format_size(500) == "500 bytes"

    def test_kilobytes(self):
        assert format_size(2048) == "2.0 KB"

    def test_megabytes(self):
        assert format_size(5 * 1024 * 1024) == "5.0 MB"
