"""
Unit tests for protocol.py - Channel message encoding and classification
"""
import pytest
import json

from pastelink.common.errors import ProtocolViolation
from pastelink.common.protocol import (
    ChatText, FileMeta, FileChunk, FileEnd, FILE_END, FILE_META_PREFIX,
    encode_message, parse_message, is_control_text, _safe_json_parse
)


class TestSafeJsonParse:
    """Tests for the _safe_json_parse function"""

    def test_valid_json(self):
        data = b'{"key": "value", "number": 42}'
        success, result = _safe_json_parse(data)
        assert success is True
        assert result == {"key": "value", "number": 42}

    def test_valid_json_from_str(self):
        success, result = _safe_json_parse('{"name": "a.txt", "size": 3}')
        assert success is True
        assert result["size"] == 3

    def test_valid_json_with_expected_keys(self):
        data = b'{"name": "test", "size": 100}'
        success, result = _safe_json_parse(data, expected_keys=["name", "size"])
        assert success is True
        assert result["name"] == "test"

    def test_missing_expected_keys(self):
        data = b'{"name": "test"}'
        success, result = _safe_json_parse(data, expected_keys=["name", "size"])
        assert success is False
        assert "Missing keys" in result

    def test_expected_keys_on_non_object(self):
        success, result = _safe_json_parse(b'[1, 2]', expected_keys=["name"])
        assert success is False
        assert "object" in result

    def test_invalid_json(self):
        data = b'{"invalid": json'
        success, result = _safe_json_parse(data)
        assert success is False
        assert "Invalid JSON" in result

    def test_invalid_utf8(self):
        data = b'\xff\xfe invalid utf8'
        success, result = _safe_json_parse(data)
        assert success is False
        assert "Invalid" in result


class TestEncodeMessage:
    """Tests for encode_message"""

    def test_chat_is_plain_text(self, sample_text):
        assert encode_message(ChatText(sample_text)) == sample_text

    def test_file_meta(self):
        wire = encode_message(FileMeta(name="report.pdf", size_bytes=12345))
        assert wire.startswith(FILE_META_PREFIX)
        assert json.loads(wire[len(FILE_META_PREFIX):]) == {"name": "report.pdf", "size": 12345}

    def test_file_meta_keeps_unicode_name(self):
        wire = encode_message(FileMeta(name="fotoğraf.jpg", size_bytes=1))
        assert "fotoğraf.jpg" in wire

    def test_file_end(self):
        assert encode_message(FileEnd()) == FILE_END == "FILE_END"

    def test_chunk_is_binary(self):
        assert encode_message(FileChunk(b"\x00\x01\x02")) == b"\x00\x01\x02"

    @pytest.mark.parametrize("text", ["FILE_END", 'FILE_META:{"name": "x", "size": 1}', "FILE_META:"])
    def test_chat_colliding_with_control(self, text):
        with pytest.raises(ValueError):
            encode_message(ChatText(text))

    def test_not_a_message(self):
        with pytest.raises(TypeError):
            encode_message("hello")


class TestParseMessage:
    """Tests for parse_message"""

    def test_chat(self):
        assert parse_message("hi there") == ChatText("hi there")

    def test_chat_resembling_control(self):
        # Only an exact FILE_END or the FILE_META: prefix are control messages
        assert parse_message("FILE_END ") == ChatText("FILE_END ")
        assert parse_message("file_meta:{}") == ChatText("file_meta:{}")
        assert parse_message("") == ChatText("")

    def test_file_end(self):
        assert parse_message("FILE_END") == FileEnd()

    def test_file_meta(self):
        message = parse_message('FILE_META:{"name": "a.bin", "size": 40000}')
        assert message == FileMeta(name="a.bin", size_bytes=40000)

    def test_file_meta_zero_size(self):
        assert parse_message('FILE_META:{"name": "empty", "size": 0}') == FileMeta("empty", 0)

    @pytest.mark.parametrize("raw", [b"\x89PNG", bytearray(b"abc"), memoryview(b"xyz")])
    def test_binary_is_chunk(self, raw):
        message = parse_message(raw)
        assert isinstance(message, FileChunk)
        assert message.data == bytes(raw)
        assert isinstance(message.data, bytes)

    def test_binary_that_looks_like_text_is_still_chunk(self):
        assert parse_message(b"FILE_END") == FileChunk(b"FILE_END")

    @pytest.mark.parametrize("raw", [
        'FILE_META:{"name": "a.bin"',
        'FILE_META:{"name": "a.bin"}',
        'FILE_META:{"size": 3}',
        'FILE_META:["a.bin", 3]',
        'FILE_META:{"name": "", "size": 3}',
        'FILE_META:{"name": 7, "size": 3}',
        'FILE_META:{"name": "a.bin", "size": -1}',
        'FILE_META:{"name": "a.bin", "size": "3"}',
        'FILE_META:{"name": "a.bin", "size": 2.5}',
        'FILE_META:{"name": "a.bin", "size": true}',
    ])
    def test_malformed_file_meta(self, raw):
        with pytest.raises(ProtocolViolation):
            parse_message(raw)

    def test_roundtrip_messages(self):
        for message in [ChatText("yo"), FileMeta("x.txt", 5), FileChunk(b"12345"), FileEnd()]:
            assert parse_message(encode_message(message)) == message


class TestIsControlText:

    def test_control(self):
        assert is_control_text("FILE_END")
        assert is_control_text("FILE_META:anything")

    def test_not_control(self):
        assert not is_control_text("FILE_ENDS")
        assert not is_control_text("hello FILE_END")
