"""
Channel protocol: chat and file transfer over one data channel

The channel is ordered, reliable and keeps message boundaries, so no length
framing is needed. Message kinds are told apart by inspecting each message:

┌───────────┬─────────────────────────────────────────────────┐
│ Kind      │ Wire form                                       │
├───────────┼─────────────────────────────────────────────────┤
│ ChatText  │ text, anything not matching a control form      │
│ FileMeta  │ text "FILE_META:" + {"name": str, "size": int}  │
│ FileEnd   │ text "FILE_END"                                 │
│ FileChunk │ binary, raw file bytes                          │
└───────────┴─────────────────────────────────────────────────┘
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from pastelink.common.errors import ProtocolViolation

logger = logging.getLogger(__name__)

FILE_META_PREFIX = "FILE_META:"
FILE_END = "FILE_END"


@dataclass(frozen=True)
class ChatText:
    """A chat line"""
    text: str


@dataclass(frozen=True)
class FileMeta:
    """Announces a file; chunks follow"""
    name: str
    size_bytes: int

    def to_dict(self) -> dict:
        # Key names are shared with the browser client
        return {'name': self.name, 'size': self.size_bytes}

    @classmethod
    def from_dict(cls, data: dict) -> 'FileMeta':
        return cls(name=data['name'], size_bytes=data['size'])


@dataclass(frozen=True)
class FileChunk:
    """One slice of the file currently being transferred"""
    data: bytes


@dataclass(frozen=True)
class FileEnd:
    """Marks the end of the file currently being transferred"""


ChannelMessage = Union[ChatText, FileMeta, FileChunk, FileEnd]


def _safe_json_parse(data: Union[str, bytes], expected_keys: Optional[List[str]] = None) -> Tuple[bool, Any]:
    """
    Parse JSON without raising.

    Returns:
        (True, parsed) on success, (False, error message) otherwise
    """
    try:
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        result = json.loads(data)
    except UnicodeDecodeError as e:
        return (False, f"Invalid UTF-8: {e}")
    except json.JSONDecodeError as e:
        return (False, f"Invalid JSON: {e}")

    if expected_keys:
        if not isinstance(result, dict):
            return (False, "Expected a JSON object")
        missing = [k for k in expected_keys if k not in result]
        if missing:
            return (False, f"Missing keys: {', '.join(missing)}")

    return (True, result)


def is_control_text(text: str) -> bool:
    """True if a text message would be read as a control message"""
    return text == FILE_END or text.startswith(FILE_META_PREFIX)


def encode_message(message: ChannelMessage) -> Union[str, bytes]:
    """Turn a channel message into what is handed to channel.send()"""
    if isinstance(message, ChatText):
        if is_control_text(message.text):
            raise ValueError("Chat text collides with a control message")
        return message.text
    if isinstance(message, FileMeta):
        return FILE_META_PREFIX + json.dumps(message.to_dict(), ensure_ascii=False)
    if isinstance(message, FileChunk):
        return bytes(message.data)
    if isinstance(message, FileEnd):
        return FILE_END
    raise TypeError(f"Not a channel message: {message!r}")


def parse_message(raw: Union[str, bytes, bytearray, memoryview]) -> ChannelMessage:
    """
    Classify one received channel message.

    Raises:
        ProtocolViolation: If a file metadata message is malformed
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return FileChunk(bytes(raw))

    if raw == FILE_END:
        return FileEnd()

    if raw.startswith(FILE_META_PREFIX):
        return _parse_file_meta(raw[len(FILE_META_PREFIX):])

    return ChatText(raw)


def _parse_file_meta(payload: str) -> FileMeta:
    ok, result = _safe_json_parse(payload, expected_keys=['name', 'size'])
    if not ok:
        raise ProtocolViolation(f"Malformed file metadata: {result}")

    name = result['name']
    size = result['size']
    if not isinstance(name, str) or not name:
        raise ProtocolViolation("File metadata has no file name")
    # bool is an int subclass; JSON true/false is not a size
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ProtocolViolation(f"File metadata has invalid size: {size!r}")

    return FileMeta.from_dict(result)
