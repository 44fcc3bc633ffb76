"""Common modules for chat and file transfer"""
from .protocol import (
    ChatText,
    FileMeta,
    FileChunk,
    FileEnd,
    encode_message,
    parse_message
)
from .signaling import SessionDescription, DecodeError, encode, decode
from .chunked_transfer import TransferTracker, TransferDirection, ReceivedFile

__all__ = [
    'ChatText',
    'FileMeta',
    'FileChunk',
    'FileEnd',
    'encode_message',
    'parse_message',
    'SessionDescription',
    'DecodeError',
    'encode',
    'decode',
    'TransferTracker',
    'TransferDirection',
    'ReceivedFile'
]
