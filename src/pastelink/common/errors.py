"""
Errors and User-Friendly Error Messages

Exceptions raised by the connection controller and the channel engine, plus
clear, actionable messages for showing them to a user. Each message includes
a description and a suggestion for how to resolve it.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional


class ErrorCode(Enum):
    """Error codes for categorization"""
    # Signaling errors
    MALFORMED_TOKEN = "malformed_token"

    # Connection errors
    TRANSPORT_FAILURE = "transport_failure"
    CHANNEL_CLOSED = "channel_closed"

    # Usage errors
    INVALID_STATE = "invalid_state"

    # Transfer errors
    PROTOCOL_VIOLATION = "protocol_violation"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"

    # Configuration errors
    INVALID_CONFIG = "invalid_config"

    # General
    UNKNOWN = "unknown"


class ErrorCategory:
    """Which part of a session an error belongs to"""
    CONNECTION = "connection"
    TRANSFER = "transfer"
    USAGE = "usage"


class PasteLinkError(Exception):
    """Base class for all pastelink errors"""
    code = ErrorCode.UNKNOWN
    category = ErrorCategory.USAGE


class MalformedToken(PasteLinkError):
    """A pasted signaling token could not be decoded"""
    code = ErrorCode.MALFORMED_TOKEN
    category = ErrorCategory.CONNECTION


class InvalidState(PasteLinkError):
    """Operation attempted from a state that forbids it"""
    code = ErrorCode.INVALID_STATE
    category = ErrorCategory.USAGE


class TransportFailure(PasteLinkError):
    """Negotiation or channel error reported by the peer transport"""
    code = ErrorCode.TRANSPORT_FAILURE
    category = ErrorCategory.CONNECTION


class ProtocolViolation(PasteLinkError):
    """
    Peer sent something the channel protocol does not allow.

    The affected transfer is aborted; the channel stays open.
    """
    code = ErrorCode.PROTOCOL_VIOLATION
    category = ErrorCategory.TRANSFER


class TransferIntegrityError(ProtocolViolation):
    """Received byte count does not match the declared file size"""
    code = ErrorCode.INTEGRITY_MISMATCH

    def __init__(self, file_name: str, expected: int, actual: int):
        super().__init__(
            f"Size mismatch for {file_name}: expected {expected} bytes, got {actual}"
        )
        self.file_name = file_name
        self.expected = expected
        self.actual = actual


def is_connection_error(exc: BaseException) -> bool:
    """True when the error means no connection could be established"""
    return getattr(exc, 'category', None) == ErrorCategory.CONNECTION


@dataclass
class UserError:
    """User-friendly error with message and suggestion"""
    message: str
    suggestion: str
    code: str = ""

    def __str__(self) -> str:
        result = f"Error: {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion
        }


# Error messages with user-friendly suggestions
ERROR_MESSAGES = {
    ErrorCode.MALFORMED_TOKEN: UserError(
        code="malformed_token",
        message="The connection code could not be read",
        suggestion="Copy the whole code again from the other side and paste it without edits"
    ),

    ErrorCode.TRANSPORT_FAILURE: UserError(
        code="transport_failure",
        message="Cannot establish a connection with the peer",
        suggestion="Reset and start a new handshake. Behind strict NATs, add a STUN server with "
                   "'pastelink config --set ice_servers stun:stun.l.google.com:19302'"
    ),

    ErrorCode.CHANNEL_CLOSED: UserError(
        code="channel_closed",
        message="The connection to the peer was closed",
        suggestion="Start a new session with 'pastelink host' or 'pastelink join'"
    ),

    ErrorCode.INVALID_STATE: UserError(
        code="invalid_state",
        message="That action is not possible right now",
        suggestion="Reset the session before starting a new handshake"
    ),

    ErrorCode.PROTOCOL_VIOLATION: UserError(
        code="protocol_violation",
        message="A file transfer failed because the peer sent unexpected data",
        suggestion="Ask the peer to send the file again. The chat is still connected"
    ),

    ErrorCode.INTEGRITY_MISMATCH: UserError(
        code="integrity_mismatch",
        message="A received file is incomplete - its size does not match what the peer announced",
        suggestion="Ask the peer to send the file again. The chat is still connected"
    ),

    ErrorCode.FILE_NOT_FOUND: UserError(
        code="file_not_found",
        message="The file to send was not found",
        suggestion="Check the path and try again"
    ),

    ErrorCode.PERMISSION_DENIED: UserError(
        code="permission_denied",
        message="Permission denied when accessing file or directory",
        suggestion="Check file permissions of the file or of the download directory"
    ),

    ErrorCode.DISK_FULL: UserError(
        code="disk_full",
        message="Not enough disk space to save the received file",
        suggestion="Free up disk space and ask the peer to send the file again"
    ),

    ErrorCode.INVALID_CONFIG: UserError(
        code="invalid_config",
        message="Configuration file contains invalid values",
        suggestion="Run 'pastelink config --reset' to restore default settings"
    ),

    ErrorCode.UNKNOWN: UserError(
        code="unknown",
        message="An unexpected error occurred",
        suggestion="Run again with -v and check the log file for more details"
    ),
}


def get_error(code: ErrorCode) -> UserError:
    """Get user-friendly error for a given error code"""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES[ErrorCode.UNKNOWN])


def get_error_from_exception(exc: Exception) -> UserError:
    """Map exceptions to user-friendly errors"""
    if isinstance(exc, PasteLinkError):
        return get_error(exc.code)

    if isinstance(exc, FileNotFoundError):
        return get_error(ErrorCode.FILE_NOT_FOUND)
    if isinstance(exc, PermissionError):
        return get_error(ErrorCode.PERMISSION_DENIED)

    exc_str = str(exc).lower()
    if "no space left" in exc_str or "disk full" in exc_str:
        return get_error(ErrorCode.DISK_FULL)

    # Default
    error = get_error(ErrorCode.UNKNOWN)
    # Include original exception type for debugging
    return UserError(
        code=error.code,
        message=f"{error.message}: {type(exc).__name__}",
        suggestion=error.suggestion
    )


def format_error(code: ErrorCode, details: Optional[str] = None) -> str:
    """Format error message for display"""
    error = get_error(code)
    result = str(error)
    if details:
        result = f"{result}\n  Details: {details}"
    return result
