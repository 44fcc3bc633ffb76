"""
Unit tests for errors.py - Error taxonomy and user-facing messages
"""
import pytest

from pastelink.common.errors import (
    ErrorCode, ErrorCategory, UserError, PasteLinkError, MalformedToken, InvalidState,
    TransportFailure, ProtocolViolation, TransferIntegrityError,
    get_error, get_error_from_exception, format_error, is_connection_error
)


class TestExceptions:

    @pytest.mark.parametrize("exc_class,code,category", [
        (MalformedToken, ErrorCode.MALFORMED_TOKEN, ErrorCategory.CONNECTION),
        (TransportFailure, ErrorCode.TRANSPORT_FAILURE, ErrorCategory.CONNECTION),
        (InvalidState, ErrorCode.INVALID_STATE, ErrorCategory.USAGE),
        (ProtocolViolation, ErrorCode.PROTOCOL_VIOLATION, ErrorCategory.TRANSFER),
    ])
    def test_codes_and_categories(self, exc_class, code, category):
        exc = exc_class("boom")
        assert isinstance(exc, PasteLinkError)
        assert exc.code == code
        assert exc.category == category

    def test_integrity_error(self):
        exc = TransferIntegrityError("a.bin", 10, 7)
        assert isinstance(exc, ProtocolViolation)
        assert exc.code == ErrorCode.INTEGRITY_MISMATCH
        assert exc.category == ErrorCategory.TRANSFER
        assert (exc.file_name, exc.expected, exc.actual) == ("a.bin", 10, 7)
        assert "a.bin" in str(exc)

    def test_is_connection_error(self):
        assert is_connection_error(MalformedToken("x"))
        assert is_connection_error(TransportFailure("x"))
        assert not is_connection_error(ProtocolViolation("x"))
        assert not is_connection_error(ValueError("x"))


class TestUserErrors:

    def test_every_code_has_a_message(self):
        for code in ErrorCode:
            error = get_error(code)
            assert error.message
            assert error.suggestion
            assert error.code == code.value

    def test_str_includes_suggestion(self):
        error = UserError(message="Broken", suggestion="Fix it", code="x")
        assert str(error) == "Error: Broken\n  Suggestion: Fix it"

    def test_to_dict(self):
        error = get_error(ErrorCode.MALFORMED_TOKEN)
        assert error.to_dict()["code"] == "malformed_token"

    def test_format_error_with_details(self):
        text = format_error(ErrorCode.TRANSPORT_FAILURE, "ICE failed")
        assert text.startswith("Error: ")
        assert text.endswith("Details: ICE failed")


class TestGetErrorFromException:

    def test_pastelink_error(self):
        assert get_error_from_exception(TransferIntegrityError("a", 1, 0)).code == "integrity_mismatch"

    def test_file_not_found(self):
        assert get_error_from_exception(FileNotFoundError("x")).code == "file_not_found"

    def test_permission_denied(self):
        assert get_error_from_exception(PermissionError("x")).code == "permission_denied"

    def test_disk_full(self):
        assert get_error_from_exception(OSError(28, "No space left on device")).code == "disk_full"

    def test_unknown_includes_type(self):
        error = get_error_from_exception(RuntimeError("weird"))
        assert error.code == "unknown"
        assert "RuntimeError" in error.message
