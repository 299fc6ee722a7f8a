"""Tests for failure message extraction."""

import asyncio
import ssl

from testingbot.core.constants import CREDITS_DEPLETED_MESSAGE
from testingbot.core.error_helpers import (
    describe_network_error,
    describe_status_code,
    extract_error_message,
    format_failure,
)
from testingbot.core.exceptions import InvalidRequest


class TestExtractErrorMessage:
    def test_errors_array_joined_by_newlines(self) -> None:
        assert extract_error_message({"errors": ["bad device", "bad os"]}) == (
            "bad device\nbad os"
        )

    def test_error_field(self) -> None:
        assert extract_error_message({"error": "App not found"}) == "App not found"

    def test_message_field(self) -> None:
        assert extract_error_message({"message": "Try later"}) == "Try later"

    def test_errors_take_precedence(self) -> None:
        payload = {"errors": ["first"], "error": "second", "message": "third"}
        assert extract_error_message(payload) == "first"

    def test_credits_depleted(self) -> None:
        exc = InvalidRequest("Client error", status_code=429, content={"error": "x"})
        assert extract_error_message(exc) == CREDITS_DEPLETED_MESSAGE

    def test_request_error_uses_content(self) -> None:
        exc = InvalidRequest(
            "Client error", status_code=400, content='{"error": "Invalid capabilities"}'
        )
        assert extract_error_message(exc) == "Invalid capabilities"

    def test_request_error_without_content(self) -> None:
        exc = InvalidRequest("Client error", status_code=404, content=None)
        assert extract_error_message(exc) == "Client error"

    def test_plain_values(self) -> None:
        assert extract_error_message("boom") == "boom"
        assert extract_error_message(["a", "b"]) == "a\nb"
        assert extract_error_message(ValueError("nope")) == "nope"
        assert extract_error_message(None) is None

    def test_empty_payload(self) -> None:
        assert extract_error_message({}) is None


class TestDescribeStatusCode:
    def test_known_status_has_troubleshooting(self) -> None:
        text = describe_status_code(401)
        assert text.startswith("Invalid TestingBot credentials")
        assert "Troubleshooting:" in text
        assert "TB_KEY" in text

    def test_server_message_included(self) -> None:
        assert "Details: quota" in describe_status_code(403, "quota")

    def test_unknown_status(self) -> None:
        assert describe_status_code(418) == "Request failed with HTTP status 418"
        assert describe_status_code(418, "teapot") == (
            "Request failed (HTTP 418): teapot"
        )


class TestDescribeNetworkError:
    def test_lists_causes_for_the_host(self) -> None:
        text = describe_network_error(
            ConnectionResetError("reset by peer"),
            "https://api.testingbot.com/v1/app-automate/maestro/app",
        )
        lines = text.splitlines()

        assert lines[0] == (
            "Network request failed: "
            "https://api.testingbot.com/v1/app-automate/maestro/app"
        )
        assert "Possible causes:" in lines
        assert "Troubleshooting steps:" in lines
        assert "  • Verify API URL is correct: https://api.testingbot.com" in lines
        assert lines[-1] == "Original error: reset by peer"

    def test_unknown_url(self) -> None:
        text = describe_network_error(OSError("unreachable"))
        assert text.startswith("Network request failed: unknown URL")

    def test_timeout(self) -> None:
        text = describe_network_error(asyncio.TimeoutError(), "https://x")
        assert text.startswith("Connection timed out.")
        assert "Network request failed" not in text

    def test_certificate(self) -> None:
        error = ssl.SSLCertVerificationError("certificate verify failed")
        text = describe_network_error(error, "https://x")
        assert text.startswith("SSL/TLS certificate error.")
        assert "Update your CA certificates" in text

class TestFormatFailure:
    def test_appends_cause(self) -> None:
        assert format_failure("Failed to start", {"error": "no device"}) == (
            "Failed to start: no device"
        )

    def test_without_cause(self) -> None:
        assert format_failure("Failed to start", None) == "Failed to start"

    def test_cause_already_in_message(self) -> None:
        message = "Failed to start test run: no device"
        assert format_failure(message, {"error": "no device"}) == message
