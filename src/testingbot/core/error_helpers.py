"""Turn server payloads and transport errors into readable failure lines."""

from __future__ import annotations

import asyncio
import json
import ssl
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import aiohttp

from testingbot.core.constants import CREDITS_DEPLETED_MESSAGE
from testingbot.core.exceptions import RequestError, RequestTimeout


STATUS_CODE_MESSAGES: Dict[int, Dict[str, Any]] = {
    400: {
        "message": "Invalid request",
        "troubleshooting": [
            "Check that all required parameters are provided",
            "Verify the file format is correct (APK for Android, IPA/ZIP for iOS)",
            "Ensure the request payload is valid",
        ],
    },
    401: {
        "message": "Invalid TestingBot credentials. Please check your API key and secret",
        "troubleshooting": [
            'Run "testingbot login" to authenticate via browser',
            "Use --api-key and --api-secret command line options",
            "Set TB_KEY and TB_SECRET environment variables",
            "Create ~/.testingbot file with content: key:secret",
        ],
    },
    403: {
        "message": "Access denied",
        "troubleshooting": [
            "Check your account has the required permissions",
            "Verify your subscription plan includes this feature",
        ],
    },
    404: {
        "message": "Resource not found",
        "troubleshooting": [
            "Verify the resource ID or path is correct",
            "Check if the resource was deleted or expired",
        ],
    },
    429: {
        "message": "Your TestingBot credits are depleted",
        "troubleshooting": [
            "Check your remaining credits at https://testingbot.com/members",
            "Upgrade your plan at https://testingbot.com/pricing",
        ],
    },
    500: {
        "message": "Server error occurred",
        "troubleshooting": [
            "This is a temporary issue on our end",
            "Please try again in a few moments",
        ],
    },
    502: {
        "message": "Bad gateway - service temporarily unavailable",
        "troubleshooting": ["Please try again in a few moments"],
    },
    503: {
        "message": "Service temporarily unavailable",
        "troubleshooting": ["Please try again in a few moments"],
    },
    504: {
        "message": "Gateway timeout",
        "troubleshooting": [
            "Try with a smaller file or simpler request",
            "Check your network connection speed",
        ],
    },
}


def _join(errors: List[Any]) -> str:
    return "\n".join(str(e) for e in errors)


def _from_payload(payload: Any) -> Optional[str]:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return payload or None
    if isinstance(payload, list):
        return _join(payload) if payload else None
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if errors:
            return _join(errors) if isinstance(errors, list) else str(errors)
        if payload.get("error"):
            return str(payload["error"])
        if payload.get("message"):
            return str(payload["message"])
        return None
    if payload is None:
        return None
    return str(payload)


def extract_error_message(cause: Any) -> Optional[str]:
    """Find the causal line for a failure, or None.

    Order: HTTP 429 credits notice, ``errors`` joined by newlines, ``error``,
    ``message``, then plain strings and lists.
    """
    if cause is None:
        return None
    if isinstance(cause, str):
        return cause
    if isinstance(cause, list):
        return _join(cause)

    if isinstance(cause, RequestError):
        if cause.status_code == 429:
            return CREDITS_DEPLETED_MESSAGE
        from_content = _from_payload(cause.content)
        if from_content:
            return from_content
        return cause.message

    if isinstance(cause, BaseException):
        return str(cause) or type(cause).__name__

    return _from_payload(cause)


def describe_status_code(status_code: int, server_message: Optional[str] = None) -> str:
    """User facing message for an HTTP status, with troubleshooting bullets."""
    config = STATUS_CODE_MESSAGES.get(status_code)
    if config is None:
        if server_message:
            return f"Request failed (HTTP {status_code}): {server_message}"
        return f"Request failed with HTTP status {status_code}"

    lines = [config["message"]]
    if server_message:
        lines.append(f"Details: {server_message}")
    if config.get("troubleshooting"):
        lines.append("")
        lines.append("Troubleshooting:")
        lines.extend(f"  • {step}" for step in config["troubleshooting"])
    return "\n".join(lines)


TIMEOUT_TROUBLESHOOTING = [
    "Check your internet connection speed",
    "Try again - the server may be temporarily slow",
    "For large files, ensure a stable connection",
]

CERTIFICATE_TROUBLESHOOTING = [
    "Check your system date and time are correct",
    "Update your CA certificates",
    "Check for proxy/VPN interference",
]


def _bullets(title: str, steps: List[str]) -> List[str]:
    return [title] + [f"  • {step}" for step in steps]


def describe_network_error(error: BaseException, url: Optional[str] = None) -> str:
    """User facing message for a request that never received an HTTP response.

    Timeouts and certificate failures get their own advice; anything else
    lists the usual causes for ``url`` with steps to check each of them.
    """
    if isinstance(error, (asyncio.TimeoutError, RequestTimeout)):
        lines = ["Connection timed out. The request took too long to complete.", ""]
        return "\n".join(lines + _bullets("Troubleshooting:", TIMEOUT_TROUBLESHOOTING))

    if isinstance(
        error, (aiohttp.ClientConnectorCertificateError, ssl.SSLCertVerificationError)
    ):
        lines = ["SSL/TLS certificate error.", ""]
        return "\n".join(
            lines + _bullets("Troubleshooting:", CERTIFICATE_TROUBLESHOOTING)
        )

    url = url or "unknown URL"
    parts = urlsplit(url)
    hostname = parts.hostname or url
    origin = f"{parts.scheme}://{parts.netloc}" if parts.scheme else url
    lines = [
        f"Network request failed: {url}",
        "",
        "Possible causes:",
        "  1. No internet connection - check your network connectivity",
        f'  2. DNS resolution failed - unable to resolve "{hostname}"',
        "  3. Firewall or proxy blocking the request",
        "  4. API server is down or unreachable",
        "  5. SSL/TLS certificate validation failed",
        "",
    ]
    lines += _bullets(
        "Troubleshooting steps:",
        [
            "Check internet connection: ping google.com",
            f"Test API reachability: curl {origin}",
            f"Verify API URL is correct: {origin}",
            "Check for proxy/VPN interference",
            "Try again in a few moments if server is temporarily down",
        ],
    )
    lines += ["", f"Original error: {extract_error_message(error)}"]
    return "\n".join(lines)


def format_failure(message: str, cause: Any) -> str:
    """Primary message followed by the causal line unless it already carries it."""
    detail = extract_error_message(cause)
    if detail and detail not in message:
        return f"{message}: {detail}"
    return message
