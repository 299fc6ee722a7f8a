"""Requester object to make HTTP requests to the TestingBot app-automate API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Tuple, Type
from urllib.parse import urlsplit

import aiohttp
import tenacity

from testingbot.core import __version__
from testingbot.core.configuration import TestingBotConfig
from testingbot.core.constants import USER_AGENT_PREFIX, VERSION_HEADER
from testingbot.core.credentials import Credentials
from testingbot.core.exceptions import (
    InvalidRequest,
    InvalidResponse,
    RequestTimeout,
    RetryBudgetExceeded,
)
from testingbot.core.invocation import InvocationState

logger = logging.getLogger(__name__)


def http_request_ok(status_code: int) -> bool:
    """Return True if HTTP return codes that are deemed ok."""
    return status_code in (200, 201, 302, 307)


def user_agent() -> str:
    """User-Agent sent with every call."""
    return f"{USER_AGENT_PREFIX}{__version__}"


class Requester:
    """Handles HTTP requests to one product endpoint of the TestingBot API."""

    def __init__(
        self,
        service_url: str,
        credentials: Optional[Credentials] = None,
        retries_timeout: int = 120,
        retries_attempts: int = 4,
        request_timeout: int = 30,
        retries_initial_delay: float = 1,
        invocation: Optional[InvocationState] = None,
    ) -> None:
        """Initialize requester.

        Args:
            service_url: product endpoint, e.g. .../v1/app-automate/maestro
            credentials: user name and access key sent as HTTP Basic Auth
            retries_timeout: Total timeout for retries in seconds
            retries_attempts: Number of retry attempts
            request_timeout: Individual request timeout in seconds
            retries_initial_delay: first backoff delay in seconds
            invocation: receives the latest-version header of each response
        """
        self.service_url = service_url.rstrip("/")
        self.credentials = credentials
        self.retries_timeout = retries_timeout
        self.retries_attempts = retries_attempts
        self.request_timeout = request_timeout
        self.retries_initial_delay = retries_initial_delay
        self.invocation = invocation

    @classmethod
    def from_defaults(
        cls: Type[Requester],
        product: str,
        credentials: Optional[Credentials] = None,
        config: Optional[TestingBotConfig] = None,
        invocation: Optional[InvocationState] = None,
    ) -> Requester:
        """Instantiate a requester for a product from config values."""
        config = config or TestingBotConfig()

        api_url = config.get("http", "api_url")
        service_url = f"{api_url.rstrip('/')}/{product}"

        return cls(
            service_url=service_url,
            credentials=credentials,
            retries_timeout=config.get_int("http", "retries_timeout"),
            retries_attempts=config.get_int("http", "retries_attempts"),
            request_timeout=config.get_int("http", "request_timeout"),
            retries_initial_delay=config.get_float("http", "retries_initial_delay"),
            invocation=invocation,
        )

    @property
    def auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.credentials is None:
            return None
        return aiohttp.BasicAuth(
            self.credentials.user_name, self.credentials.access_key
        )

    @property
    def headers(self) -> dict:
        return {"User-Agent": user_agent()}

    def url_for(self, app_route: str) -> str:
        return self.service_url + app_route

    def _is_own_host(self, url: str) -> bool:
        return urlsplit(url).netloc == urlsplit(self.service_url).netloc

    def _should_retry_exception(self, exception: Any) -> bool:
        """Determine if an exception should trigger a retry."""
        logger.warning(f"Exception occurred: {exception}")

        # client errors are final
        if isinstance(exception, InvalidRequest):
            return False

        return isinstance(
            exception,
            (
                InvalidResponse,
                RequestTimeout,
                asyncio.TimeoutError,
                aiohttp.ClientError,
                aiohttp.ServerTimeoutError,
                aiohttp.ClientConnectorError,
            ),
        )

    def _maybe_retry_async(self, func: Callable, tenacious: bool) -> Any:
        if not tenacious:
            return func

        def raise_if_exceed_retry(retry_state: tenacity.RetryCallState) -> Any:
            """If we trigger retry error, raise informative RetryBudgetExceeded."""
            outcome = retry_state.outcome
            if outcome and outcome.exception():
                exception = outcome.exception()
                raise RetryBudgetExceeded(
                    f"Exceeded HTTP request retry budget due to: {exception}",
                    status_code=getattr(exception, "status_code", None),
                    content=getattr(exception, "content", None),
                    cause=exception,
                ) from exception

        retrying = tenacity.retry(
            stop=(
                tenacity.stop_after_attempt(self.retries_attempts)
                | tenacity.stop_after_delay(self.retries_timeout)
            ),
            wait=tenacity.wait_exponential_jitter(
                initial=self.retries_initial_delay, exp_base=2, jitter=1
            ),
            retry=tenacity.retry_if_exception(self._should_retry_exception),
            retry_error_callback=raise_if_exceed_retry,
        )(func)

        return retrying

    def _raise_for_status(
        self, status_code: int, content: Any, request_type: str, route: str
    ) -> None:
        if 499 < status_code < 600 or status_code == 423:
            raise InvalidResponse(
                f"Request failed due to status code {status_code} from "
                f"{request_type.upper()} request through route {route}. "
                f"Response content: {content}",
                status_code=status_code,
                content=content,
            )

        if 400 <= status_code < 500:
            raise InvalidRequest(
                f"Client error with status code {status_code} from "
                f"{request_type.upper()} request through route {route}. "
                f"Response content: {content}",
                status_code=status_code,
                content=content,
            )

    def _observe_version(self, response: aiohttp.ClientResponse) -> None:
        if self.invocation is not None:
            self.invocation.check_for_update(response.headers.get(VERSION_HEADER))

    async def _get_content_async(
        self, response: aiohttp.ClientResponse
    ) -> Tuple[int, Any]:
        """Parse an aiohttp response, handling JSON and non-JSON content gracefully."""
        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                content = await response.json()
            except (json.decoder.JSONDecodeError, ValueError, aiohttp.ContentTypeError):
                content = await response.text()
        else:
            content = await response.read()
        return response.status, content

    async def _send_request_async(
        self,
        session: aiohttp.ClientSession,
        app_route: str,
        message: Any,
        request_type: str,
    ) -> Tuple[int, Any]:
        route = self.url_for(app_route)
        logger.debug(f"Route: {route}, message: {message}")

        method_map = {
            "post": session.post,
            "get": session.get,
            "put": session.put,
        }
        if request_type not in method_map:
            raise ValueError(
                f"request_type must be one of 'get', 'post', or 'put'. Got {request_type}"
            )
        method = method_map[request_type]

        kwargs: dict = {
            "headers": self.headers,
            "auth": self.auth,
            "timeout": aiohttp.ClientTimeout(total=self.request_timeout),
        }
        if isinstance(message, aiohttp.FormData):
            kwargs["data"] = message
        elif request_type in ("post", "put"):
            kwargs["json"] = message
        elif message:
            kwargs["params"] = message

        try:
            async with method(route, **kwargs) as response:
                self._observe_version(response)
                status_code, content = await self._get_content_async(response)
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(
                f"{request_type.upper()} request through route {app_route} timed out "
                f"after {self.request_timeout}s",
                cause=exc,
            ) from exc

        self._raise_for_status(status_code, content, request_type, app_route)
        return status_code, content

    async def send_request_async(
        self,
        session: aiohttp.ClientSession,
        app_route: str,
        message: Any,
        request_type: str,
        tenacious: bool = True,
    ) -> Tuple[int, Any]:
        """Send an async request to the product endpoint.

        Args:
            session: An active aiohttp ClientSession for making requests.
            app_route: The API route to request (will be appended to base URL).
            message: JSON payload, query parameters for GET, or an
                aiohttp.FormData for multipart uploads.
            request_type: HTTP method - 'get', 'post', or 'put'.
            tenacious: Whether to enable retry logic. Only idempotent reads
                should pass True.

        Returns:
            Tuple of (status_code, response_content).

        Raises:
            InvalidRequest: For 4xx client errors (no retry).
            InvalidResponse: For 5xx server errors when not retried.
            RequestTimeout: When the per-call timeout elapses and not retried.
            RetryBudgetExceeded: If retry budget is exceeded.
        """

        async def send_fn(
            session: aiohttp.ClientSession,
            app_route: str,
            message: Any,
            request_type: str,
        ) -> Tuple[int, Any]:
            return await self._send_request_async(
                session, app_route, message, request_type
            )

        send_method = self._maybe_retry_async(send_fn, tenacious)
        return await send_method(
            session=session,
            app_route=app_route,
            message=message,
            request_type=request_type,
        )

    async def _download_async(self, session: aiohttp.ClientSession, url: str) -> bytes:
        auth = self.auth if self._is_own_host(url) else None
        try:
            async with session.get(
                url,
                headers=self.headers,
                auth=auth,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                body = await response.read()
                status_code = response.status
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(
                f"Download of {url} timed out after {self.request_timeout}s", cause=exc
            ) from exc

        self._raise_for_status(status_code, body[:200], "get", url)
        return body

    async def download_async(
        self, session: aiohttp.ClientSession, url: str, tenacious: bool = True
    ) -> bytes:
        """Download an absolute URL and return the raw body.

        Credentials are only attached when the URL points at the API host.
        """
        download = self._maybe_retry_async(self._download_async, tenacious)
        return await download(session, url)
