"""Browser login that saves the account's API key and secret locally.

The TestingBot account page redirects to a loopback callback carrying the
credentials, which are then written to ``~/.testingbot``.
"""

from __future__ import annotations

import asyncio
import html
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import click
import structlog
from aiohttp import web

from testingbot.core.credentials import Credentials, save_credentials
from testingbot.core.exceptions import LoginError

logger = structlog.get_logger(__name__)

AUTH_URL = "https://testingbot.com/auth"
CLIENT_IDENTIFIER = "testingbotctl"
CALLBACK_PATH = "/callback"
LOGIN_TIMEOUT = 300.0

_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, 'Segoe UI', Roboto, sans-serif;
            background: #f5f5f5;
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
            margin: 0;
        }}
        .container {{
            background: white;
            padding: 2rem;
            border-radius: 8px;
            box-shadow: 0 2px 10px rgba(0,0,0,0.1);
            max-width: 400px;
            text-align: center;
        }}
        h1 {{ color: {color}; }}
        p {{ color: #666; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{title}</h1>
        {body}
    </div>
</body>
</html>"""

SUCCESS_PAGE = _PAGE.format(
    title="Authentication Successful!",
    color="#22c55e",
    body="<p>You can close this window and return to the CLI.</p>",
)


def error_page(error: str) -> str:
    return _PAGE.format(
        title="Authentication Failed",
        color="#ef4444",
        body=(
            f"<p>{html.escape(error)}</p>\n"
            "        <p>Please try again or contact support.</p>"
        ),
    )


def _describe_timeout(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)} minutes"
    return f"{seconds:g} seconds"


class BrowserLogin:
    """Wait on a loopback port for the account page to hand over credentials.

    The callback accepts ``key``, ``secret`` and ``error`` as query
    parameters, or in a JSON or form encoded POST body. The first complete
    answer settles the login; an ``error`` fails it.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        opener: Callable[[str], object] = click.launch,
        timeout: float = LOGIN_TIMEOUT,
        host: str = "127.0.0.1",
        port: int = 0,
        auth_url: str = AUTH_URL,
    ) -> None:
        self.home = home
        self.opener = opener
        self.timeout = timeout
        self.host = host
        self.port = port
        self.auth_url = auth_url
        self._result: Optional[asyncio.Future] = None

    def authorize_url(self, port: int) -> str:
        query = urlencode({"port": port, "identifier": CLIENT_IDENTIFIER})
        return f"{self.auth_url}?{query}"

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", CALLBACK_PATH, self.handle_callback)
        return app

    @property
    def result(self) -> asyncio.Future:
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
        return self._result

    async def run(self) -> Credentials:
        """Open the browser, wait for the callback and save the credentials.

        Raises:
            LoginError: the page reported an error, or nothing arrived in time.
        """
        runner = web.AppRunner(self.make_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.host, self.port)
            try:
                await site.start()
            except OSError as exc:
                raise LoginError(
                    f"Failed to start local server: {exc}", cause=exc
                ) from exc

            port = runner.addresses[0][1]
            url = self.authorize_url(port)
            logger.debug("Waiting for login callback", port=port)
            self.opener(url)

            try:
                credentials = await asyncio.wait_for(self.result, self.timeout)
            except asyncio.TimeoutError as exc:
                raise LoginError(
                    "Authentication timed out after "
                    f"{_describe_timeout(self.timeout)}"
                ) from exc
        finally:
            await runner.cleanup()

        save_credentials(credentials, self.home)
        return credentials

    async def handle_callback(self, request: web.Request) -> web.Response:
        params: Dict[str, str] = {
            name: request.query[name]
            for name in ("key", "secret", "error")
            if request.query.get(name)
        }
        if not params and request.method == "POST":
            try:
                params = await self._read_body(request)
            except ValueError:
                return web.Response(status=400, text="Failed to parse request")

        error = params.get("error")
        if error:
            self._settle(error=LoginError(error))
            return web.Response(text=error_page(error), content_type="text/html")

        key, secret = params.get("key"), params.get("secret")
        if key and secret:
            self._settle(credentials=Credentials(key, secret))
            return web.Response(text=SUCCESS_PAGE, content_type="text/html")

        return web.Response(status=400, text="Missing credentials")

    @staticmethod
    async def _read_body(request: web.Request) -> Dict[str, str]:
        if request.content_type == "application/json":
            data = await request.json()
            if not isinstance(data, dict):
                raise ValueError("JSON body is not an object")
        else:
            data = await request.post()
        return {
            name: str(data[name])
            for name in ("key", "secret", "error")
            if data.get(name)
        }

    def _settle(
        self,
        credentials: Optional[Credentials] = None,
        error: Optional[LoginError] = None,
    ) -> None:
        if self.result.done():
            logger.debug("Ignoring repeated login callback")
            return
        if error is not None:
            self.result.set_exception(error)
        else:
            self.result.set_result(credentials)
