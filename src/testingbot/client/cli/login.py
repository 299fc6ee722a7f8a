"""Login command for the TestingBot CLI."""

import asyncio

import click

from testingbot.client.login import BrowserLogin
from testingbot.core.credentials import CREDENTIALS_FILE_NAME
from testingbot.core.exceptions import LoginError


def open_browser(url: str) -> None:
    click.echo("Opening browser for authentication...")
    click.echo(f"\nIf the browser does not open automatically, visit:\n\n    {url}\n")
    click.launch(url)


@click.command()
def login() -> None:
    r"""Authenticate in the browser and save your API key and secret.

    \b
    The credentials are written to ~/.testingbot and picked up by every
    run command that is not given --api-key/--api-secret or TB_KEY/TB_SECRET.
    """
    try:
        asyncio.run(BrowserLogin(opener=open_browser).run())
    except LoginError as e:
        raise click.ClickException(f"Authentication failed: {e.message}") from e

    click.echo("Authentication successful!")
    click.echo(f"Credentials saved to ~/{CREDENTIALS_FILE_NAME}")
