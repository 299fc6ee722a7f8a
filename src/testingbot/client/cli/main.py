"""Main CLI entry point for the TestingBot CLI."""

import sys
from typing import Optional

import aiohttp
import click

from testingbot.client.cli.config import config
from testingbot.client.cli.espresso import espresso
from testingbot.client.cli.login import login
from testingbot.client.cli.maestro import maestro
from testingbot.client.cli.xcuitest import xcuitest
from testingbot.core.configuration import TestingBotConfig
from testingbot.core.error_helpers import describe_network_error, format_failure
from testingbot.core.exceptions import TestingBotError
from testingbot.core.logconfig import configure_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--no-color", is_flag=True, help="Disable colored log output")
@click.pass_context
def cli(ctx: click.Context, debug: bool, no_color: bool) -> None:
    r"""Run Espresso, XCUITest and Maestro tests on TestingBot.

    \b
    Credentials are taken from --api-key/--api-secret, the TB_KEY and
    TB_SECRET environment variables, or a ~/.testingbot file written by
    "testingbot login".

    \b
    Examples:
      testingbot maestro app.apk ./flows --device "Pixel 9"
      testingbot espresso app.apk app-test.apk
      testingbot xcuitest app.ipa tests.zip --real-device
      testingbot login
      testingbot config show --section polling
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    configure_logging(debug=debug, colors=not no_color and sys.stderr.isatty())


# Register command groups
cli.add_command(maestro)
cli.add_command(espresso)
cli.add_command(xcuitest)
cli.add_command(config)
cli.add_command(login)


@cli.command()
def version() -> None:
    """Show version information."""
    from testingbot.client import __version__

    click.echo(f"testingbot-cli {__version__}")


def main(args: Optional[list] = None) -> None:
    """Main entry point for the CLI."""
    try:
        cli(args)
    except TestingBotError as e:
        click.echo(f"Error: {format_failure(e.message, e.cause)}", err=True)
        sys.exit(1)
    except aiohttp.ClientError as e:
        api_url = TestingBotConfig().get("http", "api_url")
        click.echo(f"Error: {describe_network_error(e, api_url)}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
