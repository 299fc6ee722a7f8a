"""Maestro run command."""

from typing import List, Optional, Tuple

import click

from testingbot.client.cli.common import (
    build_metadata,
    execute,
    parse_env,
    run_options,
    split_csv,
)
from testingbot.client.options import MaestroOptions
from testingbot.client.providers import MaestroProvider


def split_positionals(
    app_option: Optional[str], positionals: Tuple[str, ...]
) -> Tuple[Optional[str], List[str]]:
    """With ``--app`` every positional is a flow, otherwise the first is the app."""
    if app_option:
        return app_option, list(positionals)
    if not positionals:
        return None, []
    return positionals[0], list(positionals[1:])


@click.command()
@click.argument("paths", nargs=-1, metavar="[APP_FILE] [FLOWS]...")
@click.option("--app", "app_option", default=None, help="Path to the app under test.")
@click.option("--device", default=None, help='Device name (e.g., "Pixel 9").')
@click.option(
    "--platform",
    "platform_name",
    type=click.Choice(["Android", "iOS"]),
    default=None,
    help="Platform name.",
)
@click.option("--deviceVersion", "version", default=None, help="OS version.")
@click.option(
    "--real-device",
    is_flag=True,
    help="Use a real device instead of an emulator or simulator.",
)
@click.option(
    "--orientation",
    type=click.Choice(["PORTRAIT", "LANDSCAPE"], case_sensitive=False),
    default=None,
    help="Screen orientation.",
)
@click.option("--device-locale", "locale", default=None, help="Device locale.")
@click.option("--timezone", "time_zone", default=None, help="Device timezone.")
@click.option(
    "--throttle-network",
    type=click.Choice(["4G", "3G", "Edge", "airplane", "disable"]),
    default=None,
    help="Network throttling.",
)
@click.option(
    "--geo-country-code",
    default=None,
    help='Geographic IP location (ISO country code, e.g., "US").',
)
@click.option(
    "--include-tags",
    callback=split_csv,
    default=None,
    help="Only run flows with these tags (comma-separated).",
)
@click.option(
    "--exclude-tags",
    callback=split_csv,
    default=None,
    help="Exclude flows with these tags (comma-separated).",
)
@click.option(
    "-e",
    "--env",
    multiple=True,
    metavar="KEY=VALUE",
    help="Environment variable passed to the flows. Can be repeated.",
)
@click.option("--maestro-version", default=None, help="Maestro version to use.")
@click.option(
    "--download-artifacts",
    type=click.Choice(["all", "failed"]),
    is_flag=False,
    flag_value="all",
    default=None,
    help="Download test artifacts after completion: all (default) or failed.",
)
@click.option(
    "--artifacts-output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory to save the artifacts zip (defaults to current directory).",
)
@click.option(
    "--ignore-checksum-check",
    is_flag=True,
    help="Skip the checksum lookup and always upload the app.",
)
@click.option(
    "--shard-split",
    type=int,
    default=None,
    help="Number of chunks to split flows into.",
)
@run_options
def maestro(
    paths: Tuple[str, ...],
    app_option: Optional[str],
    env: Tuple[str, ...],
    api_key: Optional[str],
    api_secret: Optional[str],
    commit_sha: Optional[str],
    pull_request_id: Optional[str],
    repo_name: Optional[str],
    repo_owner: Optional[str],
    **kwargs,
) -> None:
    r"""Run Maestro flows on TestingBot.

    FLOWS are flow files, directories or glob patterns.

    \b
    Examples:
      testingbot maestro app.apk ./flows
      testingbot maestro --app app.ipa "flows/**/*.yaml" -e USER=demo
      testingbot maestro app.apk flows.zip --report junit --report-output-dir out
    """
    app, flows = split_positionals(app_option, paths)
    if not app or not flows:
        raise click.UsageError("An app and at least one flow path are required.")

    if kwargs.get("orientation"):
        kwargs["orientation"] = kwargs["orientation"].upper()
    options = MaestroOptions(
        app=app,
        flows=flows,
        env=parse_env(env),
        metadata=build_metadata(commit_sha, pull_request_id, repo_name, repo_owner),
        **kwargs,
    )
    execute(MaestroProvider(options), api_key, api_secret)
