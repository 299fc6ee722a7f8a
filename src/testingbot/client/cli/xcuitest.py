"""XCUITest run command."""

from typing import Optional

import click

from testingbot.client.cli.common import (
    build_metadata,
    device_options,
    execute,
    run_options,
)
from testingbot.client.options import XCUITestOptions
from testingbot.client.providers import XCUITestProvider


@click.command()
@click.argument("app_file", required=False)
@click.argument("test_app_file", required=False)
@click.option("--app", "app_option", default=None, help="Path to the app IPA.")
@click.option(
    "--test-app",
    "test_app_option",
    default=None,
    help="Path to the test ZIP containing the XCUITests.",
)
@device_options
@run_options
def xcuitest(
    app_file: Optional[str],
    test_app_file: Optional[str],
    app_option: Optional[str],
    test_app_option: Optional[str],
    api_key: Optional[str],
    api_secret: Optional[str],
    commit_sha: Optional[str],
    pull_request_id: Optional[str],
    repo_name: Optional[str],
    repo_owner: Optional[str],
    **kwargs,
) -> None:
    r"""Run XCUITest tests on TestingBot.

    \b
    Examples:
      testingbot xcuitest app.ipa tests.zip --device "iPhone 16"
      testingbot xcuitest --app app.ipa --test-app tests.zip --real-device
    """
    app = app_file or app_option
    test_app = test_app_file or test_app_option
    if not app or not test_app:
        raise click.UsageError("An app and a test app are required.")

    if kwargs.get("orientation"):
        kwargs["orientation"] = kwargs["orientation"].upper()
    options = XCUITestOptions(
        app=app,
        test_app=test_app,
        metadata=build_metadata(commit_sha, pull_request_id, repo_name, repo_owner),
        **kwargs,
    )
    execute(XCUITestProvider(options), api_key, api_secret)
