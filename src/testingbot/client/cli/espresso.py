"""Espresso run command."""

from typing import List, Optional

import click

from testingbot.client.cli.common import (
    build_metadata,
    device_options,
    execute,
    run_options,
    split_csv,
)
from testingbot.client.options import EspressoOptions
from testingbot.client.providers import EspressoProvider


@click.command()
@click.argument("app_file", required=False)
@click.argument("test_app_file", required=False)
@click.option("--app", "app_option", default=None, help="Path to the app APK.")
@click.option(
    "--test-app", "test_app_option", default=None, help="Path to the test APK."
)
@device_options
@click.option("--test-runner", default=None, help="Custom instrumentation runner.")
@click.option(
    "--class", "classes", callback=split_csv, help="Classes to run (comma-separated)."
)
@click.option(
    "--not-class", "not_classes", callback=split_csv, help="Classes to skip."
)
@click.option("--package", "packages", callback=split_csv, help="Packages to run.")
@click.option(
    "--not-package", "not_packages", callback=split_csv, help="Packages to skip."
)
@click.option(
    "--annotation", "annotations", callback=split_csv, help="Annotations to run."
)
@click.option(
    "--not-annotation",
    "not_annotations",
    callback=split_csv,
    help="Annotations to skip.",
)
@click.option("--size", "sizes", callback=split_csv, help="small, medium or large.")
@run_options
def espresso(
    app_file: Optional[str],
    test_app_file: Optional[str],
    app_option: Optional[str],
    test_app_option: Optional[str],
    sizes: List[str],
    api_key: Optional[str],
    api_secret: Optional[str],
    commit_sha: Optional[str],
    pull_request_id: Optional[str],
    repo_name: Optional[str],
    repo_owner: Optional[str],
    **kwargs,
) -> None:
    r"""Run Espresso tests on TestingBot.

    \b
    Examples:
      testingbot espresso app.apk app-test.apk --device "Pixel 8"
      testingbot espresso --app app.apk --test-app app-test.apk --size small
    """
    app = app_file or app_option
    test_app = test_app_file or test_app_option
    if not app or not test_app:
        raise click.UsageError("An app and a test app are required.")

    if kwargs.get("orientation"):
        kwargs["orientation"] = kwargs["orientation"].upper()
    options = EspressoOptions(
        app=app,
        test_app=test_app,
        sizes=[s.lower() for s in sizes],
        metadata=build_metadata(commit_sha, pull_request_id, repo_name, repo_owner),
        **kwargs,
    )
    execute(EspressoProvider(options), api_key, api_secret)
