"""Options and execution shared by the run commands."""

import asyncio
import sys
from typing import Any, Callable, Dict, Iterable, List, Optional

import click
import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.options import RunMetadata
from testingbot.client.pipeline import PipelineResult, TestRunPipeline
from testingbot.client.providers.base import ProviderStrategy
from testingbot.core.configuration import TestingBotConfig
from testingbot.core.credentials import MISSING_CREDENTIALS_MESSAGE, resolve_credentials
from testingbot.core.invocation import InvocationState
from testingbot.core.requester import Requester

logger = structlog.get_logger(__name__)


def split_csv(
    ctx: click.Context, param: click.Parameter, value: Optional[str]
) -> List[str]:
    """Click callback turning ``a, b`` into ``["a", "b"]``."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_env(values: Iterable[str]) -> Dict[str, str]:
    """Parse repeated ``KEY=VALUE`` pairs; entries without a key are skipped."""
    env = {}
    for item in values:
        key, sep, value = item.partition("=")
        if sep and key:
            env[key] = value
    return env


def build_metadata(
    commit_sha: Optional[str],
    pull_request_id: Optional[str],
    repo_name: Optional[str],
    repo_owner: Optional[str],
) -> Optional[RunMetadata]:
    if not any((commit_sha, pull_request_id, repo_name, repo_owner)):
        return None
    return RunMetadata(
        commit_sha=commit_sha,
        pull_request_id=pull_request_id,
        repo_name=repo_name,
        repo_owner=repo_owner,
    )


def _apply(options: List[Callable]) -> Callable:
    def decorator(f: Callable) -> Callable:
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


def run_options(f: Callable) -> Callable:
    """Execution, report, CI metadata and authentication options."""
    return _apply(
        [
            click.option(
                "--name",
                default=None,
                help="Test name for identification in dashboard.",
            ),
            click.option(
                "-q",
                "--quiet",
                is_flag=True,
                help="Quieter console output without progress updates.",
            ),
            click.option(
                "--async",
                "run_async",
                is_flag=True,
                help="Start tests and exit immediately without waiting for results.",
            ),
            click.option(
                "--report",
                type=click.Choice(["html", "junit"], case_sensitive=False),
                default=None,
                help="Download test report after completion.",
            ),
            click.option(
                "--report-output-dir",
                type=click.Path(file_okay=False),
                default=None,
                help="Directory to save test reports (required when --report is used).",
            ),
            click.option(
                "--commit-sha", default=None, help="The commit SHA of this upload."
            ),
            click.option(
                "--pull-request-id",
                default=None,
                help="The ID of the pull request this upload originated from.",
            ),
            click.option(
                "--repo-name",
                default=None,
                help="Repository name (e.g., GitHub repo slug).",
            ),
            click.option(
                "--repo-owner",
                default=None,
                help="Repository owner (e.g., GitHub organization or user slug).",
            ),
            click.option("--api-key", default=None, help="TestingBot API key."),
            click.option("--api-secret", default=None, help="TestingBot API secret."),
        ]
    )(f)


def device_options(f: Callable) -> Callable:
    """Device selection options shared by Espresso and XCUITest."""
    return _apply(
        [
            click.option(
                "--device", default=None, help="Device name to use for testing."
            ),
            click.option(
                "--platform-version",
                "version",
                default=None,
                help='OS version (e.g., "13", "17.2").',
            ),
            click.option(
                "--real-device",
                is_flag=True,
                help="Use a real device instead of an emulator or simulator.",
            ),
            click.option(
                "--tablet-only", is_flag=True, help="Only allocate tablet devices."
            ),
            click.option(
                "--phone-only", is_flag=True, help="Only allocate phone devices."
            ),
            click.option(
                "--orientation",
                type=click.Choice(["PORTRAIT", "LANDSCAPE"], case_sensitive=False),
                default=None,
                help="Screen orientation.",
            ),
            click.option(
                "--locale", default=None, help='Device locale (e.g., "en_US").'
            ),
            click.option(
                "--timezone",
                "time_zone",
                default=None,
                help='Device timezone (e.g., "Europe/London").',
            ),
            click.option(
                "--language",
                default=None,
                help='App language (ISO 639-1 code, e.g., "en", "fr").',
            ),
            click.option(
                "--geo-location",
                "geo_country_code",
                default=None,
                help='Geographic IP location (ISO country code, e.g., "US").',
            ),
            click.option(
                "--throttle-network",
                type=click.Choice(["4G", "3G", "Edge", "airplane"]),
                default=None,
                help="Network throttling.",
            ),
            click.option(
                "--build", default=None, help="Build identifier for grouping test runs."
            ),
        ]
    )(f)


# ──────────────────────────────────────────────────────────────────────────────
# Execution
# ──────────────────────────────────────────────────────────────────────────────


async def run_pipeline(
    strategy: ProviderStrategy,
    requester: Requester,
    invocation: InvocationState,
    config: TestingBotConfig,
) -> PipelineResult:
    async with ServerGateway(requester) as gateway:
        pipeline = TestRunPipeline(
            strategy, gateway, invocation=invocation, config=config
        )
        return await pipeline.run()


def execute(
    strategy: ProviderStrategy, api_key: Optional[str], api_secret: Optional[str]
) -> None:
    """Run ``strategy`` to completion and exit non-zero when it failed."""
    credentials = resolve_credentials(api_key, api_secret)
    if credentials is None:
        raise click.ClickException(MISSING_CREDENTIALS_MESSAGE)

    config = TestingBotConfig()
    invocation = InvocationState()
    requester = Requester.from_defaults(
        strategy.product, credentials=credentials, config=config, invocation=invocation
    )
    result = asyncio.run(run_pipeline(strategy, requester, invocation, config))
    logger.debug("Invocation finished", **_summary(result))
    if not result.success:
        sys.exit(1)


def _summary(result: PipelineResult) -> Dict[str, Any]:
    return {"success": result.success, "runs": len(result.runs)}
