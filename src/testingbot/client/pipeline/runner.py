"""TestRunPipeline: upload, submit, follow and collect one test run request.

The same pipeline drives every product; a ProviderStrategy supplies the
product specific capabilities, options and test bundle.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

from testingbot.client.gateway import ServerGateway
from testingbot.client.models import RunSet, SubmissionResult, TestRun
from testingbot.client.pipeline.artifacts import ArtifactFetcher
from testingbot.client.pipeline.cancellation import CancellationController
from testingbot.client.pipeline.events import EventBus
from testingbot.client.pipeline.poll import (
    AssetSync,
    CancellationState,
    PollConfig,
    PollSession,
    Sleep,
)
from testingbot.client.pipeline.realtime import RealtimeSession
from testingbot.client.pipeline.renderer import ConsoleRenderer
from testingbot.client.pipeline.submitter import RunSubmitter, build_run_body
from testingbot.client.platform_detect import detect_platform
from testingbot.client.providers.base import ProviderStrategy
from testingbot.client.upload import ChecksumUploader
from testingbot.core.configuration import TestingBotConfig
from testingbot.core.invocation import InvocationState
from testingbot.core.logconfig import bind_context

logger = structlog.get_logger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Result
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class PipelineResult:
    """Outcome of one invocation, as exposed to the CLI."""

    success: bool
    runs: List[TestRun] = field(default_factory=list)
    app_id: Optional[int] = None
    report_paths: List[str] = field(default_factory=list)
    artifacts_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "runs": [run.to_dict() for run in self.runs]}


# ──────────────────────────────────────────────────────────────────────────────
# TestRunPipeline
# ──────────────────────────────────────────────────────────────────────────────


class TestRunPipeline:
    """Validate, upload, submit, then poll until every run finished.

    Stages before submission abort the invocation on error. After completion,
    report and artifact retrieval is isolated per run.
    """

    __test__ = False

    def __init__(
        self,
        strategy: ProviderStrategy,
        gateway: ServerGateway,
        invocation: Optional[InvocationState] = None,
        config: Optional[TestingBotConfig] = None,
        events: Optional[EventBus] = None,
        renderer: Optional[ConsoleRenderer] = None,
        handle_signals: bool = True,
        exit: Callable[[int], None] = sys.exit,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.strategy = strategy
        self.options = strategy.options
        self.gateway = gateway
        self.invocation = invocation or InvocationState()
        self.config = config or TestingBotConfig()
        self.poll_config = PollConfig.from_defaults(self.config)
        self.events = events or EventBus()
        self.renderer = renderer or ConsoleRenderer(quiet=self.options.quiet)
        self.events.subscribe(self.renderer)
        self.handle_signals = handle_signals
        self._exit = exit
        self._sleep = sleep

    async def run(self) -> PipelineResult:
        self.strategy.validate()

        with bind_context(product=self.strategy.product):
            app_id = await self.upload()
            with bind_context(app_id=app_id):
                submission = await self.submit(app_id)
                if self.options.run_async:
                    logger.info("Async mode, not waiting for results")
                    return PipelineResult(success=True, runs=[], app_id=app_id)

                run_set = await self.follow(app_id, submission)
                return await self.collect(app_id, run_set)

    # ──────────────────────────────────────────────────────────────────────────
    # Stages
    # ──────────────────────────────────────────────────────────────────────────

    async def upload(self) -> int:
        """Upload the app (deduplicated by checksum) and the test bundle."""
        uploader = ChecksumUploader(
            self.gateway,
            dedup=not self.options.ignore_checksum_check,
            show_progress=not self.options.quiet,
        )
        app_id = await uploader.upload_app(self.options.app)
        async with self.strategy.bundle() as (path, content_type):
            await uploader.upload_bundle(app_id, path, content_type)
        return app_id

    async def submit(self, app_id: int) -> SubmissionResult:
        detected = detect_platform(self.options.app)
        self.strategy.before_submit(self.invocation)
        body = build_run_body(
            capabilities=[self.strategy.build_capabilities(detected)],
            options_key=self.strategy.options_key,
            options=self.strategy.product_options(),
            shard_split=self.strategy.shard_split,
            metadata=self.options.metadata_wire(),
        )
        return await RunSubmitter(self.gateway).submit(app_id, body)

    async def follow(self, app_id: int, submission: SubmissionResult) -> RunSet:
        """Poll to completion with interrupt handling and optional live output."""
        state = CancellationState()
        controller = CancellationController(
            self.gateway, state, self.events, exit=self._exit
        )
        controller.app_id = app_id

        realtime: Optional[RealtimeSession] = None
        if submission.channel is not None and not self.options.quiet:
            realtime = RealtimeSession(
                self.strategy.realtime_events, self.events, self.config
            )
            await realtime.connect(submission.channel)

        session = PollSession(
            self.gateway,
            app_id,
            self.events,
            config=self.poll_config,
            cancellation=state,
            on_shutdown=controller.wait_for_shutdown,
            sleep=self._sleep,
        )
        if self.handle_signals:
            controller.arm()
        try:
            return await session.run()
        finally:
            if self.handle_signals:
                controller.disarm()
            self.renderer.clear()
            if realtime is not None:
                await realtime.disconnect()

    async def collect(self, app_id: int, run_set: RunSet) -> PipelineResult:
        """Summarize the run set, then fetch reports and artifacts."""
        success = run_set.all_passed
        runs = list(run_set.runs)
        self.renderer.summary(runs, success)
        for run in run_set.failed_runs:
            logger.error(
                "Test run failed",
                run_id=run.id,
                device=run.device_label,
                report=run.report,
            )

        result = PipelineResult(success=success, runs=runs, app_id=app_id)
        fetcher = ArtifactFetcher(
            self.gateway,
            AssetSync(self.gateway, app_id, self.poll_config, sleep=self._sleep),
        )
        if self.options.report:
            result.report_paths = await fetcher.fetch_reports(
                app_id, runs, self.options.report, self.options.report_output_dir
            )
        if self.options.download_artifacts:
            result.artifacts_path = await fetcher.fetch_artifacts(
                app_id,
                runs,
                mode=self.options.download_artifacts,
                output_dir=self.options.artifacts_output_dir,
                label=self.options.label,
                report_paths=result.report_paths,
            )
        return result
