"""Tests for the generic run pipeline, driven through the Espresso provider."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from testingbot.client.gateway import ChecksumResponse, UploadResponse
from testingbot.client.options import EspressoOptions
from testingbot.client.pipeline import TestRunPipeline
from testingbot.client.pipeline.renderer import ConsoleRenderer
from testingbot.client.providers import EspressoProvider
from testingbot.core.exceptions import SubmissionError, ValidationError


@pytest.fixture
def binaries(tmp_path):
    app = tmp_path / "app.apk"
    test_app = tmp_path / "app-test.apk"
    app.write_bytes(b"app binary")
    test_app.write_bytes(b"test binary")
    return str(app), str(test_app)


@pytest.fixture
def renderer() -> MagicMock:
    return MagicMock(spec=ConsoleRenderer)


@pytest.fixture
def ready_gateway(mock_gateway, make_run, make_run_set):
    mock_gateway.lookup_checksum.return_value = ChecksumResponse(app_exists=False)
    mock_gateway.upload_file.return_value = UploadResponse(app_id=42)
    mock_gateway.submit_run.return_value = {"success": True}
    mock_gateway.get_status.side_effect = [
        make_run_set(make_run(1, "READY", 0), completed=False),
        make_run_set(make_run(1, "DONE", 1)),
    ]
    return mock_gateway


def pipeline(gateway, renderer, binaries, **options) -> TestRunPipeline:
    app, test_app = binaries
    strategy = EspressoProvider(
        EspressoOptions(app=app, test_app=test_app, device="Pixel 8", **options)
    )
    return TestRunPipeline(
        strategy,
        gateway,
        renderer=renderer,
        handle_signals=False,
        exit=MagicMock(),
        sleep=AsyncMock(),
    )


class TestTestRunPipeline:
    @pytest.mark.asyncio
    async def test_full_run(self, ready_gateway, renderer, binaries) -> None:
        result = await pipeline(ready_gateway, renderer, binaries).run()

        assert result.success
        assert result.app_id == 42
        assert [run.id for run in result.runs] == [1]
        assert result.to_dict()["success"] is True

        routes = [c.args[0] for c in ready_gateway.upload_file.await_args_list]
        assert routes == ["/app", "/42/tests"]
        app_id, body = ready_gateway.submit_run.await_args.args
        assert app_id == 42
        assert body["capabilities"][0]["deviceName"] == "Pixel 8"
        assert body["capabilities"][0]["platformName"] == "Android"
        assert ready_gateway.get_status.await_count == 2
        renderer.summary.assert_called_once()
        renderer.clear.assert_called()

    @pytest.mark.asyncio
    async def test_async_mode_returns_after_submission(
        self, ready_gateway, renderer, binaries
    ) -> None:
        result = await pipeline(
            ready_gateway, renderer, binaries, run_async=True
        ).run()

        assert result.success
        assert result.runs == []
        ready_gateway.get_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_run_fails_invocation(
        self, ready_gateway, renderer, binaries, make_run, make_run_set
    ) -> None:
        ready_gateway.get_status.side_effect = None
        ready_gateway.get_status.return_value = make_run_set(
            make_run(1, "DONE", 1), make_run(2, "FAILED", 0, report="https://r/2")
        )

        result = await pipeline(ready_gateway, renderer, binaries).run()

        assert not result.success
        renderer.summary.assert_called_once_with(result.runs, False)

    @pytest.mark.asyncio
    async def test_existing_app_skips_upload(
        self, ready_gateway, renderer, binaries
    ) -> None:
        ready_gateway.lookup_checksum.return_value = ChecksumResponse(
            app_exists=True, app_id=7
        )

        result = await pipeline(ready_gateway, renderer, binaries).run()

        routes = [c.args[0] for c in ready_gateway.upload_file.await_args_list]
        assert routes == ["/7/tests"]
        assert result.app_id == 7

    @pytest.mark.asyncio
    async def test_reports_written(
        self, ready_gateway, renderer, binaries, tmp_path
    ) -> None:
        ready_gateway.get_report.return_value = "<testsuite/>"
        reports = tmp_path / "reports"

        result = await pipeline(
            ready_gateway,
            renderer,
            binaries,
            report="junit",
            report_output_dir=str(reports),
        ).run()

        assert result.report_paths == [str(reports / "report_run_1.xml")]
        ready_gateway.get_report.assert_awaited_once_with(42, 1, "junit")

    @pytest.mark.asyncio
    async def test_validation_before_network(
        self, mock_gateway, renderer, binaries, tmp_path
    ) -> None:
        app, _ = binaries
        with pytest.raises(ValidationError, match="test app"):
            await pipeline(
                mock_gateway, renderer, (app, str(tmp_path / "missing.apk"))
            ).run()

        mock_gateway.lookup_checksum.assert_not_awaited()
        mock_gateway.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submission_error_propagates(
        self, ready_gateway, renderer, binaries
    ) -> None:
        ready_gateway.submit_run.return_value = {"success": False, "error": "nope"}

        with pytest.raises(SubmissionError, match="nope"):
            await pipeline(ready_gateway, renderer, binaries).run()

        ready_gateway.get_status.assert_not_awaited()
