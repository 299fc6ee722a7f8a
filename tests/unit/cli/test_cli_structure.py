"""Tests for the command line surface."""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from click.testing import CliRunner

from testingbot.client.cli.common import build_metadata, parse_env
from testingbot.client.cli.maestro import split_positionals
from testingbot.client.cli.main import cli, main
from testingbot.client.options import EspressoOptions, MaestroOptions
from testingbot.core.credentials import Credentials
from testingbot.core.exceptions import (
    InvalidResponse,
    LoginError,
    RetryBudgetExceeded,
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def binaries(tmp_path):
    app = tmp_path / "app.apk"
    test_app = tmp_path / "app-test.apk"
    app.write_bytes(b"app")
    test_app.write_bytes(b"test")
    return str(app), str(test_app)


class TestHelpers:
    def test_split_positionals_without_app_option(self) -> None:
        assert split_positionals(None, ("app.apk", "a.yaml", "b")) == (
            "app.apk",
            ["a.yaml", "b"],
        )

    def test_split_positionals_with_app_option(self) -> None:
        assert split_positionals("app.apk", ("a.yaml",)) == ("app.apk", ["a.yaml"])
        assert split_positionals(None, ()) == (None, [])

    def test_parse_env(self) -> None:
        assert parse_env(["USER=demo", "URL=a=b", "=skip", "novalue"]) == {
            "USER": "demo",
            "URL": "a=b",
        }

    def test_build_metadata(self) -> None:
        assert build_metadata(None, None, None, None) is None
        assert build_metadata("abc", None, "repo", None).commit_sha == "abc"


class TestCommands:
    def test_help_lists_commands(self, runner) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        commands = ("maestro", "espresso", "xcuitest", "config", "login", "version")
        for command in commands:
            assert command in result.output

    def test_version(self, runner) -> None:
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert result.output.startswith("testingbot-cli ")

    def test_config_show_section(self, runner) -> None:
        result = runner.invoke(cli, ["config", "show", "--section", "polling"])

        assert result.exit_code == 0
        assert "max_attempts" in result.output

    def test_config_key_requires_section(self, runner) -> None:
        result = runner.invoke(cli, ["config", "show", "--key", "interval"])

        assert result.exit_code == 2

    def test_login(self, runner) -> None:
        with patch("testingbot.client.cli.login.BrowserLogin") as login_cls:
            login_cls.return_value.run = AsyncMock(return_value=Credentials("k", "s"))
            result = runner.invoke(cli, ["login"])

        assert result.exit_code == 0, result.output
        assert "Authentication successful!" in result.output
        assert "Credentials saved to ~/.testingbot" in result.output

    def test_login_failure(self, runner) -> None:
        error = LoginError("Authentication timed out after 5 minutes")
        with patch("testingbot.client.cli.login.BrowserLogin") as login_cls:
            login_cls.return_value.run = AsyncMock(side_effect=error)
            result = runner.invoke(cli, ["login"])

        assert result.exit_code == 1
        assert "Authentication failed: Authentication timed out" in result.output
        assert "successful" not in result.output

    def test_missing_credentials(self, runner, binaries) -> None:
        result = runner.invoke(cli, ["espresso", *binaries])

        assert result.exit_code == 1
        assert "No TestingBot credentials found" in result.output

    def test_maestro_requires_flows(self, runner, binaries) -> None:
        result = runner.invoke(cli, ["maestro", binaries[0]])

        assert result.exit_code == 2
        assert "at least one flow path" in result.output

    def test_maestro_builds_options(self, runner, binaries, tmp_path) -> None:
        flow = tmp_path / "login.yaml"
        flow.write_text("appId: com.example\n---\n- launchApp\n")

        with patch("testingbot.client.cli.maestro.execute") as execute:
            result = runner.invoke(
                cli,
                [
                    "maestro",
                    binaries[0],
                    str(flow),
                    "--include-tags",
                    "smoke, login",
                    "-e",
                    "USER=demo",
                    "--orientation",
                    "landscape",
                    "--download-artifacts",
                    "--api-key",
                    "key",
                    "--api-secret",
                    "secret",
                ],
            )

        assert result.exit_code == 0, result.output
        strategy, api_key, api_secret = execute.call_args.args
        options = strategy.options
        assert isinstance(options, MaestroOptions)
        assert options.flows == [str(flow)]
        assert options.include_tags == ["smoke", "login"]
        assert options.env == {"USER": "demo"}
        assert options.orientation == "LANDSCAPE"
        assert options.download_artifacts == "all"
        assert (api_key, api_secret) == ("key", "secret")

    def test_espresso_builds_options(self, runner, binaries) -> None:
        with patch("testingbot.client.cli.espresso.execute") as execute:
            result = runner.invoke(
                cli,
                [
                    "espresso",
                    "--app",
                    binaries[0],
                    "--test-app",
                    binaries[1],
                    "--size",
                    "SMALL,medium",
                    "--class",
                    "com.example.LoginTest",
                    "--tablet-only",
                ],
            )

        assert result.exit_code == 0, result.output
        options = execute.call_args.args[0].options
        assert isinstance(options, EspressoOptions)
        assert options.sizes == ["small", "medium"]
        assert options.classes == ["com.example.LoginTest"]
        assert options.tablet_only


class TestMain:
    def test_failure_shows_causal_line(self, binaries, capsys) -> None:
        server_error = InvalidResponse(
            "HTTP 503", status_code=503, content={"error": "maintenance window"}
        )
        error = RetryBudgetExceeded(
            "Exceeded HTTP request retry budget due to: HTTP 503",
            status_code=503,
            cause=server_error,
        )

        with patch("testingbot.client.cli.espresso.execute", side_effect=error):
            with pytest.raises(SystemExit) as exc_info:
                main(["espresso", *binaries])

        assert exc_info.value.code == 1
        assert capsys.readouterr().err.strip() == (
            "Error: Exceeded HTTP request retry budget due to: HTTP 503: "
            "maintenance window"
        )

    def test_network_error_lists_causes(self, binaries, capsys) -> None:
        error = aiohttp.ClientConnectionError("Cannot connect to host")

        with patch("testingbot.client.cli.espresso.execute", side_effect=error):
            with pytest.raises(SystemExit) as exc_info:
                main(["espresso", *binaries])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert err.startswith(
            "Error: Network request failed: https://api.testingbot.com/v1/app-automate"
        )
        assert "Possible causes:" in err
        assert "Original error: Cannot connect to host" in err
