"""Test configuration shared by every test directory."""

import pytest

from testingbot.core.credentials import KEY_ENV_VAR, SECRET_ENV_VAR


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep the developer's credentials and config overrides out of tests."""
    for name in (KEY_ENV_VAR, SECRET_ENV_VAR, "TESTINGBOT__CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
