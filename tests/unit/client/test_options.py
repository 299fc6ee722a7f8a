"""Tests for run options validation and wire serialization."""

from pathlib import Path

import pytest

from testingbot.client.options import (
    EspressoOptions,
    MaestroOptions,
    RunMetadata,
    XCUITestOptions,
    platform_from_extension,
)
from testingbot.core.exceptions import ValidationError


@pytest.fixture
def app(tmp_path: Path) -> str:
    path = tmp_path / "app.apk"
    path.write_bytes(b"PK")
    return str(path)


@pytest.fixture
def test_app(tmp_path: Path) -> str:
    path = tmp_path / "app-test.apk"
    path.write_bytes(b"PK")
    return str(path)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("app.apk", "Android"),
        ("bundle.APKS", "Android"),
        ("app.ipa", "iOS"),
        ("My.app", "iOS"),
        ("app.zip", "iOS"),
    ],
)
def test_platform_from_extension(name: str, expected: str) -> None:
    assert platform_from_extension(name) == expected


class TestValidation:
    def test_missing_app(self, tmp_path: Path) -> None:
        options = MaestroOptions(app=str(tmp_path / "nope.apk"), flows=["f"])
        with pytest.raises(ValidationError, match="app path does not exist"):
            options.validate()

    def test_flows_required(self, app: str) -> None:
        with pytest.raises(ValidationError, match="flows option is required"):
            MaestroOptions(app=app).validate()

    def test_shard_split_must_be_positive(self, app: str) -> None:
        with pytest.raises(ValidationError, match="shard-split"):
            MaestroOptions(app=app, flows=["f"], shard_split=0).validate()

    def test_report_requires_output_dir(self, app: str) -> None:
        with pytest.raises(ValidationError, match="--report-output-dir"):
            MaestroOptions(app=app, flows=["f"], report="junit").validate()

    def test_report_output_dir_created(self, app: str, tmp_path: Path) -> None:
        out = tmp_path / "reports" / "nested"
        MaestroOptions(
            app=app, flows=["f"], report="html", report_output_dir=str(out)
        ).validate()
        assert out.is_dir()

    def test_report_output_dir_is_a_file(self, app: str, tmp_path: Path) -> None:
        existing = tmp_path / "file.txt"
        existing.write_text("x")
        options = MaestroOptions(
            app=app, flows=["f"], report="junit", report_output_dir=str(existing)
        )
        with pytest.raises(ValidationError, match="not a directory"):
            options.validate()

    def test_invalid_orientation(self, app: str) -> None:
        with pytest.raises(ValidationError, match="orientation"):
            MaestroOptions(app=app, flows=["f"], orientation="UPSIDE").validate()

    def test_test_app_required(self, app: str, tmp_path: Path) -> None:
        options = EspressoOptions(app=app, test_app=str(tmp_path / "missing.apk"))
        with pytest.raises(ValidationError, match="test app path does not exist"):
            options.validate()

    def test_tablet_and_phone_exclusive(self, app: str, test_app: str) -> None:
        options = EspressoOptions(
            app=app, test_app=test_app, tablet_only=True, phone_only=True
        )
        with pytest.raises(ValidationError, match="exclusive"):
            options.validate()

    def test_invalid_size(self, app: str, test_app: str) -> None:
        options = EspressoOptions(app=app, test_app=test_app, sizes=["huge"])
        with pytest.raises(ValidationError, match="huge"):
            options.validate()


class TestMaestroWire:
    def test_capabilities_defaults(self, app: str) -> None:
        caps = MaestroOptions(app=app, flows=["f"]).capabilities()
        assert caps == {"deviceName": "*", "platformName": "Android"}

    def test_platform_precedence(self, app: str) -> None:
        options = MaestroOptions(app=app, flows=["f"])
        assert options.capabilities("iOS")["platformName"] == "iOS"
        options.platform_name = "Android"
        assert options.capabilities("iOS")["platformName"] == "Android"

    def test_capabilities_full(self, app: str) -> None:
        options = MaestroOptions(
            app=app,
            flows=["f"],
            device="Pixel 8",
            version="14",
            name="Smoke",
            orientation="LANDSCAPE",
            locale="de_DE",
            time_zone="Europe/Berlin",
            throttle_network="3G",
            geo_country_code="DE",
            real_device=True,
        )
        assert options.capabilities() == {
            "deviceName": "Pixel 8",
            "platformName": "Android",
            "version": "14",
            "name": "Smoke",
            "orientation": "LANDSCAPE",
            "locale": "de_DE",
            "timeZone": "Europe/Berlin",
            "throttleNetwork": "3G",
            "geoCountryCode": "DE",
            "realDevice": "true",
        }

    def test_empty_maestro_options_omitted(self, app: str) -> None:
        assert MaestroOptions(app=app, flows=["f"]).maestro_options() is None

    def test_maestro_options(self, app: str) -> None:
        options = MaestroOptions(
            app=app,
            flows=["f"],
            include_tags=["smoke"],
            env={"USER": "demo"},
            maestro_version="1.39.0",
        )
        assert options.maestro_options() == {
            "includeTags": ["smoke"],
            "env": {"USER": "demo"},
            "version": "1.39.0",
        }


class TestInstrumentedWire:
    def test_espresso(self, app: str, test_app: str) -> None:
        options = EspressoOptions(
            app=app,
            test_app=test_app,
            device="Pixel 8",
            tablet_only=True,
            classes=["com.example.LoginTest"],
            sizes=["small"],
            language="fr",
            geo_country_code="FR",
        )
        assert options.capabilities() == {
            "platformName": "Android",
            "deviceName": "Pixel 8",
            "tabletOnly": True,
        }
        assert options.espresso_options() == {
            "class": ["com.example.LoginTest"],
            "size": ["small"],
            "language": "fr",
            "geoLocation": "FR",
        }

    def test_xcuitest(self, tmp_path: Path) -> None:
        ipa = tmp_path / "app.ipa"
        ipa.write_bytes(b"PK")
        options = XCUITestOptions(
            app=str(ipa), test_app=str(ipa), real_device=True, throttle_network="4G"
        )
        assert options.capabilities()["platformName"] == "iOS"
        assert options.capabilities()["realDevice"] == "true"
        assert options.xcuitest_options() == {"throttle_network": "4G"}
        bare = XCUITestOptions(app=str(ipa), test_app=str(ipa))
        assert bare.xcuitest_options() is None


class TestMetadata:
    def test_camel_case_keys(self) -> None:
        metadata = RunMetadata(commit_sha="abc", repo_name="app")
        assert metadata.to_wire() == {"commitSha": "abc", "repoName": "app"}

    def test_empty(self) -> None:
        assert RunMetadata().to_wire() is None

    def test_label_prefers_build(self, app: str) -> None:
        assert MaestroOptions(app=app, name="n", build="b").label == "b"
        assert MaestroOptions(app=app, name="n").label == "n"
