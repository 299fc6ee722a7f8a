"""Tests for content based platform detection."""

import zipfile
from pathlib import Path

from testingbot.client.platform_detect import detect_platform


def make_zip(path: Path, names) -> str:
    with zipfile.ZipFile(path, "w") as archive:
        for name in names:
            archive.writestr(name, "x")
    return str(path)


def test_apk_detected_as_android(tmp_path: Path) -> None:
    path = make_zip(tmp_path / "renamed.bin", ["AndroidManifest.xml", "classes.dex"])
    assert detect_platform(path) == "Android"


def test_apk_set_detected_as_android(tmp_path: Path) -> None:
    path = make_zip(tmp_path / "bundle.apks", ["splits/base-master.apk"])
    assert detect_platform(path) == "Android"


def test_ipa_detected_as_ios(tmp_path: Path) -> None:
    path = make_zip(tmp_path / "app.apk", ["Payload/App.app/Info.plist"])
    assert detect_platform(path) == "iOS"


def test_not_a_zip(tmp_path: Path) -> None:
    path = tmp_path / "app.apk"
    path.write_bytes(b"not a zip")
    assert detect_platform(str(path)) is None


def test_missing_or_directory(tmp_path: Path) -> None:
    assert detect_platform(str(tmp_path / "missing.apk")) is None
    assert detect_platform(str(tmp_path)) is None
