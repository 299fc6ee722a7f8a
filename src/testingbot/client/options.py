"""User supplied options for a run, and their wire representation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from testingbot.core.constants import (
    WILDCARD_DEVICE,
    ArtifactDownloadMode,
    Platform,
    ReportFormat,
)
from testingbot.core.exceptions import ValidationError

ORIENTATIONS = ("PORTRAIT", "LANDSCAPE")
THROTTLE_PRESETS = ("4G", "3G", "Edge", "airplane", "disable")
TEST_SIZES = ("small", "medium", "large")


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset and empty entries so the server never sees empty containers."""
    return {
        k: v
        for k, v in values.items()
        if v is not None and v is not False and v != [] and v != {} and v != ""
    }


def platform_from_extension(app: str) -> str:
    """Extension fallback: .apk/.apks is Android, everything else iOS."""
    ext = os.path.splitext(app.lower())[1]
    return Platform.ANDROID if ext in (".apk", ".apks") else Platform.IOS


@dataclass
class RunMetadata:
    """CI metadata attached to a run."""

    commit_sha: Optional[str] = None
    pull_request_id: Optional[str] = None
    repo_name: Optional[str] = None
    repo_owner: Optional[str] = None

    def to_wire(self) -> Optional[Dict[str, str]]:
        wire = _compact(
            {
                "commitSha": self.commit_sha,
                "pullRequestId": self.pull_request_id,
                "repoName": self.repo_name,
                "repoOwner": self.repo_owner,
            }
        )
        return wire or None


@dataclass
class RunOptions:
    """Options shared by every product."""

    app: str
    device: Optional[str] = None
    platform_name: Optional[str] = None
    version: Optional[str] = None
    name: Optional[str] = None
    build: Optional[str] = None
    orientation: Optional[str] = None
    locale: Optional[str] = None
    time_zone: Optional[str] = None
    throttle_network: Optional[str] = None
    geo_country_code: Optional[str] = None
    real_device: bool = False
    quiet: bool = False
    run_async: bool = False
    report: Optional[str] = None
    report_output_dir: Optional[str] = None
    download_artifacts: Optional[str] = None
    artifacts_output_dir: Optional[str] = None
    ignore_checksum_check: bool = False
    metadata: Optional[RunMetadata] = None

    @property
    def label(self) -> Optional[str]:
        """Name used for grouping output such as the artifact zip."""
        return self.build or self.name

    def validate(self) -> None:
        """Checks that need no network access."""
        if not self.app:
            raise ValidationError("app option is required")
        if not os.path.isfile(self.app) or not os.access(self.app, os.R_OK):
            raise ValidationError(f"Provided app path does not exist {self.app}")

        if self.platform_name and self.platform_name not in (
            Platform.ANDROID,
            Platform.IOS,
        ):
            raise ValidationError(
                f"Invalid platform {self.platform_name}, expected Android or iOS"
            )
        if self.orientation and self.orientation not in ORIENTATIONS:
            raise ValidationError(
                f"Invalid orientation {self.orientation}, expected PORTRAIT or LANDSCAPE"
            )

        if self.report:
            if self.report not in ReportFormat.EXTENSIONS:
                raise ValidationError(
                    f"Invalid report format {self.report}, expected html or junit"
                )
            if not self.report_output_dir:
                raise ValidationError(
                    "--report-output-dir is required when --report is used"
                )
            ensure_output_directory(self.report_output_dir)

        if self.download_artifacts and self.download_artifacts not in (
            ArtifactDownloadMode.ALL,
            ArtifactDownloadMode.FAILED,
        ):
            raise ValidationError(
                f"Invalid artifact download mode {self.download_artifacts}"
            )
        if self.download_artifacts and self.artifacts_output_dir:
            ensure_output_directory(self.artifacts_output_dir)

    def metadata_wire(self) -> Optional[Dict[str, str]]:
        return self.metadata.to_wire() if self.metadata else None


@dataclass
class MaestroOptions(RunOptions):
    """Options for Maestro flows."""

    flows: List[str] = field(default_factory=list)
    include_tags: List[str] = field(default_factory=list)
    exclude_tags: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    maestro_version: Optional[str] = None
    shard_split: Optional[int] = None

    def validate(self) -> None:
        super().validate()
        if not self.flows:
            raise ValidationError("flows option is required")
        if self.shard_split is not None and self.shard_split < 1:
            raise ValidationError("--shard-split must be at least 1")

    def capabilities(self, detected_platform: Optional[str] = None) -> Dict[str, Any]:
        """Capabilities for the single requested device.

        Platform: explicit option, then the sniffed platform, then the
        extension of the app.
        """
        platform_name = (
            self.platform_name or detected_platform or platform_from_extension(self.app)
        )
        caps = {
            "deviceName": self.device or WILDCARD_DEVICE,
            "platformName": platform_name,
        }
        caps.update(
            _compact(
                {
                    "version": self.version,
                    "name": self.name,
                    "build": self.build,
                    "orientation": self.orientation,
                    "locale": self.locale,
                    "timeZone": self.time_zone,
                    "throttleNetwork": self.throttle_network,
                    "geoCountryCode": self.geo_country_code,
                    "realDevice": "true" if self.real_device else None,
                }
            )
        )
        return caps

    def maestro_options(self) -> Optional[Dict[str, Any]]:
        opts = _compact(
            {
                "includeTags": self.include_tags,
                "excludeTags": self.exclude_tags,
                "env": self.env,
                "version": self.maestro_version,
            }
        )
        return opts or None


@dataclass
class _InstrumentedOptions(RunOptions):
    """Options for products that upload a separate test binary."""

    test_app: str = ""
    language: Optional[str] = None
    tablet_only: bool = False
    phone_only: bool = False

    def validate(self) -> None:
        super().validate()
        if not self.test_app:
            raise ValidationError("test app option is required")
        if not os.path.isfile(self.test_app) or not os.access(self.test_app, os.R_OK):
            raise ValidationError(
                f"Provided test app path does not exist {self.test_app}"
            )
        if self.tablet_only and self.phone_only:
            raise ValidationError("--tablet-only and --phone-only are exclusive")

    def _capabilities(self, platform_name: str) -> Dict[str, Any]:
        caps = {
            "platformName": platform_name,
            "deviceName": self.device or WILDCARD_DEVICE,
        }
        caps.update(
            _compact(
                {
                    "version": self.version,
                    "realDevice": "true" if self.real_device else None,
                    "tabletOnly": self.tablet_only,
                    "phoneOnly": self.phone_only,
                    "name": self.name,
                    "build": self.build,
                }
            )
        )
        return caps


@dataclass
class EspressoOptions(_InstrumentedOptions):
    """Options for Espresso instrumentation tests."""

    test_runner: Optional[str] = None
    classes: List[str] = field(default_factory=list)
    not_classes: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    not_packages: List[str] = field(default_factory=list)
    annotations: List[str] = field(default_factory=list)
    not_annotations: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)

    def validate(self) -> None:
        super().validate()
        invalid = [s for s in self.sizes if s not in TEST_SIZES]
        if invalid:
            raise ValidationError(
                f"Invalid test size {', '.join(invalid)}, expected small, medium or large"
            )

    def capabilities(self, detected_platform: Optional[str] = None) -> Dict[str, Any]:
        return self._capabilities(Platform.ANDROID)

    def espresso_options(self) -> Optional[Dict[str, Any]]:
        opts = _compact(
            {
                "testRunner": self.test_runner,
                "class": self.classes,
                "notClass": self.not_classes,
                "package": self.packages,
                "notPackage": self.not_packages,
                "annotation": self.annotations,
                "notAnnotation": self.not_annotations,
                "size": self.sizes,
                "orientation": self.orientation,
                "language": self.language,
                "locale": self.locale,
                "timeZone": self.time_zone,
                "geoLocation": self.geo_country_code,
                "throttle_network": self.throttle_network,
            }
        )
        return opts or None


@dataclass
class XCUITestOptions(_InstrumentedOptions):
    """Options for XCUITest bundles."""

    def capabilities(self, detected_platform: Optional[str] = None) -> Dict[str, Any]:
        return self._capabilities(Platform.IOS)

    def xcuitest_options(self) -> Optional[Dict[str, Any]]:
        opts = _compact(
            {
                "orientation": self.orientation,
                "language": self.language,
                "locale": self.locale,
                "timeZone": self.time_zone,
                "geoLocation": self.geo_country_code,
                "throttle_network": self.throttle_network,
            }
        )
        return opts or None


def ensure_output_directory(path: str) -> None:
    """Create ``path`` if missing; fail if it exists as something else."""
    if os.path.exists(path):
        if not os.path.isdir(path):
            raise ValidationError(f"Output path exists but is not a directory: {path}")
        return
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as exc:
        raise ValidationError(
            f"Failed to create output directory: {path}", cause=exc
        ) from exc
