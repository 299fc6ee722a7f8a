"""Constants declared for statuses, platforms and content types."""


class RunStatus:
    """Statuses reported by the server for a single run."""

    WAITING = "WAITING"
    READY = "READY"
    DONE = "DONE"
    FAILED = "FAILED"

    TERMINAL = frozenset({DONE, FAILED})
    TRANSIENT = frozenset({WAITING, READY})


class Platform:
    """Platform names accepted in capabilities."""

    ANDROID = "Android"
    IOS = "iOS"


class ContentType:
    """Content types used for multipart uploads."""

    APK = "application/vnd.android.package-archive"
    OCTET_STREAM = "application/octet-stream"
    ZIP = "application/zip"

    @staticmethod
    def for_app(path: str) -> str:
        """Pick the upload content type from the app's extension."""
        ext = path.lower().rsplit(".", 1)[-1] if "." in path else ""
        if ext in ("apk", "apks"):
            return ContentType.APK
        if ext == "zip":
            return ContentType.ZIP
        return ContentType.OCTET_STREAM


class ReportFormat:
    """Report formats the server can render."""

    HTML = "html"
    JUNIT = "junit"

    EXTENSIONS = {HTML: "html", JUNIT: "xml"}
    ROUTES = {HTML: "html_report", JUNIT: "junit_report"}


class ArtifactDownloadMode:
    """Which runs get their artifacts downloaded."""

    ALL = "all"
    FAILED = "failed"


class Product:
    """Products exposed under the app-automate API."""

    MAESTRO = "maestro"
    ESPRESSO = "espresso"
    XCUITEST = "xcuitest"


WILDCARD_DEVICE = "*"
USER_AGENT_PREFIX = "TestingBot-CTL-"
VERSION_HEADER = "X-Testingbotctl-Version"
CREDITS_DEPLETED_MESSAGE = (
    "Your TestingBot credits are depleted. "
    "Please upgrade your plan at https://testingbot.com/pricing"
)
