"""TestingBot app-automate client: upload, run and collect mobile UI tests."""

from testingbot.core import __version__

__all__ = ["__version__"]
