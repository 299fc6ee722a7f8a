"""Resolve the TestingBot API key and secret for an invocation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

CREDENTIALS_FILE_NAME = ".testingbot"
KEY_ENV_VAR = "TB_KEY"
SECRET_ENV_VAR = "TB_SECRET"

MISSING_CREDENTIALS_MESSAGE = (
    "No TestingBot credentials found. Please authenticate using one of these methods:\n"
    '  1. Run "testingbot login" to authenticate via browser (recommended)\n'
    "  2. Use --api-key and --api-secret options\n"
    "  3. Set TB_KEY and TB_SECRET environment variables\n"
    f"  4. Create ~/{CREDENTIALS_FILE_NAME} file with content: key:secret"
)


@dataclass(frozen=True)
class Credentials:
    """API key and secret, sent as HTTP Basic Auth."""

    user_name: str
    access_key: str

    def __str__(self) -> str:
        return f"{self.user_name}:{'*' * len(self.access_key)}"

    def __repr__(self) -> str:
        return f"Credentials({self})"


def _from_file(path: Path) -> Optional[Credentials]:
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None

    user_name, sep, access_key = content.partition(":")
    if not sep or not user_name or not access_key:
        logger.debug("Ignoring malformed credentials file", path=str(path))
        return None
    return Credentials(user_name.strip(), access_key.strip())


def resolve_credentials(
    api_key: Optional[str] = None,
    api_secret: Optional[str] = None,
    home: Optional[Path] = None,
) -> Optional[Credentials]:
    """Find credentials, highest priority first.

    1. both ``api_key`` and ``api_secret`` given on the command line
    2. ``TB_KEY`` and ``TB_SECRET`` environment variables
    3. ``~/.testingbot`` holding ``key:secret``

    Returns None when no source yields a complete pair.
    """
    if api_key and api_secret:
        return Credentials(api_key, api_secret)

    env_key = os.environ.get(KEY_ENV_VAR)
    env_secret = os.environ.get(SECRET_ENV_VAR)
    if env_key and env_secret:
        return Credentials(env_key, env_secret)

    home = home if home is not None else Path.home()
    return _from_file(home / CREDENTIALS_FILE_NAME)


def save_credentials(credentials: Credentials, home: Optional[Path] = None) -> Path:
    """Write ``key:secret`` to ``~/.testingbot``, readable by the owner only."""
    home = home if home is not None else Path.home()
    path = home / CREDENTIALS_FILE_NAME
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(f"{credentials.user_name}:{credentials.access_key}")
    # an existing file keeps its previous mode
    os.chmod(path, 0o600)
    logger.debug("Saved credentials", path=str(path))
    return path
