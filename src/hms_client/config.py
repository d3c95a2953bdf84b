"""
Client configuration.

Defaults are module-level constants; every one of them can be overridden
from the environment via load_settings().
"""

import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .auth.permissions import AppKind


# Defaults - override with HMS_* environment variables
DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_SESSION_FILE = Path.home() / ".hms_session.json"
DEFAULT_HTTP_TIMEOUT = 30.0  # seconds
DEFAULT_APP_KIND = AppKind.CUSTOMER_SITE


@dataclass(frozen=True)
class ClientSettings:
    """
    Runtime settings for the session client.

    Attributes:
        api_url: Base URL of the HMS REST backend (no trailing slash)
        session_file: JSON file backing the TokenStore
        http_timeout: Total timeout per HTTP request in seconds
        app_kind: Which front-end is running (decides role admission)
    """
    api_url: str = DEFAULT_API_URL
    session_file: Path = DEFAULT_SESSION_FILE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    app_kind: AppKind = DEFAULT_APP_KIND


def load_settings() -> ClientSettings:
    """Build settings from HMS_API_URL, HMS_SESSION_FILE, HMS_HTTP_TIMEOUT, HMS_APP_KIND."""
    timeout_raw = os.getenv("HMS_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT))
    try:
        timeout = float(timeout_raw)
    except ValueError:
        logger.warning(f"Ignoring invalid HMS_HTTP_TIMEOUT={timeout_raw!r}")
        timeout = DEFAULT_HTTP_TIMEOUT

    app_raw = os.getenv("HMS_APP_KIND", DEFAULT_APP_KIND.value)
    try:
        app_kind = AppKind(app_raw.strip().lower())
    except ValueError:
        logger.warning(f"Ignoring unknown HMS_APP_KIND={app_raw!r}")
        app_kind = DEFAULT_APP_KIND

    return ClientSettings(
        api_url=os.getenv("HMS_API_URL", DEFAULT_API_URL).rstrip("/"),
        session_file=Path(os.getenv("HMS_SESSION_FILE", str(DEFAULT_SESSION_FILE))).expanduser(),
        http_timeout=timeout,
        app_kind=app_kind,
    )
