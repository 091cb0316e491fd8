"""
Error types and error logging for linklens.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class LinkLensError(Exception):
    """Base class for linklens errors."""


class ValidationError(LinkLensError, ValueError):
    """Input rejected before any remote call (bad URL, empty name)."""


class TransportError(LinkLensError):
    """A remote call failed (network, storage, or service error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(TransportError):
    """The remote side rejected our credentials (session expired)."""

    def __init__(self, message: str = "Session expired", status_code: int = 401):
        super().__init__(message, status_code)


class StaleResultError(LinkLensError):
    """An async result arrived after its context stopped being valid."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting LINKLENS_STORE_PATH."""
    store = os.environ.get("LINKLENS_STORE_PATH")
    if store:
        return Path(store) / "linklens-errors.log"
    return Path.home() / ".linklens" / "linklens-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
