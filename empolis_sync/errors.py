"""
Error types and error logging for empolis-sync.

The batch run distinguishes fatal errors (authentication, service outage)
from per-record errors, which are counted and reported but never stop the
batch. Full stack traces of fatal errors go to a log file while the CLI
shows a clean message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional


class EmpolisSyncError(Exception):
    """Base class for all errors raised by empolis-sync."""


class AuthError(EmpolisSyncError):
    """Token issuance failed, or credentials are missing."""


class ServiceUnavailable(EmpolisSyncError):
    """One or more Empolis services report not operational."""

    def __init__(self, down: Iterable[str]):
        self.down = tuple(down)
        names = ", ".join(s.upper() for s in self.down)
        super().__init__(f"Empolis service(s) down: {names}")


class ValidationError(EmpolisSyncError):
    """A request was rejected before it reached the network."""


class ApiError(EmpolisSyncError):
    """
    Transport or HTTP failure talking to the Empolis API.

    Attributes:
        status: HTTP status code, None for timeouts and connection errors
        message: Error message from the response body when available
    """

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        if status is None:
            super().__init__(message)
        else:
            super().__init__(f"HTTP {status}: {message}")


class NotFound(ApiError):
    """The requested document does not exist."""

    def __init__(self, message: str):
        super().__init__(404, message)


def _error_log_path(log_dir: Optional[Path] = None) -> Path:
    """Resolve error log path: log_dir, else EMPOLIS_SYNC_LOG_DIR, else ~/.empolis-sync."""
    if log_dir is not None:
        return Path(log_dir) / "errors.log"
    log_dir = os.environ.get("EMPOLIS_SYNC_LOG_DIR")
    if log_dir:
        return Path(log_dir) / "errors.log"
    return Path.home() / ".empolis-sync" / "errors.log"


def log_exception(exc: Exception, context: str = "", log_dir: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        log_dir: Directory for errors.log (defaults to the environment or home)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(log_dir)
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
        pass  # Can't write error log, don't crash over it
    return log_path
