"""
Exception types for the table monitor.

Every failure that ends a poll cycle is a MonitorError subclass, so the
orchestrator can turn it into a failed RunOutcome without catching
programming errors.
"""

from typing import Optional, Dict, Any


class MonitorError(Exception):
    """Base exception for all table monitor errors."""

    error_code: str = "MON000"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class ConfigInvalid(MonitorError):
    """
    Raised when required configuration is missing or malformed.

    This is a startup failure: the cycle never begins.
    """

    error_code = "CFG001"

    def __init__(self, message: str, keys: Optional[list] = None):
        details = {"keys": ",".join(keys)} if keys else None
        super().__init__(message, details)
        self.keys = list(keys or [])


class SecretUnavailable(MonitorError):
    """Raised when the monitoring credential cannot be fetched or decoded."""

    error_code = "SEC001"


class SourceUnavailable(MonitorError):
    """Raised on connectivity or query failures against the database."""

    error_code = "SRC001"


class RunInProgress(SourceUnavailable):
    """Raised when another run already holds the lock for a source."""

    error_code = "SRC002"


class SinkWriteFailed(MonitorError):
    """Raised when an audit record cannot be appended."""

    error_code = "SNK001"


class WatermarkCommitFailed(MonitorError):
    """
    Raised when the final watermark write fails.

    Rows of the cycle have already been emitted and will be emitted again
    by the next run.
    """

    error_code = "WMK001"
