"""
Error taxonomy for the analysis engine.

Only InvalidURLError and SessionAcquisitionError ever abort a run. Every other
error degrades into a per-analyzer Failed outcome, a cache miss, or a log line.
"""

from enum import Enum
from typing import Optional


class AnalysisError(Exception):
    """Base class for all engine errors"""


class InvalidURLError(AnalysisError, ValueError):
    """Raised when a URL is missing, unparsable, or not http(s)"""

    def __init__(self, message: str = "Invalid URL format", url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class SessionFailureKind(str, Enum):
    REMOTE_UNAVAILABLE = "remote_unavailable"
    LOCAL_LAUNCH_FAILED = "local_launch_failed"
    TIMEOUT = "timeout"


class SessionAcquisitionError(AnalysisError, RuntimeError):
    """
    Raised when no browser session could be acquired.

    The provider never retries; all kinds are retryable by the caller.
    """

    retryable = True

    def __init__(self, kind: SessionFailureKind, message: str):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind


class AnalyzerFailure(AnalysisError):
    """Raised by an analyzer that wants to report a specific failure reason"""

    def __init__(self, kind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason


class CacheUnavailableError(AnalysisError):
    """Raised by cache backends when the store cannot be reached"""


class EmailDispatchError(AnalysisError):
    """Raised by the delivery client when an email lead could not be sent"""
