# Core package - Infrastructure components
from .browser import BrowserSessionProvider, get_browser_provider, close_browser_provider
from .errors import (
    AnalysisError,
    InvalidURLError,
    SessionAcquisitionError,
    SessionFailureKind,
)

__all__ = [
    # Browser sessions
    "BrowserSessionProvider",
    "get_browser_provider",
    "close_browser_provider",
    # Errors
    "AnalysisError",
    "InvalidURLError",
    "SessionAcquisitionError",
    "SessionFailureKind",
]
