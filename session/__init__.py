# Session package - client-facing analysis state
from .backends import AnalysisBackend, HttpBackend, LocalBackend
from .email import EmailCaptureCoordinator, EmailCaptureStatus
from .state import AnalysisSession, SessionController, SessionState

__all__ = [
    "AnalysisBackend",
    "HttpBackend",
    "LocalBackend",
    "EmailCaptureCoordinator",
    "EmailCaptureStatus",
    "AnalysisSession",
    "SessionController",
    "SessionState",
]
