# API package - FastAPI components
from .models import (
    AnalyzeRequest,
    AnalyzeResponse,
    EmailRequest,
    EmailResponse,
    ScreenshotRequest,
    ScreenshotResponse,
)
from .routes import router

__all__ = [
    # Models
    "AnalyzeRequest",
    "AnalyzeResponse",
    "EmailRequest",
    "EmailResponse",
    "ScreenshotRequest",
    "ScreenshotResponse",
    # Router
    "router",
]
