# Tasks package - Celery background tasks
from .analysis import (
    analyze_website,
    cleanup_cache,
    CallbackTask,
)

__all__ = [
    "analyze_website",
    "cleanup_cache",
    "CallbackTask",
]
