"""
Logging setup shared by the API, Celery workers and the CLI
"""

import logging

from config import settings

_configured = False


def setup_logging(level: str = None):
    """Configure root logging once from LOG_LEVEL"""
    global _configured

    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Playwright and httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    _configured = True
