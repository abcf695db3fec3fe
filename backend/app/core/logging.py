"""
Logging setup and per-request access logging.
"""

import logging
import time

from fastapi import Request

from app.config import Settings

logger = logging.getLogger("app.access")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure the root logger once from LOG_LEVEL."""
    level = logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


async def log_requests(request: Request, call_next):
    """HTTP middleware: one line per request (method, path, status, duration)."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms"
    )
    return response
