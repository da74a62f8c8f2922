"""Request latency logging middleware."""

import logging
import re
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds)
SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

HEALTH_PATHS = ("/health", "/health/ready")

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def normalize_path(path: str) -> str:
    """Replace UUID path segments with ``{id}`` so log lines group by route."""
    return _UUID_RE.sub("{id}", path)


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, route, status and latency of every request.

    The query string is never logged: it may carry a magic link token.
    Slow requests are escalated to warning, very slow ones and 5xx to error.
    """
    start_time = time.perf_counter()
    method = request.method
    path = request.url.path
    is_health_check = path in HEALTH_PATHS

    response = None
    error_occurred = False

    try:
        response = await call_next(request)
        return response
    except Exception:
        error_occurred = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        log_msg = "%s %s - %d - %.2fms"
        args = (method, normalize_path(path), status_code, latency_ms)

        if is_health_check:
            if latency_ms > 100:
                logger.debug(log_msg, *args)
        elif error_occurred or status_code >= 500:
            logger.error(log_msg, *args)
        elif latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
            logger.error("VERY SLOW REQUEST: " + log_msg, *args)
        elif latency_ms > SLOW_REQUEST_THRESHOLD_MS:
            logger.warning("SLOW REQUEST: " + log_msg, *args)
        elif status_code >= 400:
            logger.warning(log_msg, *args)
        else:
            logger.info(log_msg, *args)
