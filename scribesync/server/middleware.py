"""Request middleware: JSON error responses and access logging."""

import logging
import time
from typing import Callable

from aiohttp import web

from ..errors import ScribeSyncError

logger = logging.getLogger(__name__)


def failure_response(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "message": message}, status=status)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Log method, path, status and timing of every request."""
    start_time = time.perf_counter()
    response = await handler(request)
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.debug(f"{request.method} {request.path} -> {response.status} ({elapsed_ms:.1f} ms)")
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Convert every failure into a ``{success: false, message}`` body.

    Ledger errors keep their own status code, aiohttp HTTP exceptions keep
    theirs, anything else becomes a 500 so one bad request never takes the
    server down.
    """
    try:
        return await handler(request)
    except ScribeSyncError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        else:
            logger.warning(f"{request.method} {request.path} rejected ({e.status}): {e.message}")
        return failure_response(e.message, e.status)
    except web.HTTPException as e:
        return failure_response(e.reason or e.text or "HTTP error", e.status)
    except Exception as e:
        logger.error(f"Unexpected error handling {request.method} {request.path}: {e}", exc_info=True)
        return failure_response("Internal server error", 500)
