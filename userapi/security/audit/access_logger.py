from __future__ import annotations

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from userapi.utils.logger import get_logger

logger = get_logger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Only method/path/ip are logged; headers may carry credentials
        client_ip = request.client.host if request.client else None
        path = request.url.path
        method = request.method
        started = time.perf_counter()
        logger.debug("access_start", method=method, path=path, client_ip=client_ip)
        resp = await call_next(request)
        logger.info(
            "access_end",
            method=method,
            path=path,
            status_code=resp.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            client_ip=client_ip,
        )
        return resp
