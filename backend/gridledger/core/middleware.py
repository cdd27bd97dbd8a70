from __future__ import annotations

import logging

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class GridPayloadLimitMiddleware(BaseHTTPMiddleware):
    """Rejects grid uploads whose declared body size exceeds the configured ceiling."""

    def __init__(self, app, *, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max(1, max_bytes)

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        declared = request.headers.get("content-length")
        if not declared:
            return await call_next(request)
        try:
            size = int(declared)
        except ValueError:
            size = 0
        if size <= self._max_bytes:
            return await call_next(request)

        logger.warning(
            "Rejected oversized payload | path=%s | bytes=%d | limit=%d",
            request.url.path,
            size,
            self._max_bytes,
        )
        return JSONResponse(
            status_code=413,
            content={
                "message": f"Request body too large ({size} bytes). Maximum allowed is {self._max_bytes} bytes.",
                "details": {"limit": self._max_bytes},
            },
        )
