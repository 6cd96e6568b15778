"""Custom FastAPI middleware for the webhook API."""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from shell_relay.relay import ExecutionRequest


class AuditLoggerMiddleware(BaseHTTPMiddleware):
    """Log one audit record per webhook call, tagged with who ran what where.

    The commands router leaves the slash-command addressing on
    ``request.state``; requests rejected before that point log ``None``.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("shell_relay.api.audit")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.perf_counter() - start
            execution: ExecutionRequest | None = getattr(request.state, "execution", None)
            self.logger.info(
                "api.request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code if response else None,
                    "duration_ms": round(duration * 1000, 3),
                    "channel_id": getattr(request.state, "channel_id", None),
                    "user_id": getattr(request.state, "user_id", None),
                    "dispatched": execution is not None,
                    "command_length": len(execution.command) if execution else None,
                },
            )


__all__ = ["AuditLoggerMiddleware"]
