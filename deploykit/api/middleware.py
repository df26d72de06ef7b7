"""Request context middleware for the dashboard API."""

import re
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from deploykit.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
STAGE_PATH = re.compile(r"^/v1/stages/(?P<stage>[^/]+)")


def stage_from_path(path: str) -> str | None:
    """Return the stage segment of a ``/v1/stages/<stage>/...`` path."""
    match = STAGE_PATH.match(path)
    return match.group("stage") if match else None


class DeployContextMiddleware(BaseHTTPMiddleware):
    """Binds the request id and target stage to every log line of a request.

    Deployments started through the API log from inside the pipeline, so the
    ids are bound as structlog context variables rather than passed along.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        context = {"request_id": request_id}
        stage = stage_from_path(request.url.path)
        if stage:
            context["stage"] = stage

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            level = logger.warning if response.status_code >= 400 else logger.info
            level(
                "api.request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=elapsed_ms,
            )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
