"""Custom middleware for the API."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)

# Polled by load balancers; only logged at debug level
_QUIET_PATHS = frozenset({"/v1/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its id and, for run endpoints, the deployment id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or f"req-{time.time_ns():x}"

        log = logger.bind(
            method=request.method,
            path=request.url.path,
            request_id=request_id,
        )
        deployment_id = _deployment_id(request.url.path)
        if deployment_id:
            log = log.bind(deployment_id=deployment_id)

        quiet = request.url.path in _QUIET_PATHS
        (log.debug if quiet else log.info)("request.started")

        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        if response.status_code >= 500:
            log.warning("request.failed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            (log.debug if quiet else log.info)(
                "request.completed", status_code=response.status_code, duration_ms=duration_ms
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response


def _deployment_id(path: str) -> str | None:
    """Extract the id from /v1/deployments/<id>[/...] paths."""
    parts = path.strip("/").split("/")
    if len(parts) >= 3 and parts[1] == "deployments":
        return parts[2]
    return None
