"""
FastAPI plumbing shared by every service: error rendering, correlation ids,
and the health / usage endpoints polled by the autoscaler.
"""

import logging

import psutil
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import ServiceError
from .log import correlation_id, generate_correlation_id

logger = logging.getLogger(__name__)

_process = psutil.Process()


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def install(app: FastAPI, service_name: str) -> None:
    """Attach error handlers, correlation middleware and ops endpoints."""
    app.add_exception_handler(ServiceError, _service_error_handler)

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        cid = request.headers.get("X-Correlation-Id") or generate_correlation_id()
        token = correlation_id.set(cid)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)
        response.headers["X-Correlation-Id"] = cid
        return response

    app.include_router(ops_router(service_name))


def ops_router(service_name: str) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health():
        return {"status": "ok", "service": service_name}

    @router.get("/usage")
    async def usage():
        """CPU and memory of this process, read by the autoscaler."""
        return {
            "service": service_name,
            "cpu_percent": _process.cpu_percent(interval=None),
            "memory_mb": _process.memory_info().rss / (1024 * 1024),
        }

    return router
