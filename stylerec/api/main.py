"""FastAPI application main module.

This module defines the main FastAPI application instance and core API endpoints
for the StyleRec recommendation service. It provides health, status and metrics
endpoints, maps StyleRec exceptions onto JSON error responses, and serves as the
entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stylerec.api.logging_config import RequestLoggingMiddleware
from stylerec.api.metrics import metrics_service
from stylerec.api.routes import interactions, jobs, recommend
from stylerec.api.state import get_service
from stylerec.exceptions import StyleRecException
from stylerec.recommender.jobs import BatchScheduler

# Configure module logger
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the periodic batch jobs for the lifetime of the server."""
    scheduler = BatchScheduler(get_service())
    scheduler.start()
    try:
        yield
    finally:
        scheduler.stop(timeout=5.0)


# Create FastAPI application instance
app = FastAPI(
    title="StyleRec API",
    description="Interaction-driven product recommendation service for a fashion storefront",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(recommend.router)
app.include_router(interactions.router)
app.include_router(jobs.router)


@app.exception_handler(StyleRecException)
async def stylerec_exception_handler(request: Request, exc: StyleRecException) -> JSONResponse:
    """Translate StyleRec exceptions into JSON error responses."""
    if exc.status_code >= 500:
        logger.error(
            exc.message,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
    else:
        logger.warning(
            exc.message,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.

    Returns:
        Dictionary with status key set to "ok".

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def status() -> Dict[str, Any]:
    """Report ledger, similarity store and cache sizes."""
    service = get_service()
    counts = service.status()
    return {
        "status": "ok",
        "similarities_loaded": bool(
            counts["user_similarity_edges"] or counts["product_similarity_edges"]
        ),
        **counts,
    }


@app.get("/metrics")
def metrics() -> Dict[str, Any]:
    """Serving metrics: request counts, cache hit ratio and latency."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    from stylerec.api.logging_config import setup_logging
    from stylerec.config import RecommenderSettings

    setup_logging(RecommenderSettings.from_env().log_level)

    uvicorn.run(
        "stylerec.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
