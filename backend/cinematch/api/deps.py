"""
Shared request plumbing for the API routers.

Long-lived collaborators (catalog client, AI providers, poster cache) live on
`app.state` and are built at startup. Each request gets its own scheduler so
politeness delays are per request.
"""
import asyncio
import logging

from fastapi import HTTPException, Request

from cinematch.core.errors import CineMatchError, InsufficientInput, ProviderNotConfigured, UpstreamUnavailable
from cinematch.services.rate_limit import IntervalScheduler

logger = logging.getLogger(__name__)


def catalog(request: Request):
    return request.app.state.catalog


def providers(request: Request):
    return request.app.state.providers


def poster_cache(request: Request):
    return request.app.state.poster_cache


def sleep(request: Request):
    return getattr(request.app.state, "sleep", asyncio.sleep)


def scheduler(request: Request) -> IntervalScheduler:
    interval = getattr(request.app.state, "catalog_interval", None)
    return IntervalScheduler(interval, sleep=sleep(request))


def to_http_error(exc: CineMatchError) -> HTTPException:
    """Map the error taxonomy onto HTTP status codes."""
    if isinstance(exc, InsufficientInput):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ProviderNotConfigured):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, UpstreamUnavailable):
        logger.error(f"Upstream failure ({exc.service}): {exc}")
        return HTTPException(status_code=502, detail=str(exc))
    logger.error(f"Unhandled CineMatch error: {exc}")
    return HTTPException(status_code=500, detail=str(exc))
