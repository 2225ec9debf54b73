"""API middleware: CORS, security headers, checkpoint rate limiting, request logging."""

from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from handoff.api.schemas.common import ErrorResponse
from handoff.core.context import set_correlation_id
from handoff.repositories.fulfillment_repository import FulfillmentError

logger = logging.getLogger(__name__)

# ── In-memory rate limit store (per-process) ────────────────────────

_rate_buckets: dict[str, list[float]] = defaultdict(list)

RATE_LIMIT_WINDOW = 60  # seconds
MAX_RATE_BUCKETS = 10_000  # Sweep expired buckets beyond this many keys


def _check_rate_limit(key: str, limit: int) -> tuple[bool, int]:
    """Return (allowed, remaining) for a given key and per-minute limit."""
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW
    if len(_rate_buckets) > MAX_RATE_BUCKETS:
        _sweep_rate_buckets(window_start)
    _rate_buckets[key] = bucket = [t for t in _rate_buckets[key] if t > window_start]
    if len(bucket) >= limit:
        return False, 0
    bucket.append(now)
    return True, limit - len(bucket)


def _sweep_rate_buckets(window_start: float) -> None:
    for key in [k for k, bucket in _rate_buckets.items() if not bucket or bucket[-1] <= window_start]:
        del _rate_buckets[key]


def _get_client_key(request: Request, settings: Any) -> str:
    """Peer address; the first X-Forwarded-For hop only when proxies are trusted."""
    if settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_checkpoint_attempt(request: Request) -> bool:
    path = request.url.path
    return request.method == "POST" and (
        path.startswith("/api/v1/checkpoints/") or path.endswith("/collect")
    )


def _collect_target(request: Request) -> str | None:
    """Fulfillment id targeted by a collection attempt, trimmed and lowercased."""
    path = request.url.path
    if not path.endswith("/collect"):
        return None
    return path[: -len("/collect")].rsplit("/", 1)[-1].strip().lower()


# ── Security Headers ───────────────────────────────────────────────

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}

HSTS_HEADER = "max-age=31536000; includeSubDomains"


def setup_middleware(app: FastAPI) -> None:
    """Attach all middleware and error handlers to the FastAPI app."""
    settings = getattr(app.state, "settings", None)
    is_prod = settings.is_production if settings else False

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(FulfillmentError)
    async def _fulfillment_error(request: Request, exc: FulfillmentError) -> JSONResponse:
        return rfc7807_error_response(
            status=exc.status_code,
            title="Fulfillment error",
            detail=exc.detail,
            instance=request.url.path,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = rfc7807_error_response(
            status=exc.status_code,
            title=HTTPStatus(exc.status_code).phrase,
            detail=str(exc.detail),
            instance=request.url.path,
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.middleware("http")
    async def security_and_logging(  # type: ignore[no-untyped-def]
        request: Request, call_next
    ):
        correlation_id = request.headers.get("x-correlation-id", uuid.uuid4().hex[:12])
        set_correlation_id(correlation_id)

        limited = _apply_rate_limit(request, settings)
        if limited is not None:
            return limited

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{elapsed:.1f}ms"
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        if is_prod:
            response.headers["Strict-Transport-Security"] = HSTS_HEADER

        logger.info(
            "[%s] %s %s → %d (%.1fms)",
            correlation_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
        )
        return response


def _get_cors_origins(settings: Any) -> list[str]:
    if settings is None:
        return ["*"]
    return list(settings.cors_origin_list)


def _apply_rate_limit(request: Request, settings: Any) -> JSONResponse | None:
    """Throttle checkpoint attempts to slow secret guessing.

    Each client gets ``rate_limit_checkpoint`` attempts per window. Collection
    attempts also count against the target fulfillment, whichever client
    sends them, so rotating addresses does not buy more guesses.
    """
    if settings is None or settings.is_testing or not _is_checkpoint_attempt(request):
        return None

    client = _get_client_key(request, settings)
    limit = settings.rate_limit_checkpoint
    allowed, _ = _check_rate_limit(f"checkpoint:{client}", limit)
    if not allowed:
        logger.warning("Checkpoint rate limit exceeded for %s", client)
        return _too_many_requests(limit, f"Rate limit exceeded. Max {limit} checkpoint attempts per minute.")

    target = _collect_target(request)
    if target is not None:
        limit = settings.rate_limit_collect_per_fulfillment
        allowed, _ = _check_rate_limit(f"collect:{target}", limit)
        if not allowed:
            logger.warning("Collection rate limit exceeded for fulfillment %s", target)
            return _too_many_requests(
                limit, f"Rate limit exceeded. Max {limit} collection attempts per fulfillment per minute."
            )
    return None


def _too_many_requests(limit: int, detail: str) -> JSONResponse:
    response = rfc7807_error_response(status=429, title="Too Many Requests", detail=detail)
    response.headers["Retry-After"] = str(RATE_LIMIT_WINDOW)
    response.headers["X-RateLimit-Limit"] = str(limit)
    response.headers["X-RateLimit-Remaining"] = "0"
    return response


def rfc7807_error_response(
    status: int,
    title: str,
    detail: str,
    instance: str | None = None,
) -> JSONResponse:
    """Build an RFC 7807 Problem Details JSON response."""
    body = ErrorResponse(title=title, status=status, detail=detail, instance=instance)
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))
