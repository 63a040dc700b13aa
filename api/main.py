"""
api/main.py -- FastAPI application for the storefront backend.

Run with:  uvicorn asgi:app --reload

A request passes, in order: TrustedHostMiddleware (Host header allow-list),
CORSMiddleware (browser origins from CORS_ORIGINS), SlowAPIMiddleware
(per-route limits declared with api.limiter), then the request logger and the
route itself.

At startup the lifespan opens both stores and builds the token issuer, the
mailer and the three handler objects on app.state; at shutdown it disposes
the engines.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.cart import router as cart_router
from api.routes.v1.items import router as items_router
from auth.store import UserStore
from auth.tokens import build_token_issuer
from core.config import get_settings
from core.errors import StorefrontError
from core.mailer import build_mailer
from mutations.entities import EntityMutations
from mutations.queries import GuardedQueries
from mutations.session import SessionMutations
from shop.store import ShopStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storefront.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


def wire_state(app: FastAPI, user_store: UserStore, shop_store: ShopStore, mailer=None) -> None:
    """Attach stores and handler objects to app.state.

    Split out of lifespan so tests can wire in-memory stores and a fake
    mailer without duplicating the handler construction.
    """
    issuer = build_token_issuer(_settings)
    app.state.user_store = user_store
    app.state.shop_store = shop_store
    app.state.token_issuer = issuer
    app.state.mailer = mailer if mailer is not None else build_mailer(_settings)
    app.state.session_mutations = SessionMutations(
        users=user_store,
        issuer=issuer,
        mailer=app.state.mailer,
        frontend_url=_settings.frontend_url,
        reset_ttl_seconds=_settings.reset_token_ttl_seconds,
        secure_cookies=_settings.secure_cookies,
    )
    app.state.entity_mutations = EntityMutations(users=user_store, shop=shop_store)
    app.state.queries = GuardedQueries(users=user_store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores for the life of the server process."""
    logger.info("Storefront API starting up")
    wire_state(app, UserStore(_settings.database_url), ShopStore(_settings.database_url))
    logger.info("Stores initialized (%s)", app.state.user_store.engine.url.render_as_string(hide_password=True))

    yield

    app.state.shop_store.close()
    app.state.user_store.close()
    logger.info("Storefront API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront API",
    description="Accounts, sessions, catalogue items and carts for the storefront.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the last registration is the
# outermost layer. Registered innermost first: SlowAPI, CORS, TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # the session travels as a cookie
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(items_router, prefix="/api/v1", tags=["Items"])
app.include_router(cart_router, prefix="/api/v1", tags=["Cart"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API as {"error": {"code", "message", "detail"}},
# so clients branch on error.code and never on the response shape.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Domain errors carry their own status and code."""
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _error_response(429, "rate_limited", "Too many attempts. Try again shortly.", detail=str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query params share the domain validation_error code."""
    return _error_response(422, "validation_error", "The request was not valid.", detail=str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap router 404s and 405s along with route-raised HTTPException (a subclass).

    Routes that already raise with a {"code", "message"} dict detail keep it.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    # 405 carries an Allow header.
    response.headers.update(exc.headers or {})
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for bugs. The traceback is logged, the client gets a generic 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "Something went wrong on our side.")


# ---------------------------------------------------------------------------
# Health endpoint (not rate limited)
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=VERSION)
