"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two places a session token can come from, checked in priority order:
  1. "token" cookie -- set by signup / signin / reset-password.
  2. Authorization: Bearer <token> header -- for non-browser API clients.

try_get_current_user() is the soft variant (returns None on failure).
get_caller_context() wraps it into the CallerContext every mutation handler
takes, with artifact callbacks bound to the outgoing response.

Layer rule: no imports from shop/ or mutations/.
  auth/dependencies.py may import from fastapi (for Request/Response)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request, Response

from auth.models import User
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, TokenIssuer
from core.context import CallerContext


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the session token to a User. Returns None on any failure.

    Never raises -- handlers that need a caller call ctx.require_user().
    A validly signed token for a deleted user is treated as anonymous.
    """
    token = _extract_token(request)
    if not token:
        return None
    issuer: TokenIssuer = request.app.state.token_issuer
    claims = issuer.verify(token)
    if claims is None:
        return None
    user_store: UserStore = request.app.state.user_store
    return user_store.get_by_id(claims["user_id"])


def get_caller_context(request: Request, response: Response) -> CallerContext:
    """Build the per-request CallerContext.

    Use as a FastAPI dependency:
        @router.post("/items")
        def route(ctx: CallerContext = Depends(get_caller_context)): ...

    Cookies written through the context land on the injected Response, which
    FastAPI merges into whatever the route returns.
    """

    def deliver_artifact(name: str, value: str, options: dict) -> None:
        response.set_cookie(name, value, **options)

    def clear_artifact(name: str) -> None:
        response.delete_cookie(name)

    return CallerContext(
        user=try_get_current_user(request),
        deliver_artifact=deliver_artifact,
        clear_artifact=clear_artifact,
    )
