"""
api/routes/v1/auth.py -- Session and account management REST endpoints.

Routes:
  POST /api/v1/auth/signup               -- create account; sets "token" cookie
  POST /api/v1/auth/signin               -- password signin; sets "token" cookie
  POST /api/v1/auth/signout              -- clears cookie; 200
  POST /api/v1/auth/request-reset        -- email a password reset link
  POST /api/v1/auth/reset-password       -- spend reset token; sets "token" cookie
  GET  /api/v1/auth/me                   -- current user, or null when anonymous
  GET  /api/v1/users                     -- list users (ADMIN / PERMISSIONUPDATE)
  PUT  /api/v1/users/{id}/permissions    -- replace permissions (ADMIN / PERMISSIONUPDATE)

Security:
  signin and request-reset are rate-limited per IP (SIGNIN_RATE_LIMIT).
  Responses that carry a fresh session cookie are marked Cache-Control: no-store.
  All authorization decisions are made in mutations/, not here.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    MessageResponse,
    PermissionsUpdate,
    RequestResetRequest,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    UserResponse,
    project,
)
from auth.dependencies import get_caller_context
from core.config import get_settings
from core.context import CallerContext
from mutations.entities import EntityMutations
from mutations.queries import GuardedQueries
from mutations.session import SessionMutations

router = APIRouter()


def _signin_limit() -> str:
    return get_settings().signin_rate_limit


def _session(request: Request) -> SessionMutations:
    return request.app.state.session_mutations


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    ctx: CallerContext = Depends(get_caller_context),
) -> UserResponse:
    """Create a USER account and sign it in."""
    user = _session(request).signup(ctx, body.email, body.password, name=body.name)
    response.headers["Cache-Control"] = "no-store"
    return UserResponse.from_user(user)


@limiter.limit(_signin_limit)
@router.post("/auth/signin", response_model=UserResponse)
def signin(
    request: Request,
    response: Response,
    body: SigninRequest,
    ctx: CallerContext = Depends(get_caller_context),
) -> UserResponse:
    """Authenticate with email and password; set the session cookie."""
    user = _session(request).signin(ctx, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return UserResponse.from_user(user)


@router.post("/auth/signout", response_model=MessageResponse)
def signout(request: Request, ctx: CallerContext = Depends(get_caller_context)) -> MessageResponse:
    """Clear the session cookie. Always succeeds."""
    return MessageResponse(**_session(request).signout(ctx))


@limiter.limit(_signin_limit)
@router.post("/auth/request-reset", response_model=MessageResponse)
def request_reset(
    request: Request,
    body: RequestResetRequest,
    ctx: CallerContext = Depends(get_caller_context),
) -> MessageResponse:
    """Email a one-hour password reset link to the account owner."""
    return MessageResponse(**_session(request).request_reset(ctx, body.email))


@router.post("/auth/reset-password", response_model=UserResponse)
def reset_password(
    request: Request,
    response: Response,
    body: ResetPasswordRequest,
    ctx: CallerContext = Depends(get_caller_context),
) -> UserResponse:
    """Spend a reset token, set the new password and sign the user in."""
    user = _session(request).reset_password(ctx, body.reset_token, body.password, body.confirm_password)
    response.headers["Cache-Control"] = "no-store"
    return UserResponse.from_user(user)


@router.get("/auth/me")
def me(
    request: Request,
    fields: Optional[str] = None,
    ctx: CallerContext = Depends(get_caller_context),
) -> Optional[dict]:
    """Return the current user, or null for anonymous callers."""
    queries: GuardedQueries = request.app.state.queries
    user = queries.me(ctx)
    if user is None:
        return None
    return project(UserResponse.from_user(user).model_dump(), fields)


# ---------------------------------------------------------------------------
# User management (ADMIN / PERMISSIONUPDATE)
# ---------------------------------------------------------------------------


@router.get("/users")
def list_users(
    request: Request,
    fields: Optional[str] = None,
    ctx: CallerContext = Depends(get_caller_context),
) -> list[dict]:
    """List all user accounts."""
    queries: GuardedQueries = request.app.state.queries
    return [project(UserResponse.from_user(u).model_dump(), fields) for u in queries.users_list(ctx)]


@router.put("/users/{user_id}/permissions", response_model=UserResponse)
def update_permissions(
    request: Request,
    user_id: int,
    body: PermissionsUpdate,
    ctx: CallerContext = Depends(get_caller_context),
) -> UserResponse:
    """Replace a user's permission set wholesale."""
    entities: EntityMutations = request.app.state.entity_mutations
    user = entities.update_permissions(ctx, user_id, body.permissions)
    return UserResponse.from_user(user)
