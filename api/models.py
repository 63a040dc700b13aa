"""
API request and response models for the storefront REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
shop/models.py, which own the internal domain representation. Route handlers
map between the two.

Response models never expose hashed_password or reset-token fields.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Permission, User
from shop.models import CartItem, Item

# ---------------------------------------------------------------------------
# Field projection
# ---------------------------------------------------------------------------


def project(payload: dict, fields: Optional[str]) -> dict:
    """Trim a response payload to the comma-separated keys in fields.

    Handlers always return whole entities; clients that want less pass
    ?fields=id,title. Unknown names are ignored. None or "" returns payload
    unchanged.
    """
    if not fields:
        return payload
    wanted = {f.strip() for f in fields.split(",") if f.strip()}
    return {k: v for k, v in payload.items() if k in wanted}


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=72)
    name: str = Field(default="", max_length=255)


class SigninRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RequestResetRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password.

    The password/confirm_password comparison happens in the handler so the
    mismatch error uses the domain ValidationError envelope.
    """

    reset_token: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=72)
    confirm_password: str = Field(min_length=1, max_length=72)


class PermissionsUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/permissions.

    The list replaces the user's current permissions entirely.
    """

    permissions: list[Permission]

    @field_validator("permissions")
    @classmethod
    def dedupe(cls, values: list[Permission]) -> list[Permission]:
        seen: list[Permission] = []
        for v in values:
            if v not in seen:
                seen.append(v)
        return seen


# ---------------------------------------------------------------------------
# Shop -- request models
# ---------------------------------------------------------------------------


class ItemCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    price: int = Field(default=0, ge=0, description="Price in cents.")
    image: Optional[str] = Field(default=None, max_length=2000)
    large_image: Optional[str] = Field(default=None, max_length=2000)


class ItemUpdate(BaseModel):
    """Request body for PATCH /api/v1/items/{id}. Only sent fields are written."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = Field(default=None, max_length=2000)
    large_image: Optional[str] = Field(default=None, max_length=2000)


class CartAdd(BaseModel):
    item_id: int


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    permissions: list[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            permissions=sorted(p.value for p in user.permissions),
            created_at=user.created_at or "",
        )


class ItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    price: int
    image: Optional[str]
    large_image: Optional[str]
    user_id: int
    created_at: str

    @classmethod
    def from_item(cls, item: Item) -> "ItemResponse":
        return cls(
            id=item.id,
            title=item.title,
            description=item.description,
            price=item.price,
            image=item.image,
            large_image=item.large_image,
            user_id=item.user_id,
            created_at=item.created_at,
        )


class CartItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    item_id: int
    user_id: int
    quantity: int

    @classmethod
    def from_cart_item(cls, cart_item: CartItem) -> "CartItemResponse":
        return cls(
            id=cart_item.id,
            item_id=cart_item.item_id,
            user_id=cart_item.user_id,
            quantity=cart_item.quantity,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
