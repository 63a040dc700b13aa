"""
auth/tokens.py -- Password hashing, session tokens, and reset-token secrets.

Security design decisions:
  Sessions: python-jose with HS256. TokenIssuer is constructed with the
       signing key so nothing here reads configuration ad hoc. Tokens carry
       user_id and expiry. Verification returns None on any failure -- the
       dependency layer treats that as an anonymous caller. There is no
       server-side blacklist: signing out only clears the client cookie.

  Passwords: bcrypt, used directly. The DUMMY_HASH constant enables timing
       equalization in the signin handler so response time does not reveal
       whether an email is registered.

  Reset tokens: secrets.token_hex(20) gives 160 bits of entropy as 40 hex
       characters. They are single-use and expire after one hour.

Layer rule: no imports from api/, shop/, or mutations/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from core.config import Settings

logger = logging.getLogger("storefront.auth")

_ALGORITHM = "HS256"

SESSION_COOKIE = "token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps password
    length well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first signin attempt is not measurably
# slower than subsequent ones. Verify against this when the email is unknown.
DUMMY_HASH: str = hash_password("storefront_timing_dummy")


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Signs and verifies session tokens with a single shared secret.

    Usage:
        issuer = TokenIssuer(settings.secret_key)
        token = issuer.sign({"user_id": 42})
        claims = issuer.verify(token)   # {"user_id": 42, "exp": ...} or None
    """

    def __init__(self, secret_key: str, expire_seconds: int = 60 * 60 * 24 * 365, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a non-empty secret key.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.algorithm = algorithm

    def sign(self, claims: dict[str, Any]) -> str:
        """Encode claims into a signed JWT with an exp claim added."""
        payload = dict(claims)
        now = datetime.now(timezone.utc)
        payload.setdefault("iat", now)
        payload["exp"] = now + timedelta(seconds=self.expire_seconds)
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the claims dict or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        if "user_id" not in payload:
            return None
        return payload

    def issue_session(self, user_id: int) -> str:
        return self.sign({"user_id": user_id})

    def cookie_options(self, secure: bool = False) -> dict[str, Any]:
        """Cookie attributes for the session artifact.

        httponly keeps the token away from page scripts. max_age matches the
        JWT expiry so cookie and token expire together.
        """
        return {
            "httponly": True,
            "max_age": self.expire_seconds,
            "samesite": "lax",
            "secure": secure,
        }


def build_token_issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings.secret_key, expire_seconds=settings.token_expire_seconds)


# ---------------------------------------------------------------------------
# Reset-token secrets
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return 20 random bytes as 40 hex characters."""
    return secrets.token_hex(20)
