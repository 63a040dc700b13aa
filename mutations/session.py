"""
mutations/session.py -- Signup, signin, signout and password reset.

These handlers own the lifecycle of the two secrets the system issues:

  Session token -- minted by signup, signin and reset_password, delivered as
      the "token" cookie (HttpOnly, 365 days). signout asks the client to drop
      the cookie. Nothing is revoked server-side.

  Reset token -- request_reset stores a random token with a one-hour expiry
      on the user and emails a link containing it. reset_password spends it
      through UserStore.consume_reset_token(), which matches and clears the
      token in one conditional UPDATE so it can only be used once.

Enumeration: signin and request_reset use the same neutral messages whether
or not the email is registered, and signin runs bcrypt against DUMMY_HASH for
unknown emails so timing does not leak it either.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy.exc import IntegrityError

from auth.models import Permission, User
from auth.store import UserStore
from auth.tokens import (
    DUMMY_HASH,
    SESSION_COOKIE,
    TokenIssuer,
    generate_reset_token,
    hash_password,
    verify_password,
)
from core.context import CallerContext
from core.errors import (
    AlreadyExists,
    DeliveryFailed,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    ValidationError,
)
from core.mailer import Mailer, MailerError, make_reset_email

logger = logging.getLogger("storefront.mutations")

# Profile fields signup passes through to the user record.
PROFILE_FIELDS = frozenset({"name"})

RESET_NOT_FOUND_MESSAGE = "We could not start a password reset for that email."


class SessionMutations:
    """Handlers for account creation, authentication and password reset.

    clock returns the current time as epoch seconds; tests pass a fixed one
    to hit the reset-expiry boundary exactly.
    """

    def __init__(
        self,
        users: UserStore,
        issuer: TokenIssuer,
        mailer: Mailer,
        frontend_url: str,
        reset_ttl_seconds: int = 60 * 60,
        secure_cookies: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.users = users
        self.issuer = issuer
        self.mailer = mailer
        self.frontend_url = frontend_url
        self.reset_ttl_seconds = reset_ttl_seconds
        self.secure_cookies = secure_cookies
        self.clock = clock

    # ------------------------------------------------------------------
    # Session token
    # ------------------------------------------------------------------

    def _issue_session(self, ctx: CallerContext, user: User) -> None:
        token = self.issuer.issue_session(user.id)
        ctx.deliver_artifact(SESSION_COOKIE, token, self.issuer.cookie_options(secure=self.secure_cookies))

    def signup(self, ctx: CallerContext, email: str, password: str, **profile) -> User:
        """Create a USER account and sign it in.

        The email is lowercased before storage. Profile fields other than
        those in PROFILE_FIELDS are rejected.
        """
        unknown = set(profile) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown signup fields: {', '.join(sorted(unknown))}")
        email = email.strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required.")

        new_user = User(
            email=email,
            hashed_password=hash_password(password),
            permissions={Permission.USER},
            **profile,
        )
        try:
            user_id = self.users.create_user(new_user)
        except IntegrityError as exc:
            raise AlreadyExists("An account with that email already exists.") from exc

        user = self.users.get_by_id(user_id)
        self._issue_session(ctx, user)
        logger.info("Signed up user_id=%s", user.id)
        return user

    def signin(self, ctx: CallerContext, email: str, password: str) -> User:
        user = self.users.get_by_email(email.strip().lower())
        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return early before running bcrypt.
            verify_password(password, DUMMY_HASH)
            logger.info("Signin failed: unknown email")
            raise NotFound(InvalidCredentials.default_message)
        if not verify_password(password, user.hashed_password):
            logger.info("Signin failed: bad password for user_id=%s", user.id)
            raise InvalidCredentials()
        self._issue_session(ctx, user)
        return user

    def signout(self, ctx: CallerContext) -> dict:
        ctx.clear_artifact(SESSION_COOKIE)
        return {"message": "Goodbye!"}

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_reset(self, ctx: CallerContext, email: str) -> dict:
        """Store a fresh reset token on the user and email them the link.

        A mail relay failure surfaces as DeliveryFailed. The stored token
        stays valid until it expires or a later request replaces it.
        """
        user = self.users.get_by_email(email.strip().lower())
        if user is None:
            logger.info("Reset requested for unknown email")
            raise NotFound(RESET_NOT_FOUND_MESSAGE)

        reset_token = generate_reset_token()
        expiry = self.clock() + self.reset_ttl_seconds
        self.users.set_reset_token(user.id, reset_token, expiry)

        subject, body = make_reset_email(self.frontend_url, reset_token)
        try:
            self.mailer.send(user.email, subject, body)
        except MailerError as exc:
            raise DeliveryFailed() from exc
        logger.info("Reset token issued for user_id=%s", user.id)
        return {"message": "Thanks!"}

    def reset_password(self, ctx: CallerContext, reset_token: str, password: str, confirm_password: str) -> User:
        """Spend a reset token, set the new password, and sign the user in."""
        if password != confirm_password:
            raise ValidationError("Your passwords don't match!")
        if not password:
            raise ValidationError("Password is required.")
        if not reset_token:
            raise InvalidOrExpiredToken()

        user = self.users.consume_reset_token(reset_token, now=self.clock(), hashed_password=hash_password(password))
        if user is None:
            raise InvalidOrExpiredToken()

        self._issue_session(ctx, user)
        logger.info("Password reset for user_id=%s", user.id)
        return user
