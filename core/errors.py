"""
core/errors.py -- Error taxonomy shared by the mutation handlers and the API.

Every handler failure is one of these classes. They are raised at the point of
detection and never caught inside the handlers; api/main.py turns them into the
standard ErrorResponse envelope using the class-level code and status_code.

Messages are client-facing. Keep them free of secrets and, for anything that
looks up a user by email or token, free of hints about whether the user exists.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for all domain errors surfaced to the transport layer."""

    code: str = "error"
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(StorefrontError):
    code = "unauthenticated"
    status_code = 401
    default_message = "You must be logged in to do that."


class Forbidden(StorefrontError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to do that."


class NotFound(StorefrontError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class ValidationError(StorefrontError):
    code = "validation_error"
    status_code = 422
    default_message = "Invalid input."


class InvalidCredentials(StorefrontError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password."


class InvalidOrExpiredToken(StorefrontError):
    code = "invalid_or_expired_token"
    status_code = 400
    default_message = "This reset token is either invalid or expired."


class AlreadyExists(StorefrontError):
    code = "already_exists"
    status_code = 409
    default_message = "That record already exists."


class DeliveryFailed(StorefrontError):
    code = "delivery_failed"
    status_code = 502
    default_message = "We could not send the email. Please try again later."
