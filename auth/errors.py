"""
Authentication error taxonomy.

Every failure a flow can end in is an ``AuthError`` subclass carrying a
machine-readable ``code`` and the HTTP status the API layer answers with.

Usage::

    from auth.errors import AccountNotFound

    raise AccountNotFound("No account for that email")
"""

from __future__ import annotations

from typing import Any, Dict


class AuthError(Exception):
    """Base exception with error code support."""

    code: str = "AUTH_ERROR"
    status_code: int = 400

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(f"[{self.code}] {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API-friendly dictionary."""
        return {"code": self.code, "message": self.message}


class AccountNotFound(AuthError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    status_code = 401


class DuplicateEmail(AuthError):
    code = "DUPLICATE_EMAIL"
    status_code = 409


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    status_code = 401


class ExpiredToken(AuthError):
    code = "EXPIRED_TOKEN"
    status_code = 401


class StoreUnavailable(AuthError):
    """Wraps persistence connectivity failures."""

    code = "STORE_UNAVAILABLE"
    status_code = 503


class ProviderUnavailable(AuthError):
    """Wraps social-provider call failures and undecodable provider payloads."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 502
