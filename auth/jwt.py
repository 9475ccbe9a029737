"""
JWT creation and verification.

Two classes of token share one shape: an HS256 JWT whose only claims are
``sub`` (the numeric user id as a string), ``iat`` and ``exp``.  Access and
refresh tokens are signed with separate keys, and the JOSE ``kid`` header
names the key class so a token of one class never verifies as the other.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from jose import JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def _decode_secret(name: str, value: str) -> bytes:
    if not value:
        raise ValueError(f"Missing signing secret: {name}")
    try:
        key = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{name} is not valid base64") from exc
    if not key:
        raise ValueError(f"{name} decodes to an empty key")
    return key


@dataclass(frozen=True)
class SigningKeys:
    """Immutable pair of HMAC keys, built once at startup."""

    access: bytes
    refresh: bytes

    @classmethod
    def from_base64(cls, access_b64: str, refresh_b64: str) -> "SigningKeys":
        """Decode both secrets.  Raises ``ValueError`` on missing/malformed input."""
        keys = cls(
            access=_decode_secret("JWT_SECRET", access_b64),
            refresh=_decode_secret("JWT_REFRESH_SECRET", refresh_b64),
        )
        if keys.access == keys.refresh:
            logger.warning(
                "JWT_SECRET and JWT_REFRESH_SECRET are identical; configure "
                "independent secrets for access and refresh tokens"
            )
        return keys

    def for_kind(self, kind: TokenKind) -> bytes:
        return self.access if kind is TokenKind.ACCESS else self.refresh


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mint and verify signed, time-bounded tokens for a single user id."""

    def __init__(
        self,
        keys: SigningKeys,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._keys = keys
        self._clock = clock

    def _issue(self, kind: TokenKind, user_id: int, lifetime: timedelta) -> str:
        now = self._clock()
        claims = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        }
        return jwt.encode(
            claims,
            self._keys.for_kind(kind),
            algorithm=_ALGORITHM,
            headers={"kid": kind.value},
        )

    def issue_access_token(self, user_id: int, valid_minutes: int) -> str:
        return self._issue(TokenKind.ACCESS, user_id, timedelta(minutes=valid_minutes))

    def issue_refresh_token(self, user_id: int, valid_days: int) -> str:
        return self._issue(TokenKind.REFRESH, user_id, timedelta(days=valid_days))

    def resolve_subject(self, token: str, kind: TokenKind) -> int:
        """
        Verify ``token`` against the key of ``kind`` and return its subject.

        Raises ``ExpiredToken`` once ``exp`` has passed and ``InvalidToken``
        for anything else that fails verification.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidToken("Malformed token") from exc
        if header.get("kid") != kind.value:
            raise InvalidToken(f"Not a {kind.value} token")

        try:
            payload = jwt.decode(
                token,
                self._keys.for_kind(kind),
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidToken(f"Invalid {kind.value} token") from exc

        exp = payload.get("exp")
        if not isinstance(exp, int):
            raise InvalidToken("Token has no expiry")
        if exp <= int(self._clock().timestamp()):
            raise ExpiredToken(f"{kind.value.capitalize()} token has expired")

        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken("Token subject is not a user id") from exc
