"""
Account service — email/password login, signup, refresh-token exchange and
social profile refresh.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from auth.errors import AccountNotFound, InvalidCredentials
from auth.jwt import TokenKind, TokenService
from auth.password import MAX_PASSWORD_BYTES, password_fits
from auth.schemas import (
    DEFAULT_ROLE,
    AuthResult,
    KakaoUserInfo,
    UserAuthority,
    UserCredential,
    UserRecord,
)
from auth.store import CredentialStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_MINUTES = 30
REFRESH_TOKEN_DAYS = 7


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str) -> bool: ...


class ProfileProvider(Protocol):
    async def get_user_info(self, access_token: str) -> KakaoUserInfo: ...


class AccountService:
    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        hasher: PasswordHasher,
        profiles: ProfileProvider,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._hasher = hasher
        self._profiles = profiles

    async def exists_by_email(self, email: str) -> bool:
        return await self._store.find_user_by_email(email) is not None

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self._store.find_user_by_email(email)
        if user is None:
            raise AccountNotFound(f"No account for {email}")
        # social-only accounts have no credential row
        if (
            user.password is None
            or not password_fits(password)
            or not self._hasher.verify(password, user.password)
        ):
            raise InvalidCredentials("Wrong password")

        logger.info("Login: user %s", user.id)
        return AuthResult(
            access_token=self._tokens.issue_access_token(user.id, ACCESS_TOKEN_MINUTES),
            refresh_token=self._tokens.issue_refresh_token(user.id, REFRESH_TOKEN_DAYS),
            user=user.without_password(),
        )

    async def signup(self, email: str, password: str) -> AuthResult:
        """
        Create a password account and log it in.

        The user, credential and authority rows are committed together;
        any failure rolls all of them back before the error propagates.
        """
        if not password_fits(password):
            raise InvalidCredentials(f"Password longer than {MAX_PASSWORD_BYTES} bytes")
        try:
            user_id = await self._store.insert_user(
                UserRecord(email=email, name=email.split("@")[0])
            )
            await self._store.insert_cred(
                UserCredential(user_id=user_id, password=self._hasher.hash(password))
            )
            await self._store.insert_user_role(
                UserAuthority(user_id=user_id, roles=[DEFAULT_ROLE])
            )

            access_token = self._tokens.issue_access_token(user_id, ACCESS_TOKEN_MINUTES)
            refresh_token = self._tokens.issue_refresh_token(user_id, REFRESH_TOKEN_DAYS)

            user = await self._store.find_user_by_user_id(user_id)
            if user is None:
                raise AccountNotFound(f"User {user_id} vanished during signup")
            await self._store.commit()
        except Exception:
            await self._store.rollback()
            raise

        logger.info("Registered user %s", user_id)
        return AuthResult(access_token=access_token, refresh_token=refresh_token, user=user)

    async def refresh_by_cookie(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new access token.  No new refresh token is issued."""
        user_id = self._tokens.resolve_subject(refresh_token, TokenKind.REFRESH)
        user = await self._store.find_user_by_user_id(user_id)
        if user is None:
            raise AccountNotFound(f"User {user_id} no longer exists")

        logger.debug("Refreshed access token for user %s", user_id)
        return AuthResult(
            access_token=self._tokens.issue_access_token(user_id, ACCESS_TOKEN_MINUTES),
            user=user,
        )

    async def get_user(self, user_id: int) -> UserRecord:
        user = await self._store.find_user_by_user_id(user_id)
        if user is None:
            raise AccountNotFound(f"User {user_id} not found")
        return user

    async def get_kakao_access_token(self, user_id: int) -> Optional[str]:
        return await self._store.get_kakao_access_token(user_id)

    async def find_user_by_user_id(self, user_id: int) -> UserRecord:
        """
        Fresh display profile from Kakao for ``user_id``.

        Reads the stored Kakao access token and maps the provider's nickname,
        profile image and email into a transient user; the local row is not
        touched.
        """
        access_token = await self._store.get_kakao_access_token(user_id)
        if access_token is None:
            raise AccountNotFound(f"User {user_id} has no linked Kakao account")
        info = await self._profiles.get_user_info(access_token)
        return info.to_user()
