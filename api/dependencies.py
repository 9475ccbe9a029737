"""
FastAPI dependencies (shared across routes).

Long-lived collaborators (token service, hasher, cipher, Kakao connector) are
built once in ``main.create_app`` and kept on ``app.state``; the per-request
store gateway and services are assembled here around the request's session.
"""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import InvalidToken
from auth.jwt import TokenKind, TokenService
from auth.password import BcryptHasher
from auth.service import AccountService
from auth.social import SocialIdentityLinker
from auth.store import CredentialStore
from connectors.encryption import TokenCipher
from connectors.kakao import KakaoConnector
from database.session import get_db_session


async def db_session(session: AsyncSession = Depends(get_db_session)) -> AsyncGenerator[AsyncSession, None]:
    """Re-export so routes import from a single place."""
    yield session


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_hasher(request: Request) -> BcryptHasher:
    return request.app.state.hasher


def get_token_cipher(request: Request) -> TokenCipher:
    return request.app.state.token_cipher


def get_kakao_connector(request: Request) -> KakaoConnector:
    return request.app.state.kakao


def get_account_service(
    session: AsyncSession = Depends(db_session),
    tokens: TokenService = Depends(get_token_service),
    hasher: BcryptHasher = Depends(get_hasher),
    cipher: TokenCipher = Depends(get_token_cipher),
    kakao: KakaoConnector = Depends(get_kakao_connector),
) -> AccountService:
    return AccountService(CredentialStore(session, cipher), tokens, hasher, kakao)


def get_identity_linker(
    session: AsyncSession = Depends(db_session),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> SocialIdentityLinker:
    return SocialIdentityLinker(CredentialStore(session, cipher))


async def get_current_user_id(
    authorization: str = Header("", alias="Authorization"),
    tokens: TokenService = Depends(get_token_service),
) -> int:
    """
    Extract and verify the Bearer access token from the Authorization header.
    Returns the authenticated user id.
    """
    if not authorization.startswith("Bearer "):
        raise InvalidToken("Missing Bearer token")
    return tokens.resolve_subject(authorization[7:], TokenKind.ACCESS)
