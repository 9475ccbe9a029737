"""
Shared fixtures: signing keys, an in-memory SQLite store, Kakao payloads.
"""

import os
from base64 import b64encode

# Settings are read at import time; give them usable secrets first.
os.environ.setdefault("JWT_SECRET", b64encode(b"access-secret-for-tests-32bytes!").decode())
os.environ.setdefault("JWT_REFRESH_SECRET", b64encode(b"refresh-secret-for-tests-32bytes").decode())

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.jwt import SigningKeys, TokenService
from auth.password import BcryptHasher
from database.models import Base


@pytest.fixture
def signing_keys() -> SigningKeys:
    return SigningKeys(access=b"a" * 32, refresh=b"r" * 32)


@pytest.fixture
def token_service(signing_keys) -> TokenService:
    return TokenService(signing_keys)


@pytest.fixture
def hasher() -> BcryptHasher:
    return BcryptHasher(rounds=4)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


def _kakao_attributes(
    kakao_id: int = 4242,
    email: str = "kim@kakao.com",
    nickname: str = "Kim",
    image: str = "https://k.kakaocdn.net/kim.jpg",
) -> dict:
    return {
        "id": kakao_id,
        "connected_at": "2024-05-01T09:00:00Z",
        "kakao_account": {
            "email": email,
            "profile": {"nickname": nickname, "profile_image_url": image},
        },
    }


@pytest.fixture
def kakao_attributes():
    """Factory for ``/v2/user/me`` payloads."""
    return _kakao_attributes
