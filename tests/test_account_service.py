"""
Tests for login / signup / refresh flows and the Kakao profile refresh.
"""

import pytest
from sqlalchemy import func, select
from unittest.mock import AsyncMock, MagicMock

from auth.errors import (
    AccountNotFound,
    DuplicateEmail,
    ExpiredToken,
    InvalidCredentials,
    InvalidToken,
    ProviderUnavailable,
)
from auth.jwt import TokenKind
from auth.schemas import KakaoUserInfo, UserIdentities, UserRecord
from auth.service import AccountService
from auth.store import CredentialStore
from database import models


def _profiles(info=None) -> MagicMock:
    profiles = MagicMock()
    profiles.get_user_info = AsyncMock(return_value=info)
    return profiles


@pytest.fixture
def service(session, token_service, hasher) -> AccountService:
    return AccountService(CredentialStore(session), token_service, hasher, _profiles())


async def _count(session_factory, model, **where) -> int:
    async with session_factory() as s:
        stmt = select(func.count()).select_from(model)
        for column, value in where.items():
            stmt = stmt.where(getattr(model, column) == value)
        return (await s.execute(stmt)).scalar_one()


class TestSignupAndLogin:
    @pytest.mark.asyncio
    async def test_signup_then_login(self, service, token_service):
        created = await service.signup("park@example.com", "hunter22")
        assert created.user.name == "park"
        assert created.user.roles == ["ROLE_USER"]
        assert created.refresh_token is not None

        result = await service.login("park@example.com", "hunter22")
        assert result.user.id == created.user.id
        assert result.user.password is None
        assert token_service.resolve_subject(result.access_token, TokenKind.ACCESS) == created.user.id
        assert token_service.resolve_subject(result.refresh_token, TokenKind.REFRESH) == created.user.id

    @pytest.mark.asyncio
    async def test_signup_writes_user_credential_and_role(self, service, session_factory):
        created = await service.signup("park@example.com", "hunter22")
        assert await _count(session_factory, models.User) == 1
        assert await _count(session_factory, models.UserCredential, user_id=created.user.id) == 1
        assert await _count(session_factory, models.UserAuthority, user_id=created.user.id) == 1

    @pytest.mark.asyncio
    async def test_password_is_stored_hashed(self, service, session_factory):
        await service.signup("park@example.com", "hunter22")
        async with session_factory() as s:
            stored = (await s.execute(select(models.UserCredential.password))).scalar_one()
        assert stored != "hunter22"
        assert stored.startswith("$2")

    @pytest.mark.asyncio
    async def test_duplicate_signup(self, service, session_factory):
        await service.signup("park@example.com", "hunter22")
        with pytest.raises(DuplicateEmail):
            await service.signup("park@example.com", "other-pass")
        assert await _count(session_factory, models.User, email="park@example.com") == 1

    @pytest.mark.asyncio
    async def test_failed_signup_leaves_no_rows(self, session, token_service, session_factory):
        hasher = MagicMock()
        hasher.hash = MagicMock(side_effect=RuntimeError("hasher down"))
        service = AccountService(CredentialStore(session), token_service, hasher, _profiles())

        with pytest.raises(RuntimeError):
            await service.signup("park@example.com", "hunter22")
        assert await _count(session_factory, models.User) == 0

    @pytest.mark.asyncio
    async def test_wrong_password(self, service):
        await service.signup("park@example.com", "hunter22")
        with pytest.raises(InvalidCredentials):
            await service.login("park@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_unknown_email(self, service):
        with pytest.raises(AccountNotFound):
            await service.login("ghost@example.com", "whatever")

    @pytest.mark.asyncio
    async def test_social_only_account_cannot_password_login(self, service, session):
        store = CredentialStore(session)
        await store.insert_user(UserRecord(email="kim@kakao.com", name="Kim"))
        await store.commit()
        with pytest.raises(InvalidCredentials):
            await service.login("kim@kakao.com", "anything")

    @pytest.mark.asyncio
    async def test_signup_password_over_bcrypt_limit(self, service, session_factory):
        with pytest.raises(InvalidCredentials, match="72 bytes"):
            await service.signup("long@example.com", "p" * 100)
        assert await _count(session_factory, models.User) == 0

    @pytest.mark.asyncio
    async def test_login_password_over_bcrypt_limit(self, service):
        await service.signup("park@example.com", "hunter22")
        with pytest.raises(InvalidCredentials):
            await service.login("park@example.com", "p" * 100)

    @pytest.mark.asyncio
    async def test_exists_by_email(self, service):
        assert await service.exists_by_email("park@example.com") is False
        await service.signup("park@example.com", "hunter22")
        assert await service.exists_by_email("park@example.com") is True


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_issues_access_token_only(self, service, token_service):
        created = await service.signup("park@example.com", "hunter22")
        result = await service.refresh_by_cookie(created.refresh_token)
        assert result.refresh_token is None
        assert token_service.resolve_subject(result.access_token, TokenKind.ACCESS) == created.user.id

    @pytest.mark.asyncio
    async def test_refresh_for_user_seven(self, token_service):
        store = MagicMock()
        store.find_user_by_user_id = AsyncMock(return_value=UserRecord(id=7, email="seven@example.com"))
        service = AccountService(store, token_service, MagicMock(), _profiles())

        result = await service.refresh_by_cookie(token_service.issue_refresh_token(7, 7))
        assert token_service.resolve_subject(result.access_token, TokenKind.ACCESS) == 7
        assert result.refresh_token is None

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, service, token_service):
        with pytest.raises(InvalidToken):
            await service.refresh_by_cookie(token_service.issue_access_token(1, 30))

    @pytest.mark.asyncio
    async def test_expired_refresh_token(self, service, token_service):
        with pytest.raises(ExpiredToken):
            await service.refresh_by_cookie(token_service.issue_refresh_token(1, -1))

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_user(self, service, token_service):
        with pytest.raises(AccountNotFound):
            await service.refresh_by_cookie(token_service.issue_refresh_token(999, 7))


class TestSocialProfile:
    @pytest.mark.asyncio
    async def test_maps_kakao_profile(self, session, token_service, hasher, kakao_attributes):
        store = CredentialStore(session)
        user_id = await store.insert_user(UserRecord(email="kim@kakao.com", name="Kim"))
        await store.insert_user_identities(
            UserIdentities(provider="kakao", provider_user_id="4242", access_token="kakao-token", user_id=user_id)
        )
        await store.commit()

        info = KakaoUserInfo.model_validate(kakao_attributes(nickname="Kim Renamed"))
        profiles = _profiles(info)
        service = AccountService(store, token_service, hasher, profiles)

        user = await service.find_user_by_user_id(user_id)
        profiles.get_user_info.assert_awaited_once_with("kakao-token")
        assert user.name == "Kim Renamed"
        assert user.email == "kim@kakao.com"
        assert user.profile == "https://k.kakaocdn.net/kim.jpg"
        assert user.roles == ["ROLE_USER"]
        assert user.id is None
        assert (await store.find_user_by_user_id(user_id)).name == "Kim"

    @pytest.mark.asyncio
    async def test_no_linked_account(self, service):
        with pytest.raises(AccountNotFound):
            await service.find_user_by_user_id(1)

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, token_service):
        store = MagicMock()
        store.get_kakao_access_token = AsyncMock(return_value="kakao-token")
        profiles = MagicMock()
        profiles.get_user_info = AsyncMock(side_effect=ProviderUnavailable("down"))
        service = AccountService(store, token_service, MagicMock(), profiles)

        with pytest.raises(ProviderUnavailable):
            await service.find_user_by_user_id(1)
