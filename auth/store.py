"""
Credential store gateway — named queries over the account tables.

Plain plumbing: every method maps to one query, takes or returns the pydantic
records from ``auth.schemas`` and carries no business rules.  Units of work
are delimited by the caller through ``commit`` / ``rollback``.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import DuplicateEmail, StoreUnavailable
from auth.schemas import UserAuthority, UserCredential, UserIdentities, UserRecord
from connectors.encryption import TokenCipher
from database import models

logger = logging.getLogger(__name__)

KAKAO_PROVIDER = "kakao"


class CredentialStore:
    """Gateway bound to one ``AsyncSession``."""

    def __init__(self, session: AsyncSession, cipher: Optional[TokenCipher] = None) -> None:
        self._session = session
        self._cipher = cipher or TokenCipher(None)

    @contextlib.asynccontextmanager
    async def _guard(self, query: str) -> AsyncIterator[None]:
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.error("Store query %s failed: %s", query, exc)
            raise StoreUnavailable(f"Credential store unavailable during {query}") from exc

    async def _roles(self, user_id: int) -> List[str]:
        result = await self._session.execute(
            select(models.UserAuthority.role)
            .where(models.UserAuthority.user_id == user_id)
            .order_by(models.UserAuthority.id)
        )
        return list(result.scalars().all())

    # ── Queries ─────────────────────────────────────────────────────────

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        """User with roles and password hash (``None`` hash for social-only accounts)."""
        async with self._guard("find_user_by_email"):
            result = await self._session.execute(
                select(models.User, models.UserCredential.password)
                .outerjoin(
                    models.UserCredential,
                    models.UserCredential.user_id == models.User.id,
                )
                .where(models.User.email == email)
            )
            row = result.first()
            if row is None:
                return None
            user, password = row
            return UserRecord(
                id=user.id,
                email=user.email,
                name=user.name,
                profile=user.profile,
                roles=await self._roles(user.id),
                password=password,
            )

    async def find_user_by_user_id(self, user_id: int) -> Optional[UserRecord]:
        """User with roles, never with a password."""
        async with self._guard("find_user_by_user_id"):
            user = await self._session.get(models.User, user_id)
            if user is None:
                return None
            return UserRecord(
                id=user.id,
                email=user.email,
                name=user.name,
                profile=user.profile,
                roles=await self._roles(user.id),
            )

    async def find_user_id_by_identity(self, provider: str, provider_user_id: str) -> Optional[int]:
        """Local user already linked to (provider, provider_user_id), if any."""
        async with self._guard("find_user_id_by_identity"):
            result = await self._session.execute(
                select(models.UserIdentities.user_id).where(
                    models.UserIdentities.provider == provider,
                    models.UserIdentities.provider_user_id == provider_user_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_kakao_access_token(self, user_id: int) -> Optional[str]:
        async with self._guard("get_kakao_access_token"):
            result = await self._session.execute(
                select(models.UserIdentities.access_token)
                .where(
                    models.UserIdentities.user_id == user_id,
                    models.UserIdentities.provider == KAKAO_PROVIDER,
                )
                .order_by(models.UserIdentities.updated_at.desc())
                .limit(1)
            )
            token = result.scalar_one_or_none()
            return self._cipher.decrypt(token) if token else None

    # ── Inserts / updates ───────────────────────────────────────────────

    async def insert_user(self, user: UserRecord) -> int:
        """Insert a user row and return its generated id."""
        async with self._guard("insert_user"):
            row = models.User(email=user.email, name=user.name, profile=user.profile)
            self._session.add(row)
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise DuplicateEmail(f"Email already registered: {user.email}") from exc
            return row.id

    async def insert_cred(self, cred: UserCredential) -> None:
        async with self._guard("insert_cred"):
            self._session.add(models.UserCredential(user_id=cred.user_id, password=cred.password))
            await self._session.flush()

    async def insert_user_role(self, auth: UserAuthority) -> None:
        async with self._guard("insert_user_role"):
            for role in auth.roles:
                self._session.add(models.UserAuthority(user_id=auth.user_id, role=role))
            await self._session.flush()

    async def insert_user_identities(self, identity: UserIdentities) -> None:
        async with self._guard("insert_user_identities"):
            self._session.add(
                models.UserIdentities(
                    user_id=identity.user_id,
                    provider=identity.provider,
                    provider_user_id=identity.provider_user_id,
                    access_token=self._encrypt(identity.access_token),
                )
            )
            await self._session.flush()

    async def update_user_identities(self, identity: UserIdentities) -> int:
        """Replace the stored access token for (provider, provider_user_id).  Returns rows affected."""
        async with self._guard("update_user_identities"):
            result = await self._session.execute(
                update(models.UserIdentities)
                .where(
                    models.UserIdentities.provider == identity.provider,
                    models.UserIdentities.provider_user_id == identity.provider_user_id,
                )
                .values(
                    access_token=self._encrypt(identity.access_token),
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def _encrypt(self, token: Optional[str]) -> Optional[str]:
        return self._cipher.encrypt(token) if token else token

    # ── Transaction control ─────────────────────────────────────────────

    async def commit(self) -> None:
        async with self._guard("commit"):
            await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
