"""
Social identity linking.

Runs once per successful provider sign-in: finds or creates the local account
for the provider email, records the (provider, provider user id) identity with
the newest access token, and returns a principal keyed by the local user id.

Only Kakao is linked.  Any other provider yields a plain ``OAuth2User`` with
the raw attributes and no local account.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import ValidationError

from auth.errors import ProviderUnavailable
from auth.schemas import DEFAULT_ROLE, KakaoUserInfo, UserAuthority, UserIdentities, UserRecord
from auth.store import KAKAO_PROVIDER, CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class OAuthUserRequest:
    """What the provider handshake hands over: registration id, token, attributes."""

    provider: str
    access_token: str
    attributes: Dict[str, Any]


@dataclass
class OAuth2User:
    attributes: Dict[str, Any]
    authorities: List[str] = field(default_factory=lambda: [DEFAULT_ROLE])
    name_attribute_key: str = "id"

    @property
    def name(self) -> str:
        return str(self.attributes.get(self.name_attribute_key))

    @property
    def is_linked(self) -> bool:
        return False


@dataclass
class LinkedOAuth2User(OAuth2User):
    """Principal bound to a local account; ``name`` is the local user id."""

    user_id: int = 0

    @property
    def name(self) -> str:
        return str(self.user_id)

    @property
    def is_linked(self) -> bool:
        return True


class SocialIdentityLinker:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def load_user(self, request: OAuthUserRequest) -> OAuth2User:
        if request.provider != KAKAO_PROVIDER:
            logger.warning("Unsupported OAuth provider %r; principal left unlinked", request.provider)
            return OAuth2User(attributes=request.attributes)

        try:
            info = KakaoUserInfo.model_validate(request.attributes)
        except ValidationError as exc:
            raise ProviderUnavailable("Kakao attributes missing required fields") from exc

        provider_user_id = str(info.id)
        identity = UserIdentities(
            provider=request.provider,
            provider_user_id=provider_user_id,
            access_token=request.access_token,
        )

        try:
            # the identity key wins over the email, which the user can change at Kakao
            linked_id = await self._store.find_user_id_by_identity(request.provider, provider_user_id)
            if linked_id is not None:
                user = await self._store.find_user_by_user_id(linked_id)
            else:
                user = await self._store.find_user_by_email(info.kakao_account.email)
            if user is None:
                user_id = await self._store.insert_user(
                    UserRecord(
                        email=info.kakao_account.email,
                        name=info.kakao_account.profile.nickname,
                        profile=info.kakao_account.profile.profile_image_url,
                    )
                )
                await self._store.insert_user_identities(
                    identity.model_copy(update={"user_id": user_id})
                )
                await self._store.insert_user_role(
                    UserAuthority(user_id=user_id, roles=[DEFAULT_ROLE])
                )
                roles = [DEFAULT_ROLE]
                logger.info("Created account %s from %s identity", user_id, request.provider)
            else:
                user_id = user.id
                roles = user.roles or [DEFAULT_ROLE]

            # Upsert on every login: keep the newest provider token, and link
            # an existing account that has never used this identity.
            if await self._store.update_user_identities(identity) == 0:
                await self._store.insert_user_identities(
                    identity.model_copy(update={"user_id": user_id})
                )
                logger.info("Linked %s identity to existing account %s", request.provider, user_id)
            await self._store.commit()
        except Exception:
            await self._store.rollback()
            raise

        return LinkedOAuth2User(
            attributes=request.attributes,
            authorities=roles,
            user_id=user_id,
        )
