"""
Pydantic records exchanged between the store gateway, the services and the
API layer.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_ROLE = "ROLE_USER"


# ═══════════════════════════════════════════════════════════════════════════════
# Store records
# ═══════════════════════════════════════════════════════════════════════════════


class UserRecord(BaseModel):
    id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None
    profile: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    # bcrypt digest; only populated by find_user_by_email, never serialized
    password: Optional[str] = Field(default=None, exclude=True, repr=False)

    def without_password(self) -> "UserRecord":
        return self.model_copy(update={"password": None})


class UserCredential(BaseModel):
    user_id: int
    password: str = Field(repr=False)


class UserAuthority(BaseModel):
    user_id: int
    roles: List[str] = Field(default_factory=lambda: [DEFAULT_ROLE])


class UserIdentities(BaseModel):
    provider: str
    provider_user_id: str
    access_token: Optional[str] = Field(default=None, repr=False)
    user_id: Optional[int] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Flow results
# ═══════════════════════════════════════════════════════════════════════════════


class AuthResult(BaseModel):
    """Outcome of login / signup / refresh.  Never persisted."""

    access_token: str
    refresh_token: Optional[str] = None
    user: UserRecord


# ═══════════════════════════════════════════════════════════════════════════════
# Kakao profile payload (GET /v2/user/me)
# ═══════════════════════════════════════════════════════════════════════════════


class KakaoProfile(BaseModel):
    nickname: str
    profile_image_url: Optional[str] = None


class KakaoAccount(BaseModel):
    email: str
    profile: KakaoProfile


class KakaoUserInfo(BaseModel):
    id: int
    kakao_account: KakaoAccount

    def to_user(self) -> UserRecord:
        """Transient user shape used for display refresh."""
        return UserRecord(
            email=self.kakao_account.email,
            name=self.kakao_account.profile.nickname,
            profile=self.kakao_account.profile.profile_image_url,
            roles=[DEFAULT_ROLE],
        )
