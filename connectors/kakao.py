"""
KakaoConnector — OAuth2 sign-in and profile lookups against Kakao.

Handles the authorization redirect, the code → token exchange, and the
``/v2/user/me`` profile call used both at sign-in and for profile refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from auth.errors import ProviderUnavailable
from auth.schemas import KakaoUserInfo
from auth.social import OAuthUserRequest

logger = logging.getLogger(__name__)

# Kakao OAuth2 endpoints
_KAKAO_AUTH_URL = "https://kauth.kakao.com/oauth/authorize"
_KAKAO_TOKEN_URL = "https://kauth.kakao.com/oauth/token"
_KAKAO_USER_URL = "https://kapi.kakao.com/v2/user/me"


class KakaoConnector:
    """OAuth2 connector for Kakao Login."""

    provider_name = "kakao"
    scopes = ["profile_nickname", "profile_image", "account_email"]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.client_id)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    def get_auth_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": ",".join(self.scopes),
            "state": state,
        }
        return f"{_KAKAO_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for a Kakao access token."""
        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "code": code,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        try:
            async with self._client() as client:
                resp = await client.post(
                    _KAKAO_TOKEN_URL,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                resp.raise_for_status()
                token_data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Kakao token exchange failed: %s", exc)
            raise ProviderUnavailable("Kakao token exchange failed") from exc

        if not isinstance(token_data, dict):
            raise ProviderUnavailable("Kakao token response is not an object")
        if "error" in token_data or "access_token" not in token_data:
            raise ProviderUnavailable(
                f"Kakao OAuth error: {token_data.get('error_description', token_data.get('error', 'no access_token'))}"
            )
        return token_data["access_token"]

    async def fetch_attributes(self, access_token: str) -> Dict[str, Any]:
        """Raw attribute map from ``/v2/user/me``."""
        try:
            async with self._client() as client:
                resp = await client.get(
                    _KAKAO_USER_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Kakao profile request failed: %s", exc)
            raise ProviderUnavailable("Kakao profile request failed") from exc

    async def get_user_info(self, access_token: str) -> KakaoUserInfo:
        """Profile decoded into ``KakaoUserInfo``."""
        attributes = await self.fetch_attributes(access_token)
        try:
            return KakaoUserInfo.model_validate(attributes)
        except ValidationError as exc:
            raise ProviderUnavailable(f"Unexpected Kakao profile shape: {exc.error_count()} error(s)") from exc

    async def load_user(self, code: str) -> OAuthUserRequest:
        """Complete the handshake: code → token → attributes."""
        access_token = await self.exchange_code(code)
        attributes = await self.fetch_attributes(access_token)
        return OAuthUserRequest(
            provider=self.provider_name,
            access_token=access_token,
            attributes=attributes,
        )
