"""
Auth API routes — login, signup, refresh, profile and Kakao sign-in.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator

from api.dependencies import (
    get_account_service,
    get_current_user_id,
    get_identity_linker,
    get_kakao_connector,
    get_token_service,
)
from auth.errors import InvalidToken
from auth.jwt import TokenService
from auth.password import MAX_PASSWORD_BYTES, password_fits
from auth.schemas import AuthResult, UserRecord
from auth.service import REFRESH_TOKEN_DAYS, AccountService
from auth.social import SocialIdentityLinker
from config.settings import config
from connectors.kakao import KakaoConnector

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_COOKIE_PATH = "/api/v1/auth"


# ── Request / response schemas ─────────────────────────────────────────


class CredentialsRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=4, max_length=MAX_PASSWORD_BYTES)

    @field_validator("password")
    @classmethod
    def _password_bytes(cls, value: str) -> str:
        if not password_fits(value):
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class AuthResponse(BaseModel):
    access_token: str
    user: UserRecord


class ExistsResponse(BaseModel):
    exists: bool


# ── Cookie helpers ─────────────────────────────────────────────────────


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        config.refresh_cookie_name,
        refresh_token,
        max_age=REFRESH_TOKEN_DAYS * 86400,
        path=_COOKIE_PATH,
        httponly=True,
        secure=config.cookie_secure,
        samesite=config.cookie_samesite,
    )


def _auth_response(result: AuthResult, response: Response) -> AuthResponse:
    if result.refresh_token:
        _set_refresh_cookie(response, result.refresh_token)
    return AuthResponse(access_token=result.access_token, user=result.user)


# ── State token helpers (CSRF protection) ──────────────────────────────
#
# The signed state carries a nonce that must match the short-lived
# ``OAUTH_STATE`` cookie set on the browser that started the sign-in.

_STATE_TTL = 600  # seconds
_STATE_COOKIE = "OAUTH_STATE"
_CALLBACK_PATH = f"{_COOKIE_PATH}/oauth2/kakao"


def _create_state(nonce: str) -> str:
    """Create an opaque state string encoding a nonce + expiry."""
    payload = json.dumps({"nonce": nonce, "exp": int(time.time()) + _STATE_TTL})
    raw = payload.encode()
    sig = hmac.new(config.oauth_state_secret.encode(), raw, hashlib.sha256).hexdigest()[:16]
    return urlsafe_b64encode(raw).decode() + "." + sig


def _verify_state(state: str, nonce: Optional[str]) -> None:
    """Verify the state token against the browser's nonce.  Raises HTTPException(400) on failure."""
    try:
        parts = state.split(".", 1)
        if len(parts) != 2:
            raise ValueError("bad format")
        raw = urlsafe_b64decode(parts[0])
        expected_sig = hmac.new(config.oauth_state_secret.encode(), raw, hashlib.sha256).hexdigest()[:16]
        if not hmac.compare_digest(parts[1], expected_sig):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("state expired")
        if not nonce or not hmac.compare_digest(str(payload.get("nonce", "")), nonce):
            raise ValueError("state not issued to this browser")
    except (ValueError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid or expired OAuth state: {exc}",
        )


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/login", response_model=AuthResponse)
async def login(
    req: CredentialsRequest,
    response: Response,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Login with email + password."""
    result = await service.login(req.email, req.password)
    return _auth_response(result, response)


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    req: CredentialsRequest,
    response: Response,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Register a new password account and log it in."""
    result = await service.signup(req.email, req.password)
    return _auth_response(result, response)


@router.get("/exists", response_model=ExistsResponse)
async def exists(
    email: str = Query(..., min_length=3),
    service: AccountService = Depends(get_account_service),
) -> ExistsResponse:
    return ExistsResponse(exists=await service.exists_by_email(email))


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=config.refresh_cookie_name),
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Mint a new access token from the refresh cookie."""
    if not refresh_token:
        raise InvalidToken("Missing refresh token")
    result = await service.refresh_by_cookie(refresh_token)
    return _auth_response(result, response)


@router.post("/logout")
async def logout() -> JSONResponse:
    response = JSONResponse({"ok": True})
    response.delete_cookie(config.refresh_cookie_name, path=_COOKIE_PATH)
    return response


@router.get("/me", response_model=UserRecord)
async def me(
    user_id: int = Depends(get_current_user_id),
    service: AccountService = Depends(get_account_service),
) -> UserRecord:
    return await service.get_user(user_id)


@router.get("/me/social-profile", response_model=UserRecord)
async def social_profile(
    user_id: int = Depends(get_current_user_id),
    service: AccountService = Depends(get_account_service),
) -> UserRecord:
    """Current nickname / profile image / email as Kakao reports them."""
    return await service.find_user_by_user_id(user_id)


@router.get("/oauth2/kakao")
async def kakao_start(kakao: KakaoConnector = Depends(get_kakao_connector)) -> RedirectResponse:
    if not kakao.is_configured():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Kakao OAuth not configured. Check KAKAO_CLIENT_ID.",
        )
    nonce = secrets.token_urlsafe(16)
    response = RedirectResponse(kakao.get_auth_url(_create_state(nonce)), status_code=302)
    response.set_cookie(
        _STATE_COOKIE,
        nonce,
        max_age=_STATE_TTL,
        path=_CALLBACK_PATH,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/oauth2/kakao/callback")
async def kakao_callback(
    code: str = Query(...),
    state: str = Query(...),
    state_nonce: Optional[str] = Cookie(None, alias=_STATE_COOKIE),
    kakao: KakaoConnector = Depends(get_kakao_connector),
    linker: SocialIdentityLinker = Depends(get_identity_linker),
    tokens: TokenService = Depends(get_token_service),
) -> RedirectResponse:
    """
    Kakao redirects here after consent.

    Links the identity, drops a refresh cookie and sends the browser back to
    the frontend, which then calls ``/refresh`` for its first access token.
    """
    _verify_state(state, state_nonce)
    principal = await linker.load_user(await kakao.load_user(code))
    if not principal.is_linked:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported provider")

    user_id = int(principal.name)
    response = RedirectResponse(f"{config.frontend_origin}/oauth2/success", status_code=302)
    _set_refresh_cookie(response, tokens.issue_refresh_token(user_id, REFRESH_TOKEN_DAYS))
    response.delete_cookie(_STATE_COOKIE, path=_CALLBACK_PATH)
    logger.info("Kakao sign-in completed for user %s", user_id)
    return response
