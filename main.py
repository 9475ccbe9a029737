"""
Menu auth service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from api.middleware import register_middleware
from auth.jwt import SigningKeys, TokenService
from auth.password import BcryptHasher
from config.settings import config
from connectors.encryption import TokenCipher
from connectors.kakao import KakaoConnector
from database.session import init_models

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    # Signing keys are decoded exactly once; a bad secret stops startup here.
    try:
        keys = SigningKeys.from_base64(config.jwt_secret, config.jwt_refresh_secret)
    except ValueError as exc:
        raise RuntimeError(f"Startup aborted: {exc}") from exc

    app = FastAPI(
        title="Menu Auth Service",
        version="1.0.0",
        description="Email/password and Kakao sign-in with stateless JWT sessions.",
    )
    app.state.token_service = TokenService(keys)
    app.state.hasher = BcryptHasher()
    app.state.token_cipher = TokenCipher(config.token_encryption_key)
    app.state.kakao = KakaoConnector(
        config.kakao_client_id,
        config.kakao_client_secret,
        config.kakao_redirect_uri,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")

    @app.on_event("startup")
    async def on_startup():
        logger.info("Creating missing tables…")
        await init_models()

        if not app.state.kakao.is_configured():
            logger.warning("KAKAO_CLIENT_ID not set; Kakao sign-in disabled")

        logger.info("Application ready to accept requests.")

    return app


if __name__ == "__main__":
    uvicorn.run(
        create_app(),
        host=config.host,
        port=config.port,
        log_level="debug" if config.debug else "info",
    )
