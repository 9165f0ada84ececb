"""
Process-wide context and FastAPI dependencies.

One AppContext is built at startup and lives on ``app.state``; handlers
reach it through ``Depends(get_context)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Cookie, Depends, Request
from fastapi.security import OAuth2PasswordBearer

from assets import AssetStore, InMemoryAssetStore, S3AssetStore
from config import DEFAULT_JWT_SECRET, Settings
from database import DocumentStore, InMemoryDocumentStore, MongoDocumentStore, object_id
from errors import AuthenticationError, BadRequestError
from mailer import InMemoryMailer, Mailer, SmtpMailer
from security import decode_access_token

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass
class AppContext:
    settings: Settings
    store: DocumentStore
    assets: AssetStore
    mailer: Mailer

    @property
    def token_lifetime(self) -> timedelta:
        return timedelta(days=self.settings.jwt_expire_days)

    def close(self) -> None:
        self.store.close()


def build_context(settings: Settings) -> AppContext:
    """Pick real or in-memory backends depending on what is configured."""
    in_memory = settings.use_in_memory_backends
    if settings.environment == "production" and not in_memory:
        missing = [
            name for name, value in (
                ("DATABASE_URL", settings.database_url),
                ("JWT_SECRET", settings.jwt_secret != DEFAULT_JWT_SECRET),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Refusing to start in production without {', '.join(missing)}")

    if in_memory or not settings.database_url:
        logger.warning("DATABASE_URL not set, using in-memory document store")
        store = InMemoryDocumentStore()
    else:
        store = MongoDocumentStore(settings.database_url, settings.database_name)

    if in_memory or not settings.s3_bucket:
        assets = InMemoryAssetStore()
    else:
        assets = S3AssetStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.asset_public_base_url or "",
        )

    if in_memory or not settings.smtp_host:
        mailer = InMemoryMailer()
    else:
        mailer = SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
        )

    return AppContext(settings=settings, store=store, assets=assets, mailer=mailer)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_current_user(
    context: AppContext = Depends(get_context),
    token_header: Optional[str] = Depends(oauth2_scheme),
    token_cookie: Optional[str] = Cookie(None, alias="token"),
) -> dict:
    """Resolve the logged-in user from the session cookie or a bearer header."""
    token = token_header or token_cookie
    if not token:
        raise AuthenticationError("User not authenticated!")
    user_id = decode_access_token(token, context.settings.jwt_secret)
    try:
        oid = object_id(user_id)
    except BadRequestError:
        raise AuthenticationError("Json Web Token is invalid, try again!") from None
    user = context.store.find_by_id("user", oid)
    if not user:
        raise AuthenticationError("User not found!")
    return user
