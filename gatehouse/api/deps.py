"""
gatehouse.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from gatehouse.config import GatehouseConfig, load_config
from gatehouse.database.engine import create_db_engine
from gatehouse.services.admin_policy import AdminPolicy, AllowListAdminPolicy
from gatehouse.services.audio_store import UPLOAD_DIR, AudioStore
from gatehouse.services.discord_service import DiscordClient
from gatehouse.services.errors import GatehouseError

_WEAK_SECRETS = frozenset({
    "gatehouse-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GatehouseConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_audio_store() -> AudioStore:
    return AudioStore(UPLOAD_DIR)


def get_admin_policy(cfg: GatehouseConfig = Depends(get_config)) -> AdminPolicy:
    return AllowListAdminPolicy.from_config(cfg)


def get_optional_discord(
    cfg: GatehouseConfig = Depends(get_config),
) -> DiscordClient | None:
    """The bot-token REST client, or ``None`` when no token is configured."""
    token = os.getenv("DISCORD_BOT_TOKEN", "").strip()
    if not token:
        return None
    return DiscordClient(token, cfg.guild_id, cfg.whitelist_role_id)


def get_discord(
    client: DiscordClient | None = Depends(get_optional_discord),
) -> DiscordClient:
    """Like :func:`get_optional_discord` but a missing token is a clear 500."""
    if client is None:
        raise HTTPException(
            status_code=500,
            detail="Discord bot is not configured: missing DISCORD_BOT_TOKEN",
        )
    return client


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate the session JWT and return its payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return payload


def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    """Like :func:`get_current_user` but also requires ``is_admin``."""
    if not user.get("is_admin"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return user


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
def http_error(exc: GatehouseError) -> HTTPException:
    """Map a service exception onto its HTTP status."""
    return HTTPException(exc.status_code, str(exc))
