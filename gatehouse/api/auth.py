"""
gatehouse.api.auth — Discord OAuth2 + JWT issuance
===================================================

Any Discord user can sign in; the admin policy decides once, at login,
whether the issued token carries ``is_admin``.
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import delete

from gatehouse.api.deps import (
    JWT_ALGORITHM,
    JWT_SECRET,
    get_admin_policy,
    get_current_user,
    get_engine,
)
from gatehouse.database.engine import get_session, run_db
from gatehouse.database.models import OAuthState
from gatehouse.services.admin_policy import AdminPolicy
from gatehouse.services.discord_service import DISCORD_API, REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

OAUTH_SCOPE = "identify"
OAUTH_STATE_TTL_SECONDS = 600
SESSION_TTL_HOURS = 12


def _oauth_env() -> tuple[str, str, str, str]:
    """Return required OAuth env vars or raise a clear 500."""
    client_id = os.getenv("DISCORD_CLIENT_ID", "").strip()
    client_secret = os.getenv("DISCORD_CLIENT_SECRET", "").strip()
    redirect_uri = os.getenv("DISCORD_REDIRECT_URI", "").strip()
    frontend_url = os.getenv("FRONTEND_URL", "").strip()

    missing = [
        name
        for name, value in (
            ("DISCORD_CLIENT_ID", client_id),
            ("DISCORD_CLIENT_SECRET", client_secret),
            ("DISCORD_REDIRECT_URI", redirect_uri),
            ("FRONTEND_URL", frontend_url),
        )
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=500,
            detail="Discord OAuth is not configured: missing " + ", ".join(missing),
        )

    return client_id, client_secret, redirect_uri, frontend_url.rstrip("/")


def _state_cutoff() -> datetime:
    return datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)


def _store_oauth_state(engine, state: str) -> None:
    """Remember *state* for the callback, dropping expired ones."""
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < _state_cutoff()))
        session.add(OAuthState(state=state))


def _consume_oauth_state(engine, state: str) -> bool:
    """Return whether *state* was issued and unexpired; it is single-use."""
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < _state_cutoff()))
        row = session.get(OAuthState, state)
        if row is None:
            return False
        session.delete(row)
        return True


def issue_session_token(user_info: dict, policy: AdminPolicy) -> str:
    """Sign the session JWT for a Discord ``/users/@me`` payload."""
    user_id = str(user_info["id"])
    payload = {
        "sub": user_id,
        "username": user_info.get("global_name") or user_info.get("username") or "Unknown",
        "avatar": user_info.get("avatar"),
        "is_admin": policy.is_admin(int(user_id)),
        "exp": datetime.now(UTC) + timedelta(hours=SESSION_TTL_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


@router.get("/login")
async def login(engine=Depends(get_engine)):
    """Redirect to Discord OAuth2 consent screen."""
    client_id, _, redirect_uri, _ = _oauth_env()

    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state)

    query = urlencode(
        {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            "state": state,
        }
    )
    return RedirectResponse(f"https://discord.com/oauth2/authorize?{query}")


async def fetch_discord_user(
    code: str,
    *,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Trade an authorization *code* for the ``/users/@me`` payload.

    Any Discord-side refusal becomes a 400; the caller never sees the
    access token.
    """
    async with httpx.AsyncClient(
        base_url=DISCORD_API, timeout=REQUEST_TIMEOUT_SECONDS, transport=transport
    ) as client:
        token_resp = await client.post(
            "/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
                "scope": OAUTH_SCOPE,
            },
        )
        if token_resp.status_code != 200:
            logger.warning("OAuth code exchange refused (%d)", token_resp.status_code)
            raise HTTPException(400, "OAuth token exchange failed")

        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise HTTPException(400, "No access token returned")

        user_resp = await client.get(
            "/users/@me", headers={"Authorization": f"Bearer {access_token}"}
        )

    if user_resp.status_code != 200:
        raise HTTPException(400, "Failed to fetch Discord user")
    return user_resp.json()


@router.get("/callback")
async def callback(
    code: str,
    state: str,
    policy: AdminPolicy = Depends(get_admin_policy),
    engine=Depends(get_engine),
):
    """Finish the OAuth dance and hand the frontend a session JWT."""
    client_id, client_secret, redirect_uri, frontend_url = _oauth_env()

    if not await run_db(_consume_oauth_state, engine, state):
        raise HTTPException(400, "Invalid or expired OAuth state")

    user_info = await fetch_discord_user(
        code,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
    )
    token = issue_session_token(user_info, policy)
    logger.info("Issued session for %s", user_info.get("id"))
    return RedirectResponse(f"{frontend_url}/auth/callback?token={token}")


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Return the current session's identity."""
    return {
        "id": user["sub"],
        "username": user.get("username", "Unknown"),
        "avatar": user.get("avatar"),
        "is_admin": bool(user.get("is_admin")),
    }
