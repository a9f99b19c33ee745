"""
gatehouse.services.discord_service — Discord REST client (bot token)
=====================================================================

The portal never runs a gateway connection; everything it needs from
Discord is a handful of REST calls made with the bot token:

* guild membership lookups (``GET /guilds/{guild}/members/{user}``)
* whitelist role grant / revoke
* embed DMs (open a DM channel, then post to it)

Every call is attempted once with a 10 s timeout.  Non-2xx responses raise
:class:`DiscordAPIError`; transport failures surface as ``httpx.HTTPError``.
"""

from __future__ import annotations

import logging

import discord
import httpx

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
REQUEST_TIMEOUT_SECONDS = 10


class DiscordAPIError(Exception):
    """Discord answered with a non-success status code."""

    def __init__(self, status_code: int, endpoint: str, body: str = "") -> None:
        super().__init__(f"Discord API error {status_code} on {endpoint}")
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body


class DiscordClient:
    """Thin async wrapper over the Discord REST endpoints the portal uses.

    Parameters
    ----------
    bot_token:
        Bot token with ``Manage Roles`` in the guild.
    guild_id, whitelist_role_id:
        Snowflakes from ``config.yaml``.
    transport:
        Optional httpx transport; tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        bot_token: str,
        guild_id: int,
        whitelist_role_id: int,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.guild_id = guild_id
        self.whitelist_role_id = whitelist_role_id
        self._headers = {"Authorization": f"Bot {bot_token}"}
        self._transport = transport

    async def _request(
        self, method: str, endpoint: str, *, json: dict | None = None
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=DISCORD_API,
            headers=self._headers,
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            resp = await client.request(method, endpoint, json=json)

        if resp.status_code >= 400:
            logger.warning(
                "Discord API %s %s → %d: %s",
                method, endpoint, resp.status_code, resp.text[:200],
            )
            raise DiscordAPIError(resp.status_code, endpoint, resp.text)
        return resp

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def is_member(self, user_id: int) -> bool:
        """Return whether *user_id* is currently in the guild."""
        try:
            await self._request("GET", f"/guilds/{self.guild_id}/members/{user_id}")
        except DiscordAPIError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------
    def _role_endpoint(self, user_id: int) -> str:
        return (
            f"/guilds/{self.guild_id}/members/{user_id}"
            f"/roles/{self.whitelist_role_id}"
        )

    async def grant_whitelist_role(self, user_id: int) -> None:
        await self._request("PUT", self._role_endpoint(user_id))
        logger.info("Granted whitelist role to %s", user_id)

    async def revoke_whitelist_role(self, user_id: int) -> None:
        await self._request("DELETE", self._role_endpoint(user_id))
        logger.info("Revoked whitelist role from %s", user_id)

    # ------------------------------------------------------------------
    # Direct messages
    # ------------------------------------------------------------------
    async def send_embed_dm(self, user_id: int, embed: discord.Embed) -> None:
        """Open (or reuse) the DM channel with *user_id* and post *embed*."""
        channel = (
            await self._request(
                "POST", "/users/@me/channels", json={"recipient_id": str(user_id)}
            )
        ).json()
        await self._request(
            "POST",
            f"/channels/{channel['id']}/messages",
            json={"embeds": [embed.to_dict()]},
        )
        logger.info("Sent DM '%s' to %s", embed.title, user_id)
