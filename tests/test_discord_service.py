"""
tests/test_discord_service.py — Discord REST client tests
==========================================================
Drives :class:`DiscordClient` against an ``httpx.MockTransport`` so no
network traffic leaves the test process.
"""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import run_async

from gatehouse.services.discord_service import DiscordAPIError, DiscordClient
from gatehouse.services.embeds import build_approved_embed

GUILD = 111
ROLE = 222


def _client(handler) -> tuple[DiscordClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = DiscordClient("bot-token", GUILD, ROLE, transport=httpx.MockTransport(_record))
    return client, seen


class TestIsMember:
    def test_member_found(self):
        client, seen = _client(lambda r: httpx.Response(200, json={"user": {"id": "5"}}))
        assert run_async(client.is_member(5)) is True
        assert seen[0].url.path == f"/api/v10/guilds/{GUILD}/members/5"
        assert seen[0].headers["Authorization"] == "Bot bot-token"

    def test_unknown_member_is_false(self):
        client, _ = _client(lambda r: httpx.Response(404, json={"message": "Unknown Member"}))
        assert run_async(client.is_member(5)) is False

    def test_other_errors_propagate(self):
        client, _ = _client(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(DiscordAPIError) as excinfo:
            run_async(client.is_member(5))
        assert excinfo.value.status_code == 500


class TestRoles:
    def test_grant_puts_role(self):
        client, seen = _client(lambda r: httpx.Response(204))
        run_async(client.grant_whitelist_role(77))
        assert seen[0].method == "PUT"
        assert seen[0].url.path == f"/api/v10/guilds/{GUILD}/members/77/roles/{ROLE}"

    def test_revoke_deletes_role(self):
        client, seen = _client(lambda r: httpx.Response(204))
        run_async(client.revoke_whitelist_role(77))
        assert seen[0].method == "DELETE"
        assert seen[0].url.path.endswith(f"/members/77/roles/{ROLE}")

    def test_forbidden_raises(self):
        client, _ = _client(lambda r: httpx.Response(403, json={"message": "Missing Permissions"}))
        with pytest.raises(DiscordAPIError, match="403"):
            run_async(client.grant_whitelist_role(77))


class TestSendEmbedDM:
    def test_opens_channel_then_posts_embed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/users/@me/channels"):
                return httpx.Response(200, json={"id": "9001"})
            return httpx.Response(200, json={"id": "1"})

        client, seen = _client(handler)
        run_async(client.send_embed_dm(77, build_approved_embed("Test Guild")))

        assert [r.url.path for r in seen] == [
            "/api/v10/users/@me/channels",
            "/api/v10/channels/9001/messages",
        ]
        assert json.loads(seen[0].content) == {"recipient_id": "77"}
        payload = json.loads(seen[1].content)
        assert payload["embeds"][0]["title"] == "✅ Application Approved!"
        assert "Test Guild" in payload["embeds"][0]["description"]

    def test_closed_dms_raise(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/users/@me/channels"):
                return httpx.Response(200, json={"id": "9001"})
            return httpx.Response(403, json={"message": "Cannot send messages to this user"})

        client, _ = _client(handler)
        with pytest.raises(DiscordAPIError):
            run_async(client.send_embed_dm(77, build_approved_embed("Test Guild")))
