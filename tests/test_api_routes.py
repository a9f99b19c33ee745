"""
tests/test_api_routes.py — HTTP surface integration tests
==========================================================
Exercises the FastAPI app end-to-end with ``TestClient``.  The database is
the in-memory SQLite fixture, audio goes to ``tmp_path``, and the Discord
client is a mock; all three are swapped in through ``dependency_overrides``.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import add_question, make_admin_token, make_token
from fastapi import HTTPException
from fastapi.testclient import TestClient

from gatehouse.api import deps
from gatehouse.api.main import app
from gatehouse.config import GatehouseConfig
from gatehouse.database.models import QuestionType
from gatehouse.services.audio_store import AUDIO_URL_PREFIX, AudioStore
from gatehouse.services.discord_service import DiscordAPIError, DiscordClient

CFG = GatehouseConfig(
    community_name="Test Guild",
    guild_id=1,
    whitelist_role_id=2,
    admin_ids=frozenset({99999}),
    audio_retention_days=7,
)


@pytest.fixture
def api(db_engine, tmp_path):
    discord = MagicMock(spec=DiscordClient)
    discord.is_member = AsyncMock(return_value=True)
    discord.grant_whitelist_role = AsyncMock()
    discord.revoke_whitelist_role = AsyncMock()
    discord.send_embed_dm = AsyncMock()
    store = AudioStore(tmp_path)

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: CFG
    app.dependency_overrides[deps.get_discord] = lambda: discord
    app.dependency_overrides[deps.get_optional_discord] = lambda: discord
    app.dependency_overrides[deps.get_audio_store] = lambda: store

    yield SimpleNamespace(
        client=TestClient(app), engine=db_engine, discord=discord, store=store
    )
    app.dependency_overrides.clear()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


APPLICANT = _auth(make_token())
ADMIN = _auth(make_admin_token())


def _apply(api, answers: dict, files: dict | None = None, headers=APPLICANT):
    return api.client.post(
        "/api/apply",
        data={"answers": json.dumps({str(k): v for k, v in answers.items()})},
        files=files,
        headers=headers,
    )


# ===========================================================================
# Public
# ===========================================================================
class TestPublic:
    def test_health(self, api):
        assert api.client.get("/api/health").json() == {"status": "ok"}

    def test_questions_in_display_order(self, api):
        second = add_question(api.engine, "Second", order=1)
        first = add_question(api.engine, "First", order=0)

        resp = api.client.get("/api/questions")

        assert resp.status_code == 200
        assert [q["id"] for q in resp.json()["questions"]] == [first, second]

    def test_check_guild_requires_user_id(self, api):
        resp = api.client.get("/api/check-guild")
        assert resp.status_code == 400
        assert resp.json() == {"error": "User ID required"}

    def test_check_guild_member(self, api):
        resp = api.client.get("/api/check-guild", params={"user_id": "1000"})
        assert resp.json() == {"in_guild": True}
        api.discord.is_member.assert_awaited_once_with(1000)

    def test_check_guild_upstream_failure_reports_false(self, api):
        api.discord.is_member.side_effect = DiscordAPIError(500, "/guilds")
        resp = api.client.get("/api/check-guild", params={"user_id": "1000"})
        assert resp.status_code == 200
        assert resp.json() == {"in_guild": False}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    def test_me(self, api):
        resp = api.client.get("/api/auth/me", headers=APPLICANT)
        assert resp.json() == {
            "id": "1000", "username": "Applicant", "avatar": None, "is_admin": False,
        }

    def test_missing_token(self, api):
        resp = api.client.get("/api/my-application")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_garbage_token(self, api):
        resp = api.client.get("/api/my-application", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid token"}

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/admin/applications"),
        ("PUT", "/api/admin/applications/1"),
        ("DELETE", "/api/admin/applications/1"),
        ("POST", "/api/admin/questions"),
        ("PUT", "/api/admin/questions/reorder"),
        ("PUT", "/api/admin/questions/1"),
        ("DELETE", "/api/admin/questions/1"),
    ])
    def test_admin_routes_reject_non_admins(self, api, method, path):
        resp = api.client.request(method, path, headers=APPLICANT, json={})
        assert resp.status_code == 401

    def test_discord_dependency_requires_bot_token(self, monkeypatch):
        monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)
        assert deps.get_optional_discord(CFG) is None
        with pytest.raises(HTTPException) as excinfo:
            deps.get_discord(None)
        assert excinfo.value.status_code == 500

    def test_discord_dependency_builds_client(self, monkeypatch):
        monkeypatch.setenv("DISCORD_BOT_TOKEN", "bot-token")
        client = deps.get_optional_discord(CFG)
        assert isinstance(client, DiscordClient)
        assert client.whitelist_role_id == CFG.whitelist_role_id
        assert deps.get_discord(client) is client


# ===========================================================================
# Applicant flow
# ===========================================================================
class TestApply:
    def test_submit_and_read_back(self, api):
        q1 = add_question(api.engine, "Q1")

        resp = _apply(api, {q1: "hello"})

        assert resp.status_code == 201
        app_data = resp.json()["application"]
        assert app_data["status"] == "pending"
        assert app_data["answers"][0]["text_answer"] == "hello"

        mine = api.client.get("/api/my-application", headers=APPLICANT).json()
        assert mine["application"]["id"] == app_data["id"]

    def test_no_application_yet(self, api):
        resp = api.client.get("/api/my-application", headers=APPLICANT)
        assert resp.json() == {"application": None}

    def test_duplicate_pending_rejected(self, api):
        q1 = add_question(api.engine, "Q1")
        _apply(api, {q1: "one"})

        resp = _apply(api, {q1: "two"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "You already have a pending application"}

    def test_non_member_forbidden(self, api):
        q1 = add_question(api.engine, "Q1")
        api.discord.is_member.return_value = False

        resp = _apply(api, {q1: "hello"})

        assert resp.status_code == 403
        assert "join the server" in resp.json()["error"]

    def test_membership_lookup_failure_is_bad_gateway(self, api):
        q1 = add_question(api.engine, "Q1")
        api.discord.is_member.side_effect = DiscordAPIError(500, "/guilds")

        resp = _apply(api, {q1: "hello"})

        assert resp.status_code == 502

    def test_invalid_answers_json(self, api):
        resp = api.client.post(
            "/api/apply", data={"answers": "{not json"}, headers=APPLICANT
        )
        assert resp.status_code == 400
        assert "not valid JSON" in resp.json()["error"]

    def test_structured_answer_value_rejected(self, api):
        q1 = add_question(api.engine, "Q1")
        resp = _apply(api, {q1: {"nested": "object"}})
        assert resp.status_code == 400
        assert resp.json() == {"error": f"Answer to question {q1} must be text"}
        assert api.client.get("/api/my-application", headers=APPLICANT).json() == {
            "application": None
        }

    def test_missing_required_answer(self, api):
        add_question(api.engine, "Tell us about yourself")
        resp = _apply(api, {})
        assert resp.status_code == 400
        assert "Tell us about yourself" in resp.json()["error"]

    def test_audio_part_is_stored(self, api):
        q1 = add_question(api.engine, "Q1")
        q2 = add_question(api.engine, "Say hi", QuestionType.AUDIO)

        resp = _apply(
            api, {q1: "text"},
            files={f"audio_{q2}": ("hi.webm", b"\x1aE\xdf\xa3", "audio/webm")},
        )

        assert resp.status_code == 201
        answers = {a["question_id"]: a for a in resp.json()["application"]["answers"]}
        url = answers[q2]["audio_url"]
        assert url.startswith(AUDIO_URL_PREFIX)
        assert (api.store.audio_dir / api.store.object_id(url)).read_bytes() == b"\x1aE\xdf\xa3"

    def test_disallowed_audio_type(self, api):
        q1 = add_question(api.engine, "Say hi", QuestionType.AUDIO)
        resp = _apply(
            api, {}, files={f"audio_{q1}": ("x.exe", b"MZ", "application/x-msdownload")}
        )
        assert resp.status_code == 400
        assert "not allowed" in resp.json()["error"]

    def test_revision_without_request_is_rejected(self, api):
        q1 = add_question(api.engine, "Q1")
        _apply(api, {q1: "hello"})
        resp = api.client.post(
            "/api/apply/revision",
            data={"answers": json.dumps({str(q1): "again"})},
            headers=APPLICANT,
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "No revision requested"}


# ===========================================================================
# Admin review
# ===========================================================================
class TestAdminReview:
    @pytest.fixture
    def submitted(self, api):
        self.q1 = add_question(api.engine, "Q1")
        self.q2 = add_question(api.engine, "Q2")
        return _apply(api, {self.q1: "one", self.q2: "two"}).json()["application"]

    def _review(self, api, application_id, **body):
        return api.client.put(
            f"/api/admin/applications/{application_id}", json=body, headers=ADMIN
        )

    def test_list_applications(self, api, submitted):
        resp = api.client.get("/api/admin/applications", headers=ADMIN)
        apps = resp.json()["applications"]
        assert [a["id"] for a in apps] == [submitted["id"]]
        assert apps[0]["answers"][0]["question"]["text"] == "Q1"

    def test_approve_grants_role_and_reports_side_effects(self, api, submitted):
        resp = self._review(api, submitted["id"], status="approved")

        assert resp.status_code == 200
        body = resp.json()
        assert body["application"]["status"] == "approved"
        assert body["application"]["reviewer_name"] == "FixtureAdmin"
        assert body["side_effects"] == [
            {"action": "grant_role", "ok": True, "error": None},
            {"action": "send_dm", "ok": True, "error": None},
        ]
        api.discord.grant_whitelist_role.assert_awaited_once_with(1000)

    def test_decision_survives_discord_failure(self, api, submitted):
        api.discord.send_embed_dm.side_effect = DiscordAPIError(403, "/channels")

        resp = self._review(api, submitted["id"], status="denied", denial_reason="incomplete")

        assert resp.status_code == 200
        assert resp.json()["application"]["status"] == "denied"
        assert resp.json()["side_effects"][1]["ok"] is False
        mine = api.client.get("/api/my-application", headers=APPLICANT).json()
        assert mine["application"]["denial_reason"] == "incomplete"

    def test_decision_commits_without_bot_token(self, api, submitted, monkeypatch):
        monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)
        del app.dependency_overrides[deps.get_optional_discord]

        resp = self._review(api, submitted["id"], status="approved")

        assert resp.status_code == 200
        assert resp.json()["application"]["status"] == "approved"
        assert resp.json()["side_effects"] == [
            {"action": "grant_role", "ok": False, "error": "Discord bot is not configured"},
            {"action": "send_dm", "ok": False, "error": "Discord bot is not configured"},
        ]
        mine = api.client.get("/api/my-application", headers=APPLICANT).json()
        assert mine["application"]["status"] == "approved"

    def test_invalid_status(self, api, submitted):
        resp = self._review(api, submitted["id"], status="pending")
        assert resp.status_code == 400

    def test_revision_needs_questions(self, api, submitted):
        resp = self._review(api, submitted["id"], status="revision", revision_question_ids=[])
        assert resp.status_code == 400
        api.discord.send_embed_dm.assert_not_awaited()

    def test_second_decision_rejected(self, api, submitted):
        self._review(api, submitted["id"], status="approved")
        resp = self._review(api, submitted["id"], status="denied")
        assert resp.status_code == 400
        assert "approved" in resp.json()["error"]

    def test_unknown_application(self, api):
        resp = self._review(api, 4040, status="approved")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Application not found"}

    def test_revision_round_trip(self, api, submitted):
        resp = self._review(
            api, submitted["id"],
            status="revision",
            revision_reason="more detail",
            revision_question_ids=[self.q2],
        )
        assert resp.json()["application"]["revision_questions"] == [
            {"id": self.q2, "text": "Q2"}
        ]
        _, embed = api.discord.send_embed_dm.await_args.args
        assert "Q2" in embed.fields[0].value

        resp = api.client.post(
            "/api/apply/revision",
            data={"answers": json.dumps({str(self.q1): "ignored", str(self.q2): "better"})},
            headers=APPLICANT,
        )

        assert resp.status_code == 200
        app_data = resp.json()["application"]
        assert app_data["status"] == "pending"
        assert app_data["revised_question_ids"] == [self.q2]
        texts = {a["question_id"]: a["text_answer"] for a in app_data["answers"]}
        assert texts == {self.q1: "one", self.q2: "better"}

    def test_delete_allows_reapplying(self, api, submitted):
        resp = api.client.delete(
            f"/api/admin/applications/{submitted['id']}", headers=ADMIN
        )
        assert resp.json() == {"success": True}
        assert api.client.get("/api/my-application", headers=APPLICANT).json() == {
            "application": None
        }
        assert _apply(api, {self.q1: "again", self.q2: "again"}).status_code == 201


# ===========================================================================
# Admin question catalog
# ===========================================================================
class TestAdminQuestions:
    def test_create(self, api):
        resp = api.client.post(
            "/api/admin/questions",
            json={"text": "Favourite map?", "type": "short_text"},
            headers=ADMIN,
        )
        assert resp.status_code == 201
        assert resp.json()["question"]["order"] == 0
        assert resp.json()["question"]["required"] is True

    def test_create_invalid_type(self, api):
        resp = api.client.post(
            "/api/admin/questions",
            json={"text": "Q", "type": "essay"},
            headers=ADMIN,
        )
        assert resp.status_code == 400

    def test_create_missing_field_is_400(self, api):
        resp = api.client.post(
            "/api/admin/questions", json={"type": "short_text"}, headers=ADMIN
        )
        assert resp.status_code == 400
        assert "text" in resp.json()["error"]

    def test_update(self, api):
        qid = add_question(api.engine, "Old")
        resp = api.client.put(
            f"/api/admin/questions/{qid}",
            json={"text": "New", "type": "long_text", "required": False, "order": 4},
            headers=ADMIN,
        )
        assert resp.json()["question"] == {
            "id": qid, "text": "New", "type": "long_text", "required": False, "order": 4,
        }

    def test_reorder(self, api):
        q1 = add_question(api.engine, "Q1")
        q2 = add_question(api.engine, "Q2")
        q3 = add_question(api.engine, "Q3")

        resp = api.client.put(
            "/api/admin/questions/reorder",
            json={"question_ids": [q3, q1, q2]},
            headers=ADMIN,
        )

        assert resp.json() == {"success": True}
        listed = api.client.get("/api/questions").json()["questions"]
        assert [(q["id"], q["order"]) for q in listed] == [(q3, 0), (q1, 1), (q2, 2)]

    def test_reorder_empty(self, api):
        resp = api.client.put(
            "/api/admin/questions/reorder", json={"question_ids": []}, headers=ADMIN
        )
        assert resp.status_code == 400

    def test_reorder_partial_list(self, api):
        q1 = add_question(api.engine, "Q1")
        q2 = add_question(api.engine, "Q2")

        resp = api.client.put(
            "/api/admin/questions/reorder",
            json={"question_ids": [q2]},
            headers=ADMIN,
        )

        assert resp.status_code == 400
        listed = api.client.get("/api/questions").json()["questions"]
        assert [(q["id"], q["order"]) for q in listed] == [(q1, 0), (q2, 1)]

    def test_reorder_unknown_id(self, api):
        q1 = add_question(api.engine, "Q1")
        resp = api.client.put(
            "/api/admin/questions/reorder",
            json={"question_ids": [q1, 777]},
            headers=ADMIN,
        )
        assert resp.status_code == 404

    def test_delete_removes_answers(self, api):
        q1 = add_question(api.engine, "Q1")
        q2 = add_question(api.engine, "Q2", required=False)
        _apply(api, {q1: "keep", q2: "drop"})

        resp = api.client.delete(f"/api/admin/questions/{q2}", headers=ADMIN)

        assert resp.json() == {"success": True}
        mine = api.client.get("/api/my-application", headers=APPLICANT).json()
        assert [a["question_id"] for a in mine["application"]["answers"]] == [q1]

    def test_delete_unknown(self, api):
        resp = api.client.delete("/api/admin/questions/999", headers=ADMIN)
        assert resp.status_code == 404


# ===========================================================================
# Cleanup trigger
# ===========================================================================
class TestCleanup:
    def test_unconfigured_secret_rejects(self, api, monkeypatch):
        monkeypatch.delenv("CLEANUP_SECRET", raising=False)
        resp = api.client.post("/api/cleanup", headers=_auth("anything"))
        assert resp.status_code == 401

    def test_wrong_secret_rejects(self, api, monkeypatch):
        monkeypatch.setenv("CLEANUP_SECRET", "s3cret-value")
        resp = api.client.post("/api/cleanup", headers=_auth("nope"))
        assert resp.status_code == 401

    def test_admin_jwt_is_not_enough(self, api, monkeypatch):
        monkeypatch.setenv("CLEANUP_SECRET", "s3cret-value")
        resp = api.client.post("/api/cleanup", headers=ADMIN)
        assert resp.status_code == 401

    def test_runs_sweep(self, api, monkeypatch):
        monkeypatch.setenv("CLEANUP_SECRET", "s3cret-value")
        resp = api.client.post("/api/cleanup", headers=_auth("s3cret-value"))
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Cleaned up 0 audio files, 0 failed",
            "deleted": 0,
            "failed": 0,
            "total": 0,
        }
