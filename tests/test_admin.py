"""Admin endpoints: user management, invite codes, role defaults, system usage."""

import uuid

import pytest
from sqlalchemy import select

from book_editor.core import usage_ledger
from book_editor.models.iam import InviteCode


class TestAccess:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/admin/users"),
            ("get", "/api/admin/usage"),
            ("get", "/api/admin/invite-codes"),
            ("post", "/api/admin/invite-codes"),
            ("get", "/api/admin/role-defaults"),
        ],
    )
    async def test_regular_user_forbidden(
        self, test_client, user_factory, headers_for, method, path
    ):
        user = await user_factory()
        resp = await getattr(test_client, method)(path, headers=headers_for(user))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_anonymous_unauthorized(self, test_client):
        assert (await test_client.get("/api/admin/users")).status_code == 401


class TestUsers:
    @pytest.mark.asyncio
    async def test_list_users_with_usage(
        self, test_client, db_session, admin_user, admin_headers, user_factory
    ):
        writer = await user_factory(username="writer", daily_token_limit=1000)
        await usage_ledger.record_usage(db_session, writer.user_id, "/api/edit-chunk", 200, 50)

        resp = await test_client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        users = {u["username"]: u for u in resp.json()["users"]}
        assert set(users) == {"admin", "writer"}
        assert users["writer"]["daily"]["total"] == 250
        assert users["writer"]["daily"]["percentage"] == 25
        assert users["admin"]["daily"]["total"] == 0
        assert "passwordHash" not in users["writer"]

    @pytest.mark.asyncio
    async def test_update_user(self, test_client, admin_headers, user_factory):
        writer = await user_factory(username="writer")
        resp = await test_client.put(
            f"/api/admin/users/{writer.user_id}",
            json={"role": "admin", "dailyTokenLimit": 0, "monthlyTokenLimit": 5000},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["role"] == "admin"
        assert user["dailyTokenLimit"] == 0
        assert user["monthlyTokenLimit"] == 5000

    @pytest.mark.asyncio
    async def test_deactivate_other_user(self, test_client, admin_headers, user_factory):
        writer = await user_factory(username="writer")
        resp = await test_client.put(
            f"/api/admin/users/{writer.user_id}",
            json={"isActive": False},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["isActive"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,message",
        [
            ({"role": "user"}, "Cannot change your own role"),
            ({"isActive": False}, "Cannot deactivate your own account"),
            ({"dailyTokenLimit": 0}, "Cannot set your own daily limit to restricted (0)"),
            ({"monthlyTokenLimit": 0}, "Cannot set your own monthly limit to restricted (0)"),
        ],
    )
    async def test_self_protection(
        self, test_client, admin_user, admin_headers, body, message
    ):
        resp = await test_client.put(
            f"/api/admin/users/{admin_user.user_id}", json=body, headers=admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == message

    @pytest.mark.asyncio
    async def test_admin_may_raise_own_limits(self, test_client, admin_user, admin_headers):
        resp = await test_client.put(
            f"/api/admin/users/{admin_user.user_id}",
            json={"dailyTokenLimit": 1000},
            headers=admin_headers,
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,message",
        [
            ({"role": "superuser"}, "Role must be one of: admin, user"),
            ({"dailyTokenLimit": -2}, "Daily token limit must be -1"),
            ({"monthlyTokenLimit": 100_000_001}, "Monthly token limit cannot exceed"),
            ({}, "No fields to update"),
        ],
    )
    async def test_invalid_updates(
        self, test_client, admin_headers, user_factory, body, message
    ):
        writer = await user_factory(username="writer")
        resp = await test_client.put(
            f"/api/admin/users/{writer.user_id}", json=body, headers=admin_headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith(message)

    @pytest.mark.asyncio
    async def test_unknown_user(self, test_client, admin_headers):
        resp = await test_client.put(
            f"/api/admin/users/{uuid.uuid4()}",
            json={"role": "user"},
            headers=admin_headers,
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "User not found", "code": "NOT_FOUND"}


class TestInviteCodes:
    @pytest.mark.asyncio
    async def test_create_and_list(self, test_client, admin_headers):
        created = await test_client.post("/api/admin/invite-codes", headers=admin_headers)
        assert created.status_code == 200
        code = created.json()["code"]
        assert len(code["code"]) == 16
        assert code["code"] == code["code"].upper()
        assert code["createdBy"] == "admin"
        assert code["isUsed"] is False

        listed = await test_client.get("/api/admin/invite-codes", headers=admin_headers)
        assert [c["code"] for c in listed.json()["codes"]] == [code["code"]]

    @pytest.mark.asyncio
    async def test_delete_unused(self, test_client, db_session, admin_headers, invite_factory):
        invite = await invite_factory("SPARE1")
        invite_id = invite.invite_code_id

        resp = await test_client.delete(
            f"/api/admin/invite-codes/{invite_id}", headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        remaining = (
            await db_session.execute(
                select(InviteCode).where(InviteCode.invite_code_id == invite_id)
            )
        ).scalar_one_or_none()
        assert remaining is None

    @pytest.mark.asyncio
    async def test_used_code_cannot_be_deleted(
        self, test_client, admin_headers, invite_factory
    ):
        invite = await invite_factory("SPENT1", is_used=True)
        resp = await test_client.delete(
            f"/api/admin/invite-codes/{invite.invite_code_id}", headers=admin_headers
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "Invite code not found or already used"

    @pytest.mark.asyncio
    async def test_used_code_shows_consumer(
        self, test_client, admin_headers, invite_factory, role_defaults
    ):
        await invite_factory("WELCOME1")
        await test_client.post(
            "/api/auth/register",
            json={
                "username": "writer",
                "email": "writer@example.com",
                "password": "Str0ngPass",
                "inviteCode": "WELCOME1",
            },
        )
        listed = await test_client.get("/api/admin/invite-codes", headers=admin_headers)
        codes = {c["code"]: c for c in listed.json()["codes"]}
        assert codes["WELCOME1"]["isUsed"] is True
        assert codes["WELCOME1"]["usedBy"] == "writer"


class TestRoleDefaults:
    @pytest.mark.asyncio
    async def test_list(self, test_client, admin_headers, role_defaults):
        resp = await test_client.get("/api/admin/role-defaults", headers=admin_headers)
        defaults = {d["role"]: d for d in resp.json()["roleDefaults"]}
        assert defaults["admin"]["dailyTokenLimit"] == -1
        assert defaults["user"]["dailyTokenLimit"] == 500_000
        assert defaults["user"]["monthlyTokenLimit"] == 10_000_000

    @pytest.mark.asyncio
    async def test_update_applies_to_new_registrations(
        self, test_client, db_session, admin_headers, role_defaults, invite_factory
    ):
        resp = await test_client.put(
            "/api/admin/role-defaults/user",
            json={"dailyTokenLimit": 1234},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["roleDefault"]["dailyTokenLimit"] == 1234

        await invite_factory("WELCOME1")
        registered = await test_client.post(
            "/api/auth/register",
            json={
                "username": "writer",
                "email": "writer@example.com",
                "password": "Str0ngPass",
                "inviteCode": "WELCOME1",
            },
        )
        assert registered.json()["user"]["dailyTokenLimit"] == 1234

    @pytest.mark.asyncio
    async def test_invalid_role(self, test_client, admin_headers):
        resp = await test_client.put(
            "/api/admin/role-defaults/editor",
            json={"dailyTokenLimit": 5},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid role. Must be one of: admin, user"

    @pytest.mark.asyncio
    async def test_missing_row(self, test_client, admin_headers):
        resp = await test_client.put(
            "/api/admin/role-defaults/user",
            json={"dailyTokenLimit": 5},
            headers=admin_headers,
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "Role defaults not found"


@pytest.mark.asyncio
async def test_system_usage(test_client, db_session, admin_headers, user_factory):
    a = await user_factory()
    b = await user_factory()
    await usage_ledger.record_usage(db_session, a.user_id, "/api/edit-chunk", 10, 5)
    await usage_ledger.record_usage(db_session, a.user_id, "/api/edit-chunk", 10, 5)
    await usage_ledger.record_usage(db_session, b.user_id, "/api/generate-style-guide", 3, 2)

    resp = await test_client.get("/api/admin/usage", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["system"] == {"totalCalls": 3, "totalTokens": 35, "uniqueUsers": 2}
    assert len(data["users"]) == 3

