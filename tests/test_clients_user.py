"""Tests for clients/user.py."""

import json

import pytest
from httpx import Response

from cpharness.clients import UserClient
from cpharness.core.errors import ApiError, ResourceMissingError
from cpharness.models import UserSpec
from cpharness.results import DeleteOutcome

USER = {"id": "u1", "email": "alice@test.com", "planId": "basic", "supportedScopes": ["a"]}


@pytest.fixture
def users(transport, tokens, sleep):
    return UserClient(transport, tokens, default_password="tester-pw", sleep=sleep)


class TestCreate:
    """Tests for UserClient.create."""

    @pytest.mark.asyncio
    async def test_signup_is_unauthenticated(self, api, users):
        route = api.post("/user/create").mock(return_value=Response(200, json=USER))

        user = await users.create(UserSpec(email="alice@test.com", first_name="alice"))

        assert user.id == "u1"
        request = route.calls.last.request
        assert "Authorization" not in request.headers
        assert json.loads(request.content) == {
            "email": "alice@test.com",
            "firstName": "alice",
            "lastName": "Tester",
            "password": "tester-pw",
            "confirmed": "",
        }

    @pytest.mark.asyncio
    async def test_unconfirmed_omits_flag(self, api, users):
        route = api.post("/user/create").mock(return_value=Response(200, json=USER))

        await users.create(UserSpec(email="alice@test.com", first_name="alice", confirmed=False))

        assert "confirmed" not in json.loads(route.calls.last.request.content)

    @pytest.mark.asyncio
    async def test_failed_create_cleans_up_partial_account(self, api, users):
        api.post("/user/create").mock(return_value=Response(500, json={"message": "half done"}))
        api.get("/admin/users").mock(return_value=Response(200, json=USER))
        delete_route = api.delete("/admin/user/u1").mock(return_value=Response(200))

        with pytest.raises(ApiError) as exc_info:
            await users.create(UserSpec(email="alice@test.com", first_name="alice"))

        assert exc_info.value.message.startswith("Failed to create user alice@test.com")
        assert delete_route.call_count == 1


class TestDelete:
    """Tests for deletion by id or email."""

    @pytest.mark.asyncio
    async def test_by_id_skips_lookup(self, api, users):
        lookup = api.get("/admin/users")
        route = api.delete("/admin/user/u1").mock(return_value=Response(200))

        result = await users.delete("u1")

        assert result.outcome is DeleteOutcome.success
        assert lookup.call_count == 0
        assert route.calls.last.request.url.params["force"] == "true"

    @pytest.mark.asyncio
    async def test_by_email_looks_up_id(self, api, users):
        lookup = api.get("/admin/users").mock(return_value=Response(200, json=USER))
        route = api.delete("/admin/user/u1").mock(return_value=Response(200))

        result = await users.delete("alice@test.com")

        assert result.outcome is DeleteOutcome.success
        assert lookup.calls.last.request.url.params["email"] == "alice@test.com"
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_by_email_missing_user(self, api, users):
        api.get("/admin/users").mock(return_value=Response(404))
        route = api.delete("/admin/user/u1")

        result = await users.delete("alice@test.com")

        assert result.outcome is DeleteOutcome.already_absent
        assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_by_email_lookup_error(self, api, users):
        api.get("/admin/users").mock(return_value=Response(500))

        result = await users.delete("alice@test.com")

        assert result.outcome is DeleteOutcome.failed

    @pytest.mark.asyncio
    async def test_double_delete_never_fails(self, api, users):
        api.delete("/admin/user/u1").mock(side_effect=[Response(200), Response(404)])

        assert (await users.delete("u1")).outcome is DeleteOutcome.success
        assert (await users.delete("u1")).outcome is DeleteOutcome.already_absent


class TestExists:
    """Tests for existence checks."""

    @pytest.mark.asyncio
    async def test_by_id(self, api, users):
        route = api.get("/admin/users").mock(side_effect=[Response(200, json=USER), Response(404)])

        assert await users.exists("u1") is True
        assert await users.exists("u1") is False
        assert route.calls.last.request.url.params["id"] == "u1"

    @pytest.mark.asyncio
    async def test_by_email(self, api, users):
        route = api.get("/admin/users").mock(return_value=Response(200, json=USER))

        assert await users.exists("alice@test.com") is True
        assert route.calls.last.request.url.params["email"] == "alice@test.com"


class TestUpdates:
    """Tests for plan and scope updates."""

    @pytest.mark.asyncio
    async def test_update_plan(self, api, users):
        route = api.patch("/admin/users/u1").mock(return_value=Response(200))

        await users.update_plan("u1", "premium")

        assert json.loads(route.calls.last.request.content) == {"planId": "premium"}

    @pytest.mark.asyncio
    async def test_add_supported_scope(self, api, users):
        api.get("/admin/users").mock(return_value=Response(200, json=USER))
        route = api.patch("/admin/users/u1").mock(return_value=Response(200))

        scopes = await users.add_supported_scope("b", "alice@test.com")

        assert scopes == ["a", "b"]
        assert json.loads(route.calls.last.request.content) == {"supportedScopes": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_add_existing_scope_is_noop(self, api, users):
        api.get("/admin/users").mock(return_value=Response(200, json=USER))
        route = api.patch("/admin/users/u1")

        assert await users.add_supported_scope("a", "alice@test.com") == ["a"]
        assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_add_scope_unknown_user(self, api, users):
        api.get("/admin/users").mock(return_value=Response(404))

        with pytest.raises(ResourceMissingError):
            await users.add_supported_scope("a", "ghost@test.com")


class TestResetCode:
    @pytest.mark.asyncio
    async def test_reads_code_from_key_dump(self, api, users, sleep):
        api.get("/admin/redis").mock(
            return_value=Response(200, json=["session:x", "resetcode-redis:u1:abc123", "resetcode-redis:u2:zzz"])
        )

        assert await users.get_reset_code("u1") == "abc123"
        sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_missing_code(self, api, users):
        api.get("/admin/redis").mock(return_value=Response(200, json=[]))

        with pytest.raises(ResourceMissingError):
            await users.get_reset_code("u1")
