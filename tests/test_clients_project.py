"""Tests for clients/project.py."""

import json

import pytest
from conftest import bearer
from httpx import Response

from cpharness.clients import ProjectClient
from cpharness.core.errors import ApiError, NotFoundError
from cpharness.models import ProjectSpec
from cpharness.results import DeleteOutcome


@pytest.fixture
def projects(transport, tokens):
    return ProjectClient(transport, tokens, default_cluster="us-west1-c1")


class TestCreate:
    """Tests for ProjectClient.create."""

    @pytest.mark.asyncio
    async def test_payload_defaults(self, api, projects):
        route = api.post("/projects").mock(return_value=Response(200, json={"projectId": "qatcabc", "id": "uid-1"}))

        project = await projects.create(ProjectSpec(project_id="qatcabc"))

        assert project.project_id == "qatcabc"
        assert project.id == "uid-1"
        request = route.calls.last.request
        assert json.loads(request.content) == {
            "projectId": "qatcabc",
            "cluster": "us-west1-c1",
            "environment": False,
            "metadata": {"type": "production"},
        }
        assert request.headers["Authorization"] == bearer()

    @pytest.mark.asyncio
    async def test_owner_token(self, api, projects):
        route = api.post("/projects").mock(return_value=Response(200, json={"projectId": "p1"}))

        await projects.create(ProjectSpec(project_id="p1", owner_email="owner@test.com"))

        assert route.calls.last.request.headers["Authorization"] == bearer("owner@test.com")

    @pytest.mark.asyncio
    async def test_empty_body_falls_back_to_spec_id(self, api, projects):
        api.post("/projects").mock(return_value=Response(200))

        project = await projects.create(ProjectSpec(project_id="p1"))

        assert project.project_id == "p1"

    @pytest.mark.asyncio
    async def test_failure_has_context(self, api, projects):
        api.post("/projects").mock(return_value=Response(409, json={"message": "taken"}))

        with pytest.raises(ApiError) as exc_info:
            await projects.create(ProjectSpec(project_id="p1"))

        assert exc_info.value.message.startswith("Failed to create project p1")
        assert "taken" in exc_info.value.message

    def test_environment_spec(self, projects):
        spec = projects.environment_spec("root", "dev")

        assert spec.project_id == "root-dev"
        assert spec.environment is True
        assert spec.owner_email == "qa.team.user@example.com"

    def test_environment_spec_random_name(self, projects):
        spec = projects.environment_spec("root")

        assert spec.project_id.startswith("root-")
        assert len(spec.project_id) == len("root-") + 6


class TestReads:
    """Tests for fetch/exists and friends."""

    @pytest.mark.asyncio
    async def test_fetch_not_found_raises(self, api, projects):
        api.get("/admin/projects/p1").mock(return_value=Response(404))

        with pytest.raises(NotFoundError):
            await projects.fetch("p1")

    @pytest.mark.asyncio
    async def test_exists(self, api, projects):
        api.get("/admin/projects/p1").mock(return_value=Response(200, json={"projectId": "p1"}))
        api.get("/admin/projects/p2").mock(return_value=Response(404))

        assert await projects.exists("p1") is True
        assert await projects.exists("p2") is False

    @pytest.mark.asyncio
    async def test_exists_propagates_other_errors(self, api, projects):
        api.get("/admin/projects/p1").mock(return_value=Response(500))

        with pytest.raises(ApiError):
            await projects.exists("p1")

    @pytest.mark.asyncio
    async def test_fetch_all(self, api, projects):
        api.get("/admin/projects").mock(
            return_value=Response(200, json=[{"projectId": "a"}, {"projectId": "b", "environment": True}])
        )

        result = await projects.fetch_all()

        assert [p.project_id for p in result] == ["a", "b"]
        assert result[1].environment is True

    @pytest.mark.asyncio
    async def test_master_token(self, api, projects):
        api.get("/projects/p1/masterToken").mock(return_value=Response(200, json={"masterToken": "mt"}))

        assert await projects.fetch_master_token("p1") == "mt"

    @pytest.mark.asyncio
    async def test_owner_email(self, api, projects):
        api.get("/admin/projects/p1").mock(return_value=Response(200, json={"projectId": "p1", "ownerId": "u1"}))
        route = api.get("/admin/users").mock(return_value=Response(200, json={"email": "owner@test.com"}))

        assert await projects.get_owner_email("p1") == "owner@test.com"
        assert route.calls.last.request.url.params["id"] == "u1"


class TestUpdates:
    """Tests for updates."""

    @pytest.mark.asyncio
    async def test_update_metadata_merges(self, api, projects):
        api.get("/admin/projects/p1").mock(
            return_value=Response(200, json={"projectId": "p1", "metadata": {"type": "production", "a": 1}})
        )
        route = api.patch("/projects/p1").mock(return_value=Response(200))

        merged = await projects.update_metadata("p1", {"a": 2, "b": 3})

        assert merged == {"type": "production", "a": 2, "b": 3}
        assert json.loads(route.calls.last.request.content) == {"metadata": merged}

    @pytest.mark.asyncio
    async def test_support_access_uses_owner_token(self, api, projects):
        route = api.patch("/projects/p1/support-access").mock(return_value=Response(200))

        await projects.allow_support_access("p1", "owner@test.com", allow=False)

        request = route.calls.last.request
        assert request.headers["Authorization"] == bearer("owner@test.com")
        assert json.loads(request.content) == {"allow": False}


class TestDelete:
    """Tests for idempotent project deletion."""

    @pytest.mark.asyncio
    async def test_success(self, api, projects):
        api.delete("/projects/p1").mock(return_value=Response(200))

        result = await projects.delete("p1")

        assert result.outcome is DeleteOutcome.success
        assert result.ok

    @pytest.mark.asyncio
    async def test_double_delete_never_fails(self, api, projects):
        api.delete("/projects/p1").mock(side_effect=[Response(200), Response(404)])

        first = await projects.delete("p1")
        second = await projects.delete("p1")

        assert first.outcome is DeleteOutcome.success
        assert second.outcome is DeleteOutcome.already_absent
        assert second.ok

    @pytest.mark.asyncio
    async def test_server_error_is_failed_result(self, api, projects):
        api.delete("/projects/p1").mock(return_value=Response(500, json={"message": "db down"}))

        result = await projects.delete("p1")

        assert result.outcome is DeleteOutcome.failed
        assert "WARNING: Failed to delete project p1" in result.reason
        assert "db down" in result.reason

    @pytest.mark.asyncio
    async def test_login_failure_is_failed_result(self, api, projects):
        api.routes["login"].side_effect = [Response(401)]

        result = await projects.delete("p1")

        assert result.outcome is DeleteOutcome.failed


@pytest.mark.asyncio
async def test_create_environment(api, projects):
    route = api.post("/projects").mock(return_value=Response(200, json={"projectId": "root-qa", "environment": True}))

    project = await projects.create_environment("root", "qa")

    assert project.project_id == "root-qa"
    assert json.loads(route.calls.last.request.content)["environment"] is True
