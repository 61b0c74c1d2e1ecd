"""
Integration tests for Project endpoints.

Tests cover:
- Project CRUD behind the capability gate
- Effective role endpoint (role, path, capabilities)
- Uniform 404 for missing vs. inaccessible projects
- List scoping and pagination
- Direct membership management
- Platform operator override
"""

from __future__ import annotations

import uuid

import pytest

from backoffice.authz import MemoryAccessStore
from backoffice.core.database import get_session_context
from backoffice.models.project import ProjectMember


async def _create_project(client, headers, name="Site", team_id=None):
    body = {"name": name}
    if team_id:
        body["team_id"] = str(team_id)
    resp = await client.post("/api/v1/projects", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _create_team(client, headers, name="Team"):
    resp = await client.post("/api/v1/teams", json={"name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _invite(client, headers, team_id, email, role):
    resp = await client.post(
        f"/api/v1/teams/{team_id}/members", json={"email": email, "role": role}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, client):
        resp = await client.get("/api/v1/projects")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_malformed_bearer_is_401(self, client):
        resp = await client.get("/api/v1/projects", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user_is_401(self, client, auth_headers):
        resp = await client.get("/api/v1/projects", headers=auth_headers(uuid.uuid4()))
        assert resp.status_code == 401


class TestProjectCrud:

    @pytest.mark.asyncio
    async def test_create_personal_project(self, client, make_user, auth_headers):
        owner = await make_user()
        data = await _create_project(client, auth_headers(owner), name="  Landing  ")
        assert data["name"] == "Landing"
        assert data["owner_id"] == str(owner.id)
        assert data["role"] == "owner"
        assert data["team_id"] is None

    @pytest.mark.asyncio
    async def test_owner_reads_updates_and_deletes(self, client, make_user, auth_headers):
        owner = await make_user()
        headers = auth_headers(owner)
        project = await _create_project(client, headers)

        resp = await client.get(f"/api/v1/projects/{project['id']}", headers=headers)
        assert resp.status_code == 200

        resp = await client.patch(
            f"/api/v1/projects/{project['id']}", json={"description": "new"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "new"

        resp = await client.delete(f"/api/v1/projects/{project['id']}", headers=headers)
        assert resp.status_code == 204

        resp = await client.get(f"/api/v1/projects/{project['id']}", headers=headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_viewer_cannot_edit(self, client, make_user, auth_headers):
        owner = await make_user()
        viewer = await make_user()
        project = await _create_project(client, auth_headers(owner))
        resp = await client.post(
            f"/api/v1/projects/{project['id']}/members",
            json={"email": viewer.email, "role": "viewer"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 201

        resp = await client.patch(
            f"/api/v1/projects/{project['id']}",
            json={"name": "hijacked"},
            headers=auth_headers(viewer),
        )
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["code"] == "insufficient_role"
        assert error["message"] == "You don't have permission to edit project"

    @pytest.mark.asyncio
    async def test_team_project_requires_team_editor(self, client, make_user, auth_headers):
        owner = await make_user()
        viewer = await make_user()
        team = await _create_team(client, auth_headers(owner))
        await _invite(client, auth_headers(owner), team["id"], viewer.email, "viewer")

        resp = await client.post(
            "/api/v1/projects",
            json={"name": "x", "team_id": team["id"]},
            headers=auth_headers(viewer),
        )
        assert resp.status_code == 403

        project = await _create_project(client, auth_headers(owner), team_id=team["id"])
        assert project["team_id"] == team["id"]

    @pytest.mark.asyncio
    async def test_team_project_in_foreign_team_is_404(self, client, make_user, auth_headers):
        owner = await make_user()
        outsider = await make_user()
        team = await _create_team(client, auth_headers(owner))
        resp = await client.post(
            "/api/v1/projects",
            json={"name": "x", "team_id": team["id"]},
            headers=auth_headers(outsider),
        )
        assert resp.status_code == 404


class TestUniformNotFound:

    @pytest.mark.asyncio
    async def test_missing_and_hidden_are_indistinguishable(self, client, make_user, auth_headers):
        owner = await make_user()
        stranger = await make_user()
        project = await _create_project(client, auth_headers(owner))

        hidden = await client.get(
            f"/api/v1/projects/{project['id']}", headers=auth_headers(stranger)
        )
        missing = await client.get(
            f"/api/v1/projects/{uuid.uuid4()}", headers=auth_headers(stranger)
        )
        assert hidden.status_code == missing.status_code == 404
        assert hidden.json() == missing.json()
        assert hidden.json()["error"] == {
            "code": "not_found",
            "message": "Project not found",
            "status": 404,
            "retryable": False,
        }

    @pytest.mark.asyncio
    async def test_delete_without_grant_is_404_not_403(self, client, make_user, auth_headers):
        owner = await make_user()
        stranger = await make_user()
        project = await _create_project(client, auth_headers(owner))
        resp = await client.delete(
            f"/api/v1/projects/{project['id']}", headers=auth_headers(stranger)
        )
        assert resp.status_code == 404


class TestEffectiveRole:

    @pytest.mark.asyncio
    async def test_owner_path(self, client, make_user, auth_headers):
        owner = await make_user()
        project = await _create_project(client, auth_headers(owner))
        resp = await client.get(f"/api/v1/projects/{project['id']}/role", headers=auth_headers(owner))
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "owner"
        assert data["path"] == "owner"
        assert "manage_project" in data["capabilities"]

    @pytest.mark.asyncio
    async def test_team_path_and_direct_override(self, client, make_user, auth_headers):
        owner = await make_user()
        member = await make_user()
        team = await _create_team(client, auth_headers(owner))
        await _invite(client, auth_headers(owner), team["id"], member.email, "admin")
        project = await _create_project(client, auth_headers(owner), team_id=team["id"])
        url = f"/api/v1/projects/{project['id']}/role"

        data = (await client.get(url, headers=auth_headers(member))).json()
        assert (data["role"], data["path"]) == ("admin", "team")

        resp = await client.post(
            f"/api/v1/projects/{project['id']}/members",
            json={"email": member.email, "role": "viewer"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 201

        data = (await client.get(url, headers=auth_headers(member))).json()
        assert (data["role"], data["path"]) == ("viewer", "direct")
        assert data["capabilities"] == ["view_project"]


class TestListProjects:

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_accessible(self, client, make_user, auth_headers):
        alice = await make_user()
        bob = await make_user()
        mine = await _create_project(client, auth_headers(alice), name="mine")
        await _create_project(client, auth_headers(bob), name="theirs")

        resp = await client.get("/api/v1/projects", headers=auth_headers(alice))
        assert resp.status_code == 200
        data = resp.json()
        assert [p["id"] for p in data["data"]] == [mine["id"]]
        assert data["data"][0]["role"] == "owner"
        assert data["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_empty_list(self, client, make_user, auth_headers):
        nobody = await make_user()
        data = (await client.get("/api/v1/projects", headers=auth_headers(nobody))).json()
        assert data["data"] == []
        assert data["pagination"] == {"page": 1, "per_page": 25, "total": 0, "total_pages": 1}

    @pytest.mark.asyncio
    async def test_team_projects_listed_for_viewer(self, client, make_user, auth_headers):
        owner = await make_user()
        viewer = await make_user()
        team = await _create_team(client, auth_headers(owner))
        await _invite(client, auth_headers(owner), team["id"], viewer.email, "viewer")
        project = await _create_project(client, auth_headers(owner), team_id=team["id"])
        await _create_project(client, auth_headers(owner), name="personal")

        resp = await client.get(
            "/api/v1/projects", params={"team_id": team["id"]}, headers=auth_headers(viewer)
        )
        data = resp.json()
        assert [p["id"] for p in data["data"]] == [project["id"]]
        assert data["data"][0]["role"] == "viewer"

    @pytest.mark.asyncio
    async def test_pagination(self, client, make_user, auth_headers):
        owner = await make_user()
        for i in range(3):
            await _create_project(client, auth_headers(owner), name=f"p{i}")

        resp = await client.get(
            "/api/v1/projects", params={"page": 2, "per_page": 2}, headers=auth_headers(owner)
        )
        data = resp.json()
        assert len(data["data"]) == 1
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["total_pages"] == 2


class TestProjectMembers:

    @pytest.mark.asyncio
    async def test_admin_can_invite_editor_cannot(self, client, make_user, auth_headers):
        owner, admin, editor, target = [await make_user() for _ in range(4)]
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        for user, role in ((admin, "admin"), (editor, "editor")):
            resp = await client.post(
                url, json={"email": user.email, "role": role}, headers=auth_headers(owner)
            )
            assert resp.status_code == 201

        resp = await client.post(
            url, json={"email": target.email, "role": "viewer"}, headers=auth_headers(editor)
        )
        assert resp.status_code == 403

        resp = await client.post(
            url, json={"email": target.email, "role": "viewer"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 201
        assert resp.json()["granted_by"] == str(admin.id)

    @pytest.mark.asyncio
    async def test_duplicate_member_is_409(self, client, make_user, auth_headers):
        owner = await make_user()
        other = await make_user()
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        body = {"email": other.email, "role": "editor"}
        assert (await client.post(url, json=body, headers=auth_headers(owner))).status_code == 201
        assert (await client.post(url, json=body, headers=auth_headers(owner))).status_code == 409

    @pytest.mark.asyncio
    async def test_owner_role_cannot_be_granted(self, client, make_user, auth_headers):
        owner = await make_user()
        other = await make_user()
        project = await _create_project(client, auth_headers(owner))
        resp = await client.post(
            f"/api/v1/projects/{project['id']}/members",
            json={"email": other.email, "role": "owner"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_admin_removes_editor_but_not_admin(self, client, make_user, auth_headers):
        owner, admin, admin2, editor = [await make_user() for _ in range(4)]
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        ids = {}
        for user, role in ((admin, "admin"), (admin2, "admin"), (editor, "editor")):
            resp = await client.post(
                url, json={"email": user.email, "role": role}, headers=auth_headers(owner)
            )
            ids[user.id] = resp.json()["id"]

        resp = await client.delete(f"{url}/{ids[admin2.id]}", headers=auth_headers(admin))
        assert resp.status_code == 403

        resp = await client.delete(f"{url}/{ids[editor.id]}", headers=auth_headers(admin))
        assert resp.status_code == 204

    @pytest.mark.asyncio
    async def test_owner_membership_is_immutable(self, client, make_user, auth_headers):
        owner = await make_user()
        admin = await make_user()
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        await client.post(url, json={"email": admin.email, "role": "admin"}, headers=auth_headers(owner))

        members = (await client.get(url, headers=auth_headers(owner))).json()["data"]
        owner_row = next(m for m in members if m["role"] == "owner")

        resp = await client.delete(f"{url}/{owner_row['id']}", headers=auth_headers(admin))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "owner_role_immutable"

    @pytest.mark.asyncio
    async def test_owner_changes_member_role(self, client, make_user, auth_headers):
        owner = await make_user()
        other = await make_user()
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        member = (
            await client.post(
                url, json={"email": other.email, "role": "viewer"}, headers=auth_headers(owner)
            )
        ).json()

        resp = await client.patch(
            f"{url}/{member['id']}", json={"role": "admin"}, headers=auth_headers(owner)
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_cannot_remove_self(self, client, make_user, auth_headers):
        owner = await make_user()
        admin = await make_user()
        project = await _create_project(client, auth_headers(owner))
        url = f"/api/v1/projects/{project['id']}/members"
        member = (
            await client.post(
                url, json={"email": admin.email, "role": "admin"}, headers=auth_headers(owner)
            )
        ).json()

        resp = await client.delete(f"{url}/{member['id']}", headers=auth_headers(admin))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "self_target_forbidden"


class TestOperator:

    @pytest.mark.asyncio
    async def test_operator_sees_and_reads_everything(self, client, make_user, auth_headers):
        owner = await make_user()
        operator = await make_user(operator=True)
        project = await _create_project(client, auth_headers(owner))

        resp = await client.get(f"/api/v1/projects/{project['id']}/role", headers=auth_headers(operator))
        assert resp.status_code == 200
        assert resp.json()["path"] == "operator"
        assert resp.json()["role"] is None

        listed = (await client.get("/api/v1/projects", headers=auth_headers(operator))).json()
        assert project["id"] in [p["id"] for p in listed["data"]]

    @pytest.mark.asyncio
    async def test_operator_still_gets_404_for_missing(self, client, make_user, auth_headers):
        operator = await make_user(operator=True)
        resp = await client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=auth_headers(operator))
        assert resp.status_code == 404


class TestLegacyRoleRows:

    @pytest.mark.asyncio
    async def test_member_list_and_role_survive_unknown_role(
        self, client, make_user, auth_headers
    ):
        owner = await make_user()
        legacy = await make_user()
        operator = await make_user(operator=True)
        project = await _create_project(client, auth_headers(owner))
        async with get_session_context() as session:
            for user in (legacy, operator):
                session.add(
                    ProjectMember(project_id=uuid.UUID(project["id"]), user_id=user.id, role="member")
                )

        resp = await client.get(
            f"/api/v1/projects/{project['id']}/members", headers=auth_headers(owner)
        )
        assert resp.status_code == 200
        roles = {m["user_id"]: m["role"] for m in resp.json()["data"]}
        assert roles[str(legacy.id)] is None
        assert roles[str(owner.id)] == "owner"

        resp = await client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers(legacy))
        assert resp.status_code == 404

        for path in ("", "/role"):
            resp = await client.get(
                f"/api/v1/projects/{project['id']}{path}", headers=auth_headers(operator)
            )
            assert resp.status_code == 200
            assert resp.json()["role"] is None


class _UnavailableStore(MemoryAccessStore):
    async def get_project(self, project_id):
        raise ConnectionError("database unreachable")


class TestDataSourceUnavailable:

    @pytest.mark.asyncio
    async def test_lookup_failure_is_retryable_503(
        self, client, make_user, auth_headers, monkeypatch
    ):
        from backoffice.main import app

        user = await make_user()
        monkeypatch.setattr(app.state.gate.resolver, "store", _UnavailableStore())

        resp = await client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=auth_headers(user))
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "1"
        error = resp.json()["error"]
        assert error["code"] == "data_source_unavailable"
        assert error["status"] == 503
        assert error["retryable"] is True

    @pytest.mark.asyncio
    async def test_denials_are_not_retryable(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=auth_headers(user))
        assert resp.status_code == 404
        assert "Retry-After" not in resp.headers
        assert resp.json()["error"]["retryable"] is False
