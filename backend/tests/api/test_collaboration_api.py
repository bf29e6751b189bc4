"""
Castflow Studio - Collaboration API Tests
=========================================

End-to-end through the HTTP layer: workspaces, episodes, workflow,
comments, presence, notifications, versions and drafts.
"""

from uuid import uuid4

from httpx import AsyncClient

from castflow.core.collaboration import AutoSaveRegistry
from castflow.core.models import Episode, User, Workspace

API = "/api/v1"


# ==========================================================================
# Roles & Workspaces
# ==========================================================================

class TestRoles:

    async def test_role_matrix(self, client: AsyncClient, auth_headers: dict):
        response = await client.get(f"{API}/roles", headers=auth_headers)

        assert response.status_code == 200
        roles = response.json()["roles"]
        assert set(roles) == {"host", "editor", "marketer", "va"}
        assert roles["editor"]["can_approve"] is True
        assert roles["editor"]["can_publish"] is False
        assert roles["va"]["can_create_episodes"] is True


class TestWorkspacesApi:

    async def test_create_and_list(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.post(f"{API}/workspaces", json={"name": "My Show"}, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["owner_id"] == str(test_user.id)

        listed = await client.get(f"{API}/workspaces", headers=auth_headers)
        assert [w["id"] for w in listed.json()] == [data["id"]]

    async def test_invite_and_join(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        host: User,
        outsider: User,
    ):
        invite = await client.post(
            f"{API}/workspaces/{workspace.id}/members",
            json={"email": outsider.email, "role": "editor"},
            headers=headers(host),
        )
        assert invite.status_code == 201
        assert invite.json()["status"] == "pending"

        notifications = await client.get(f"{API}/notifications", headers=headers(outsider))
        assert notifications.json()["items"][0]["type"] == "team_invitation"

        joined = await client.post(f"{API}/workspaces/{workspace.id}/join", headers=headers(outsider))
        assert joined.status_code == 200
        assert joined.json()["status"] == "active"

        members = await client.get(f"{API}/workspaces/{workspace.id}/members", headers=headers(outsider))
        assert members.status_code == 200
        assert str(outsider.id) in [m["user_id"] for m in members.json()]

    async def test_invite_unknown_email(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        host: User,
    ):
        response = await client.post(
            f"{API}/workspaces/{workspace.id}/members",
            json={"email": "ghost@example.com", "role": "va"},
            headers=headers(host),
        )

        assert response.status_code == 404
        assert response.json() == {
            "error": "Not Found",
            "detail": "User not found. They need to sign up first.",
            "code": "NOT_FOUND",
        }

    async def test_members_hidden_from_outsiders(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        outsider: User,
    ):
        response = await client.get(f"{API}/workspaces/{workspace.id}/members", headers=headers(outsider))

        assert response.status_code == 403

    async def test_member_of_other_workspace_not_found(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        host: User,
        outsider: User,
    ):
        other = await client.post(f"{API}/workspaces", json={"name": "Other"}, headers=headers(outsider))
        members = await client.get(
            f"{API}/workspaces/{other.json()['id']}/members", headers=headers(outsider)
        )
        foreign_member_id = members.json()[0]["id"]

        response = await client.delete(
            f"{API}/workspaces/{workspace.id}/members/{foreign_member_id}",
            headers=headers(host),
        )

        assert response.status_code == 404


# ==========================================================================
# Episodes & Workflow
# ==========================================================================

class TestEpisodesApi:

    async def test_create_episode(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        va: User,
    ):
        response = await client.post(
            f"{API}/workspaces/{workspace.id}/episodes",
            json={"title": "Episode 9", "content": {"summary": "Nine"}},
            headers=headers(va),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["current_status"] == "draft"
        assert data["content"] == {"summary": "Nine"}
        assert data["created_by"] == str(va.id)

    async def test_marketer_cannot_create(
        self,
        client: AsyncClient,
        headers,
        workspace: Workspace,
        marketer: User,
    ):
        response = await client.post(
            f"{API}/workspaces/{workspace.id}/episodes",
            json={"title": "Nope"},
            headers=headers(marketer),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"

    async def test_get_episode_as_outsider(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        outsider: User,
    ):
        response = await client.get(f"{API}/episodes/{episode.id}", headers=headers(outsider))

        assert response.status_code == 403

    async def test_unknown_episode(self, client: AsyncClient, headers, host: User):
        response = await client.get(f"{API}/episodes/{uuid4()}", headers=headers(host))

        assert response.status_code == 404

    async def test_collaborators(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
        member: User,
    ):
        added = await client.post(
            f"{API}/episodes/{episode.id}/collaborators",
            json={"user_id": str(member.id), "role": "marketer"},
            headers=headers(host),
        )
        assert added.status_code == 201

        listed = await client.get(f"{API}/episodes/{episode.id}/collaborators", headers=headers(member))
        assert listed.status_code == 200
        assert len(listed.json()) == 5

    async def test_collaborator_grants_are_bounded(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
        outsider: User,
    ):
        promoted = await client.post(
            f"{API}/episodes/{episode.id}/collaborators",
            json={"user_id": str(editor.id), "role": "host"},
            headers=headers(editor),
        )
        assert promoted.status_code == 403

        stranger = await client.post(
            f"{API}/episodes/{episode.id}/collaborators",
            json={"user_id": str(outsider.id), "role": "marketer"},
            headers=headers(editor),
        )
        assert stranger.status_code == 422
        assert stranger.json()["code"] == "VALIDATION_ERROR"


class TestWorkflowApi:

    async def test_workflow_view_per_role(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
        marketer: User,
    ):
        response = await client.get(f"{API}/episodes/{episode.id}/workflow", headers=headers(host))

        assert response.status_code == 200
        data = response.json()
        assert data["current_status"] == "draft"
        assert data["role"] == "host"
        assert data["available_transitions"] == [{"status": "in_review", "label": "Submit for Review"}]
        assert data["progress"]["step_index"] == 0
        assert data["progress"]["labels"] == ["Draft", "Review", "Approved", "Published"]
        assert data["history"] == []

        marketer_view = await client.get(f"{API}/episodes/{episode.id}/workflow", headers=headers(marketer))
        assert marketer_view.json()["available_transitions"] == []

    async def test_review_cycle(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
        editor: User,
        va: User,
    ):
        url = f"{API}/episodes/{episode.id}/workflow/transition"

        submitted = await client.post(url, json={"status": "in_review"}, headers=headers(va))
        assert submitted.status_code == 201
        assert submitted.json()["from_status"] == "draft"

        denied = await client.post(url, json={"status": "approved"}, headers=headers(va))
        assert denied.status_code == 403

        approved = await client.post(
            url, json={"status": "approved", "notes": "Ship it"}, headers=headers(editor)
        )
        assert approved.status_code == 201
        assert approved.json()["author"]["name"] == editor.name

        published = await client.post(url, json={"status": "published"}, headers=headers(host))
        assert published.status_code == 201

        view = await client.get(f"{API}/episodes/{episode.id}/workflow", headers=headers(host))
        data = view.json()
        assert data["current_status"] == "published"
        assert data["available_transitions"] == []
        assert [h["status"] for h in data["history"]] == ["published", "approved", "in_review"]

    async def test_invalid_transition_body(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
    ):
        response = await client.post(
            f"{API}/episodes/{episode.id}/workflow/transition",
            json={"status": "published"},
            headers=headers(host),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["error"] == "Invalid Transition"
        assert "draft" in body["detail"]

    async def test_unknown_status_is_validation_error(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
    ):
        response = await client.post(
            f"{API}/episodes/{episode.id}/workflow/transition",
            json={"status": "archived"},
            headers=headers(host),
        )

        assert response.status_code == 422


# ==========================================================================
# Comments
# ==========================================================================

class TestCommentsApi:

    async def test_threads_and_section_filter(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
        marketer: User,
    ):
        url = f"{API}/episodes/{episode.id}/comments"
        anchored = await client.post(
            url,
            json={
                "content": "Name the tools",
                "text_selection": {"start": 41, "end": 57, "text": "podcasting tools"},
                "priority": "high",
            },
            headers=headers(editor),
        )
        assert anchored.status_code == 201
        stale = await client.post(
            url,
            json={
                "content": "This line is gone",
                "text_selection": {"start": 0, "end": 9, "text": "Goodbye!!"},
            },
            headers=headers(editor),
        )
        reply = await client.post(
            url,
            json={"content": "On it", "parent_id": anchored.json()["id"]},
            headers=headers(marketer),
        )
        assert reply.status_code == 201

        threads = (await client.get(url, headers=headers(marketer))).json()
        assert [t["id"] for t in threads] == [anchored.json()["id"], stale.json()["id"]]
        assert [r["content"] for r in threads[0]["replies"]] == ["On it"]
        assert threads[0]["author"]["name"] == editor.name

        filtered = (await client.get(url, params={"section": "transcript"}, headers=headers(marketer))).json()
        assert [t["id"] for t in filtered] == [anchored.json()["id"]]

    async def test_selection_range_validated(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
    ):
        response = await client.post(
            f"{API}/episodes/{episode.id}/comments",
            json={"content": "x", "text_selection": {"start": 5, "end": 1, "text": "x"}},
            headers=headers(editor),
        )

        assert response.status_code == 422

    async def test_status_and_reaction(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
        va: User,
    ):
        created = await client.post(
            f"{API}/episodes/{episode.id}/comments",
            json={"content": "Trim the ad read"},
            headers=headers(editor),
        )
        comment_id = created.json()["id"]

        resolved = await client.patch(
            f"{API}/comments/{comment_id}/status", json={"status": "resolved"}, headers=headers(va)
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"

        await client.put(f"{API}/comments/{comment_id}/reaction", json={"emoji": "🔥"}, headers=headers(va))
        reaction = await client.put(
            f"{API}/comments/{comment_id}/reaction", json={"emoji": "👍"}, headers=headers(va)
        )
        assert reaction.status_code == 200
        assert reaction.json()["emoji"] == "👍"

        threads = (await client.get(f"{API}/episodes/{episode.id}/comments", headers=headers(va))).json()
        assert [r["emoji"] for r in threads[0]["reactions"]] == ["👍"]


# ==========================================================================
# Presence
# ==========================================================================

class TestPresenceApi:

    async def test_heartbeat_visibility_and_leave(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
        marketer: User,
    ):
        url = f"{API}/episodes/{episode.id}/presence"
        beat = await client.put(
            url,
            json={"cursor_position": {"section": "summary", "position": 4}},
            headers=headers(editor),
        )
        assert beat.status_code == 200
        assert beat.json()["cursor_position"] == {"section": "summary", "position": 4}

        own_view = (await client.get(url, headers=headers(editor))).json()
        assert own_view == []

        others = (await client.get(url, headers=headers(marketer))).json()
        assert [p["user_id"] for p in others] == [str(editor.id)]
        assert others[0]["user"]["name"] == editor.name

        left = await client.delete(url, headers=headers(editor))
        assert left.json()["success"] is True
        assert (await client.get(url, headers=headers(marketer))).json() == []


# ==========================================================================
# Notifications
# ==========================================================================

class TestNotificationsApi:

    async def test_inbox_flow(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
        editor: User,
        marketer: User,
    ):
        await client.post(
            f"{API}/episodes/{episode.id}/workflow/transition",
            json={"status": "in_review"},
            headers=headers(host),
        )
        await client.post(
            f"{API}/episodes/{episode.id}/comments",
            json={"content": "Reviewing now"},
            headers=headers(marketer),
        )

        inbox = (await client.get(f"{API}/notifications", headers=headers(editor))).json()
        assert inbox["unread_count"] == 2
        assert [n["type"] for n in inbox["items"]] == ["comment_added", "status_changed"]

        limited = (await client.get(f"{API}/notifications", params={"limit": 1}, headers=headers(editor))).json()
        assert len(limited["items"]) == 1

        first_id = inbox["items"][0]["id"]
        foreign = await client.post(f"{API}/notifications/{first_id}/read", headers=headers(marketer))
        assert foreign.status_code == 404

        read = await client.post(f"{API}/notifications/{first_id}/read", headers=headers(editor))
        assert read.json()["read"] is True

        updated = (await client.post(f"{API}/notifications/read-all", headers=headers(editor))).json()
        assert updated == {"updated": 1}

        unread = (await client.get(
            f"{API}/notifications", params={"unread_only": "true"}, headers=headers(editor)
        )).json()
        assert unread == {"items": [], "unread_count": 0}


# ==========================================================================
# Versions & Drafts
# ==========================================================================

class TestVersionsApi:

    async def test_snapshot_and_restore(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        host: User,
        editor: User,
    ):
        url = f"{API}/episodes/{episode.id}/versions"
        first = await client.post(
            url, json={"content": {"summary": "v1"}, "description": "First cut"}, headers=headers(editor)
        )
        assert first.status_code == 201
        assert first.json()["version_number"] == 1

        await client.post(url, json={"content": {"summary": "v2"}}, headers=headers(editor))

        restored = await client.post(f"{url}/{first.json()['id']}/restore", headers=headers(host))
        assert restored.status_code == 201
        assert restored.json()["change_description"] == "Restored version 1"

        history = (await client.get(url, headers=headers(editor))).json()
        assert [v["version_number"] for v in history] == [3, 2, 1]
        assert history[1]["change_description"] == "Auto-save"

        current = (await client.get(f"{API}/episodes/{episode.id}", headers=headers(editor))).json()
        assert current["content"] == {"summary": "v1"}

    async def test_draft_then_flush(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
    ):
        draft_url = f"{API}/episodes/{episode.id}/draft"
        new_content = {"summary": "Edited in the browser", "keywords": ["edit"]}

        accepted = await client.put(draft_url, json={"content": new_content}, headers=headers(editor))
        assert accepted.status_code == 202
        assert accepted.json()["status"] == "unsaved"
        assert accepted.json()["scheduled"] is True

        flushed = await client.post(f"{draft_url}/flush", headers=headers(editor))
        assert flushed.status_code == 200
        state = flushed.json()
        assert state["status"] == "saved"
        assert state["save_count"] == 1
        assert state["has_unsaved_changes"] is False

        current = (await client.get(f"{API}/episodes/{episode.id}", headers=headers(editor))).json()
        assert current["content"] == new_content
        versions = (await client.get(f"{API}/episodes/{episode.id}/versions", headers=headers(editor))).json()
        assert len(versions) == 1

    async def test_leaving_saves_pending_draft(
        self,
        client: AsyncClient,
        headers,
        registry: AutoSaveRegistry,
        episode: Episode,
        editor: User,
    ):
        new_content = {"summary": "Left mid-edit"}
        await client.put(
            f"{API}/episodes/{episode.id}/draft",
            json={"content": new_content},
            headers=headers(editor),
        )
        assert len(registry) == 1

        left = await client.delete(f"{API}/episodes/{episode.id}/presence", headers=headers(editor))

        assert left.status_code == 200
        assert len(registry) == 0
        current = (await client.get(f"{API}/episodes/{episode.id}", headers=headers(editor))).json()
        assert current["content"] == new_content

    async def test_unchanged_draft_is_ignored(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        editor: User,
    ):
        current = (await client.get(f"{API}/episodes/{episode.id}", headers=headers(editor))).json()

        response = await client.put(
            f"{API}/episodes/{episode.id}/draft",
            json={"content": current["content"]},
            headers=headers(editor),
        )

        assert response.json()["scheduled"] is False
        assert response.json()["status"] == "saved"

    async def test_draft_requires_access(
        self,
        client: AsyncClient,
        headers,
        episode: Episode,
        outsider: User,
    ):
        response = await client.put(
            f"{API}/episodes/{episode.id}/draft",
            json={"content": {}},
            headers=headers(outsider),
        )

        assert response.status_code == 403


class TestRoot:

    async def test_root(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["api"] == "/api/v1"
