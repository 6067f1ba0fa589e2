"""End-to-end tests for issue mutations: REST, activity, notifications, broadcasts."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from conftest import headers_for, open_socket, sent_messages
from issuehub.errors import ActivityStorageError, NotificationStorageError
from issuehub.models.label import Label
from issuehub.schemas.issue import IssueCreate
from issuehub.services.activity_service import ActivityRecorder
from issuehub.services.issue_service import create_issue
from issuehub.services.notification_service import NotificationDispatcher
from issuehub.websocket.rooms import issue_room, project_room, user_room


@pytest_asyncio.fixture
async def label(db_session, workspace):
    bug = Label(id=uuid4(), workspace_id=workspace.id, name="bug", color="#ff0000")
    db_session.add(bug)
    await db_session.commit()
    await db_session.refresh(bug)
    return bug


async def _activity(client, issue_id, headers):
    response = await client.get(f"/api/issues/{issue_id}/activity", headers=headers)
    assert response.status_code == 200
    return response.json()


class TestCreateIssue:
    """Tests for POST /api/issues."""

    @pytest.mark.asyncio
    async def test_broadcast_reaches_only_its_project_room(
        self, client, headers_a, user_a, user_b, project, other_project
    ):
        _, ws_p = await open_socket(user_b, project_room(project.id))
        _, ws_q = await open_socket(user_b, project_room(other_project.id))

        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "Crash on save"},
            headers=headers_a,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == 1
        assert body["warnings"] == []

        created = sent_messages(ws_p, "task_created")
        assert len(created) == 1
        assert created[0]["data"]["task_id"] == body["id"]
        assert created[0]["data"]["project_id"] == str(project.id)
        assert created[0]["data"]["changed_by"] == str(user_a.id)
        assert created[0]["data"]["task"]["title"] == "Crash on save"
        assert sent_messages(ws_q) == []

    @pytest.mark.asyncio
    async def test_numbers_increase_per_project(self, client, headers_a, project, other_project):
        numbers = []
        for target in (project, project, other_project):
            response = await client.post(
                "/api/issues",
                json={"project_id": str(target.id), "title": "Issue"},
                headers=headers_a,
            )
            numbers.append(response.json()["number"])

        assert numbers == [1, 2, 1]

    @pytest.mark.asyncio
    async def test_number_collision_takes_next_number(self, client, headers_a, project, issue):
        """Test that a create whose number was taken meanwhile retries with a fresh one."""
        project_id = project.id
        stale_then_fresh = AsyncMock(side_effect=[1, 2])

        with patch("issuehub.services.issue_service._next_number", stale_then_fresh):
            response = await client.post(
                "/api/issues",
                json={"project_id": str(project_id), "title": "Second"},
                headers=headers_a,
            )

        assert response.status_code == 201
        assert response.json()["number"] == 2
        assert stale_then_fresh.await_count == 2

    @pytest.mark.asyncio
    async def test_number_collision_gives_up_after_retries(self, db_session, user_a, project, issue):
        project_id = project.id

        with patch("issuehub.services.issue_service._next_number", AsyncMock(return_value=1)) as numbering:
            with pytest.raises(IntegrityError):
                await create_issue(db_session, IssueCreate(project_id=project_id, title="Dup"), user_a)

        assert numbering.await_count == 3

    @pytest.mark.asyncio
    async def test_assignee_notified_creator_not(self, client, headers_a, user_a, user_b, project):
        _, ws_a = await open_socket(user_a, user_room(user_a.id))
        _, ws_b = await open_socket(user_b, user_room(user_b.id))

        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "Fix login", "assignee_id": str(user_b.id)},
            headers=headers_a,
        )

        assert response.status_code == 201
        notifications = sent_messages(ws_b, "notification")
        assert len(notifications) == 1
        assert notifications[0]["data"]["notification_type"] == "TASK_ASSIGNED"
        assert notifications[0]["data"]["message"] == "Alice assigned you to #1: Fix login"
        assert notifications[0]["data"]["related_entity_id"] == response.json()["id"]
        assert sent_messages(ws_a) == []

        count = await client.get("/api/notifications/count", headers=headers_for(user_b))
        assert count.json()["unread"] == 1

    @pytest.mark.asyncio
    async def test_self_assignment_not_notified(self, client, headers_a, user_a, project):
        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "Mine", "assignee_id": str(user_a.id)},
            headers=headers_a,
        )

        assert response.status_code == 201
        count = await client.get("/api/notifications/count", headers=headers_a)
        assert count.json() == {"total": 0, "unread": 0}

    @pytest.mark.asyncio
    async def test_assignee_outside_workspace_rejected(self, client, headers_a, outsider, project):
        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "X", "assignee_id": str(outsider.id)},
            headers=headers_a,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_outsider_cannot_create(self, client, outsider, project):
        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "X"},
            headers=headers_for(outsider),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_project(self, client, headers_a):
        response = await client.post(
            "/api/issues",
            json={"project_id": str(uuid4()), "title": "X"},
            headers=headers_a,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_activity_recorded(self, client, headers_a, user_a, project):
        response = await client.post(
            "/api/issues",
            json={"project_id": str(project.id), "title": "Logged"},
            headers=headers_a,
        )
        issue_id = response.json()["id"]

        entries = await _activity(client, issue_id, headers_a)

        assert len(entries) == 1
        assert entries[0]["action"] == "ISSUE_CREATED"
        assert entries[0]["actor_id"] == str(user_a.id)
        assert entries[0]["entity_id"] == issue_id
        assert entries[0]["details"] == {"title": "Logged", "number": 1}


class TestUpdateIssue:
    """Tests for PATCH /api/issues/{id}."""

    @pytest.mark.asyncio
    async def test_update_broadcasts_diff_to_project_and_issue_rooms(
        self, client, headers_a, user_b, project, issue
    ):
        _, ws_project = await open_socket(user_b, project_room(project.id))
        _, ws_issue = await open_socket(user_b, issue_room(issue.id))

        response = await client.patch(
            f"/api/issues/{issue.id}", json={"status": "IN_PROGRESS"}, headers=headers_a
        )

        assert response.status_code == 200
        assert response.json()["status"] == "IN_PROGRESS"
        for ws in (ws_project, ws_issue):
            updates = sent_messages(ws, "task_updated")
            assert len(updates) == 1
            assert updates[0]["data"]["changes"] == {"status": {"from": "TODO", "to": "IN_PROGRESS"}}
            assert updates[0]["data"]["action"] == "updated"

    @pytest.mark.asyncio
    async def test_update_records_field_diff(self, client, headers_a, issue):
        await client.patch(
            f"/api/issues/{issue.id}",
            json={"title": "Login redirect loops on Safari", "priority": "HIGH"},
            headers=headers_a,
        )

        entries = await _activity(client, issue.id, headers_a)

        assert [e["action"] for e in entries] == ["ISSUE_UPDATED"]
        assert entries[0]["details"]["changes"] == {
            "title": {"from": "Login redirect loops", "to": "Login redirect loops on Safari"},
            "priority": {"from": "MEDIUM", "to": "HIGH"},
        }

    @pytest.mark.asyncio
    async def test_two_updates_keep_order(self, client, headers_a, issue):
        await client.patch(f"/api/issues/{issue.id}", json={"status": "IN_PROGRESS"}, headers=headers_a)
        await client.patch(f"/api/issues/{issue.id}", json={"status": "DONE"}, headers=headers_a)

        entries = await _activity(client, issue.id, headers_a)

        assert [e["details"]["changes"]["status"]["to"] for e in entries] == ["IN_PROGRESS", "DONE"]
        assert entries[0]["created_at"] <= entries[1]["created_at"]

    @pytest.mark.asyncio
    async def test_noop_update_has_no_side_effects(self, client, headers_a, user_b, project, issue):
        _, ws = await open_socket(user_b, project_room(project.id))

        response = await client.patch(f"/api/issues/{issue.id}", json={"status": "TODO"}, headers=headers_a)

        assert response.status_code == 200
        assert sent_messages(ws) == []
        assert await _activity(client, issue.id, headers_a) == []

    @pytest.mark.asyncio
    async def test_watcher_notified_of_update(self, client, headers_a, user_b, issue, bob_watches):
        _, ws_b = await open_socket(user_b, user_room(user_b.id))

        await client.patch(f"/api/issues/{issue.id}", json={"status": "DONE"}, headers=headers_a)

        notifications = sent_messages(ws_b, "notification")
        assert [n["data"]["notification_type"] for n in notifications] == ["TASK_UPDATED"]
        assert notifications[0]["data"]["message"] == "Alice updated status on #1: Login redirect loops"

    @pytest.mark.asyncio
    async def test_new_assignee_gets_assignment_only(self, client, headers_a, user_b, issue, bob_watches):
        _, ws_b = await open_socket(user_b, user_room(user_b.id))

        response = await client.patch(
            f"/api/issues/{issue.id}", json={"assignee_id": str(user_b.id)}, headers=headers_a
        )

        assert response.json()["assignee_id"] == str(user_b.id)
        types = [n["data"]["notification_type"] for n in sent_messages(ws_b, "notification")]
        assert types == ["TASK_ASSIGNED"]

    @pytest.mark.asyncio
    async def test_assignee_updating_own_issue_not_notified(self, client, user_a, user_b, issue):
        await client.patch(
            f"/api/issues/{issue.id}", json={"assignee_id": str(user_b.id)}, headers=headers_for(user_a)
        )
        _, ws_b = await open_socket(user_b, user_room(user_b.id))

        await client.patch(f"/api/issues/{issue.id}", json={"status": "DONE"}, headers=headers_for(user_b))

        assert sent_messages(ws_b) == []

    @pytest.mark.asyncio
    async def test_unassign(self, client, headers_a, user_b, issue):
        await client.patch(f"/api/issues/{issue.id}", json={"assignee_id": str(user_b.id)}, headers=headers_a)

        response = await client.patch(f"/api/issues/{issue.id}", json={"assignee_id": None}, headers=headers_a)

        assert response.status_code == 200
        assert response.json()["assignee_id"] is None

    @pytest.mark.asyncio
    async def test_outsider_cannot_update(self, client, outsider, issue):
        response = await client.patch(
            f"/api/issues/{issue.id}", json={"status": "DONE"}, headers=headers_for(outsider)
        )
        assert response.status_code == 403


class TestSideEffectFailures:
    """A committed mutation survives failing side effects."""

    @pytest.mark.asyncio
    async def test_activity_failure_returns_warning(self, client, headers_a, user_b, project, issue):
        _, ws = await open_socket(user_b, project_room(project.id))

        with patch.object(
            ActivityRecorder, "append", AsyncMock(side_effect=ActivityStorageError("log store down"))
        ):
            response = await client.patch(
                f"/api/issues/{issue.id}", json={"title": "Still saved"}, headers=headers_a
            )

        assert response.status_code == 200
        assert response.json()["title"] == "Still saved"
        assert len(response.json()["warnings"]) == 1
        assert "Activity not recorded" in response.json()["warnings"][0]
        assert len(sent_messages(ws, "task_updated")) == 1

        fetched = await client.get(f"/api/issues/{issue.id}", headers=headers_a)
        assert fetched.json()["title"] == "Still saved"

    @pytest.mark.asyncio
    async def test_notification_failure_returns_warning(self, client, headers_a, user_b, project):
        with patch.object(
            NotificationDispatcher,
            "notify",
            AsyncMock(side_effect=NotificationStorageError("inbox down")),
        ):
            response = await client.post(
                "/api/issues",
                json={"project_id": str(project.id), "title": "Assigned", "assignee_id": str(user_b.id)},
                headers=headers_a,
            )

        assert response.status_code == 201
        assert any("Notification not stored" in w for w in response.json()["warnings"])

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_silent(self, client, headers_a, project):
        with patch(
            "issuehub.services.issue_service.handle_task_update",
            AsyncMock(side_effect=RuntimeError("router down")),
        ):
            response = await client.post(
                "/api/issues",
                json={"project_id": str(project.id), "title": "Quiet"},
                headers=headers_a,
            )

        assert response.status_code == 201
        assert response.json()["warnings"] == []


class TestDeleteIssue:
    """Tests for DELETE /api/issues/{id}."""

    @pytest.mark.asyncio
    async def test_delete_broadcasts_and_keeps_activity(
        self, client, db_session, headers_a, user_b, project, issue
    ):
        issue_id = issue.id
        _, ws_project = await open_socket(user_b, project_room(project.id))
        _, ws_issue = await open_socket(user_b, issue_room(issue_id))

        response = await client.delete(f"/api/issues/{issue_id}", headers=headers_a)

        assert response.status_code == 200
        assert response.json()["id"] == str(issue_id)
        for ws in (ws_project, ws_issue):
            assert len(sent_messages(ws, "task_deleted")) == 1

        missing = await client.get(f"/api/issues/{issue_id}", headers=headers_a)
        assert missing.status_code == 404

        entries = await ActivityRecorder.list_for_entity(db_session, issue_id)
        assert [e.action for e in entries] == ["ISSUE_DELETED"]


class TestLabels:
    """Tests for attaching and detaching labels."""

    @pytest.mark.asyncio
    async def test_add_label(self, client, headers_a, user_b, issue, label):
        _, ws = await open_socket(user_b, issue_room(issue.id))

        response = await client.post(f"/api/issues/{issue.id}/labels/{label.id}", headers=headers_a)

        assert response.status_code == 200
        assert response.json()["label_ids"] == [str(label.id)]
        updates = sent_messages(ws, "task_updated")
        assert updates[0]["data"]["changes"] == {"label_ids": [str(label.id)]}

        entries = await _activity(client, issue.id, headers_a)
        assert [e["action"] for e in entries] == ["LABEL_ADDED"]
        assert entries[0]["entity_type"] == "label"
        assert entries[0]["entity_id"] == str(label.id)
        assert entries[0]["details"] == {"label_name": "bug"}

    @pytest.mark.asyncio
    async def test_add_label_twice_is_noop(self, client, headers_a, issue, label):
        await client.post(f"/api/issues/{issue.id}/labels/{label.id}", headers=headers_a)
        response = await client.post(f"/api/issues/{issue.id}/labels/{label.id}", headers=headers_a)

        assert response.json()["label_ids"] == [str(label.id)]
        assert len(await _activity(client, issue.id, headers_a)) == 1

    @pytest.mark.asyncio
    async def test_remove_label(self, client, headers_a, issue, label):
        await client.post(f"/api/issues/{issue.id}/labels/{label.id}", headers=headers_a)

        response = await client.delete(f"/api/issues/{issue.id}/labels/{label.id}", headers=headers_a)

        assert response.json()["label_ids"] == []
        actions = [e["action"] for e in await _activity(client, issue.id, headers_a)]
        assert actions == ["LABEL_ADDED", "LABEL_REMOVED"]

    @pytest.mark.asyncio
    async def test_unknown_label(self, client, headers_a, issue):
        response = await client.post(f"/api/issues/{issue.id}/labels/{uuid4()}", headers=headers_a)
        assert response.status_code == 404


class TestWatchers:
    """Tests for watching issues."""

    @pytest.mark.asyncio
    async def test_watch_and_unwatch(self, client, user_b, issue):
        headers = headers_for(user_b)

        added = await client.post(f"/api/issues/{issue.id}/watchers", headers=headers)
        again = await client.post(f"/api/issues/{issue.id}/watchers", headers=headers)
        listed = await client.get(f"/api/issues/{issue.id}/watchers", headers=headers)

        assert added.json()["watcher_ids"] == [str(user_b.id)]
        assert again.json()["watcher_ids"] == [str(user_b.id)]
        assert listed.json()["watcher_ids"] == [str(user_b.id)]

        removed = await client.delete(f"/api/issues/{issue.id}/watchers", headers=headers)
        assert removed.json()["watcher_ids"] == []

        actions = [e["action"] for e in await _activity(client, issue.id, headers)]
        assert actions == ["WATCHER_ADDED"]

    @pytest.mark.asyncio
    async def test_outsider_cannot_watch(self, client, outsider, issue):
        response = await client.post(f"/api/issues/{issue.id}/watchers", headers=headers_for(outsider))
        assert response.status_code == 403


class TestReads:
    """Tests for listing and fetching issues."""

    @pytest.mark.asyncio
    async def test_list_issues(self, client, headers_a, project, issue):
        response = await client.get(f"/api/issues?project_id={project.id}", headers=headers_a)

        assert response.status_code == 200
        assert [i["id"] for i in response.json()] == [str(issue.id)]

    @pytest.mark.asyncio
    async def test_outsider_cannot_list(self, client, outsider, project):
        response = await client.get(f"/api/issues?project_id={project.id}", headers=headers_for(outsider))
        assert response.status_code == 403
