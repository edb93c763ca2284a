"""Unit tests for Team Feed workspace storage.

This module tests workspace initialization, collection persistence,
entity stores, task lifecycle and notifications.
"""

import json
import tempfile
from pathlib import Path

import pytest

from teamfeed.workspace import Workspace


@pytest.fixture
def workspace(tmp_path):
    return Workspace(tmp_path)


@pytest.fixture
def client(workspace):
    return workspace.create_client("A24")


class TestWorkspaceInitialization:
    """Test cases for Workspace initialization."""

    def test_workspace_creation(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Workspace(temp_dir)

            assert workspace.root == Path(temp_dir).resolve()
            assert workspace.base_dir == workspace.root / ".team-feed"
            assert workspace.state_dir.exists()

    def test_custom_storage_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEAMFEED_STORAGE_DIR", ".feed-data")
        workspace = Workspace(tmp_path)
        assert workspace.base_dir == tmp_path.resolve() / ".feed-data"

    def test_unknown_collection(self, workspace):
        with pytest.raises(ValueError, match="Unknown collection"):
            workspace.collection_path("widgets")

    def test_corrupt_collection_raises(self, workspace):
        workspace.collection_path("clients").write_text("{not json", encoding="utf-8")
        with pytest.raises(RuntimeError, match="corrupt"):
            workspace.list_clients()

    def test_collection_must_be_list(self, workspace):
        workspace.collection_path("guilds").write_text('{"id": 1}', encoding="utf-8")
        with pytest.raises(RuntimeError, match="not a list"):
            workspace.list_guilds()

    def test_records_are_persisted_as_json(self, workspace):
        workspace.create_client("Neon")
        data = json.loads(workspace.collection_path("clients").read_text(encoding="utf-8"))
        assert data[0]["name"] == "Neon"
        assert data[0]["id"] == 1

    def test_data_survives_new_instance(self, tmp_path):
        Workspace(tmp_path).create_guild("DGA")
        assert [g.name for g in Workspace(tmp_path).list_guilds()] == ["DGA"]


class TestClientsAndGuilds:
    """Test cases for client and guild stores."""

    def test_client_ids_increment(self, workspace):
        first = workspace.create_client("A24")
        second = workspace.create_client("Neon")
        assert (first.id, second.id) == (1, 2)
        assert [c.name for c in workspace.list_clients()] == ["A24", "Neon"]

    def test_get_client_by_name_case_insensitive(self, workspace, client):
        assert workspace.get_client_by_name("a24").id == client.id
        assert workspace.get_client_by_name("A2") is None

    def test_empty_client_name(self, workspace):
        with pytest.raises(ValueError):
            workspace.create_client("  ")

    def test_update_client(self, workspace, client):
        updated = workspace.update_client(client.id, logo="a24.png")
        assert updated.logo == "a24.png"
        assert workspace.get_client(client.id).logo == "a24.png"

    def test_update_missing_client(self, workspace):
        with pytest.raises(ValueError, match="No record"):
            workspace.update_client(99, name="x")

    def test_guild_lookup(self, workspace):
        guild = workspace.create_guild(" DGA ")
        assert guild.name == "DGA"
        assert workspace.get_guild_by_name("dga").id == guild.id
        assert workspace.get_guild(guild.id).name == "DGA"

    def test_duplicate_guild_rejected(self, workspace):
        workspace.create_guild("DGA")
        with pytest.raises(ValueError, match="already exists"):
            workspace.create_guild("dga")
        assert len(workspace.list_guilds()) == 1


class TestProjects:
    """Test cases for projects and guild links."""

    def test_create_project(self, workspace, client):
        project = workspace.create_project("Anora", client.id)
        assert project.status == "active"
        assert workspace.list_projects(client.id) == [project]
        assert workspace.list_projects(client.id + 1) == []

    def test_project_requires_client(self, workspace):
        with pytest.raises(ValueError, match="must belong to a client"):
            workspace.create_project("Orphan", 42)

    def test_project_status_validated(self, workspace, client):
        with pytest.raises(ValueError, match="Invalid project"):
            workspace.create_project("Anora", client.id, status="paused")

    def test_update_project(self, workspace, client):
        project = workspace.create_project("Anora", client.id)
        updated = workspace.update_project(project.id, status="completed")
        assert updated.status == "completed"

    def test_link_is_idempotent(self, workspace, client):
        project = workspace.create_project("Anora", client.id)
        guild = workspace.create_guild("DGA")

        first = workspace.create_or_get_link(project.id, guild.id)
        second = workspace.create_or_get_link(project.id, guild.id)

        assert first == second
        assert len(workspace.list_project_guilds()) == 1
        assert workspace.list_project_guilds(guild_id=guild.id) == [first]


class TestTasks:
    """Test cases for the task store."""

    def test_create_task(self, workspace, client):
        task = workspace.create_task(description="Call venue", client_id=client.id, creator_id="u1")
        assert task.id == 1
        assert workspace.get_task(task.id) == task

    def test_task_requires_existing_client(self, workspace):
        with pytest.raises(ValueError, match="must belong to a client"):
            workspace.create_task(description="x", client_id=5)

    def test_subtasks_cannot_nest(self, workspace, client):
        parent = workspace.create_task(description="main", client_id=client.id)
        child = workspace.create_task(description="child", client_id=client.id, parent_task_id=parent.id)
        with pytest.raises(ValueError, match="cannot be nested"):
            workspace.create_task(description="grandchild", client_id=client.id, parent_task_id=child.id)

    def test_missing_parent(self, workspace, client):
        with pytest.raises(ValueError, match="Parent task 9 not found"):
            workspace.create_task(description="x", client_id=client.id, parent_task_id=9)

    def test_created_done_task_is_stamped(self, workspace, client):
        task = workspace.create_task(description="x", client_id=client.id, status="done")
        assert task.completed_at is not None

    def test_invalid_priority(self, workspace, client):
        with pytest.raises(ValueError, match="Invalid priority"):
            workspace.create_task(description="x", client_id=client.id, priority="asap")

    def test_list_tasks_filters(self, workspace, client):
        parent = workspace.create_task(description="main", client_id=client.id, assignee_id="u1")
        workspace.create_task(description="child", client_id=client.id, parent_task_id=parent.id, assignee_id="u2")
        workspace.create_task(description="other", client_id=client.id, assignee_id="u2", status="review")

        assert [t.description for t in workspace.list_tasks(assignee_id="u2")] == ["child", "other"]
        assert [t.description for t in workspace.list_tasks(top_level_only=True)] == ["main", "other"]
        assert [t.description for t in workspace.list_tasks(status="review")] == ["other"]
        assert [t.description for t in workspace.get_subtasks(parent.id)] == ["child"]

    def test_update_task_fields(self, workspace, client):
        task = workspace.create_task(description="x", client_id=client.id)
        updated = workspace.update_task(task.id, priority="high", due_date="2026-11-01")
        assert updated.priority == "high"
        assert workspace.get_task(task.id).due_date == "2026-11-01"

    def test_update_task_rejects_unknown_fields(self, workspace, client):
        task = workspace.create_task(description="x", client_id=client.id)
        with pytest.raises(ValueError, match="Cannot update task fields"):
            workspace.update_task(task.id, client_id=7)

    def test_update_task_rejects_invalid_status(self, workspace, client):
        task = workspace.create_task(description="x", client_id=client.id)
        with pytest.raises(ValueError, match="Invalid status"):
            workspace.update_task(task.id, status="finished")
        assert workspace.get_task(task.id).status == "todo"

    def test_completing_last_subtask_completes_parent(self, workspace, client):
        parent = workspace.create_task(description="main", client_id=client.id)
        first = workspace.create_task(description="a", client_id=client.id, parent_task_id=parent.id)
        second = workspace.create_task(description="b", client_id=client.id, parent_task_id=parent.id)

        workspace.update_task(first.id, status="done")
        assert workspace.get_task(parent.id).status == "todo"

        workspace.update_task(second.id, status="done")
        completed = workspace.get_task(parent.id)
        assert completed.status == "done"
        assert completed.completed_at is not None

    def test_propagation_ignores_tasks_without_subtasks(self, workspace, client):
        task = workspace.create_task(description="solo", client_id=client.id)
        assert workspace.propagate_completion(task.id) is None
        assert workspace.get_task(task.id).status == "todo"

    def test_reopening_subtask_leaves_parent_done(self, workspace, client):
        parent = workspace.create_task(description="main", client_id=client.id)
        child = workspace.create_task(description="a", client_id=client.id, parent_task_id=parent.id)
        workspace.update_task(child.id, status="done")

        workspace.update_task(child.id, status="in_progress")

        assert workspace.get_task(parent.id).status == "done"
        assert workspace.get_task(child.id).completed_at is None


class TestFeedPostsAndRoster:
    """Test cases for feed posts and the team roster."""

    def test_feed_posts_newest_first(self, workspace):
        workspace.create_feed_post("first", "body", "u1")
        workspace.create_feed_post("second", "body", "u1", tags=["ops"])

        posts = workspace.list_feed_posts()
        assert [p.title for p in posts] == ["second", "first"]
        assert posts[0].tags == ["ops"]
        assert [p.title for p in workspace.list_feed_posts(limit=1)] == ["second"]
        assert workspace.list_feed_posts(limit=0) == []
        assert workspace.get_feed_post(1).title == "first"

    def test_add_team_member_replaces_existing(self, workspace):
        workspace.add_team_member("u1", first_name="Alice")
        workspace.add_team_member("u2", first_name="Bob")
        workspace.add_team_member("u1", first_name="Alicia", email="alicia@example.com")

        members = workspace.list_team_members()
        assert [m.id for m in members] == ["u2", "u1"]
        assert workspace.get_team_member("u1").first_name == "Alicia"

    def test_empty_member_id(self, workspace):
        with pytest.raises(ValueError):
            workspace.add_team_member(" ")


class TestNotifications:
    """Test cases for the notification sink."""

    def test_create_and_list(self, workspace):
        workspace.create_notification("u1", "assignment", "first", resource_id=1, resource_type="task")
        workspace.create_notification("u2", "assignment", "other")
        workspace.create_notification("u1", "assignment", "second")

        notifications = workspace.list_notifications("u1")
        assert [n.message for n in notifications] == ["second", "first"]
        assert notifications[1].resource_id == 1
        assert notifications[1].resource_type == "task"

    def test_mark_read(self, workspace):
        notification = workspace.create_notification("u1", "assignment", "hello")
        assert workspace.mark_notification_read(notification.id).read is True
        assert workspace.list_notifications("u1", unread_only=True) == []
