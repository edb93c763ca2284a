"""Workspace storage for the Team Feed.

This module persists clients, projects, guilds, tasks, feed posts,
notifications and the team roster as JSON collections inside a project
root, under the ``.team-feed/state`` directory.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .models import (
    Client,
    FeedPost,
    Guild,
    Notification,
    Project,
    ProjectGuild,
    Task,
    TeamMember,
)
from .feed_logging import (
    log_error_with_context,
    log_operation,
    log_performance,
    log_task_propagated,
)

logger = logging.getLogger("teamfeed.workspace")

T = TypeVar("T")

# Single process-wide lock: each read-modify-write of a collection file is atomic.
_STORE_LOCK = threading.RLock()

_TASK_UPDATE_FIELDS = (
    "description",
    "status",
    "priority",
    "project_id",
    "assignee_id",
    "guild_id",
    "due_date",
)


class Workspace:
    """Manage Team Feed records within a project root."""

    STORAGE_DIR_ENV = "TEAMFEED_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".team-feed"
    COLLECTIONS = (
        "clients",
        "guilds",
        "projects",
        "project_guilds",
        "tasks",
        "feed_posts",
        "notifications",
        "team",
    )

    def __init__(self, root: Path | str):
        """Initialize workspace with given root directory."""
        try:
            self.root = Path(root).resolve()
            storage_name = os.getenv(self.STORAGE_DIR_ENV) or self.DEFAULT_STORAGE_DIR

            self.base_dir = self.root / storage_name
            self.state_dir = self.base_dir / "state"

            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                self.state_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise RuntimeError(f"Could not initialize workspace at {self.root}: {e}")

            logger.debug(f"Workspace initialized at {self.root}")

        except Exception as e:
            logger.error(f"Failed to initialize workspace: {e}")
            log_error_with_context(e, {"operation": "workspace_init", "root": str(root)})
            raise

    # ------------------------------------------------------------------
    # Collection files
    # ------------------------------------------------------------------

    def collection_path(self, name: str) -> Path:
        """Get the JSON file backing a collection."""
        if name not in self.COLLECTIONS:
            raise ValueError(f"Unknown collection '{name}'")
        return self.state_dir / f"{name}.json"

    def _load(self, name: str) -> List[Dict[str, Any]]:
        path = self.collection_path(name)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Collection '{name}' at {path} is corrupt: {e}") from e
        if not isinstance(data, list):
            raise RuntimeError(f"Collection '{name}' at {path} is not a list")
        return data

    def _save(self, name: str, records: List[Dict[str, Any]]) -> None:
        path = self.collection_path(name)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(records, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    @staticmethod
    def _next_id(records: List[Dict[str, Any]]) -> int:
        return max((int(r["id"]) for r in records), default=0) + 1

    def _insert(self, name: str, build: Callable[[int], T]) -> T:
        """Append a record built from the next free id and persist it."""
        with _STORE_LOCK:
            records = self._load(name)
            record = build(self._next_id(records))
            records.append(record.to_dict())
            self._save(name, records)
        return record

    def _update(self, name: str, record_id: Any, mutate: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
        """Apply ``mutate`` to one stored record and persist the collection."""
        with _STORE_LOCK:
            records = self._load(name)
            for record in records:
                if record["id"] == record_id:
                    mutate(record)
                    self._save(name, records)
                    return record
        raise ValueError(f"No record with id {record_id!r} in '{name}'")

    def _find(self, name: str, record_id: Any) -> Optional[Dict[str, Any]]:
        for record in self._load(name):
            if record["id"] == record_id:
                return record
        return None

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def list_clients(self) -> List[Client]:
        """All clients in storage (insertion) order."""
        return [Client.from_dict(r) for r in self._load("clients")]

    def get_client(self, client_id: int) -> Optional[Client]:
        record = self._find("clients", client_id)
        return Client.from_dict(record) if record else None

    def get_client_by_name(self, name: str) -> Optional[Client]:
        """Case-insensitive exact lookup."""
        wanted = name.strip().lower()
        for client in self.list_clients():
            if client.name.lower() == wanted:
                return client
        return None

    def create_client(self, name: str, logo: Optional[str] = None) -> Client:
        """Create a client. Names are not enforced unique."""
        if not name or not name.strip():
            raise ValueError("Client name cannot be empty")
        client = self._insert("clients", lambda new_id: Client(id=new_id, name=name.strip(), logo=logo))
        logger.info(f"Created client {client.id} '{client.name}'")
        return client

    def update_client(self, client_id: int, *, name: Optional[str] = None, logo: Optional[str] = None) -> Client:
        def mutate(record: Dict[str, Any]) -> None:
            if name is not None:
                if not name.strip():
                    raise ValueError("Client name cannot be empty")
                record["name"] = name.strip()
            if logo is not None:
                record["logo"] = logo

        return Client.from_dict(self._update("clients", client_id, mutate))

    # ------------------------------------------------------------------
    # Guilds
    # ------------------------------------------------------------------

    def list_guilds(self) -> List[Guild]:
        return [Guild.from_dict(r) for r in self._load("guilds")]

    def get_guild(self, guild_id: int) -> Optional[Guild]:
        record = self._find("guilds", guild_id)
        return Guild.from_dict(record) if record else None

    def get_guild_by_name(self, name: str) -> Optional[Guild]:
        """Case-insensitive exact lookup."""
        wanted = name.strip().lower()
        for guild in self.list_guilds():
            if guild.name.lower() == wanted:
                return guild
        return None

    def create_guild(self, name: str) -> Guild:
        """Create a guild; names are unique regardless of case."""
        if not name or not name.strip():
            raise ValueError("Guild name cannot be empty")
        cleaned = name.strip()

        def build(new_id: int) -> Guild:
            if self.get_guild_by_name(cleaned) is not None:
                raise ValueError(f"Guild '{cleaned}' already exists")
            return Guild(id=new_id, name=cleaned)

        guild = self._insert("guilds", build)
        logger.info(f"Created guild {guild.id} '{guild.name}'")
        return guild

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self, client_id: Optional[int] = None) -> List[Project]:
        """Projects in storage order, optionally limited to one client."""
        projects = [Project.from_dict(r) for r in self._load("projects")]
        if client_id is not None:
            projects = [p for p in projects if p.client_id == client_id]
        return projects

    def get_project(self, project_id: int) -> Optional[Project]:
        record = self._find("projects", project_id)
        return Project.from_dict(record) if record else None

    def create_project(
        self,
        name: str,
        client_id: int,
        status: str = "active",
        description: Optional[str] = None,
    ) -> Project:
        """Create a project under an existing client."""
        if self.get_client(client_id) is None:
            raise ValueError(f"Client {client_id} not found; a project must belong to a client.")

        def build(new_id: int) -> Project:
            project = Project(
                id=new_id,
                name=(name or "").strip(),
                client_id=client_id,
                status=status,
                description=description,
            )
            issues = project.validate()
            if issues:
                raise ValueError(f"Invalid project: {'; '.join(issues)}")
            return project

        project = self._insert("projects", build)
        logger.info(f"Created project {project.id} '{project.name}' for client {client_id}")
        return project

    def update_project(
        self,
        project_id: int,
        *,
        name: Optional[str] = None,
        status: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        def mutate(record: Dict[str, Any]) -> None:
            if name is not None:
                record["name"] = name.strip()
            if status is not None:
                record["status"] = status
            if description is not None:
                record["description"] = description
            issues = Project.from_dict(record).validate()
            if issues:
                raise ValueError(f"Invalid project: {'; '.join(issues)}")

        return Project.from_dict(self._update("projects", project_id, mutate))

    # ------------------------------------------------------------------
    # Project guild links
    # ------------------------------------------------------------------

    def list_project_guilds(
        self,
        project_id: Optional[int] = None,
        guild_id: Optional[int] = None,
    ) -> List[ProjectGuild]:
        links = [ProjectGuild.from_dict(r) for r in self._load("project_guilds")]
        if project_id is not None:
            links = [link for link in links if link.project_id == project_id]
        if guild_id is not None:
            links = [link for link in links if link.guild_id == guild_id]
        return links

    def create_or_get_link(self, project_id: int, guild_id: int) -> ProjectGuild:
        """Link a project to a guild; an existing link is returned unchanged."""
        with _STORE_LOCK:
            existing = self.list_project_guilds(project_id=project_id, guild_id=guild_id)
            if existing:
                return existing[0]
            link = self._insert(
                "project_guilds",
                lambda new_id: ProjectGuild(id=new_id, project_id=project_id, guild_id=guild_id),
            )
        logger.info(f"Linked project {project_id} to guild {guild_id}")
        return link

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @log_performance("create_task")
    def create_task(
        self,
        *,
        description: str,
        client_id: int,
        status: str = "todo",
        priority: str = "medium",
        project_id: Optional[int] = None,
        assignee_id: Optional[str] = None,
        creator_id: Optional[str] = None,
        parent_task_id: Optional[int] = None,
        guild_id: Optional[int] = None,
        due_date: Optional[str] = None,
    ) -> Task:
        """Create a task or, with ``parent_task_id``, a subtask."""
        try:
            if client_id is None or self.get_client(client_id) is None:
                raise ValueError(f"Client {client_id} not found; a task must belong to a client.")
            if parent_task_id is not None:
                parent = self.get_task(parent_task_id)
                if parent is None:
                    raise ValueError(f"Parent task {parent_task_id} not found.")
                if parent.is_subtask:
                    raise ValueError(f"Task {parent_task_id} is a subtask; subtasks cannot be nested.")

            def build(new_id: int) -> Task:
                task = Task(
                    id=new_id,
                    description=description,
                    client_id=client_id,
                    priority=priority,
                    project_id=project_id,
                    assignee_id=assignee_id,
                    creator_id=creator_id,
                    parent_task_id=parent_task_id,
                    guild_id=guild_id,
                    due_date=due_date or None,
                )
                task.update_status(status)
                issues = task.validate()
                if issues:
                    raise ValueError(f"Invalid task: {'; '.join(issues)}")
                return task

            task = self._insert("tasks", build)
            logger.info(f"Created task {task.id} (parent={parent_task_id}, assignee={assignee_id})")
            return task

        except Exception as e:
            logger.error(f"Failed to create task: {e}")
            log_error_with_context(e, {
                "operation": "create_task",
                "client_id": client_id,
                "parent_task_id": parent_task_id,
                "description": description,
            })
            raise

    def get_task(self, task_id: int) -> Optional[Task]:
        record = self._find("tasks", task_id)
        return Task.from_dict(record) if record else None

    def list_tasks(
        self,
        *,
        assignee_id: Optional[str] = None,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None,
        status: Optional[str] = None,
        parent_task_id: Optional[int] = None,
        top_level_only: bool = False,
    ) -> List[Task]:
        """Get tasks with optional filtering, in storage order."""
        filtered = []
        for task in (Task.from_dict(r) for r in self._load("tasks")):
            if assignee_id is not None and task.assignee_id != assignee_id:
                continue
            if project_id is not None and task.project_id != project_id:
                continue
            if client_id is not None and task.client_id != client_id:
                continue
            if status is not None and task.status != status:
                continue
            if parent_task_id is not None and task.parent_task_id != parent_task_id:
                continue
            if top_level_only and task.is_subtask:
                continue
            filtered.append(task)
        return filtered

    def get_subtasks(self, parent_task_id: int) -> List[Task]:
        return self.list_tasks(parent_task_id=parent_task_id)

    @log_performance("update_task")
    def update_task(self, task_id: int, **fields: Any) -> Task:
        """Update task fields; completing a subtask may complete its parent."""
        unknown = set(fields) - set(_TASK_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update task fields: {', '.join(sorted(unknown))}")

        try:
            with log_operation("update_task", task_id=task_id, fields=sorted(fields)):

                def mutate(record: Dict[str, Any]) -> None:
                    task = Task.from_dict(record)
                    for key, value in fields.items():
                        if key == "status":
                            task.update_status(value)
                        else:
                            setattr(task, key, value)
                    issues = task.validate()
                    if issues:
                        raise ValueError(f"Invalid task: {'; '.join(issues)}")
                    record.update(task.to_dict())

                with _STORE_LOCK:
                    task = Task.from_dict(self._update("tasks", task_id, mutate))
                    if fields.get("status") == "done" and task.parent_task_id is not None:
                        self.propagate_completion(task.parent_task_id)

                return task

        except Exception as e:
            log_error_with_context(e, {
                "operation": "update_task",
                "task_id": task_id,
                "fields": sorted(fields),
            })
            raise

    def propagate_completion(self, parent_task_id: int) -> Optional[Task]:
        """Mark the parent done when every one of its subtasks is done.

        Returns the parent when it was changed, otherwise None.
        """
        with _STORE_LOCK:
            parent = self.get_task(parent_task_id)
            if parent is None or parent.is_done:
                return None
            subtasks = self.get_subtasks(parent_task_id)
            if not subtasks or not all(subtask.is_done for subtask in subtasks):
                return None

            def mutate(record: Dict[str, Any]) -> None:
                task = Task.from_dict(record)
                task.update_status("done")
                record.update(task.to_dict())

            parent = Task.from_dict(self._update("tasks", parent_task_id, mutate))

        logger.info(f"All subtasks of task {parent_task_id} are done; parent marked done")
        log_task_propagated(parent.id, parent_task_id, subtask_count=len(subtasks))
        return parent

    # ------------------------------------------------------------------
    # Feed posts
    # ------------------------------------------------------------------

    def create_feed_post(
        self,
        title: str,
        content: str,
        author_id: str,
        tags: Optional[List[str]] = None,
    ) -> FeedPost:
        post = self._insert(
            "feed_posts",
            lambda new_id: FeedPost(
                id=new_id,
                title=title,
                content=content,
                author_id=author_id,
                tags=list(tags or []),
            ),
        )
        logger.info(f"Stored feed post {post.id} by {author_id}")
        return post

    def get_feed_post(self, post_id: int) -> Optional[FeedPost]:
        record = self._find("feed_posts", post_id)
        return FeedPost.from_dict(record) if record else None

    def list_feed_posts(self, limit: Optional[int] = None) -> List[FeedPost]:
        """Feed posts, newest first."""
        posts = [FeedPost.from_dict(r) for r in reversed(self._load("feed_posts"))]
        return posts[:limit] if limit is not None else posts

    # ------------------------------------------------------------------
    # Team roster
    # ------------------------------------------------------------------

    def add_team_member(
        self,
        member_id: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        profile_image_url: Optional[str] = None,
    ) -> TeamMember:
        """Insert or replace a roster entry keyed by ``member_id``."""
        if not member_id or not str(member_id).strip():
            raise ValueError("Team member id cannot be empty")
        member = TeamMember(
            id=str(member_id).strip(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            profile_image_url=profile_image_url,
        )
        with _STORE_LOCK:
            records = [r for r in self._load("team") if r["id"] != member.id]
            records.append(member.to_dict())
            self._save("team", records)
        logger.info(f"Team member {member.id} saved")
        return member

    def list_team_members(self) -> List[TeamMember]:
        return [TeamMember.from_dict(r) for r in self._load("team")]

    def get_team_member(self, member_id: str) -> Optional[TeamMember]:
        record = self._find("team", member_id)
        return TeamMember.from_dict(record) if record else None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notification(
        self,
        user_id: str,
        type: str,
        message: str,
        resource_id: Optional[int] = None,
        resource_type: Optional[str] = None,
    ) -> Notification:
        return self._insert(
            "notifications",
            lambda new_id: Notification(
                id=new_id,
                user_id=user_id,
                type=type,
                message=message,
                resource_id=resource_id,
                resource_type=resource_type,
            ),
        )

    def list_notifications(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        """Notifications for one user, newest first."""
        notifications = [
            Notification.from_dict(r)
            for r in reversed(self._load("notifications"))
            if r["user_id"] == user_id
        ]
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        return notifications

    def mark_notification_read(self, notification_id: int) -> Notification:
        def mutate(record: Dict[str, Any]) -> None:
            record["read"] = True

        return Notification.from_dict(self._update("notifications", notification_id, mutate))
