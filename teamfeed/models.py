"""Data models for the Team Feed.

This module contains the core records persisted by the workspace (clients,
projects, guilds, tasks, feed posts, notifications, team members) and the
ephemeral structures produced while processing a feed post.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


TASK_STATUSES = ("todo", "in_progress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
PROJECT_STATUSES = ("active", "on_hold", "completed", "archived")


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.utcnow().isoformat(timespec="seconds") + "Z"


@dataclass(slots=True)
class TeamMember:
    """A member of the team roster, keyed by the auth subject id."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    profile_image_url: Optional[str] = None

    @property
    def email_local_part(self) -> str:
        if not self.email:
            return ""
        return self.email.split("@")[0]

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.email_local_part or self.id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "profile_image_url": self.profile_image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        """Create from dictionary representation."""
        return cls(
            id=str(data["id"]),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email"),
            profile_image_url=data.get("profile_image_url"),
        )


@dataclass(slots=True)
class Client:
    """A client that owns projects."""

    id: int
    name: str
    logo: Optional[str] = None
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "logo": self.logo,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            name=data["name"],
            logo=data.get("logo"),
            created_at=data.get("created_at", utc_timestamp()),
        )


@dataclass(slots=True)
class Guild:
    """A cross-project grouping label, e.g. a union or a department."""

    id: int
    name: str
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Guild":
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=data.get("created_at", utc_timestamp()),
        )


@dataclass(slots=True)
class Project:
    """A project ("title") that always belongs to exactly one client."""

    id: int
    name: str
    client_id: int
    status: str = "active"
    description: Optional[str] = None
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "client_id": self.client_id,
            "status": self.status,
            "description": self.description,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            name=data["name"],
            client_id=data["client_id"],
            status=data.get("status") or "active",
            description=data.get("description"),
            created_at=data.get("created_at", utc_timestamp()),
        )

    def validate(self) -> List[str]:
        """Validate the project and return any issues."""
        issues = []
        if not self.name or not self.name.strip():
            issues.append("Project name is required")
        if self.client_id is None:
            issues.append("Client ID is required")
        if self.status not in PROJECT_STATUSES:
            issues.append(f"Invalid project status: {self.status}")
        return issues


@dataclass(slots=True)
class ProjectGuild:
    """Link between a project and a guild."""

    id: int
    project_id: int
    guild_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "project_id": self.project_id, "guild_id": self.guild_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectGuild":
        return cls(id=data["id"], project_id=data["project_id"], guild_id=data["guild_id"])


@dataclass(slots=True)
class Task:
    """A unit of work. Tasks with a parent are subtasks (one level only)."""

    id: int
    description: str
    client_id: int
    status: str = "todo"  # 'todo', 'in_progress', 'review', 'done'
    priority: str = "medium"  # 'low', 'medium', 'high', 'urgent'
    project_id: Optional[int] = None
    assignee_id: Optional[str] = None
    creator_id: Optional[str] = None
    parent_task_id: Optional[int] = None
    guild_id: Optional[int] = None
    due_date: Optional[str] = None
    created_at: str = field(default_factory=utc_timestamp)
    completed_at: Optional[str] = None

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    @property
    def is_done(self) -> bool:
        return self.status == "done"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "client_id": self.client_id,
            "project_id": self.project_id,
            "assignee_id": self.assignee_id,
            "creator_id": self.creator_id,
            "parent_task_id": self.parent_task_id,
            "guild_id": self.guild_id,
            "due_date": self.due_date,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            description=data["description"],
            client_id=data["client_id"],
            status=data.get("status") or "todo",
            priority=data.get("priority") or "medium",
            project_id=data.get("project_id"),
            assignee_id=data.get("assignee_id"),
            creator_id=data.get("creator_id"),
            parent_task_id=data.get("parent_task_id"),
            guild_id=data.get("guild_id"),
            due_date=data.get("due_date"),
            created_at=data.get("created_at", utc_timestamp()),
            completed_at=data.get("completed_at"),
        )

    def update_status(self, new_status: str) -> None:
        """Change status, keeping completed_at in step with the done state."""
        if new_status == "done" and self.status != "done":
            self.completed_at = utc_timestamp()
        elif new_status != "done":
            self.completed_at = None
        self.status = new_status

    def validate(self) -> List[str]:
        """Validate task data and return any issues."""
        issues = []

        if self.client_id is None:
            issues.append("Client ID is required")
        if self.status not in TASK_STATUSES:
            issues.append(f"Invalid status: {self.status}")
        if self.priority not in TASK_PRIORITIES:
            issues.append(f"Invalid priority: {self.priority}")
        if self.parent_task_id is not None and self.parent_task_id == self.id:
            issues.append("A task cannot be its own parent")

        return issues


@dataclass(slots=True)
class FeedPost:
    """A free-text note posted to the shared team feed."""

    id: int
    title: str
    content: str
    author_id: str
    tags: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author_id": self.author_id,
            "tags": list(self.tags),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedPost":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            title=data["title"],
            content=data["content"],
            author_id=data["author_id"],
            tags=data.get("tags", []),
            created_at=data.get("created_at", utc_timestamp()),
        )


@dataclass(slots=True)
class Notification:
    """A message for one user, created as a side effect of other work."""

    id: int
    user_id: str
    type: str
    message: str
    resource_id: Optional[int] = None
    resource_type: Optional[str] = None
    read: bool = False
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "message": self.message,
            "resource_id": self.resource_id,
            "resource_type": self.resource_type,
            "read": self.read,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=data["type"],
            message=data["message"],
            resource_id=data.get("resource_id"),
            resource_type=data.get("resource_type"),
            read=bool(data.get("read", False)),
            created_at=data.get("created_at", utc_timestamp()),
        )


# ---------------------------------------------------------------------------
# Ephemeral structures produced while processing a post
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ParsedSubtask:
    """One checklist line from the body of a feed post."""

    description: str
    assignee_name: Optional[str] = None
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "assignee_name": self.assignee_name,
            "completed": self.completed,
        }


@dataclass(slots=True)
class ParseResult:
    """Structured interpretation of a feed post's title and body."""

    main_description: str
    guild_name: Optional[str] = None
    guild_context: Optional[str] = None
    title_name: Optional[str] = None
    main_assignee: Optional[str] = None
    subtasks: List[ParsedSubtask] = field(default_factory=list)

    @property
    def is_structured(self) -> bool:
        """True when the post drives a main task (subtasks or a header mention)."""
        return bool(self.subtasks) or self.main_assignee is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "guild_name": self.guild_name,
            "guild_context": self.guild_context,
            "title_name": self.title_name,
            "main_assignee": self.main_assignee,
            "main_description": self.main_description,
            "subtasks": [subtask.to_dict() for subtask in self.subtasks],
        }


@dataclass(slots=True)
class ResolvedEntities:
    """Guild, client and project bound to a post after resolution."""

    guild: Optional[Guild] = None
    client: Optional[Client] = None
    project: Optional[Project] = None
    created: List[str] = field(default_factory=list)

    @property
    def guild_id(self) -> Optional[int]:
        return self.guild.id if self.guild else None

    @property
    def client_id(self) -> Optional[int]:
        if self.client is not None:
            return self.client.id
        if self.project is not None:
            return self.project.client_id
        return None

    @property
    def project_id(self) -> Optional[int]:
        return self.project.id if self.project else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "client_id": self.client_id,
            "project_id": self.project_id,
            "created": list(self.created),
        }


@dataclass(slots=True)
class FanoutResult:
    """Tasks and notifications created for a single post."""

    branch: str = "none"  # 'structured', 'mentions', 'none'
    main_task: Optional[Task] = None
    subtasks: List[Task] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    notification_failures: int = 0

    @property
    def all_tasks(self) -> List[Task]:
        if self.main_task is not None:
            return [self.main_task, *self.subtasks]
        return list(self.tasks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "branch": self.branch,
            "main_task": self.main_task.to_dict() if self.main_task else None,
            "subtasks": [task.to_dict() for task in self.subtasks],
            "tasks": [task.to_dict() for task in self.tasks],
            "notifications": [n.to_dict() for n in self.notifications],
            "notification_failures": self.notification_failures,
        }
