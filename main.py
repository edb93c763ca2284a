"""MCP server exposing the Team Feed: feed posts, tasks and notifications."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.resources import TextResource

from teamfeed.feed import FeedManager
from teamfeed.feed_logging import setup_logging

mcp = FastMCP("team-feed")


PROJECT_MARKER_DIRECTORIES = (".team-feed",)
SERVER_ROOT = Path(__file__).resolve().parent


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    for parent in SERVER_ROOT.parents:
        if parent not in bases:
            bases.append(parent)
    return bases


def _locate_workspace_root() -> Optional[Path]:
    markers = list(PROJECT_MARKER_DIRECTORIES)
    custom = os.getenv("TEAMFEED_STORAGE_DIR")
    if custom:
        markers.insert(0, custom)
    for base in _candidate_bases():
        for marker in markers:
            if (base / marker).exists():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv("TEAMFEED_PROJECT_ROOT")
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable TEAMFEED_PROJECT_ROOT points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the TEAMFEED_PROJECT_ROOT environment variable."
    )


def _manager(root: Optional[str]) -> FeedManager:
    return FeedManager(_resolve_root(root))


# ----------------------------------------------------------------------
# Feed
# ----------------------------------------------------------------------


@mcp.tool()
def create_feed_post(
    title: str,
    content: str,
    author_id: str,
    tags: Optional[List[str]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Post a note to the team feed and return the stored post.
    Tags in the text drive task creation before this returns:
    `@Guild <name>`, `@Title <project>`, `@client:<name>`, `@person`,
    and checklist lines such as `- [ ] draft notes @Alice`."""

    result = _manager(root).create_feed_post(title, content, author_id, tags=tags)
    return result["post"]


@mcp.tool()
def preview_feed_post(title: str, content: str = "", root: Optional[str] = None) -> Dict[str, Any]:
    """Show how a post would be parsed without storing anything."""

    return _manager(root).preview_feed_post(title, content)


@mcp.tool()
def list_feed_posts(
    limit: Optional[int] = None,
    query: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List feed posts, newest first.

    ``query`` filters by title, content, tag or author name.
    """

    return _manager(root).list_feed_posts(limit=limit, query=query)


@mcp.resource("team-feed://feed")
def resource_feed():
    """Resource view of the most recent feed posts."""

    try:
        manager = _manager(None)
    except ValueError:
        return TextResource(
            uri="team-feed://feed",
            text="No project root detected. Launch tools with a 'root' argument or set TEAMFEED_PROJECT_ROOT.",
        )

    posts = manager.workspace.list_feed_posts(limit=20)
    if not posts:
        return TextResource(uri="team-feed://feed", text="No feed posts yet.")

    lines = ["Team Feed"]
    for post in posts:
        lines.append("")
        lines.append(f"- #{post.id} {post.title} ({post.author_id}, {post.created_at})")
        for body_line in post.content.splitlines():
            if body_line.strip():
                lines.append(f"  {body_line.strip()}")

    return TextResource(uri="team-feed://feed", text="\n".join(lines))


# ----------------------------------------------------------------------
# Tasks
# ----------------------------------------------------------------------


@mcp.tool()
def list_tasks(
    assignee_id: Optional[str] = None,
    project_id: Optional[int] = None,
    client_id: Optional[int] = None,
    status: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List top-level tasks with their subtasks, optionally filtered."""

    return _manager(root).list_tasks(
        assignee_id=assignee_id,
        project_id=project_id,
        client_id=client_id,
        status=status,
    )


@mcp.tool()
def get_task(task_id: int, root: Optional[str] = None) -> Dict[str, Any]:
    """Get a single task with its subtasks."""

    return _manager(root).get_task(task_id)


@mcp.tool()
def list_subtasks(task_id: int, root: Optional[str] = None) -> Dict[str, Any]:
    """List the subtasks of a task."""

    return _manager(root).list_subtasks(task_id)


@mcp.tool()
def create_task(
    description: str,
    client_id: int,
    creator_id: str,
    assignee_id: Optional[str] = None,
    project_id: Optional[int] = None,
    status: str = "todo",
    priority: str = "medium",
    due_date: Optional[str] = None,
    parent_task_id: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a task directly. The assignee is notified unless they created it."""

    return _manager(root).create_task(
        description,
        client_id,
        creator_id,
        assignee_id=assignee_id,
        project_id=project_id,
        status=status,
        priority=priority,
        due_date=due_date,
        parent_task_id=parent_task_id,
    )


@mcp.tool()
def update_task(
    task_id: int,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    description: Optional[str] = None,
    assignee_id: Optional[str] = None,
    due_date: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Update a task. Completing the last open subtask also completes its parent."""

    fields = {
        key: value
        for key, value in {
            "status": status,
            "priority": priority,
            "description": description,
            "assignee_id": assignee_id,
            "due_date": due_date,
        }.items()
        if value is not None
    }
    if not fields:
        raise ValueError("Provide at least one field to update.")
    return _manager(root).update_task(task_id, **fields)


# ----------------------------------------------------------------------
# Notifications
# ----------------------------------------------------------------------


@mcp.tool()
def list_notifications(user_id: str, unread_only: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """List a user's notifications, newest first."""

    return _manager(root).list_notifications(user_id, unread_only=unread_only)


@mcp.tool()
def mark_notification_read(notification_id: int, root: Optional[str] = None) -> Dict[str, Any]:
    """Mark a notification as read."""

    return _manager(root).mark_notification_read(notification_id)


# ----------------------------------------------------------------------
# Clients, projects, guilds
# ----------------------------------------------------------------------


@mcp.tool()
def list_clients(root: Optional[str] = None) -> Dict[str, Any]:
    """List clients."""

    clients = _manager(root).workspace.list_clients()
    return {"clients": [c.to_dict() for c in clients], "count": len(clients)}


@mcp.tool()
def create_client(name: str, logo: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Create a client."""

    return _manager(root).workspace.create_client(name, logo=logo).to_dict()


@mcp.tool()
def update_client(
    client_id: int,
    name: Optional[str] = None,
    logo: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Rename a client or change its logo."""

    return _manager(root).workspace.update_client(client_id, name=name, logo=logo).to_dict()


@mcp.tool()
def list_projects(client_id: Optional[int] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """List projects, optionally for one client."""

    projects = _manager(root).workspace.list_projects(client_id)
    return {"projects": [p.to_dict() for p in projects], "count": len(projects)}


@mcp.tool()
def create_project(
    name: str,
    client_id: int,
    status: str = "active",
    description: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a project under an existing client."""

    return _manager(root).workspace.create_project(
        name, client_id, status=status, description=description
    ).to_dict()


@mcp.tool()
def update_project(
    project_id: int,
    name: Optional[str] = None,
    status: Optional[str] = None,
    description: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Update a project's name, status or description."""

    return _manager(root).workspace.update_project(
        project_id, name=name, status=status, description=description
    ).to_dict()


@mcp.tool()
def list_guilds(root: Optional[str] = None) -> Dict[str, Any]:
    """List guilds."""

    guilds = _manager(root).workspace.list_guilds()
    return {"guilds": [g.to_dict() for g in guilds], "count": len(guilds)}


@mcp.tool()
def create_guild(name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Create a guild; names are unique regardless of case."""

    return _manager(root).workspace.create_guild(name).to_dict()


@mcp.tool()
def list_project_guilds(
    project_id: Optional[int] = None,
    guild_id: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List project-guild links."""

    links = _manager(root).workspace.list_project_guilds(project_id=project_id, guild_id=guild_id)
    return {"project_guilds": [link.to_dict() for link in links], "count": len(links)}


# ----------------------------------------------------------------------
# Team
# ----------------------------------------------------------------------


@mcp.tool()
def add_team_member(
    member_id: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add or replace a team roster entry used to resolve @mentions."""

    return _manager(root).workspace.add_team_member(
        member_id, first_name=first_name, last_name=last_name, email=email
    ).to_dict()


@mcp.tool()
def list_team_members(root: Optional[str] = None) -> Dict[str, Any]:
    """List the team roster."""

    members = _manager(root).workspace.list_team_members()
    return {"team": [m.to_dict() for m in members], "count": len(members)}


if __name__ == "__main__":
    log_file = os.getenv("TEAMFEED_LOG_FILE")
    setup_logging(os.getenv("TEAMFEED_LOG_LEVEL", "INFO"), Path(log_file) if log_file else None)
    mcp.run(transport="stdio")
