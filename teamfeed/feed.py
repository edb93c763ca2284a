"""Feed post handling for the Team Feed.

This module provides the orchestration behind "create feed post": the post
is validated and stored, then parsed, resolved against existing clients,
projects and guilds, and fanned out into tasks and notifications before the
call returns.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import FanoutResult, FeedPost, ParseResult, ResolvedEntities, TeamMember
from .parser import parse_feed_post
from .resolution import EntityResolver
from .fanout import NOTIFICATION_TYPE, RESOURCE_TYPE, TaskFanout
from .workspace import Workspace
from .feed_logging import (
    log_error_with_context,
    log_feed_post_created,
    log_operation,
    log_performance,
    log_post_parsed,
)

logger = logging.getLogger("teamfeed.feed")

NEW_TASK_MESSAGE = "You were assigned a new task: {description}"


def _post_matches(post: FeedPost, author: Optional[TeamMember], search: str) -> bool:
    if search in post.title.lower() or search in post.content.lower():
        return True
    if any(search in tag.lower() for tag in post.tags):
        return True
    if author is not None:
        full_name = f"{author.first_name or ''} {author.last_name or ''}".lower()
        return search in full_name
    return False


class FeedManager:
    """Handles feed posts and the task surface around them."""

    def __init__(self, root: Path | str):
        """Initialize feed manager with workspace root."""
        self.workspace = Workspace(root)
        self.resolver = EntityResolver(self.workspace)
        self.fanout = TaskFanout(self.workspace)

    # ------------------------------------------------------------------
    # Feed posts
    # ------------------------------------------------------------------

    @log_performance("create_feed_post")
    def create_feed_post(
        self,
        title: str,
        content: str,
        author_id: str,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Store a post and derive its tasks.

        Raises ValueError for missing title, content or author; nothing is
        stored in that case. Once the post is stored, failures in resolution
        or fan-out are logged and reported in the result, never raised.
        """
        if not title or not title.strip():
            raise ValueError("Title cannot be empty")
        if not content or not content.strip():
            raise ValueError("Content cannot be empty")
        if not author_id or not author_id.strip():
            raise ValueError("Author ID cannot be empty")

        post = self.workspace.create_feed_post(title, content, author_id, tags=tags)
        log_feed_post_created(post.id, author_id, tag_count=len(post.tags))

        parsed = parse_feed_post(post.title, post.content)
        log_post_parsed(
            post.id,
            len(parsed.subtasks),
            guild_name=parsed.guild_name,
            title_name=parsed.title_name,
            main_assignee=parsed.main_assignee,
        )

        resolved = ResolvedEntities()
        fanout = FanoutResult()
        error: Optional[str] = None

        try:
            with log_operation("process_feed_post", post_id=post.id):
                # Snapshots are taken once; every lookup below iterates them in storage order.
                roster = self.workspace.list_team_members()
                projects = self.workspace.list_projects()
                clients = self.workspace.list_clients()

                resolved = self.resolver.resolve(
                    parsed, post.title, post.content, clients, projects, post_id=post.id
                )
                self.fanout.dispatch(
                    parsed,
                    resolved,
                    roster,
                    author_id,
                    post.title,
                    post.content,
                    post_id=post.id,
                    result=fanout,
                )
        except Exception as e:
            error = str(e)
            logger.error(f"Processing of feed post {post.id} stopped early: {e}")
            log_error_with_context(e, {
                "operation": "process_feed_post",
                "post_id": post.id,
                "author_id": author_id,
            })

        created = fanout.all_tasks
        message = f"Feed post {post.id} saved. Created {len(created)} tasks."
        if error:
            message += " Task creation did not complete; see logs."

        result = {
            "post": post.to_dict(),
            "parsed": parsed.to_dict(),
            "resolved": resolved.to_dict(),
            "branch": fanout.branch,
            "tasks": [task.to_dict() for task in created],
            "notifications": [n.to_dict() for n in fanout.notifications],
            "message": message,
        }
        if error:
            result["error"] = error
        return result

    def preview_feed_post(self, title: str, content: str) -> Dict[str, Any]:
        """Parse a post without storing anything."""
        parsed: ParseResult = parse_feed_post(title, content)
        return {
            "parsed": parsed.to_dict(),
            "structured": parsed.is_structured,
            "message": (
                f"Would create a main task with {len(parsed.subtasks)} subtasks"
                if parsed.is_structured
                else "Would create one task per mentioned team member"
            ),
        }

    def list_feed_posts(self, limit: Optional[int] = None, query: Optional[str] = None) -> Dict[str, Any]:
        """Feed posts, newest first.

        ``query`` is a case-insensitive substring matched against the title,
        content, tags and the author's "first last" name; ``limit`` applies
        after filtering.
        """
        search = (query or "").strip().lower()
        if not search:
            posts = self.workspace.list_feed_posts(limit=limit)
        else:
            members = {m.id: m for m in self.workspace.list_team_members()}
            posts = [
                post
                for post in self.workspace.list_feed_posts()
                if _post_matches(post, members.get(post.author_id), search)
            ]
            if limit is not None:
                posts = posts[:limit]
        return {
            "posts": [post.to_dict() for post in posts],
            "count": len(posts),
        }

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @log_performance("create_task_direct")
    def create_task(
        self,
        description: str,
        client_id: int,
        creator_id: str,
        *,
        assignee_id: Optional[str] = None,
        project_id: Optional[int] = None,
        status: str = "todo",
        priority: str = "medium",
        due_date: Optional[str] = None,
        parent_task_id: Optional[int] = None,
        guild_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Create a task directly and notify its assignee.

        The assignee is not notified when they created the task. A failed
        notification is logged and reported, the task is kept.
        """
        if not description or not description.strip():
            raise ValueError("Description cannot be empty")
        if not creator_id or not creator_id.strip():
            raise ValueError("Creator ID cannot be empty")

        task = self.workspace.create_task(
            description=description.strip(),
            client_id=client_id,
            status=status,
            priority=priority,
            project_id=project_id,
            assignee_id=assignee_id or None,
            creator_id=creator_id,
            parent_task_id=parent_task_id,
            guild_id=guild_id,
            due_date=due_date or None,
        )
        if task.parent_task_id is not None and task.is_done:
            self.workspace.propagate_completion(task.parent_task_id)

        notification = None
        if task.assignee_id and task.assignee_id != task.creator_id:
            try:
                notification = self.workspace.create_notification(
                    task.assignee_id,
                    NOTIFICATION_TYPE,
                    NEW_TASK_MESSAGE.format(description=task.description),
                    resource_id=task.id,
                    resource_type=RESOURCE_TYPE,
                )
            except Exception as e:
                logger.warning(f"Notification for task {task.id} to {task.assignee_id} failed: {e}")
                log_error_with_context(e, {
                    "operation": "create_notification",
                    "user_id": task.assignee_id,
                    "task_id": task.id,
                })

        return {
            "task": task.to_dict(),
            "notification": notification.to_dict() if notification else None,
            "message": f"Task {task.id} created",
        }

    def list_tasks(
        self,
        assignee_id: Optional[str] = None,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Top-level tasks, each with its subtasks."""
        tasks = self.workspace.list_tasks(
            assignee_id=assignee_id,
            project_id=project_id,
            client_id=client_id,
            status=status,
            top_level_only=True,
        )
        items = []
        for task in tasks:
            item = task.to_dict()
            item["subtasks"] = [s.to_dict() for s in self.workspace.get_subtasks(task.id)]
            items.append(item)
        return {"tasks": items, "count": len(items)}

    def get_task(self, task_id: int) -> Dict[str, Any]:
        task = self.workspace.get_task(task_id)
        if task is None:
            raise ValueError(f"Task {task_id} not found")
        item = task.to_dict()
        item["subtasks"] = [s.to_dict() for s in self.workspace.get_subtasks(task.id)]
        return item

    def list_subtasks(self, task_id: int) -> Dict[str, Any]:
        subtasks = self.workspace.get_subtasks(task_id)
        return {
            "task_id": task_id,
            "subtasks": [s.to_dict() for s in subtasks],
            "remaining": sum(1 for s in subtasks if not s.is_done),
        }

    def update_task(self, task_id: int, **fields: Any) -> Dict[str, Any]:
        """Update a task; report whether its parent was completed as a result."""
        before = self.workspace.get_task(task_id)
        if before is None:
            raise ValueError(f"Task {task_id} not found")
        parent_was_done = False
        if before.parent_task_id is not None:
            parent = self.workspace.get_task(before.parent_task_id)
            parent_was_done = parent is not None and parent.is_done

        task = self.workspace.update_task(task_id, **fields)

        parent_completed = False
        if task.parent_task_id is not None and not parent_was_done:
            parent = self.workspace.get_task(task.parent_task_id)
            parent_completed = parent is not None and parent.is_done

        return {
            "task": task.to_dict(),
            "parent_completed": parent_completed,
            "message": (
                f"Task {task_id} updated; parent task {task.parent_task_id} completed"
                if parent_completed
                else f"Task {task_id} updated"
            ),
        }

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def list_notifications(self, user_id: str, unread_only: bool = False) -> Dict[str, Any]:
        notifications = self.workspace.list_notifications(user_id, unread_only=unread_only)
        return {
            "notifications": [n.to_dict() for n in notifications],
            "unread": sum(1 for n in notifications if not n.read),
        }

    def mark_notification_read(self, notification_id: int) -> Dict[str, Any]:
        return self.workspace.mark_notification_read(notification_id).to_dict()
