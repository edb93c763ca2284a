"""Task fan-out and notification dispatch for feed posts.

A structured post (checklist lines, or a person mentioned in the header)
becomes one main task with one subtask per checklist line. Any other post
with a resolved client becomes one task per distinct person mentioned
anywhere in it. Every assignee other than the author is notified.

Notifications are fire-and-forget: a failure is logged and counted but never
stops the fan-out. Task creation failures propagate; tasks already created
for the post are kept.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .models import (
    FanoutResult,
    Notification,
    ParseResult,
    ResolvedEntities,
    Task,
    TeamMember,
)
from .names import resolve_user
from .parser import scan_mentions, truncate_title
from .workspace import Workspace
from .feed_logging import (
    log_error_with_context,
    log_fanout_completed,
    log_notification_dispatched,
    log_task_created,
)

logger = logging.getLogger("teamfeed.fanout")

NOTIFICATION_TYPE = "assignment"
RESOURCE_TYPE = "task"
FEED_TASK_PREFIX = "Task from Team Feed: "


class TaskFanout:
    """Create tasks and notifications for a resolved post."""

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def dispatch(
        self,
        parsed: ParseResult,
        resolved: ResolvedEntities,
        roster: Sequence[TeamMember],
        author_id: str,
        title: str,
        content: str,
        *,
        post_id: Optional[int] = None,
        result: Optional[FanoutResult] = None,
    ) -> FanoutResult:
        """Fan a post out into tasks; nothing is created without a client.

        Tasks are recorded on ``result`` as they are created, so a caller that
        passes its own result still sees them if a later creation raises.
        """
        if result is None:
            result = FanoutResult()

        if resolved.client_id is None:
            logger.info("Post %s has no resolvable client; no tasks created", post_id)
        elif parsed.is_structured:
            result.branch = "structured"
            self._structured(parsed, resolved, roster, author_id, result, post_id)
        else:
            result.branch = "mentions"
            self._mentions(resolved, roster, author_id, title, content, result, post_id)

        log_fanout_completed(
            post_id,
            result.branch,
            len(result.all_tasks),
            notification_count=len(result.notifications),
            notification_failures=result.notification_failures,
        )
        return result

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _structured(
        self,
        parsed: ParseResult,
        resolved: ResolvedEntities,
        roster: Sequence[TeamMember],
        author_id: str,
        result: FanoutResult,
        post_id: Optional[int],
    ) -> None:
        main_assignee = resolve_user(roster, parsed.main_assignee)

        main_task = self._create_task(
            resolved,
            author_id,
            description=parsed.main_description,
            assignee=main_assignee,
            post_id=post_id,
        )
        result.main_task = main_task
        self._notify(
            main_assignee,
            author_id,
            f"You were assigned a task: {parsed.main_description}",
            main_task,
            result,
        )

        for subtask in parsed.subtasks:
            assignee = resolve_user(roster, subtask.assignee_name) or main_assignee
            child = self._create_task(
                resolved,
                author_id,
                description=subtask.description,
                assignee=assignee,
                status="done" if subtask.completed else "todo",
                parent_task_id=main_task.id,
                post_id=post_id,
            )
            result.subtasks.append(child)
            self._notify(
                assignee,
                author_id,
                f"You were assigned a subtask: {subtask.description}",
                child,
                result,
            )

        if result.subtasks:
            completed_parent = self.workspace.propagate_completion(main_task.id)
            if completed_parent is not None:
                result.main_task = completed_parent

    def _mentions(
        self,
        resolved: ResolvedEntities,
        roster: Sequence[TeamMember],
        author_id: str,
        title: str,
        content: str,
        result: FanoutResult,
        post_id: Optional[int],
    ) -> None:
        assignees: List[TeamMember] = []
        for name in scan_mentions(f"{title} {content}"):
            user = resolve_user(roster, name)
            if user is not None and all(user.id != seen.id for seen in assignees):
                assignees.append(user)

        description = FEED_TASK_PREFIX + truncate_title(title)
        for assignee in assignees:
            task = self._create_task(
                resolved,
                author_id,
                description=description,
                assignee=assignee,
                post_id=post_id,
            )
            result.tasks.append(task)
            self._notify(
                assignee,
                author_id,
                f"Auto-assigned task from team feed: {title}",
                task,
                result,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_task(
        self,
        resolved: ResolvedEntities,
        author_id: str,
        *,
        description: str,
        assignee: Optional[TeamMember],
        status: str = "todo",
        parent_task_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> Task:
        task = self.workspace.create_task(
            description=description,
            priority="medium",
            status=status,
            project_id=resolved.project_id,
            client_id=resolved.client_id,
            assignee_id=assignee.id if assignee else None,
            creator_id=author_id,
            parent_task_id=parent_task_id,
            guild_id=resolved.guild_id,
        )
        log_task_created(task.id, parent_task_id, post_id=post_id, assignee_id=task.assignee_id)
        return task

    def _notify(
        self,
        assignee: Optional[TeamMember],
        author_id: str,
        message: str,
        task: Task,
        result: FanoutResult,
    ) -> Optional[Notification]:
        """Notify the assignee of a task unless they assigned it to themselves."""
        if assignee is None or assignee.id == author_id:
            return None
        try:
            notification = self.workspace.create_notification(
                assignee.id,
                NOTIFICATION_TYPE,
                message,
                resource_id=task.id,
                resource_type=RESOURCE_TYPE,
            )
        except Exception as e:
            result.notification_failures += 1
            logger.warning(f"Notification for task {task.id} to {assignee.id} failed: {e}")
            log_error_with_context(e, {
                "operation": "create_notification",
                "user_id": assignee.id,
                "task_id": task.id,
            })
            return None

        result.notifications.append(notification)
        log_notification_dispatched(assignee.id, task.id)
        return notification
