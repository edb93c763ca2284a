"""Entity resolution and auto-creation for feed posts.

Given a parsed post, find or create the guild, client and project the post
refers to. Every step reads first and creates only on a miss; steps run in a
fixed order (guild, client, project, link) because later steps depend on
earlier ids.

Substring matching against client and project names is a loose
fallback for posts without explicit tags; it can pick up a name that happens
to appear as an ordinary word.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .models import Client, Guild, ParseResult, Project, ResolvedEntities
from .parser import find_explicit_client
from .workspace import Workspace
from .feed_logging import log_entity_created, log_operation

logger = logging.getLogger("teamfeed.resolution")


def _first_name_in_text(records: Sequence, text: str):
    """First record (in sequence order) whose lower-cased name occurs in ``text``."""
    for record in records:
        name = record.name.lower().strip()
        if name and name in text:
            return record
    return None


class EntityResolver:
    """Resolve the guild, client and project a post refers to."""

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def resolve(
        self,
        parsed: ParseResult,
        title: str,
        content: str,
        clients: Sequence[Client],
        projects: Sequence[Project],
        *,
        post_id: Optional[int] = None,
    ) -> ResolvedEntities:
        """Resolve entities for a post.

        ``clients`` and ``projects`` are snapshots taken before processing
        began; "first match wins" follows their order.
        """
        resolved = ResolvedEntities()
        text = f"{title} {content}"
        # colon tags end at a newline, so the title must not run into the body
        tagged_text = f"{title}\n{content}"

        with log_operation("resolve_entities", post_id=post_id):
            resolved.guild = self._resolve_guild(parsed, resolved, post_id)
            resolved.client = self._resolve_client(tagged_text, text, clients, resolved, post_id)
            resolved.project = self._resolve_project(parsed, text, projects, resolved, post_id)

            if resolved.guild is not None and resolved.project is not None:
                self.workspace.create_or_get_link(resolved.project.id, resolved.guild.id)

        logger.info(
            "Post %s resolved to guild=%s client=%s project=%s",
            post_id,
            resolved.guild_id,
            resolved.client_id,
            resolved.project_id,
        )
        return resolved

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_guild(self, parsed: ParseResult, resolved: ResolvedEntities, post_id) -> Optional[Guild]:
        if not parsed.guild_name:
            return None
        guild = self.workspace.get_guild_by_name(parsed.guild_name)
        if guild is None:
            guild = self.workspace.create_guild(parsed.guild_name)
            resolved.created.append(f"guild:{guild.id}")
            log_entity_created("guild", guild.id, guild.name, post_id=post_id)
        return guild

    def _resolve_client(
        self,
        tagged_text: str,
        text: str,
        clients: Sequence[Client],
        resolved: ResolvedEntities,
        post_id,
    ) -> Optional[Client]:
        client_name = find_explicit_client(tagged_text)
        if client_name:
            wanted = client_name.lower()
            for client in clients:
                if client.name.lower() == wanted:
                    return client
            client = self.workspace.create_client(client_name)
            resolved.created.append(f"client:{client.id}")
            log_entity_created("client", client.id, client.name, post_id=post_id)
            return client

        return _first_name_in_text(clients, text.lower())

    def _resolve_project(
        self,
        parsed: ParseResult,
        text: str,
        projects: Sequence[Project],
        resolved: ResolvedEntities,
        post_id,
    ) -> Optional[Project]:
        project = None
        if parsed.title_name:
            wanted = parsed.title_name.lower()
            project = next((p for p in projects if p.name.lower() == wanted), None)
            if project is None and resolved.client is not None:
                project = self.workspace.create_project(
                    parsed.title_name, resolved.client.id, status="active"
                )
                resolved.created.append(f"project:{project.id}")
                log_entity_created(
                    "project", project.id, project.name, client_id=resolved.client.id, post_id=post_id
                )

        if project is None:
            candidates = projects
            if resolved.client is not None:
                candidates = [p for p in projects if p.client_id == resolved.client.id]
            project = _first_name_in_text(candidates, text.lower())
        return project
