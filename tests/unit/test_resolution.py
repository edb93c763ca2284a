"""Unit tests for guild, client and project resolution."""

import pytest

from teamfeed.parser import parse_feed_post
from teamfeed.resolution import EntityResolver
from teamfeed.workspace import Workspace


@pytest.fixture
def workspace(tmp_path):
    return Workspace(tmp_path)


@pytest.fixture
def resolver(workspace):
    return EntityResolver(workspace)


def resolve(resolver, workspace, title, content=""):
    parsed = parse_feed_post(title, content)
    return resolver.resolve(
        parsed,
        title,
        content,
        workspace.list_clients(),
        workspace.list_projects(),
    )


class TestGuildResolution:
    """Test cases for guild lookup and creation."""

    def test_guild_created_once(self, resolver, workspace):
        first = resolve(resolver, workspace, "@Guild DGA - Kickoff")
        second = resolve(resolver, workspace, "@Guild dga - Wrap")

        assert first.guild_id == second.guild_id
        assert first.created == [f"guild:{first.guild_id}"]
        assert second.created == []
        assert [g.name for g in workspace.list_guilds()] == ["DGA"]

    def test_guild_does_not_need_client(self, resolver, workspace):
        resolved = resolve(resolver, workspace, "@Guild Teamsters - Parking")
        assert resolved.guild is not None
        assert resolved.client_id is None


class TestClientResolution:
    """Test cases for client lookup and creation."""

    def test_explicit_tag_matches_existing(self, resolver, workspace):
        existing = workspace.create_client("A24")
        resolved = resolve(resolver, workspace, "Notes @client:a24")
        assert resolved.client_id == existing.id
        assert resolved.created == []

    def test_explicit_tag_at_end_of_title_stops_at_body(self, resolver, workspace):
        existing = workspace.create_client("A24")
        resolved = resolve(resolver, workspace, "Notes @client:A24", "notes to follow")

        assert resolved.client_id == existing.id
        assert resolved.created == []
        assert [c.name for c in workspace.list_clients()] == ["A24"]

    def test_explicit_tag_creates_missing(self, resolver, workspace):
        resolved = resolve(resolver, workspace, "Notes", "@client:Neon Films\nmore")
        assert resolved.client.name == "Neon Films"
        assert resolved.created == [f"client:{resolved.client_id}"]

    def test_substring_fallback_first_match_wins(self, resolver, workspace):
        workspace.create_client("Neon")
        workspace.create_client("Focus")
        resolved = resolve(resolver, workspace, "Call with Focus and neon today")
        assert resolved.client.name == "Neon"

    def test_substring_fallback_is_loose(self, resolver, workspace):
        workspace.create_client("Arc")
        resolved = resolve(resolver, workspace, "Search the archive")
        assert resolved.client.name == "Arc"

    def test_no_client(self, resolver, workspace):
        workspace.create_client("Neon")
        resolved = resolve(resolver, workspace, "Lunch order")
        assert resolved.client_id is None
        assert workspace.list_clients()[0].name == "Neon"


class TestProjectResolution:
    """Test cases for project lookup and creation."""

    def test_title_creates_project_under_client(self, resolver, workspace):
        client = workspace.create_client("A24")
        resolved = resolve(resolver, workspace, "@Title Uncut Gems 2 @client:A24")

        assert resolved.project.name == "Uncut Gems 2"
        assert resolved.project.client_id == client.id
        assert resolved.project.status == "active"
        assert resolved.created == [f"project:{resolved.project_id}"]

    def test_title_matches_existing_across_clients(self, resolver, workspace):
        a24 = workspace.create_client("A24")
        neon = workspace.create_client("Neon")
        project = workspace.create_project("Anora", neon.id)

        resolved = resolve(resolver, workspace, "Prep @Title anora @client:A24")

        assert resolved.project_id == project.id
        assert resolved.client_id == a24.id
        assert len(workspace.list_projects()) == 1

    def test_title_without_client_is_not_created(self, resolver, workspace):
        resolved = resolve(resolver, workspace, "@Title Nowhere")
        assert resolved.project is None
        assert workspace.list_projects() == []

    def test_project_supplies_client(self, resolver, workspace):
        client = workspace.create_client("Neon")
        project = workspace.create_project("Anora", client.id)

        resolved = resolve(resolver, workspace, "@Title Anora")

        assert resolved.client is None
        assert resolved.project_id == project.id
        assert resolved.client_id == client.id

    def test_substring_scan_constrained_to_client(self, resolver, workspace):
        neon = workspace.create_client("Neon")
        a24 = workspace.create_client("A24")
        workspace.create_project("Babygirl", neon.id)
        mine = workspace.create_project("Babygirl", a24.id)

        resolved = resolve(resolver, workspace, "A24 babygirl schedule")

        assert resolved.client_id == a24.id
        assert resolved.project_id == mine.id

    def test_substring_scan_without_client(self, resolver, workspace):
        neon = workspace.create_client("Studio")
        project = workspace.create_project("Anora", neon.id)

        resolved = resolve(resolver, workspace, "anora dailies")

        assert resolved.project_id == project.id
        assert resolved.client_id == neon.id


class TestGuildProjectLink:
    """Test cases for guild and project linking."""

    def test_link_created_once(self, resolver, workspace):
        workspace.create_client("A24")
        first = resolve(resolver, workspace, "@Guild SAG - Casting @Title Uncut Gems 2 @client:A24")
        second = resolve(resolver, workspace, "@Guild SAG - Wardrobe @Title Uncut Gems 2 @client:A24")

        links = workspace.list_project_guilds()
        assert len(links) == 1
        assert links[0].project_id == first.project_id == second.project_id
        assert links[0].guild_id == first.guild_id == second.guild_id
        assert len(workspace.list_projects()) == 1

    def test_no_link_without_project(self, resolver, workspace):
        resolve(resolver, workspace, "@Guild SAG - Casting")
        assert workspace.list_project_guilds() == []
