"""Team Feed MCP Server - Core functionality package."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__all__ = [
    "FeedManager",
    "Workspace",
    "EntityResolver",
    "TaskFanout",
    "ParseResult",
    "parse_feed_post",
    "resolve_user",
]
