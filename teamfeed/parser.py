"""Tag grammar recognizer for feed posts.

A feed post is a title plus a free-text body. The first non-empty line of
``title + "\\n" + content`` is the header; it may carry ``@Guild <name>``,
``@Title <name>`` and ``@person`` tags. Later lines may be checklist items
(``- [ ] text @person``) that become subtasks.

Parsing is an ordered pipeline of small pure steps. Each step documents where
its match ends; later steps only ever look at the header or the raw text,
never at the output of an earlier strip, except for the main description
which is built by applying the strips in a fixed order. No step raises:
a tag that does not match simply leaves its field unset.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .models import ParsedSubtask, ParseResult

logger = logging.getLogger("teamfeed.parser")

RESERVED_KEYWORDS = ("guild", "title", "client")
TITLE_TRUNCATE_LIMIT = 50

# `@Guild <name>`: the name starts with a non-separator character and ends
# lazily at " - ", at whitespace before the next `@` token, or at end of line.
_GUILD_PATTERN = re.compile(
    r"@Guild\s+(?P<name>[^\s@\-][^@]*?)(?=\s+-\s+|\s+@|$)", re.IGNORECASE
)
# `@Title <name>`: the name is the run of non-`@` characters after the keyword.
_TITLE_PATTERN = re.compile(r"@Title\s+(?P<name>[^\s@][^@]*)", re.IGNORECASE)
_TITLE_CLAUSE_PATTERN = re.compile(r"@Title\s+.*$", re.IGNORECASE)
# Colon tags end at the next `@` or at a newline.
_EXPLICIT_TITLE_PATTERN = re.compile(r"@title:(?P<name>[^@\n]+)", re.IGNORECASE)
_EXPLICIT_CLIENT_PATTERN = re.compile(r"@client:(?P<name>[^@\n]+)", re.IGNORECASE)
_COLON_TAG_PATTERN = re.compile(r"@(?:title|client):[^@\n]*", re.IGNORECASE)
# Person mentions: any `@word` whose word does not start with a reserved keyword.
_MENTION_PATTERN = re.compile(r"@(?!guild|title|client)(?P<name>\w+)", re.IGNORECASE)
_ANY_TOKEN_PATTERN = re.compile(r"@\w+")
_TRAILING_MENTION_PATTERN = re.compile(r"@(?P<name>\w+)\s*$")
_SUBTASK_LINE_PATTERN = re.compile(r"^-\s*\[(?P<mark>[xX\s]?)\]\s*(?P<rest>.*)$")
_LEADING_SEPARATOR_PATTERN = re.compile(r"^\s*-(?:\s+|$)")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def split_lines(title: str, content: str) -> List[str]:
    """Step 1: trimmed, non-empty lines of the title followed by the body."""
    full_text = f"{title}\n{content}"
    return [line.strip() for line in full_text.split("\n") if line.strip()]


def extract_guild(header: str) -> Tuple[Optional[str], Optional[str]]:
    """Step 3: return ``(guild_name, guild_context)`` from the header line.

    The context is whatever follows the guild name: text up to the next
    ``" - "`` if there is one, otherwise the rest of the line with any
    ``@Title ...`` clause, colon tags and mentions removed.
    """
    match = _GUILD_PATTERN.search(header)
    if not match:
        return None, None

    guild_name = match.group("name").strip()
    remainder = _LEADING_SEPARATOR_PATTERN.sub("", header[match.end():], count=1).strip()

    if " - " in remainder:
        context = remainder.split(" - ", 1)[0].strip()
    else:
        context = _TITLE_CLAUSE_PATTERN.sub("", remainder)
        context = _COLON_TAG_PATTERN.sub("", context)
        context = _ANY_TOKEN_PATTERN.sub("", context)
        context = _collapse(context)

    return guild_name, context or None


def extract_title(header: str, content: str) -> Optional[str]:
    """Step 4: project name from ``@Title <name>`` or the body's ``@title:<name>``.

    The header form wins; the colon form is only consulted in the body.
    """
    match = _TITLE_PATTERN.search(header)
    if match:
        name = match.group("name").strip()
        if name:
            return name

    explicit = _EXPLICIT_TITLE_PATTERN.search(content)
    if explicit:
        name = explicit.group("name").strip()
        if name:
            return name
    return None


def extract_header_mentions(header: str) -> List[str]:
    """Step 5: person mentions in the header, in order of appearance."""
    return [match.group("name") for match in _MENTION_PATTERN.finditer(header)]


def build_main_description(
    header: str,
    title: str,
    guild_context: Optional[str],
    title_name: Optional[str],
) -> str:
    """Step 6: the description of the main task.

    Strips, in order: the guild span, the title span, colon tags, remaining
    ``@word`` tokens, a leading ``*`` bullet and separator, a trailing ``-``.
    A guild context replaces the stripped text; a title name is appended.
    Falls back to the raw title when nothing is left.
    """
    description = _GUILD_PATTERN.sub("", header, count=1)
    description = _TITLE_PATTERN.sub("", description, count=1)
    description = _COLON_TAG_PATTERN.sub("", description)
    description = _ANY_TOKEN_PATTERN.sub("", description)
    description = _collapse(description)
    description = re.sub(r"^\*\s*", "", description)
    description = _LEADING_SEPARATOR_PATTERN.sub("", description, count=1)
    description = re.sub(r"\s*-\s*$", "", description).strip()

    if guild_context:
        description = guild_context
    if title_name:
        description = f"{description} - {title_name}" if description else title_name
    return description or title


def parse_subtask_line(line: str) -> Optional[ParsedSubtask]:
    """Step 7: a checklist line as a subtask, or None for any other line.

    ``[x]``/``[X]`` marks the item complete. A trailing ``@word`` is the
    assignee and is removed from the description.
    """
    match = _SUBTASK_LINE_PATTERN.match(line)
    if not match:
        return None

    rest = match.group("rest")
    mention = _TRAILING_MENTION_PATTERN.search(rest)
    assignee_name = mention.group("name") if mention else None
    description = _TRAILING_MENTION_PATTERN.sub("", rest).strip()
    return ParsedSubtask(
        description=description,
        assignee_name=assignee_name,
        completed=match.group("mark").lower() == "x",
    )


def parse_feed_post(title: str, content: str) -> ParseResult:
    """Convert a post's title and body into a ParseResult.

    Never raises. Without any recognizable tags the result only carries the
    raw title as its main description.
    """
    title = title or ""
    content = content or ""
    result = ParseResult(main_description=title)

    lines = split_lines(title, content)
    if not lines:
        return result

    header = lines[0]
    result.guild_name, result.guild_context = extract_guild(header)
    result.title_name = extract_title(header, content)

    mentions = extract_header_mentions(header)
    if mentions:
        # the last person mentioned in the header owns the main task
        result.main_assignee = mentions[-1]

    result.main_description = build_main_description(
        header, title, result.guild_context, result.title_name
    )

    for line in lines[1:]:
        subtask = parse_subtask_line(line)
        if subtask is not None:
            result.subtasks.append(subtask)

    logger.debug(
        "Parsed post header %r: guild=%r title=%r assignee=%r subtasks=%d",
        header,
        result.guild_name,
        result.title_name,
        result.main_assignee,
        len(result.subtasks),
    )
    return result


def find_explicit_client(text: str) -> Optional[str]:
    """Client name from an ``@client:<name>`` tag anywhere in the text."""
    match = _EXPLICIT_CLIENT_PATTERN.search(text or "")
    if not match:
        return None
    return match.group("name").strip() or None


def scan_mentions(text: str) -> List[str]:
    """All person mentions in the text, skipping Guild/Title/Client and colon tags."""
    return [match.group("name") for match in _MENTION_PATTERN.finditer(text or "")]


def truncate_title(title: str, limit: int = TITLE_TRUNCATE_LIMIT) -> str:
    """Shorten a title to ``limit`` characters, ending with an ellipsis."""
    if len(title) > limit:
        return title[: limit - 3] + "..."
    return title
