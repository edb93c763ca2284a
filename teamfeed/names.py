"""Resolve free-text name tokens against the team roster."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import TeamMember


def candidate_names(member: TeamMember) -> List[str]:
    """Lower-cased names a member answers to, in rule order.

    First name, email local part, first+last joined, then "first last".
    Missing parts yield no candidate rather than an empty string.
    """
    first = (member.first_name or "").lower()
    last = (member.last_name or "").lower()
    candidates = [first, member.email_local_part.lower()]
    if first and last:
        candidates.append(first + last)
        candidates.append(f"{first} {last}")
    return [name for name in candidates if name]


def resolve_user(roster: Iterable[TeamMember], token: Optional[str]) -> Optional[TeamMember]:
    """Return the first roster member whose name matches ``token``.

    Matching is case-insensitive and exact; no fuzzy or partial matches.
    An unresolved token returns None, which callers treat as "no assignee".
    """
    if not token:
        return None
    wanted = token.strip().lower()
    if not wanted:
        return None

    for member in roster:
        if wanted in candidate_names(member):
            return member
    return None
