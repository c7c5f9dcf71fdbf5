"""
Roster computations for group membership changes.

These are pure functions over lists of member identifiers. The store loads
the persisted roster, runs one of these, and writes the result back.
"""

from typing import List, Optional

MEMBER_DELIMITER = ","


def filter_on_create(owner: str, candidates: List[str], local_number: str) -> List[str]:
    """
    Build the initial roster for a new group.

    The owner comes first, followed by the candidates in order. The local
    identifier is dropped wherever it appears. Duplicates among the
    candidates are kept.
    """
    roster = []
    if owner != local_number:
        roster.append(owner)

    for member in candidates:
        if member != local_number:
            roster.append(member)

    return roster


def append(current: List[str], incoming: List[str], source: str) -> List[str]:
    """Add incoming members, but only when the source is already a member."""
    if source not in current:
        return list(current)
    return list(current) + list(incoming)


def remove(current: List[str], source: str) -> List[str]:
    """Remove the first occurrence of source from the roster."""
    roster = list(current)
    if source in roster:
        roster.remove(source)
    return roster


def join_members(roster: List[str]) -> str:
    for member in roster:
        if MEMBER_DELIMITER in member:
            raise ValueError(f"Member identifier may not contain '{MEMBER_DELIMITER}': {member!r}")
    return MEMBER_DELIMITER.join(roster)


def split_members(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return text.split(MEMBER_DELIMITER)
