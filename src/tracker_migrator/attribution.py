"""Attribution lines for migrated issues, merge requests and comments.

Everything is created on GitHub by the migration identity, so the original
author and creation date are recorded in a line prepended to the body.
"""

from __future__ import annotations

import datetime as dt
import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Attributable, DiffPosition


def parse_timestamp(iso_timestamp: str | None) -> dt.datetime | None:
    """Parse an ISO 8601 timestamp, returning None if it is empty or invalid."""
    if not iso_timestamp:
        return None
    try:
        return dt.datetime.fromisoformat(iso_timestamp)
    except (ValueError, AttributeError):
        return None


def format_timestamp(iso_timestamp: str) -> str:
    """Format ISO 8601 timestamp to a human-readable format.

    Args:
        iso_timestamp: ISO 8601 formatted timestamp string (e.g., "2024-01-15T10:30:45.123Z")

    Returns:
        Formatted timestamp (e.g., "Jan 15, 2024, 10:30").
        Returns original value if parsing fails.
    """
    timestamp_dt = parse_timestamp(iso_timestamp)
    if timestamp_dt is None:
        return iso_timestamp
    return f"{timestamp_dt:%b} {timestamp_dt.day}, {timestamp_dt.year}, {timestamp_dt:%H:%M}"


def create_line_ref(position: DiffPosition | None, repo_link: str) -> str:
    """Link an inline review comment to the diff line on GitHub.

    The new side of the diff is used when it has a path and line, otherwise the
    old side. Without either, the link points at the commit range only.

    Returns:
        Markdown line, or an empty string if the position has no head commit
    """
    if not repo_link or position is None or not position.head_sha:
        return ""

    side = ""
    path = ""
    line: int | None = None
    slug = ""
    if position.new_path and position.new_line:
        side, path, line = "R", position.new_path, position.new_line
    elif position.old_path and position.old_line:
        side, path, line = "L", position.old_path, position.old_line
    if path and line:
        path_hash = hashlib.md5(path.encode(), usedforsecurity=False).hexdigest()
        slug = f"#diff-{path_hash}{side}{line}"

    ref = f"{path} line {line}" if path and line else position.head_sha
    return f"Commented on [{ref}]({repo_link}/compare/{position.base_sha}..{position.head_sha}{slug})"


def build_attribution(
    item: Attributable | None,
    *,
    source_name: str,
    repo_link: str,
    position: DiffPosition | None = None,
) -> str:
    """Build the attribution header for an item, or "" if author or date is unknown."""
    if item is None or item.author is None or not item.author.username or not item.created_at:
        return ""

    attribution = f"In {source_name} by @{item.author.username} on {format_timestamp(item.created_at)}"
    line_ref = create_line_ref(position, repo_link)
    if line_ref:
        attribution += f"\n\n{line_ref}"
    return attribution


def add_attribution(
    text: str,
    item: Attributable | None,
    *,
    source_name: str,
    repo_link: str,
    position: DiffPosition | None = None,
) -> str:
    """Prepend the attribution header to a body (unchanged if there is none)."""
    attribution = build_attribution(item, source_name=source_name, repo_link=repo_link, position=position)
    if not attribution:
        return text
    return f"{attribution}\n\n{text}"
