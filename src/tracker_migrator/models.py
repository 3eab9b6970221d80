"""Data models exchanged between the source adapter, the conversion engine and the destination.

Source records are normalized from the GitLab API by `gitlab_utils.GitLabSource`.
Destination payloads are what the destination needs to create issues, pull
requests, milestones, comments and labels. Both sides are intentionally plain
dataclasses so the engine can be tested without any API client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol

EntityKind = Literal["issue", "merge request", "milestone"]


@dataclass(frozen=True)
class SourceUser:
    """A user identity on the source system."""

    username: str
    name: str = ""


@dataclass(frozen=True)
class DiffPosition:
    """Position of an inline review comment in a merge request diff."""

    base_sha: str | None = None
    head_sha: str | None = None
    start_sha: str | None = None
    old_path: str | None = None
    new_path: str | None = None
    old_line: int | None = None
    new_line: int | None = None


@dataclass
class Issue:
    """An issue from the source system.

    `description` may still contain source references (`#12`, `!3`, `%"v1.0"`,
    `@user`, `/uploads/...` links). They are rewritten by `BodyRewriter`.
    """

    iid: int
    title: str
    description: str = ""
    state: str = "opened"
    labels: list[str] = field(default_factory=list)
    milestone_title: str | None = None
    assignees: list[SourceUser] = field(default_factory=list)
    author: SourceUser | None = None
    created_at: str | None = None
    updated_at: str | None = None
    web_url: str = ""


@dataclass
class MergeRequest(Issue):
    """A merge request from the source system.

    State is one of "opened", "closed", "merged" or "locked".
    """

    source_branch: str = ""
    target_branch: str = ""

    @property
    def issue_title(self) -> str:
        """Title of the issue created instead when the branches are gone."""
        return f"{self.title.strip()} - [{self.state}]"


@dataclass
class Milestone:
    """A milestone from the source system (state is "active" or "closed")."""

    iid: int
    title: str
    description: str = ""
    state: str = "active"
    due_date: str | None = None
    author: SourceUser | None = None
    created_at: str | None = None


@dataclass
class Note:
    """A comment on an issue or merge request.

    `position` is only set for inline comments on a merge request diff.
    `system` marks notes generated by the source system (state changes etc.).
    """

    id: int
    body: str
    author: SourceUser | None = None
    created_at: str | None = None
    position: DiffPosition | None = None
    system: bool = False


@dataclass(frozen=True)
class Label:
    """A label from the source system (color includes the leading '#')."""

    name: str
    color: str
    description: str = ""


@dataclass(frozen=True)
class SimpleItem:
    """Minimal projection of an entity: its number and title."""

    number: int
    title: str


@dataclass(frozen=True)
class Placeholder:
    """Synthetic closed entity filling a gap in the source numbering.

    Placeholders only live in the working sequences produced while building the
    identifier maps. The creation step turns them into closed payloads so that
    destination numbers stay aligned with source numbers.
    """

    iid: int
    kind: EntityKind
    title: str
    description: str
    state: Literal["closed"] = "closed"


@dataclass(frozen=True)
class AttachmentMetadata:
    """Where an attachment comes from and where it ends up."""

    origin: str  # Relative URL as it appears in source content, e.g. /uploads/<secret>/a.png
    destination: str
    mime_type: str | None = None


class Attributable(Protocol):
    """The part of an entity that the attribution line reads."""

    @property
    def author(self) -> SourceUser | None: ...

    @property
    def created_at(self) -> str | None: ...


# Destination payloads


@dataclass
class IssueData:
    """Creation data for a destination issue."""

    title: str
    body: str
    state: Literal["open", "closed"] = "open"
    labels: list[str] = field(default_factory=list)
    milestone: int | None = None
    assignees: list[str] = field(default_factory=list)
    assignee: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def closed(self) -> bool:
        return self.state == "closed"


@dataclass
class PullRequestData(IssueData):
    """Creation data for a destination pull request."""

    head: str = ""
    base: str = ""
    draft: bool = False


@dataclass
class MilestoneData:
    """Creation data for a destination milestone."""

    title: str
    description: str = ""
    state: Literal["open", "closed"] = "open"
    due_on: str | None = None


@dataclass
class CommentData:
    """Creation data for a destination comment."""

    body: str
    created_at: str | None = None


@dataclass(frozen=True)
class LabelData:
    """Creation data for a destination label (color without '#')."""

    name: str
    color: str
    description: str = ""
