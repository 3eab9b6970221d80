"""Convert GitLab entities into GitHub creation payloads."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Literal

from .id_mapping import PLACEHOLDER_DESCRIPTION
from .labels import HAS_ATTACHMENT_LABEL, MERGE_REQUEST_LABEL, LabelTranslator
from .models import CommentData, IssueData, MergeRequest, Milestone, MilestoneData, Placeholder, PullRequestData

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from .body_rewriter import BodyRewriter
    from .config import RewriteConfig
    from .id_mapping import IdentifierMaps
    from .models import Issue, Note

logger: logging.Logger = logging.getLogger(__name__)

# See https://docs.gitlab.com/ee/user/project/merge_requests/drafts.html
DRAFT_TITLE_PATTERN: re.Pattern[str] = re.compile(r"^(draft:|wip:|\((draft|wip)\))|\[(draft|wip)\]", re.IGNORECASE)

# Notes GitLab generates for state changes; the GitHub timeline has its own
STATE_CHANGE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^changed milestone to .*",
        r"^Milestone changed to .*",
        r"^(Re)*assigned to ",
        r"^added .* labels",
        r"^Added ~.* label",
        r"^removed ~.* label",
        r"^mentioned in issue #\d+.*",
        r"^mentioned in merge request !\d+",
        r"^changed the description.*",
        r"^changed title from.*to.*",
    )
)
_STATUS_CHANGE = re.compile(r"Status changed to .*", re.IGNORECASE)
_CLOSED_BY_COMMIT = re.compile(r"Status changed to closed by commit.*", re.IGNORECASE)

# Labels that lose their meaning once an issue is closed
_OPEN_ONLY_LABELS = frozenset({"doing", "to do"})


def is_draft(title: str) -> bool:
    """Whether a merge request title marks it as a draft."""
    return DRAFT_TITLE_PATTERN.search(title) is not None


def should_skip_note(note: Note, skip_patterns: Sequence[str] = ()) -> bool:
    """Whether a note carries no content worth migrating.

    System notes and state-change notes are skipped, except "Status changed to
    closed by commit", which records which commit closed the issue.
    `skip_patterns` are regular expressions matched case-insensitively.
    """
    body = note.body or ""
    if _CLOSED_BY_COMMIT.search(body):
        return False
    if note.system or _STATUS_CHANGE.search(body):
        return True
    if any(pattern.search(body) for pattern in STATE_CHANGE_PATTERNS):
        return True
    return any(re.search(pattern, body, re.IGNORECASE) for pattern in skip_patterns)


def convert_state(state: str) -> Literal["open", "closed"]:
    """Convert a state string into "open" or "closed", defaulting to "open"."""
    return "closed" if state.lower() == "closed" else "open"


def branches_exist(merge_request: MergeRequest, branch_names: Collection[str]) -> bool:
    """Whether both branches of a merge request still exist in the repository."""
    return merge_request.source_branch in branch_names and merge_request.target_branch in branch_names


class EntityConverter:
    """Builds the GitHub payloads of issues, merge requests, milestones and comments.

    Bodies go through the `BodyRewriter`; milestone and assignee fields are
    resolved through the frozen identifier maps and the user map.
    """

    def __init__(self, config: RewriteConfig, maps: IdentifierMaps, rewriter: BodyRewriter) -> None:
        self.config: RewriteConfig = config
        self.maps: IdentifierMaps = maps
        self.rewriter: BodyRewriter = rewriter
        self.translator: LabelTranslator = LabelTranslator(config.label_translations)

    def map_milestone(self, item: Issue) -> int | None:
        """Return the GitHub milestone number for the milestone of an issue or merge request."""
        if not item.milestone_title:
            return None
        milestone = self.maps.milestone_by_title(item.milestone_title)
        if milestone is None:
            logger.warning(f"Milestone '{item.milestone_title}' of #{item.iid} not found in milestone map")
            return None
        return milestone.number

    def convert_assignees(self, item: Issue) -> list[str]:
        """Map assignees to GitHub usernames; unmapped users are dropped."""
        assignees: list[str] = []
        for assignee in item.assignees:
            username = self.config.map_username(assignee.username)
            if username:
                assignees.append(username)
            else:
                logger.debug(f"No GitHub user for assignee @{assignee.username} of #{item.iid}")
        return assignees

    def convert_label_names(self, item: Issue) -> list[str]:
        """Convert label names, adding "has attachment" if the description links uploads."""
        labels: list[str] = []
        for label in item.labels:
            if item.state == "closed" and label.lower() in _OPEN_ONLY_LABELS:
                continue
            name = self.translator.translate(label)
            labels.append(name.lower() if self.config.use_lower_case_labels else name)

        # Attachments that stay on GitLab are only linked, flag them for review
        if "/uploads/" in (item.description or "") and self.config.attachments_on_source:
            labels.append(HAS_ATTACHMENT_LABEL.name)
        return labels

    def _needs_attribution(self, item: Issue | Note, body: str | None) -> bool:
        author = item.author.username if item.author else None
        return not self.config.is_token_owner(author) or not body

    def convert_issue(self, issue: Issue) -> IssueData:
        assignees = self.convert_assignees(issue)
        return IssueData(
            title=issue.title.strip(),
            body=self.rewriter.rewrite(
                issue.description,
                issue,
                add_attribution_line=self._needs_attribution(issue, issue.description),
                context=f"issue #{issue.iid}",
            ),
            state=convert_state(issue.state),
            labels=self.convert_label_names(issue),
            milestone=self.map_milestone(issue),
            assignees=assignees,
            assignee=assignees[0] if len(assignees) == 1 else None,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
        )

    def convert_merge_request(self, merge_request: MergeRequest) -> PullRequestData:
        """Convert a merge request into a pull request.

        Merged merge requests become closed pull requests: merging on GitHub
        would add new commits to the history.
        """
        closed = merge_request.state in ("merged", "closed")
        assignees = self.convert_assignees(merge_request)
        return PullRequestData(
            title=merge_request.title.strip(),
            body=self.rewriter.rewrite(
                merge_request.description,
                merge_request,
                context=f"merge request !{merge_request.iid}",
            ),
            state="closed" if closed else "open",
            labels=self.convert_label_names(merge_request),
            milestone=self.map_milestone(merge_request),
            assignees=assignees,
            assignee=assignees[0] if len(assignees) == 1 else None,
            created_at=merge_request.created_at,
            updated_at=merge_request.updated_at,
            head=merge_request.source_branch,
            base=merge_request.target_branch,
            draft=is_draft(merge_request.title),
        )

    def convert_merge_request_to_issue(self, merge_request: MergeRequest) -> IssueData:
        """Convert a merge request whose branches are gone into an issue."""
        data = self.convert_merge_request(merge_request)
        return IssueData(
            title=merge_request.issue_title,
            body=f"_Merges {data.head} -> {data.base}_\n\n{data.body}",
            state=data.state,
            labels=[*data.labels, MERGE_REQUEST_LABEL.name],
            milestone=data.milestone,
            assignees=data.assignees,
            assignee=data.assignee,
            created_at=data.created_at,
            updated_at=data.updated_at,
        )

    def convert_milestone(self, milestone: Milestone) -> MilestoneData:
        return MilestoneData(
            title=milestone.title,
            description=self.rewriter.rewrite(
                milestone.description,
                milestone,
                add_attribution_line=False,
                context=f"milestone %{milestone.iid}",
            ),
            state="open" if milestone.state == "active" else "closed",
            due_on=f"{milestone.due_date}T00:00:00Z" if milestone.due_date else None,
        )

    def convert_notes(self, notes: Iterable[Note], owner: str = "") -> list[CommentData]:
        """Convert the notes of an issue or merge request into comments, oldest first.

        Args:
            notes: Notes in any order
            owner: Owner of the notes for log messages (e.g., "issue #5")
        """
        comments: list[CommentData] = []
        skipped = 0
        for note in sorted(notes, key=lambda n: n.id):
            if should_skip_note(note, self.config.skip_matching_comments):
                skipped += 1
                continue
            context = f"note {note.id} on {owner}" if owner else f"note {note.id}"
            comments.append(
                CommentData(
                    body=self.rewriter.rewrite(
                        note.body,
                        note,
                        add_attribution_line=self._needs_attribution(note, note.body),
                        context=context,
                    ),
                    created_at=note.created_at,
                )
            )
        if skipped:
            logger.debug(f"Skipped {skipped} notes{f' on {owner}' if owner else ''}")
        return comments

    def replacement_issue(self, issue: Issue) -> IssueData:
        """Build the issue created in place of one that GitHub refused.

        It keeps the number and title of the original issue, but not its description.
        """
        description = (
            f"The original issue\n\n\tId: {issue.iid}\n\tTitle: {issue.title}\n\n"
            "could not be created.\nThis is a dummy issue, replacing the original one."
        )
        if issue.web_url:
            description += (
                "\n\nIn case the GitLab repository still exists, visit the following link "
                f"to see the original issue:\n\n{issue.web_url}"
            )
        return IssueData(
            title=f"{issue.title} [REPLACEMENT ISSUE]",
            body=description,
            state=convert_state(issue.state),
            created_at=issue.created_at,
            updated_at=issue.updated_at,
        )

    def convert_placeholder(self, placeholder: Placeholder) -> IssueData | MilestoneData:
        """Build the closed payload standing in for a deleted entity."""
        if placeholder.kind == "milestone":
            return MilestoneData(title=placeholder.title, description=PLACEHOLDER_DESCRIPTION, state="closed")
        return IssueData(title=placeholder.title, body=PLACEHOLDER_DESCRIPTION, state="closed")

    def convert(self, item: Issue | Milestone | Placeholder) -> IssueData | MilestoneData:
        """Convert any entry of a working sequence (issue, merge request, milestone or placeholder)."""
        if isinstance(item, Placeholder):
            return self.convert_placeholder(item)
        if isinstance(item, MergeRequest):
            return self.convert_merge_request(item)
        if isinstance(item, Milestone):
            return self.convert_milestone(item)
        return self.convert_issue(item)
