"""Protocols defining the contracts of the systems around the conversion engine.

The migration separates concerns into:

1. SourceTracker: Reads milestones, issues, merge requests and notes (GitLab)
2. DestinationTracker: Lists what already exists in the target (GitHub)
3. StorageBackend: Decides where attachments go and moves their bytes
4. The engine (id_mapping, body_rewriter, converter): pure conversion

The engine never calls the network itself. Everything it needs is read
through these protocols by the `Migrator` before conversion starts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import AttachmentMetadata, Issue, Label, MergeRequest, Milestone, Note, SimpleItem


class SourceTracker(Protocol):
    """Read access to the project being migrated.

    List methods return complete collections (the implementation handles
    pagination). The order does not matter; the engine sorts by iid.
    """

    def list_milestones(self) -> list[Milestone]:
        """Return all milestones, open and closed."""
        ...

    def list_issues(self) -> list[Issue]:
        """Return all issues, open and closed."""
        ...

    def list_merge_requests(self) -> list[MergeRequest]:
        """Return all merge requests in every state."""
        ...

    def list_issue_notes(self, issue_iid: int) -> list[Note]:
        """Return all notes of an issue."""
        ...

    def list_merge_request_notes(self, merge_request_iid: int) -> list[Note]:
        """Return all notes of a merge request, including inline diff comments."""
        ...

    def list_branch_names(self) -> list[str]:
        """Return the names of all branches still present in the source repository."""
        ...

    def list_labels(self) -> list[Label]:
        """Return all project labels."""
        ...


class DestinationTracker(Protocol):
    """Read access to the repository being migrated to.

    Used to detect entities created by an earlier run (matched by title).
    """

    def list_milestones(self) -> list[SimpleItem]:
        """Return all milestones as number and title."""
        ...

    def list_issues(self) -> list[SimpleItem]:
        """Return all issues (without pull requests) as number and title."""
        ...

    def list_pull_requests(self) -> list[SimpleItem]:
        """Return all pull requests as number and title."""
        ...


class StorageBackend(Protocol):
    """Where attachments linked from migrated content are stored."""

    def preprocess(self, url: str) -> AttachmentMetadata:
        """Compute the destination of an attachment without any I/O.

        Args:
            url: Attachment URL as it appears in source content (/uploads/...)
        """
        ...

    def transfer(self, attachment: AttachmentMetadata) -> None:
        """Move the attachment bytes to the destination computed by preprocess().

        Raises:
            AttachmentTransferError: If the transfer fails
        """
        ...
