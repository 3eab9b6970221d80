from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Final, cast

import requests
from gitlab import Gitlab
from gitlab.exceptions import GitlabError

from . import utils
from .exceptions import MigrationError
from .models import DiffPosition, Issue, Label, MergeRequest, Milestone, Note, SourceUser

if TYPE_CHECKING:
    from gitlab.v4.objects import Project

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITLAB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "gitlab/cli/ro_token"  # noqa: S105
DOWNLOAD_TIMEOUT_SECONDS: Final[int] = 30


def get_token(pass_path: str | None = None) -> str | None:
    """Get GitLab token from pass path, env var GITLAB_TOKEN, or default pass location."""
    # Try pass path first
    if pass_path:
        return utils.get_pass_value(pass_path)

    # Try environment variable
    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    # Try default pass path or default
    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, FileNotFoundError, utils.PassError):
        logger.warning("No GitLab token specified nor found")
        return None


def get_client(url: str | None = None, token: str | None = None) -> Gitlab:
    """Get a GitLab client for the instance at url using the token."""
    return Gitlab(url, private_token=token)


def get_project(client: Gitlab, project_path: str) -> Project:
    try:
        return client.projects.get(project_path)
    except GitlabError as e:
        msg = f"Failed to access GitLab project {project_path}: {e}"
        raise MigrationError(msg) from e


def _user(data: dict[str, Any] | None) -> SourceUser | None:
    if not data or not data.get("username"):
        return None
    return SourceUser(username=data["username"], name=data.get("name") or "")


def _position(data: dict[str, Any] | None) -> DiffPosition | None:
    if not data:
        return None
    return DiffPosition(
        base_sha=data.get("base_sha"),
        head_sha=data.get("head_sha"),
        start_sha=data.get("start_sha"),
        old_path=data.get("old_path"),
        new_path=data.get("new_path"),
        old_line=data.get("old_line"),
        new_line=data.get("new_line"),
    )


def _issue_fields(obj: Any) -> dict[str, Any]:  # noqa: ANN401
    attributes: dict[str, Any] = obj.attributes
    milestone = attributes.get("milestone")
    return {
        "iid": obj.iid,
        "title": obj.title,
        "description": attributes.get("description") or "",
        "state": obj.state,
        "labels": list(attributes.get("labels") or []),
        "milestone_title": milestone["title"] if milestone else None,
        "assignees": [u for u in (_user(a) for a in attributes.get("assignees") or []) if u is not None],
        "author": _user(attributes.get("author")),
        "created_at": attributes.get("created_at"),
        "updated_at": attributes.get("updated_at"),
        "web_url": attributes.get("web_url") or "",
    }


def convert_issue(obj: Any) -> Issue:  # noqa: ANN401
    """Convert a python-gitlab ProjectIssue."""
    return Issue(**_issue_fields(obj))


def convert_merge_request(obj: Any) -> MergeRequest:  # noqa: ANN401
    """Convert a python-gitlab ProjectMergeRequest."""
    return MergeRequest(
        **_issue_fields(obj),
        source_branch=obj.source_branch,
        target_branch=obj.target_branch,
    )


def convert_milestone(obj: Any) -> Milestone:  # noqa: ANN401
    """Convert a python-gitlab ProjectMilestone."""
    attributes: dict[str, Any] = obj.attributes
    return Milestone(
        iid=obj.iid,
        title=obj.title,
        description=attributes.get("description") or "",
        state=obj.state,
        due_date=attributes.get("due_date"),
        created_at=attributes.get("created_at"),
    )


def convert_note(obj: Any) -> Note:  # noqa: ANN401
    """Convert a python-gitlab note; inline diff comments keep their position."""
    attributes: dict[str, Any] = obj.attributes
    return Note(
        id=obj.id,
        body=attributes.get("body") or "",
        author=_user(attributes.get("author")),
        created_at=attributes.get("created_at"),
        position=_position(attributes.get("position")),
        system=bool(attributes.get("system")),
    )


class GitLabSource:
    """Reads the project to migrate through python-gitlab.

    Implements the SourceTracker protocol. API errors are raised as MigrationError.
    """

    def __init__(self, client: Gitlab, project: Project) -> None:
        self.client: Gitlab = client
        self.project: Project = project

    @property
    def path(self) -> str:
        return self.project.path_with_namespace

    def list_milestones(self) -> list[Milestone]:
        try:
            return [convert_milestone(m) for m in self.project.milestones.list(get_all=True)]
        except GitlabError as e:
            msg = f"Failed to list milestones of {self.path}: {e}"
            raise MigrationError(msg) from e

    def list_issues(self) -> list[Issue]:
        try:
            return [convert_issue(i) for i in self.project.issues.list(get_all=True, state="all")]
        except GitlabError as e:
            msg = f"Failed to list issues of {self.path}: {e}"
            raise MigrationError(msg) from e

    def list_merge_requests(self) -> list[MergeRequest]:
        try:
            return [convert_merge_request(mr) for mr in self.project.mergerequests.list(get_all=True, state="all")]
        except GitlabError as e:
            msg = f"Failed to list merge requests of {self.path}: {e}"
            raise MigrationError(msg) from e

    def list_issue_notes(self, issue_iid: int) -> list[Note]:
        try:
            issue = self.project.issues.get(issue_iid, lazy=True)
            return [convert_note(n) for n in issue.notes.list(get_all=True)]
        except GitlabError as e:
            msg = f"Failed to list notes of issue #{issue_iid}: {e}"
            raise MigrationError(msg) from e

    def list_merge_request_notes(self, merge_request_iid: int) -> list[Note]:
        try:
            merge_request = self.project.mergerequests.get(merge_request_iid, lazy=True)
            return [convert_note(n) for n in merge_request.notes.list(get_all=True)]
        except GitlabError as e:
            msg = f"Failed to list notes of merge request !{merge_request_iid}: {e}"
            raise MigrationError(msg) from e

    def list_branch_names(self) -> list[str]:
        try:
            return [b.name for b in self.project.branches.list(get_all=True)]
        except GitlabError as e:
            msg = f"Failed to list branches of {self.path}: {e}"
            raise MigrationError(msg) from e

    def list_labels(self) -> list[Label]:
        try:
            return [
                Label(name=label.name, color=label.color, description=label.attributes.get("description") or "")
                for label in self.project.labels.list(get_all=True)
            ]
        except GitlabError as e:
            msg = f"Failed to list labels of {self.path}: {e}"
            raise MigrationError(msg) from e

    def download_attachment(self, origin: str) -> bytes:
        return download_attachment(self.client, self.project, origin)


def download_attachment(client: Gitlab, project: Project, origin: str) -> bytes:
    """Download an attachment linked as /uploads/<secret>/<filename>.

    Uses the REST API endpoint (GitLab 17.4+) instead of the web URL to
    avoid Cloudflare blocks on web URLs.

    Raises:
        MigrationError: If the download fails
    """
    parts = origin.strip("/").split("/", 2)
    if len(parts) != 3 or parts[0] != "uploads":
        msg = f"Not an attachment URL: {origin}"
        raise MigrationError(msg)
    _, secret, filename = parts

    api_path = f"/projects/{project.id}/uploads/{secret}/{filename}"
    try:
        # http_get with raw=True returns requests.Response (type stubs are incorrect)
        response = cast(
            requests.Response,
            client.http_get(api_path, raw=True, timeout=DOWNLOAD_TIMEOUT_SECONDS),
        )
        response.raise_for_status()
    except (GitlabError, requests.RequestException) as e:
        msg = f"Failed to download attachment {origin}: {e}"
        raise MigrationError(msg) from e

    content_type = response.headers.get("Content-Type", "unknown")
    logger.debug(f"Downloaded {filename}: {len(response.content)} bytes, Content-Type: {content_type}")
    return response.content
