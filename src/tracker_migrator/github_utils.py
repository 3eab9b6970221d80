from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Final

from github import Auth, Github, GithubException, UnknownObjectException

from . import utils
from .exceptions import MigrationError
from .models import SimpleItem

if TYPE_CHECKING:
    from github.Repository import Repository

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "github/cli/token"  # noqa: S105
DEFAULT_API_URL: Final[str] = "https://api.github.com"


def get_token(pass_path: str | None = None) -> str | None:
    """Get GitHub token from pass path, env var GITHUB_TOKEN, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, FileNotFoundError, utils.PassError):
        logger.warning("No GitHub token specified nor found")
        return None


def api_url(github_url: str) -> str:
    """REST API URL for a GitHub web URL (github.com or GitHub Enterprise)."""
    github_url = github_url.rstrip("/")
    if github_url in ("https://github.com", "http://github.com"):
        return DEFAULT_API_URL
    return f"{github_url}/api/v3"


def get_client(token: str | None = None, github_url: str = "https://github.com") -> Github:
    """Get a GitHub client using the token."""
    auth = Auth.Token(token) if token else None
    return Github(auth=auth, base_url=api_url(github_url))


def get_repo(client: Github, repo_path: str) -> Repository | None:
    """Return the repository, or None if it does not exist."""
    try:
        return client.get_repo(repo_path)
    except UnknownObjectException as e:
        if e.status == 404:
            return None
        msg = f"Error checking repository existence: {e}"
        raise MigrationError(msg) from e
    except GithubException as e:
        msg = f"Error checking repository existence: {e}"
        raise MigrationError(msg) from e


class GitHubDestination:
    """Lists what already exists in the destination repository through PyGithub.

    Implements the DestinationTracker protocol. A repository that does not
    exist yet is treated as empty.
    """

    def __init__(self, repo: Repository | None) -> None:
        self.repo: Repository | None = repo

    def list_milestones(self) -> list[SimpleItem]:
        if self.repo is None:
            return []
        try:
            return [SimpleItem(number=m.number, title=m.title) for m in self.repo.get_milestones(state="all")]
        except GithubException as e:
            msg = f"Failed to list milestones of {self.repo.full_name}: {e}"
            raise MigrationError(msg) from e

    def list_issues(self) -> list[SimpleItem]:
        if self.repo is None:
            return []
        try:
            # The issues endpoint also returns pull requests
            return [
                SimpleItem(number=i.number, title=i.title)
                for i in self.repo.get_issues(state="all")
                if i.pull_request is None
            ]
        except GithubException as e:
            msg = f"Failed to list issues of {self.repo.full_name}: {e}"
            raise MigrationError(msg) from e

    def list_pull_requests(self) -> list[SimpleItem]:
        if self.repo is None:
            return []
        try:
            return [SimpleItem(number=p.number, title=p.title) for p in self.repo.get_pulls(state="all")]
        except GithubException as e:
            msg = f"Failed to list pull requests of {self.repo.full_name}: {e}"
            raise MigrationError(msg) from e
