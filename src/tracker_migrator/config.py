"""
Configuration for converting GitLab content into GitHub content.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

DEFAULT_GITHUB_URL = "https://github.com"
DEFAULT_GITLAB_URL = "https://gitlab.com"


def parse_mapping_pairs(pairs: Sequence[str] | None) -> dict[str, str]:
    """Parse "source:target" pairs as given on the command line.

    Raises:
        ValueError: If a pair has no ':' separator or an empty side
    """
    mapping: dict[str, str] = {}
    for pair in pairs or []:
        if ":" not in pair:
            msg = f"Invalid mapping format: {pair}"
            raise ValueError(msg)
        source, target = pair.split(":", 1)
        if not source or not target:
            msg = f"Invalid mapping format: {pair}"
            raise ValueError(msg)
        mapping[source] = target
    return mapping


def _frozen(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class RewriteConfig:
    """Everything the body rewriter and the entity converter need to know.

    This replaces process-wide settings: the engine reads nothing else, so a
    test can build one of these and run the whole conversion in isolation.

    `usermap` maps source usernames to destination usernames; `projectmap` maps
    source "group/project" paths to destination "owner/repo" names. Empty
    mappings disable mention and cross-project rewriting respectively.

    `transfer_attachments` rewrites attachment links through the storage backend;
    `upload_attachments` tells whether that backend copies the files away from
    GitLab or keeps linking them there.
    """

    github_owner: str
    github_repo: str
    source_project_path: str = ""
    github_url: str = DEFAULT_GITHUB_URL
    source_url: str = DEFAULT_GITLAB_URL
    source_name: str = "GitLab"
    usermap: Mapping[str, str] = field(default_factory=dict)
    projectmap: Mapping[str, str] = field(default_factory=dict)
    token_owner: str | None = None
    transfer_attachments: bool = True
    upload_attachments: bool = False
    use_lower_case_labels: bool = True
    label_translations: tuple[str, ...] = ()
    skip_matching_comments: tuple[str, ...] = ()
    use_placeholder_milestones: bool = True
    use_placeholder_issues: bool = True
    use_placeholder_merge_requests: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "github_url", self.github_url.rstrip("/"))
        object.__setattr__(self, "source_url", self.source_url.rstrip("/"))
        object.__setattr__(self, "usermap", _frozen(self.usermap))
        object.__setattr__(self, "projectmap", _frozen(self.projectmap))
        object.__setattr__(self, "label_translations", tuple(self.label_translations))
        object.__setattr__(self, "skip_matching_comments", tuple(self.skip_matching_comments))

    @classmethod
    def for_repo(cls, github_repo_path: str, **kwargs: object) -> RewriteConfig:
        """Build a config from an "owner/repo" path."""
        if github_repo_path.count("/") != 1:
            msg = f"Invalid GitHub repository path: {github_repo_path}"
            raise ValueError(msg)
        owner, repo = github_repo_path.split("/")
        return cls(github_owner=owner, github_repo=repo, **kwargs)  # pyright: ignore[reportArgumentType]

    @property
    def repo_link(self) -> str:
        """Web URL of the destination repository."""
        return f"{self.github_url}/{self.github_owner}/{self.github_repo}"

    @property
    def attachments_on_source(self) -> bool:
        """Whether attachment links still point at GitLab after conversion."""
        return not (self.transfer_attachments and self.upload_attachments)

    def project_link(self, full_name: str) -> str:
        """Web URL of another destination repository given as "owner/repo"."""
        return f"{self.github_url}/{full_name}"

    def map_username(self, username: str) -> str | None:
        """Return the destination username for a source username, if known."""
        if self.token_owner and username == self.token_owner:
            return username
        return self.usermap.get(username)

    def is_token_owner(self, username: str | None) -> bool:
        """Whether a source user is the identity the migration runs as."""
        if not username or not self.token_owner:
            return False
        return username == self.token_owner or self.usermap.get(username) == self.token_owner
