"""Rewrite GitLab markdown bodies so references resolve on GitHub.

A body is rewritten by a fixed sequence of passes, each working on the output
of the previous one:

1. Attribution line (optional): "In GitLab by @user on <date>", plus a link
   to the diff line for inline review comments
2. User mentions: @gitlab_user -> @github_user
3. Issue references: group/project#12 and #12
4. Milestone references: group/project%"title", group/project%3, %"title", %3
5. Label references (~label): not converted, see below
6. Merge request references: group/project!4 and !4 -> #<pull request number>
7. Attachment links: [name](/uploads/...) -> [name](<storage destination>)

Merge requests are converted after issues because they become "#n" references
on GitHub, which the issue pass must not see again. Within a pass, qualified
and unqualified references are matched by a single pattern so that nothing a
pass produces is matched again by the same pass. Milestone titles may contain
"!n", so the milestone pass writes "!" as "&#33;", which the merge request
pass does not match and markdown renders as "!".

References are matched with the sigil and a lookbehind for a non-word
character instead of tokenizing the markdown first. References inside code
blocks are therefore rewritten too. Labels are left alone because "~text~"
strikethrough cannot be told apart from a label reference without a markdown
parser.

References qualified with a project from the project map are never renumbered:
there is no identifier map for other projects. References qualified with the
migrated project itself are resolved like local references.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .attachments import ATTACHMENT_LINK_PATTERN
from .attribution import add_attribution
from .models import Note

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Mapping

    from .attachments import AttachmentRegistry
    from .config import RewriteConfig
    from .id_mapping import IdentifierMaps
    from .models import Attributable, SimpleItem

logger: logging.Logger = logging.getLogger(__name__)

# An unqualified reference must not follow a word character, '&' (HTML entities) or '/' (URLs)
_REFERENCE_BOUNDARY = r"(?<![\w&/])"
_MILESTONE_BOUNDARY = r"(?<![\w&/%])"
# A qualified reference starts the project path at a word boundary
_PROJECT_BOUNDARY = r"(?<![\w./-])"

_ISSUE_TARGET = r"#(?P<number>\d+)\b"
_MERGE_REQUEST_TARGET = r"!(?P<number>\d+)\b"
_MILESTONE_TARGET = r"%(?:\"(?P<title>[^\"\n]*?)\"|(?P<number>\d+)\b)"

_EXCLAMATION_ENTITY = "&#33;"


def substitute_matches(pattern: re.Pattern[str], text: str, replacer: Callable[[re.Match[str]], str]) -> str:
    """Replace all non-overlapping matches of pattern in text.

    All matches and their replacements are collected on the original text
    first, then the output is assembled in one pass, so a replacement can
    never shift the offsets of a later match.
    """
    replacements = [(match.start(), match.end(), replacer(match)) for match in pattern.finditer(text)]
    if not replacements:
        return text

    parts: list[str] = []
    position = 0
    for start, end, replacement in replacements:
        parts.append(text[position:start])
        parts.append(replacement)
        position = end
    parts.append(text[position:])
    return "".join(parts)


def _alternation(names: Collection[str]) -> str:
    # Longest first, so "group/project-x" wins over "group/project"
    return "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))


def reference_pattern(target: str, boundary: str, projects: Collection[str] = ()) -> re.Pattern[str]:
    """Compile a pattern for "target" optionally qualified by one of projects.

    The named group "project", when present, is None for unqualified matches.
    """
    if not projects:
        return re.compile(f"{boundary}{target}")
    return re.compile(f"(?:{_PROJECT_BOUNDARY}(?P<project>{_alternation(projects)})|{boundary}){target}")


def mention_pattern(usernames: Collection[str]) -> re.Pattern[str]:
    """Compile a pattern matching @username for any of usernames."""
    return re.compile(rf"(?<![\w@/])@(?P<user>{_alternation(usernames)})(?![\w-]|\.\w)")


class BodyRewriter:
    """Rewrites issue, merge request, milestone and comment bodies.

    The identifier maps must be complete before the first call: the rewriter
    only reads them. Attachments found in bodies are registered in the
    attachment registry as a side effect.
    """

    def __init__(
        self,
        config: RewriteConfig,
        maps: IdentifierMaps,
        attachments: AttachmentRegistry | None = None,
    ) -> None:
        if config.transfer_attachments and attachments is None:
            msg = "An attachment registry is required when attachments are transferred"
            raise ValueError(msg)

        self.config: RewriteConfig = config
        self.maps: IdentifierMaps = maps
        self.attachments: AttachmentRegistry | None = attachments

        projects = set(config.projectmap)
        if config.source_project_path:
            projects.add(config.source_project_path)

        self._mention_pattern: re.Pattern[str] | None = mention_pattern(config.usermap) if config.usermap else None
        self._issue_pattern: re.Pattern[str] = reference_pattern(_ISSUE_TARGET, _REFERENCE_BOUNDARY, projects)
        self._milestone_pattern: re.Pattern[str] = reference_pattern(_MILESTONE_TARGET, _MILESTONE_BOUNDARY, projects)
        self._merge_request_pattern: re.Pattern[str] = reference_pattern(
            _MERGE_REQUEST_TARGET, _REFERENCE_BOUNDARY, projects
        )

    def rewrite(
        self,
        text: str | None,
        item: Attributable | None = None,
        *,
        add_attribution_line: bool = True,
        context: str = "",
    ) -> str:
        """Rewrite a body for GitHub.

        Args:
            text: Original GitLab markdown
            item: The issue, merge request, milestone or note owning the text
            add_attribution_line: Prepend "In GitLab by @author on <date>"
            context: Owner of the text for log messages (e.g., "issue #5")

        Returns:
            Rewritten markdown
        """
        body = text or ""

        if add_attribution_line:
            position = item.position if isinstance(item, Note) else None
            body = add_attribution(
                body,
                item,
                source_name=self.config.source_name,
                repo_link=self.config.repo_link,
                position=position,
            )

        body = self._rewrite_mentions(body)
        body = self._rewrite_issue_references(body, context)
        body = self._rewrite_milestone_references(body, context)
        # ~label references are passed through unchanged
        body = self._rewrite_merge_request_references(body, context)
        if self.config.transfer_attachments:
            body = self._rewrite_attachments(body)
        return body

    def _is_foreign(self, project: str | None) -> bool:
        return project is not None and project != self.config.source_project_path

    def _rewrite_mentions(self, text: str) -> str:
        if self._mention_pattern is None:
            return text
        usermap = self.config.usermap
        return substitute_matches(self._mention_pattern, text, lambda m: "@" + usermap[m.group("user")])

    def _rewrite_issue_references(self, text: str, context: str) -> str:
        return self._rewrite_numbered(text, self._issue_pattern, self.maps.issues, "#", "Issue", "issue map", context)

    def _rewrite_merge_request_references(self, text: str, context: str) -> str:
        return self._rewrite_numbered(
            text, self._merge_request_pattern, self.maps.merge_requests, "!", "Merge request", "merge request map",
            context,
        )

    def _rewrite_numbered(
        self,
        text: str,
        pattern: re.Pattern[str],
        mapping: Mapping[int, int],
        sigil: str,
        kind: str,
        map_name: str,
        context: str,
    ) -> str:
        """Renumber local references; point foreign ones at the mapped project."""

        def replace(match: re.Match[str]) -> str:
            project, number = match.groupdict().get("project"), match.group("number")
            if self._is_foreign(project):
                return f"{self.config.projectmap[project]}#{number}"

            target = mapping.get(int(number))
            if target is None:
                logger.warning(f"{kind} {sigil}{number} not found in {map_name}{_in(context)}")
                return match.group(0)
            logger.debug(f"Substituted #{target} for {sigil}{number}{_in(context)}")
            return f"#{target}"

        return substitute_matches(pattern, text, replace)

    def _rewrite_milestone_references(self, text: str, context: str) -> str:
        def replace(match: re.Match[str]) -> str:
            project, title, number = match.groupdict().get("project"), match.group("title"), match.group("number")
            reference = f'"{title}"' if title is not None else number
            escaped = _escape_merge_request_sigil(reference)
            if self._is_foreign(project):
                full_name = self.config.projectmap[project]
                return f"[Milestone {escaped} in {full_name}]({self.config.project_link(full_name)}/milestones)"

            milestone: SimpleItem | None
            if title is not None:
                milestone = self.maps.milestone_by_title(title)
            else:
                milestone = self.maps.milestones.get(int(number))
            if milestone is None:
                logger.warning(f"Milestone %{reference} not found in milestone map{_in(context)}")
                return f"'Reference to deleted milestone %{escaped}'"
            label = _escape_merge_request_sigil(milestone.title)
            return f"[{label}]({self.config.repo_link}/milestone/{milestone.number})"

        return substitute_matches(self._milestone_pattern, text, replace)

    def _rewrite_attachments(self, text: str) -> str:
        registry = self.attachments
        if registry is None:
            return text

        def replace(match: re.Match[str]) -> str:
            metadata = registry.register(match.group("url"))
            return f"{match.group('prefix')}[{match.group('name')}]({metadata.destination})"

        return substitute_matches(ATTACHMENT_LINK_PATTERN, text, replace)


def _in(context: str) -> str:
    return f" in {context}" if context else ""


def _escape_merge_request_sigil(text: str) -> str:
    return text.replace("!", _EXCLAMATION_ENTITY)
