"""Identifier maps from GitLab numbers to GitHub numbers.

GitLab numbers milestones, issues and merge requests in three independent
sequences. GitHub has one sequence for milestones and a single shared sequence
for issues and pull requests. Before anything is written to GitHub, the maps
below are computed from the complete source collections and the entities that
already exist on GitHub, so that references in any text body can be rewritten
regardless of the order in which entities are later created.

Numbering rules
---------------
- Source entities are walked in ascending iid order with an expected index
  starting at 1. When placeholders are enabled, every gap in the iids gets a
  closed placeholder so the n-th created entity receives number n on GitHub.
- A destination entity with the same title is reused (re-runs are idempotent).
  Titles are the only signal; numbers of source and destination are unrelated.
- Otherwise the expected index is allocated. Merge requests are offset by the
  highest issue number because pull requests follow the issues on GitHub.
- An allocation never goes below the highest destination number seen so far,
  so pre-existing unrelated destination entities are never collided with.
  Issues and pull requests count together for this.
- Merge request placeholders and merge requests whose branches are gone are
  created as issues, so merge requests are matched against destination issues
  and pull requests alike. An issue created for a merge request is matched by
  its issue title ("<title> - [<state>]").
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from .exceptions import MapNotInitializedError
from .models import MergeRequest, Placeholder, SimpleItem

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .models import EntityKind, Issue, Milestone

logger: logging.Logger = logging.getLogger(__name__)

PLACEHOLDER_DESCRIPTION = (
    "This is to ensure that the numbering in GitHub is consistent. "
    "In particular it helps with auto-references in comments using #, %, !, etc."
)

_SIGILS: dict[str, str] = {"issue": "#", "merge request": "!", "milestone": "%"}


class _Numbered(Protocol):
    @property
    def iid(self) -> int: ...

    @property
    def title(self) -> str: ...


T = TypeVar("T", bound=_Numbered)


def create_placeholder(kind: EntityKind, expected_index: int, source_name: str = "GitLab") -> Placeholder:
    """Create the placeholder standing in for a deleted source entity."""
    return Placeholder(
        iid=expected_index,
        kind=kind,
        title=f"[PLACEHOLDER] - for {source_name} {kind} {_SIGILS[kind]}{expected_index}",
        description=PLACEHOLDER_DESCRIPTION,
    )


def insert_placeholders(
    items: Iterable[T],
    kind: EntityKind,
    *,
    use_placeholders: bool,
    source_name: str = "GitLab",
) -> list[T | Placeholder]:
    """Sort items by iid and fill numbering gaps with placeholders.

    Without placeholders the sorted items are returned unchanged.
    """
    sequence: list[T | Placeholder] = []
    expected_index = 1
    for item in sorted(items, key=lambda i: i.iid):
        while use_placeholders and item.iid > expected_index:
            sequence.append(create_placeholder(kind, expected_index, source_name))
            logger.info(f"Added placeholder for {source_name} {kind} {_SIGILS[kind]}{expected_index}")
            expected_index += 1
        sequence.append(item)
        expected_index += 1
    return sequence


@dataclass(frozen=True)
class MappedEntry(Generic[T]):
    """One entry of a working sequence with its destination number."""

    item: T | Placeholder
    number: int
    existing: bool  # True when a destination entity with this title already exists

    @property
    def is_placeholder(self) -> bool:
        return isinstance(self.item, Placeholder)


@dataclass
class MapResult(Generic[T]):
    """Working sequence and identifier map of one entity kind."""

    entries: list[MappedEntry[T]] = field(default_factory=list)

    @property
    def mapping(self) -> dict[int, int]:
        return {entry.item.iid: entry.number for entry in self.entries}

    @property
    def placeholder_count(self) -> int:
        return sum(1 for entry in self.entries if entry.is_placeholder)

    def to_create(self) -> list[MappedEntry[T]]:
        """Entries that do not exist at the destination yet, in creation order."""
        return [entry for entry in self.entries if not entry.existing]


class _TitleIndex:
    """Destination entities by title, each claimable once."""

    def __init__(self, destination: Iterable[SimpleItem], claimed: Iterable[int] = ()) -> None:
        self._by_title: dict[str, list[SimpleItem]] = {}
        for item in sorted(destination, key=lambda d: d.number):
            self._by_title.setdefault(item.title.strip(), []).append(item)
        self._claimed: set[int] = set(claimed)

    def claim(self, titles: Sequence[str], preferred_number: int) -> SimpleItem | None:
        candidates = [
            c for title in titles for c in self._by_title.get(title.strip(), []) if c.number not in self._claimed
        ]
        if not candidates:
            return None
        found = next((c for c in candidates if c.number == preferred_number), candidates[0])
        self._claimed.add(found.number)
        return found


def _match_titles(item: _Numbered) -> tuple[str, ...]:
    if isinstance(item, MergeRequest):
        return (item.title, item.issue_title)
    return (item.title,)


def allocate_numbers(
    sequence: Sequence[T | Placeholder],
    destination: Iterable[SimpleItem],
    *,
    offset: int = 0,
    occupied: Iterable[int] = (),
) -> MapResult[T]:
    """Assign a destination number to every entry of a working sequence.

    Args:
        sequence: Source entities (and placeholders) in creation order
        destination: Entities that may be reused, matched by title
        offset: Added to the expected index (highest issue number for merge requests)
        occupied: Numbers taken in the same numbering space that must be neither
            reused nor allocated again

    Returns:
        MapResult with one MappedEntry per sequence entry
    """
    destination = list(destination)
    taken = set(occupied)
    index = _TitleIndex(destination, claimed=taken)
    watermark = max((*(d.number for d in destination), *taken), default=0)
    result: MapResult[T] = MapResult()

    for expected_index, item in enumerate(sequence, start=1):
        found = index.claim(_match_titles(item), expected_index + offset)
        if found is not None:
            number = found.number
            logger.debug(f"Reusing existing destination #{number} for '{item.title}'")
        else:
            number = max(expected_index + offset, watermark + 1)
        watermark = max(watermark, number)
        result.entries.append(MappedEntry(item=item, number=number, existing=found is not None))

    return result


@dataclass(frozen=True)
class IdentifierMaps:
    """The three frozen identifier maps of a migration run."""

    milestones: Mapping[int, SimpleItem]
    issues: Mapping[int, int]
    merge_requests: Mapping[int, int]
    _milestones_by_title: Mapping[str, SimpleItem] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_title: dict[str, SimpleItem] = {}
        for milestone in sorted(self.milestones.values(), key=lambda m: m.number):
            by_title.setdefault(milestone.title, milestone)
        object.__setattr__(self, "milestones", MappingProxyType(dict(self.milestones)))
        object.__setattr__(self, "issues", MappingProxyType(dict(self.issues)))
        object.__setattr__(self, "merge_requests", MappingProxyType(dict(self.merge_requests)))
        object.__setattr__(self, "_milestones_by_title", MappingProxyType(by_title))

    @classmethod
    def empty(cls) -> IdentifierMaps:
        return cls(milestones={}, issues={}, merge_requests={})

    def milestone_by_title(self, title: str) -> SimpleItem | None:
        return self._milestones_by_title.get(title)

    @property
    def last_issue_number(self) -> int:
        return max(self.issues.values(), default=0)


class IdentifierMapBuilder:
    """Builds the milestone, issue and merge request maps, in that order.

    The merge request map depends on the final issue numbering, so it can
    only be built after the issue map.
    """

    def __init__(self, *, source_name: str = "GitLab") -> None:
        self.source_name: str = source_name
        self.milestones: MapResult[Milestone] | None = None
        self.issues: MapResult[Issue] | None = None
        self.merge_requests: MapResult[MergeRequest] | None = None

    def build_milestone_map(
        self,
        milestones: Iterable[Milestone],
        destination_milestones: Iterable[SimpleItem],
        *,
        use_placeholders: bool = True,
    ) -> MapResult[Milestone]:
        sequence = insert_placeholders(
            milestones, "milestone", use_placeholders=use_placeholders, source_name=self.source_name
        )
        self.milestones = allocate_numbers(sequence, destination_milestones)
        logger.info(
            f"Mapped {len(self.milestones.entries)} milestones "
            f"({self.milestones.placeholder_count} placeholders)"
        )
        return self.milestones

    def build_issue_map(
        self,
        issues: Iterable[Issue],
        destination_issues: Iterable[SimpleItem],
        *,
        destination_pull_requests: Iterable[SimpleItem] = (),
        use_placeholders: bool = True,
    ) -> MapResult[Issue]:
        """Map issues to issue numbers.

        Pull requests share the numbering space: their numbers are never allocated.
        """
        sequence = insert_placeholders(issues, "issue", use_placeholders=use_placeholders, source_name=self.source_name)
        self.issues = allocate_numbers(
            sequence, destination_issues, occupied=(pr.number for pr in destination_pull_requests)
        )
        logger.info(f"Mapped {len(self.issues.entries)} issues ({self.issues.placeholder_count} placeholders)")
        return self.issues

    def build_merge_request_map(
        self,
        merge_requests: Iterable[MergeRequest],
        destination_pull_requests: Iterable[SimpleItem],
        *,
        destination_issues: Iterable[SimpleItem] = (),
        use_placeholders: bool = True,
    ) -> MapResult[MergeRequest]:
        """Map merge requests to numbers following the last issue.

        Existing pull requests and issues are both candidates for reuse, except
        the numbers the issue map already holds.

        Raises:
            MapNotInitializedError: If the issue map has not been built yet
        """
        if self.issues is None:
            msg = "Issue map not initialized: build the issue map before the merge request map"
            raise MapNotInitializedError(msg)

        last_issue_number = max(self.issues.mapping.values(), default=0)
        sequence = insert_placeholders(
            merge_requests, "merge request", use_placeholders=use_placeholders, source_name=self.source_name
        )
        self.merge_requests = allocate_numbers(
            sequence,
            [*destination_pull_requests, *destination_issues],
            offset=last_issue_number,
            occupied=self.issues.mapping.values(),
        )
        logger.info(
            f"Mapped {len(self.merge_requests.entries)} merge requests after issue #{last_issue_number} "
            f"({self.merge_requests.placeholder_count} placeholders)"
        )
        return self.merge_requests

    def freeze(self) -> IdentifierMaps:
        """Return the read-only maps. Maps that were never built are empty, except the issue map.

        Raises:
            MapNotInitializedError: If the issue map has not been built yet
        """
        if self.issues is None:
            msg = "Issue map not initialized"
            raise MapNotInitializedError(msg)

        milestones: dict[int, SimpleItem] = {}
        if self.milestones is not None:
            milestones = {e.item.iid: SimpleItem(number=e.number, title=e.item.title) for e in self.milestones.entries}

        return IdentifierMaps(
            milestones=milestones,
            issues=self.issues.mapping,
            merge_requests=self.merge_requests.mapping if self.merge_requests is not None else {},
        )
