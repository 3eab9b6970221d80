"""Migration orchestrator that coordinates the source, the engine and the storage.

The Migrator class is the central coordinator. It:
1. Reads the complete source collections and the existing destination entities
2. Builds the identifier maps in the required order
3. Converts every entity to be created into its destination payload
4. Transfers the attachments registered while rewriting bodies

Migration Flow
--------------
Phase 1: Identifier maps
    - Milestones, then issues, then merge requests. The merge request map
      follows the highest issue number, so it needs the finished issue map.
    - Entities already present at the destination (matched by title) are
      reused, which makes re-runs idempotent. Merge requests are looked up
      among destination issues too, since some of them are created as issues.

Phase 2: Conversion
    For each entry of the working sequences (placeholders included):
        a. Skip it if it already exists at the destination
        b. Convert the entity with the frozen maps
        c. Fetch and convert its notes
    Bodies are rewritten in a single pass each, because the maps are complete
    before the first body is touched. Attachments are registered, not moved.

Phase 3: Attachments
    - Drain the attachment registry and transfer each entry.
    - A failed transfer is recorded and does not stop the others.

Nothing is written to the destination tracker: the result is a plan of
payloads, in creation order, that a writer can replay.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from .attachments import AttachmentRegistry
from .body_rewriter import BodyRewriter
from .converter import EntityConverter, branches_exist
from .exceptions import AttachmentTransferError, MapNotInitializedError
from .id_mapping import IdentifierMapBuilder
from .labels import EXTRA_LABELS, LabelTranslator, convert_label
from .models import Placeholder

if TYPE_CHECKING:
    from .config import RewriteConfig
    from .id_mapping import IdentifierMaps, MapResult
    from .models import (
        AttachmentMetadata,
        CommentData,
        Issue,
        IssueData,
        LabelData,
        MergeRequest,
        Milestone,
        MilestoneData,
    )
    from .protocols import DestinationTracker, SourceTracker, StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    milestones_converted: int = 0
    issues_converted: int = 0
    pull_requests_converted: int = 0
    merge_requests_as_issues: int = 0
    placeholders: int = 0
    existing_skipped: int = 0
    comments_converted: int = 0
    attachments_transferred: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class PlannedEntity:
    """A destination entity to create, in creation order."""

    kind: Literal["milestone", "issue", "pull request"]
    source_iid: int
    number: int
    payload: IssueData | MilestoneData
    comments: list[CommentData] = field(default_factory=list)
    fallback: IssueData | None = None  # Created instead when the payload is rejected
    placeholder: bool = False


@dataclass
class ConversionResult:
    """Result of a conversion run."""

    maps: IdentifierMaps
    labels: list[LabelData] = field(default_factory=list)
    milestones: list[PlannedEntity] = field(default_factory=list)
    issues: list[PlannedEntity] = field(default_factory=list)
    pull_requests: list[PlannedEntity] = field(default_factory=list)
    attachments: list[AttachmentMetadata] = field(default_factory=list)
    stats: MigrationStats = field(default_factory=MigrationStats)

    @property
    def success(self) -> bool:
        return not self.stats.errors


class Migrator:
    """Orchestrates the conversion of a GitLab project into GitHub payloads.

    Usage:
        source = GitLabSource(gitlab_client, project)
        destination = GitHubDestination(repo)
        migrator = Migrator(source, destination, config, storage)
        result = migrator.migrate()
    """

    _source: SourceTracker
    _destination: DestinationTracker

    def __init__(
        self,
        source: SourceTracker,
        destination: DestinationTracker,
        config: RewriteConfig,
        storage: StorageBackend,
    ) -> None:
        self._source = source
        self._destination = destination
        self._storage: StorageBackend = storage
        self.config: RewriteConfig = config
        self.registry: AttachmentRegistry = AttachmentRegistry(storage)
        self.builder: IdentifierMapBuilder = IdentifierMapBuilder(source_name=config.source_name)
        self.maps: IdentifierMaps | None = None

    def build_maps(self) -> IdentifierMaps:
        """Read source and destination, then build the milestone, issue and merge request maps."""
        logger.info("Building identifier maps")
        self.builder.build_milestone_map(
            self._source.list_milestones(),
            self._destination.list_milestones(),
            use_placeholders=self.config.use_placeholder_milestones,
        )
        # Issues and pull requests share one numbering space
        destination_issues = self._destination.list_issues()
        destination_pull_requests = self._destination.list_pull_requests()
        self.builder.build_issue_map(
            self._source.list_issues(),
            destination_issues,
            destination_pull_requests=destination_pull_requests,
            use_placeholders=self.config.use_placeholder_issues,
        )
        self.builder.build_merge_request_map(
            self._source.list_merge_requests(),
            destination_pull_requests,
            destination_issues=destination_issues,
            use_placeholders=self.config.use_placeholder_merge_requests,
        )
        self.maps = self.builder.freeze()
        return self.maps

    def convert(self) -> ConversionResult:
        """Convert every entity that does not exist at the destination yet.

        Raises:
            MapNotInitializedError: If build_maps() has not been called
        """
        milestones, issues, merge_requests = self.builder.milestones, self.builder.issues, self.builder.merge_requests
        if self.maps is None or milestones is None or issues is None or merge_requests is None:
            msg = "Identifier maps not initialized: call build_maps() first"
            raise MapNotInitializedError(msg)

        rewriter = BodyRewriter(self.config, self.maps, self.registry if self.config.transfer_attachments else None)
        converter = EntityConverter(self.config, self.maps, rewriter)
        result = ConversionResult(maps=self.maps)

        result.labels = self._convert_labels()
        result.milestones = self._convert_milestones(milestones, converter, result.stats)
        result.issues = self._convert_issues(issues, converter, result.stats)
        result.pull_requests = self._convert_merge_requests(merge_requests, converter, result.stats)
        return result

    def _convert_labels(self) -> list[LabelData]:
        translator = LabelTranslator(self.config.label_translations)
        labels: dict[str, LabelData] = {}
        for label in self._source.list_labels():
            converted = convert_label(label, translator, use_lower_case=self.config.use_lower_case_labels)
            labels.setdefault(converted.name, converted)
        for extra in EXTRA_LABELS:
            labels.setdefault(extra.name, extra)
        return list(labels.values())

    def _convert_milestones(
        self, milestones: MapResult[Milestone], converter: EntityConverter, stats: MigrationStats
    ) -> list[PlannedEntity]:
        planned: list[PlannedEntity] = []
        for entry in milestones.entries:
            if entry.existing:
                stats.existing_skipped += 1
                continue
            planned.append(
                PlannedEntity(
                    kind="milestone",
                    source_iid=entry.item.iid,
                    number=entry.number,
                    payload=converter.convert(entry.item),
                    placeholder=entry.is_placeholder,
                )
            )
            if entry.is_placeholder:
                stats.placeholders += 1
            stats.milestones_converted += 1
        return planned

    def _convert_issues(
        self, issues: MapResult[Issue], converter: EntityConverter, stats: MigrationStats
    ) -> list[PlannedEntity]:
        planned: list[PlannedEntity] = []
        for entry in issues.entries:
            if entry.existing:
                stats.existing_skipped += 1
                continue
            item = entry.item
            if isinstance(item, Placeholder):
                planned.append(self._placeholder(item, entry.number, "issue", converter, stats))
                continue

            logger.info(f"Converting issue #{item.iid} -> #{entry.number}")
            comments = converter.convert_notes(self._source.list_issue_notes(item.iid), f"issue #{item.iid}")
            planned.append(
                PlannedEntity(
                    kind="issue",
                    source_iid=item.iid,
                    number=entry.number,
                    payload=converter.convert_issue(item),
                    comments=comments,
                    fallback=converter.replacement_issue(item),
                )
            )
            stats.issues_converted += 1
            stats.comments_converted += len(comments)
        return planned

    def _convert_merge_requests(
        self, merge_requests: MapResult[MergeRequest], converter: EntityConverter, stats: MigrationStats
    ) -> list[PlannedEntity]:
        planned: list[PlannedEntity] = []
        branch_names: set[str] | None = None
        for entry in merge_requests.entries:
            if entry.existing:
                stats.existing_skipped += 1
                continue
            item = entry.item
            if isinstance(item, Placeholder):
                planned.append(self._placeholder(item, entry.number, "pull request", converter, stats))
                continue

            if branch_names is None:
                branch_names = set(self._source.list_branch_names())
            context = f"merge request !{item.iid}"
            comments = converter.convert_notes(self._source.list_merge_request_notes(item.iid), context)
            as_issue = converter.convert_merge_request_to_issue(item)
            if branches_exist(item, branch_names):
                logger.info(f"Converting {context} -> #{entry.number}")
                planned.append(
                    PlannedEntity(
                        kind="pull request",
                        source_iid=item.iid,
                        number=entry.number,
                        payload=converter.convert_merge_request(item),
                        comments=comments,
                        fallback=as_issue,
                    )
                )
                stats.pull_requests_converted += 1
            else:
                logger.info(f"Branches of {context} are gone, converting it to issue #{entry.number}")
                planned.append(
                    PlannedEntity(
                        kind="issue", source_iid=item.iid, number=entry.number, payload=as_issue, comments=comments
                    )
                )
                stats.merge_requests_as_issues += 1
            stats.comments_converted += len(comments)
        return planned

    @staticmethod
    def _placeholder(
        placeholder: Placeholder,
        number: int,
        kind: Literal["issue", "pull request"],
        converter: EntityConverter,
        stats: MigrationStats,
    ) -> PlannedEntity:
        stats.placeholders += 1
        # Pull request placeholders are created as issues to take the number
        return PlannedEntity(
            kind="issue" if kind == "pull request" else kind,
            source_iid=placeholder.iid,
            number=number,
            payload=converter.convert_placeholder(placeholder),
            placeholder=True,
        )

    def transfer_attachments(self, stats: MigrationStats) -> list[AttachmentMetadata]:
        """Transfer the attachments registered since the last call.

        Every attachment is attempted; failures are logged and recorded in stats.
        """
        attachments = self.registry.drain()
        logger.info(f"Transferring {len(attachments)} attachments")
        for attachment in attachments:
            try:
                self._storage.transfer(attachment)
            except AttachmentTransferError as e:
                logger.error(f"Failed to transfer attachment {attachment.origin}: {e}")
                stats.errors.append(str(e))
            else:
                stats.attachments_transferred += 1
        return attachments

    def migrate(self, *, transfer: bool = False) -> ConversionResult:
        """Build the maps, convert all entities and optionally transfer attachments.

        Args:
            transfer: Move attachment bytes to their destination

        Returns:
            ConversionResult with the planned entities, maps and statistics
        """
        self.build_maps()
        result = self.convert()
        if transfer:
            result.attachments = self.transfer_attachments(result.stats)
        else:
            result.attachments = self.registry.drain()
        return result
