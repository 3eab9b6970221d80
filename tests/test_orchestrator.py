"""Tests for the migration orchestrator."""

import pytest

from tracker_migrator.config import RewriteConfig
from tracker_migrator.exceptions import AttachmentTransferError, MapNotInitializedError
from tracker_migrator.models import (
    AttachmentMetadata,
    IssueData,
    Label,
    Milestone,
    Note,
    PullRequestData,
    SimpleItem,
    SourceUser,
)
from tracker_migrator.orchestrator import ConversionResult, Migrator

from fakes import FakeDestination, FakeSource, RecordingStorage, make_issue, make_merge_request


def _source() -> FakeSource:
    return FakeSource(
        milestones=[Milestone(iid=1, title="v1.0", description="Planned")],
        issues=[
            make_issue(1, "First", description='Blocked by !1, see %"v1.0"', milestone_title="v1.0"),
            make_issue(3, "Third", description="Dup of #1 ![a](/uploads/abc/a.png)"),
        ],
        merge_requests=[
            make_merge_request(1, "Fix first", description="Closes #1"),
            make_merge_request(2, "Old", source_branch="gone", state="closed"),
        ],
        issue_notes={
            1: [
                Note(id=7, body="See #3", author=SourceUser("bob"), created_at="2024-01-16T09:00:00Z"),
                Note(id=5, body="Status changed to closed", system=True),
            ]
        },
        branches=["main", "feature"],
        labels=[Label(name="Bug", color="#ff0000")],
    )


class FailingStorage(RecordingStorage):
    def transfer(self, attachment: AttachmentMetadata) -> None:
        if attachment.origin.endswith("bad.png"):
            msg = f"Failed to upload attachment {attachment.origin}"
            raise AttachmentTransferError(msg)
        super().transfer(attachment)


def _replay(result: ConversionResult) -> FakeDestination:
    """Destination holding everything a writer would have created from the plan."""
    destination = FakeDestination(milestones=[SimpleItem(e.number, e.payload.title) for e in result.milestones])
    for entity in [*result.issues, *result.pull_requests]:
        created = destination.issues if entity.kind == "issue" else destination.pull_requests
        created.append(SimpleItem(entity.number, entity.payload.title))
    return destination


@pytest.mark.integration
class TestMigrateEndToEnd:
    def test_full_conversion(self, config: RewriteConfig, storage: RecordingStorage) -> None:
        result = Migrator(_source(), FakeDestination(), config, storage).migrate(transfer=True)

        assert dict(result.maps.issues) == {1: 1, 2: 2, 3: 3}
        assert dict(result.maps.merge_requests) == {1: 4, 2: 5}

        assert [(e.kind, e.number, e.placeholder) for e in result.milestones] == [("milestone", 1, False)]
        assert [(e.kind, e.number, e.placeholder) for e in result.issues] == [
            ("issue", 1, False),
            ("issue", 2, True),
            ("issue", 3, False),
        ]
        assert [(e.kind, e.number) for e in result.pull_requests] == [("pull request", 4), ("issue", 5)]

        first = result.issues[0]
        assert first.payload.body == (
            "In GitLab by @alice-gh on Jan 15, 2024, 10:30\n\n"
            "Blocked by #4, see [v1.0](https://github.com/dest/repo/milestone/1)"
        )
        assert [c.body for c in first.comments] == ["In GitLab by @bobby on Jan 16, 2024, 09:00\n\nSee #3"]
        assert first.fallback is not None
        assert first.fallback.title == "First [REPLACEMENT ISSUE]"

        third = result.issues[2]
        assert "Dup of #1 ![a](https://files.example/uploads/abc/a.png)" in third.payload.body

        pull_request = result.pull_requests[0].payload
        assert isinstance(pull_request, PullRequestData)
        assert pull_request.body.endswith("Closes #1")
        assert result.pull_requests[0].fallback is not None

        gone = result.pull_requests[1].payload
        assert type(gone) is IssueData
        assert gone.title == "Old - [closed]"
        assert "gitlab merge request" in gone.labels

        assert [label.name for label in result.labels] == ["bug", "has attachment", "gitlab merge request"]
        assert [a.origin for a in result.attachments] == ["/uploads/abc/a.png"]
        assert [a.origin for a in storage.transferred] == ["/uploads/abc/a.png"]

        stats = result.stats
        assert stats.milestones_converted == 1
        assert stats.issues_converted == 2
        assert stats.pull_requests_converted == 1
        assert stats.merge_requests_as_issues == 1
        assert stats.placeholders == 1
        assert stats.comments_converted == 1
        assert stats.attachments_transferred == 1
        assert stats.existing_skipped == 0
        assert result.success


@pytest.mark.unit
class TestMigrator:
    def test_rerun_skips_existing_entities(self, config: RewriteConfig, storage: RecordingStorage) -> None:
        destination = FakeDestination(
            milestones=[SimpleItem(1, "v1.0")],
            issues=[SimpleItem(1, "First"), SimpleItem(2, "[PLACEHOLDER] - for GitLab issue #2")],
        )
        result = Migrator(_source(), destination, config, storage).migrate()

        assert result.milestones == []
        assert [e.number for e in result.issues] == [3]
        assert [e.number for e in result.pull_requests] == [4, 5]
        assert result.stats.existing_skipped == 3

    @pytest.mark.parametrize("branches", [["main", "feature"], ["main"]])
    def test_replaying_the_plan_creates_nothing(
        self, config: RewriteConfig, storage: RecordingStorage, branches: list[str]
    ) -> None:
        source = FakeSource(
            issues=[make_issue(1)],
            merge_requests=[make_merge_request(2), make_merge_request(3, state="merged")],
            branches=branches,
        )
        first = Migrator(source, FakeDestination(), config, storage).migrate()
        second = Migrator(source, _replay(first), config, storage).migrate()

        assert dict(second.maps.issues) == dict(first.maps.issues) == {1: 1}
        assert dict(second.maps.merge_requests) == dict(first.maps.merge_requests) == {1: 2, 2: 3, 3: 4}
        assert second.issues == second.pull_requests == []
        assert second.stats.existing_skipped == 4

    def test_replaying_the_full_plan_creates_nothing(
        self, config: RewriteConfig, storage: RecordingStorage
    ) -> None:
        first = Migrator(_source(), FakeDestination(), config, storage).migrate()
        second = Migrator(_source(), _replay(first), config, storage).migrate()

        assert second.maps == first.maps
        assert second.milestones == second.issues == second.pull_requests == []

    def test_existing_pull_requests_are_not_reused_for_issues(
        self, config: RewriteConfig, storage: RecordingStorage
    ) -> None:
        source = FakeSource(issues=[make_issue(1, "New")], merge_requests=[make_merge_request(1, "Also new")])
        destination = FakeDestination(pull_requests=[SimpleItem(1, "Existing PR")])
        result = Migrator(source, destination, config, storage).migrate()

        assert dict(result.maps.issues) == {1: 2}
        assert dict(result.maps.merge_requests) == {1: 3}

    def test_merge_request_placeholders_take_issue_numbers(
        self, config: RewriteConfig, storage: RecordingStorage
    ) -> None:
        source = FakeSource(
            issues=[make_issue(1)], merge_requests=[make_merge_request(2)], branches=["main", "feature"]
        )
        result = Migrator(source, FakeDestination(), config, storage).migrate()

        assert [(e.kind, e.number, e.placeholder) for e in result.pull_requests] == [
            ("issue", 2, True),
            ("pull request", 3, False),
        ]
        assert result.pull_requests[0].payload.title == "[PLACEHOLDER] - for GitLab merge request !1"

    def test_convert_requires_maps(self, config: RewriteConfig, storage: RecordingStorage) -> None:
        with pytest.raises(MapNotInitializedError):
            Migrator(FakeSource(), FakeDestination(), config, storage).convert()

    def test_attachments_are_not_transferred_by_default(
        self, config: RewriteConfig, storage: RecordingStorage
    ) -> None:
        result = Migrator(_source(), FakeDestination(), config, storage).migrate()
        assert [a.origin for a in result.attachments] == ["/uploads/abc/a.png"]
        assert storage.transferred == []

    def test_failed_transfer_is_recorded(self, config: RewriteConfig) -> None:
        source = FakeSource(
            issues=[make_issue(1, description="![x](/uploads/abc/bad.png) ![y](/uploads/def/good.png)")]
        )
        storage = FailingStorage()
        result = Migrator(source, FakeDestination(), config, storage).migrate(transfer=True)

        assert [a.origin for a in storage.transferred] == ["/uploads/def/good.png"]
        assert result.stats.attachments_transferred == 1
        assert result.stats.errors == ["Failed to upload attachment /uploads/abc/bad.png"]
        assert not result.success
