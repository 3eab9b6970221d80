"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings (unresolved references are logged as warnings)

Shared fixtures build the rewrite configuration and the attachment registry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from typing_extensions import override

import pytest

from tracker_migrator.attachments import AttachmentRegistry
from tracker_migrator.config import RewriteConfig

from fakes import RecordingStorage

if TYPE_CHECKING:
    from collections.abc import Generator

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    An end-to-end conversion of a consistent project must resolve every
    reference, so a warning there means a reference was left dangling.
    """
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.
    """
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)


@pytest.fixture
def config() -> RewriteConfig:
    return RewriteConfig(
        github_owner="dest",
        github_repo="repo",
        source_project_path="group/project",
        usermap={"alice": "alice-gh", "bob": "bobby"},
        projectmap={"otherorg/repo": "dest/other"},
        token_owner="migrator",
    )


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def registry(storage: RecordingStorage) -> AttachmentRegistry:
    return AttachmentRegistry(storage)
