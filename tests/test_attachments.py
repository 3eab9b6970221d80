"""Tests for the attachment registry."""

import threading

import pytest

from tracker_migrator.attachments import ATTACHMENT_LINK_PATTERN, AttachmentRegistry

from fakes import RecordingStorage


@pytest.mark.unit
class TestAttachmentLinkPattern:
    def test_finds_images_and_files(self) -> None:
        content = "See ![shot](/uploads/abc123/shot.png) and [log](/uploads/def456/build.log)."
        matches = list(ATTACHMENT_LINK_PATTERN.finditer(content))

        assert [(m.group("prefix"), m.group("name"), m.group("url")) for m in matches] == [
            ("!", "shot", "/uploads/abc123/shot.png"),
            ("", "log", "/uploads/def456/build.log"),
        ]
        assert matches[0].group(0) == "![shot](/uploads/abc123/shot.png)"

    def test_ignores_other_links(self) -> None:
        assert ATTACHMENT_LINK_PATTERN.search("[docs](https://example.com/uploads/x.png) [a](/files/b.png)") is None


@pytest.mark.unit
class TestAttachmentRegistry:
    def test_register_is_memoized(self, registry: AttachmentRegistry, storage: RecordingStorage) -> None:
        first = registry.register("/uploads/abc/a.png")
        second = registry.register("/uploads/abc/a.png")

        assert first is second
        assert storage.preprocessed == ["/uploads/abc/a.png"]

    def test_drain_returns_each_entry_once(self, registry: AttachmentRegistry) -> None:
        registry.register("/uploads/abc/a.png")
        registry.register("/uploads/def/b.png")

        assert [m.origin for m in registry.drain()] == ["/uploads/abc/a.png", "/uploads/def/b.png"]
        assert registry.drain() == []

        # Still memoized after draining
        registry.register("/uploads/abc/a.png")
        assert registry.drain() == []
        registry.register("/uploads/ghi/c.png")
        assert [m.origin for m in registry.drain()] == ["/uploads/ghi/c.png"]

    def test_concurrent_registration(self, registry: AttachmentRegistry, storage: RecordingStorage) -> None:
        barrier = threading.Barrier(8)

        def register() -> None:
            barrier.wait()
            for _ in range(50):
                registry.register("/uploads/abc/a.png")

        threads = [threading.Thread(target=register) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert storage.preprocessed == ["/uploads/abc/a.png"]
