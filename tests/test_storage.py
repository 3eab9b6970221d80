"""Tests for attachment storage backends."""

import hashlib
from unittest.mock import Mock

import pytest
import requests

from tracker_migrator.exceptions import AttachmentTransferError, MigrationError
from tracker_migrator.models import AttachmentMetadata
from tracker_migrator.storage import UPLOAD_TIMEOUT_SECONDS, PassThroughStorage, UploadStorage, s3_bucket_url


@pytest.mark.unit
class TestPassThroughStorage:
    def test_links_to_gitlab(self) -> None:
        storage = PassThroughStorage("https://gitlab.com", "group/project")
        metadata = storage.preprocess("/uploads/abc/a.png")
        assert metadata == AttachmentMetadata(
            origin="/uploads/abc/a.png", destination="https://gitlab.com/group/project/uploads/abc/a.png"
        )

    def test_transfer_does_nothing(self) -> None:
        storage = PassThroughStorage("https://gitlab.example.com/", "/group/project/")
        metadata = storage.preprocess("/uploads/abc/a.png")
        assert metadata.destination == "https://gitlab.example.com/group/project/uploads/abc/a.png"
        storage.transfer(metadata)


@pytest.mark.unit
class TestUploadStorage:
    def _storage(self, downloader: Mock, session: Mock, prefix: str | None = None) -> UploadStorage:
        return UploadStorage(s3_bucket_url("bucket"), downloader, prefix=prefix, session=session)

    def test_preprocess_is_content_addressed(self) -> None:
        storage = self._storage(Mock(), Mock(), prefix="/project/")
        metadata = storage.preprocess("/uploads/abc/screen shot.png")

        digest = hashlib.sha256(b"/uploads/abc/screen shot.png").hexdigest()
        assert metadata.destination == f"https://bucket.s3.amazonaws.com/project/{digest}/screen shot.png"
        assert metadata.mime_type == "image/png"

    def test_preprocess_does_no_io(self) -> None:
        downloader, session = Mock(), Mock()
        self._storage(downloader, session).preprocess("/uploads/abc/a.txt")
        downloader.assert_not_called()
        session.put.assert_not_called()

    def test_unknown_mime_type(self) -> None:
        metadata = self._storage(Mock(), Mock()).preprocess("/uploads/abc/blob.unknownext")
        assert metadata.mime_type is None

    def test_transfer_uploads_bytes(self) -> None:
        downloader = Mock(return_value=b"PNG")
        session = Mock()
        storage = self._storage(downloader, session)
        metadata = storage.preprocess("/uploads/abc/a.png")

        storage.transfer(metadata)

        downloader.assert_called_once_with("/uploads/abc/a.png")
        session.put.assert_called_once_with(
            metadata.destination,
            data=b"PNG",
            headers={"Content-Type": "image/png"},
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )
        session.put.return_value.raise_for_status.assert_called_once()

    def test_download_failure(self) -> None:
        storage = self._storage(Mock(side_effect=MigrationError("404")), Mock())
        with pytest.raises(AttachmentTransferError, match="Failed to download attachment"):
            storage.transfer(storage.preprocess("/uploads/abc/a.png"))

    def test_empty_attachment(self) -> None:
        session = Mock()
        storage = self._storage(Mock(return_value=b""), session)
        with pytest.raises(AttachmentTransferError, match="is empty"):
            storage.transfer(storage.preprocess("/uploads/abc/a.png"))
        session.put.assert_not_called()

    def test_upload_failure(self) -> None:
        session = Mock()
        session.put.return_value.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
        storage = self._storage(Mock(return_value=b"data"), session)
        with pytest.raises(AttachmentTransferError, match="Failed to upload attachment"):
            storage.transfer(storage.preprocess("/uploads/abc/a.png"))
