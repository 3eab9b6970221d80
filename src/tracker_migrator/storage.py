"""Storage backends deciding where GitLab attachments end up.

`preprocess()` is called while rewriting bodies and must not do any I/O: it
only computes the final location of an attachment so links can be rewritten
right away. `transfer()` moves the bytes later, once all bodies are converted.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import requests

from .exceptions import AttachmentTransferError, MigrationError
from .models import AttachmentMetadata

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT_SECONDS = 60


def s3_bucket_url(bucket: str) -> str:
    """Public URL of an S3 bucket, usable as `UploadStorage` base URL."""
    return f"https://{bucket}.s3.amazonaws.com"


class PassThroughStorage:
    """Keeps attachments on GitLab and links them with absolute URLs.

    No bytes are transferred, so the links only work while the GitLab project
    remains accessible.
    """

    def __init__(self, source_url: str, project_path: str) -> None:
        self.host: str = source_url if source_url.endswith("/") else source_url + "/"
        self.project_path: str = project_path.strip("/")

    def preprocess(self, url: str) -> AttachmentMetadata:
        return AttachmentMetadata(origin=url, destination=f"{self.host}{self.project_path}{url}")

    def transfer(self, attachment: AttachmentMetadata) -> None:
        logger.debug(f"Attachment {attachment.origin} stays at {attachment.destination}")


class UploadStorage:
    """Copies attachments to a bucket-like HTTP store.

    Destination keys are content-addressed by the origin URL so that the same
    attachment always lands at the same key: `[prefix/]<sha256(origin)>/<basename>`.
    The bytes are fetched with `downloader` and written with an HTTP PUT, which
    works with S3 pre-authorized buckets and similar stores.
    """

    def __init__(
        self,
        base_url: str,
        downloader: Callable[[str], bytes],
        *,
        prefix: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.prefix: str | None = prefix.strip("/") if prefix else None
        self._downloader: Callable[[str], bytes] = downloader
        self._session: requests.Session = session or requests.Session()

    def preprocess(self, url: str) -> AttachmentMetadata:
        basename = PurePosixPath(url).name
        mime_type, _ = mimetypes.guess_type(basename)
        key = f"{hashlib.sha256(url.encode()).hexdigest()}/{basename}"
        if self.prefix:
            key = f"{self.prefix}/{key}"
        return AttachmentMetadata(origin=url, destination=f"{self.base_url}/{key}", mime_type=mime_type)

    def transfer(self, attachment: AttachmentMetadata) -> None:
        """Download the attachment from GitLab and upload it to its destination.

        Raises:
            AttachmentTransferError: If downloading or uploading fails
        """
        logger.info(f"Migrating {attachment.origin}")
        try:
            content = self._downloader(attachment.origin)
        except MigrationError as e:
            msg = f"Failed to download attachment {attachment.origin}: {e}"
            raise AttachmentTransferError(msg) from e

        if not content:
            msg = f"Attachment {attachment.origin} is empty"
            raise AttachmentTransferError(msg)

        headers = {"Content-Type": attachment.mime_type} if attachment.mime_type else {}
        try:
            response = self._session.put(
                attachment.destination, data=content, headers=headers, timeout=UPLOAD_TIMEOUT_SECONDS
            )
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"Failed to upload attachment {attachment.origin} to {attachment.destination}: {e}"
            raise AttachmentTransferError(msg) from e

        logger.debug(f"Uploaded {attachment.origin} ({len(content)} bytes) to {attachment.destination}")
