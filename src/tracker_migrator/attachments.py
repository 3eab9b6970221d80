"""Registry of GitLab attachments referenced from migrated content."""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AttachmentMetadata
    from .protocols import StorageBackend

logger: logging.Logger = logging.getLogger(__name__)

# [name](/uploads/<secret>/<file>) or ![name](/uploads/<secret>/<file>)
ATTACHMENT_LINK_PATTERN: re.Pattern[str] = re.compile(r"(?P<prefix>!?)\[(?P<name>[^\]]+)\]\((?P<url>/uploads[^)]+)\)")


class AttachmentRegistry:
    """Memoizes the destination of every attachment seen during a run.

    The first registration of an origin asks the storage backend for its
    destination; later registrations return the stored metadata, so one
    attachment keeps one destination no matter how many bodies link to it.
    Registration is safe to call from several threads.
    """

    _storage: StorageBackend
    _entries: dict[str, AttachmentMetadata]
    _drained: set[str]

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage
        self._entries = {}
        self._drained = set()
        self._lock: threading.Lock = threading.Lock()

    def register(self, origin: str) -> AttachmentMetadata:
        """Return the metadata for an attachment, computing it on first sight."""
        with self._lock:
            existing = self._entries.get(origin)
            if existing is not None:
                logger.debug(f"Reusing attachment {origin}: {existing.destination}")
                return existing
            metadata = self._storage.preprocess(origin)
            self._entries[origin] = metadata
            logger.debug(f"Registered attachment {origin} -> {metadata.destination}")
            return metadata

    def drain(self) -> list[AttachmentMetadata]:
        """Return attachments registered since the last drain, for transfer.

        Drained origins stay memoized: registering them again returns the same
        metadata without handing them out for transfer a second time.
        """
        with self._lock:
            pending_origins = [origin for origin in self._entries if origin not in self._drained]
            self._drained.update(pending_origins)
            return [self._entries[origin] for origin in pending_origins]

