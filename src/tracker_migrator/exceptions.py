"""
Custom exception classes for the GitLab to GitHub tracker migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class MapNotInitializedError(MigrationError):
    """Raised when an identifier map is read before it has been built."""


class AttachmentTransferError(MigrationError):
    """Raised when the bytes of a single attachment could not be transferred."""
