"""
GitLab tracker migration tool

Converts GitLab milestones, issues, merge requests and comments into GitHub
payloads, keeping the numbering and rewriting references, mentions and
attachment links so they resolve on GitHub.
"""

from __future__ import annotations

from .body_rewriter import BodyRewriter
from .cli import main
from .config import RewriteConfig
from .converter import EntityConverter
from .exceptions import AttachmentTransferError, MapNotInitializedError, MigrationError
from .id_mapping import IdentifierMapBuilder, IdentifierMaps
from .labels import LabelTranslator
from .orchestrator import Migrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "AttachmentTransferError",
    "BodyRewriter",
    "EntityConverter",
    "IdentifierMapBuilder",
    "IdentifierMaps",
    "LabelTranslator",
    "MapNotInitializedError",
    "MigrationError",
    "Migrator",
    "RewriteConfig",
    "main",
    "setup_logging",
]
