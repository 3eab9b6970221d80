"""
Command-line interface for the GitLab tracker migration tool.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from . import github_utils as ghu
from . import gitlab_utils as glu
from .config import RewriteConfig, parse_mapping_pairs
from .exceptions import MigrationError
from .orchestrator import Migrator
from .storage import PassThroughStorage, UploadStorage, s3_bucket_url
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .orchestrator import ConversionResult, PlannedEntity
    from .protocols import StorageBackend

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Convert GitLab milestones, issues and merge requests into GitHub payloads"
    )

    # Positional arguments
    _ = parser.add_argument("gitlab_project", help="GitLab project path (namespace/project)")
    _ = parser.add_argument("github_repo", help="GitHub repository path (owner/repo)")

    # Optional arguments with short forms
    _ = parser.add_argument(
        "--usermap",
        "-u",
        action="append",
        help='User mapping (format: "gitlab_user:github_user"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--projectmap",
        "-p",
        action="append",
        help='Project mapping (format: "group/project:owner/repo"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--relabel",
        "-l",
        action="append",
        help='Label translation pattern (format: "source_pattern:target_pattern"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--skip-comment",
        action="append",
        help="Skip comments matching this regular expression (case-insensitive). Can be specified multiple times.",
    )

    _ = parser.add_argument("--gitlab-url", default="https://gitlab.com", help="GitLab instance URL")
    _ = parser.add_argument("--github-url", default="https://github.com", help="GitHub (Enterprise) URL")
    _ = parser.add_argument("--token-owner", help="GitHub user the migration runs as (no attribution for own content)")

    _ = parser.add_argument(
        "--no-placeholders", action="store_true", help="Do not fill numbering gaps with placeholders"
    )
    _ = parser.add_argument(
        "--no-attachments", action="store_true", help="Leave attachment links unchanged (relative to GitLab)"
    )
    upload = parser.add_mutually_exclusive_group()
    _ = upload.add_argument(
        "--upload-url", help="Base URL of the store to copy attachments to (default: link them on GitLab)"
    )
    _ = upload.add_argument("--s3-bucket", help="Copy attachments to this public S3 bucket")
    _ = parser.add_argument("--upload-prefix", help="Key prefix for attachments in the upload store")
    _ = parser.add_argument(
        "--transfer-attachments", action="store_true", help="Copy attachment bytes after conversion"
    )
    _ = parser.add_argument("--keep-label-case", action="store_true", help="Do not convert labels to lower case")

    _ = parser.add_argument(
        "--output", "-o", default="migration-plan.json", help="File to write the converted payloads to"
    )

    _ = parser.add_argument(
        "--gitlab-pass-token", help="Path for GitLab token in pass utility (default: gitlab/cli/ro_token)"
    )
    _ = parser.add_argument(
        "--github-pass-token", help="Path for GitHub token in pass utility (default: github/cli/token)"
    )

    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def upload_url(args: argparse.Namespace) -> str | None:
    """Base URL attachments are copied to, or None to keep them on GitLab."""
    if args.s3_bucket:
        return s3_bucket_url(args.s3_bucket)
    return args.upload_url


def build_config(args: argparse.Namespace) -> RewriteConfig:
    """Build the rewrite configuration from parsed arguments.

    Raises:
        ValueError: If a mapping or the repository path is malformed
    """
    use_placeholders = not args.no_placeholders
    return RewriteConfig.for_repo(
        args.github_repo,
        source_project_path=args.gitlab_project,
        github_url=args.github_url,
        source_url=args.gitlab_url,
        usermap=parse_mapping_pairs(args.usermap),
        projectmap=parse_mapping_pairs(args.projectmap),
        token_owner=args.token_owner,
        transfer_attachments=not args.no_attachments,
        upload_attachments=bool(upload_url(args)),
        use_lower_case_labels=not args.keep_label_case,
        label_translations=tuple(args.relabel or ()),
        skip_matching_comments=tuple(args.skip_comment or ()),
        use_placeholder_milestones=use_placeholders,
        use_placeholder_issues=use_placeholders,
        use_placeholder_merge_requests=use_placeholders,
    )


def _planned(entity: PlannedEntity) -> dict[str, Any]:
    return {
        "kind": entity.kind,
        "source_iid": entity.source_iid,
        "number": entity.number,
        "placeholder": entity.placeholder,
        "payload": dataclasses.asdict(entity.payload),
        "comments": [dataclasses.asdict(c) for c in entity.comments],
        "fallback": dataclasses.asdict(entity.fallback) if entity.fallback else None,
    }


def plan_to_dict(result: ConversionResult) -> dict[str, Any]:
    """Serialize a conversion result into JSON-compatible data."""
    return {
        "labels": [dataclasses.asdict(label) for label in result.labels],
        "milestones": [_planned(e) for e in result.milestones],
        "issues": [_planned(e) for e in result.issues],
        "pull_requests": [_planned(e) for e in result.pull_requests],
        "attachments": [dataclasses.asdict(a) for a in result.attachments],
        "maps": {
            "milestones": {str(k): v.number for k, v in result.maps.milestones.items()},
            "issues": {str(k): v for k, v in result.maps.issues.items()},
            "merge_requests": {str(k): v for k, v in result.maps.merge_requests.items()},
        },
        "statistics": dataclasses.asdict(result.stats),
    }


def print_statistics(result: ConversionResult) -> None:
    stats = dataclasses.asdict(result.stats)
    errors: list[str] = stats.pop("errors")
    print("Migration plan:")
    for key, value in stats.items():
        print(f"  {key.replace('_', ' ')}: {value}")
    if errors:
        print(f"Errors ({len(errors)}):")
        for error in errors:
            print(f"  - {error}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        config = build_config(args)

        gitlab_client = glu.get_client(config.source_url, glu.get_token(args.gitlab_pass_token))
        project = glu.get_project(gitlab_client, args.gitlab_project)
        source = glu.GitLabSource(gitlab_client, project)

        github_client = ghu.get_client(ghu.get_token(args.github_pass_token), config.github_url)
        destination = ghu.GitHubDestination(ghu.get_repo(github_client, args.github_repo))

        storage: StorageBackend
        base_url = upload_url(args)
        if base_url:
            storage = UploadStorage(base_url, source.download_attachment, prefix=args.upload_prefix)
        else:
            storage = PassThroughStorage(config.source_url, args.gitlab_project)

        result = Migrator(source, destination, config, storage).migrate(transfer=args.transfer_attachments)

        output = Path(args.output)
        _ = output.write_text(json.dumps(plan_to_dict(result), indent=2) + "\n", encoding="utf-8")
        print(f"Wrote migration plan to {output}")
        print_statistics(result)

        sys.exit(0 if result.success else 1)

    except (MigrationError, ValueError, OSError):
        logger.exception("Migration failed")
        sys.exit(1)
