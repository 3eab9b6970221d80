"""
Label translation and conversion for GitLab to GitHub.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .models import LabelData

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Label

# GitHub rejects label descriptions longer than this
MAX_LABEL_DESCRIPTION_LENGTH = 100

HAS_ATTACHMENT_LABEL = LabelData(
    name="has attachment",
    color="fbca04",
    description="The issue has an attachment",
)
MERGE_REQUEST_LABEL = LabelData(
    name="gitlab merge request",
    color="b36b00",
    description="The issue is a placeholder for a merge request that could not be migrated",
)
EXTRA_LABELS: tuple[LabelData, ...] = (HAS_ATTACHMENT_LABEL, MERGE_REQUEST_LABEL)


class LabelTranslator:
    """Handles label translation patterns."""

    def __init__(self, patterns: Sequence[str] | None) -> None:
        self.patterns: list[tuple[str, str]] = []

        for pattern in patterns or []:
            if ":" not in pattern:
                msg = f"Invalid pattern format: {pattern}"
                raise ValueError(msg)
            source, target = pattern.split(":", 1)
            self.patterns.append((source, target))

    def translate(self, label_name: str) -> str:
        """Translate a label name using configured patterns.

        A '*' in the source pattern matches anything and is substituted into
        the '*' of the target pattern, e.g. "p_*:priority: *".
        """
        for source_pattern, target_pattern in self.patterns:
            if "*" in source_pattern:
                regex_pattern = "(.*)".join(re.escape(part) for part in source_pattern.split("*", 1))
                match = re.fullmatch(regex_pattern, label_name)
                if match:
                    return target_pattern.replace("*", match.group(1))
            elif source_pattern == label_name:
                return target_pattern
        return label_name


def convert_label(label: Label, translator: LabelTranslator, *, use_lower_case: bool = True) -> LabelData:
    """Convert a GitLab label into the data for a GitHub label."""
    name = translator.translate(label.name)
    return LabelData(
        name=name.lower() if use_lower_case else name,
        color=label.color.lstrip("#"),
        description=(label.description or "")[:MAX_LABEL_DESCRIPTION_LENGTH],
    )
