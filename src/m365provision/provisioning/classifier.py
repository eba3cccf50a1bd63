"""Conversion between display labels and assignment requests.

Pickers show assignable targets as labels such as
``"Sales Team [Distribution List] - sales@contoso.com"`` grouped under
separator rows like ``"=== DISTRIBUTION LISTS ==="``. This module is the
only place those strings are parsed; everything downstream works with
``AssignmentRequest`` and ``TargetKind``.
"""

import logging
import re
from collections.abc import Iterable

from m365provision.provisioning.models import AssignmentRequest, TargetKind

logger = logging.getLogger(__name__)

NAME_MARKER = " ["

# Checked in order, first match wins
KIND_TAGS: list[tuple[str, TargetKind]] = [
    ("[Distribution List]", TargetKind.DISTRIBUTION_LIST),
    ("[Shared Mailbox]", TargetKind.SHARED_MAILBOX),
    ("[Mail-Enabled Security]", TargetKind.MAIL_ENABLED_SECURITY_GROUP),
    ("[Microsoft 365 Group]", TargetKind.M365_GROUP),
]

LABEL_TAGS: dict[TargetKind, str] = {
    TargetKind.SECURITY_GROUP: "[Security Group]",
    **{kind: tag for tag, kind in KIND_TAGS},
}

SEPARATOR_PATTERN = re.compile(r"={3,}|-{3,}")


def is_separator(label: str) -> bool:
    """Check if a label is a section heading rather than a target."""
    return bool(SEPARATOR_PATTERN.search(label)) and "[" not in label


def classify_kind(label: str) -> TargetKind:
    """Determine the target kind from a label's type tag."""
    for tag, kind in KIND_TAGS:
        if tag in label:
            return kind
    return TargetKind.SECURITY_GROUP


def classify_label(label: str) -> AssignmentRequest | None:
    """Build an AssignmentRequest from a display label.

    Args:
        label: Label as shown in a picker or listed in an input file

    Returns:
        AssignmentRequest, or None for blank and separator labels
    """
    stripped = label.strip()
    if not stripped:
        return None

    if is_separator(stripped):
        logger.debug(f"Skipping separator label: {stripped}")
        return None

    name = label.split(NAME_MARKER, 1)[0].strip()
    if not name:
        logger.warning(f"Skipping label with no target name: {stripped}")
        return None

    return AssignmentRequest(target_name=name, target_kind=classify_kind(stripped), label=label)


def classify_labels(labels: Iterable[str]) -> list[AssignmentRequest]:
    """Classify labels, dropping blanks and separators."""
    requests = []
    for label in labels:
        request = classify_label(label)
        if request is not None:
            requests.append(request)
    return requests


def format_label(name: str, kind: TargetKind, address: str | None = None) -> str:
    """Render a target as a picker label that classify_label understands."""
    label = f"{name} {LABEL_TAGS[kind]}"
    if address:
        label += f" - {address}"
    return label


def section_separator(title: str) -> str:
    """Render a section heading row."""
    return f"=== {title.upper()} ==="
