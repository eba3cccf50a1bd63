"""Activity log for provisioning runs.

Entries are kept in memory for the end-of-run report, mirrored to the
``m365provision.activity`` logger, and optionally appended to a JSON-lines
file so operators can find manual follow-up tasks after the fact.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger("m365provision.activity")

WARNING_STATUSES = {"failed", "manual", "cancelled"}


@dataclass
class ActivityEntry:
    """One recorded provisioning event."""

    category: str
    status: str
    detail: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        """Serialize for the JSON-lines file."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class ActivityLog:
    """In-memory and optional on-disk activity sink."""

    def __init__(self, path: Path | str | None = None) -> None:
        """Initialize the activity log.

        Args:
            path: JSON-lines file to append entries to (optional)
        """
        self.path = Path(path) if path else None
        self.entries: list[ActivityEntry] = []

    def __call__(self, category: str, status: str, detail: str) -> None:
        """Record an entry. Never raises."""
        entry = ActivityEntry(category=category, status=status, detail=detail)
        self.entries.append(entry)

        level = logging.WARNING if status in WARNING_STATUSES else logging.INFO
        logger.log(level, f"[{category}] {status}: {detail}")

        if self.path is not None:
            self._append(entry)

    def _append(self, entry: ActivityEntry) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as e:
            logger.error(f"Failed to write activity log {self.path}: {e}")

    def entries_for(self, status: str) -> list[ActivityEntry]:
        """Get entries with the given status, e.g. ``"manual"``."""
        return [e for e in self.entries if e.status == status]
