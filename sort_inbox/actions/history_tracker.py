"""
History Tracker
================

Keeps a JSON log of classification outcomes so past runs can be
reviewed from the command line.
"""

import json
from pathlib import Path
from typing import Optional, List, Dict
from dataclasses import dataclass, asdict
from datetime import datetime

from sort_inbox.classification.models import ClassificationOutcome
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class HistoryEntry:
    """Record of one classified (or not) note.

    Attributes:
        id: Unique identifier for this entry.
        timestamp: When the outcome was recorded.
        file: Note file name.
        original_path: Vault path before the run.
        new_path: Vault path after a move, if any.
        status: classified, skipped or failed.
        folder: Chosen folder, if any.
        error: Error message for failed notes.
    """

    id: int
    timestamp: str
    file: str
    original_path: str
    new_path: Optional[str] = None
    status: str = "skipped"
    folder: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        """Create from dictionary."""
        return cls(**data)


class HistoryTracker:
    """Persists classification outcomes to a JSON file."""

    DEFAULT_HISTORY_FILE = "history.json"
    MAX_HISTORY_SIZE = 1000  # Maximum entries to keep

    def __init__(self, history_file: Path):
        """Initialize history tracker.

        Args:
            history_file: Path to history JSON file.
        """
        self.history_file = Path(history_file)
        self._history: List[HistoryEntry] = []
        self._next_id = 1
        self._load_history()

    @classmethod
    def for_vault(cls, vault_root: Path) -> "HistoryTracker":
        """History stored in the vault's hidden ``.sort_inbox`` directory."""
        return cls(Path(vault_root).expanduser() / ".sort_inbox" / cls.DEFAULT_HISTORY_FILE)

    def _load_history(self) -> None:
        """Load history from file."""
        if self.history_file.exists():
            try:
                with open(self.history_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    self._history = [
                        HistoryEntry.from_dict(entry)
                        for entry in data.get("entries", [])
                    ]
                    self._next_id = data.get("next_id", len(self._history) + 1)
                logger.debug(f"Loaded {len(self._history)} history entries")
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning(f"Error loading history: {e}")
                self._history = []

    def _save_history(self) -> None:
        """Save history to file."""
        self.history_file.parent.mkdir(parents=True, exist_ok=True)

        if len(self._history) > self.MAX_HISTORY_SIZE:
            self._history = self._history[-self.MAX_HISTORY_SIZE:]

        data = {
            "next_id": self._next_id,
            "entries": [entry.to_dict() for entry in self._history],
        }

        with open(self.history_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def record(self, outcome: ClassificationOutcome) -> HistoryEntry:
        """Append one outcome and persist the history.

        Returns:
            The created history entry.
        """
        values = outcome.to_dict()
        entry = HistoryEntry(
            id=self._next_id,
            timestamp=datetime.now().isoformat(),
            file=values["file"],
            original_path=values["original_path"],
            new_path=values["new_path"],
            status=values["status"],
            folder=values["folder"],
            error=values["error"],
        )

        self._next_id += 1
        self._history.append(entry)
        try:
            self._save_history()
        except OSError as e:
            logger.warning(f"Could not write history file {self.history_file}: {e}")

        logger.debug(f"Recorded {entry.status}: {entry.original_path}")
        return entry

    def get_recent(self, count: int = 10) -> List[HistoryEntry]:
        """Get recent history entries (newest first)."""
        if count <= 0:
            return []
        return list(reversed(self._history[-count:]))

    def get_stats(self) -> Dict:
        """Get history statistics.

        Returns:
            Dictionary with totals per status and per folder.
        """
        by_status: Dict[str, int] = {}
        by_folder: Dict[str, int] = {}
        for entry in self._history:
            by_status[entry.status] = by_status.get(entry.status, 0) + 1
            if entry.status == "classified" and entry.folder:
                by_folder[entry.folder] = by_folder.get(entry.folder, 0) + 1

        return {
            "total_entries": len(self._history),
            "by_status": by_status,
            "by_folder": by_folder,
        }

    def clear_history(self) -> None:
        """Clear all history."""
        self._history.clear()
        self._next_id = 1
        self._save_history()
        logger.info("History cleared")
