"""
Classification Models
=====================

Value types shared by the classifier, the run coordinator and the vault:
notes, decisions, per-note outcomes and run summaries.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, Dict, Any

MARKDOWN_EXTENSION = "md"


@dataclass(frozen=True)
class Note:
    """A markdown note identified by its vault-relative POSIX path."""
    path: str

    @property
    def basename(self) -> str:
        """File name including extension."""
        return PurePosixPath(self.path).name

    @property
    def title(self) -> str:
        """Note title: the file name without extension."""
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        """Lower-case extension without the leading dot."""
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def is_markdown(self) -> bool:
        return self.extension == MARKDOWN_EXTENSION


@dataclass(frozen=True)
class ClassificationDecision:
    """Destination chosen for a note.

    ``folder`` is a member of the configured folder list, or None for the
    "no classification" decision.
    """
    folder: Optional[str] = None

    @property
    def is_unclassified(self) -> bool:
        return self.folder is None

    def __str__(self) -> str:
        return self.folder if self.folder is not None else "unclassified"


UNCLASSIFIED = ClassificationDecision()


class OutcomeKind(Enum):
    """Result kind of a single note."""
    CLASSIFIED = "classified"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ClassificationOutcome:
    """Final result for one note in a run.

    Attributes:
        note: The note this outcome belongs to.
        decision: Validated destination decision.
        kind: classified, skipped or failed.
        error: Error message when failed.
        new_path: Vault-relative path after a successful move.
    """
    note: Note
    decision: ClassificationDecision = UNCLASSIFIED
    kind: OutcomeKind = OutcomeKind.SKIPPED
    error: Optional[str] = None
    new_path: Optional[str] = None

    @classmethod
    def from_decision(cls, note: Note, decision: ClassificationDecision) -> "ClassificationOutcome":
        """Build the outcome of a successful classification call."""
        kind = OutcomeKind.SKIPPED if decision.is_unclassified else OutcomeKind.CLASSIFIED
        return cls(note=note, decision=decision, kind=kind)

    @classmethod
    def failure(cls, note: Note, error: str) -> "ClassificationOutcome":
        """Build the outcome of a failed classification."""
        return cls(note=note, decision=UNCLASSIFIED, kind=OutcomeKind.FAILED, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "file": self.note.basename,
            "original_path": self.note.path,
            "new_path": self.new_path,
            "folder": self.decision.folder,
            "status": self.kind.value,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Aggregate counters of one bulk run.

    Starts at zero, takes exactly one ``record`` per note and is frozen by
    ``finalize`` when the run ends.
    """
    total: int = 0
    classified: int = 0
    skipped: int = 0
    failed: int = 0
    folder_counts: Dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    _closed: bool = field(default=False, repr=False, compare=False)

    @property
    def recorded(self) -> int:
        """Number of notes counted so far."""
        return self.classified + self.skipped + self.failed

    @property
    def is_final(self) -> bool:
        return self._closed

    def record(self, outcome: ClassificationOutcome) -> None:
        """Fold one note outcome into the counters.

        Raises:
            RuntimeError: If the summary was already finalized.
        """
        if self._closed:
            raise RuntimeError("Cannot record outcomes on a finalized run summary")

        if outcome.kind is OutcomeKind.CLASSIFIED:
            self.classified += 1
            folder = outcome.decision.folder
            self.folder_counts[folder] = self.folder_counts.get(folder, 0) + 1
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def finalize(self, duration_ms: float) -> "RunSummary":
        """Set the elapsed time and freeze the counters."""
        self.duration_ms = int(duration_ms)
        self._closed = True
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary."""
        return {
            "total": self.total,
            "classified": self.classified,
            "skipped": self.skipped,
            "failed": self.failed,
            "folder_counts": dict(self.folder_counts),
            "duration_ms": self.duration_ms,
        }
