"""
Run Coordinator
===============

Drives classification runs over a set of inbox notes: only one bulk run
may be active at a time, every note ends up counted exactly once in the
run summary, and one failing note never stops its siblings.
"""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set

from sort_inbox.actions.file_operations import join_vault_path
from sort_inbox.actions.history_tracker import HistoryTracker
from sort_inbox.classification.classifier import Classifier
from sort_inbox.classification.models import (
    Note,
    ClassificationOutcome,
    OutcomeKind,
    RunSummary,
    UNCLASSIFIED,
)
from sort_inbox.config.settings import Config
from sort_inbox.utils.exceptions import RunInProgressError, SortInboxError
from sort_inbox.utils.logging_config import get_logger, new_correlation_id, set_correlation_id, Timer
from sort_inbox.utils.notifications import DesktopNotifier

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class RunState(Enum):
    """State of the bulk-run guard."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"


def _error_message(error: Exception) -> str:
    if isinstance(error, SortInboxError):
        return error.message
    return f"{type(error).__name__}: {error}"


class RunCoordinator:
    """Runs classification over inbox notes and moves them into folders.

    Example:
        >>> coordinator = RunCoordinator(classifier, vault, config)
        >>> summary = await coordinator.start_run(notes)
        >>> print(summary.classified, summary.skipped, summary.failed)
    """

    def __init__(
        self,
        classifier: Classifier,
        vault,
        config: Config,
        notifier: Optional[DesktopNotifier] = None,
        history: Optional[HistoryTracker] = None,
        log: Optional[logging.Logger] = None,
    ):
        """Initialize the coordinator.

        Args:
            classifier: Classifier used for both bulk and single-note paths.
            vault: File storage with ``folder_exists``, ``create_folder`` and
                ``rename_or_move``.
            config: Application configuration.
            notifier: Optional desktop notifier.
            history: Optional history tracker for ``log_results``.
            log: Logger override.
        """
        self.classifier = classifier
        self.vault = vault
        self.config = config
        self.notifier = notifier
        self.history = history
        self.log = log or logger

        self._state = RunState.IDLE
        self._current: Optional[RunSummary] = None
        self._last: Optional[RunSummary] = None

        # Notes being handled right now by either trigger path
        self._active_paths: Set[str] = set()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is RunState.IN_PROGRESS

    @property
    def current_summary(self) -> Optional[RunSummary]:
        """Summary of the open run, if any."""
        return self._current

    @property
    def last_summary(self) -> Optional[RunSummary]:
        """Summary of the most recently finished run."""
        return self._last

    def is_busy(self, note: Note) -> bool:
        """Whether ``note`` is being classified right now."""
        return note.path in self._active_paths

    async def start_run(
        self,
        candidates: Sequence[Note],
        progress: Optional[ProgressCallback] = None,
    ) -> RunSummary:
        """Classify and move a set of notes as one run.

        Args:
            candidates: Inbox notes to classify.
            progress: Optional ``(current, total, message)`` callback.

        Returns:
            The finalized run summary.

        Raises:
            RunInProgressError: If another run is open. The open run is
                not affected.
        """
        if self._state is RunState.IN_PROGRESS:
            self.log.warning("Rejected run request: a run is already in progress")
            if self.notifier:
                self.notifier.notify_run_in_progress()
            raise RunInProgressError()
        self._state = RunState.IN_PROGRESS

        notes = []
        for note in candidates:
            if note.path in self._active_paths:
                self.log.info(f"Skipping {note.path}: already being classified",
                              extra={"note_path": note.path})
                continue
            notes.append(note)

        summary = RunSummary(total=len(notes))
        self._current = summary
        self._active_paths.update(note.path for note in notes)
        set_correlation_id(new_correlation_id())

        recorded: Set[str] = set()
        left_in_place: List[str] = []

        def account(outcome: ClassificationOutcome) -> None:
            summary.record(outcome)
            recorded.add(outcome.note.path)
            if outcome.kind is OutcomeKind.SKIPPED:
                left_in_place.append(outcome.note.path)

        self.log.info(f"Starting classification run over {len(notes)} notes")
        if self.notifier:
            self.notifier.notify_run_started(self.config.vault.inbox_folder)

        with Timer(self.log, "classification run") as timer:
            try:
                if self.classifier.should_batch(len(notes)):
                    await self._run_batched(notes, account, progress)
                else:
                    outcomes = await self.classifier.classify_individually(notes, progress)
                    for outcome in outcomes:
                        account(await self._finish(outcome))
            except Exception as e:
                message = _error_message(e)
                self.log.exception(f"Classification run failed: {message}")
                if self.notifier:
                    self.notifier.notify_run_failed(message)
                for note in notes:
                    if note.path not in recorded:
                        account(ClassificationOutcome.failure(note, message))
            finally:
                summary.finalize(timer.elapsed_ms)
                self._active_paths.difference_update(note.path for note in notes)
                self._last = summary
                self._current = None
                self._state = RunState.IDLE

        if progress:
            progress(summary.total, summary.total, "Done")

        self.log.info(
            f"Run finished: {summary.classified} classified, {summary.skipped} skipped, "
            f"{summary.failed} failed",
            extra={"duration_ms": summary.duration_ms},
        )
        if self.notifier:
            show_left = left_in_place if not self.config.classification.skip_unclassified else None
            self.notifier.notify_summary(summary, show_left)

        return summary

    async def _run_batched(
        self,
        notes: Sequence[Note],
        account: Callable[[ClassificationOutcome], None],
        progress: Optional[ProgressCallback],
    ) -> None:
        """Classify notes in groups, one combined request per group."""
        size = self.config.classification.batch_size
        groups = [notes[i:i + size] for i in range(0, len(notes), size)]

        for index, group in enumerate(groups):
            if progress:
                progress(index * size, len(notes),
                         f"Classifying group {index + 1} of {len(groups)} ({len(group)} notes)")
            try:
                result = await self.classifier.classify_group(group)
            except Exception as e:
                message = _error_message(e)
                self.log.error(f"Group {index + 1} failed: {message}")
                for note in group:
                    account(await self._finish(ClassificationOutcome.failure(note, message)))
            else:
                for note in group:
                    if note.path in result.failures:
                        outcome = ClassificationOutcome.failure(note, result.failures[note.path])
                    else:
                        decision = result.decisions.get(note.path, UNCLASSIFIED)
                        outcome = ClassificationOutcome.from_decision(note, decision)
                    account(await self._finish(outcome))

            if index < len(groups) - 1:
                if progress:
                    progress((index + 1) * size, len(notes), "Waiting before the next group")
                await self.classifier.pause()

    async def classify_single(self, note: Note) -> Optional[ClassificationOutcome]:
        """Classify and move one newly created note.

        Not subject to the bulk-run guard. Returns None when the note is
        already being handled by a run or another event.
        """
        if note.path in self._active_paths:
            self.log.debug(f"Ignoring {note.path}: already being classified")
            return None

        self._active_paths.add(note.path)
        set_correlation_id(new_correlation_id())
        try:
            if self.notifier:
                self.notifier.notify_classifying(note.basename)
            outcome = await self._finish(await self.classifier.classify_one(note))
        finally:
            self._active_paths.discard(note.path)

        if self.notifier:
            if outcome.kind is OutcomeKind.CLASSIFIED:
                self.notifier.notify_classified(note.basename, outcome.decision.folder)
            elif outcome.kind is OutcomeKind.SKIPPED:
                self.notifier.notify_unclassified(note.basename)
            else:
                self.notifier.notify_error(note.basename, outcome.error or "unknown error")
        return outcome

    async def _finish(self, outcome: ClassificationOutcome) -> ClassificationOutcome:
        """Move a classified note and record the final outcome."""
        if outcome.kind is OutcomeKind.CLASSIFIED:
            try:
                new_path = await asyncio.to_thread(
                    self._move_to_folder, outcome.note, outcome.decision.folder
                )
                outcome = replace(outcome, new_path=new_path)
            except Exception as e:
                message = _error_message(e)
                self.log.error(f"Failed to move {outcome.note.path}: {message}",
                               extra={"note_path": outcome.note.path,
                                      "folder": outcome.decision.folder})
                outcome = replace(outcome, kind=OutcomeKind.FAILED, error=message)

        self._report(outcome)
        return outcome

    def _move_to_folder(self, note: Note, folder: str) -> str:
        """Move ``note`` into ``<inbox>/<folder>``, creating the folder if needed."""
        dest_folder = join_vault_path(self.config.vault.inbox_folder, folder)
        if not self.vault.folder_exists(dest_folder):
            self.vault.create_folder(dest_folder)
        return self.vault.rename_or_move(note, join_vault_path(dest_folder, note.basename))

    def _report(self, outcome: ClassificationOutcome) -> None:
        if not self.config.classification.log_results:
            return

        extra = {"note_path": outcome.note.path, "folder": outcome.decision.folder}
        if outcome.kind is OutcomeKind.CLASSIFIED:
            self.log.info(f"Classified {outcome.note.path} -> {outcome.new_path}", extra=extra)
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.log.info(f"No folder for {outcome.note.path}", extra=extra)
        else:
            self.log.info(f"Failed {outcome.note.path}: {outcome.error}", extra=extra)

        if self.history:
            self.history.record(outcome)
