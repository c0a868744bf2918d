"""Monitoring module: inbox membership, run coordination and triggers."""

from .inbox import is_direct_child, admit_note, inbox_candidates
from .run_coordinator import RunCoordinator, RunState
from .scheduler import AutoRunScheduler
from .watcher import VaultWatcherService, InboxEventHandler, DebounceTracker

__all__ = [
    "is_direct_child",
    "admit_note",
    "inbox_candidates",
    "RunCoordinator",
    "RunState",
    "AutoRunScheduler",
    "VaultWatcherService",
    "InboxEventHandler",
    "DebounceTracker",
]
