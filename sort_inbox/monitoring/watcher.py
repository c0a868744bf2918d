"""
Inbox Watcher
=============

Monitors the vault inbox for new notes and hands them to the asyncio
loop for auto-classification. Implements debouncing so editors that
write a file in several steps trigger a single classification.
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from sort_inbox.classification.models import Note
from sort_inbox.monitoring.inbox import admit_note, is_direct_child, normalize_folder
from sort_inbox.utils.exceptions import ConfigurationError
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

NoteCallback = Callable[[Note], Awaitable[object]]


class DebounceTracker:
    """Tracks file events for debouncing.

    Prevents multiple rapid events for the same file from triggering
    multiple classification attempts.
    """

    def __init__(self, debounce_seconds: float = 1.0):
        """Initialize the debounce tracker.

        Args:
            debounce_seconds: Minimum time between events for the same file.
        """
        self.debounce_seconds = debounce_seconds
        self._pending: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_process(self, file_path: str) -> bool:
        """Check if enough time has passed since the last event.

        Args:
            file_path: Path to the file.

        Returns:
            True if the file should be processed, False to skip.
        """
        current_time = time.monotonic()
        with self._lock:
            last_time = self._pending.get(file_path)
            if last_time is None or current_time - last_time >= self.debounce_seconds:
                self._pending[file_path] = current_time
                return True
            return False

    def clear(self, file_path: str) -> None:
        """Remove a file from the pending tracker."""
        with self._lock:
            self._pending.pop(file_path, None)

    def clear_all(self) -> None:
        """Clear all pending entries."""
        with self._lock:
            self._pending.clear()


class InboxEventHandler(FileSystemEventHandler):
    """Turns watchdog events into admitted inbox notes.

    Only markdown files that are direct children of the inbox folder are
    passed to ``dispatch``.
    """

    def __init__(
        self,
        vault_root: Path,
        inbox_folder: str,
        dispatch: Callable[[Note], None],
        debounce_seconds: float = 1.0,
    ):
        """Initialize the event handler.

        Args:
            vault_root: Vault root directory.
            inbox_folder: Vault-relative inbox folder.
            dispatch: Called from the observer thread with each admitted note.
            debounce_seconds: Window for ignoring repeated events.
        """
        super().__init__()
        self.vault_root = Path(vault_root).expanduser()
        self.inbox_folder = normalize_folder(inbox_folder)
        self.dispatch = dispatch
        self.debouncer = DebounceTracker(debounce_seconds)

    def _to_vault_path(self, file_path) -> Optional[str]:
        try:
            return Path(file_path).relative_to(self.vault_root).as_posix()
        except ValueError:
            return None

    def _handle_file_event(self, file_path) -> None:
        """Admit and dispatch one created or moved-in file."""
        vault_path = self._to_vault_path(file_path)
        if vault_path is None:
            logger.debug(f"Ignoring file outside the vault: {file_path}")
            return

        if not is_direct_child(vault_path, self.inbox_folder):
            logger.debug(f"Ignoring file outside the inbox: {vault_path}")
            return

        note = admit_note(vault_path)
        if note is None:
            logger.debug(f"Ignoring non-markdown file: {vault_path}")
            return

        if not self.debouncer.should_process(vault_path):
            logger.debug(f"Debouncing file event: {vault_path}")
            return

        logger.info(f"New inbox note: {vault_path}", extra={"note_path": vault_path})
        self.dispatch(note)

    def on_created(self, event) -> None:
        """Handle file creation events."""
        if event.is_directory:
            return
        logger.debug(f"File created event: {event.src_path}")
        self._handle_file_event(event.src_path)

    def on_moved(self, event) -> None:
        """Handle files renamed or moved into the inbox."""
        if event.is_directory:
            return
        logger.debug(f"File moved event: {event.src_path} -> {event.dest_path}")
        self._handle_file_event(event.dest_path)


class VaultWatcherService:
    """Watcher service that monitors the inbox folder.

    Manages the watchdog Observer and forwards admitted notes to an
    async callback on the given event loop.
    """

    def __init__(
        self,
        vault_root: Path,
        inbox_folder: str,
        loop: asyncio.AbstractEventLoop,
        on_note_created: NoteCallback,
        debounce_seconds: float = 1.0,
    ):
        """Initialize the watcher service.

        Args:
            vault_root: Vault root directory.
            inbox_folder: Vault-relative inbox folder.
            loop: Event loop that runs ``on_note_created``.
            on_note_created: Coroutine function called with each new note.
            debounce_seconds: Window for ignoring repeated events.
        """
        self.vault_root = Path(vault_root).expanduser()
        self.inbox_folder = normalize_folder(inbox_folder)
        self.loop = loop
        self.on_note_created = on_note_created
        self.observer = Observer()
        self.handler = InboxEventHandler(
            self.vault_root, self.inbox_folder, self._dispatch, debounce_seconds
        )
        self._running = False

    @property
    def watch_directory(self) -> Path:
        if not self.inbox_folder:
            return self.vault_root
        return self.vault_root.joinpath(*self.inbox_folder.split("/"))

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running and self.observer.is_alive()

    def _dispatch(self, note: Note) -> None:
        future = asyncio.run_coroutine_threadsafe(self.on_note_created(note), self.loop)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Auto-classification failed: {error}")

    def start(self) -> None:
        """Start watching the inbox.

        Raises:
            ConfigurationError: If the inbox directory does not exist.
        """
        directory = self.watch_directory
        if not directory.is_dir():
            raise ConfigurationError(
                f"Inbox directory does not exist: {directory}",
                config_key="vault.inbox_folder",
            )

        self.observer.schedule(self.handler, str(directory), recursive=False)
        self.observer.start()
        self._running = True
        logger.info(f"Watching inbox: {directory}")

    def stop(self) -> None:
        """Stop the watcher service."""
        if self._running:
            self._running = False
            self.observer.stop()
            self.observer.join(timeout=5.0)
            logger.info("Inbox watcher stopped")
