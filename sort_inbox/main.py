"""
Sort Inbox - Main Application
=============================

Main entry point and orchestration: wires the vault, the Gemini client,
the classifier and the run coordinator together, and exposes the
command line interface.
"""

import asyncio
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from sort_inbox.actions import VaultFileOperations, HistoryTracker
from sort_inbox.classification import Classifier, GeminiClient, Note, RunSummary
from sort_inbox.config import Config
from sort_inbox.monitoring import (
    AutoRunScheduler,
    RunCoordinator,
    VaultWatcherService,
    admit_note,
    inbox_candidates,
)
from sort_inbox.monitoring.run_coordinator import ProgressCallback
from sort_inbox.utils.exceptions import (
    CredentialError,
    FileProcessingError,
    ModelClientError,
    RunInProgressError,
    SortInboxError,
)
from sort_inbox.utils.logging_config import setup_logging, get_logger
from sort_inbox.utils.notifications import DesktopNotifier, format_summary

logger = get_logger(__name__)


class SortInboxApp:
    """Main orchestrator for Sort Inbox.

    Owns one instance of every component and offers the user-facing
    operations: bulk sorting, single-note classification, key checks and
    settings persistence.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[GeminiClient] = None,
        notifier: Optional[DesktopNotifier] = None,
    ):
        """Initialize the application.

        Args:
            config: Loaded configuration (defaults when None).
            client: Model client override.
            notifier: Notifier override.
        """
        self.config = config or Config()

        self.vault = VaultFileOperations(self.config.vault.root)
        self.client = client or GeminiClient(
            model=self.config.gemini.model,
            base_url=self.config.gemini.base_url,
        )
        self.notifier = notifier or DesktopNotifier()
        self.history = HistoryTracker.for_vault(self.config.vault.root)

        self.classifier = Classifier(self.client, self.vault, self.config)
        self.coordinator = RunCoordinator(
            self.classifier,
            self.vault,
            self.config,
            notifier=self.notifier,
            history=self.history,
        )
        self.scheduler = AutoRunScheduler(self.sort_inbox)
        self.watcher: Optional[VaultWatcherService] = None
        self._stop_event: Optional[asyncio.Event] = None

    def discover_candidates(self) -> List[Note]:
        """Markdown notes sitting directly in the inbox."""
        return inbox_candidates(self.vault.list_markdown_files(), self.config.vault.inbox_folder)

    async def sort_inbox(self, progress: Optional[ProgressCallback] = None) -> Optional[RunSummary]:
        """Classify every note in the inbox as one run.

        Returns:
            The run summary, or None if the inbox was empty.

        Raises:
            RunInProgressError: If a run is already active.
        """
        inbox = self.config.vault.inbox_folder
        candidates = await asyncio.to_thread(self.discover_candidates)
        if not candidates:
            logger.info(f"No notes to sort in '{inbox or '/'}'")
            self.notifier.notify_no_candidates(inbox)
            return None

        return await self.coordinator.start_run(candidates, progress)

    async def handle_note_created(self, note: Note) -> None:
        """Auto-classify a note that just appeared in the inbox."""
        settings = self.config.auto_classify
        if not settings.enabled:
            return

        # Give the editor time to finish writing the note
        await asyncio.sleep(settings.settle_seconds)
        if not self.vault.absolute(note.path).is_file():
            logger.debug(f"Note disappeared before classification: {note.path}")
            return

        await self.coordinator.classify_single(note)

    async def classify_file(self, file_path: str):
        """Classify one note given an absolute or vault-relative path.

        Raises:
            FileProcessingError: If the path is not a markdown note in the vault.
        """
        path = Path(file_path).expanduser()
        if path.is_absolute():
            vault_path = self.vault.relative(path)
            if vault_path is None:
                raise FileProcessingError("File is outside the vault", file_path=str(path))
        else:
            vault_path = path.as_posix()

        note = admit_note(vault_path)
        if note is None:
            raise FileProcessingError("Only markdown notes can be classified", file_path=vault_path)
        return await self.coordinator.classify_single(note)

    async def verify_api_key(self) -> bool:
        """Check the configured API key and persist the result.

        Returns:
            True if the key works.
        """
        gemini = self.config.gemini
        valid = False
        try:
            valid = await self.client.verify_credential(
                gemini.resolved_api_key(),
                timeout_ms=self.config.classification.timeout_ms,
            )
            gemini.api_key_status = "valid" if valid else "invalid"
        except CredentialError as e:
            logger.warning(f"API key check failed: {e.message}")
            gemini.api_key_status = "invalid"
        except ModelClientError as e:
            logger.error(f"API key check failed: {e.message}")
            gemini.api_key_status = "error"

        gemini.last_api_key_verification = int(time.time() * 1000)
        self.save_settings()
        self.notifier.notify_key_status(valid)
        return valid

    def save_settings(self) -> None:
        """Persist the configuration and re-apply the auto-run timer."""
        self.config.save()
        try:
            self.scheduler.apply(self.config.auto_classify)
        except RuntimeError:
            # No running loop: the timer is applied when serve() starts
            pass

    async def serve(self) -> None:
        """Watch the inbox and run the auto-run timer until stopped."""
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass

        inbox = self.config.vault.inbox_folder
        if self.vault.root.is_dir() and not self.vault.folder_exists(inbox):
            logger.info(f"Creating inbox folder: {inbox}")
            self.vault.create_folder(inbox)

        self.watcher = VaultWatcherService(
            self.config.vault.root,
            self.config.vault.inbox_folder,
            loop,
            self.handle_note_created,
            debounce_seconds=self.config.auto_classify.debounce_seconds,
        )
        self.watcher.start()
        self.scheduler.apply(self.config.auto_classify)
        logger.info("Sort Inbox is running. Press Ctrl+C to stop.")

        try:
            await self._stop_event.wait()
        finally:
            self.scheduler.stop()
            self.watcher.stop()
            logger.info("Sort Inbox stopped.")

    def stop(self) -> None:
        """Ask a running ``serve`` to return."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def aclose(self) -> None:
        """Release network resources."""
        self.scheduler.stop()
        await self.client.aclose()


def _print_progress(current: int, total: int, message: str) -> None:
    print(f"  [{current}/{total}] {message}")


def _print_history(app: SortInboxApp, count: int) -> None:
    entries = app.history.get_recent(count)
    if not entries:
        print("No history yet.")
        return
    print(f"\nRecent History ({len(entries)} entries):\n")
    marks = {"classified": "✓", "skipped": "-", "failed": "✗"}
    for entry in entries:
        print(f"  {marks.get(entry.status, '?')} [{entry.timestamp[:16]}] {entry.original_path}")
        if entry.new_path:
            print(f"      → {entry.new_path}")
        elif entry.error:
            print(f"      {entry.error}")


def _print_stats(app: SortInboxApp) -> None:
    stats = app.history.get_stats()
    print("\nClassification Statistics:\n")
    print(f"  Total entries: {stats['total_entries']}")
    for status, count in stats["by_status"].items():
        print(f"  {status.capitalize()}: {count}")
    if stats["by_folder"]:
        print("\n  By folder:")
        for folder, count in stats["by_folder"].items():
            print(f"    {folder}: {count}")


async def _run_command(app: SortInboxApp, args) -> int:
    try:
        if args.verify_key:
            valid = await app.verify_api_key()
            print("✓ API key is valid" if valid else f"✗ API key check: {app.config.gemini.api_key_status}")
            return 0 if valid else 1

        if args.file:
            outcome = await app.classify_file(args.file)
            if outcome is None:
                print("Note is already being classified")
                return 1
            print(f"{outcome.note.path}: {outcome.kind.value}"
                  + (f" → {outcome.new_path}" if outcome.new_path else "")
                  + (f" ({outcome.error})" if outcome.error else ""))
            return 1 if outcome.error else 0

        if args.once:
            summary = await app.sort_inbox(progress=_print_progress)
            if summary is None:
                print("No notes to sort.")
                return 0
            print(format_summary(summary))
            return 1 if summary.failed else 0

        await app.serve()
        return 0
    except RunInProgressError as e:
        print(f"✗ {e.message}")
        return 1
    except SortInboxError as e:
        logger.error(str(e))
        print(f"✗ {e.message}")
        return 1
    finally:
        await app.aclose()


def main():
    """Main entry point with CLI support."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Sort Inbox - Classify vault inbox notes into folders with Gemini"
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to the YAML configuration file (default: ./config.yaml)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Sort the inbox once and exit'
    )
    parser.add_argument(
        '--file', '-f',
        metavar='PATH',
        help='Classify a single note'
    )
    parser.add_argument(
        '--verify-key',
        action='store_true',
        help='Check the configured Gemini API key'
    )
    parser.add_argument(
        '--history', '-H',
        type=int,
        nargs='?',
        const=10,
        help='Show recent history (default: 10 entries)'
    )
    parser.add_argument(
        '--stats', '-s',
        action='store_true',
        help='Show classification statistics'
    )

    args = parser.parse_args()

    config = Config.load(args.config)
    setup_logging(config.logging)

    app = SortInboxApp(config)

    if args.history is not None:
        _print_history(app, args.history)
        return

    if args.stats:
        _print_stats(app)
        return

    try:
        exit_code = asyncio.run(_run_command(app, args))
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
