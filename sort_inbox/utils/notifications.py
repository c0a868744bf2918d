"""
Desktop Notifications
=====================

Provides desktop notification support for inbox sorting events.
Uses libnotify on Linux for native notifications.
"""

import shutil
import subprocess
from typing import Optional, Sequence, TYPE_CHECKING
from enum import Enum
from dataclasses import dataclass

from sort_inbox.utils.logging_config import get_logger

if TYPE_CHECKING:
    from sort_inbox.classification.models import RunSummary

logger = get_logger(__name__)


class NotificationType(Enum):
    """Types of notifications."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class NotificationConfig:
    """Notification configuration."""
    enabled: bool = True
    show_on_classify: bool = True
    show_on_error: bool = True
    timeout_ms: int = 5000  # 5 seconds


def format_summary(summary: "RunSummary", left_in_place: Optional[Sequence[str]] = None) -> str:
    """Render a run summary as a short human-readable message.

    Args:
        summary: Finished run summary.
        left_in_place: Notes that were not moved, listed when given.

    Returns:
        Multi-line message.
    """
    seconds = summary.duration_ms / 1000
    message = (
        f"Sorting finished: {summary.classified} of {summary.total} notes "
        f"classified ({seconds:.1f}s)"
    )
    if summary.skipped > 0:
        message += f"\nSkipped: {summary.skipped} notes"
    if summary.failed > 0:
        message += f"\nErrors: {summary.failed} notes"
    if left_in_place:
        message += "\nLeft in place: " + ", ".join(left_in_place)
    return message


class DesktopNotifier:
    """Sends desktop notifications for classification events.

    Uses notify-send on Linux for native notifications. Every message is
    also written to the log so headless runs keep the same trail.
    """

    APP_NAME = "Sort Inbox"

    def __init__(self, config: Optional[NotificationConfig] = None):
        """Initialize the notifier.

        Args:
            config: Notification configuration.
        """
        self.config = config or NotificationConfig()
        self._available = shutil.which("notify-send") is not None

        if self._available:
            logger.debug("Desktop notifications available")
        else:
            logger.debug("Desktop notifications not available (notify-send not found)")

    @property
    def is_available(self) -> bool:
        """Check if notifications are available and enabled."""
        return self._available and self.config.enabled

    def _get_icon(self, notif_type: NotificationType) -> str:
        """Get icon for notification type."""
        icons = {
            NotificationType.INFO: "dialog-information",
            NotificationType.SUCCESS: "emblem-ok-symbolic",
            NotificationType.WARNING: "dialog-warning",
            NotificationType.ERROR: "dialog-error",
        }
        return icons.get(notif_type, "folder")

    def _get_urgency(self, notif_type: NotificationType) -> str:
        """Get urgency level for notification type."""
        urgencies = {
            NotificationType.INFO: "low",
            NotificationType.SUCCESS: "normal",
            NotificationType.WARNING: "normal",
            NotificationType.ERROR: "critical",
        }
        return urgencies.get(notif_type, "normal")

    def send(
        self,
        title: str,
        message: str,
        notif_type: NotificationType = NotificationType.INFO
    ) -> bool:
        """Send a desktop notification.

        Args:
            title: Notification title.
            message: Notification body.
            notif_type: Type of notification.

        Returns:
            True if notification was sent successfully.
        """
        log_level = "warning" if notif_type is NotificationType.ERROR else "info"
        getattr(logger, log_level)(f"{title}: {message}")

        if not self.is_available:
            return False

        try:
            cmd = [
                "notify-send",
                "--app-name", self.APP_NAME,
                "--icon", self._get_icon(notif_type),
                "--urgency", self._get_urgency(notif_type),
                "--expire-time", str(self.config.timeout_ms),
                title,
                message
            ]

            subprocess.run(cmd, capture_output=True, timeout=5)
            return True

        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Failed to send notification: {e}")
            return False

    def notify_classifying(self, name: str) -> None:
        """Notify that a single note is being classified."""
        if self.config.show_on_classify:
            self.send(self.APP_NAME, f"Classifying \"{name}\"...", NotificationType.INFO)

    def notify_classified(self, name: str, folder: str) -> None:
        """Notify that a note was moved into a folder."""
        if self.config.show_on_classify:
            self.send(
                "Note sorted",
                f"\"{name}\" moved to \"{folder}\"",
                NotificationType.SUCCESS
            )

    def notify_unclassified(self, name: str) -> None:
        """Notify that no destination was found for a note."""
        if self.config.show_on_classify:
            self.send(
                self.APP_NAME,
                f"No matching folder for \"{name}\"; the note was not moved",
                NotificationType.INFO
            )

    def notify_error(self, name: str, error: str) -> None:
        """Notify of a classification error."""
        if self.config.show_on_error:
            self.send("Classification error", f"{name}\n{error[:100]}", NotificationType.ERROR)

    def notify_run_started(self, inbox: str) -> None:
        """Notify that a bulk run has started."""
        self.send(self.APP_NAME, f"Sorting notes in \"{inbox or '/'}\"...", NotificationType.INFO)

    def notify_no_candidates(self, inbox: str) -> None:
        """Notify that the inbox holds nothing to sort."""
        self.send(self.APP_NAME, f"No notes to sort in \"{inbox or '/'}\"", NotificationType.INFO)

    def notify_run_in_progress(self) -> None:
        """Notify that a bulk run was rejected because one is active."""
        self.send(
            self.APP_NAME,
            "A sorting run is already in progress; try again later",
            NotificationType.WARNING
        )

    def notify_run_failed(self, error: str) -> None:
        """Notify that a run ended on an unexpected error."""
        self.send("Sorting failed", error[:200], NotificationType.ERROR)

    def notify_summary(
        self,
        summary: "RunSummary",
        left_in_place: Optional[Sequence[str]] = None
    ) -> None:
        """Notify the result of a finished bulk run."""
        notif_type = NotificationType.WARNING if summary.failed else NotificationType.SUCCESS
        self.send(self.APP_NAME, format_summary(summary, left_in_place), notif_type)

    def notify_key_status(self, valid: bool) -> None:
        """Notify the result of an API key check."""
        if valid:
            self.send(self.APP_NAME, "API key is valid", NotificationType.SUCCESS)
        else:
            self.send(
                self.APP_NAME,
                "API key is invalid; enter a correct key",
                NotificationType.ERROR
            )
