"""
Auto-Run Scheduler
==================

Periodic bulk classification. The timer is one asyncio task that is
replaced wholesale whenever the settings change.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sort_inbox.config.settings import AutoClassifyConfig
from sort_inbox.utils.exceptions import RunInProgressError
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)


class AutoRunScheduler:
    """Calls ``callback`` every ``interval_minutes`` while started.

    Must be used from inside a running event loop.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]], log: Optional[logging.Logger] = None):
        self.callback = callback
        self.log = log or logger
        self._task: Optional[asyncio.Task] = None
        self.interval_minutes: float = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_minutes: float) -> None:
        """Start the periodic timer, replacing any existing one."""
        self.stop()
        if interval_minutes <= 0:
            return
        self.interval_minutes = interval_minutes
        self._task = asyncio.get_running_loop().create_task(self._loop(interval_minutes * 60))
        self.log.info(f"Auto-classification every {interval_minutes:g} minutes")

    def stop(self) -> None:
        """Cancel the timer. Safe to call when nothing is scheduled."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            self.log.debug("Auto-classification timer stopped")

    def apply(self, config: AutoClassifyConfig) -> None:
        """Re-create the timer from the current auto-classification settings."""
        self.stop()
        if config.enabled and config.interval_minutes > 0:
            self.start(config.interval_minutes)

    async def _loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.callback()
            except RunInProgressError:
                self.log.info("Skipping scheduled run: a run is already in progress")
            except Exception as e:
                self.log.error(f"Scheduled run failed: {e}")
