"""
Auto-sync scheduler.

Provides an AutoSyncScheduler class that manages:
- Sync cycles at a configurable interval
- Per-provider auto_sync and sync_interval settings
- Signal handling for graceful shutdown (SIGTERM/SIGINT)
- Logging of cycle results
"""

from __future__ import annotations

import logging
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime

from dashboard_sync.manager import SyncManager
from dashboard_sync.providers.base import SyncProvider

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStats:
    """
    Statistics from scheduler operation.

    A cycle counts as successful when every provider synced in it
    succeeded.
    """

    started_at: datetime = field(default_factory=datetime.now)
    cycle_count: int = 0
    cycle_success_count: int = 0
    cycle_error_count: int = 0
    last_cycle_at: datetime | None = None
    last_cycle_success: bool = False
    last_error: str | None = None


class AutoSyncScheduler:
    """
    Foreground scheduler running provider syncs.

    Each cycle syncs the enabled providers whose configuration has
    auto_sync set and whose own sync_interval (minutes) has elapsed since
    their last sync by this scheduler. The scheduler interval is how often
    providers are checked.

    Usage:
        scheduler = AutoSyncScheduler(manager, interval=300)

        # Run (blocks until shutdown signal)
        scheduler.run()

    Attributes:
        manager: Sync manager owning the providers
        interval: Seconds between cycles
        stats: Scheduler statistics
    """

    def __init__(
        self,
        manager: SyncManager,
        interval: int = 300,
        run_immediately: bool = True,
    ):
        """
        Initialize the scheduler.

        Args:
            manager: Sync manager owning the providers
            interval: Seconds between cycles (default: 300 = 5 minutes)
            run_immediately: If True, run a cycle on start before waiting
                for the interval. Default True.
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        self.manager = manager
        self.interval = interval
        self.run_immediately = run_immediately
        self._running = False
        self._shutdown_requested = False
        self._last_synced: dict[str, float] = {}
        # Signal handler types are complex in Python's type system
        self._original_sigterm_handler: signal.Handlers | None = None  # type: ignore[assignment]
        self._original_sigint_handler: signal.Handlers | None = None  # type: ignore[assignment]
        self.stats = SchedulerStats()

    def _setup_signal_handlers(self) -> None:
        """Set up SIGTERM and SIGINT handlers for graceful shutdown."""
        self._original_sigterm_handler = signal.signal(  # type: ignore[assignment]
            signal.SIGTERM, self._signal_handler
        )
        self._original_sigint_handler = signal.signal(  # type: ignore[assignment]
            signal.SIGINT, self._signal_handler
        )
        logger.debug("Signal handlers installed for SIGTERM and SIGINT")

    def _restore_signal_handlers(self) -> None:
        """Restore original signal handlers."""
        if self._original_sigterm_handler is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm_handler)
        if self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)
        logger.debug("Signal handlers restored")

    def _signal_handler(self, signum: int, frame: object) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self._shutdown_requested = True

    def due_providers(self, now: float | None = None) -> list[SyncProvider]:
        """
        Get the providers to sync in the current cycle.

        Args:
            now: Wall-clock time in seconds; defaults to time.time()

        Returns:
            Enabled auto-sync providers whose interval has elapsed
        """
        now = time.time() if now is None else now
        due = []
        for provider in self.manager.get_enabled_providers():
            config = provider.config
            if not config.auto_sync:
                continue
            last = self._last_synced.get(config.provider)
            if last is None or now - last >= config.sync_interval * 60:
                due.append(provider)
        return due

    def _run_cycle(self) -> bool:
        """
        Sync every due provider and update statistics.

        Returns:
            True if every synced provider succeeded, False otherwise.
        """
        providers = self.due_providers()
        if not providers:
            logger.debug("No providers due for sync")
            return True

        self.stats.cycle_count += 1
        self.stats.last_cycle_at = datetime.now()
        started = time.time()
        names = [provider.config.provider for provider in providers]
        logger.info(
            f"Starting sync cycle #{self.stats.cycle_count}: {', '.join(names)}"
        )

        try:
            self.manager.sync_all(providers)
        except Exception as e:
            self.stats.cycle_error_count += 1
            self.stats.last_cycle_success = False
            self.stats.last_error = str(e)
            logger.error(f"Sync cycle failed with exception: {e}")
            return False

        for name in names:
            self._last_synced[name] = started

        failures = [
            result
            for name, result in self.manager.last_results.items()
            if name in names and not result.success
        ]
        if failures:
            self.stats.cycle_error_count += 1
            self.stats.last_cycle_success = False
            self.stats.last_error = failures[-1].message
            logger.warning(f"Sync cycle completed with {len(failures)} failure(s)")
            return False

        self.stats.cycle_success_count += 1
        self.stats.last_cycle_success = True
        self.stats.last_error = None
        logger.info("Sync cycle completed successfully")
        return True

    def _sleep_interruptible(self, seconds: int) -> bool:
        """
        Sleep for the specified duration, checking for shutdown.

        Uses wall-clock time so a cycle runs on schedule after the system
        wakes from suspend.

        Returns:
            True if sleep completed normally, False if interrupted by shutdown.
        """
        end_time = time.time() + seconds
        while time.time() < end_time and not self._shutdown_requested:
            remaining = end_time - time.time()
            sleep_time = min(1.0, max(0, remaining))
            if sleep_time > 0:
                time.sleep(sleep_time)

        return not self._shutdown_requested

    def run(self) -> None:
        """
        Run the scheduler.

        Blocks until a shutdown signal is received or stop() is called.
        """
        logger.info(f"Starting auto-sync scheduler (interval: {self.interval}s)")
        self._setup_signal_handlers()

        self._running = True
        self._shutdown_requested = False
        self.stats = SchedulerStats()

        try:
            if self.run_immediately:
                self._run_cycle()

            while not self._shutdown_requested:
                logger.debug(f"Sleeping for {self.interval} seconds until next cycle")
                if not self._sleep_interruptible(self.interval):
                    break

                if not self._shutdown_requested:
                    self._run_cycle()

        finally:
            self._running = False
            self._restore_signal_handlers()
            logger.info("Auto-sync scheduler stopped")

    def stop(self) -> None:
        """
        Request scheduler shutdown.

        Can be called from a sync callback or another thread.
        """
        logger.info("Stop requested")
        self._shutdown_requested = True

    def is_running(self) -> bool:
        return self._running


__all__ = [
    "AutoSyncScheduler",
    "SchedulerStats",
]
