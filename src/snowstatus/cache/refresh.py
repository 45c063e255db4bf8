"""Scheduled refresh of cached Readings.

A single ticker thread evaluates a daily timetable (resort local time) and
triggers ``CacheCoordinator.force_refresh``. Each trigger passes two
guards before any fetch happens:

1. season gate: the resort-local date is inside the season window
2. minimum interval: the previous attempt is at least ``min_interval`` old

Default timetable (resort local time):

    06:00-09:45  every 15 minutes
    10:00-14:30  every 30 minutes
    15:00-16:45  every 15 minutes
    17:00        once

Usage:
    python -m snowstatus.cache.refresh --status   # Show cache status
    python -m snowstatus.cache.refresh --force    # Refresh now, ignoring guards
    python -m snowstatus.cache.refresh --run      # Run the ticker in the foreground
"""

import argparse
import logging
import sys
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, time as dtime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Optional

from snowstatus.cache.coordinator import CacheCoordinator
from snowstatus.cache.models import utc_now
from snowstatus.errors import PersistenceWriteFailed

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_MINUTES = 5.0
DEFAULT_TICK_SECONDS = 30.0
DEFAULT_FETCH_LOG_KEEP_DAYS = 7.0


class RefreshState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class SeasonWindow:
    """Inclusive month-day window evaluated in the resort's local time.

    A window whose start is later in the year than its end wraps over New
    Year (Dec 10 - Apr 30). Bounds are (month, day) tuples, so Feb 29
    works as a bound in every year.
    """

    start: tuple[int, int] = (12, 10)
    end: tuple[int, int] = (4, 30)
    tz: tzinfo = timezone(timedelta(hours=9))

    def contains(self, now: datetime) -> bool:
        local = now.astimezone(self.tz)
        month_day = (local.month, local.day)
        if self.start <= self.end:
            return self.start <= month_day <= self.end
        return month_day >= self.start or month_day <= self.end

    def __str__(self) -> str:
        return f"{self.start[0]:02d}-{self.start[1]:02d} to {self.end[0]:02d}-{self.end[1]:02d}"


@dataclass(frozen=True)
class TriggerWindow:
    """Trigger every ``every_minutes`` from ``start`` through ``end`` inclusive."""

    start: dtime
    end: dtime
    every_minutes: int

    def matches(self, local: datetime) -> bool:
        minute = dtime(local.hour, local.minute)
        if not self.start <= minute <= self.end:
            return False
        elapsed = (local.hour * 60 + local.minute) - (self.start.hour * 60 + self.start.minute)
        return elapsed % self.every_minutes == 0


DEFAULT_TIMETABLE: tuple[TriggerWindow, ...] = (
    TriggerWindow(dtime(6, 0), dtime(9, 45), 15),
    TriggerWindow(dtime(10, 0), dtime(14, 30), 30),
    TriggerWindow(dtime(15, 0), dtime(16, 45), 15),
    TriggerWindow(dtime(17, 0), dtime(17, 0), 60),
)


@dataclass
class RefreshResult:
    """Result of a refresh operation."""

    total: int
    success: int
    failed: int
    skipped: int
    duration_ms: int
    skip_reason: Optional[str] = None

    @property
    def ran(self) -> bool:
        return self.skip_reason is None

    @property
    def success_rate(self) -> float:
        """Percentage of successful refreshes."""
        if self.total == 0:
            return 0.0
        return (self.success / self.total) * 100

    def __str__(self) -> str:
        if self.skip_reason:
            return f"Refresh skipped: {self.skip_reason}"
        return (
            f"Refresh complete: {self.success}/{self.total} successful, "
            f"{self.failed} failed, {self.skipped} skipped "
            f"({self.duration_ms}ms)"
        )


class RefreshScheduler:
    """Guarded, timetable-driven force refresh for a coordinator's subjects.

    State is ``idle`` or ``refreshing``. ``last_attempt_at`` is recorded on
    entering ``refreshing``, before any fetch starts, so a hanging fetch
    cannot let another trigger slip past the minimum-interval guard.
    Fetch failures are logged and never propagate out of ``trigger``.

    Args:
        coordinator: Cache coordinator to refresh
        season: Season window (resort local time)
        min_interval_minutes: Minimum time between two attempts
        timetable: Daily trigger windows (resort local time)
        tick_seconds: Ticker period
        fetch_log_keep_days: Age limit for fetch log rows, pruned once per local
            day after a refresh (None disables pruning)
        subject_ids: Subjects to refresh (default: all of the coordinator's)
        clock: Returns the current aware datetime
        name: Label for logs and the ticker thread
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        season: Optional[SeasonWindow] = None,
        min_interval_minutes: float = DEFAULT_MIN_INTERVAL_MINUTES,
        timetable: tuple[TriggerWindow, ...] = DEFAULT_TIMETABLE,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        fetch_log_keep_days: Optional[float] = DEFAULT_FETCH_LOG_KEEP_DAYS,
        subject_ids: Optional[list[str]] = None,
        clock: Callable[[], datetime] = utc_now,
        name: str = "refresh",
    ):
        self.coordinator = coordinator
        self.season = season or SeasonWindow()
        self.min_interval = timedelta(minutes=min_interval_minutes)
        self.timetable = timetable
        self.tick_seconds = tick_seconds
        self.fetch_log_keep_days = fetch_log_keep_days
        self.subject_ids = list(subject_ids or coordinator.subjects)
        self.clock = clock
        self.name = name

        self.state = RefreshState.IDLE
        self.last_attempt_at: Optional[datetime] = None
        self._last_slot: Optional[datetime] = None
        self._last_cleanup_date: Optional[date] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def trigger(self, now: Optional[datetime] = None, reason: str = "timetable") -> RefreshResult:
        """Attempt one guarded refresh of every subject.

        Args:
            now: Trigger time (default: clock)
            reason: Why the trigger fired, for logs

        Returns:
            RefreshResult; ``skip_reason`` is set when a guard blocked it
        """
        now = now or self.clock()
        with self._lock:
            skip_reason = self._guard(now)
            if skip_reason is None:
                self.last_attempt_at = now
                self.state = RefreshState.REFRESHING

        if skip_reason is not None:
            logger.info(f"[{self.name}] Skipping {reason} refresh: {skip_reason}")
            return RefreshResult(
                total=0, success=0, failed=0, skipped=len(self.subject_ids),
                duration_ms=0, skip_reason=skip_reason,
            )

        try:
            local = now.astimezone(self.season.tz)
            logger.info(f"[{self.name}] Running {reason} refresh at {local:%Y-%m-%d %H:%M} local")
            result = self._refresh_all()
            self._cleanup_fetch_log(now)
            return result
        finally:
            with self._lock:
                self.state = RefreshState.IDLE

    def _guard(self, now: datetime) -> Optional[str]:
        if self.state is RefreshState.REFRESHING:
            return "a refresh is already running"
        if not self.season.contains(now):
            return f"outside season ({self.season})"
        if self.last_attempt_at is not None and now - self.last_attempt_at < self.min_interval:
            return f"last attempt less than {self.min_interval} ago"
        return None

    def _refresh_all(self) -> RefreshResult:
        start_time = time.time()
        success = 0
        failed = 0

        for subject_id in self.subject_ids:
            try:
                reading = self.coordinator.force_refresh(subject_id)
            except Exception as e:
                logger.error(f"[{self.name}] {subject_id}: refresh failed - {e}")
                failed += 1
                continue

            if reading.stale:
                logger.warning(f"[{self.name}] {subject_id}: providers failed, kept stale data")
                failed += 1
            else:
                success += 1

        result = RefreshResult(
            total=len(self.subject_ids),
            success=success,
            failed=failed,
            skipped=0,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(f"[{self.name}] {result}")
        return result

    def _cleanup_fetch_log(self, now: datetime) -> None:
        """Prune old fetch log rows, at most once per resort-local day."""
        store = self.coordinator.store
        if store is None or self.fetch_log_keep_days is None:
            return
        today = now.astimezone(self.season.tz).date()
        if self._last_cleanup_date == today:
            return
        self._last_cleanup_date = today
        try:
            store.cleanup_old_fetch_logs(self.fetch_log_keep_days, now=now)
        except PersistenceWriteFailed as e:
            logger.warning(f"[{self.name}] Fetch log cleanup failed: {e}")

    def due_slot(self, now: datetime) -> Optional[datetime]:
        """The timetable minute ``now`` falls in, or None if no window matches."""
        local = now.astimezone(self.season.tz)
        if any(window.matches(local) for window in self.timetable):
            return local.replace(second=0, microsecond=0)
        return None

    def tick(self, now: Optional[datetime] = None) -> Optional[RefreshResult]:
        """Fire at most once per matching timetable minute."""
        now = now or self.clock()
        slot = self.due_slot(now)
        if slot is None or slot == self._last_slot:
            return None
        self._last_slot = slot
        return self.trigger(now, reason="timetable")

    def startup(self, now: Optional[datetime] = None) -> Optional[RefreshResult]:
        """Warm memory from the store; refresh at once on an in-season cold start."""
        now = now or self.clock()
        self.coordinator.warm_from_store()

        missing = [sid for sid in self.subject_ids if not self.coordinator.has_any_reading(sid)]
        if not missing:
            return None
        if not self.season.contains(now):
            logger.info(f"[{self.name}] No cached data, but outside season ({self.season})")
            return None

        logger.info(f"[{self.name}] No cached data for {', '.join(missing)} - running initial refresh")
        return self.trigger(now, reason="cold start")

    # -------------------------------------------------------------------------
    # Ticker thread
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the ticker thread (startup check first, then ticks)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"{self.name}-ticker", daemon=True)
        self._thread.start()
        logger.info(
            f"[{self.name}] Scheduler started (season {self.season}, "
            f"min interval {self.min_interval}, tick {self.tick_seconds}s)"
        )

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        try:
            self.startup()
        except Exception as e:
            logger.error(f"[{self.name}] Startup refresh failed - {e}")

        while not self._stop.wait(self.tick_seconds):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"[{self.name}] Tick failed - {e}")

    def status(self) -> dict:
        now = self.clock()
        return {
            "name": self.name,
            "state": self.state.value,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "min_interval_minutes": self.min_interval.total_seconds() / 60,
            "season": str(self.season),
            "in_season": self.season.contains(now),
            "running": self._thread is not None and self._thread.is_alive(),
        }


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------


def print_status(status: dict) -> None:
    """Print cache status in human-readable format."""
    print()
    print("=" * 60)
    print("Snow Status Cache Status")
    print("=" * 60)
    print(f"Database: {status['db_path']}")
    if status.get("store_error"):
        print(f"Store unavailable: {status['store_error']}")
    print(f"Stored snapshots: {status['snapshot_count']}")
    print(f"Fetch log entries: {status['fetch_count']} ({status['failed_fetch_count']} failed)")
    print()
    print("Subjects:")
    print("-" * 60)

    for subject in status["subjects"]:
        if subject["fetched_at"] is None:
            print(f"  {subject['subject_id']:<28} MISSING")
            continue
        state = "FRESH" if subject["is_fresh"] else "STALE"
        print(
            f"  {subject['subject_id']:<28} {state:<6} "
            f"{subject['provider_id']} @ {subject['fetched_at']}"
        )

    print("=" * 60)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for cache refresh."""
    parser = argparse.ArgumentParser(
        description="Refresh cached resort weather and lift status",
        epilog="""
Examples:
  python -m snowstatus.cache.refresh                  # Guarded refresh (season + interval)
  python -m snowstatus.cache.refresh --force          # Refresh now
  python -m snowstatus.cache.refresh --subject nozawa-onsen:lifts --force
  python -m snowstatus.cache.refresh --status         # Show status
  python -m snowstatus.cache.refresh --run            # Foreground ticker
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--status", action="store_true", help="Show current cache status")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Refresh now, bypassing the season and interval guards",
    )
    parser.add_argument(
        "--subject",
        action="append",
        default=None,
        help="Subject id to refresh (repeatable; default: all)",
    )
    parser.add_argument("--run", action="store_true", help="Run the refresh ticker in the foreground")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress output except errors")

    args = parser.parse_args(argv)

    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Imported here: services imports this module
    from snowstatus.config import load_settings
    from snowstatus.services import build_services

    services = build_services(load_settings())

    try:
        if args.status:
            print_status(services.status())
            return 0

        if args.run:
            services.start()
            try:
                while True:
                    time.sleep(3600)
            except KeyboardInterrupt:
                logger.info("Interrupted, stopping schedulers")
            return 0

        exit_code = 0
        triggered = []
        for subject_id in args.subject or services.subject_ids:
            coordinator = services.coordinator_for(subject_id)
            if args.force:
                try:
                    reading = coordinator.force_refresh(subject_id)
                except Exception as e:
                    logger.error(f"{subject_id}: refresh failed - {e}")
                    exit_code = 1
                    continue
                if reading.stale:
                    exit_code = 1
                logger.info(
                    f"{subject_id}: {reading.provider_id} "
                    f"({'stale' if reading.stale else reading.origin.value})"
                )
            else:
                scheduler = services.scheduler_for(subject_id)
                if scheduler in triggered:
                    continue
                triggered.append(scheduler)
                result = scheduler.trigger(reason="manual")
                if result.failed > 0:
                    exit_code = 1
        return exit_code

    except KeyError as e:
        logger.error(str(e))
        return 2

    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
