"""Three-tier cache: process memory -> snapshot store -> provider chain.

One CacheCoordinator serves one kind of data (weather or lifts) for any
number of subjects. It owns the memory slots: a dict of subject id to the
current Reading, replaced by reference swap so a reader never sees a
half-built Reading.

Usage:
    coordinator = CacheCoordinator([subject], chain, store=db)
    reading = coordinator.get("nozawa-onsen:weather")
"""

import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from snowstatus.cache.database import SnapshotDatabase
from snowstatus.cache.models import (
    CacheStatus,
    Origin,
    Payload,
    Reading,
    Subject,
    utc_now,
)
from snowstatus.errors import PersistenceReadFailed, PersistenceWriteFailed
from snowstatus.providers.chain import Attempt, ProviderChain

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 10.0

Summarizer = Callable[[Payload, datetime], dict]


class CacheCoordinator:
    """Get-or-fetch over memory, the snapshot store and a provider chain.

    The TTL applies to both the memory and the store tier. Only
    ``AllSourcesExhausted`` escapes ``get`` and ``force_refresh``, and only
    when there is no Reading of any age to degrade to.

    Args:
        subjects: Subjects this coordinator serves
        chain: Provider chain producing normalized payloads
        store: Snapshot store (None disables the persistent tier)
        summarizer: Computes the summary stored with each new Reading
        ttl_minutes: Freshness window for memory and store
        persist_enabled: Write new Readings to the store
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        subjects: Iterable[Subject],
        chain: ProviderChain,
        store: Optional[SnapshotDatabase] = None,
        summarizer: Optional[Summarizer] = None,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        persist_enabled: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.subjects = {subject.subject_id: subject for subject in subjects}
        self.chain = chain
        self.store = store
        self.summarizer = summarizer
        self.ttl_minutes = ttl_minutes
        self.ttl = timedelta(minutes=ttl_minutes)
        self.persist_enabled = persist_enabled
        self.clock = clock

        self._memory: dict[str, Reading] = {}
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    def subject(self, subject_id: str) -> Subject:
        try:
            return self.subjects[subject_id]
        except KeyError:
            raise KeyError(f"Unknown subject: {subject_id}")

    # -------------------------------------------------------------------------
    # Read paths
    # -------------------------------------------------------------------------

    def get(self, subject_id: str) -> Reading:
        """Return a fresh Reading, fetching only when both cache tiers are stale.

        Args:
            subject_id: Subject to read

        Returns:
            Reading tagged with its origin and age; ``stale=True`` when no
            provider succeeded and an older Reading was returned instead

        Raises:
            AllSourcesExhausted: No provider succeeded and nothing is cached
            KeyError: Unknown subject
        """
        subject = self.subject(subject_id)
        now = self.clock()

        cached = self._memory.get(subject_id)
        if cached is not None and cached.is_fresh(now):
            return cached.tagged(Origin.MEMORY, now)

        stored = self._load(subject_id)
        if stored is not None and stored.is_fresh(now):
            self._swap(stored)
            logger.debug(f"Serving {subject_id} from snapshot store")
            return stored.tagged(Origin.PERSISTENT_STORE, now)

        return self._refresh(subject)

    def force_refresh(self, subject_id: str) -> Reading:
        """Fetch from the provider chain regardless of cache freshness.

        Raises:
            AllSourcesExhausted: No provider succeeded and nothing is cached
        """
        return self._refresh(self.subject(subject_id))

    # -------------------------------------------------------------------------
    # Fetch path
    # -------------------------------------------------------------------------

    def _refresh(self, subject: Subject) -> Reading:
        """Run one fetch per subject at a time; concurrent callers share it."""
        subject_id = subject.subject_id
        with self._lock:
            future = self._inflight.get(subject_id)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[subject_id] = future

        if not owner:
            logger.info(f"Joining in-flight fetch for {subject_id}")
            return future.result()

        try:
            reading = self._fetch(subject)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(reading)
            return reading
        finally:
            with self._lock:
                self._inflight.pop(subject_id, None)

    def _fetch(self, subject: Subject) -> Reading:
        subject_id = subject.subject_id
        now = self.clock()
        result = self.chain.fetch_result(subject, now)
        self._log_attempts(subject_id, result.attempts)

        if result.ok:
            reading = Reading(
                subject_id=subject_id,
                fetched_at=now,
                expires_at=now + self.ttl,
                origin=result.origin,
                payload=result.payload,
                provider_id=result.provider_id,
                fallback=result.fallback,
                fallback_reason=result.fallback_reason,
                summary=self._summarize(subject_id, result.payload, now),
            )
            self._persist(reading)
            self._swap(reading)
            logger.info(
                f"Fetched {subject_id} from {reading.provider_id} "
                f"({reading.origin.value}{', fallback' if reading.fallback else ''})"
            )
            return reading

        return self._degrade(subject_id, result.error, now)

    def _degrade(self, subject_id: str, error, now: datetime) -> Reading:
        """Newest Reading of any age, tagged stale; raise if there is none."""
        candidates = []
        cached = self._memory.get(subject_id)
        if cached is not None:
            candidates.append((cached, Origin.MEMORY))
        stored = self._load(subject_id)
        if stored is not None:
            candidates.append((stored, Origin.PERSISTENT_STORE))

        if not candidates:
            logger.error(f"No data available for {subject_id}: {error}")
            raise error

        reading, origin = max(candidates, key=lambda c: c[0].fetched_at)
        self._swap(reading)
        logger.warning(
            f"Returning stale {subject_id} from {origin.value} "
            f"(fetched {reading.fetched_at.isoformat()}): {error}"
        )
        return reading.tagged(origin, now, stale=True, degradation_reason=str(error))

    def _summarize(self, subject_id: str, payload: Payload, now: datetime) -> dict:
        if self.summarizer is None:
            return {}
        try:
            return self.summarizer(payload, now)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Summary failed for {subject_id}: {e}")
            return {}

    def _swap(self, reading: Reading) -> None:
        """Install a Reading in its memory slot unless a newer one is there."""
        with self._lock:
            current = self._memory.get(reading.subject_id)
            if current is None or current.fetched_at <= reading.fetched_at:
                self._memory[reading.subject_id] = reading

    # -------------------------------------------------------------------------
    # Store access (failures never reach the caller)
    # -------------------------------------------------------------------------

    def _load(self, subject_id: str) -> Optional[Reading]:
        if self.store is None:
            return None
        try:
            return self.store.load(subject_id)
        except PersistenceReadFailed as e:
            logger.warning(f"Snapshot store unavailable, treating {subject_id} as absent: {e}")
            return None

    def _persist(self, reading: Reading) -> None:
        if self.store is None or not self.persist_enabled:
            return
        try:
            self.store.upsert(reading)
        except PersistenceWriteFailed as e:
            logger.error(f"Snapshot store write failed for {reading.subject_id}: {e}")

    def _log_attempts(self, subject_id: str, attempts: list[Attempt]) -> None:
        if self.store is None:
            return
        for attempt in attempts:
            try:
                self.store.log_fetch(
                    subject_id,
                    attempt.provider_id,
                    "success" if attempt.ok else "error",
                    attempt.duration_ms,
                    attempt.error,
                )
            except PersistenceWriteFailed as e:
                logger.warning(f"Could not record fetch attempt: {e}")

    # -------------------------------------------------------------------------
    # Maintenance and status
    # -------------------------------------------------------------------------

    def cache_status(self, subject_id: str) -> CacheStatus:
        """Memory-slot view of one subject, for monitoring."""
        self.subject(subject_id)
        now = self.clock()
        reading = self._memory.get(subject_id)
        return CacheStatus(
            subject_id=subject_id,
            has_memory_data=reading is not None,
            memory_age_seconds=reading.age_at(now) if reading is not None else None,
            is_fresh=reading is not None and reading.is_fresh(now),
            configured_ttl_minutes=self.ttl_minutes,
        )

    def statuses(self) -> list[CacheStatus]:
        return [self.cache_status(subject_id) for subject_id in self.subjects]

    def stored_reading(self, subject_id: str) -> Optional[Reading]:
        """Stored Reading of any age, or None if absent or the store is down."""
        return self._load(subject_id)

    def has_any_reading(self, subject_id: str) -> bool:
        """True if a Reading of any age exists in memory or the store."""
        return self._memory.get(subject_id) is not None or self._load(subject_id) is not None

    def warm_from_store(self) -> int:
        """Load stored Readings of any age into empty memory slots.

        Returns:
            Number of subjects loaded
        """
        loaded = 0
        for subject_id in self.subjects:
            stored = self._load(subject_id)
            if stored is not None:
                self._swap(stored)
                loaded += 1
                logger.info(
                    f"Loaded {subject_id} from snapshot store "
                    f"(fetched {stored.fetched_at.isoformat()})"
                )
        return loaded

    def clear(self, subject_id: Optional[str] = None, persistent: bool = False) -> None:
        """Drop memory slots (and stored rows if ``persistent``).

        Args:
            subject_id: Subject to clear, or None for every subject
            persistent: Also delete the snapshot store row
        """
        subject_ids = [subject_id] if subject_id else list(self.subjects)
        with self._lock:
            for sid in subject_ids:
                self._memory.pop(sid, None)
        if persistent and self.store is not None:
            for sid in subject_ids:
                self.store.delete(sid)
        logger.info(f"Cleared cache for {', '.join(subject_ids)} (persistent={persistent})")
