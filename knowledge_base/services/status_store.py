"""Processing-status persistence with a write-through cache and retention sweep.

Every status write lands in the in-memory cache and in the object store at
``processing-status/<processing_id>.json``, so a poller served by another
process can still read it.  Terminal statuses are removed from both once
they are older than the retention window (10 minutes by default).

The ingestion coordinator is the only writer; the sweeper is the only
deleter.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog
from pydantic import ValidationError

from knowledge_base.interfaces.cache_provider import ICacheProvider
from knowledge_base.interfaces.object_store import IObjectStore
from knowledge_base.models.knowledge import ProcessingStatus
from knowledge_base.utils.errors import KnowledgeBaseError

logger = structlog.get_logger(logger_name=__name__)

STATUS_PREFIX = "processing-status/"


def status_key(processing_id: str) -> str:
    return f"{STATUS_PREFIX}{processing_id}.json"


class ProcessingStatusStore:
    """Write-through store for :class:`ProcessingStatus` snapshots.

    Parameters
    ----------
    cache:
        Fast in-process lookup keyed by processing id.
    object_store:
        Durable storage shared across processes.
    retention_seconds:
        How long a terminal status stays readable.
    """

    def __init__(
        self,
        cache: ICacheProvider,
        object_store: IObjectStore,
        retention_seconds: int = 600,
    ) -> None:
        self._cache = cache
        self._store = object_store
        self._retention = timedelta(seconds=retention_seconds)

    @property
    def retention_seconds(self) -> float:
        return self._retention.total_seconds()

    async def save(self, status: ProcessingStatus) -> None:
        """Cache *status* and persist it durably.

        A failed durable write is logged, not raised: the job keeps running
        and same-process pollers still see the cached copy.
        """
        await self._cache.set(status.id, status)
        try:
            await self._store.put(
                status_key(status.id),
                status.model_dump_json().encode("utf-8"),
                content_type="application/json",
            )
        except KnowledgeBaseError as exc:
            logger.warning(
                "status_persist_failed",
                processing_id=status.id,
                state=status.state.value,
                error=str(exc),
            )

    async def get(self, processing_id: str) -> ProcessingStatus | None:
        cached = await self._cache.get(processing_id)
        if cached is not None:
            return cached

        data = await self._store.get(status_key(processing_id))
        if data is None:
            return None
        try:
            status = ProcessingStatus.model_validate_json(data)
        except ValidationError as exc:
            logger.warning("status_parse_failed", processing_id=processing_id, error=str(exc))
            return None
        if self._expired(status, datetime.now(timezone.utc)):
            return None
        await self._cache.set(processing_id, status)
        return status

    async def delete(self, processing_id: str) -> None:
        await self._cache.delete(processing_id)
        await self._store.delete(status_key(processing_id))

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete terminal statuses older than the retention window.

        Returns the number of statuses removed.
        """
        now = now or datetime.now(timezone.utc)
        removed = 0

        for key in await self._store.list(STATUS_PREFIX):
            data = await self._store.get(key)
            if data is None:
                continue
            try:
                status = ProcessingStatus.model_validate_json(data)
            except ValidationError:
                logger.warning("status_parse_failed", key=key)
                continue
            if self._expired(status, now):
                await self.delete(status.id)
                removed += 1

        # Cached entries whose durable copy is already gone.
        for processing_id in await self._cache.keys():
            cached = await self._cache.get(processing_id)
            if cached is not None and self._expired(cached, now):
                await self._cache.delete(processing_id)

        if removed:
            logger.info("status_sweep_complete", removed=removed)
        return removed

    def _expired(self, status: ProcessingStatus, now: datetime) -> bool:
        if not status.state.is_terminal or status.completed_at is None:
            return False
        return status.completed_at + self._retention <= now


class StatusRetentionSweeper:
    """Background task that periodically calls :meth:`ProcessingStatusStore.sweep`."""

    def __init__(self, store: ProcessingStatusStore, interval_seconds: float = 60.0) -> None:
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="status-retention-sweeper")
        logger.info("status_sweeper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("status_sweeper_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._store.sweep()
            except KnowledgeBaseError as exc:
                # Storage hiccup; the next tick retries.
                logger.warning("status_sweep_failed", error=str(exc))
