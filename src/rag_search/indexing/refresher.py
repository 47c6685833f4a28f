"""Background reload of the store into fresh index snapshots."""

import asyncio
import time
from contextlib import suppress
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

import structlog

from rag_search.errors import RagSearchError
from rag_search.indexing.snapshot import IndexSnapshot
from rag_search.observability import (
    SNAPSHOT_GENERATION,
    SNAPSHOT_REFRESH_TIME,
    SNAPSHOT_REFRESHES,
)
from rag_search.storage.repository import DocumentStore

logger = structlog.get_logger()


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"


class SnapshotRefresher:
    """
    Owns the "current snapshot" reference.

    A single long-lived task waits on a request queue with the refresh
    interval as timeout. Every wake-up drains the queue, so any number of
    pending requests are served by one load; a request that arrives while
    a load is running waits for the next one. The new snapshot is built
    completely before it replaces the old one in a single assignment, and
    a failed load leaves the old snapshot serving.

    Flow:
    1. Wait for a request or the interval timer
    2. On timer wake-ups, run the maintenance hook (embedding backfill)
    3. Load the store and build a snapshot off the event loop
    4. Publish it and resolve every waiting request with its generation
    """

    def __init__(
        self,
        store: DocumentStore,
        interval_seconds: float = 300.0,
        on_tick: Callable[[], Awaitable[object]] | None = None,
    ):
        """
        Initialize the refresher.

        Args:
            store: Authoritative document/embedding store
            interval_seconds: Time between scheduled reloads
            on_tick: Coroutine run before each scheduled (timer) reload
        """
        self.store = store
        self.interval_seconds = interval_seconds
        self.on_tick = on_tick

        self.state = RefreshState.IDLE
        self.last_error: str | None = None
        self.last_refresh_at: datetime | None = None

        self._current = IndexSnapshot.empty()
        self._requests: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None

    @property
    def current(self) -> IndexSnapshot:
        """The snapshot queries should capture, once, at their start."""
        return self._current

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Load the first snapshot, then start the background loop."""
        if self.is_running:
            return
        self._requests = asyncio.Queue()
        await self._load([])
        self._task = asyncio.create_task(self._run(), name="snapshot-refresher")
        logger.info("refresher_started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Cancel the loop; pending requests are cancelled too."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

        while self._requests is not None and not self._requests.empty():
            self._requests.get_nowait().cancel()
        logger.info("refresher_stopped")

    def trigger(self) -> asyncio.Future:
        """
        Ask for an out-of-band reload without waiting for it.

        Returns:
            Future resolving to the generation of the snapshot that served
            the request (or raising the load error)
        """
        if not self.is_running:
            raise RuntimeError("Snapshot refresher is not running")
        future = asyncio.get_running_loop().create_future()
        self._requests.put_nowait(future)
        return future

    async def refresh(self) -> int:
        """Request a reload and wait until a snapshot including it is published."""
        return await self.trigger()

    async def _run(self):
        while True:
            waiters: list[asyncio.Future] = []
            try:
                waiters.append(
                    await asyncio.wait_for(self._requests.get(), timeout=self.interval_seconds)
                )
            except asyncio.TimeoutError:
                await self._maintain()

            # Coalesce everything queued so far into this load
            while not self._requests.empty():
                waiters.append(self._requests.get_nowait())

            await self._load(waiters)

    async def _maintain(self):
        if self.on_tick is None:
            return
        try:
            await self.on_tick()
        except Exception as e:
            # The reload below still runs; the loop must outlive any hook failure
            logger.warning("refresh_maintenance_failed", error=_describe(e))

    async def _load(self, waiters: list[asyncio.Future]):
        self.state = RefreshState.REFRESHING
        start_time = time.perf_counter()

        try:
            state = await self.store.load()
            snapshot = await asyncio.to_thread(IndexSnapshot.build, state)
        except Exception as e:
            self.state = RefreshState.FAILED
            self.last_error = _describe(e)
            SNAPSHOT_REFRESHES.labels(status="failed").inc()
            logger.error(
                "snapshot_refresh_failed",
                error=self.last_error,
                serving_generation=self._current.generation,
            )
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(e)
            return

        previous = self._current
        self._current = snapshot
        self.state = RefreshState.IDLE
        self.last_error = None
        self.last_refresh_at = snapshot.loaded_at

        SNAPSHOT_REFRESHES.labels(status="success").inc()
        SNAPSHOT_REFRESH_TIME.observe(time.perf_counter() - start_time)
        SNAPSHOT_GENERATION.set(snapshot.generation)
        logger.info(
            "snapshot_swapped",
            previous_generation=previous.generation,
            generation=snapshot.generation,
            documents=snapshot.document_count,
            embeddings=snapshot.embedding_count,
        )

        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(snapshot.generation)


def _describe(error: Exception) -> str:
    if isinstance(error, RagSearchError):
        return str(error)
    return f"{type(error).__name__}: {error}"
