"""Multi-tenant Spotify playback watcher.

One ``WatcherService`` per process polls every connected host's playback on a
fixed interval, reconciles newly playing tracks with approved requests, and
fans out ``playback-update`` events on that host's channel only. The per-host
snapshots below are written by this object alone.

Per host, per tick:
    fetch playback -> decide on queue fetch -> reconcile on track change
    -> enrich queue + emit if anything changed -> store snapshots

A failure for one host never affects another host in the same tick.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from party_playlist.config import settings
from party_playlist.schemas.playback import PlaybackSnapshot
from party_playlist.services import change_detector
from party_playlist.services.publisher import PLAYBACK_UPDATE, Publisher, publish_safely
from party_playlist.services.reconciler import RequestReconciler
from party_playlist.services.request_store import RequestRecord, RequestStore
from party_playlist.services.spotify_client import PlaybackSource
from party_playlist.services.stats import StatsAggregator

logger = logging.getLogger(__name__)


@dataclass
class TenantCheck:
    """What happened for one host during one tick."""

    tenant_id: str
    skipped: bool = False
    queue_fetched: bool = False
    track_changed: bool = False
    fulfilled_request_id: Optional[str] = None
    emitted: bool = False


def format_current_track(playback: Optional[PlaybackSnapshot]) -> Optional[dict[str, Any]]:
    if playback is None or playback.item is None:
        return None
    item = playback.item
    return {
        "id": item.id,
        "name": item.name,
        "uri": item.uri,
        "artists": item.artist_names,
        "album": item.album.model_dump() if item.album else None,
        "duration_ms": item.duration_ms,
    }


class WatcherService:

    def __init__(
        self,
        source: PlaybackSource,
        store: RequestStore,
        publisher: Publisher,
        clock: Callable[[], float] = time.monotonic,
        stats_interval_ms: Optional[int] = None,
    ):
        self._source = source
        self._publisher = publisher
        self._reconciler = RequestReconciler(store)
        self._stats = StatsAggregator(store, publisher)
        self._clock = clock

        self._interval_ms = settings.WATCHER_INTERVAL_MS
        self._queue_interval_ms = settings.WATCHER_QUEUE_INTERVAL_MS
        self._stats_interval_ms = stats_interval_ms if stats_interval_ms is not None else settings.WATCHER_STATS_INTERVAL_MS

        # tenant_id -> last known state
        self._last_playback: dict[str, Optional[PlaybackSnapshot]] = {}
        self._last_queue: dict[str, Optional[list[dict[str, Any]]]] = {}
        self._last_queue_check: dict[str, float] = {}
        self._last_stats_run: Optional[float] = None

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._draining: set[asyncio.Task] = set()
        self._sweep_lock: Optional[asyncio.Lock] = None
        self._sweep_lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._tick_count = 0
        self._last_tick_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None

    @property
    def stats(self) -> StatsAggregator:
        return self._stats

    async def start(self, interval_ms: Optional[int] = None, queue_interval_ms: Optional[int] = None) -> None:
        """Run one full check now, then keep checking every ``interval_ms``."""
        interval_ms = settings.WATCHER_INTERVAL_MS if interval_ms is None else interval_ms
        queue_interval_ms = settings.WATCHER_QUEUE_INTERVAL_MS if queue_interval_ms is None else queue_interval_ms
        if interval_ms <= 0 or queue_interval_ms <= 0:
            raise ValueError("Watcher intervals must be positive")
        self.stop()
        self._interval_ms = interval_ms
        self._queue_interval_ms = queue_interval_ms
        logger.info(
            "Starting Spotify watcher: %dms playback interval, %dms queue interval",
            self._interval_ms, self._queue_interval_ms,
        )

        try:
            await self.check()
        except Exception:
            logger.exception("Initial Spotify watcher check failed")

        # start() may have been called again while the first check was awaiting.
        self._disarm()
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._task = asyncio.create_task(self._run(stop_event, self._interval_ms / 1000), name="spotify-watcher")

    def stop(self) -> bool:
        """Disarm the timer. A tick already in flight is allowed to finish."""
        was_running = self._disarm()
        if was_running:
            logger.info("Spotify watcher stopped")
        return was_running

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "interval": self._interval_ms if self.running else None,
            "queueInterval": self._queue_interval_ms if self.running else None,
            "tickCount": self._tick_count,
            "lastTickAt": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "tenants": sorted(self._last_playback),
        }

    async def shutdown(self, timeout: float = 5.0) -> None:
        self.stop()
        if self._draining:
            await asyncio.wait(set(self._draining), timeout=timeout)

    def _disarm(self) -> bool:
        task, stop_event = self._task, self._stop_event
        self._task = None
        self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if task is not None and not task.done():
            self._draining.add(task)
            task.add_done_callback(self._draining.discard)
        return task is not None

    async def _run(self, stop_event: asyncio.Event, interval_s: float) -> None:
        # The next tick is only scheduled after the previous sweep has finished.
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.check()
            except Exception:
                logger.exception("Spotify watcher tick failed; retrying next tick")

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._sweep_lock is None or self._sweep_lock_loop is not loop:
            self._sweep_lock = asyncio.Lock()
            self._sweep_lock_loop = loop
        return self._sweep_lock

    async def check(self) -> list[TenantCheck]:
        """One full sweep over every connected host.

        Sweeps never overlap: a manual check, or the first check of a restart,
        waits for the sweep already in flight and then compares against the
        snapshots it stored. Raises only if the host enumeration itself fails.
        """
        async with self._lock():
            return await self._sweep()

    async def _sweep(self) -> list[TenantCheck]:
        tenant_ids = await self._source.list_connected_tenants()
        self._tick_count += 1
        self._last_tick_at = datetime.now(timezone.utc)
        if not tenant_ids:
            logger.debug("No hosts with Spotify connections")
            return []

        logger.debug("Spotify watcher: checking %d host(s)", len(tenant_ids))
        results = await asyncio.gather(*(self.check_tenant(t) for t in tenant_ids))

        now = self._clock()
        if self._last_stats_run is None or (now - self._last_stats_run) * 1000 >= self._stats_interval_ms:
            self._last_stats_run = now
            await asyncio.gather(*(self._refresh_stats(r) for r in results))
        return list(results)

    async def _refresh_stats(self, result: TenantCheck) -> None:
        try:
            await self._stats.refresh(result.tenant_id, spotify_connected=not result.skipped)
        except Exception:
            logger.exception("[%s] Stats refresh failed", result.tenant_id)

    async def check_tenant(self, tenant_id: str) -> TenantCheck:
        result = TenantCheck(tenant_id=tenant_id)
        try:
            await self._check_tenant(tenant_id, result)
        except Exception:
            logger.exception("[%s] Spotify watcher error", tenant_id)
            result.skipped = True
        return result

    async def _check_tenant(self, tenant_id: str, result: TenantCheck) -> None:
        if not await self._source.is_connected(tenant_id):
            logger.debug("[%s] Not connected, skipping", tenant_id)
            result.skipped = True
            return

        try:
            current = await self._source.get_current_playback(tenant_id)
        except Exception as exc:
            logger.warning("[%s] Playback fetch failed, skipping this tick: %s", tenant_id, exc)
            result.skipped = True
            return

        previous = self._last_playback.get(tenant_id)
        previous_queue = self._last_queue.get(tenant_id)
        result.track_changed = change_detector.track_changed(current, previous)

        queue_items = previous_queue
        now = self._clock()
        last_queue_check = self._last_queue_check.get(tenant_id)
        queue_due = last_queue_check is None or (now - last_queue_check) * 1000 >= self._queue_interval_ms
        if queue_due or result.track_changed:
            try:
                queue = await self._source.get_queue(tenant_id)
                queue_items = list(queue.queue) if queue is not None else []
                self._last_queue_check[tenant_id] = now
                result.queue_fetched = True
            except Exception as exc:
                logger.warning("[%s] Queue fetch failed, reusing previous queue: %s", tenant_id, exc)

        if result.track_changed and current is not None and current.item is not None:
            try:
                fulfilled = await self._reconciler.find_fulfillable_request(tenant_id, current.item.uri)
                if fulfilled is not None:
                    result.fulfilled_request_id = fulfilled.request_id
            except Exception:
                logger.exception("[%s] Auto-fulfillment failed", tenant_id)

        playback_changed = change_detector.has_meaningful_change(current, previous)
        queue_changed = change_detector.queue_changed(queue_items, previous_queue)
        if playback_changed or queue_changed:
            result.emitted = await self._emit_playback(tenant_id, current, queue_items or [])
        else:
            logger.debug("[%s] No meaningful changes", tenant_id)

        self._last_playback[tenant_id] = current
        self._last_queue[tenant_id] = queue_items

    async def _emit_playback(
        self,
        tenant_id: str,
        current: Optional[PlaybackSnapshot],
        queue_items: list[dict[str, Any]],
    ) -> bool:
        approved: list[RequestRecord] = []
        try:
            approved = await self._reconciler.approved_requests(tenant_id)
        except Exception:
            logger.exception("[%s] Could not load approved requests for queue enrichment", tenant_id)
        enhanced_queue = await self._reconciler.enrich_queue_with_requesters(tenant_id, queue_items, approved)

        payload = {
            "current_track": format_current_track(current),
            "queue": enhanced_queue,
            "is_playing": bool(current and current.is_playing),
            "progress_ms": (current.progress_ms or 0) if current else 0,
            "device": current.device.model_dump() if current and current.device else None,
            "timestamp": int(time.time() * 1000),
            "userId": tenant_id,
        }
        logger.info(
            "[%s] Playback update: %s (playing=%s, %d queued)",
            tenant_id,
            payload["current_track"]["name"] if payload["current_track"] else None,
            payload["is_playing"],
            len(enhanced_queue),
        )
        return await publish_safely(self._publisher, tenant_id, PLAYBACK_UPDATE, payload)

    def forget_tenant(self, tenant_id: str) -> None:
        """Drop cached state for a host (e.g. after a Spotify reset)."""
        self._last_playback.pop(tenant_id, None)
        self._last_queue.pop(tenant_id, None)
        self._last_queue_check.pop(tenant_id, None)
        self._stats.forget(tenant_id)
