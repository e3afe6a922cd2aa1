"""
Remote sync client.

SyncSession owns the local world list and the change queue for one CLI
process. Mutations apply optimistically and are queued; a debounced flush
sends the whole queue as one batch and adopts the server's canonical list.

Queue layout: `in_flight` is the batch currently on the wire, `pending`
everything committed since. The cache always holds in_flight + pending, so
a crash mid-flush loses nothing. At most one flush runs at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import Enum

import httpx

from engine.kernel.actions import ActionResult
from engine.kernel.changes import WorldChange
from engine.kernel.reducer import apply_changes
from engine.kernel.types import World, now_iso

from enfield_cli.cache import LocalCache
from enfield_cli.client import WorldsClient

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.8
DEFAULT_PING_INTERVAL_SECONDS = 10.0


class SyncStatus(str, Enum):
    SAVED = "saved"
    SAVING = "saving"
    SYNCING = "syncing"
    OFFLINE = "offline"


Listener = Callable[["SyncSession"], None]


class SyncSession:
    """Optimistic world state plus a debounced, serialized flush loop."""

    def __init__(
        self,
        client: WorldsClient,
        cache: LocalCache,
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        online: bool = True,
        default_worlds: list[World] | None = None,
    ):
        self.client = client
        self.cache = cache
        self.debounce = debounce
        self.online = online
        self.default_worlds = list(default_worlds or [])

        self.worlds: list[World] = []
        self.pending: list[WorldChange] = []
        self.in_flight: list[WorldChange] = []
        self.status = SyncStatus.SAVED
        self.last_synced_at: str | None = None
        self.last_error: str | None = None

        self._lock = asyncio.Lock()
        self._timer: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # -- observation -------------------------------------------------------

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Call `callback(session)` after every state or status change."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        self._notify()

    @property
    def queued(self) -> list[WorldChange]:
        """Every change not yet acknowledged by the server, in order."""
        return [*self.in_flight, *self.pending]

    def _persist(self) -> None:
        self.cache.save(self.worlds, self.queued)

    # -- bootstrap ---------------------------------------------------------

    def load_cached(self) -> bool:
        """
        Adopt the cached world list and queue, if any. Synchronous so the
        caller can render immediately.
        """
        snapshot = self.cache.load()
        if snapshot is None:
            self.worlds = list(self.default_worlds)
            self._notify()
            return False

        self.worlds = snapshot.worlds
        self.pending = snapshot.pending_changes
        self._set_status(SyncStatus.OFFLINE if self.pending else SyncStatus.SAVED)
        return True

    async def refresh(self, had_cache: bool = True) -> bool:
        """
        Fetch the authoritative list and replay the local queue on top of it.

        On failure the current state is kept; without a usable cache the
        session falls back to the default worlds.
        """
        try:
            server_worlds = await self.client.fetch_worlds()
            worlds = apply_changes(server_worlds, self.queued)
        except httpx.HTTPError as e:
            logger.warning("sync: unable to load worlds from server: %s", e)
            self._keep_local(had_cache, e)
            return False
        except Exception as e:
            logger.exception("sync: unable to load worlds from server")
            self._keep_local(had_cache, e)
            return False

        self.worlds = worlds
        self.last_synced_at = now_iso()
        self.last_error = None
        self._persist()
        if not self.pending:
            self._set_status(SyncStatus.SAVED)
        elif self.online:
            self._set_status(SyncStatus.SAVING)
            self._schedule_flush()
        else:
            self._set_status(SyncStatus.OFFLINE)
        return True

    def _keep_local(self, had_cache: bool, error: Exception) -> None:
        self.last_error = str(error) or type(error).__name__
        if not had_cache or not self.worlds:
            self.worlds = list(self.default_worlds)
            self.pending = []
            self._persist()
        self._set_status(SyncStatus.OFFLINE if self.pending else SyncStatus.SAVED)

    async def start(self) -> None:
        had_cache = self.load_cached()
        await self.refresh(had_cache)

    # -- mutation ----------------------------------------------------------

    def commit(self, changes: list[WorldChange]) -> None:
        """
        Apply `changes` to the local list, queue them and persist.
        The flush is debounced; bursts coalesce into one request.
        """
        if not changes:
            return
        self.worlds = apply_changes(self.worlds, changes)
        self.pending.extend(changes)
        self._persist()
        if not self.online:
            self._set_status(SyncStatus.OFFLINE)
        elif self.in_flight:
            self._notify()
        else:
            self._set_status(SyncStatus.SAVING)
            self._schedule_flush()

    def apply(self, result: ActionResult) -> ActionResult:
        """Commit an action's changes. Returns the result for chaining."""
        self.commit(result.changes)
        return result

    # -- flushing ----------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_flush(self, delay: float | None = None) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce if delay is None else delay, self._start_flush)

    def _start_flush(self) -> None:
        self._timer = None
        self._flush_task = asyncio.ensure_future(self.flush())

    async def flush(self) -> bool:
        """
        Send the queue now. Returns True when the server acknowledged it
        (or there was nothing to send).

        On failure the batch goes back to the front of the queue and the
        session settles to offline.
        """
        self._cancel_timer()
        async with self._lock:
            if not self.pending:
                self._set_status(SyncStatus.SAVED)
                return True
            if not self.online:
                self._set_status(SyncStatus.OFFLINE)
                return False

            batch, self.pending = self.pending, []
            self.in_flight = batch
            self._set_status(SyncStatus.SYNCING)

            try:
                server_worlds = await self.client.push_changes(batch)
                worlds = apply_changes(server_worlds, self.pending)
            except httpx.HTTPError as e:
                logger.warning("sync: flush of %d change(s) failed: %s", len(batch), e)
                self._requeue(batch, e)
                return False
            except Exception as e:
                logger.exception("sync: flush of %d change(s) failed", len(batch))
                self._requeue(batch, e)
                return False

            self.in_flight = []
            self.worlds = worlds
            self.last_synced_at = now_iso()
            self.last_error = None
            self._persist()
            logger.info("sync: flushed %d change(s), %d still pending", len(batch), len(self.pending))

            if self.pending:
                self._set_status(SyncStatus.SAVING)
                self._schedule_flush()
            else:
                self._set_status(SyncStatus.SAVED)
            return True

    def _requeue(self, batch: list[WorldChange], error: Exception) -> None:
        self.in_flight = []
        self.pending = [*batch, *self.pending]
        self.last_error = str(error) or type(error).__name__
        self._persist()
        self._set_status(SyncStatus.OFFLINE)

    def set_online(self, online: bool) -> asyncio.Task | None:
        """
        Record a connectivity change. Coming back online with a queue (or
        still holding one after a failed flush) flushes immediately.
        """
        changed = online != self.online
        self.online = online

        if not online:
            self._cancel_timer()
            if changed:
                self._set_status(SyncStatus.OFFLINE)
            return None

        if self.pending and (changed or self.status is SyncStatus.OFFLINE) and not self.in_flight:
            self._cancel_timer()
            self._flush_task = asyncio.ensure_future(self.flush())
            return self._flush_task
        if changed and not self.queued:
            self._set_status(SyncStatus.SAVED)
        return None

    async def close(self, flush: bool = True) -> None:
        """
        Cancel the debounce timer and listeners. An in-flight flush is
        awaited, never aborted; with `flush`, what is left is sent once more.
        """
        self._cancel_timer()
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        if flush and self.pending and self.online:
            await self.flush()
        self._listeners.clear()


class ConnectivityMonitor:
    """Polls /health and reports transitions to the session."""

    def __init__(self, client: WorldsClient, session: SyncSession, interval: float = DEFAULT_PING_INTERVAL_SECONDS):
        self.client = client
        self.session = session
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def check(self) -> bool:
        online = await self.client.ping()
        task = self.session.set_online(online)
        if task is not None:
            await task
        return online

    async def run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
