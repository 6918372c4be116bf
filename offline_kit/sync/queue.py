"""
A durable, retryable work queue for operations that must eventually reach a
remote system.
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from pydantic import ValidationError

from offline_kit.models.config import SyncQueueOptions
from offline_kit.models.records import (
    QueuedOperation,
    SyncResult,
    SyncStatus,
)
from offline_kit.storage.base import StorageAdapter
from offline_kit.utils.duration import now_ms

from .connectivity import ConnectivityProvider, ManualConnectivity
from .events import EventEmitter, SyncEvent, SyncEventListener, SyncEventType

log = logging.getLogger(__name__)

SyncHandler = Callable[[QueuedOperation], Awaitable[None] | None]


class SyncQueue:
    """
    Persists operations and dispatches them to handlers registered per type.

    Lifecycle per operation::

        pending -> syncing -> synced (record deleted)
                      |
                      +-> pending  (handler failed, attempts < max_retries)
                      +-> failed   (handler failed, attempts >= max_retries)
        failed --retry()--> pending (attempts reset)

    Retries are paced by the caller: a failed attempt is picked up again by the
    next sync() pass, whether explicit, triggered by enqueue() or by a
    connectivity transition.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        options: SyncQueueOptions | None = None,
        connectivity: ConnectivityProvider | None = None,
        prefix: str = "sync:",
        clock: Callable[[], int] = now_ms,
        **overrides: Any,
    ):
        """
        Args:
            storage: The adapter holding the queued records.
            options: Dispatch and retry policy.
            connectivity: Source of online/offline transitions. Defaults to an
                always-online ManualConnectivity.
            prefix: Key prefix isolating the queue from other adapter owners.
            clock: Returns the current time in epoch milliseconds.
            **overrides: Individual SyncQueueOptions fields, e.g. ``concurrency=2``.
        """
        base = options or SyncQueueOptions()
        self.options = (
            SyncQueueOptions(**{**base.model_dump(), **overrides}) if overrides else base
        )
        self.storage = storage
        self.prefix = prefix
        self.connectivity = connectivity or ManualConnectivity(online=True)
        self._clock = clock
        self._handlers: dict[str, SyncHandler] = {}
        self._events = EventEmitter()
        self._online = self.connectivity.is_online()
        self._syncing = False
        self._lock = asyncio.Lock()
        self._in_flight: set[str] = set()
        self._background: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sync_requested = False
        self._unsubscribe_connectivity = self.connectivity.subscribe(
            self._on_connectivity_change
        )

    # ------------------------------------------------------------------
    # Registration and events
    # ------------------------------------------------------------------

    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def register_handler(self, type: str, handler: SyncHandler) -> None:
        """Registers the handler that delivers operations of the given type."""
        self._handlers[type] = handler

    def unregister_handler(self, type: str) -> None:
        self._handlers.pop(type, None)

    def on(self, listener: SyncEventListener) -> Callable[[], None]:
        """Adds an event listener and returns a function that removes it."""
        return self._events.on(listener)

    def _emit(
        self, event_type: SyncEventType, operation: QueuedOperation | None = None
    ) -> None:
        snapshot = operation.model_copy() if operation is not None else None
        self._events.emit(SyncEvent(type=event_type, operation=snapshot))

    def _on_connectivity_change(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        if online:
            self._emit(SyncEventType.ONLINE)
            if self.options.auto_sync:
                self._schedule_sync()
        else:
            self._emit(SyncEventType.OFFLINE)

    def _remember_loop(self) -> None:
        with suppress(RuntimeError):
            self._loop = asyncio.get_running_loop()

    def _schedule_sync(self) -> None:
        """
        Starts a supervised background sync pass.

        Safe to call from any thread. A signal arriving off the queue's loop is
        handed over with call_soon_threadsafe; when no loop is running at all the
        pass is deferred to the next enqueue(), sync() or wait_background().
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            loop = self._loop
            if loop is not None and loop.is_running() and not loop.is_closed():
                loop.call_soon_threadsafe(self._start_background_sync)
                return
            self._sync_requested = True
            log.debug("No running event loop, automatic sync deferred.")
            return
        self._remember_loop()
        self._start_background_sync()

    def _start_background_sync(self) -> None:
        self._sync_requested = False
        task = asyncio.get_running_loop().create_task(self._background_sync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _run_deferred_sync(self) -> None:
        if self._sync_requested and self._online and self.options.auto_sync:
            self._start_background_sync()

    async def _background_sync(self) -> None:
        try:
            result = await self.sync()
        except Exception as e:
            log.error(f"Automatic sync pass failed: {e}")
            return
        if result.synced or result.failed:
            log.debug(
                f"Automatic sync pass: {result.synced} synced, {result.failed} failed."
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _key(self, operation_id: str) -> str:
        return self.prefix + operation_id

    async def _persist(self, operation: QueuedOperation) -> None:
        async with self._lock:
            await self.storage.set(self._key(operation.id), operation.to_record())

    async def _delete(self, operation_id: str) -> None:
        async with self._lock:
            await self.storage.delete(self._key(operation_id))

    async def enqueue(
        self, type: str, payload: Any = None, priority: int = 0
    ) -> QueuedOperation:
        """
        Durably queues an operation.

        When the queue is online and ``auto_sync`` is enabled a sync pass is
        started in the background; enqueue() itself never waits for delivery.
        """
        operation = QueuedOperation(
            id=uuid.uuid4().hex,
            type=type,
            payload=payload,
            status=SyncStatus.PENDING,
            created_at=self._clock(),
            attempts=0,
            priority=priority,
        )
        self._remember_loop()
        await self._persist(operation)
        log.debug(f"Enqueued '{type}' operation {operation.id} (priority {priority}).")
        self._emit(SyncEventType.ENQUEUED, operation)

        if self._online and self.options.auto_sync:
            self._schedule_sync()

        return operation

    async def get(self, operation_id: str) -> QueuedOperation | None:
        record = await self.storage.get(self._key(operation_id))
        if record is None:
            return None
        return QueuedOperation.from_record(record)

    async def list_operations(self) -> list[QueuedOperation]:
        """Loads every stored operation regardless of status."""
        operations = []
        for key in await self.storage.keys(self.prefix):
            record = await self.storage.get(key)
            if record is None:
                continue
            try:
                operations.append(QueuedOperation.from_record(record))
            except ValidationError as e:
                log.warning(f"Skipping unreadable queue record '{key}': {e}")
        return operations

    async def get_pending(self) -> list[QueuedOperation]:
        """
        Returns pending operations, highest priority first and oldest first within
        a priority. Failed operations are excluded until retried.
        """
        pending = [
            op for op in await self.list_operations() if op.status == SyncStatus.PENDING
        ]
        return sorted(pending, key=lambda op: (-op.priority, op.created_at))

    async def get_failed(self) -> list[QueuedOperation]:
        """Returns operations that exhausted their retries, oldest first."""
        failed = [
            op for op in await self.list_operations() if op.status == SyncStatus.FAILED
        ]
        return sorted(failed, key=lambda op: op.created_at)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        """
        Dispatches all pending operations in chunks of ``concurrency``.

        Only one pass runs at a time; a call made while offline or while another
        pass is running returns zero counts. Handler errors are recorded on the
        operation and never raised from here.
        """
        self._remember_loop()
        if self._syncing or not self._online:
            return SyncResult()

        self._sync_requested = False
        self._syncing = True
        result = SyncResult()
        try:
            pending = await self.get_pending()
            chunk_size = self.options.concurrency
            for i in range(0, len(pending), chunk_size):
                chunk = pending[i : i + chunk_size]
                outcomes = await asyncio.gather(
                    *(self.sync_operation(op) for op in chunk),
                    return_exceptions=True,
                )
                for op, outcome in zip(chunk, outcomes):
                    if outcome is True:
                        result.synced += 1
                    elif outcome is None:
                        continue
                    else:
                        result.failed += 1
                        if isinstance(outcome, BaseException):
                            log.error(f"Dispatch of operation {op.id} raised: {outcome}")
        finally:
            self._syncing = False

        if pending:
            log.info(
                f"Sync pass finished: {result.synced} synced, {result.failed} failed."
            )
        return result

    async def sync_operation(self, operation: QueuedOperation) -> bool | None:
        """
        Delivers a single operation through its registered handler.

        Returns:
            True when the handler succeeded, False when it failed or no handler
            is registered, and None when the operation was skipped because it is
            no longer pending or is already being dispatched.
        """
        handler = self._handlers.get(operation.type)
        if handler is None:
            log.warning(
                f"No handler registered for operation type '{operation.type}', "
                f"skipping {operation.id}."
            )
            return False

        if operation.id in self._in_flight:
            return None
        self._in_flight.add(operation.id)
        try:
            current = await self.get(operation.id)
            if current is None or current.status != SyncStatus.PENDING:
                log.debug(f"Operation {operation.id} is no longer pending, skipping.")
                return None
            return await self._dispatch(current, handler)
        finally:
            self._in_flight.discard(operation.id)

    async def _dispatch(self, operation: QueuedOperation, handler: SyncHandler) -> bool:
        operation.status = SyncStatus.SYNCING
        operation.attempts += 1
        operation.last_attempt = self._clock()
        await self._persist(operation)
        self._emit(SyncEventType.SYNCING, operation)

        try:
            outcome = handler(operation)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            operation.last_error = str(e) or type(e).__name__
            if operation.attempts >= self.options.max_retries:
                operation.status = SyncStatus.FAILED
                await self._persist(operation)
                log.warning(
                    f"Operation {operation.id} ('{operation.type}') failed after "
                    f"{operation.attempts} attempts: {operation.last_error}"
                )
                self._emit(SyncEventType.FAILED, operation)
            else:
                operation.status = SyncStatus.PENDING
                await self._persist(operation)
                log.debug(
                    f"Operation {operation.id} attempt {operation.attempts} failed, "
                    f"will retry on next sync: {operation.last_error}"
                )
            return False

        operation.status = SyncStatus.SYNCED
        await self._delete(operation.id)
        self._emit(SyncEventType.SYNCED, operation)
        return True

    async def retry(self, operation_id: str) -> bool:
        """
        Resets a failed operation to pending with a fresh attempt budget.

        When online the operation is dispatched immediately and the result of that
        attempt is returned; when offline True is returned once it is requeued.
        Returns False if the operation does not exist or has not failed.
        """
        operation = await self.get(operation_id)
        if operation is None or operation.status != SyncStatus.FAILED:
            return False

        operation.status = SyncStatus.PENDING
        operation.attempts = 0
        await self._persist(operation)
        log.info(f"Operation {operation_id} requeued for retry.")

        if self._online:
            return await self.sync_operation(operation) is True
        return True

    async def recover_interrupted(self) -> int:
        """
        Returns operations left in 'syncing' by an interrupted process to 'pending'.

        Call this on startup before the first sync pass.
        """
        recovered = 0
        for operation in await self.list_operations():
            if (
                operation.status == SyncStatus.SYNCING
                and operation.id not in self._in_flight
            ):
                operation.status = SyncStatus.PENDING
                await self._persist(operation)
                recovered += 1
        if recovered:
            log.info(f"Recovered {recovered} interrupted operations.")
        return recovered

    async def remove(self, operation_id: str) -> None:
        await self._delete(operation_id)

    async def clear(self) -> int:
        """Deletes every queued operation regardless of status."""
        async with self._lock:
            keys = await self.storage.keys(self.prefix)
            for key in keys:
                await self.storage.delete(key)
        log.info(f"Cleared {len(keys)} queued operations.")
        return len(keys)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_background(self) -> None:
        """Waits until every automatically scheduled sync pass has finished."""
        self._remember_loop()
        self._run_deferred_sync()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Detaches from the connectivity provider and cancels background passes."""
        self._unsubscribe_connectivity()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
