"""
Injected online/offline signal sources for the sync queue.
"""

import asyncio
import logging
from abc import ABC
from collections.abc import Callable
from contextlib import suppress

import aiohttp

log = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class ConnectivityProvider(ABC):
    """
    Holds the current online flag and notifies subscribers when it changes.

    Subclasses decide where the signal comes from; notification only happens on
    an actual transition, so repeated identical signals are ignored.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._subscribers: list[ConnectivityCallback] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Registers a transition callback and returns its unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _set_online(self, online: bool) -> bool:
        """Updates the flag, notifying subscribers on change. Returns True if changed."""
        if online == self._online:
            return False
        self._online = online
        log.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for callback in list(self._subscribers):
            try:
                callback(online)
            except Exception as e:
                log.warning(f"Connectivity subscriber failed: {e}")
        return True


class ManualConnectivity(ConnectivityProvider):
    """A provider driven explicitly by the host, e.g. from OS network events."""

    def set_online(self, online: bool) -> bool:
        return self._set_online(online)

    def go_online(self) -> bool:
        return self._set_online(True)

    def go_offline(self) -> bool:
        return self._set_online(False)


class HttpConnectivityMonitor(ConnectivityProvider):
    """
    Polls an HTTP endpoint to decide whether the remote system is reachable.

    Any response below 500 counts as online; timeouts, connection errors and
    5xx responses count as offline.
    """

    def __init__(
        self,
        url: str,
        interval: float = 30.0,
        timeout: float = 10.0,
        online: bool = True,
    ):
        """
        Args:
            url: Endpoint to poll.
            interval: Seconds between checks while the monitor is running.
            timeout: Total timeout for a single check in seconds.
            online: Initial state assumed before the first check.
        """
        super().__init__(online=online)
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self._poll_task: asyncio.Task | None = None

    async def check(self) -> bool:
        """Performs one reachability check and updates the online flag."""
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(self.url) as resp,
            ):
                reachable = resp.status < 500
                if not reachable:
                    log.debug(f"Connectivity check got status {resp.status}.")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.debug(f"Connectivity check of {self.url} failed: {e}")
            reachable = False
        self._set_online(reachable)
        return reachable

    async def start(self) -> None:
        """Starts the periodic background polling task."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())
            log.debug(f"Started connectivity monitor for {self.url}.")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.check()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                log.debug("Connectivity monitor cancelled.")
                break
            except Exception as e:
                log.warning(f"Error in connectivity monitor loop: {e}")
                await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        """Stops the background polling task gracefully."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._poll_task
            log.debug("Stopped connectivity monitor.")
        self._poll_task = None
