"""Tests for connectivity providers and the event emitter."""

import asyncio

import pytest
from aiohttp import test_utils, web

from offline_kit.sync.connectivity import HttpConnectivityMonitor, ManualConnectivity
from offline_kit.sync.events import EventEmitter, SyncEvent, SyncEventType


@pytest.fixture
async def status_server():
    """Fixture providing a local HTTP server whose status code can be changed."""
    state = {"status": 204}

    async def handle(request):
        return web.Response(status=state["status"])

    app = web.Application()
    app.router.add_get("/health", handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield server, state
    finally:
        await server.close()


class TestManualConnectivity:
    """Tests for ManualConnectivity."""

    def test_notifies_only_on_change(self):
        """Test that repeated identical signals are ignored."""
        connectivity = ManualConnectivity(online=True)
        seen = []
        connectivity.subscribe(seen.append)

        assert connectivity.go_online() is False
        assert connectivity.go_offline() is True
        assert connectivity.set_online(False) is False
        assert connectivity.go_online() is True

        assert seen == [False, True]
        assert connectivity.is_online()

    def test_unsubscribe(self):
        """Test removing a subscriber."""
        connectivity = ManualConnectivity(online=True)
        seen = []
        unsubscribe = connectivity.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        connectivity.go_offline()
        assert seen == []

    def test_failing_subscriber_is_isolated(self):
        """Test that one broken subscriber does not block the others."""
        connectivity = ManualConnectivity(online=False)
        seen = []

        def broken(online):
            raise RuntimeError("bug")

        connectivity.subscribe(broken)
        connectivity.subscribe(seen.append)
        connectivity.go_online()

        assert seen == [True]


class TestHttpConnectivityMonitor:
    """Tests for HttpConnectivityMonitor."""

    async def test_check_success(self, status_server):
        """Test that a 2xx response means online."""
        server, _ = status_server
        monitor = HttpConnectivityMonitor(str(server.make_url("/health")), online=False)

        assert await monitor.check() is True
        assert monitor.is_online()

    async def test_client_errors_still_count_as_online(self, status_server):
        """Test that 4xx responses prove the endpoint is reachable."""
        server, state = status_server
        state["status"] = 404
        monitor = HttpConnectivityMonitor(str(server.make_url("/health")))

        assert await monitor.check() is True

    async def test_server_errors_mean_offline(self, status_server):
        """Test that 5xx responses mean offline and notify subscribers."""
        server, state = status_server
        state["status"] = 503
        monitor = HttpConnectivityMonitor(str(server.make_url("/health")))
        seen = []
        monitor.subscribe(seen.append)

        assert await monitor.check() is False
        assert seen == [False]

    async def test_unreachable_host(self):
        """Test that a refused connection means offline."""
        monitor = HttpConnectivityMonitor("http://127.0.0.1:1/", timeout=2)
        assert await monitor.check() is False
        assert not monitor.is_online()

    async def test_poll_loop(self, status_server):
        """Test that the background monitor polls until stopped."""
        server, _ = status_server
        monitor = HttpConnectivityMonitor(
            str(server.make_url("/health")), interval=0.01, online=False
        )
        await monitor.start()
        for _ in range(100):
            if monitor.is_online():
                break
            await asyncio.sleep(0.01)
        await monitor.stop()

        assert monitor.is_online()
        assert monitor._poll_task is None


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_emit_in_registration_order(self):
        """Test listener ordering."""
        emitter = EventEmitter()
        calls = []
        emitter.on(lambda e: calls.append(("first", e.type)))
        emitter.on(lambda e: calls.append(("second", e.type)))

        emitter.emit(SyncEvent(type=SyncEventType.ONLINE))

        assert calls == [
            ("first", SyncEventType.ONLINE),
            ("second", SyncEventType.ONLINE),
        ]

    def test_unsubscribe(self):
        """Test that unsubscribe removes exactly one listener."""
        emitter = EventEmitter()
        unsubscribe = emitter.on(lambda e: None)
        emitter.on(lambda e: None)
        unsubscribe()
        assert len(emitter) == 1
