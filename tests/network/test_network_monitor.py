from __future__ import annotations

import asyncio

import httpx
import pytest

from offgrid.network import (
    HttpProbeConnectivity,
    LinkHints,
    ManualConnectivity,
    NetworkMonitor,
    NetworkSnapshot,
    derive_quality,
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.mark.parametrize(
    ("hints", "expected"),
    [
        (LinkHints(effective_type="4g"), "excellent"),
        (LinkHints(effective_type="wifi"), "excellent"),
        (LinkHints(effective_type="3g"), "good"),
        (LinkHints(effective_type="2g"), "fair"),
        (LinkHints(effective_type="slow-2g"), "poor"),
        (LinkHints(downlink_mbps=10, rtt_ms=50), "excellent"),
        (LinkHints(downlink_mbps=2, rtt_ms=200), "good"),
        (LinkHints(downlink_mbps=0.6, rtt_ms=500), "fair"),
        (LinkHints(downlink_mbps=0.1, rtt_ms=900), "poor"),
        (LinkHints(rtt_ms=40.0), "excellent"),
        (LinkHints(rtt_ms=250.0), "good"),
        (LinkHints(rtt_ms=450.0), "fair"),
        (LinkHints(rtt_ms=2500.0), "poor"),
        (LinkHints(downlink_mbps=20), "good"),
        (LinkHints(), "good"),
    ],
)
def test_quality_derivation(hints, expected):
    assert derive_quality(hints) == expected


def test_offline_snapshot_and_recommendations():
    source = ManualConnectivity(online=False, hints=LinkHints(effective_type="4g"))
    monitor = NetworkMonitor(source)

    snapshot = monitor.current_snapshot()
    assert snapshot == NetworkSnapshot.offline()
    assert monitor.recommended_timeout_ms() == 5000
    assert monitor.recommended_data_mode() == "low"
    assert monitor.should_enable_low_bandwidth_mode() is True
    assert monitor.is_suitable_for_heavy_operations() is False


@pytest.mark.parametrize(
    ("effective_type", "timeout_ms", "mode"),
    [
        ("4g", 10000, "high"),
        ("3g", 20000, "high"),
        ("2g", 30000, "medium"),
        ("slow-2g", 45000, "low"),
    ],
)
def test_recommendations_follow_quality(effective_type, timeout_ms, mode):
    monitor = NetworkMonitor(ManualConnectivity(hints=LinkHints(effective_type=effective_type)))
    assert monitor.recommended_timeout_ms() == timeout_ms
    assert monitor.recommended_timeout_s() == timeout_ms / 1000
    assert monitor.recommended_data_mode() == mode


def test_data_saver_lowers_data_mode():
    monitor = NetworkMonitor(ManualConnectivity(hints=LinkHints(effective_type="4g", data_saver=True)))
    assert monitor.recommended_data_mode() == "medium"
    assert monitor.should_enable_low_bandwidth_mode() is True
    assert monitor.is_suitable_for_heavy_operations() is True


def test_subscribe_notifies_immediately_and_on_transitions():
    async def scenario() -> None:
        source = ManualConnectivity(online=True, hints=LinkHints(effective_type="4g"))
        monitor = NetworkMonitor(source)
        await monitor.start()
        seen: list[NetworkSnapshot] = []

        unsubscribe = monitor.subscribe(seen.append)
        assert [item.quality for item in seen] == ["excellent"]

        source.set_link(effective_type="4g", rtt_ms=20)
        assert len(seen) == 1

        source.set_link(effective_type="2g")
        source.set_online(False)
        assert [(item.online, item.quality) for item in seen] == [
            (True, "excellent"),
            (True, "fair"),
            (False, "offline"),
        ]

        unsubscribe()
        source.set_online(True)
        assert len(seen) == 3
        await monitor.dispose()

    run_async(scenario())


def test_failing_listener_does_not_block_others():
    async def scenario() -> None:
        source = ManualConnectivity(online=True)
        monitor = NetworkMonitor(source)
        await monitor.start()
        seen: list[bool] = []

        def broken(snapshot: NetworkSnapshot) -> None:
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        monitor.subscribe(lambda snapshot: seen.append(snapshot.online))
        source.set_online(False)

        assert seen == [True, False]
        await monitor.dispose()

    run_async(scenario())


def test_reconnect_hooks_run_on_offline_to_online():
    async def scenario() -> None:
        source = ManualConnectivity(online=False)
        monitor = NetworkMonitor(source)
        await monitor.start()
        fired = asyncio.Event()
        calls = 0

        async def hook() -> None:
            nonlocal calls
            calls += 1
            fired.set()

        monitor.on_reconnect(hook)
        source.set_online(True)
        await asyncio.wait_for(fired.wait(), timeout=1)
        assert calls == 1

        source.set_link(effective_type="3g")
        await asyncio.sleep(0)
        assert calls == 1
        await monitor.dispose()

    run_async(scenario())


def test_periodic_check_refreshes_source():
    async def scenario() -> None:
        class CountingSource(ManualConnectivity):
            def __init__(self) -> None:
                super().__init__(online=True)
                self.refreshes = 0

            async def refresh(self) -> None:
                self.refreshes += 1

        source = CountingSource()
        monitor = NetworkMonitor(source, check_interval_s=0.01)
        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.dispose()

        assert source.refreshes >= 2
        assert monitor.is_running is False

    run_async(scenario())


def test_http_probe_reports_reachability():
    async def scenario() -> None:
        reachable = True

        def handler(request: httpx.Request) -> httpx.Response:
            if not reachable:
                raise httpx.ConnectError("down", request=request)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = HttpProbeConnectivity("https://api.example.com/health", client=client, online=False)
        monitor = NetworkMonitor(source)
        seen: list[bool] = []
        monitor.subscribe(lambda snapshot: seen.append(snapshot.online))
        await monitor.start()

        await monitor.check_now()
        assert monitor.current_snapshot().online is True
        assert source.link_hints().rtt_ms is not None

        reachable = False
        await monitor.check_now()
        assert monitor.current_snapshot().online is False
        assert seen == [False, True, False]

        await monitor.dispose()
        await client.aclose()

    run_async(scenario())


def test_http_probe_round_trip_time_drives_quality():
    async def scenario() -> None:
        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.65)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        source = HttpProbeConnectivity("https://api.example.com/health", client=client, online=False)
        monitor = NetworkMonitor(source)
        await monitor.start()

        await monitor.check_now()
        snapshot = monitor.current_snapshot()
        assert snapshot.online is True
        assert snapshot.rtt_ms is not None and snapshot.rtt_ms >= 600
        assert snapshot.quality == "poor"
        assert monitor.recommended_timeout_ms() == 45000
        assert monitor.should_enable_low_bandwidth_mode() is True

        await monitor.dispose()
        await client.aclose()

    run_async(scenario())


def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        NetworkMonitor(ManualConnectivity(), check_interval_s=0)
