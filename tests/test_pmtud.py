import asyncio
import ipaddress
from types import SimpleNamespace

import pytest

from eoiptun.handle import TunnelHandle
from eoiptun.mtu import DEFAULT_OVERLAY_MTU, MIN_OVERLAY_MTU
from eoiptun.pmtud import (
    MAX_PROBE,
    MIN_PROBE,
    PmtudError,
    binary_search_path_mtu,
    do_pmtud,
    probe_path_mtu,
    probe_path_mtu_blocking,
    run_pmtud_task,
)


def make_handle(remote="192.0.2.1"):
    config = SimpleNamespace(tunnel_id=7, remote=ipaddress.ip_address(remote))
    return TunnelHandle(config, 16)


def test_binary_search_finds_largest_working_size():
    assert binary_search_path_mtu(lambda size: size <= 1420) == 1420


def test_binary_search_all_succeed_gives_max():
    assert binary_search_path_mtu(lambda size: True) == MAX_PROBE


def test_binary_search_all_fail_raises():
    with pytest.raises(PmtudError):
        binary_search_path_mtu(lambda size: False)


def test_binary_search_only_minimum_raises():
    with pytest.raises(PmtudError):
        binary_search_path_mtu(lambda size: size <= MIN_PROBE)


def test_binary_search_probes_stay_in_range_and_are_few():
    seen = []

    def probe(size):
        seen.append(size)
        return size <= 1000

    assert binary_search_path_mtu(probe) == 1000
    assert all(MIN_PROBE <= s <= MAX_PROBE for s in seen)
    assert len(seen) <= 11


@pytest.mark.parametrize("limit", [577, 900, 1499, 1500])
def test_binary_search_matches_threshold(limit):
    assert binary_search_path_mtu(lambda size: size <= limit) == limit


def test_blocking_probe_rejects_ipv6():
    with pytest.raises(PmtudError):
        probe_path_mtu_blocking("::1")


@pytest.mark.asyncio
async def test_async_probe_rejects_ipv6():
    with pytest.raises(PmtudError):
        await probe_path_mtu("2001:db8::1")


@pytest.mark.asyncio
async def test_do_pmtud_sets_overlay_from_path():
    handle = make_handle()

    async def prober(remote):
        return 1500

    result = await do_pmtud(handle, "192.0.2.1", prober)
    assert result == DEFAULT_OVERLAY_MTU
    assert handle.actual_mtu == DEFAULT_OVERLAY_MTU


@pytest.mark.asyncio
async def test_do_pmtud_clamps_small_path():
    handle = make_handle()

    async def prober(remote):
        return 100

    await do_pmtud(handle, "192.0.2.1", prober)
    assert handle.actual_mtu == MIN_OVERLAY_MTU


@pytest.mark.asyncio
async def test_do_pmtud_passes_parsed_address():
    handle = make_handle()
    received = []

    async def prober(remote):
        received.append(remote)
        return 1420

    result = await do_pmtud(handle, "192.0.2.1", prober)
    assert received == [ipaddress.IPv4Address("192.0.2.1")]
    assert result == 1378
    assert handle.actual_mtu == 1378


@pytest.mark.asyncio
async def test_do_pmtud_failure_keeps_existing_mtu():
    handle = make_handle()
    handle.actual_mtu = 1378

    async def prober(remote):
        raise PmtudError("all probes timed out")

    result = await do_pmtud(handle, "192.0.2.1", prober)
    assert result == 1378
    assert handle.actual_mtu == 1378


@pytest.mark.asyncio
async def test_do_pmtud_failure_without_mtu_falls_back():
    handle = make_handle("::1")

    async def prober(remote):
        raise PmtudError("unsupported")

    result = await do_pmtud(handle, "::1", prober)
    assert result >= MIN_OVERLAY_MTU
    assert handle.actual_mtu == result


@pytest.mark.asyncio
async def test_run_task_stops_when_cancelled():
    handle = make_handle("::1")
    cancel = asyncio.Event()
    cancel.set()
    await asyncio.wait_for(run_pmtud_task(handle, "::1", cancel), 30)
    assert handle.actual_mtu >= MIN_OVERLAY_MTU
    assert cancel.is_set()