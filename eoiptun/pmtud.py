"""Path MTU discovery by ICMP echo probes with the Don't Fragment bit set.

Probe sizes are chosen by binary search between the IPv4 minimum MTU and
the Ethernet MTU. When ICMP is unavailable the outgoing interface MTU is
used instead.
"""

from __future__ import annotations

import asyncio
import errno
import ipaddress
import logging
import socket
import sys
from typing import Awaitable, Callable, Union

from eoiptun.handle import TunnelHandle
from eoiptun.mtu import auto_overlay_mtu, overlay_mtu

_log = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

MIN_PROBE = 576
"""Smallest probe size (IPv4 minimum MTU)."""

MAX_PROBE = 1500
"""Largest probe size (standard Ethernet MTU)."""

PROBE_TIMEOUT = 2.0
"""Seconds to wait for a reply to one probe."""

PROBE_RETRIES = 3
"""Attempts per probe size."""

REPROBE_INTERVAL = 600.0
"""Seconds between periodic re-probes."""

_IP_HEADER_LEN = 20
_ICMP_HEADER_LEN = 8
_IP_MTU_DISCOVER = getattr(socket, "IP_MTU_DISCOVER", 10)
_IP_PMTUDISC_DO = getattr(socket, "IP_PMTUDISC_DO", 2)


class PmtudError(Exception):
    """Path MTU discovery could not produce a result."""


def binary_search_path_mtu(probe: Callable[[int], bool]) -> int:
    """Largest size in ``MIN_PROBE..MAX_PROBE`` for which ``probe(size)`` succeeds.

    ``probe`` is called with candidate path MTUs. Raises PmtudError when no
    size above the minimum succeeds, which usually means ICMP is blocked.
    """
    lo, hi = MIN_PROBE, MAX_PROBE
    best = MIN_PROBE
    while lo <= hi:
        mid = lo + (hi - lo) // 2
        if probe(mid):
            best = mid
            if mid == hi:
                break
            lo = mid + 1
        else:
            if mid == lo:
                break
            hi = mid - 1

    if best <= MIN_PROBE:
        raise PmtudError("all probes timed out")
    return best


def _probe_single(sock: socket.socket, payload_size: int, retries: int) -> bool:
    """Send one echo probe; False only when the kernel reports the size too big."""
    buf = bytearray(4 + payload_size)
    buf[0] = 0x45  # identifier
    for attempt in range(retries):
        buf[2:4] = (attempt & 0xFFFF).to_bytes(2, "big")  # sequence
        try:
            sock.send(buf)
        except OSError as exc:
            if exc.errno == errno.EMSGSIZE:
                return False
            continue

        try:
            if sock.recv(1500):
                return True
        except socket.timeout:
            continue
        except OSError as exc:
            if exc.errno == errno.EMSGSIZE:
                return False
            continue

    # No answer at all: the host may simply not reply to ICMP, so assume the
    # size works and let larger failures narrow the search.
    return True


def probe_path_mtu_blocking(remote: str | IPAddress) -> int:
    """Probe the path MTU towards ``remote``, blocking the calling thread.

    Raises PmtudError on socket failures, for IPv6 peers, on unsupported
    platforms and when every probe failed.
    """
    address = ipaddress.ip_address(remote)
    if address.version != 4:
        raise PmtudError("internal error: IPv6 PMTUD not yet implemented")
    if not sys.platform.startswith("linux"):
        raise PmtudError("internal error: PMTUD not supported on this platform")

    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_ICMP)
    except OSError as exc:
        raise PmtudError(f"ICMP socket error: {exc}") from exc

    with sock:
        try:
            sock.setsockopt(socket.IPPROTO_IP, _IP_MTU_DISCOVER, _IP_PMTUDISC_DO)
            sock.settimeout(PROBE_TIMEOUT)
            sock.connect((str(address), 0))
        except OSError as exc:
            raise PmtudError(f"ICMP socket error: {exc}") from exc

        overhead = _IP_HEADER_LEN + _ICMP_HEADER_LEN
        return binary_search_path_mtu(
            lambda size: _probe_single(sock, max(size - overhead, 0), PROBE_RETRIES)
        )


async def probe_path_mtu(remote: str | IPAddress) -> int:
    """Probe the path MTU towards ``remote`` on a worker thread."""
    return await asyncio.to_thread(probe_path_mtu_blocking, remote)


async def do_pmtud(
    handle: TunnelHandle,
    remote: str | IPAddress,
    prober: Callable[[IPAddress], Awaitable[int]] = probe_path_mtu,
) -> int:
    """Run one discovery round and update ``handle.actual_mtu``.

    On failure the current MTU is kept; if none was ever set, the outgoing
    interface MTU is used. Returns the overlay MTU now in effect.
    """
    address = ipaddress.ip_address(remote)
    tunnel_id = getattr(handle.config, "tunnel_id", None)

    try:
        path_mtu = await prober(address)
    except PmtudError as exc:
        _log.debug(
            "tunnel %s: PMTUD probe towards %s failed, keeping current MTU: %s",
            tunnel_id,
            address,
            exc,
        )
        if handle.actual_mtu == 0:
            handle.actual_mtu = auto_overlay_mtu(address)
            _log.info(
                "tunnel %s: PMTUD unavailable, using interface MTU fallback %d",
                tunnel_id,
                handle.actual_mtu,
            )
        return handle.actual_mtu

    overlay = overlay_mtu(path_mtu)
    previous, handle.actual_mtu = handle.actual_mtu, overlay
    if previous != overlay:
        _log.info(
            "tunnel %s: PMTUD discovered path MTU %d towards %s (overlay %d, was %d)",
            tunnel_id,
            path_mtu,
            address,
            overlay,
            previous,
        )
    return overlay


async def run_pmtud_task(
    handle: TunnelHandle, remote: str | IPAddress, cancel: asyncio.Event
) -> None:
    """Probe at once, then every REPROBE_INTERVAL seconds until ``cancel`` is set."""
    await do_pmtud(handle, remote)
    while not cancel.is_set():
        try:
            await asyncio.wait_for(cancel.wait(), REPROBE_INTERVAL)
        except asyncio.TimeoutError:
            await do_pmtud(handle, remote)
        else:
            break
    _log.debug(
        "tunnel %s: PMTUD task shutting down", getattr(handle.config, "tunnel_id", None)
    )