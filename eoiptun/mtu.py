"""Outgoing-interface MTU detection.

Finds the interface the routing table would use to reach a peer and reads
its MTU. Subtracting the EoIP overhead gives the overlay MTU.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import sys
from pathlib import Path
from typing import Union

_log = logging.getLogger(__name__)

EOIP_OVERHEAD = 42
"""EoIP encapsulation overhead: 20 (IP) + 8 (GRE/EoIP) + 14 (inner Ethernet)."""

IPSEC_ESP_OVERHEAD = 38
"""IPsec ESP overhead for AES-256-CBC + SHA1: 8 + 16 + 2 + 12."""

MIN_OVERLAY_MTU = 534
"""Minimum sane overlay MTU (IPv4 minimum 576 - 42)."""

DEFAULT_OVERLAY_MTU = 1458
"""Overlay MTU used when detection fails (1500 - 42)."""

DEFAULT_PATH_MTU = 1500

_SIOCGIFADDR = 0x8915
_IFNAMSIZ = 16

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def overlay_mtu(path_mtu: int) -> int:
    """Overlay MTU for a path MTU: overhead subtracted, clamped to the minimum."""
    return max(max(path_mtu - EOIP_OVERHEAD, 0), MIN_OVERLAY_MTU)


def read_sys_mtu(iface: str) -> int:
    """Read an interface's MTU from ``/sys/class/net/<iface>/mtu``.

    Raises OSError if the file cannot be read and ValueError if its content
    is not a 16-bit unsigned number.
    """
    text = Path("/sys/class/net", iface, "mtu").read_text().strip()
    mtu = int(text)
    if not 0 <= mtu <= 0xFFFF:
        raise ValueError(f"MTU {mtu} of {iface} does not fit in 16 bits")
    return mtu


def detect_interface_mtu(remote: str | IPAddress) -> int:
    """MTU of the outgoing interface towards ``remote`` (the path MTU, e.g. 1500).

    Falls back to 1500 when detection fails or the platform is unsupported.
    """
    address = ipaddress.ip_address(remote)
    try:
        mtu = _detect(address)
    except (OSError, ValueError) as exc:
        _log.warning("MTU detection for %s failed, using default 1500: %s", address, exc)
        return DEFAULT_PATH_MTU
    _log.debug("detected interface MTU %d towards %s", mtu, address)
    return mtu


def auto_overlay_mtu(remote: str | IPAddress) -> int:
    """Detect the path MTU towards ``remote`` and derive the overlay MTU."""
    return overlay_mtu(detect_interface_mtu(remote))


def _detect(remote: IPAddress) -> int:
    if not sys.platform.startswith("linux"):
        return DEFAULT_PATH_MTU

    family = socket.AF_INET if remote.version == 4 else socket.AF_INET6
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        # Connecting a UDP socket performs a route lookup without sending traffic.
        sock.connect((str(remote), 9))

        name = _bound_device(sock)
        if name:
            return read_sys_mtu(name)

        source = ipaddress.ip_address(sock.getsockname()[0].split("%", 1)[0])

    iface = _interface_with_address(source)
    if iface:
        return read_sys_mtu(iface)
    return DEFAULT_PATH_MTU


def _bound_device(sock: socket.socket) -> str:
    option = getattr(socket, "SO_BINDTODEVICE", None)
    if option is None:
        return ""
    try:
        raw = sock.getsockopt(socket.SOL_SOCKET, option, 40)
    except OSError:
        return ""
    if len(raw) <= 1:
        return ""
    return raw.split(b"\0", 1)[0].decode(errors="replace")


def _interface_with_address(address: IPAddress) -> str | None:
    if address.version == 4:
        return _ipv4_interface(address)
    return _ipv6_interface(address)


def _ipv4_interface(address: ipaddress.IPv4Address) -> str | None:
    import fcntl

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
        for _index, name in socket.if_nameindex():
            request = struct.pack("256s", name.encode()[: _IFNAMSIZ - 1])
            try:
                reply = fcntl.ioctl(probe.fileno(), _SIOCGIFADDR, request)
            except OSError:
                continue
            if ipaddress.IPv4Address(reply[20:24]) == address:
                return name
    return None


def _ipv6_interface(address: ipaddress.IPv6Address) -> str | None:
    try:
        lines = Path("/proc/net/if_inet6").read_text().splitlines()
    except OSError:
        return None
    for line in lines:
        fields = line.split()
        if len(fields) < 6:
            continue
        try:
            candidate = ipaddress.IPv6Address(bytes.fromhex(fields[0]))
        except ValueError:
            continue
        if candidate == address:
            return fields[5]
    return None