"""Thread-safe tunnel registry keyed for packet demultiplexing."""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Iterator, Union

from eoiptun.handle import TunnelHandle

_log = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class DemuxKey:
    """Identifies a tunnel by its ID and the peer's address."""

    tunnel_id: int
    peer_addr: IPAddress

    def __post_init__(self) -> None:
        if not 0 <= self.tunnel_id <= 0xFFFF:
            raise ValueError(f"tunnel id {self.tunnel_id} outside 0..65535")
        object.__setattr__(self, "peer_addr", ipaddress.ip_address(self.peer_addr))


class TunnelRegistry:
    """Mapping from :class:`DemuxKey` to :class:`TunnelHandle`, safe across threads."""

    def __init__(self):
        self._map: dict[DemuxKey, TunnelHandle] = {}
        self._lock = threading.Lock()

    def insert(self, key: DemuxKey, handle: TunnelHandle) -> TunnelHandle | None:
        """Register a handle; returns the handle it replaced, if any."""
        _log.debug("registry: inserting tunnel %s", key)
        with self._lock:
            previous = self._map.get(key)
            self._map[key] = handle
        return previous

    def remove(self, key: DemuxKey) -> TunnelHandle | None:
        """Unregister a tunnel; returns its handle, or None if it was absent."""
        _log.debug("registry: removing tunnel %s", key)
        with self._lock:
            return self._map.pop(key, None)

    def get(self, key: DemuxKey) -> TunnelHandle | None:
        """Look up a tunnel by key."""
        with self._lock:
            return self._map.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._map

    def __iter__(self) -> Iterator[tuple[DemuxKey, TunnelHandle]]:
        """Iterate over a snapshot of ``(key, handle)`` pairs."""
        with self._lock:
            items = list(self._map.items())
        return iter(items)

    def find_by_tunnel_id(self, tid: int) -> list[tuple[DemuxKey, TunnelHandle]]:
        """All ``(key, handle)`` pairs with this tunnel ID, across peers."""
        return [(key, handle) for key, handle in self if key.tunnel_id == tid]