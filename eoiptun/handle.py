"""Per-tunnel runtime state held in the tunnel registry."""

from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Any

from eoiptun.buffer import PacketBuf
from eoiptun.lifecycle import AtomicTunnelState, TunnelState

DEFAULT_CHANNEL_CAP = 1024
"""Default capacity of the queue of received frames waiting for the TAP writer."""


@dataclass
class _TunnelStats:
    """Traffic counters of one tunnel; timestamps are milliseconds since the epoch."""

    rx_packets: int = 0
    rx_bytes: int = 0
    rx_errors: int = 0
    tx_packets: int = 0
    tx_bytes: int = 0
    last_rx_timestamp: int = 0
    last_tx_timestamp: int = 0


class TunnelHandle:
    """Runtime handle for a single tunnel.

    ``config`` is the tunnel's configuration object (it must at least carry
    ``tunnel_id`` and ``remote``). Decoded frames bound for the TAP device
    travel through ``rx_queue``, a bounded queue of :class:`PacketBuf`.
    ``actual_mtu`` is the overlay MTU resolved at run time; 0 means unknown.
    """

    def __init__(self, config: Any, channel_cap: int = DEFAULT_CHANNEL_CAP):
        if channel_cap <= 0:
            raise ValueError("channel capacity must be positive")
        self.config = config
        self.state = AtomicTunnelState(TunnelState.INITIALIZING)
        self.stats = _TunnelStats()
        self.actual_mtu = 0
        self.tap_fd: int | None = None
        self.rx_queue: queue.Queue[PacketBuf] = queue.Queue(maxsize=channel_cap)

    @property
    def channel_cap(self) -> int:
        """Capacity of the receive queue."""
        return self.rx_queue.maxsize

    def __repr__(self) -> str:
        return (
            f"TunnelHandle(config={self.config!r}, state={self.state.load().name}, "
            f"actual_mtu={self.actual_mtu})"
        )