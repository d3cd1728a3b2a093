# eoiptun

Building blocks for running EoIP (Ethernet over IP) tunnels from Python.
It has no third-party dependencies.

## Modules

- `eoiptun.lifecycle`: the tunnel state machine.
  - `TunnelState` is an `IntEnum` with the members `INITIALIZING`,
    `CONFIGURED`, `ACTIVE`, `STALE`, `TEARING_DOWN` and `DESTROYED`
    (values 0 to 5). `TunnelState.from_value(n)` returns the matching
    member, or `None` if there is none.
  - `is_valid_transition(from_state, to_state)` tells whether a move is
    allowed.
  - `AtomicTunnelState` is a lock-protected holder. `load()` returns the
    current state. `transition(from_state, to_state)` works like
    compare-and-set. It raises `TransitionError` when the move is not
    allowed or the current state is not `from_state`. The error has
    `current`, `from_state` and `to_state` attributes.
- `eoiptun.buffer`: packet buffers.
  - `PacketBuf` is a frame buffer with 64 bytes of headroom
    (`HEADER_HEADROOM`) in front of a 1522-byte payload area
    (`MAX_FRAME_SIZE`).
    - `payload()` gives a writable view of the payload area.
    - `set_len(n)` marks how many bytes are valid.
    - `prepend_header(n)` extends the valid data backwards into the headroom
      and returns a writable view of the new header bytes.
    - `as_bytes()` returns header and payload together. `len(buf)` is their
      length.
    - `release()` returns the buffer to its pool, and so does leaving a
      `with` block.
  - `BufferPool(capacity)` is a thread-safe pool of these buffers.
    `get()` hands out a pooled buffer, or a standalone one once the pool is
    empty. `available()` counts the free buffers.
- `eoiptun.tap`: `TapDevice(fd)` takes ownership of a TAP file descriptor
  and switches it to non-blocking mode.
  - `await read(size)` and `await write(data)` move one frame at a time and
    wait on the asyncio loop while the descriptor is not ready.
  - `fileno()` returns the descriptor. `close()` closes it, and so does
    leaving a `with` block.
- `eoiptun.handle`: `TunnelHandle(config, channel_cap=1024)` holds the
  runtime state of one tunnel:
  - `config`, any object with at least `tunnel_id` and `remote`;
  - `state`, an `AtomicTunnelState` that starts in `INITIALIZING`;
  - `stats`, the rx/tx packet, byte and error counters and the last rx/tx
    timestamps;
  - `actual_mtu`, where 0 means not yet known;
  - `tap_fd`;
  - `rx_queue`, a bounded `queue.Queue` of `PacketBuf`.
- `eoiptun.registry`: the demultiplexing map.
  - `DemuxKey(tunnel_id, peer_addr)` is a frozen key. The tunnel id must be
    in 0..65535. The address is normalised with `ipaddress.ip_address`.
  - `TunnelRegistry` is a thread-safe map from keys to handles. It has
    `insert`, which returns the handle it replaced, `remove`, `get`,
    `find_by_tunnel_id`, `len()`, `in`, and iteration over a snapshot of
    `(key, handle)` pairs.
- `eoiptun.mtu`: MTU helpers.
  - `overlay_mtu(path_mtu)` subtracts the 42-byte EoIP overhead
    (`EOIP_OVERHEAD`) and never returns less than 534 (`MIN_OVERLAY_MTU`).
  - `detect_interface_mtu(remote)` finds the interface the route to
    `remote` uses and reads its MTU from `/sys/class/net/<iface>/mtu` with
    `read_sys_mtu`. It returns 1500 if detection fails or the platform is
    not Linux.
  - `auto_overlay_mtu(remote)` combines the two.
  - `IPSEC_ESP_OVERHEAD` (38) and `DEFAULT_OVERLAY_MTU` (1458) are
    available as constants.
- `eoiptun.pmtud`: path MTU discovery with ICMP echo probes that have the
  Don't Fragment bit set.
  - `binary_search_path_mtu(probe)` searches sizes from 576 to 1500 with
    any probe callable.
  - `probe_path_mtu_blocking(remote)` and `await probe_path_mtu(remote)`
    probe a real peer. They support IPv4 on Linux only and raise
    `PmtudError` otherwise, and also when every probe fails.
  - `await do_pmtud(handle, remote)` runs one round and updates
    `handle.actual_mtu`. When probing fails and no MTU is known yet, it
    falls back to `auto_overlay_mtu`.
  - `await run_pmtud_task(handle, remote, cancel)` repeats the round every
    10 minutes until the `asyncio.Event` `cancel` is set.

## Install

```
pip install .
pip install ".[test]"   # with test dependencies
```

## Examples

```python
from eoiptun.lifecycle import AtomicTunnelState, TunnelState, TransitionError

state = AtomicTunnelState(TunnelState.INITIALIZING)
state.transition(TunnelState.INITIALIZING, TunnelState.CONFIGURED)
try:
    state.transition(TunnelState.CONFIGURED, TunnelState.STALE)
except TransitionError as exc:
    print("refused; still", exc.current.name)
```

```python
from eoiptun.buffer import BufferPool

pool = BufferPool(8)
with pool.get() as buf:
    buf.payload()[:4] = b"\xde\xad\xbe\xef"
    buf.set_len(4)
    buf.prepend_header(8)[:] = bytes(8)
    frame = buf.as_bytes()      # 12 bytes: header followed by payload
assert pool.available() == 8
```

```python
from ipaddress import ip_address
from eoiptun.registry import DemuxKey, TunnelRegistry
from eoiptun.mtu import overlay_mtu

registry = TunnelRegistry()
key = DemuxKey(42, "192.0.2.1")
assert key.peer_addr == ip_address("192.0.2.1")
overlay_mtu(1500)   # 1458
```

ICMP probing needs a system that allows unprivileged ICMP datagram sockets.
On Linux this is controlled by `net.ipv4.ping_group_range`.

## What it does not do

The package does not encode or decode EoIP or EtherIP headers. It does not
open raw sockets and does not run a receive or transmit pipeline. It does
not create TAP devices; you pass in a descriptor that is already open. It
has no daemon, configuration file or command-line program. It provides the
state, buffering, lookup and MTU pieces that such a program would be built
on.