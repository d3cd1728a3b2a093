"""Tunnel lifecycle state machine.

States: Initializing -> Configured -> Active -> Stale -> TearingDown -> Destroyed
"""

from __future__ import annotations

import enum
import threading


class TunnelState(enum.IntEnum):
    """Lifecycle states of a tunnel."""

    INITIALIZING = 0
    """Resources being allocated (TAP device requested)."""
    CONFIGURED = 1
    """TAP device received, ready to activate."""
    ACTIVE = 2
    """Actively forwarding packets."""
    STALE = 3
    """Keepalive timeout expired; TX suspended, RX still active for recovery."""
    TEARING_DOWN = 4
    """Shutdown in progress, draining in-flight packets."""
    DESTROYED = 5
    """Fully cleaned up, can be removed from the registry."""

    @classmethod
    def from_value(cls, value: int) -> TunnelState | None:
        """Return the state with this numeric value, or None if there is none."""
        try:
            return cls(value)
        except ValueError:
            return None


_VALID_TRANSITIONS = frozenset(
    {
        (TunnelState.INITIALIZING, TunnelState.CONFIGURED),
        (TunnelState.CONFIGURED, TunnelState.ACTIVE),
        (TunnelState.ACTIVE, TunnelState.STALE),
        (TunnelState.STALE, TunnelState.ACTIVE),  # recovery on keepalive received
        (TunnelState.ACTIVE, TunnelState.TEARING_DOWN),
        (TunnelState.STALE, TunnelState.TEARING_DOWN),
        (TunnelState.CONFIGURED, TunnelState.TEARING_DOWN),  # shutdown before activation
        (TunnelState.INITIALIZING, TunnelState.TEARING_DOWN),  # shutdown during init
        (TunnelState.TEARING_DOWN, TunnelState.DESTROYED),
    }
)


def is_valid_transition(from_state: TunnelState, to_state: TunnelState) -> bool:
    """Whether the state machine allows moving from one state to another."""
    return (from_state, to_state) in _VALID_TRANSITIONS


class TransitionError(Exception):
    """A state transition was refused; ``current`` holds the state at that moment."""

    def __init__(self, current: TunnelState, from_state: TunnelState, to_state: TunnelState):
        super().__init__(
            f"cannot transition {from_state.name} -> {to_state.name} "
            f"(current state {current.name})"
        )
        self.current = current
        self.from_state = from_state
        self.to_state = to_state


class AtomicTunnelState:
    """Thread-safe holder of a tunnel's state with compare-and-set transitions."""

    def __init__(self, state: TunnelState):
        self._state = TunnelState(state)
        self._lock = threading.Lock()

    def load(self) -> TunnelState:
        """Return the current state."""
        with self._lock:
            return self._state

    def transition(self, from_state: TunnelState, to_state: TunnelState) -> None:
        """Move from ``from_state`` to ``to_state``.

        Raises TransitionError if the transition is not allowed or the
        current state is not ``from_state``.
        """
        with self._lock:
            if not is_valid_transition(from_state, to_state) or self._state != from_state:
                raise TransitionError(self._state, from_state, to_state)
            self._state = to_state

    def __repr__(self) -> str:
        return f"AtomicTunnelState({self.load().name})"