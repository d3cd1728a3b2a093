"""EoIP tunnel building blocks: lifecycle states, packet buffers, TAP I/O, registry and MTU discovery."""

__version__ = "0.1.0"
__all__ = ["buffer", "handle", "lifecycle", "mtu", "pmtud", "registry", "tap"]