"""Pure domain primitives for the kernel."""

from cashflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock, ensure_utc

__all__ = ["Clock", "DeterministicClock", "SystemClock", "ensure_utc"]
