"""Memory probe and the gate that defers processing when memory is scarce."""

import logging

import psutil

from docdigest.core.config import MIN_FREE_MEMORY
from docdigest.core.errors import ResourceExhaustion

logger = logging.getLogger(__name__)


# ── Probe ────────────────────────────────────────────────────────────


class MemoryProbe:
    """Reads system and process memory through psutil."""

    def __init__(self) -> None:
        self._process = psutil.Process()

    def free_system_memory_bytes(self) -> int:
        return psutil.virtual_memory().available

    def process_heap_headroom_bytes(self) -> int:
        """Bytes the process can still allocate.

        Bounded by the soft address-space limit when the platform reports
        one (psutil exposes RLIMIT_AS on Linux and FreeBSD only), otherwise
        by available system memory.
        """
        if not hasattr(psutil, "RLIMIT_AS"):
            return self.free_system_memory_bytes()
        soft, _ = self._process.rlimit(psutil.RLIMIT_AS)
        if soft == psutil.RLIM_INFINITY:
            return self.free_system_memory_bytes()
        used = self._process.memory_info().vms
        return max(0, min(soft - used, self.free_system_memory_bytes()))

    def process_rss_bytes(self) -> int:
        return self._process.memory_info().rss


# ── Gate ─────────────────────────────────────────────────────────────


class MemoryGate:
    """Open when free memory > floor and process headroom > floor / 2."""

    def __init__(self, probe: MemoryProbe | None = None, floor_bytes: int = MIN_FREE_MEMORY):
        self.probe = probe or MemoryProbe()
        self.floor_bytes = floor_bytes

    def is_open(self) -> bool:
        try:
            self.require()
        except ResourceExhaustion:
            return False
        return True

    def require(self) -> None:
        """Raise ResourceExhaustion if the gate is closed."""
        free = self.probe.free_system_memory_bytes()
        headroom = self.probe.process_heap_headroom_bytes()
        logger.debug("System free memory: %d bytes, process headroom: %d bytes", free, headroom)
        if not (free > self.floor_bytes and headroom > self.floor_bytes / 2):
            raise ResourceExhaustion(free, headroom, self.floor_bytes)
