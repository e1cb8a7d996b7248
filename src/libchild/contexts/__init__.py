"""Contexts: the seam between libchild and the operating system."""

from __future__ import annotations

from .base import Context, ProcessHandle
from .production import ProductionContext, ProductionProcess
from .simulated import (
    MemoryPipe,
    SimulatedContext,
    SimulatedHandle,
    SimulatedProcess,
    WriteSequence,
)

__all__ = [
    "Context",
    "MemoryPipe",
    "ProcessHandle",
    "ProductionContext",
    "ProductionProcess",
    "SimulatedContext",
    "SimulatedHandle",
    "SimulatedProcess",
    "WriteSequence",
]
