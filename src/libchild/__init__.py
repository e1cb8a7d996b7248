"""libchild, typed and composable child-process invocations."""

from .__about__ import (
    __author__,
    __copyright__,
    __description__,
    __email__,
    __license__,
    __package_name__,
    __title__,
    __version__,
)
from .args import CommandSpec, CurrentDir, Env, LogCommand, Split, Stdin, collect
from .contexts import Context, ProductionContext, SimulatedContext
from .engine import Invocation, execute, format_command_line
from .output import CommandOutput, Facet, OutputRequest, extract
from .record import ExecutionRecord, ExitStatus
from .runner import run, start

__all__ = (
    "CommandOutput",
    "CommandSpec",
    "Context",
    "CurrentDir",
    "Env",
    "ExecutionRecord",
    "ExitStatus",
    "Facet",
    "Invocation",
    "LogCommand",
    "OutputRequest",
    "ProductionContext",
    "SimulatedContext",
    "Split",
    "Stdin",
    "__author__",
    "__copyright__",
    "__description__",
    "__email__",
    "__license__",
    "__package_name__",
    "__title__",
    "__version__",
    "collect",
    "execute",
    "extract",
    "format_command_line",
    "run",
    "start",
)
