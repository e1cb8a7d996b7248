"""Constants and environment-driven settings for libchild."""

from __future__ import annotations

import os


def _env_flag(name: str) -> bool:
    value = os.getenv(name)
    if value is None:
        return False
    return value not in {"", "0", "false", "False", "no", "NO"}


#: Log every command to the context's log sink, regardless of
#: :class:`~libchild.args.LogCommand`.
#: Can be configured via :envvar:`LIBCHILD_LOG_COMMANDS`
LOG_ALL_COMMANDS = _env_flag("LIBCHILD_LOG_COMMANDS")

#: Bytes requested per read when draining a child's stdout or stderr
#: Can be configured via :envvar:`LIBCHILD_READ_CHUNK_SIZE`
READ_CHUNK_SIZE = int(os.getenv("LIBCHILD_READ_CHUNK_SIZE", 8192))

#: ``PATH`` of a :class:`~libchild.contexts.SimulatedContext` unless overridden
SIMULATED_PATH = "/usr/local/bin:/usr/bin:/bin"

#: Directory simulated programs are registered under by default
SIMULATED_BIN_DIR = "/usr/bin"

#: Stream names as they appear in records and error messages
STDOUT = "stdout"
STDERR = "stderr"
