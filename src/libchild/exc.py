"""Provide exceptions used by libchild.

libchild.exc
~~~~~~~~~~~~

Every error raised by libchild derives from :exc:`LibChildException`.

Notes
-----
:exc:`ConfigurationError` and :exc:`SpawnError` are raised before a child
process exists. :exc:`IoError` and :exc:`StatusError` are raised after it
terminated and carry whatever output was captured.
"""

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from libchild.record import ExitStatus


class LibChildException(Exception):
    """Base exception for all libchild errors."""


class ConfigurationError(LibChildException, ValueError):
    """Raised if contributions do not fold into a runnable command."""


class SpawnError(LibChildException):
    """Raised if the child process could not be started."""

    def __init__(self, command_line: str, reason: str, *args: object) -> None:
        self.command_line = command_line
        self.reason = reason
        super().__init__(f"{command_line}:\n  {reason}")


class ExecutableNotFound(SpawnError):
    """Raised when the executable cannot be resolved."""

    def __init__(self, executable: str, *args: object) -> None:
        self.executable = executable
        super().__init__(executable, "executable not found")

    def __str__(self) -> str:
        lines = [f"File not found error when executing '{self.executable}'"]
        words = self.executable.split()
        if len(words) > 1:
            lines += [
                f"note: Executable name '{self.executable}' includes whitespace.",
                f"  Did you mean to run '{words[0]}', with {words[1:]!r} as "
                "arguments?",
                "  Consider using libchild.Split.",
            ]
        return "\n".join(lines)


class IoError(LibChildException):
    """Raised on a pipe failure while the child was running.

    Attributes
    ----------
    stdout : bytes
        stdout captured before the failure
    stderr : bytes
        stderr captured before the failure
    """

    def __init__(
        self,
        command_line: str,
        reason: str,
        stdout: bytes = b"",
        stderr: bytes = b"",
        *args: object,
    ) -> None:
        self.command_line = command_line
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"{command_line}:\n  {reason}")


class EncodingError(LibChildException):
    """Raised if captured output requested as text is not valid UTF-8."""

    def __init__(
        self,
        command_line: str,
        stream: str,
        offset: int,
        *args: object,
    ) -> None:
        self.command_line = command_line
        self.stream = stream
        self.offset = offset
        super().__init__(
            f"{command_line}:\n  invalid utf-8 written to {stream} "
            f"(at byte {offset})",
        )


class StatusError(LibChildException):
    """Raised if the child failed and no status facet was requested."""

    def __init__(
        self,
        command_line: str,
        status: ExitStatus,
        stderr: str | None = None,
        *args: object,
    ) -> None:
        self.command_line = command_line
        self.status = status
        self.stderr = stderr
        msg = f"{command_line}:\n  exited with {status}"
        if stderr:
            msg += f"\n  stderr:\n{stderr.rstrip()}"
        super().__init__(msg)


class FacetNotRequested(LibChildException, KeyError):
    """Raised when reading a facet that was not part of the request."""

    def __init__(self, facet: object, *args: object) -> None:
        self.facet = facet
        super().__init__(f"Facet not requested: {facet}")

    def __str__(self) -> str:
        return str(self.args[0])


class HandleLeakError(LibChildException):
    """Raised if a context is closed while spawned processes are still live."""

    def __init__(self, count: int, *args: object) -> None:
        super().__init__(f"Context closed with {count} live process handle(s)")
