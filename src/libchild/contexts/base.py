"""Core abstractions for libchild contexts.

A :class:`Context` bundles every capability that touches the operating
system: executable lookup, environment, working directory, the standard
streams a child inherits, the command log, and spawning itself.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
import typing as t
from abc import ABC, abstractmethod

from libchild import exc

if t.TYPE_CHECKING:
    import types
    from collections.abc import Mapping

    from libchild._internal.types import ReturnCode, StrPath

    if sys.version_info >= (3, 11):
        from typing import Self
    else:
        from typing_extensions import Self

logger = logging.getLogger(__name__)


class ProcessHandle(t.Protocol):
    """A live child process, as returned by :meth:`Context.spawn`.

    :class:`subprocess.Popen` conforms; streams that were not requested as
    pipes are ``None``.
    """

    pid: int
    stdin: t.IO[bytes] | None
    stdout: t.IO[bytes] | None
    stderr: t.IO[bytes] | None

    def poll(self) -> ReturnCode | None:
        """Return the return code if the process has terminated."""
        ...

    def wait(self) -> ReturnCode:
        """Block until the process terminates and return its return code."""
        ...

    def kill(self) -> None:
        """Terminate the process forcibly."""
        ...


class Context(ABC):
    """Dependency-injection seam for everything a child process touches.

    Parameters
    ----------
    cwd : str
        directory children run in unless overridden
    environ : Mapping[str, str]
        environment snapshot children inherit
    stdin, stdout, stderr :
        passthrough source and sinks for streams that are not piped
    log :
        text sink for logged command lines

    Notes
    -----
    A context is scoped to a unit of work and can be used as a context
    manager; leaving the block calls :meth:`close`.
    """

    def __init__(
        self,
        cwd: str,
        environ: Mapping[str, str],
        stdin: t.Any = None,
        stdout: t.Any = None,
        stderr: t.Any = None,
        log: t.TextIO | None = None,
    ) -> None:
        self.cwd = cwd
        self.environ = dict(environ)
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.log = log
        self._log_lock = threading.Lock()
        self._handles_lock = threading.Lock()
        self._live: list[ProcessHandle] = []

    @abstractmethod
    def which(
        self,
        executable: str,
        environ: Mapping[str, str],
        cwd: str,
    ) -> str | None:
        """Resolve ``executable`` the way the child's ``PATH`` would.

        Names containing a path separator are taken relative to ``cwd``.
        Returns ``None`` if nothing runnable is found.
        """

    @abstractmethod
    def _spawn(
        self,
        executable: str,
        argv: t.Sequence[str],
        cwd: str,
        environ: Mapping[str, str],
        pipe_stdin: bool,
        pipe_stdout: bool,
        pipe_stderr: bool,
    ) -> ProcessHandle:
        """Start the process; raise :exc:`OSError` on failure."""

    def spawn(
        self,
        executable: str,
        argv: t.Sequence[str],
        cwd: str,
        environ: Mapping[str, str],
        pipe_stdin: bool = False,
        pipe_stdout: bool = False,
        pipe_stderr: bool = False,
    ) -> ProcessHandle:
        """Start ``argv`` running ``executable`` and track its handle.

        Streams that are not piped are connected to this context's
        passthrough source and sinks.

        Raises
        ------
        :exc:`OSError`
            if the operating system (or simulation) refuses to start it
        """
        handle = self._spawn(
            executable,
            argv,
            cwd,
            environ,
            pipe_stdin,
            pipe_stdout,
            pipe_stderr,
        )
        with self._handles_lock:
            self._live.append(handle)
        return handle

    def release(self, handle: ProcessHandle) -> None:
        """Stop tracking ``handle`` after it has been waited for."""
        with self._handles_lock:
            if handle in self._live:
                self._live.remove(handle)

    @property
    def live_handles(self) -> list[ProcessHandle]:
        """Handles spawned but not yet released."""
        with self._handles_lock:
            return list(self._live)

    def child_environment(self, overlay: Mapping[str, str]) -> dict[str, str]:
        """Return the environment block for a child: snapshot plus ``overlay``."""
        env = dict(self.environ)
        env.update(overlay)
        return env

    def resolve_cwd(self, override: StrPath | None) -> str:
        """Return the child's working directory."""
        if override is None:
            return self.cwd
        return os.path.join(self.cwd, os.fspath(override))

    def _log_sink(self) -> t.TextIO:
        if self.log is None:
            return sys.stderr
        return self.log

    def write_log(self, line: str) -> None:
        """Write ``line`` to the log sink as one atomic, flushed write."""
        sink = self._log_sink()
        with self._log_lock:
            sink.write(line + "\n")
            sink.flush()

    def flush(self) -> None:
        """Flush every sink that supports it."""
        for sink in (self.stdout, self.stderr, self.log):
            flush = getattr(sink, "flush", None)
            if flush is not None:
                flush()

    def close(self) -> None:
        """Flush sinks and make sure no spawned process is left running.

        Raises
        ------
        :exc:`exc.HandleLeakError`
            if handles were still live; they are killed and reaped first
        """
        self.flush()
        leaked = self.live_handles
        for handle in leaked:
            logger.warning("killing leaked child process %s", handle.pid)
            if handle.poll() is None:
                handle.kill()
            handle.wait()
            self.release(handle)
        if leaked:
            raise exc.HandleLeakError(len(leaked))

    def __enter__(self) -> Self:
        """Return context for context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Tear the context down."""
        self.close()
