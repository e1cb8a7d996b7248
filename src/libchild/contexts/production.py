"""Context backed by the real operating system."""

from __future__ import annotations

import codecs
import io
import logging
import os
import shutil
import subprocess
import threading
import typing as t

from libchild.constants import READ_CHUNK_SIZE
from libchild.contexts.base import Context

if t.TYPE_CHECKING:
    from collections.abc import Mapping

    from libchild._internal.types import ReturnCode

logger = logging.getLogger(__name__)

#: Placeholder accepted by :class:`subprocess.Popen` meaning "inherit"
_INHERIT: t.Any = None


def _fileno(stream: t.Any) -> int | None:
    try:
        return int(stream.fileno())
    except (AttributeError, OSError, ValueError, io.UnsupportedOperation):
        return None


class _Relay(threading.Thread):
    """Copy bytes from ``source`` to ``sink`` until end of file."""

    def __init__(
        self,
        source: t.Any,
        sink: t.Any,
        close_source: bool,
        close_sink: bool,
    ) -> None:
        super().__init__(daemon=True)
        self.source = source
        self.sink = sink
        self.close_source = close_source
        self.close_sink = close_sink
        self.error: OSError | None = None

    def run(self) -> None:
        read = getattr(self.source, "read1", self.source.read)
        decoder = None
        if isinstance(self.sink, io.TextIOBase):
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                if isinstance(chunk, str):
                    chunk = chunk.encode("utf-8")
                self.sink.write(decoder.decode(chunk) if decoder else chunk)
            if decoder is not None:
                self.sink.write(decoder.decode(b"", final=True))
            self.sink.flush()
        except OSError as e:
            logger.debug("relay stopped: %s", e)
            self.error = e
        finally:
            if self.close_source:
                self.source.close()
            if self.close_sink:
                self.sink.close()


class ProductionProcess:
    """Handle of a real child, together with any relay threads it needs.

    ``stdin``, ``stdout`` and ``stderr`` are only set for streams the caller
    asked to pipe; relayed streams stay private to their relay thread.

    Attributes
    ----------
    popen : :class:`subprocess.Popen`
        the underlying process object
    """

    def __init__(
        self,
        popen: subprocess.Popen[bytes],
        stdin: t.IO[bytes] | None,
        stdout: t.IO[bytes] | None,
        stderr: t.IO[bytes] | None,
        relays: list[_Relay],
    ) -> None:
        self.popen = popen
        self.pid = popen.pid
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self._relays = relays
        for relay in relays:
            relay.start()

    def poll(self) -> ReturnCode | None:
        """Return the return code if the process has terminated."""
        return self.popen.poll()

    def wait(self) -> ReturnCode:
        """Wait for the process and its relays."""
        returncode = self.popen.wait()
        for relay in self._relays:
            relay.join()
        return returncode

    def kill(self) -> None:
        """Send SIGKILL to the process."""
        self.popen.kill()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(pid={self.pid})"


class ProductionContext(Context):
    """Delegate every capability to the running operating system.

    Parameters
    ----------
    cwd : str, optional
        defaults to :func:`os.getcwd` at construction time
    environ : Mapping[str, str], optional
        defaults to a snapshot of :data:`os.environ`
    stdin, stdout, stderr : optional
        ``None`` (default) lets the child inherit this program's stream.
        Objects with a working ``fileno()`` are handed to the child as is;
        anything else (e.g. :class:`io.BytesIO`, :class:`io.StringIO`) is
        fed by a relay thread.
    log : text stream, optional
        defaults to :data:`sys.stderr`

    Examples
    --------
    >>> with ProductionContext() as ctx:
    ...     ctx.environ is not os.environ
    True
    """

    def __init__(
        self,
        cwd: str | None = None,
        environ: Mapping[str, str] | None = None,
        stdin: t.Any = None,
        stdout: t.Any = None,
        stderr: t.Any = None,
        log: t.TextIO | None = None,
    ) -> None:
        super().__init__(
            cwd=cwd if cwd is not None else os.getcwd(),
            environ=environ if environ is not None else os.environ,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            log=log,
        )

    def which(
        self,
        executable: str,
        environ: Mapping[str, str],
        cwd: str,
    ) -> str | None:
        """Resolve through ``PATH`` with :func:`shutil.which`."""
        if os.sep in executable or (os.altsep and os.altsep in executable):
            candidate = os.path.join(cwd, executable)
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                return candidate
            return None
        return shutil.which(executable, path=environ.get("PATH", os.defpath))

    def _sink_target(self, sink: t.Any) -> tuple[t.Any, bool]:
        """Return ``(popen_argument, needs_relay)`` for a passthrough stream."""
        if sink is None:
            return _INHERIT, False
        fd = _fileno(sink)
        if fd is not None:
            flush = getattr(sink, "flush", None)
            if flush is not None:
                flush()
            return fd, False
        return subprocess.PIPE, True

    def _spawn(
        self,
        executable: str,
        argv: t.Sequence[str],
        cwd: str,
        environ: Mapping[str, str],
        pipe_stdin: bool,
        pipe_stdout: bool,
        pipe_stderr: bool,
    ) -> ProductionProcess:
        stdin_arg, relay_stdin = (
            (subprocess.PIPE, False) if pipe_stdin else self._sink_target(self.stdin)
        )
        stdout_arg, relay_stdout = (
            (subprocess.PIPE, False) if pipe_stdout else self._sink_target(self.stdout)
        )
        stderr_arg, relay_stderr = (
            (subprocess.PIPE, False) if pipe_stderr else self._sink_target(self.stderr)
        )

        popen = subprocess.Popen(
            list(argv),
            executable=executable,
            cwd=cwd,
            env=dict(environ),
            stdin=stdin_arg,
            stdout=stdout_arg,
            stderr=stderr_arg,
        )

        relays: list[_Relay] = []
        if relay_stdin:
            relays.append(
                _Relay(self.stdin, popen.stdin, close_source=False, close_sink=True),
            )
        if relay_stdout:
            relays.append(
                _Relay(popen.stdout, self.stdout, close_source=True, close_sink=False),
            )
        if relay_stderr:
            relays.append(
                _Relay(popen.stderr, self.stderr, close_source=True, close_sink=False),
            )

        logger.debug("spawned %s (pid %s)", subprocess.list2cmdline(argv), popen.pid)

        return ProductionProcess(
            popen,
            stdin=popen.stdin if pipe_stdin else None,
            stdout=popen.stdout if pipe_stdout else None,
            stderr=popen.stderr if pipe_stderr else None,
            relays=relays,
        )
