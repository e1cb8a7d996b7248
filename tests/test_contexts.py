"""Tests for production and simulated contexts."""

from __future__ import annotations

import io
import os
import pathlib
import signal
import sys
import typing as t

import pytest

from libchild import exc
from libchild.contexts import (
    MemoryPipe,
    ProductionContext,
    SimulatedContext,
    WriteSequence,
)
from libchild.test import python_script

if t.TYPE_CHECKING:
    from libchild.contexts import SimulatedProcess


def spawn(ctx: t.Any, name: str, *args: str, **pipes: bool) -> t.Any:
    executable = ctx.which(name, ctx.environ, ctx.cwd)
    assert executable is not None
    return ctx.spawn(executable, [name, *args], ctx.cwd, ctx.environ, **pipes)


def test_memory_pipe_broken_pipe() -> None:
    """Writing after the read end closed raises BrokenPipeError."""
    pipe = MemoryPipe()
    pipe.writer.write(b"ok")
    pipe.reader.close()
    with pytest.raises(BrokenPipeError):
        pipe.writer.write(b"more")


def test_memory_pipe_read_blocks_until_close() -> None:
    """A reader sees buffered data, then end of file once the writer closes."""
    pipe = MemoryPipe()
    pipe.writer.write(b"a")
    pipe.writer.write(b"b")
    assert pipe.reader.read(1) == b"a"
    pipe.writer.close()
    assert pipe.reader.read() == b"b"
    assert pipe.reader.read() == b""


def test_memory_pipe_shared_sequence() -> None:
    """Pipes sharing a sequence number writes across both, one write per read."""
    sequence = WriteSequence()
    out, err = MemoryPipe(sequence), MemoryPipe(sequence)
    out.writer.write(b"o1")
    err.writer.write(b"e1")
    out.writer.write(b"")
    out.writer.write(b"o2")
    out.writer.close()
    err.writer.close()
    assert out.reader.read_sequenced() == (0, b"o1")
    assert out.reader.read_sequenced() == (2, b"o2")
    assert out.reader.read_sequenced() == (None, b"")
    assert err.reader.read_sequenced(1) == (1, b"e")
    assert err.reader.read_sequenced(1) == (1, b"1")
    assert err.reader.read_sequenced() == (None, b"")


class TestSimulatedContext:
    """SimulatedContext capabilities."""

    def test_defaults(self) -> None:
        ctx = SimulatedContext(environ={"LANG": "C"})
        assert ctx.cwd == "/home/user"
        assert ctx.environ["LANG"] == "C"
        assert ctx.environ["PATH"] == "/usr/local/bin:/usr/bin:/bin"
        assert "/home" in ctx.directories

    def test_register_and_which(self) -> None:
        ctx = SimulatedContext()
        assert ctx.register("tool", lambda proc: 0) == "/usr/bin/tool"
        assert ctx.register("bin/local", lambda proc: 0) == "/home/user/bin/local"
        assert ctx.which("tool", ctx.environ, ctx.cwd) == "/usr/bin/tool"
        assert ctx.which("./bin/local", ctx.environ, ctx.cwd) == (
            "/home/user/bin/local"
        )
        assert ctx.which("missing", ctx.environ, ctx.cwd) is None
        assert ctx.which("tool", {"PATH": "/opt/bin"}, ctx.cwd) is None
        assert ctx.which("", ctx.environ, ctx.cwd) is None

    def test_resolve_cwd(self) -> None:
        ctx = SimulatedContext()
        assert ctx.resolve_cwd(None) == "/home/user"
        assert ctx.resolve_cwd("sub/../src") == "/home/user/src"
        assert ctx.resolve_cwd(pathlib.PurePosixPath("/tmp")) == "/tmp"

    def test_spawn_unknown_directory(self) -> None:
        ctx = SimulatedContext(programs={"tool": lambda proc: 0})
        with pytest.raises(FileNotFoundError) as exc_info:
            ctx.spawn("/usr/bin/tool", ["tool"], "/nowhere", ctx.environ)
        assert exc_info.value.filename == "/nowhere"

    def test_passthrough_streams(self) -> None:
        def program(proc: SimulatedProcess) -> int:
            data = proc.stdin.read()
            proc.stdout.write(data.upper())
            proc.print("done", stream="stderr")
            return 0

        with SimulatedContext(programs={"up": program}, stdin=b"abc") as ctx:
            handle = spawn(ctx, "up")
            assert handle.stdout is None
            assert handle.wait() == 0
            ctx.release(handle)
        assert ctx.stdout_bytes == b"ABC"
        assert ctx.stderr_bytes == b"done\n"

    def test_system_exit(self) -> None:
        def program(proc: SimulatedProcess) -> None:
            sys.exit(4)

        with SimulatedContext(programs={"quit": program}) as ctx:
            handle = spawn(ctx, "quit")
            assert handle.wait() == 4
            ctx.release(handle)

    def test_program_error_reraised(self) -> None:
        def program(proc: SimulatedProcess) -> int:
            msg = "broken program"
            raise RuntimeError(msg)

        with SimulatedContext(programs={"bad": program}) as ctx:
            handle = spawn(ctx, "bad")
            with pytest.raises(RuntimeError, match="broken program"):
                handle.wait()
            ctx.release(handle)

    def test_kill(self) -> None:
        def program(proc: SimulatedProcess) -> int:
            proc.killed.wait()
            return 0

        with SimulatedContext(programs={"hang": program}) as ctx:
            handle = spawn(ctx, "hang", pipe_stdout=True)
            assert handle.poll() is None
            handle.kill()
            assert handle.wait() == -signal.SIGKILL
            ctx.release(handle)

    def test_leaked_handle(self) -> None:
        def program(proc: SimulatedProcess) -> int:
            proc.killed.wait()
            return 0

        ctx = SimulatedContext(programs={"hang": program})
        handle = spawn(ctx, "hang")
        assert ctx.live_handles == [handle]
        with pytest.raises(exc.HandleLeakError, match="1 live process handle"):
            ctx.close()
        assert handle.poll() == -signal.SIGKILL
        assert ctx.live_handles == []


class TestProductionContext:
    """ProductionContext capabilities."""

    def test_snapshots(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIBCHILD_SNAPSHOT", "before")
        ctx = ProductionContext()
        monkeypatch.setenv("LIBCHILD_SNAPSHOT", "after")
        assert ctx.environ["LIBCHILD_SNAPSHOT"] == "before"
        assert ctx.cwd == os.getcwd()

    def test_child_environment(self) -> None:
        ctx = ProductionContext(environ={"A": "1", "B": "2"})
        assert ctx.child_environment({"B": "3"}) == {"A": "1", "B": "3"}
        assert ctx.environ == {"A": "1", "B": "2"}

    def test_which(self, tmp_path: pathlib.Path) -> None:
        ctx = ProductionContext(cwd=str(tmp_path))
        assert ctx.which(sys.executable, ctx.environ, ctx.cwd) == sys.executable
        assert ctx.which("libchild-no-such-program", ctx.environ, ctx.cwd) is None

        script = tmp_path / "tool.sh"
        script.write_text("#!/bin/sh\n", encoding="utf-8")
        script.chmod(0o755)
        found = ctx.which("./tool.sh", ctx.environ, ctx.cwd)
        assert found is not None
        assert os.path.normpath(found) == str(script)
        bindir = str(tmp_path)
        assert ctx.which("tool.sh", {"PATH": bindir}, ctx.cwd) == str(script)

    def test_relay_to_sinks_without_fileno(self, tmp_path: pathlib.Path) -> None:
        stdout, stderr = io.BytesIO(), io.StringIO()
        code = """
            import sys
            data = sys.stdin.read()
            sys.stdout.write(data.upper())
            sys.stderr.write("é\\n")
        """
        with ProductionContext(
            cwd=str(tmp_path),
            environ={**os.environ, "PYTHONIOENCODING": "utf-8"},
            stdin=io.BytesIO(b"relayed"),
            stdout=stdout,
            stderr=stderr,
        ) as ctx:
            tokens = python_script(code)
            handle = ctx.spawn(tokens[0], tokens, ctx.cwd, ctx.environ)
            assert handle.wait() == 0
            ctx.release(handle)
        assert stdout.getvalue() == b"RELAYED"
        assert stderr.getvalue() == "é\n"

    def test_sink_with_fileno(self, tmp_path: pathlib.Path) -> None:
        target = tmp_path / "out.txt"
        with target.open("wb") as sink, ProductionContext(stdout=sink) as ctx:
            tokens = python_script("print('to file')")
            handle = ctx.spawn(tokens[0], tokens, ctx.cwd, ctx.environ)
            assert handle.wait() == 0
            ctx.release(handle)
        assert target.read_text(encoding="utf-8").strip() == "to file"

    def test_leaked_handle(self) -> None:
        ctx = ProductionContext()
        tokens = python_script("import time; time.sleep(60)")
        ctx.spawn(tokens[0], tokens, ctx.cwd, ctx.environ)
        with pytest.raises(exc.HandleLeakError):
            ctx.close()
        assert ctx.live_handles == []
