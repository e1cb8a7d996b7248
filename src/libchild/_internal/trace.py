"""Lightweight tracing for libchild timing audits.

Spans are appended as JSON lines to :data:`TRACE_PATH` when
:envvar:`LIBCHILD_TRACE` is set; otherwise every call is a no-op.
"""

from __future__ import annotations

import contextlib
import itertools
import json
import os
import pathlib
import threading
import time
import typing as t

from libchild.constants import _env_flag

TRACE_PATH = os.getenv("LIBCHILD_TRACE_PATH", "/tmp/libchild-trace.jsonl")

TRACE_ENABLED = _env_flag("LIBCHILD_TRACE")

_TRACE_COUNTER = itertools.count(1)
_TRACE_LOCK = threading.Lock()


def _write_event(event: dict[str, t.Any]) -> None:
    event["pid"] = os.getpid()
    event["thread"] = threading.get_ident()
    with _TRACE_LOCK, pathlib.Path(TRACE_PATH).open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(event, sort_keys=False, default=str))
        handle.write("\n")


@contextlib.contextmanager
def span(name: str, **fields: t.Any) -> t.Iterator[None]:
    """Time the enclosed block and record it as ``name``."""
    if not TRACE_ENABLED:
        yield
        return
    span_id = next(_TRACE_COUNTER)
    start_ns = time.perf_counter_ns()
    try:
        yield
    finally:
        event = {
            "event": name,
            "span_id": span_id,
            "start_ns": start_ns,
            "duration_ns": time.perf_counter_ns() - start_ns,
        }
        event.update(fields)
        _write_event(event)
