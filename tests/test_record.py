"""Tests for execution records and exit statuses."""

from __future__ import annotations

import signal

import pytest

from libchild.record import ExecutionRecord, ExitStatus


@pytest.mark.parametrize(
    ("returncode", "code", "sig", "success"),
    [
        (0, 0, None, True),
        (1, 1, None, False),
        (255, 255, None, False),
        (-signal.SIGTERM, None, signal.SIGTERM, False),
    ],
    ids=["zero", "one", "max", "sigterm"],
)
def test_from_returncode(
    returncode: int,
    code: int | None,
    sig: int | None,
    success: bool,
) -> None:
    """Negative return codes become signals."""
    status = ExitStatus.from_returncode(returncode)
    assert status.code == code
    assert status.signal == sig
    assert status.success() is success


def test_status_str() -> None:
    """Statuses render for error messages."""
    assert str(ExitStatus(code=0)) == "exit code: 0"
    assert str(ExitStatus(signal=int(signal.SIGTERM))) == (
        f"signal: {int(signal.SIGTERM)} (SIGTERM)"
    )


def test_combined_follows_arrivals() -> None:
    """Combined output interleaves chunks by arrival, not by stream."""
    record = ExecutionRecord(
        argv=("prog",),
        stdout=b"AABB",
        stderr=b"xy",
        status=ExitStatus(code=0),
        arrivals=(("stderr", 1), ("stdout", 2), ("stderr", 1), ("stdout", 2)),
    )
    assert record.combined == b"xAAyBB"


def test_combined_single_stream() -> None:
    """Without stderr the combined output is stdout."""
    record = ExecutionRecord(
        argv=("prog",),
        stdout=b"abc",
        stderr=b"",
        status=ExitStatus(code=0),
        arrivals=(("stdout", 1), ("stdout", 2)),
    )
    assert record.combined == b"abc"


def test_record_is_frozen() -> None:
    """Records are immutable."""
    record = ExecutionRecord(
        argv=("prog",),
        stdout=b"",
        stderr=b"",
        status=ExitStatus(code=0),
    )
    with pytest.raises(AttributeError):
        record.stdout = b"changed"  # type: ignore[misc]
