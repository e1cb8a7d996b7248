"""Fixtures shared by the libchild test suite."""

from __future__ import annotations

import logging

import pytest

logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def no_forced_command_log(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ignore :envvar:`LIBCHILD_LOG_COMMANDS` from the developer's shell.

    Tests that need it patch ``libchild.engine.LOG_ALL_COMMANDS`` themselves.
    """
    monkeypatch.setattr("libchild.engine.LOG_ALL_COMMANDS", False)
