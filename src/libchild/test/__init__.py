"""Helpers for testing libchild and code built on top of it."""

from __future__ import annotations

import logging
import sys
import textwrap

logger = logging.getLogger(__name__)


def python_script(code: str) -> list[str]:
    """Return tokens running ``code`` with the current interpreter.

    Production tests use this instead of system tools, so they only need a
    Python interpreter to be present.

    >>> tokens = python_script('''
    ...     import sys
    ...     sys.exit(3)
    ... ''')
    >>> tokens[1:]
    ['-c', 'import sys\\nsys.exit(3)\\n']
    """
    return [sys.executable, "-c", textwrap.dedent(code).lstrip("\n")]
