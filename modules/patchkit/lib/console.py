"""User-facing diagnostics. Everything here goes to stderr; stdout carries diffs only."""

import sys
from typing import Optional, TextIO


def msg(text: str, stream: Optional[TextIO] = None) -> None:
    print(f"# {text}", file=stream or sys.stderr)


def error(text: str, stream: Optional[TextIO] = None) -> None:
    print(f"ERROR: {text}", file=stream or sys.stderr)
