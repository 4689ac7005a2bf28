"""Marker-block helpers for patch targets.

A block is a line equal to the begin marker, any number of interior lines,
and the next line equal to the end marker. Only the first block in a file is
managed. Lines are compared without their line terminator.
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional

TOP = "top"
BOTTOM = "bottom"
INSERTION_POLICIES = (TOP, BOTTOM)


class UnclosedBlockError(ValueError):
    """A begin marker line has no end marker line after it."""


class Block(NamedTuple):
    begin_index: int
    end_index: int


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _ensure_newline(text: str) -> str:
    if text and not text.endswith("\n"):
        return text + "\n"
    return text


def find_block(lines: List[str], begin: str, end: str) -> Optional[Block]:
    """Locate the first marker block in ``lines`` (as from split_lines())."""
    for i, line in enumerate(lines):
        if _strip_eol(line) != begin:
            continue
        for j in range(i + 1, len(lines)):
            if _strip_eol(lines[j]) == end:
                return Block(i, j)
        raise UnclosedBlockError(f"{begin!r} at line {i + 1} is not closed by {end!r}")
    return None


def split_lines(text: str) -> List[str]:
    """Split after each LF only, keeping terminators, so CRLF pairs stay intact."""
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def extract_snippet(text: str, begin: str, end: str) -> Optional[str]:
    """Return the text strictly between the markers, or None without a block."""
    lines = split_lines(text)
    block = find_block(lines, begin, end)
    if block is None:
        return None
    return "".join(lines[block.begin_index + 1:block.end_index])


def render_block(begin: str, end: str, snippet: str) -> str:
    return f"{begin}\n{_ensure_newline(snippet)}{end}\n"


def replace_snippet(text: str, begin: str, end: str, snippet: str) -> Optional[str]:
    """Replace the interior of the first block; None when there is no block."""
    lines = split_lines(text)
    block = find_block(lines, begin, end)
    if block is None:
        return None
    head = "".join(lines[:block.begin_index + 1])
    tail = "".join(lines[block.end_index:])
    return head + _ensure_newline(snippet) + tail


def insert_block(text: str, begin: str, end: str, snippet: str, add_to: str = TOP) -> str:
    """Add a new block at the top or bottom of ``text``."""
    block = render_block(begin, end, snippet)
    if add_to == TOP:
        return block + text
    if add_to == BOTTOM:
        return _ensure_newline(text) + block
    raise ValueError(f"add_to={add_to} unrecognized")


def apply_snippet(text: str, begin: str, end: str, snippet: str, add_to: str = TOP) -> str:
    """Replace the block interior if a block exists, else insert a new block."""
    replaced = replace_snippet(text, begin, end, snippet)
    if replaced is not None:
        return replaced
    return insert_block(text, begin, end, snippet, add_to)
