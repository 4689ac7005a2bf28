"""Shared helpers for PatchKit: marker blocks, embedded archive, external tools."""

from .archive import SENTINEL, extract_archive, write_archive, list_entries, read_entry
from .markers import TOP, BOTTOM, INSERTION_POLICIES, extract_snippet, apply_snippet
from .tools import DiffTool, EditTool, BuiltinDiffTool, ExternalDiffTool, ExternalEditTool

__all__ = [
    # Archive
    "SENTINEL",
    "extract_archive",
    "write_archive",
    "list_entries",
    "read_entry",
    # Markers
    "TOP",
    "BOTTOM",
    "INSERTION_POLICIES",
    "extract_snippet",
    "apply_snippet",
    # Tools
    "DiffTool",
    "EditTool",
    "BuiltinDiffTool",
    "ExternalDiffTool",
    "ExternalEditTool",
]
