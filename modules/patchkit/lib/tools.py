"""External tool layer: decouples the action engine from diff/merge programs.

Two capabilities are consumed by the engine:
- DiffTool: produce a unified diff between two texts (compare)
- EditTool: open two files in an interactive two-way merge tool (edit)

Default implementations run external programs (``diff -u``, ``vimdiff``);
BuiltinDiffTool uses difflib and needs no external binary. Tests substitute
their own implementations.
"""

from __future__ import annotations

import abc
import difflib
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from patchkit.errors import ToolInvocationError

logger = logging.getLogger(__name__)


class DiffTool(abc.ABC):
    """Line-oriented diff between a reference text and a current text."""

    @abc.abstractmethod
    def diff(self, old: str, new: str, old_label: str, new_label: str) -> str:
        """Return unified diff text; empty string means no difference."""
        ...


class EditTool(abc.ABC):
    """Interactive side-by-side editing of the reference and the target."""

    @abc.abstractmethod
    def edit(self, reference: Path, target: Path) -> None:
        """Block until the user closes the tool.

        Raises ToolInvocationError if the tool could not run or exited non-zero.
        """
        ...


class BuiltinDiffTool(DiffTool):
    def __init__(self, context: int = 3):
        self.context = context

    def diff(self, old: str, new: str, old_label: str, new_label: str) -> str:
        lines = difflib.unified_diff(
            old.splitlines(True),
            new.splitlines(True),
            fromfile=old_label,
            tofile=new_label,
            n=self.context,
        )
        out: List[str] = []
        for line in lines:
            out.append(line)
            if not line.endswith("\n"):
                out.append("\n\\ No newline at end of file\n")
        return "".join(out)


class ExternalDiffTool(DiffTool):
    """Run an external diff program on two temporary files.

    Exit status 0 means identical, 1 means different, anything else is a failure.
    """

    def __init__(self, command: Sequence[str] = ("diff", "-u"), timeout: Optional[float] = None):
        self.command = list(command)
        self.timeout = timeout

    def diff(self, old: str, new: str, old_label: str, new_label: str) -> str:
        with tempfile.TemporaryDirectory(prefix="patchkit-diff.") as tmp:
            old_path = Path(tmp) / "reference"
            new_path = Path(tmp) / "current"
            old_path.write_text(old, encoding="utf-8")
            new_path.write_text(new, encoding="utf-8")
            cmd = self.command + [str(old_path), str(new_path)]
            logger.debug("Running %s", cmd)
            try:
                result = subprocess.run(
                    cmd, capture_output=True, text=True, check=False, timeout=self.timeout,
                )
            except FileNotFoundError as e:
                raise ToolInvocationError(cmd, detail=str(e)) from e
            except subprocess.TimeoutExpired as e:
                raise ToolInvocationError(cmd, detail="timed out") from e
        if result.returncode not in (0, 1):
            raise ToolInvocationError(cmd, result.returncode, (result.stderr or "").strip())
        return _relabel(result.stdout, str(old_path), old_label, str(new_path), new_label)


def _relabel(text: str, old_path: str, old_label: str, new_path: str, new_label: str) -> str:
    """Replace temp file names in the ``---``/``+++`` header lines."""
    out: List[str] = []
    for line in text.splitlines(True):
        if line.startswith("--- ") and old_path in line:
            line = f"--- {old_label}\n"
        elif line.startswith("+++ ") and new_path in line:
            line = f"+++ {new_label}\n"
        out.append(line)
    return "".join(out)


class ExternalEditTool(EditTool):
    def __init__(self, command: Sequence[str] = ("vimdiff",)):
        self.command = list(command)

    def edit(self, reference: Path, target: Path) -> None:
        cmd = self.command + [str(reference), str(target)]
        logger.debug("Running %s", cmd)
        try:
            result = subprocess.run(cmd, check=False)
        except (FileNotFoundError, PermissionError) as e:
            raise ToolInvocationError(cmd, detail=str(e)) from e
        except KeyboardInterrupt as e:
            raise ToolInvocationError(cmd, detail="interrupted") from e
        if result.returncode != 0:
            raise ToolInvocationError(cmd, result.returncode)


def diff_tool_from_config(tools_cfg) -> DiffTool:
    if tools_cfg.builtin_diff:
        return BuiltinDiffTool()
    return ExternalDiffTool(tools_cfg.diff_command, timeout=tools_cfg.timeout_seconds)


def edit_tool_from_config(tools_cfg) -> EditTool:
    return ExternalEditTool(tools_cfg.edit_command)
