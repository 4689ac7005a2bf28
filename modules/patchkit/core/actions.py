"""Action engine: compare / patch / import / edit / forget for one managed file.

Each action reads the file's current on-disk state and its reference entry.
Patch targets work on the text strictly between their marker lines; copy
targets work on the whole file as raw bytes. Patch targets are decoded as UTF-8
with their line endings kept as they are. Per-file failures raise PerFileActionError
subclasses so a batch can report them and carry on.

State per file: unknown --import--> tracked --forget--> unknown; compare,
patch and edit keep a tracked file tracked.
"""

from __future__ import annotations

import enum
import logging
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional, TextIO

from patchkit.core.registry import COPY, PATCH, ManagedFile
from patchkit.core.store import ReferenceStore
from patchkit.errors import (
    MalformedMarkersError,
    MissingReferenceError,
    MissingSourceError,
    ToolInvocationError,
    UndecodableFileError,
)
from patchkit.lib import console
from patchkit.lib.markers import UnclosedBlockError, apply_snippet, extract_snippet
from patchkit.lib.tools import DiffTool, EditTool

logger = logging.getLogger(__name__)

TRACKED = "tracked"
UNKNOWN = "unknown"


class Action(str, enum.Enum):
    COMPARE = "compare"
    PATCH = "patch"
    IMPORT = "import"
    EDIT = "edit"
    FORGET = "forget"

    @property
    def key(self) -> str:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value.capitalize()


ACTION_KEYS: Dict[str, Action] = {action.key: action for action in Action}

# Actions whose success changes the reference store
MUTATING_ACTIONS = frozenset({Action.IMPORT, Action.EDIT, Action.FORGET})


def _decode(data: Optional[bytes], label: str) -> str:
    if data is None:
        return ""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise UndecodableFileError(label) from None


def _for_display(data: Optional[bytes]) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class ActionEngine:
    def __init__(
        self,
        store: ReferenceStore,
        diff_tool: DiffTool,
        edit_tool: EditTool,
        *,
        backup_suffix: str = "~",
        err: Optional[TextIO] = None,
    ):
        self.store = store
        self.diff_tool = diff_tool
        self.edit_tool = edit_tool
        self.backup_suffix = backup_suffix
        self._err = err

    def _msg(self, text: str) -> None:
        console.msg(text, self._err)

    # ---- Reads ----

    @staticmethod
    def read_current(managed: ManagedFile) -> Optional[bytes]:
        path = Path(managed.path)
        if not path.is_file():
            return None
        return path.read_bytes()

    def state(self, managed: ManagedFile) -> str:
        return TRACKED if self.store.exists(managed.identifier) else UNKNOWN

    def current_slice(self, managed: ManagedFile) -> str:
        """The part of the current file that is compared with the reference.

        Missing files, missing blocks and malformed blocks all read as empty.
        """
        text = _for_display(self.read_current(managed))
        if managed.kind == COPY:
            return text
        try:
            snippet = extract_snippet(text, managed.begin, managed.end)
        except UnclosedBlockError:
            return ""
        return snippet or ""

    # ---- Actions ----

    def compare(self, managed: ManagedFile) -> str:
        reference = _for_display(self.store.get(managed.identifier))
        current = self.current_slice(managed)
        try:
            return self.diff_tool.diff(
                reference, current, f"{managed.path} (imported)", managed.path,
            )
        except ToolInvocationError as e:
            logger.warning("Compare of %s produced no diff: %s", managed.path, e)
            return ""

    def patch(self, managed: ManagedFile) -> None:
        reference = self.store.get(managed.identifier)
        if managed.kind == PATCH:
            current = _decode(self.read_current(managed), managed.path)
            snippet = _decode(reference, f"{managed.path} (imported)")
            try:
                updated = apply_snippet(
                    current, managed.begin, managed.end, snippet, managed.add_to,
                ).encode("utf-8")
            except UnclosedBlockError:
                raise MalformedMarkersError(managed.path, managed.begin, managed.end) from None
        else:
            if reference is None:
                raise MissingReferenceError(managed.path)
            updated = reference
        self._write_target(Path(managed.path), updated)
        self._msg(f"Patched {managed.path}")

    def _write_target(self, path: Path, content: bytes) -> None:
        if path.exists():
            if self.backup_suffix:
                shutil.copy2(path, path.with_name(path.name + self.backup_suffix))
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    def import_(self, managed: ManagedFile) -> None:
        current = self.read_current(managed)
        if current is None:
            raise MissingSourceError(managed.path)
        if managed.kind == PATCH:
            try:
                snippet = extract_snippet(_decode(current, managed.path), managed.begin, managed.end)
            except UnclosedBlockError:
                raise MalformedMarkersError(managed.path, managed.begin, managed.end) from None
            data = (snippet or "").encode("utf-8")
        else:
            data = current
        self.store.put(managed.identifier, data, name=managed.path)
        self._msg(f"Imported {managed.path}")

    def edit(self, managed: ManagedFile) -> None:
        """Open reference and target side by side; always dirties the store."""
        entry = self.store.entry_path(managed.identifier)
        self.store.remember(managed.identifier, managed.path)
        try:
            self.edit_tool.edit(entry, Path(managed.path))
        except ToolInvocationError as e:
            logger.info("Edit tool for %s: %s", managed.path, e)
        self.store.mark_dirty()

    def forget(self, managed: ManagedFile) -> None:
        self.store.delete(managed.identifier)
        self._msg(f"Forgot {managed.path}")

    def run(self, action: Action, managed: ManagedFile) -> Optional[str]:
        """Dispatch ``action`` for ``managed``; compare returns its diff text."""
        handlers: Dict[Action, Callable[[ManagedFile], Optional[str]]] = {
            Action.COMPARE: self.compare,
            Action.PATCH: self.patch,
            Action.IMPORT: self.import_,
            Action.EDIT: self.edit,
            Action.FORGET: self.forget,
        }
        return handlers[Action(action)](managed)
