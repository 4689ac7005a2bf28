"""Interactive selection and dispatch loop.

Each round prints the registered files as a numbered menu and reads one reply:

  <number>   toggle that file in the selection
  a / n      select all / none
  c p i e f  compare, patch, import, edit or forget every selected file
  q          quit (end of input quits as well)

An empty reply just shows the menu again. The menu and prompt go to the
diagnostic stream; only compare output goes to ``out``.

Actions run over the selection in order. A file that fails is reported and
the batch moves on. Persisting the store is left to the caller.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, TextIO, Tuple

from patchkit.core.actions import ACTION_KEYS, MUTATING_ACTIONS, UNKNOWN, Action, ActionEngine
from patchkit.core.registry import ManagedFile, Registry
from patchkit.errors import PerFileActionError
from patchkit.lib import console
from patchkit.logger import Logger, session_logger

EXIT_OK = 0
EXIT_INTERRUPTED = 130


class Selection:
    """Order-preserving, duplicate-free set of managed files."""

    def __init__(self, items: Iterable[ManagedFile] = ()):
        self._items: List[ManagedFile] = []
        for item in items:
            self.add(item)

    def add(self, item: ManagedFile) -> None:
        if item not in self._items:
            self._items.append(item)

    def remove(self, item: ManagedFile) -> None:
        self._items = [x for x in self._items if x != item]

    def toggle(self, item: ManagedFile) -> bool:
        """Flip membership of ``item``; returns True if it is now selected."""
        if item in self._items:
            self.remove(item)
            return False
        self._items.append(item)
        return True

    def select_all(self, items: Iterable[ManagedFile]) -> None:
        self._items = []
        for item in items:
            self.add(item)

    def clear(self) -> None:
        self._items = []

    def paths(self) -> List[str]:
        return [item.path for item in self._items]

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __iter__(self) -> Iterator[ManagedFile]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


@dataclass
class SessionState:
    selection: Selection = field(default_factory=Selection)
    dirty: bool = False


@dataclass
class BatchResult:
    action: Action
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class Session:
    def __init__(
        self,
        registry: Registry,
        engine: ActionEngine,
        *,
        input_fn: Callable[[str], str] = input,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        rule_width: int = 80,
        events: Logger = session_logger,
    ):
        self.registry = registry
        self.engine = engine
        self.state = SessionState()
        self._input = input_fn
        self._out = out
        self._err = err
        self._rule = "#" * rule_width
        self._events = events

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err or sys.stderr

    @property
    def selection(self) -> Selection:
        return self.state.selection

    # ---- Rendering ----

    def menu_lines(self) -> List[str]:
        files = self.registry.files()
        if not files:
            return ["# No files registered"]
        width = len(str(len(files)))
        lines = []
        for i, managed in enumerate(files, start=1):
            mark = "*" if managed in self.selection else " "
            notes = []
            if managed.reference_only:
                notes.append("kit only")
            if self.engine.state(managed) == UNKNOWN:
                notes.append("not imported")
            suffix = f"  ({', '.join(notes)})" if notes else ""
            lines.append(f"{i:>{width}}) {mark} {managed.path}{suffix}")
        return lines

    def prompt(self) -> str:
        parts = [self._rule]
        if self.selection:
            parts.append(f"# ({len(self.selection)} selected: {' '.join(self.selection.paths())})")
            parts.append("##")
            parts.append("# Select/unselect more files (number, [a]ll, or [n]one)")
            parts.append("# Then [c]ompare, [p]atch, [i]mport, [e]dit, [f]orget")
        else:
            parts.append("# Select files (number, [a]ll, or [n]one)")
        return "\n".join(parts) + ", or [q]uit: "

    def render(self) -> None:
        for line in self.menu_lines():
            print(line, file=self.err)

    # ---- Dispatch ----

    def handle(self, reply: str) -> bool:
        """Apply one reply; returns False when the session should end."""
        reply = reply.strip()
        if not reply:
            return True
        files = self.registry.files()
        if reply.isdigit():
            index = int(reply)
            if 1 <= index <= len(files):
                self.selection.toggle(files[index - 1])
                return True
        elif reply == "a":
            self.selection.select_all(files)
            return True
        elif reply == "n":
            self.selection.clear()
            return True
        elif reply == "q":
            return False
        elif reply in ACTION_KEYS:
            self.apply(ACTION_KEYS[reply])
            return True
        console.error(f"{reply}: Unrecognized response", self.err)
        return True

    def apply(self, action: Action) -> Optional[BatchResult]:
        """Run ``action`` on every selected file, collecting per-file failures."""
        if not self.selection:
            console.error("No files selected", self.err)
            return None
        result = BatchResult(action=action)
        for managed in self.selection:
            try:
                diff = self.engine.run(action, managed)
            except PerFileActionError as e:
                self._fail(result, managed, str(e))
                continue
            except OSError as e:
                self._fail(result, managed, f"{managed.path}: {e}")
                continue
            if action == Action.COMPARE and diff:
                self.out.write(diff)
                self.out.flush()
            result.succeeded.append(managed.path)
            self._events.info("action", action=action.value, path=managed.path, ok=True)
        if action in MUTATING_ACTIONS and result.succeeded:
            self.state.dirty = True
        return result

    def _fail(self, result: BatchResult, managed: ManagedFile, message: str) -> None:
        console.error(message, self.err)
        result.failed.append((managed.path, message))
        self._events.info("action", action=result.action.value, path=managed.path, ok=False, error=message)

    def run(self) -> int:
        print(self._rule, file=self.err)
        while True:
            self.render()
            print(self.prompt(), end="", file=self.err)
            self.err.flush()
            try:
                reply = self._input("")
            except EOFError:
                print(file=self.err)
                break
            except KeyboardInterrupt:
                print(file=self.err)
                return EXIT_INTERRUPTED
            if not self.handle(reply):
                break
        return EXIT_OK


def run_interactive_session(registry: Registry, engine: ActionEngine, **kwargs) -> int:
    """Drive the menu until the user quits; returns the process exit code."""
    return Session(registry, engine, **kwargs).run()
