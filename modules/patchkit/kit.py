"""Kit: the object a kit script talks to.

A kit script declares the files it manages and hands control to run()::

    from patchkit import Kit

    with Kit(__file__) as kit:
        kit.patch("~/.bashrc", begin="# >>> mykit >>>", end="# <<< mykit <<<", add_to="bottom")
        kit.copy("~/.vimrc")
        raise SystemExit(kit.run())

    # ==== PATCHKIT ARCHIVE ====

Creating a Kit extracts the archive embedded in the script into a scratch
directory. run() drives the session, writes the archive back when the
reference store changed, and removes the scratch directory. The directory is
also removed when the script stops for any other reason.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import tempfile
import weakref
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TextIO

from patchkit.config import PatchKitConfig, get_config
from patchkit.core.actions import Action, ActionEngine
from patchkit.core.registry import CopyTarget, PatchTarget, Registry
from patchkit.core.session import EXIT_OK, Session
from patchkit.core.store import ReferenceStore
from patchkit.errors import ConfigurationError, PersistenceError
from patchkit.lib import archive, console
from patchkit.lib.markers import TOP
from patchkit.lib.tools import DiffTool, EditTool, diff_tool_from_config, edit_tool_from_config
from patchkit.logger import session_logger

logger = logging.getLogger(__name__)

EXIT_PERSISTENCE = 1
EXIT_BATCH_FAILED = 1
EXIT_CONFIG = 2


def script_usage(text: str) -> str:
    """Comment header of a kit script: lines 2.. up to a ``##`` line, ``# `` stripped."""
    out: List[str] = []
    for line in text.splitlines()[1:]:
        if line == "##":
            break
        if line.startswith("# "):
            out.append(line[2:])
        elif line == "#":
            out.append("")
    return "\n".join(out).strip("\n")


class Kit:
    def __init__(
        self,
        script: str,
        *,
        config: Optional[PatchKitConfig] = None,
        diff_tool: Optional[DiffTool] = None,
        edit_tool: Optional[EditTool] = None,
        input_fn: Callable[[str], str] = input,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        self.script = Path(script).resolve()
        self.config = config or get_config()
        self._input = input_fn
        self._out = out
        self._err = err

        self.scratch = Path(tempfile.mkdtemp(prefix=f"{self.config.store.tmp_prefix}{self.script.name}."))
        self._finalizer = weakref.finalize(self, shutil.rmtree, str(self.scratch), ignore_errors=True)
        try:
            count = archive.extract_archive(self.script, self.scratch)
            self.store = ReferenceStore(self.scratch, persister=self._persist)
        except Exception:
            self.close()
            raise
        logger.debug("Loaded %d reference entries from %s", count, self.script)

        self.registry = Registry(
            self.store,
            strict_existence=self.config.store.strict_existence,
            warn=lambda text: console.error(text, self._err),
        )
        self.engine = ActionEngine(
            self.store,
            diff_tool or diff_tool_from_config(self.config.tools),
            edit_tool or edit_tool_from_config(self.config.tools),
            backup_suffix=self.config.store.backup_suffix,
            err=self._err,
        )

    # ---- Declarations ----

    def patch(
        self,
        path: str,
        begin: Optional[str] = None,
        end: Optional[str] = None,
        add_to: str = TOP,
    ) -> Optional[PatchTarget]:
        return self.registry.register_patch(path, begin=begin, end=end, add_to=add_to)

    def copy(self, *paths: str) -> List[CopyTarget]:
        return self.registry.register_copy(*paths)

    # ---- Lifecycle ----

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def close(self) -> None:
        """Remove the scratch directory (unsaved store changes are lost)."""
        self._finalizer()

    def __enter__(self) -> "Kit":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        if isinstance(exc, ConfigurationError):
            console.error(str(exc), self._err)
            raise SystemExit(EXIT_CONFIG) from exc

    def _persist(self, directory: Path) -> Path:
        return archive.write_archive(self.script, directory, backup_suffix=self.config.store.backup_suffix)

    def _parser(self) -> argparse.ArgumentParser:
        try:
            description = script_usage(self.script.read_text(encoding="utf-8"))
        except OSError:
            description = ""
        parser = argparse.ArgumentParser(
            prog=self.script.name,
            description=description or None,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--action",
            choices=[action.value for action in Action],
            help="Run one action without the menu",
        )
        parser.add_argument("--all", action="store_true", help="Act on every registered file")
        parser.add_argument("files", nargs="*", help="Registered files to act on")
        return parser

    def run(self, argv: Optional[Sequence[str]] = None) -> int:
        """Run the session and tear down; returns the process exit code."""
        parser = self._parser()
        args = parser.parse_args(argv)
        if args.files and not args.action:
            parser.error("files given without --action")
        if args.action and not (args.all or args.files):
            parser.error("--action needs --all or at least one file")

        session = Session(
            self.registry,
            self.engine,
            input_fn=self._input,
            out=self._out,
            err=self._err,
            rule_width=self.config.ui.rule_width,
        )
        session_logger.info("start", kit=str(self.script), files=len(self.registry))
        try:
            try:
                if args.action:
                    code = self._run_batch(session, Action(args.action), args.all, args.files)
                else:
                    code = session.run()
            except Exception:
                # Keep what earlier files in the batch already changed
                self._flush()
                raise
            if not self._flush():
                return EXIT_PERSISTENCE
            session_logger.info("end", kit=str(self.script), code=code)
            return code
        finally:
            self.close()

    def _flush(self) -> bool:
        """Write the store back if dirty; False when that failed."""
        try:
            location = self.store.flush_if_dirty()
        except PersistenceError as e:
            console.error(str(e), self._err)
            session_logger.error("persist_failed", kit=str(self.script), error=str(e))
            return False
        if location is not None:
            console.msg(f"Updated {location}", self._err)
            session_logger.info("persisted", kit=str(self.script))
        return True

    def _run_batch(self, session: Session, action: Action, everything: bool, paths: Sequence[str]) -> int:
        if everything:
            session.selection.select_all(self.registry.files())
        else:
            for path in paths:
                managed = self.registry.find(path)
                if managed is None:
                    console.error(f"{path}: not registered in {self.script.name}", self._err)
                    return EXIT_CONFIG
                session.selection.add(managed)
        result = session.apply(action)
        if result is None or not result.ok:
            return EXIT_BATCH_FAILED
        return EXIT_OK
