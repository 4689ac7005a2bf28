"""Shared fixtures for all test modules."""
from pathlib import Path

import pytest

from patchkit.config import reload_config
from patchkit.core.actions import ActionEngine
from patchkit.core.registry import Registry
from patchkit.core.store import ReferenceStore
from patchkit.errors import ToolInvocationError
from patchkit.lib.archive import SENTINEL
from patchkit.lib.tools import BuiltinDiffTool, EditTool


class RecordingEditTool(EditTool):
    """Edit tool that records its calls instead of opening an editor.

    ``on_edit(reference, target)`` runs in place of the user's editing;
    ``fail=True`` makes every call raise like a crashed editor.
    """
    __test__ = False

    def __init__(self, on_edit=None, fail=False):
        self.calls = []
        self.on_edit = on_edit
        self.fail = fail

    def edit(self, reference: Path, target: Path) -> None:
        self.calls.append((reference, target))
        if self.on_edit is not None:
            self.on_edit(reference, target)
        if self.fail:
            raise ToolInvocationError(["fake-merge", str(reference), str(target)], 1)


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Point config lookup and logs at a temp home and run inside a temp cwd."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("PATCHKIT_HOME", str(home / ".patchkit"))
    monkeypatch.setenv("PATCHKIT_QUIET", "1")
    for var in ("PATCHKIT_CONFIG", "PATCHKIT_DIFF", "PATCHKIT_MERGETOOL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(work)
    reload_config()
    yield
    reload_config()


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def persisted():
    """Records every directory handed to the store's persister."""
    return []


@pytest.fixture
def store(tmp_path, persisted):
    root = tmp_path / "store"
    root.mkdir()

    def _persist(directory):
        persisted.append(directory)
        return tmp_path / "kit.py"

    return ReferenceStore(root, persister=_persist)


@pytest.fixture
def edit_tool():
    return RecordingEditTool()


@pytest.fixture
def engine(store, edit_tool):
    return ActionEngine(store, BuiltinDiffTool(), edit_tool)


@pytest.fixture
def registry(store):
    return Registry(store, strict_existence=False)


@pytest.fixture
def kit_script(tmp_path):
    """A kit script with an empty archive section."""
    path = tmp_path / "mykit.py"
    path.write_text(
        "#!/usr/bin/env python3\n"
        "# mykit -- dotfiles for the lab machines\n"
        "#\n"
        "# Run without arguments for the menu.\n"
        "##\n"
        "from patchkit import Kit\n"
        "\n"
        f"{SENTINEL}\n",
        encoding="utf-8",
    )
    return path
