"""Tests for core/actions.py: compare, patch, import, edit, forget per file kind."""

from pathlib import Path

import pytest

from conftest import RecordingEditTool
from patchkit.core.actions import ACTION_KEYS, TRACKED, UNKNOWN, Action, ActionEngine
from patchkit.errors import (
    MalformedMarkersError,
    MissingReferenceError,
    MissingSourceError,
    ToolInvocationError,
    UndecodableFileError,
)
from patchkit.lib.tools import BuiltinDiffTool, DiffTool


@pytest.fixture
def rc(registry, work_dir):
    path = work_dir / "rc"
    return registry.register_patch(str(path), begin="BEGIN", end="END", add_to="bottom")


@pytest.fixture
def dot(registry, work_dir):
    return registry.register_copy(str(work_dir / "dot"))[0]


def test_action_keys():
    assert ACTION_KEYS == {
        "c": Action.COMPARE,
        "p": Action.PATCH,
        "i": Action.IMPORT,
        "e": Action.EDIT,
        "f": Action.FORGET,
    }
    assert Action.IMPORT.label == "Import"


class TestPatchTarget:
    def test_patch_appends_block_at_bottom(self, engine, store, rc):
        Path(rc.path).write_text("line1\nline2\n")
        store.put(rc.identifier, b"X\n")

        engine.patch(rc)

        assert Path(rc.path).read_text() == "line1\nline2\nBEGIN\nX\nEND\n"

    def test_patch_prepends_block_at_top(self, engine, store, registry, work_dir):
        target = registry.register_patch(str(work_dir / "top"), begin="BEGIN", end="END")
        Path(target.path).write_text("line1\n")
        store.put(target.identifier, b"X\n")

        engine.patch(target)

        assert Path(target.path).read_text() == "BEGIN\nX\nEND\nline1\n"

    def test_patch_replaces_only_interior(self, engine, store, rc):
        Path(rc.path).write_text("a\nBEGIN\nold\nstuff\nEND\nz\n")
        store.put(rc.identifier, b"new\n")

        engine.patch(rc)

        assert Path(rc.path).read_text() == "a\nBEGIN\nnew\nEND\nz\n"

    def test_patch_without_reference_writes_empty_block(self, engine, rc):
        Path(rc.path).write_text("a\n")
        engine.patch(rc)
        assert Path(rc.path).read_text() == "a\nBEGIN\nEND\n"

    def test_patch_creates_missing_file_and_parents(self, engine, store, registry, work_dir):
        target = registry.register_patch(str(work_dir / "deep" / "dir" / "rc"), begin="B", end="E")
        store.put(target.identifier, b"X\n")

        engine.patch(target)

        assert Path(target.path).read_text() == "B\nX\nE\n"
        assert not Path(target.path + "~").exists()

    def test_patch_keeps_backup(self, engine, store, rc):
        Path(rc.path).write_text("before\n")
        store.put(rc.identifier, b"X\n")
        engine.patch(rc)
        assert Path(rc.path + "~").read_text() == "before\n"

    def test_patch_is_idempotent(self, engine, store, rc):
        Path(rc.path).write_text("line1\n")
        store.put(rc.identifier, b"X\nY\n")
        engine.patch(rc)
        first = Path(rc.path).read_text()
        engine.patch(rc)
        assert Path(rc.path).read_text() == first

    def test_patch_malformed_block(self, engine, store, rc):
        Path(rc.path).write_text("BEGIN\nno end\n")
        store.put(rc.identifier, b"X\n")
        with pytest.raises(MalformedMarkersError):
            engine.patch(rc)
        assert Path(rc.path).read_text() == "BEGIN\nno end\n"

    def test_import_then_patch_round_trip(self, engine, store, rc):
        original = "keep\nBEGIN\nmine 1\nmine 2\nEND\nkeep too\n"
        Path(rc.path).write_text(original)

        engine.import_(rc)
        engine.patch(rc)

        assert Path(rc.path).read_text() == original
        assert store.get(rc.identifier) == b"mine 1\nmine 2\n"

    def test_import_missing_file(self, engine, store, rc):
        with pytest.raises(MissingSourceError):
            engine.import_(rc)
        assert store.dirty is False

    def test_import_without_block_stores_empty_snippet(self, engine, store, rc):
        store.put(rc.identifier, b"old\n")
        Path(rc.path).write_text("no markers here\n")
        engine.import_(rc)
        assert store.get(rc.identifier) == b""
        assert engine.compare(rc) == ""

    def test_crlf_round_trip(self, engine, store, rc):
        original = b"keep\r\nBEGIN\r\nmine 1\r\nmine 2\r\nEND\r\nkeep too\r\n"
        Path(rc.path).write_bytes(original)

        engine.import_(rc)
        assert store.get(rc.identifier) == b"mine 1\r\nmine 2\r\n"
        engine.patch(rc)

        assert Path(rc.path).read_bytes() == original

    def test_undecodable_target_is_a_per_file_error(self, engine, rc):
        Path(rc.path).write_bytes(b"BEGIN\n\xff\xfe\nEND\n")
        with pytest.raises(UndecodableFileError):
            engine.import_(rc)
        with pytest.raises(UndecodableFileError):
            engine.patch(rc)

    def test_import_malformed_block(self, engine, rc):
        Path(rc.path).write_text("BEGIN\nx\n")
        with pytest.raises(MalformedMarkersError):
            engine.import_(rc)

    def test_compare_after_import_is_empty(self, engine, rc):
        Path(rc.path).write_text("a\nBEGIN\nx\nEND\n")
        engine.import_(rc)
        assert engine.compare(rc) == ""

    def test_compare_shows_interior_changes_only(self, engine, store, rc):
        Path(rc.path).write_text("outside\nBEGIN\nnew\nEND\n")
        store.put(rc.identifier, b"old\n")
        diff = engine.compare(rc)
        assert "-old\n" in diff
        assert "+new\n" in diff
        assert "outside" not in diff

    def test_compare_without_markers_treats_current_as_empty(self, engine, store, rc):
        Path(rc.path).write_text("nothing\n")
        store.put(rc.identifier, b"old\n")
        diff = engine.compare(rc)
        assert "-old\n" in diff
        added = [line for line in diff.splitlines() if line.startswith("+") and not line.startswith("+++")]
        assert added == []

    def test_forget_then_compare_shows_everything_new(self, engine, store, rc):
        Path(rc.path).write_text("BEGIN\none\ntwo\nEND\n")
        engine.import_(rc)
        engine.forget(rc)
        diff = engine.compare(rc)
        assert "+one\n+two\n" in diff
        assert Path(rc.path).read_text() == "BEGIN\none\ntwo\nEND\n"


class TestCopyTarget:
    def test_compare_and_patch_scenario(self, engine, store, dot):
        Path(dot.path).write_text("xyz")
        store.put(dot.identifier, b"abc")

        diff = engine.compare(dot)
        assert "-abc" in diff
        assert "+xyz" in diff

        engine.patch(dot)
        assert Path(dot.path).read_text() == "abc"

    def test_patch_without_reference(self, engine, dot):
        Path(dot.path).write_text("xyz")
        with pytest.raises(MissingReferenceError):
            engine.patch(dot)
        assert Path(dot.path).read_text() == "xyz"

    def test_import_whole_file(self, engine, store, dot):
        Path(dot.path).write_text("whole\nfile\n")
        engine.import_(dot)
        assert store.get(dot.identifier) == b"whole\nfile\n"
        assert store.dirty is True
        assert engine.compare(dot) == ""

    def test_compare_missing_on_both_sides(self, engine, dot):
        assert engine.compare(dot) == ""

    def test_crlf_round_trip(self, engine, store, dot):
        original = b"a=1\r\nb=2\r\n"
        Path(dot.path).write_bytes(original)
        engine.import_(dot)
        engine.patch(dot)
        assert Path(dot.path).read_bytes() == original
        assert store.get(dot.identifier) == original

    def test_binary_file_round_trip(self, engine, store, dot):
        blob = b"\xff\xfe\x00\x01binary\r\n\x80"
        Path(dot.path).write_bytes(blob)
        engine.import_(dot)
        assert store.get(dot.identifier) == blob
        assert engine.compare(dot) == ""
        Path(dot.path).write_bytes(b"changed")
        assert "+changed" in engine.compare(dot)
        engine.patch(dot)
        assert Path(dot.path).read_bytes() == blob

    def test_import_missing(self, engine, dot):
        with pytest.raises(MissingSourceError, match="No such file"):
            engine.import_(dot)


class TestEditAndForget:
    def test_edit_opens_reference_and_target(self, store, dot):
        Path(dot.path).write_text("x")
        tool = RecordingEditTool()
        engine = ActionEngine(store, BuiltinDiffTool(), tool)

        engine.edit(dot)

        assert tool.calls == [(store.entry_path(dot.identifier), Path(dot.path))]
        assert store.name(dot.identifier) == dot.path
        assert store.dirty is True

    def test_edit_changes_reach_the_store(self, store, dot):
        def _user_edits(reference, target):
            reference.write_text("edited\n")

        engine = ActionEngine(store, BuiltinDiffTool(), RecordingEditTool(on_edit=_user_edits))
        engine.edit(dot)
        assert store.get(dot.identifier) == b"edited\n"

    def test_edit_tool_failure_is_swallowed(self, store, dot):
        tool = RecordingEditTool(fail=True)
        engine = ActionEngine(store, BuiltinDiffTool(), tool)
        engine.edit(dot)
        assert len(tool.calls) == 1
        assert store.dirty is True

    def test_forget_absent_entry_is_noop(self, engine, store, dot, capsys):
        engine.forget(dot)
        assert store.dirty is True
        assert "# Forgot " in capsys.readouterr().err

    def test_state_transitions(self, engine, dot):
        Path(dot.path).write_text("x")
        assert engine.state(dot) == UNKNOWN
        engine.import_(dot)
        assert engine.state(dot) == TRACKED
        engine.forget(dot)
        assert engine.state(dot) == UNKNOWN


class _BrokenDiff(DiffTool):
    def diff(self, old, new, old_label, new_label):
        raise ToolInvocationError(["diff"], 2, "boom")


def test_compare_tool_failure_reads_as_no_diff(store, edit_tool, dot):
    Path(dot.path).write_text("x")
    engine = ActionEngine(store, _BrokenDiff(), edit_tool)
    assert engine.compare(dot) == ""


def test_run_dispatches_by_action(engine, store, dot, capsys):
    Path(dot.path).write_text("abc\n")
    assert engine.run(Action.IMPORT, dot) is None
    assert engine.run("compare", dot) == ""
    Path(dot.path).write_text("changed\n")
    assert "+changed" in engine.run(Action.COMPARE, dot)
    engine.run(Action.PATCH, dot)
    assert Path(dot.path).read_text() == "abc\n"
    err = capsys.readouterr().err
    assert f"# Imported {dot.path}" in err
    assert f"# Patched {dot.path}" in err


def test_absolute_and_relative_targets_keep_separate_references(engine, store, registry, work_dir, tmp_path):
    (work_dir / "etc").mkdir()
    (work_dir / "etc" / "app.conf").write_text("REL\n")
    (tmp_path / "etc").mkdir()
    (tmp_path / "etc" / "app.conf").write_text("ABS\n")
    relative = registry.register_copy("etc/app.conf")[0]
    absolute = registry.register_copy(str(tmp_path / "etc" / "app.conf"))[0]

    engine.import_(absolute)
    engine.import_(relative)

    assert store.get(absolute.identifier) == b"ABS\n"
    assert store.get(relative.identifier) == b"REL\n"
    assert store.names() == {absolute.identifier: absolute.path, relative.identifier: relative.path}
