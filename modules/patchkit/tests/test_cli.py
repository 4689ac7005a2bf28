import io
import json
import os

import pytest

from conftest import RecordingEditTool
from patchkit import cli
from patchkit.config import get_config
from patchkit.core.registry import file_id
from patchkit.kit import Kit
from patchkit.lib import archive
from patchkit.lib.tools import BuiltinDiffTool


def test_parse_literal_handles_bool_number_json_and_string():
    assert cli.parse_literal("true") is True
    assert cli.parse_literal("False") is False
    assert cli.parse_literal("12") == 12
    assert cli.parse_literal("3.5") == 3.5
    assert cli.parse_literal('["meld"]') == ["meld"]
    assert cli.parse_literal("null") is None
    assert cli.parse_literal("diff -u") == "diff -u"
    assert cli.parse_literal(".bak") == ".bak"


def test_set_builds_nested_paths():
    data = {}
    cli._set(data, "tools.editCommand", ["meld"])
    cli._set(data, "store.backupSuffix", ".orig")
    assert data == {"tools": {"editCommand": ["meld"]}, "store": {"backupSuffix": ".orig"}}


def test_set_rejects_scalar_parent():
    data = {"ui": 5}
    with pytest.raises(ValueError, match="not an object"):
        cli._set(data, "ui.ruleWidth", 60)


def test_init_creates_executable_kit(tmp_path, capsys):
    kit = tmp_path / "dots.py"
    assert cli.main(["init", str(kit)]) == 0
    text = kit.read_text()
    assert text.startswith("#!/usr/bin/env python3\n# dots.py -- ")
    assert "with Kit(__file__) as kit:" in text
    assert text.rstrip("\n").endswith(archive.SENTINEL)
    assert os.access(kit, os.X_OK)
    assert archive.list_entries(kit) == []
    assert "Created" in capsys.readouterr().out


def test_init_refuses_to_overwrite(tmp_path, capsys):
    kit = tmp_path / "dots.py"
    kit.write_text("mine\n")
    assert cli.main(["init", str(kit)]) == 1
    assert kit.read_text() == "mine\n"
    assert "Refusing to overwrite" in capsys.readouterr().err
    assert cli.main(["init", "--force", str(kit)]) == 0
    assert archive.SENTINEL in kit.read_text()


def test_list_and_show(kit_script, tmp_path, capsys):
    motd = tmp_path / "home" / ".motd"
    motd.write_text("hello\n")
    kit = Kit(kit_script, diff_tool=BuiltinDiffTool(), edit_tool=RecordingEditTool(),
              out=io.StringIO(), err=io.StringIO())
    kit.copy("~/.motd")
    assert kit.run(["--action", "import", "--all"]) == 0

    assert cli.main(["list", str(kit_script)]) == 0
    assert capsys.readouterr().out == f"6  {motd}\n"

    assert cli.main(["show", str(kit_script), "~/.motd"]) == 0
    assert capsys.readouterr().out == "hello\n"
    assert cli.main(["show", str(kit_script), file_id(str(motd))]) == 0
    assert capsys.readouterr().out == "hello\n"

    assert cli.main(["show", str(kit_script), "/etc/issue"]) == 1
    assert "not in" in capsys.readouterr().err


def test_list_empty_and_missing(kit_script, tmp_path, capsys):
    assert cli.main(["list", str(kit_script)]) == 0
    assert "archive is empty" in capsys.readouterr().err
    assert cli.main(["list", str(tmp_path / "nope.py")]) == 1
    assert "no such kit" in capsys.readouterr().err


def test_list_corrupt_archive(tmp_path, capsys):
    kit = tmp_path / "bad.py"
    kit.write_text(f"{archive.SENTINEL}\nrm -rf /\n")
    assert cli.main(["list", str(kit)]) == 1
    assert "ERROR: Unexpected line" in capsys.readouterr().err


def test_config_path_and_set(tmp_path, capsys):
    assert cli.main(["config", "path"]) == 0
    path = capsys.readouterr().out.strip()
    assert path == str(tmp_path / "home" / ".patchkit" / "config.json")

    assert cli.main(["config", "set", "ui.ruleWidth", "60"]) == 0
    assert cli.main(["config", "set", "tools.editCommand", '["meld"]']) == 0
    saved = json.loads((tmp_path / "home" / ".patchkit" / "config.json").read_text())
    assert saved == {"ui": {"ruleWidth": 60}, "tools": {"editCommand": ["meld"]}}
    assert get_config().ui.rule_width == 60
    assert get_config().tools.edit_command == ["meld"]


def test_config_show(capsys):
    assert cli.main(["config"]) == 0
    out = capsys.readouterr().out
    assert "PatchKit Configuration" in out
    assert "diff command:     diff -u" in out
    assert "using defaults" in out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage: patchkit" in capsys.readouterr().out


def test_logs_path_and_rotate(tmp_path, capsys):
    assert cli.main(["logs"]) == 0
    assert capsys.readouterr().out.strip() == str(tmp_path / "home" / ".patchkit" / "logs" / "session.log")

    log_file = tmp_path / "home" / ".patchkit" / "logs" / "session.log"
    log_file.parent.mkdir(parents=True)
    log_file.write_text('{"event": "start"}\n')
    assert cli.main(["logs", "rotate"]) == 0
    assert not log_file.exists()
    assert list((log_file.parent / "archive").glob("session.*.log"))


def test_package_exposes_main():
    import patchkit

    assert patchkit.main is cli.main
