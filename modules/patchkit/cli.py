#!/usr/bin/env python3
"""patchkit command: create kits, inspect their archives, edit config."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import stat
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from patchkit import __version__
from patchkit.config import _config_paths, patchkit_home, reload_config
from patchkit.errors import StoreUnavailableError
from patchkit.lib import archive
from patchkit.logger import get_log_path, rotate_logs

_KIT_TEMPLATE = '''#!/usr/bin/env python3
# {name} -- maintains patches and copies of files
#
# $ python3 {name}                      # interactive menu
# $ python3 {name} --action compare --all
##
from patchkit import Kit

with Kit(__file__) as kit:
    # kit.patch("~/.bashrc", begin="# >>> {stem} >>>", end="# <<< {stem} <<<", add_to="bottom")
    # kit.copy("~/.vimrc")
    raise SystemExit(kit.run())

{sentinel}
'''


def _config_path() -> Path:
    for path in _config_paths():
        if path.exists():
            return path
    return patchkit_home() / "config.json"


def _load_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _save_config(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    tmp.replace(path)


def _segments(path: str | list[str]) -> list[str]:
    if isinstance(path, list):
        return [str(v) for v in path]
    return str(path).split(".")


def _set(data: dict[str, Any], dotted: str | list[str], value: Any) -> None:
    parts = _segments(dotted)
    cur: Any = data
    for seg in parts[:-1]:
        if not isinstance(cur, dict):
            raise ValueError(f"Cannot set {dotted}: parent is not an object")
        if seg not in cur:
            cur[seg] = {}
        elif not isinstance(cur[seg], dict):
            raise ValueError(f"Cannot set {dotted}: intermediate path '{seg}' is not an object")
        cur = cur[seg]
    if not isinstance(cur, dict):
        raise ValueError(f"Cannot set {dotted}: parent is not an object")
    cur[parts[-1]] = value


def parse_literal(raw: str) -> Any:
    value = raw.strip()
    if value.lower() == "null":
        return None
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if value.startswith("{") or value.startswith("["):
            return json.loads(value)
        if re.fullmatch(r"[-+]?(?:\d+\.\d*|\d*\.\d+)", value):
            return float(value)
        if re.fullmatch(r"[-+]?\d+", value):
            return int(value)
    except ValueError:
        pass
    return value


def _print_config_summary(path: Path) -> None:
    cfg = reload_config()
    print("PatchKit Configuration")
    print(str(path) if path.exists() else f"{path} (not created, using defaults)")
    print()
    print(f"diff command:     {' '.join(cfg.tools.diff_command)}{' (builtin)' if cfg.tools.builtin_diff else ''}")
    print(f"edit command:     {' '.join(cfg.tools.edit_command)}")
    print(f"backup suffix:    {cfg.store.backup_suffix!r}")
    print(f"strict existence: {cfg.store.strict_existence}")
    print(f"menu width:       {cfg.ui.rule_width}")
    print(f"event log:        {'on' if cfg.logging.enabled else 'off'} ({cfg.logs_dir()})")


def cmd_init(kit: Path, force: bool = False) -> int:
    if kit.exists() and not force:
        print(f"Refusing to overwrite existing {kit} (use --force)", file=sys.stderr)
        return 1
    kit.parent.mkdir(parents=True, exist_ok=True)
    kit.write_text(
        _KIT_TEMPLATE.format(name=kit.name, stem=kit.stem, sentinel=archive.SENTINEL),
        encoding="utf-8",
    )
    kit.chmod(kit.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    print(f"Created {kit}")
    return 0


def cmd_list(kit: Path) -> int:
    entries = archive.list_entries(kit)
    if not entries:
        print(f"{kit}: archive is empty", file=sys.stderr)
        return 0
    width = max(len(str(size)) for _, size in entries)
    for name, size in entries:
        print(f"{size:>{width}}  {name}")
    return 0


def cmd_show(kit: Path, name: str) -> int:
    data = archive.read_entry(kit, os.path.expanduser(name))
    if data is None:
        print(f"{name}: not in {kit}", file=sys.stderr)
        return 1
    sys.stdout.write(data.decode("utf-8", errors="replace"))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    path = _config_path()
    action = args.config_cmd or "show"
    if action == "path":
        print(str(path))
        return 0
    if action == "show":
        _print_config_summary(path)
        return 0
    try:
        data = _load_config(path)
        _set(data, args.key, parse_literal(args.value))
        _save_config(path, data)
        reload_config()
    except (OSError, ValueError) as err:
        print(f"Failed to set {args.key}: {err}", file=sys.stderr)
        return 1
    print(f"Set {args.key} in {path}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    action = args.logs_cmd or "path"
    if action == "rotate":
        rotate_logs()
        print(f"Rotated logs in {get_log_path('session').parent}")
        return 0
    print(str(get_log_path("session")))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="patchkit", description="Maintain patches and copies of files as a script")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd")

    init_p = sub.add_parser("init", help="Create a new kit script")
    init_p.add_argument("kit", type=Path)
    init_p.add_argument("--force", action="store_true", help="Overwrite an existing file")

    list_p = sub.add_parser("list", help="List files stored in a kit")
    list_p.add_argument("kit", type=Path)

    show_p = sub.add_parser("show", help="Print one stored file")
    show_p.add_argument("kit", type=Path)
    show_p.add_argument("name", help="Managed file path as registered in the kit, or its identifier")

    config_p = sub.add_parser("config", help="Show or change PatchKit config")
    config_sub = config_p.add_subparsers(dest="config_cmd")
    config_sub.add_parser("show", help="Show summary")
    config_sub.add_parser("path", help="Print config path")
    set_p = config_sub.add_parser("set", help="Set a dotted key path")
    set_p.add_argument("key", help="Dotted path (e.g. tools.editCommand)")
    set_p.add_argument("value", help="Value (string/number/true/false/json)")

    logs_p = sub.add_parser("logs", help="Session event log")
    logs_sub = logs_p.add_subparsers(dest="logs_cmd")
    logs_sub.add_parser("path", help="Print the session log path")
    logs_sub.add_parser("rotate", help="Archive current logs and drop expired archives")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")

    if args.cmd == "init":
        return cmd_init(args.kit, force=args.force)
    if args.cmd in ("list", "show"):
        if not args.kit.is_file():
            print(f"{args.kit}: no such kit", file=sys.stderr)
            return 1
        try:
            if args.cmd == "list":
                return cmd_list(args.kit)
            return cmd_show(args.kit, args.name)
        except StoreUnavailableError as err:
            print(f"ERROR: {err}", file=sys.stderr)
            return 1
    if args.cmd == "config":
        return cmd_config(args)
    if args.cmd == "logs":
        return cmd_logs(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
