"""
Structured JSONL event log for PatchKit sessions

Provides structured logging with:
- JSONL format (one JSON object per line), queryable with jq
- Log rotation with configurable retention
- Console output for errors/warnings

Disabled unless config logging.enabled is true; warnings and errors are
echoed to stderr either way.
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal

from patchkit.config import get_config


def _log_dir() -> Path:
    return get_config().logs_dir()


def _archive_dir() -> Path:
    return _log_dir() / "archive"


LogLevel = Literal["debug", "info", "warn", "error"]

_LEVEL_ORDER = {"debug": 10, "info": 20, "warn": 30, "warning": 30, "error": 40}


def _enabled_for(level: str) -> bool:
    cfg = get_config().logging
    if not cfg.enabled:
        return False
    return _LEVEL_ORDER.get(level, 20) >= _LEVEL_ORDER.get(cfg.level, 20)


def log(
    component: str,
    event: str,
    level: LogLevel = "info",
    **data: Any
) -> None:
    """Write a structured log entry."""
    if _enabled_for(level):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": component,
            "event": event,
            **data
        }
        line = json.dumps(entry, default=str) + "\n"
        log_file = _log_dir() / f"{component}.log"
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            print(f"[logger] Failed to write to {log_file}: {e}", file=sys.stderr)

    if level == "error":
        print(f"[{component}] ERROR: {event}", data, file=sys.stderr)
    elif level == "warn":
        print(f"[{component}] WARN: {event}", data, file=sys.stderr)


class Logger:
    """Convenience logger class with level methods."""

    def __init__(self, component: str):
        self.component = component

    def debug(self, event: str, **data: Any) -> None:
        log(self.component, event, "debug", **data)

    def info(self, event: str, **data: Any) -> None:
        log(self.component, event, "info", **data)

    def warn(self, event: str, **data: Any) -> None:
        log(self.component, event, "warn", **data)

    def error(self, event: str, **data: Any) -> None:
        log(self.component, event, "error", **data)


def rotate_logs() -> None:
    """Rotate logs - moves current logs to archive with date suffix."""
    today = datetime.now().strftime("%Y-%m-%d")
    log_dir = _log_dir()
    if not log_dir.is_dir():
        return

    try:
        _archive_dir().mkdir(parents=True, exist_ok=True)
        for log_file in log_dir.glob("*.log"):
            archive_path = _archive_dir() / f"{log_file.stem}.{today}.log"
            try:
                if log_file.stat().st_size == 0:
                    continue
                if archive_path.exists():
                    with open(log_file, "r", encoding="utf-8") as src:
                        content = src.read()
                    with open(archive_path, "a", encoding="utf-8") as dst:
                        dst.write(content)
                    log_file.write_text("", encoding="utf-8")
                else:
                    log_file.rename(archive_path)
            except OSError as e:
                print(f"[logger] Failed to rotate {log_file.name}: {e}", file=sys.stderr)

        clean_old_archives()
    except OSError as e:
        print(f"[logger] Log rotation failed: {e}", file=sys.stderr)


def clean_old_archives() -> None:
    """Delete archives older than logging.retention_days."""
    cutoff = datetime.now() - timedelta(days=get_config().logging.retention_days)

    try:
        for archive_file in _archive_dir().glob("*.log"):
            # e.g. session.2026-02-01.log
            parts = archive_file.stem.split(".")
            if len(parts) < 2:
                continue
            try:
                file_date = datetime.strptime(parts[-1], "%Y-%m-%d")
            except ValueError:
                continue
            if file_date < cutoff:
                archive_file.unlink()
    except OSError as e:
        print(f"[logger] Failed to clean old archives: {e}", file=sys.stderr)


def get_log_path(component: str) -> Path:
    """Get log file path for a component."""
    return _log_dir() / f"{component}.log"


session_logger = Logger("session")
