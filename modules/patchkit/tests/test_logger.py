"""Tests for logger.py: JSONL event log, rotation and retention."""

import json
from datetime import datetime, timedelta

from patchkit import logger
from patchkit.config import get_config


def _enable(level="info"):
    cfg = get_config()
    cfg.logging.enabled = True
    cfg.logging.level = level
    return cfg


def test_disabled_by_default_writes_nothing():
    logger.log("session", "start", kit="k.py")
    assert not logger.get_log_path("session").exists()


def test_writes_jsonl_when_enabled():
    _enable()
    logger.session_logger.info("start", kit="k.py", files=2)
    logger.session_logger.info("end", code=0)

    lines = logger.get_log_path("session").read_text().splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["event"] for e in entries] == ["start", "end"]
    assert entries[0]["component"] == "session"
    assert entries[0]["files"] == 2
    assert entries[0]["ts"].endswith("Z")


def test_level_threshold():
    _enable("warn")
    logger.log("session", "noise", "info")
    logger.log("session", "trouble", "warn", detail="x")
    entries = [json.loads(l) for l in logger.get_log_path("session").read_text().splitlines()]
    assert [e["event"] for e in entries] == ["trouble"]


def test_errors_echo_to_stderr_even_when_disabled(capsys):
    logger.Logger("session").error("persist_failed", kit="k.py")
    assert "[session] ERROR: persist_failed" in capsys.readouterr().err
    assert not logger.get_log_path("session").exists()


def test_log_dir_override(tmp_path):
    cfg = _enable()
    cfg.logging.dir = str(tmp_path / "custom")
    logger.log("session", "start")
    assert (tmp_path / "custom" / "session.log").exists()


def test_rotate_moves_logs_to_archive():
    _enable()
    logger.log("session", "start")
    logger.rotate_logs()

    today = datetime.now().strftime("%Y-%m-%d")
    archived = logger.get_log_path("session").parent / "archive" / f"session.{today}.log"
    assert archived.exists()
    assert not logger.get_log_path("session").exists()


def test_clean_old_archives_uses_retention():
    cfg = _enable()
    cfg.logging.retention_days = 7
    archive_dir = cfg.logs_dir() / "archive"
    archive_dir.mkdir(parents=True)
    old = (datetime.now() - timedelta(days=30)).strftime("%Y-%m-%d")
    recent = (datetime.now() - timedelta(days=1)).strftime("%Y-%m-%d")
    (archive_dir / f"session.{old}.log").write_text("{}\n")
    (archive_dir / f"session.{recent}.log").write_text("{}\n")
    (archive_dir / "notes.log").write_text("keep\n")

    logger.clean_old_archives()

    assert sorted(p.name for p in archive_dir.iterdir()) == sorted([f"session.{recent}.log", "notes.log"])
