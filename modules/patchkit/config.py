"""
Configuration loader for PatchKit

Loads settings from the first config file found (see _config_paths()).
Falls back to sensible defaults if config is missing.

Environment variable overrides:
  PATCHKIT_CONFIG      explicit config file path (searched first)
  PATCHKIT_HOME        home directory holding config.json and logs/
  PATCHKIT_DIFF        command line used for compare (overrides tools.diffCommand)
  PATCHKIT_MERGETOOL   command line used for edit (overrides tools.editCommand)
  PATCHKIT_QUIET       suppress config load/unknown-key chatter on stderr
"""

import json
import logging
import os
import shlex
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _coerce_positive_int(raw: Any, default: int) -> int:
    """Return a positive int; fallback to default for invalid values."""
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return default


def _coerce_optional_float(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def patchkit_home() -> Path:
    """Root directory for PatchKit's own files (config, logs)."""
    value = os.environ.get("PATCHKIT_HOME", "").strip()
    if value:
        return Path(value).expanduser()
    return Path.home() / ".patchkit"


def _config_paths() -> list:
    """Config file search paths (in priority order)."""
    paths = []
    explicit = os.environ.get("PATCHKIT_CONFIG", "").strip()
    if explicit:
        paths.append(Path(explicit).expanduser())
    paths.extend([
        patchkit_home() / "config.json",
        Path.home() / ".patchkit" / "config.json",
        Path("./patchkit-config.json"),
    ])
    return paths


@dataclass
class ToolsConfig:
    diff_command: List[str] = field(default_factory=lambda: ["diff", "-u"])
    edit_command: List[str] = field(default_factory=lambda: ["vimdiff"])
    builtin_diff: bool = False  # Use difflib instead of an external diff program
    timeout_seconds: Optional[float] = None  # Compare only; edit sessions are never timed out


@dataclass
class StoreConfig:
    backup_suffix: str = "~"
    tmp_prefix: str = "patchkit-"
    strict_existence: bool = True  # Skip files missing both on disk and in the store


@dataclass
class UiConfig:
    rule_width: int = 80


@dataclass
class LoggingConfig:
    enabled: bool = False
    level: str = "info"
    retention_days: int = 7
    dir: str = ""  # Empty = <PATCHKIT_HOME>/logs


@dataclass
class PatchKitConfig:
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    ui: UiConfig = field(default_factory=UiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def logs_dir(self) -> Path:
        if self.logging.dir:
            return Path(self.logging.dir).expanduser()
        return patchkit_home() / "logs"


_config: Optional[PatchKitConfig] = None
_config_lock = threading.RLock()
_warned_unknown_config_keys: set = set()

_KNOWN_KEYS: Dict[str, set] = {
    "": {"tools", "store", "ui", "logging"},
    "tools": {"diff_command", "edit_command", "builtin_diff", "timeout_seconds"},
    "store": {"backup_suffix", "tmp_prefix", "strict_existence"},
    "ui": {"rule_width"},
    "logging": {"enabled", "level", "retention_days", "dir"},
}


def _warn_unknown_keys(section: str, data: Any) -> None:
    if not isinstance(data, dict):
        return
    known_keys = _KNOWN_KEYS.get(section, set())
    for key in data.keys():
        token = f"{section}.{key}" if section else str(key)
        if key in known_keys:
            continue
        if token in _warned_unknown_config_keys:
            continue
        _warned_unknown_config_keys.add(token)
        if not os.environ.get("PATCHKIT_QUIET"):
            print(f"[config] Unknown config key ignored: {token}", file=sys.stderr)


def _camel_to_snake(camel_str: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(camel_str):
        if char.isupper() and i > 0:
            result.append('_')
        result.append(char.lower())
    return ''.join(result)


def _load_nested(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert camelCase keys to snake_case recursively."""
    result = {}
    for key, value in data.items():
        snake_key = _camel_to_snake(key)
        if isinstance(value, dict):
            result[snake_key] = _load_nested(value)
        else:
            result[snake_key] = value
    return result


def _coerce_command(value: Any, *, field_name: str, default: List[str]) -> List[str]:
    """Accept a command as a JSON list or a shell-style string."""
    if value is None:
        return list(default)
    if isinstance(value, str):
        parts = shlex.split(value)
        return parts or list(default)
    if isinstance(value, list) and all(isinstance(v, str) for v in value) and value:
        return list(value)
    logger.warning(
        "Invalid type for %s (expected list of strings or string, got %s); using default",
        field_name,
        type(value).__name__,
    )
    return list(default)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    raw = data.get(name, {})
    if not isinstance(raw, dict):
        logger.warning("Invalid type for %s (expected object); using defaults", name)
        return {}
    _warn_unknown_keys(name, raw)
    return raw


def _build_config(raw_config: Dict[str, Any]) -> PatchKitConfig:
    data = _load_nested(raw_config)
    _warn_unknown_keys("", data)

    tools_data = _section(data, "tools")
    tools_defaults = ToolsConfig()
    tools = ToolsConfig(
        diff_command=_coerce_command(
            tools_data.get("diff_command"), field_name="tools.diffCommand",
            default=tools_defaults.diff_command,
        ),
        edit_command=_coerce_command(
            tools_data.get("edit_command"), field_name="tools.editCommand",
            default=tools_defaults.edit_command,
        ),
        builtin_diff=bool(tools_data.get("builtin_diff", tools_defaults.builtin_diff)),
        timeout_seconds=_coerce_optional_float(tools_data.get("timeout_seconds")),
    )
    env_diff = os.environ.get("PATCHKIT_DIFF", "").strip()
    if env_diff:
        tools.diff_command = shlex.split(env_diff)
    env_edit = os.environ.get("PATCHKIT_MERGETOOL", "").strip()
    if env_edit:
        tools.edit_command = shlex.split(env_edit)

    store_data = _section(data, "store")
    store = StoreConfig(
        backup_suffix=str(store_data.get("backup_suffix", StoreConfig.backup_suffix)),
        tmp_prefix=str(store_data.get("tmp_prefix", StoreConfig.tmp_prefix)) or StoreConfig.tmp_prefix,
        strict_existence=bool(store_data.get("strict_existence", StoreConfig.strict_existence)),
    )

    ui_data = _section(data, "ui")
    ui = UiConfig(rule_width=_coerce_positive_int(ui_data.get("rule_width"), UiConfig.rule_width))

    logging_data = _section(data, "logging")
    log_cfg = LoggingConfig(
        enabled=bool(logging_data.get("enabled", LoggingConfig.enabled)),
        level=str(logging_data.get("level", LoggingConfig.level)).lower(),
        retention_days=_coerce_positive_int(logging_data.get("retention_days"), LoggingConfig.retention_days),
        dir=str(logging_data.get("dir", "") or ""),
    )

    return PatchKitConfig(tools=tools, store=store, ui=ui, logging=log_cfg)


def load_config() -> PatchKitConfig:
    """Load configuration from file or use defaults."""
    global _config

    with _config_lock:
        if _config is not None:
            return _config

        raw_config: Dict[str, Any] = {}
        for config_path in _config_paths():
            if not config_path.exists():
                continue
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    raw_config = json.load(f)
                if not os.environ.get("PATCHKIT_QUIET"):
                    print(f"[config] Loaded from {config_path}", file=sys.stderr)
                break
            except json.JSONDecodeError as e:
                print(f"[config] Failed to parse {config_path}: {e}", file=sys.stderr)
            except OSError as e:
                print(f"[config] Failed to read {config_path}: {e}", file=sys.stderr)

        if not isinstance(raw_config, dict):
            print("[config] Top-level config must be an object; using defaults", file=sys.stderr)
            raw_config = {}

        _config = _build_config(raw_config)
        return _config


def get_config() -> PatchKitConfig:
    """Get the loaded config (loads on first call)."""
    return load_config()


def reload_config() -> PatchKitConfig:
    """Force reload configuration from file."""
    global _config

    with _config_lock:
        _config = None
        _warned_unknown_config_keys.clear()
        return load_config()
