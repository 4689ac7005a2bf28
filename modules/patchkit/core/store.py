"""Reference store: last-imported content of every managed file.

Entries live as plain files under a scratch directory extracted from the kit's
embedded archive, one file per managed-file identifier. Content is kept as raw
bytes. ``index.json`` maps identifiers back to the paths they were imported
from so the archive can be listed by name. Mutations mark the store dirty;
flush_if_dirty() hands the directory to a persister that writes it back into
the kit.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

from patchkit.errors import ConfigurationError, PersistenceError, StoreUnavailableError
from patchkit.lib.archive import INDEX_NAME

logger = logging.getLogger(__name__)

Persister = Callable[[Path], Path]

_IDENTIFIER_RE = re.compile(r"[0-9a-f]{40}")


class ReferenceStore:
    def __init__(self, root: Path, persister: Optional[Persister] = None):
        self.root = Path(root)
        if not self.root.is_dir():
            raise StoreUnavailableError(f"Reference store directory missing: {self.root}")
        self._persister = persister
        self._dirty = False
        self._names = self._load_index()

    def _load_index(self) -> Dict[str, str]:
        index = self.root / INDEX_NAME
        if not index.is_file():
            return {}
        try:
            data = json.loads(index.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreUnavailableError(f"Unreadable store index {index}: {e}") from e
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Store index {index} is not an object")
        return {str(k): str(v) for k, v in data.items()}

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def entry_path(self, identifier: str) -> Path:
        """Location of the entry for ``identifier`` inside the store directory."""
        if not _IDENTIFIER_RE.fullmatch(str(identifier)):
            raise ConfigurationError(f"Invalid entry identifier {identifier!r}")
        return self.root / identifier

    def remember(self, identifier: str, name: str) -> None:
        """Record the path an entry belongs to (written out on flush)."""
        self.entry_path(identifier)
        self._names[identifier] = name

    def name(self, identifier: str) -> Optional[str]:
        return self._names.get(identifier)

    def exists(self, identifier: str) -> bool:
        return self.entry_path(identifier).is_file()

    def get(self, identifier: str) -> Optional[bytes]:
        entry = self.entry_path(identifier)
        if not entry.is_file():
            return None
        return entry.read_bytes()

    def put(self, identifier: str, data: bytes, name: Optional[str] = None) -> None:
        entry = self.entry_path(identifier)
        entry.write_bytes(data)
        if name is not None:
            self._names[identifier] = name
        logger.debug("Stored %d bytes for %s", len(data), name or identifier)
        self._dirty = True

    def delete(self, identifier: str) -> bool:
        """Remove the entry; marks dirty even when there was nothing to remove."""
        entry = self.entry_path(identifier)
        existed = entry.is_file()
        if existed:
            entry.unlink()
        self._dirty = True
        return existed

    def keys(self) -> List[str]:
        """Identifiers that currently have an entry."""
        return sorted(p.name for p in self.root.iterdir() if p.is_file() and _IDENTIFIER_RE.fullmatch(p.name))

    def names(self) -> Dict[str, str]:
        """Identifier to path for every stored entry whose path is known."""
        return {ident: self._names[ident] for ident in self.keys() if ident in self._names}

    def _write_index(self) -> None:
        index = self.root / INDEX_NAME
        index.write_text(json.dumps(self.names(), indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def flush_if_dirty(self) -> Optional[Path]:
        """Persist the store if anything changed; returns the updated location."""
        if not self._dirty:
            return None
        if self._persister is None:
            raise PersistenceError("Reference store has no persister")
        try:
            self._write_index()
            location = self._persister(self.root)
        except PersistenceError:
            raise
        except OSError as e:
            raise PersistenceError(f"Failed to persist reference store: {e}") from e
        self._dirty = False
        return location
