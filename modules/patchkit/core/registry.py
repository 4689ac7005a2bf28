"""Registry of managed files.

A kit declares its files once, before the interactive session starts:
patch targets (a marker block inside a file) and copy targets (whole files).
Each file is addressed by an identifier derived from its literal path.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from patchkit.core.store import ReferenceStore
from patchkit.errors import ConfigurationError
from patchkit.lib import console
from patchkit.lib.markers import INSERTION_POLICIES, TOP

PATCH = "patch"
COPY = "copy"


def file_id(path: str) -> str:
    """SHA-1 of the path followed by a newline (same digest as ``sha1sum <<<path``)."""
    return hashlib.sha1(f"{path}\n".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ManagedFile:
    path: str
    kind: str
    identifier: str
    reference_only: bool = False  # Known only from the store, not on disk at registration


@dataclass(frozen=True)
class PatchTarget(ManagedFile):
    begin: str = ""
    end: str = ""
    add_to: str = TOP


@dataclass(frozen=True)
class CopyTarget(ManagedFile):
    pass


def _check_marker(name: str, value: Optional[str]) -> str:
    if value is None or not str(value):
        raise ConfigurationError(f"{name}: line delineating the {name} of the block is required")
    value = str(value)
    if "\n" in value or "\r" in value:
        raise ConfigurationError(f"{name} marker must be a single line: {value!r}")
    return value


class Registry:
    """Ordered collection of managed files keyed by identifier."""

    def __init__(
        self,
        store: Optional[ReferenceStore] = None,
        *,
        strict_existence: bool = True,
        warn: Callable[[str], None] = console.error,
    ):
        self._store = store
        self._strict_existence = strict_existence
        self._warn = warn
        self._patch: List[PatchTarget] = []
        self._copy: List[CopyTarget] = []
        self._by_id: Dict[str, ManagedFile] = {}

    # ---- Registration ----

    def register_patch(
        self,
        path: str,
        begin: Optional[str] = None,
        end: Optional[str] = None,
        add_to: str = TOP,
    ) -> Optional[PatchTarget]:
        begin = _check_marker("begin", begin)
        end = _check_marker("end", end)
        if begin == end:
            raise ConfigurationError(f"{path}: begin and end markers must differ (both {begin!r})")
        if add_to not in INSERTION_POLICIES:
            raise ConfigurationError(
                f"{path}: add_to={add_to} unrecognized (expected one of {', '.join(INSERTION_POLICIES)})"
            )
        path = self._normalize(path)
        reference_only = self._admit(PATCH, path)
        if reference_only is None:
            return None
        target = PatchTarget(
            path=path,
            kind=PATCH,
            identifier=file_id(path),
            reference_only=reference_only,
            begin=begin,
            end=end,
            add_to=add_to,
        )
        self._add(target)
        self._patch.append(target)
        return target

    def register_copy(self, *paths: str) -> List[CopyTarget]:
        if not paths:
            raise ConfigurationError("copy: at least one file is required")
        added: List[CopyTarget] = []
        for raw in paths:
            path = self._normalize(raw)
            reference_only = self._admit(COPY, path)
            if reference_only is None:
                continue
            target = CopyTarget(
                path=path,
                kind=COPY,
                identifier=file_id(path),
                reference_only=reference_only,
            )
            self._add(target)
            self._copy.append(target)
            added.append(target)
        return added

    @staticmethod
    def _normalize(path: str) -> str:
        if path is None or not str(path).strip():
            raise ConfigurationError("missing filename")
        return os.path.expanduser(str(path))

    def _admit(self, kind: str, path: str) -> Optional[bool]:
        """Decide whether ``path`` gets registered.

        Returns False for a file on disk, True for a file known only from the
        store, None when it should be skipped.
        """
        if file_id(path) in self._by_id:
            raise ConfigurationError(f"{kind}: {path} is already registered")
        if os.path.exists(path):
            return False
        if self._store is not None and self._store.exists(file_id(path)):
            return True
        if not self._strict_existence:
            return False
        self._warn(f"{kind}: ignoring non-existent file: {path}")
        return None

    def _add(self, managed: ManagedFile) -> None:
        existing = self._by_id.get(managed.identifier)
        if existing is not None and existing.path != managed.path:
            raise ConfigurationError(
                f"identifier collision between {existing.path} and {managed.path}"
            )
        self._by_id[managed.identifier] = managed

    # ---- Lookup ----

    @property
    def patch_targets(self) -> List[PatchTarget]:
        return list(self._patch)

    @property
    def copy_targets(self) -> List[CopyTarget]:
        return list(self._copy)

    def files(self) -> List[ManagedFile]:
        """Patch targets first, then copy targets, each in registration order."""
        return [*self._patch, *self._copy]

    def lookup(self, identifier: str) -> ManagedFile:
        try:
            return self._by_id[identifier]
        except KeyError:
            raise KeyError(f"No managed file with identifier {identifier}") from None

    def find(self, path: str) -> Optional[ManagedFile]:
        return self._by_id.get(file_id(os.path.expanduser(path)))

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[ManagedFile]:
        return iter(self.files())
