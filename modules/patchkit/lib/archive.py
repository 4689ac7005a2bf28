"""Archive embedded at the end of a kit script.

Layout of a kit file::

    <python script text>
    # ==== PATCHKIT ARCHIVE ====
    # H4sIAAAAAAAA...   (base64 of a gzip'ed tar, one comment line per chunk)

Everything after the sentinel line is a commented base64 payload so the kit
stays a valid Python file. Saving splices a fresh payload after the sentinel
and keeps the previous kit file as a backup. Members are named by managed-file
identifier; the ``index.json`` member maps identifiers to paths.
"""

import base64
import binascii
import io
import json
import logging
import os
import re
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple

from patchkit.errors import PersistenceError, StoreUnavailableError

logger = logging.getLogger(__name__)

SENTINEL = "# ==== PATCHKIT ARCHIVE ===="
_SENTINEL_RE = re.compile(r"^#+ *=+ *PATCHKIT ARCHIVE *=+ *$")
_LINE_WIDTH = 76
INDEX_NAME = "index.json"


def split_kit(text: str) -> Tuple[str, Optional[str]]:
    """Split kit text into (script part including the sentinel, payload).

    payload is None when there is no sentinel line.
    """
    lines = text.splitlines(True)
    for i, line in enumerate(lines):
        if _SENTINEL_RE.match(line.rstrip("\r\n")):
            return "".join(lines[:i + 1]), "".join(lines[i + 1:])
    return text, None


def _decode_payload(payload: str) -> bytes:
    chunks = []
    for line in payload.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("#"):
            raise StoreUnavailableError(f"Unexpected line after archive sentinel: {stripped[:40]!r}")
        chunks.append(stripped.lstrip("#").strip())
    try:
        return base64.b64decode("".join(chunks), validate=True)
    except (binascii.Error, ValueError) as e:
        raise StoreUnavailableError(f"Corrupt archive payload: {e}") from e


def _encode_payload(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return "".join(
        f"# {encoded[i:i + _LINE_WIDTH]}\n" for i in range(0, len(encoded), _LINE_WIDTH)
    )


def read_archive_bytes(kit_path: Path) -> bytes:
    """Return the raw tar.gz bytes embedded in ``kit_path`` (empty if none)."""
    try:
        text = Path(kit_path).read_text(encoding="utf-8")
    except OSError as e:
        raise StoreUnavailableError(f"Cannot read {kit_path}: {e}") from e
    _, payload = split_kit(text)
    if not payload:
        return b""
    return _decode_payload(payload)


def _is_safe_member(member: tarfile.TarInfo) -> bool:
    if not (member.isfile() or member.isdir()):
        return False
    name = PurePosixPath(member.name)
    if name.is_absolute():
        return False
    return ".." not in name.parts


def _open_tar(data: bytes) -> tarfile.TarFile:
    try:
        return tarfile.open(fileobj=io.BytesIO(data), mode="r:gz")
    except (tarfile.TarError, OSError, EOFError) as e:
        raise StoreUnavailableError(f"Corrupt archive: {e}") from e


def extract_archive(kit_path: Path, dest: Path) -> int:
    """Extract the embedded archive into ``dest``; returns the number of files."""
    data = read_archive_bytes(kit_path)
    if not data:
        return 0
    count = 0
    with _open_tar(data) as tar:
        members = tar.getmembers()
        unsafe = [m.name for m in members if not _is_safe_member(m)]
        if unsafe:
            raise StoreUnavailableError(f"Refusing unsafe archive members: {unsafe}")
        for member in members:
            target = Path(dest) / member.name
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            src = tar.extractfile(member)
            if src is None:
                continue
            with src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            count += 1
    logger.debug("Extracted %d entries from %s into %s", count, kit_path, dest)
    return count


def pack_directory(src: Path) -> bytes:
    """Create a gzip'ed tar of the files below ``src`` (paths relative to it)."""
    src = Path(src)
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for path in sorted(p for p in src.rglob("*") if p.is_file()):
            tar.add(str(path), arcname=path.relative_to(src).as_posix(), recursive=False)
    return buf.getvalue()


def write_archive(kit_path: Path, src: Path, backup_suffix: str = "~") -> Path:
    """Re-pack ``src`` and splice it after the sentinel of ``kit_path``.

    The previous kit file is kept as ``<kit_path><backup_suffix>``.
    """
    kit_path = Path(kit_path)
    try:
        text = kit_path.read_text(encoding="utf-8")
        script, payload = split_kit(text)
        if payload is None:
            script = script if script.endswith("\n") or not script else script + "\n"
            script += SENTINEL + "\n"
        data = pack_directory(src)
        updated = script + _encode_payload(data)

        if backup_suffix:
            shutil.copy2(kit_path, kit_path.with_name(kit_path.name + backup_suffix))
        mode = kit_path.stat().st_mode
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", delete=False, dir=str(kit_path.parent),
            prefix=f".{kit_path.name}.",
        ) as tmp:
            tmp.write(updated)
            tmp_path = Path(tmp.name)
        os.chmod(tmp_path, mode & 0o7777)
        tmp_path.replace(kit_path)
    except (OSError, tarfile.TarError) as e:
        raise PersistenceError(f"Failed to update {kit_path}: {e}") from e
    logger.debug("Wrote %d archive bytes into %s", len(data), kit_path)
    return kit_path


def _read_index(tar: tarfile.TarFile) -> Dict[str, str]:
    try:
        member = tar.getmember(INDEX_NAME)
    except KeyError:
        return {}
    src = tar.extractfile(member)
    if src is None:
        return {}
    try:
        with src:
            data = json.loads(src.read().decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise StoreUnavailableError(f"Corrupt archive index: {e}") from e
    if not isinstance(data, dict):
        raise StoreUnavailableError("Corrupt archive index: not an object")
    return {str(k): str(v) for k, v in data.items()}


def list_entries(kit_path: Path) -> List[Tuple[str, int]]:
    """List (name, size) of the stored files, sorted by name.

    Names come from the archive index; an entry missing from the index is
    listed under its identifier.
    """
    data = read_archive_bytes(kit_path)
    if not data:
        return []
    with _open_tar(data) as tar:
        names = _read_index(tar)
        entries = [
            (names.get(m.name, m.name), m.size)
            for m in tar.getmembers()
            if m.isfile() and m.name != INDEX_NAME
        ]
    return sorted(entries)


def read_entry(kit_path: Path, name: str) -> Optional[bytes]:
    """Return one stored file's bytes by path (or identifier), None if absent."""
    data = read_archive_bytes(kit_path)
    if not data:
        return None
    with _open_tar(data) as tar:
        names = _read_index(tar)
        candidates = [ident for ident, path in names.items() if path == name] or [name]
        for ident in candidates:
            try:
                member = tar.getmember(ident)
            except KeyError:
                continue
            if not member.isfile() or member.name == INDEX_NAME:
                continue
            src = tar.extractfile(member)
            if src is not None:
                with src:
                    return src.read()
    return None
