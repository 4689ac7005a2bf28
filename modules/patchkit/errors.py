"""Exception taxonomy for PatchKit.

Configuration and persistence failures abort the whole session; per-file
failures are reported and the batch moves on to the next file.
"""

from __future__ import annotations

from typing import Optional, Sequence


class PatchKitError(Exception):
    """Base class for every error raised by PatchKit."""


class ConfigurationError(PatchKitError):
    """Invalid registration or config; raised before the interactive loop."""


class StoreUnavailableError(PatchKitError):
    """The embedded reference store could not be loaded."""


class PersistenceError(PatchKitError):
    """Writing the reference store back into the kit file failed."""


class PerFileActionError(PatchKitError):
    """An action failed for one managed file only."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class MissingSourceError(PerFileActionError):
    def __init__(self, path: str):
        super().__init__(path, "No such file to import")


class UndecodableFileError(PerFileActionError):
    def __init__(self, path: str):
        super().__init__(path, "Not valid UTF-8 text")


class MalformedMarkersError(PerFileActionError):
    def __init__(self, path: str, begin: str, end: str):
        super().__init__(path, f"Block starting with {begin!r} is not closed by {end!r}")


class MissingReferenceError(PerFileActionError):
    def __init__(self, path: str):
        super().__init__(path, "Nothing imported yet")


class ToolInvocationError(PatchKitError):
    """An external diff or edit tool failed to run or exited abnormally."""

    def __init__(self, command: Sequence[str], returncode: Optional[int] = None, detail: str = ""):
        cmd = " ".join(str(c) for c in command)
        text = f"{cmd} failed"
        if returncode is not None:
            text += f" (exit {returncode})"
        if detail:
            text += f": {detail}"
        super().__init__(text)
        self.command = list(command)
        self.returncode = returncode
