"""PatchKit: keep patches and copies of files inside a self-contained kit script."""

__version__ = "0.3.0"

from patchkit.kit import Kit
from patchkit.cli import main

__all__ = ["Kit", "main", "__version__"]
