"""
catalog/inspection.py -- Content inspection collaborator for uploads.

UploadLifecycle asks an inspector for a verdict before an asset may become
STORED. Real malware scanning is out of scope; PseudoInspector only checks
that the bytes exist and are readable, and is the default wiring. Plug a
scanner in by implementing ContentInspector.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Protocol


class Verdict(str, Enum):
    CLEAN = "CLEAN"
    NOT_CLEAN = "NOT_CLEAN"


class ContentInspector(Protocol):
    def inspect(self, path: Path) -> Verdict: ...


class PseudoInspector:
    """CLEAN iff path is an existing, readable regular file."""

    def inspect(self, path: Path) -> Verdict:
        path = Path(path)
        if path.is_file() and os.access(path, os.R_OK):
            return Verdict.CLEAN
        return Verdict.NOT_CLEAN
