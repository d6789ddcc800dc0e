"""
catalog/storage.py -- Blob storage collaborator for uploaded bytes.

Storage puts the bytes somewhere and hands back a marker, removes them again
when inspection rejects them, and opens them for download once the asset is
STORED. LocalBlobStorage keeps files under UPLOAD_DIR; a DMS/object-store
adapter implements the same three methods.
"""

import logging
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol

logger = logging.getLogger("mobihub.storage")


class BlobStorage(Protocol):
    def put(self, source: Path, key: str) -> str: ...

    def remove(self, marker: str) -> None: ...

    def open(self, marker: str) -> BinaryIO: ...


class LocalBlobStorage:
    """Stores blobs as <root>/<key[:2]>/<key>; the marker is the relative path."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, marker: str) -> Path:
        path = (self._root / marker).resolve()
        # Markers come from our own put(), but never follow one out of root.
        if self._root.resolve() not in path.parents:
            raise ValueError(f"storage marker escapes the storage root: {marker!r}")
        return path

    def put(self, source: Path, key: str) -> str:
        marker = f"{key[:2]}/{key}"
        target = self._path_for(marker)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return marker

    def remove(self, marker: str) -> None:
        try:
            self._path_for(marker).unlink()
        except FileNotFoundError:
            logger.warning("Blob %s was already gone", marker)

    def open(self, marker: str) -> BinaryIO:
        return self._path_for(marker).open("rb")
