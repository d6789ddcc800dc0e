"""
catalog/uploads.py -- PENDING -> STORED lifecycle for uploaded assets.

An asset record (and its content token) exists before any bytes do:

  mint(name, extension)              -> asset in PENDING
  complete(token, marker, source)    -> STORED, once storage has the bytes and
                                        the inspector returns CLEAN
  is_retrievable(token)              -> True iff STORED

There is no way back to PENDING. A NOT_CLEAN verdict returns FileInfected and
leaves the asset PENDING; the caller throws the bytes away and the client
uploads again. Nothing may serve a PENDING asset, which is why the storage
marker is only handed out by retrievable_marker().

The byte transfer itself is the storage collaborator's job; this module only
tracks the state and gates it on inspection.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from catalog.inspection import ContentInspector, Verdict
from catalog.models import AssetState, UploadableAsset
from catalog.store import CatalogStore
from core.database import transaction
from core.results import FileInfected, NotFound, Ok, Result

logger = logging.getLogger("mobihub.uploads")

ALLOWED_EXTENSIONS = frozenset({"jpg", "png", "zip"})

# Leading magic bytes of the image formats we accept.
_IMAGE_SIGNATURES = {
    b"\xff\xd8": "jpg",
    b"\x89PNG": "png",
}


def sniff_image_extension(head: bytes) -> Optional[str]:
    """Return "jpg" or "png" when head starts with that format's signature."""
    for signature, extension in _IMAGE_SIGNATURES.items():
        if head.startswith(signature):
            return extension
    return None


class UploadLifecycle:
    def __init__(self, store: CatalogStore, inspector: ContentInspector) -> None:
        self._store = store
        self._inspector = inspector

    def mint(self, name: str, extension: str, traffic_model_id: Optional[int] = None) -> UploadableAsset:
        """Create a PENDING asset and return it with its content token."""
        extension = extension.lower().lstrip(".")
        if extension not in ALLOWED_EXTENSIONS:
            raise ValueError(f"unsupported file extension: {extension!r}")
        asset = UploadableAsset(
            token=str(uuid.uuid4()),
            name=name,
            extension=extension,
            traffic_model_id=traffic_model_id,
        )
        self._store.insert_asset(asset)
        logger.info("Minted %s asset %s", extension, asset.token)
        return asset

    def complete(self, token: str, stored_marker: str, source: Path) -> Result[UploadableAsset]:
        """Move a PENDING asset to STORED after a CLEAN inspection of source.

        Completing an asset that is already STORED returns it unchanged; the
        first marker wins.
        """
        asset = self._store.get_asset(token)
        if asset is None:
            return NotFound("Asset", token)
        if asset.state is AssetState.STORED:
            return Ok(asset)

        verdict = self._inspector.inspect(Path(source))
        if verdict is not Verdict.CLEAN:
            logger.warning("SECURITY: content inspection rejected upload for asset %s", token)
            return FileInfected(token)

        with transaction(self._store.engine) as conn:
            if not self._store.mark_asset_stored(token, stored_marker, conn=conn):
                # A concurrent complete() won; report the state it left behind.
                current = self._store.get_asset(token, conn=conn)
                return Ok(current) if current is not None else NotFound("Asset", token)
            stored = self._store.get_asset(token, conn=conn)

        logger.info("Asset %s stored", token)
        return Ok(stored)

    def is_retrievable(self, token: str) -> bool:
        asset = self._store.get_asset(token)
        return asset is not None and asset.state is AssetState.STORED

    def retrievable_marker(self, token: str) -> Optional[str]:
        """Return the storage marker for a STORED asset, None otherwise."""
        asset = self._store.get_asset(token)
        if asset is None or asset.state is not AssetState.STORED:
            return None
        return asset.stored_marker
