"""
api/routes/v1/assets.py -- Uploadable asset routes (images and model archives).

Routes:
  POST /api/v1/assets                  -- mint a PENDING asset and its content token
  PUT  /api/v1/assets/{token}/content  -- upload bytes; STORED after inspection
  GET  /api/v1/assets/{token}          -- download bytes of a STORED asset

File uploads:
  /content accepts multipart/form-data with a single "file" part, capped at
  _MAX_UPLOAD_BYTES. Image uploads must start with the magic bytes of the
  extension declared at mint time; archives must start with the zip local
  file header. The bytes go to a temp file, then to blob storage, and the
  content inspector sees the temp file before the asset may become STORED.
  A rejected upload is removed from storage and the asset stays PENDING, so
  the client can upload again.

Download is public: the content token is a random UUID that only reaches
people the asset is shared with. A PENDING asset answers 404.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from api.errors import raise_for_failure
from api.limiter import limiter
from api.models import AssetCreate, AssetResponse, ErrorDetail
from auth.dependencies import get_current_user
from catalog.models import AssetState, UploadableAsset
from catalog.storage import LocalBlobStorage
from catalog.store import CatalogStore
from catalog.uploads import ALLOWED_EXTENSIONS, UploadLifecycle, sniff_image_extension
from core.results import NotFound, Result

logger = logging.getLogger("mobihub.api.assets")

router = APIRouter()

_MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MB

_ZIP_SIGNATURE = b"PK\x03\x04"

_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "zip": "application/zip",
}


_CHUNK_BYTES = 64 * 1024


def _content_matches(extension: str, head: bytes) -> bool:
    if extension == "zip":
        return head.startswith(_ZIP_SIGNATURE)
    return sniff_image_extension(head) == extension


def _iter_blob(handle):
    with handle:
        yield from iter(lambda: handle.read(_CHUNK_BYTES), b"")


# ---------------------------------------------------------------------------
# POST /assets -- mint a PENDING asset
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/assets", response_model=AssetResponse, status_code=201, dependencies=[Depends(get_current_user)])
def create_asset(request: Request, body: AssetCreate) -> AssetResponse:
    """Create the asset record and content token before any bytes exist."""
    uploads: UploadLifecycle = request.app.state.uploads
    catalog: CatalogStore = request.app.state.catalog

    extension = body.extension.lower().lstrip(".")
    if extension not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="invalid_param",
                message=f"extension must be one of: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
            ).model_dump(),
        )
    if body.traffic_model_id is not None and catalog.get_traffic_model(body.traffic_model_id) is None:
        raise_for_failure(NotFound("Traffic model", str(body.traffic_model_id)))

    asset = uploads.mint(body.name, extension, traffic_model_id=body.traffic_model_id)
    return AssetResponse.from_asset(asset)


# ---------------------------------------------------------------------------
# PUT /assets/{token}/content -- upload bytes
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.put("/assets/{token}/content", response_model=AssetResponse, dependencies=[Depends(get_current_user)])
async def upload_content(request: Request, token: str, file: UploadFile) -> AssetResponse:
    """Receive the bytes for a PENDING asset and complete it.

    Uploading to an asset that is already STORED returns it unchanged; the
    first upload wins and its bytes are never overwritten.
    """
    catalog: CatalogStore = request.app.state.catalog
    uploads: UploadLifecycle = request.app.state.uploads
    storage: LocalBlobStorage = request.app.state.storage

    asset = await asyncio.to_thread(catalog.get_asset, token)
    if asset is None:
        raise_for_failure(NotFound("Asset", token))
    if asset.state is AssetState.STORED:
        return AssetResponse.from_asset(asset)

    # Size guard -- read up to the cap + 1 byte; reject if over limit
    raw = await file.read(_MAX_UPLOAD_BYTES + 1)
    if len(raw) > _MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(code="file_too_large", message="Upload must be 50 MB or smaller.").model_dump(),
        )
    if not _content_matches(asset.extension, raw[:8]):
        raise HTTPException(
            status_code=415,
            detail=ErrorDetail(
                code="content_mismatch",
                message=f"File content is not a valid .{asset.extension} file.",
            ).model_dump(),
        )

    # Copy, inspection and the DB update block; keep them off the event loop.
    result = await asyncio.to_thread(_store_upload, storage, uploads, token, asset.extension, raw)
    raise_for_failure(result)
    return AssetResponse.from_asset(result.value)


def _store_upload(
    storage: LocalBlobStorage, uploads: UploadLifecycle, token: str, extension: str, raw: bytes
) -> Result[UploadableAsset]:
    """Spool raw to a temp file, store it, and complete the asset.

    The stored blob is removed again when completion fails.
    """
    fd, tmp_name = tempfile.mkstemp(suffix=f".{extension}")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(raw)
        marker = storage.put(tmp_path, token)
        result = uploads.complete(token, marker, tmp_path)
        if not result.ok:
            storage.remove(marker)
        return result
    finally:
        tmp_path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# GET /assets/{token} -- download
# ---------------------------------------------------------------------------


@router.get("/assets/{token}")
def download_asset(request: Request, token: str) -> StreamingResponse:
    catalog: CatalogStore = request.app.state.catalog
    uploads: UploadLifecycle = request.app.state.uploads
    storage: LocalBlobStorage = request.app.state.storage

    marker = uploads.retrievable_marker(token)
    if marker is None:
        raise_for_failure(NotFound("Asset", token))
    asset = catalog.get_asset(token)
    filename = f"{asset.name}.{asset.extension}".replace('"', "")
    return StreamingResponse(
        _iter_blob(storage.open(marker)),
        media_type=_MEDIA_TYPES[asset.extension],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
