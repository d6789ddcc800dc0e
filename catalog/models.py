"""
catalog/models.py -- Domain dataclasses for traffic models and assets.

These are pure data containers. Invariants (single owner, PENDING -> STORED)
are enforced by catalog/ownership.py and catalog/uploads.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AssetState(str, Enum):
    PENDING = "PENDING"  # token minted, bytes not yet confirmed
    STORED = "STORED"  # storage acknowledged and inspection passed


@dataclass
class TrafficModel:
    """A shareable traffic model.

    Exactly one of owner_user_id / owner_team_id is set. id is None before
    the record is written to the database.
    """

    name: str
    description: str = ""
    owner_user_id: Optional[int] = None
    owner_team_id: Optional[int] = None
    is_visibility_public: bool = False
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class UploadableAsset:
    """An image or archive whose bytes are uploaded after the record exists.

    stored_marker is the storage backend's reference to the bytes. It is None
    while the asset is PENDING and is never exposed for a PENDING asset.
    """

    token: str
    name: str
    extension: str  # "jpg" | "png" | "zip"
    traffic_model_id: Optional[int] = None
    stored_marker: Optional[str] = None
    created_at: str = ""

    @property
    def state(self) -> AssetState:
        return AssetState.STORED if self.stored_marker else AssetState.PENDING
