"""
catalog/store.py -- SQLAlchemy Core persistence for traffic models and assets.

Pattern: Repository + Data Mapper. CatalogStore is the repository; the
_row_to_* functions are the mappers. Invariant checks live one level up in
catalog/ownership.py and catalog/uploads.py, which call the conditional
writes below inside their own transactions.

Schema backstop: traffic_models carries a CHECK constraint that exactly one
owner column is non-NULL. The code path validates first; the constraint only
catches a bypass.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CatalogStore(engine)
    model_id = store.create_traffic_model(TrafficModel(name="A9", owner_user_id=5))
    store.get_traffic_model(model_id)
"""

from typing import Optional

from sqlalchemy import CheckConstraint, Column, Integer, String, Table, Text, and_
from sqlalchemy.engine import Connection, Engine

from catalog.models import TrafficModel, UploadableAsset
from core.database import metadata, now_utc, to_iso, transaction

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_traffic_models = Table(
    "traffic_models",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(64), nullable=False),
    Column("description", String(1024), nullable=False, server_default=""),
    Column("owner_user_id", Integer),
    Column("owner_team_id", Integer),
    Column("is_visibility_public", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    CheckConstraint(
        "(owner_user_id IS NULL AND owner_team_id IS NOT NULL)"
        " OR (owner_user_id IS NOT NULL AND owner_team_id IS NULL)",
        name="ck_traffic_models_single_owner",
    ),
)

_assets = Table(
    "assets",
    metadata,
    Column("token", String(36), primary_key=True),
    Column("name", String(64), nullable=False),
    Column("extension", String(10), nullable=False),
    Column("traffic_model_id", Integer),
    Column("stored_marker", Text),  # NULL while PENDING
    Column("created_at", String(32), nullable=False),
)


class CatalogStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Traffic models
    # ------------------------------------------------------------------

    def create_traffic_model(self, model: TrafficModel, conn: Optional[Connection] = None) -> int:
        """Insert a traffic model and return its ID.

        Callers validate ownership first (catalog.ownership.check_ownership);
        a violating row raises IntegrityError from the CHECK constraint.
        """
        with transaction(self.engine, conn) as c:
            result = c.execute(
                _traffic_models.insert().values(
                    name=model.name,
                    description=model.description,
                    owner_user_id=model.owner_user_id,
                    owner_team_id=model.owner_team_id,
                    is_visibility_public=1 if model.is_visibility_public else 0,
                    created_at=to_iso(now_utc()),
                )
            )
            return result.inserted_primary_key[0]

    def get_traffic_model(self, model_id: int, conn: Optional[Connection] = None) -> Optional[TrafficModel]:
        with transaction(self.engine, conn) as c:
            row = c.execute(_traffic_models.select().where(_traffic_models.c.id == model_id)).fetchone()
        return _row_to_traffic_model(row) if row is not None else None

    def set_owner(
        self,
        model_id: int,
        owner_user_id: Optional[int],
        owner_team_id: Optional[int],
        conn: Optional[Connection] = None,
    ) -> bool:
        """Write both owner columns in one UPDATE. Returns False if the model is missing."""
        with transaction(self.engine, conn) as c:
            result = c.execute(
                _traffic_models.update()
                .where(_traffic_models.c.id == model_id)
                .values(owner_user_id=owner_user_id, owner_team_id=owner_team_id)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def insert_asset(self, asset: UploadableAsset) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _assets.insert().values(
                    token=asset.token,
                    name=asset.name,
                    extension=asset.extension,
                    traffic_model_id=asset.traffic_model_id,
                    stored_marker=None,
                    created_at=asset.created_at or to_iso(now_utc()),
                )
            )

    def get_asset(self, token: str, conn: Optional[Connection] = None) -> Optional[UploadableAsset]:
        with transaction(self.engine, conn) as c:
            row = c.execute(_assets.select().where(_assets.c.token == token)).fetchone()
        return _row_to_asset(row) if row is not None else None

    def mark_asset_stored(self, token: str, stored_marker: str, conn: Optional[Connection] = None) -> bool:
        """Set stored_marker only if the asset is still PENDING.

        Returns True iff this call performed the PENDING -> STORED transition.
        """
        with transaction(self.engine, conn) as c:
            result = c.execute(
                _assets.update()
                .where(and_(_assets.c.token == token, _assets.c.stored_marker.is_(None)))
                .values(stored_marker=stored_marker)
            )
        return result.rowcount > 0

    def list_assets_for_model(self, model_id: int) -> list[UploadableAsset]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _assets.select().where(_assets.c.traffic_model_id == model_id).order_by(_assets.c.created_at)
            ).fetchall()
        return [_row_to_asset(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_traffic_model(row) -> TrafficModel:
    return TrafficModel(
        id=row.id,
        name=row.name,
        description=row.description,
        owner_user_id=row.owner_user_id,
        owner_team_id=row.owner_team_id,
        is_visibility_public=bool(row.is_visibility_public),
        created_at=row.created_at,
    )


def _row_to_asset(row) -> UploadableAsset:
    return UploadableAsset(
        token=row.token,
        name=row.name,
        extension=row.extension,
        traffic_model_id=row.traffic_model_id,
        stored_marker=row.stored_marker,
        created_at=row.created_at,
    )
