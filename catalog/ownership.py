"""
catalog/ownership.py -- Exactly-one-owner invariant for traffic models.

A traffic model belongs to one user or one team, never both, never neither.
check_ownership() is the pure rule; ResourceOwnership.assign() applies it and
writes both owner columns in the same transaction, so a transfer sets the
new owner and clears the previous one atomically.

assign() joins the caller's transaction when given a Connection. The
ownership-transfer workflow uses that to run it inside
LinkTokenEngine.consume(), so a rejected assignment also keeps the token.
"""

from typing import Optional

from sqlalchemy.engine import Connection

from catalog.store import CatalogStore
from core.database import transaction
from core.results import InvalidOwnership, NotFound, Ok, Result


def _present(owner_id: Optional[int]) -> bool:
    # 0 is never a valid autoincrement id; treat it like a missing value.
    return owner_id is not None and owner_id != 0


def check_ownership(owner_user_id: Optional[int], owner_team_id: Optional[int]) -> Result[None]:
    if _present(owner_user_id) == _present(owner_team_id):
        return InvalidOwnership(owner_user_id, owner_team_id)
    return Ok()


class ResourceOwnership:
    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    def assign(
        self,
        resource_id: int,
        owner_user_id: Optional[int] = None,
        owner_team_id: Optional[int] = None,
        conn: Optional[Connection] = None,
    ) -> Result[None]:
        """Make the given user or team the sole owner of resource_id."""
        checked = check_ownership(owner_user_id, owner_team_id)
        if not checked.ok:
            return checked
        user_id = owner_user_id if _present(owner_user_id) else None
        team_id = owner_team_id if _present(owner_team_id) else None
        with transaction(self._store.engine, conn) as c:
            if not self._store.set_owner(resource_id, user_id, team_id, conn=c):
                return NotFound("Traffic model", str(resource_id))
        return Ok()
