"""
tests/test_ownership.py -- Tests for catalog/ownership.py and catalog/store.py.

Covers:
  - check_ownership truth table (None and 0 are both "no owner")
  - assign: sets the new owner and clears the other column atomically
  - assign on a missing model -> NotFound
  - assign joining a caller transaction that later rolls back
  - the database CHECK constraint as a backstop
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from catalog.models import TrafficModel
from catalog.ownership import ResourceOwnership, check_ownership
from catalog.store import CatalogStore
from core.results import InvalidOwnership, NotFound


@pytest.fixture
def model_id(catalog: CatalogStore) -> int:
    return catalog.create_traffic_model(TrafficModel(name="Karlsruhe A5", owner_user_id=1))


class TestCheckOwnership:
    @pytest.mark.parametrize("user,team", [(5, None), (None, 7), (5, 0), (0, 7)])
    def test_exactly_one_owner_is_ok(self, user, team) -> None:
        assert check_ownership(user, team).ok

    @pytest.mark.parametrize("user,team", [(5, 7), (None, None), (0, 0), (0, None)])
    def test_zero_or_two_owners_fail(self, user, team) -> None:
        assert isinstance(check_ownership(user, team), InvalidOwnership)


class TestAssign:
    def test_assign_user(self, catalog: CatalogStore, model_id: int) -> None:
        assert ResourceOwnership(catalog).assign(model_id, owner_user_id=5).ok
        model = catalog.get_traffic_model(model_id)
        assert (model.owner_user_id, model.owner_team_id) == (5, None)

    def test_assign_team_clears_user(self, catalog: CatalogStore, model_id: int) -> None:
        assert ResourceOwnership(catalog).assign(model_id, owner_team_id=7).ok
        model = catalog.get_traffic_model(model_id)
        assert (model.owner_user_id, model.owner_team_id) == (None, 7)

    def test_two_owners_rejected_and_unchanged(self, catalog: CatalogStore, model_id: int) -> None:
        result = ResourceOwnership(catalog).assign(model_id, owner_user_id=5, owner_team_id=7)
        assert isinstance(result, InvalidOwnership)
        assert catalog.get_traffic_model(model_id).owner_user_id == 1

    def test_no_owner_rejected(self, catalog: CatalogStore, model_id: int) -> None:
        assert isinstance(ResourceOwnership(catalog).assign(model_id), InvalidOwnership)

    def test_missing_model(self, catalog: CatalogStore) -> None:
        assert isinstance(ResourceOwnership(catalog).assign(999, owner_user_id=5), NotFound)

    def test_joins_caller_transaction(self, catalog: CatalogStore, model_id: int) -> None:
        class Abort(Exception):
            pass

        with pytest.raises(Abort):
            with catalog.engine.begin() as conn:
                assert ResourceOwnership(catalog).assign(model_id, owner_team_id=7, conn=conn).ok
                raise Abort()

        assert catalog.get_traffic_model(model_id).owner_user_id == 1


class TestSchemaBackstop:
    def test_check_constraint_rejects_two_owners(self, catalog: CatalogStore) -> None:
        with pytest.raises(IntegrityError):
            catalog.create_traffic_model(TrafficModel(name="bad", owner_user_id=1, owner_team_id=2))

    def test_check_constraint_rejects_no_owner(self, catalog: CatalogStore) -> None:
        with pytest.raises(IntegrityError):
            catalog.create_traffic_model(TrafficModel(name="bad"))
