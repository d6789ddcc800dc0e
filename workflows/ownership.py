"""
workflows/ownership.py -- Traffic model creation and ownership transfer.

A transfer is a two-step handshake:
  request_transfer  a manager of the model names a target (a user by email, or
                    a team). An OWNERSHIP_TRANSFER link binding the target and
                    the model goes to the target user, or to the target team's
                    owner.
  accept_transfer   the link is consumed and ResourceOwnership.assign() runs
                    on the consume transaction: the target becomes the sole
                    owner and the old owner column is cleared. The link
                    records the owner who requested it; once ownership has
                    changed the link is refused. When the effect fails (model
                    deleted, owner changed) the token survives until expiry.

"Manager" follows the platform rule for editing a model: the owning user, or
any member of the owning team.
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Connection

from auth.credentials import validate_credentials
from auth.links import LinkTokenEngine
from auth.models import LinkToken, SubjectBinding, User
from auth.store import UserStore
from catalog.models import TrafficModel
from catalog.ownership import ResourceOwnership, check_ownership
from catalog.store import CatalogStore
from core.actions import ActionKind
from core.config import Settings, get_settings
from core.results import Forbidden, InvalidOwnership, NotFound, Ok, Result
from notify.dispatcher import NotificationDispatcher
from workflows.delivery import issue_and_send

logger = logging.getLogger("mobihub.workflows.ownership")


class OwnershipWorkflows:
    def __init__(
        self,
        users: UserStore,
        catalog: CatalogStore,
        links: LinkTokenEngine,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
    ) -> None:
        self._users = users
        self._catalog = catalog
        self._ownership = ResourceOwnership(catalog)
        self._links = links
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()

    def can_manage(self, user: User, model: TrafficModel) -> bool:
        if model.owner_user_id is not None:
            return model.owner_user_id == user.id
        return self._users.is_member(model.owner_team_id, user.id)

    def create_model(
        self,
        creator: User,
        name: str,
        description: str = "",
        is_visibility_public: bool = False,
        owner_team_id: int | None = None,
    ) -> Result[TrafficModel]:
        """Create a model owned by the creator, or by one of the creator's teams."""
        if owner_team_id is not None:
            if self._users.get_team(owner_team_id) is None:
                return NotFound("Team", str(owner_team_id))
            if not self._users.is_member(owner_team_id, creator.id):
                return Forbidden("create models for this team")
            owner_user_id = None
        else:
            owner_user_id = creator.id

        checked = check_ownership(owner_user_id, owner_team_id)
        if not checked.ok:
            return checked
        model_id = self._catalog.create_traffic_model(
            TrafficModel(
                name=name,
                description=description,
                owner_user_id=owner_user_id,
                owner_team_id=owner_team_id,
                is_visibility_public=is_visibility_public,
            )
        )
        logger.info("Created traffic model with id: %d", model_id)
        return Ok(self._catalog.get_traffic_model(model_id))

    def request_transfer(
        self,
        model_id: int,
        requester: User,
        target_email: str | None = None,
        target_team_id: int | None = None,
    ) -> Result[LinkToken]:
        if (target_email is None) == (target_team_id is None):
            return InvalidOwnership(target_email, target_team_id)
        model = self._catalog.get_traffic_model(model_id)
        if model is None:
            return NotFound("Traffic model", str(model_id))
        if not self.can_manage(requester, model):
            return Forbidden("transfer this model")

        if target_email is not None:
            checked = validate_credentials(email=target_email, check_email=True)
            if not checked.ok:
                return checked
            target = self._users.get_by_email(target_email)
            if target is None:
                return NotFound("User", target_email)
            recipient, subject_user_id, subject_team_id = target.email, target.id, None
        else:
            team = self._users.get_team(target_team_id)
            if team is None:
                return NotFound("Team", str(target_team_id))
            team_owner = self._users.get_by_id(team.owner_user_id)
            if team_owner is None:
                return NotFound("User", str(team.owner_user_id))
            recipient, subject_user_id, subject_team_id = team_owner.email, None, team.id

        result = issue_and_send(
            self._links,
            self._dispatcher,
            self._settings,
            ActionKind.OWNERSHIP_TRANSFER,
            recipient,
            subject_user_id=subject_user_id,
            subject_team_id=subject_team_id,
            resource_id=model.id,
            prior_owner_user_id=model.owner_user_id,
            prior_owner_team_id=model.owner_team_id,
        )
        if result.ok:
            logger.info("Ownership transfer of model %d requested by user %d", model.id, requester.id)
        return result

    def accept_transfer(self, raw_token: str) -> Result[TrafficModel]:
        def reassign(conn: Connection, binding: SubjectBinding) -> Result[None]:
            model = self._catalog.get_traffic_model(binding.resource_id, conn=conn)
            if model is None:
                return NotFound("Traffic model", str(binding.resource_id))
            current = (model.owner_user_id, model.owner_team_id)
            if current != (binding.prior_owner_user_id, binding.prior_owner_team_id):
                logger.warning("Stale ownership transfer link for model %d rejected", model.id)
                return Forbidden("accept a transfer the current owner did not request")
            return self._ownership.assign(
                binding.resource_id,
                owner_user_id=binding.subject_user_id,
                owner_team_id=binding.subject_team_id,
                conn=conn,
            )

        result = self._links.consume(raw_token, ActionKind.OWNERSHIP_TRANSFER, apply=reassign)
        if not result.ok:
            return result
        logger.info("Ownership of model %d transferred", result.value.resource_id)
        return Ok(self._catalog.get_traffic_model(result.value.resource_id))
