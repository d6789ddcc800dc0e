"""
workflows/teams.py -- Team creation and email invitations.

Invitations bind the team (subject_team_id) and the invited address. The
invitee does not need an account when the link is sent, but must have one
registered under that address when accepting; otherwise acceptance fails with
NotFound and the link stays valid until they register.
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.credentials import validate_credentials
from auth.links import LinkTokenEngine
from auth.models import LinkToken, SubjectBinding, Team, User
from auth.store import UserStore
from core.actions import ActionKind
from core.config import Settings, get_settings
from core.results import AlreadyExists, Forbidden, NotFound, Ok, Result
from notify.dispatcher import NotificationDispatcher
from workflows.delivery import issue_and_send

logger = logging.getLogger("mobihub.workflows.teams")


class TeamWorkflows:
    def __init__(
        self,
        users: UserStore,
        links: LinkTokenEngine,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
    ) -> None:
        self._users = users
        self._links = links
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()

    def create_team(self, owner: User, name: str) -> Result[Team]:
        checked = validate_credentials(name=name, check_name=True)
        if not checked.ok:
            return checked
        if self._users.get_team_by_name(name) is not None:
            return AlreadyExists("Team", "name")
        try:
            team_id = self._users.create_team(Team(name=name, owner_user_id=owner.id))
        except IntegrityError:
            return AlreadyExists("Team", "name")
        logger.info("Team %d created by user %d", team_id, owner.id)
        return Ok(self._users.get_team(team_id))

    def invite(self, team_id: int, inviter: User, email: str) -> Result[LinkToken]:
        """Mail a TEAM_INVITE link to email. Only the team owner may invite."""
        checked = validate_credentials(email=email, check_email=True)
        if not checked.ok:
            return checked
        team = self._users.get_team(team_id)
        if team is None:
            return NotFound("Team", str(team_id))
        if team.owner_user_id != inviter.id:
            return Forbidden("invite members to this team")

        result = issue_and_send(
            self._links,
            self._dispatcher,
            self._settings,
            ActionKind.TEAM_INVITE,
            email,
            subject_team_id=team.id,
        )
        if result.ok:
            logger.info("User %d invited an email address to team %d", inviter.id, team.id)
        return result

    def accept_invite(self, raw_token: str) -> Result[Team]:
        def join(conn: Connection, binding: SubjectBinding) -> Result[None]:
            user = self._users.get_by_email(binding.email, conn=conn)
            if user is None:
                return NotFound("User", binding.email)
            if self._users.get_team(binding.subject_team_id, conn=conn) is None:
                return NotFound("Team", str(binding.subject_team_id))
            self._users.add_member(binding.subject_team_id, user.id, conn=conn)
            return Ok()

        result = self._links.consume(raw_token, ActionKind.TEAM_INVITE, apply=join)
        if not result.ok:
            return result
        logger.info("Invitation to team %d accepted", result.value.subject_team_id)
        return Ok(self._users.get_team(result.value.subject_team_id))
