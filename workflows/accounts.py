"""
workflows/accounts.py -- Registration, email confirmation, password reset.

Flows:
  register            validate -> create user -> ACCOUNT_CONFIRMATION link
  resend_confirmation new ACCOUNT_CONFIRMATION link for an unverified account
  confirm_email       consume link -> mark the account verified
  request_password_reset  PASSWORD_RESET link to a registered email
  reset_password      validate new password -> consume link -> store new hash

Account enumeration: resend_confirmation and request_password_reset answer
Ok() for unknown emails without issuing anything, so the response does not
reveal whether an address is registered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.credentials import validate_credentials
from auth.links import LinkTokenEngine
from auth.models import SubjectBinding, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.actions import ActionKind
from core.config import Settings, get_settings
from core.results import AlreadyExists, NotFound, Ok, Result
from notify.dispatcher import NotificationDispatcher
from workflows.delivery import issue_and_send

logger = logging.getLogger("mobihub.workflows.accounts")


@dataclass
class Registration:
    user: User
    confirmation_sent: bool


class AccountWorkflows:
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

    def _send(self, kind: ActionKind, email: str, user_id: int) -> Result:
        return issue_and_send(self._links, self._dispatcher, self._settings, kind, email, subject_user_id=user_id)

    # ------------------------------------------------------------------
    # Registration and confirmation
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> Result[Registration]:
        """Create an unverified account and mail its confirmation link.

        A failed delivery does not undo the account: the confirmation token is
        discarded and Registration.confirmation_sent is False, so the client
        can offer a resend.
        """
        checked = validate_credentials(name, email, password, check_name=True, check_email=True, check_password=True)
        if not checked.ok:
            return checked
        if self._users.get_by_email(email) is not None:
            return AlreadyExists("User", "email")
        if self._users.get_by_name(name) is not None:
            return AlreadyExists("User", "name")

        try:
            user_id = self._users.create_user(User(name=name, email=email, hashed_password=hash_password(password)))
        except IntegrityError:
            # Lost a race with a concurrent registration for the same name/email.
            return AlreadyExists("User", "email")
        user = self._users.get_by_id(user_id)
        logger.info("User created: id=%d", user_id)

        sent = self._send(ActionKind.ACCOUNT_CONFIRMATION, email, user_id)
        if not sent.ok:
            logger.warning("Confirmation email for user %d not delivered (%s)", user_id, sent.code)
        return Ok(Registration(user=user, confirmation_sent=sent.ok))

    def resend_confirmation(self, email: str) -> Result[None]:
        user = self._users.get_by_email(email)
        if user is None or user.is_email_verified:
            return Ok()
        sent = self._send(ActionKind.ACCOUNT_CONFIRMATION, user.email, user.id)
        return sent if not sent.ok else Ok()

    def confirm_email(self, raw_token: str) -> Result[User]:
        def verify(conn: Connection, binding: SubjectBinding) -> Result[None]:
            user_id = binding.subject_user_id
            if user_id is None:
                user = self._users.get_by_email(binding.email, conn=conn)
                user_id = user.id if user is not None else None
            if user_id is None or not self._users.mark_email_verified(user_id, conn=conn):
                return NotFound("User", binding.email)
            return Ok()

        result = self._links.consume(raw_token, ActionKind.ACCOUNT_CONFIRMATION, apply=verify)
        if not result.ok:
            return result
        user = self._users.get_by_email(result.value.email)
        logger.info("Email confirmed for user %s", user.id if user else "?")
        return Ok(user)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> Result[None]:
        checked = validate_credentials(email=email, check_email=True)
        if not checked.ok:
            return checked
        user = self._users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for an unknown email")
            return Ok()
        sent = self._send(ActionKind.PASSWORD_RESET, user.email, user.id)
        if not sent.ok:
            return sent
        logger.info("Password reset link sent for user %d", user.id)
        return Ok()

    def reset_password(self, raw_token: str, new_password: str) -> Result[None]:
        """Set a new password using a PASSWORD_RESET link.

        The password is validated and hashed before the token is consumed: an
        invalid password leaves the link usable, and the bcrypt work happens
        outside the write transaction.
        """
        checked = validate_credentials(password=new_password, check_password=True)
        if not checked.ok:
            return checked
        hashed = hash_password(new_password)

        def store_password(conn: Connection, binding: SubjectBinding) -> Result[None]:
            if binding.subject_user_id is None or not self._users.set_password(
                binding.subject_user_id, hashed, conn=conn
            ):
                return NotFound("User", binding.email)
            return Ok()

        result = self._links.consume(raw_token, ActionKind.PASSWORD_RESET, apply=store_password)
        if not result.ok:
            return result
        logger.info("Password reset for user %d", result.value.subject_user_id)
        return Ok()
