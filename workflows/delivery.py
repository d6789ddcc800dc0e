"""
workflows/delivery.py -- Build the emailed link and send it, or roll back.

Every outgoing action follows the same steps:

  1. LinkTokenEngine.issue()
  2. build_link(): FRONTEND_BASE_URL + the kind's path + ?token=...&kind=...
  3. NotificationDispatcher.send()
  4. On EmptyRecipients / DeliveryFailed, discard the token just issued so no
     undelivered bearer credential stays valid, and return the failure.
"""

from __future__ import annotations

from urllib.parse import quote, urlencode

from auth.links import LinkTokenEngine
from auth.models import LinkToken
from core.actions import ACTION_PROFILES, ActionKind
from core.config import Settings
from core.results import Ok, Result
from notify.dispatcher import NotificationDispatcher


def build_link(base_url: str, kind: ActionKind, raw_token: str) -> str:
    params = urlencode({"token": raw_token, "kind": kind.value}, quote_via=quote)
    return f"{base_url.rstrip('/')}{ACTION_PROFILES[kind].link_path}?{params}"


def issue_and_send(
    links: LinkTokenEngine,
    dispatcher: NotificationDispatcher,
    settings: Settings,
    kind: ActionKind,
    email: str,
    subject_user_id: int | None = None,
    subject_team_id: int | None = None,
    resource_id: int | None = None,
    prior_owner_user_id: int | None = None,
    prior_owner_team_id: int | None = None,
) -> Result[LinkToken]:
    """Issue a token bound to email, mail its link to email, return Ok(token)."""
    issued = links.issue(
        kind,
        email,
        subject_user_id=subject_user_id,
        subject_team_id=subject_team_id,
        resource_id=resource_id,
        prior_owner_user_id=prior_owner_user_id,
        prior_owner_team_id=prior_owner_team_id,
    )
    sent = dispatcher.send(kind, [email], build_link(settings.frontend_base_url, kind, issued.token))
    if not sent.ok:
        links.discard(issued.token)
        return sent
    return Ok(issued)
