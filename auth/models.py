"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Stores and workflows
do the work.

Layer rule: imports only from core/. No imports from api/, catalog/,
notify/, or workflows/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from core.actions import ActionKind


@dataclass
class User:
    """A registered account.

    is_email_verified flips to True when an ACCOUNT_CONFIRMATION link is
    consumed. hashed_password is a bcrypt hash, never the plaintext.
    """

    name: str
    email: str
    hashed_password: str
    id: int | None = None
    is_email_verified: bool = False
    is_active: bool = True
    created_at: str | None = None


@dataclass
class Team:
    """A group of users that can own traffic models.

    owner_user_id is the creator; the owner is also stored as a member.
    """

    name: str
    owner_user_id: int
    id: int | None = None
    created_at: str | None = None


@dataclass
class LinkToken:
    """A single-use action token, as returned by LinkTokenEngine.issue().

    token is the raw bearer value. It exists only in this return value and in
    the emailed link -- the store persists HMAC-SHA256(SECRET_KEY, token).

    resource_id is the traffic model an OWNERSHIP_TRANSFER refers to; the
    subject_* fields name the transfer target for that kind and the prior_owner_*
    fields the owner who requested it.
    """

    token: str
    kind: ActionKind
    email: str
    created_at: datetime
    subject_user_id: int | None = None
    subject_team_id: int | None = None
    resource_id: int | None = None
    prior_owner_user_id: int | None = None
    prior_owner_team_id: int | None = None


@dataclass(frozen=True)
class SubjectBinding:
    """What a consumed token authorizes -- handed to the domain effect."""

    kind: ActionKind
    email: str
    subject_user_id: int | None = None
    subject_team_id: int | None = None
    resource_id: int | None = None
    prior_owner_user_id: int | None = None
    prior_owner_team_id: int | None = None
