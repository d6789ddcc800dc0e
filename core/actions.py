"""
core/actions.py -- The closed set of link token action kinds.

Every action kind is paired with the data each layer needs about it:
  - template / subject: used by notify/ to render the email
  - link_path:          used by workflows/ to build the frontend URL
  - ttl_setting:        name of the Settings field holding the TTL in hours

Resolution goes through the ACTION_PROFILES table rather than per-kind
methods, so adding a kind means adding one enum member and one table row.
A kind without a row fails at import time (see the assert below).

Layer rule: core/ is the kernel. No imports from other project packages
except core.config.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from core.config import Settings


class ActionKind(str, Enum):
    ACCOUNT_CONFIRMATION = "ACCOUNT_CONFIRMATION"
    PASSWORD_RESET = "PASSWORD_RESET"
    TEAM_INVITE = "TEAM_INVITE"
    OWNERSHIP_TRANSFER = "OWNERSHIP_TRANSFER"


@dataclass(frozen=True)
class ActionProfile:
    template: str  # file name under notify/templates/
    subject: str
    link_path: str  # frontend route, appended to FRONTEND_BASE_URL
    ttl_setting: str  # Settings attribute, hours


ACTION_PROFILES: dict[ActionKind, ActionProfile] = {
    ActionKind.ACCOUNT_CONFIRMATION: ActionProfile(
        template="account-confirmation.html",
        subject="mobiHub Account Confirmation",
        link_path="/auth/verify-email",
        ttl_setting="account_confirmation_ttl_hours",
    ),
    ActionKind.PASSWORD_RESET: ActionProfile(
        template="password-reset.html",
        subject="mobiHub Password Reset",
        link_path="/user/resetpassword",
        ttl_setting="password_reset_ttl_hours",
    ),
    ActionKind.TEAM_INVITE: ActionProfile(
        template="team-invitation.html",
        subject="mobiHub Team Invitation",
        link_path="/teams/join",
        ttl_setting="team_invite_ttl_hours",
    ),
    ActionKind.OWNERSHIP_TRANSFER: ActionProfile(
        template="transfer-ownership.html",
        subject="mobiHub Model Ownership Transfer",
        link_path="/models/transfer",
        ttl_setting="ownership_transfer_ttl_hours",
    ),
}

assert set(ACTION_PROFILES) == set(ActionKind), "every ActionKind needs a profile"


def ttl_for(kind: ActionKind, settings: Settings) -> timedelta:
    """Return the configured time-to-live for tokens of this kind."""
    return timedelta(hours=getattr(settings, ACTION_PROFILES[kind].ttl_setting))
