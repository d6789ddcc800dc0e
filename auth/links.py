"""
auth/links.py -- Issue, validate and consume single-use link tokens.

A link token authorizes exactly one state transition (confirm an email,
reset a password, join a team, accept a model). It is a bearer credential:
whoever holds the URL can perform the action, so the engine guarantees

  - unguessable values: 128 bits from secrets, never sequential or time-based
  - storage by HMAC only (auth/tokens.hash_link_token)
  - kind binding: a PASSWORD_RESET token cannot be presented as a TEAM_INVITE
  - expiry: now - created_at > ttl(kind) fails, re-checked on every consume,
    whether or not purge_expired() has run
  - single use: the record is deleted by a conditional DELETE whose
    rows-affected count decides which of several concurrent consumers wins

States: ISSUED -> CONSUMED (row deleted) or EXPIRED (row ignored, later purged).

consume() takes an optional `apply(conn, binding)` callback: the domain effect
runs on the same connection, inside the same transaction as the delete. If it
returns a Failure or raises, everything rolls back and the token can be
presented again.

Layer rule: imports only from core/ and auth/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.models import LinkToken, SubjectBinding
from auth.store import UserStore
from auth.tokens import generate_link_token, hash_link_token
from core.actions import ActionKind, ttl_for
from core.config import Settings, get_settings
from core.database import from_iso, now_utc, transaction
from core.results import Failure, Ok, Result, TokenExpired, TokenKindMismatch, TokenNotFound

logger = logging.getLogger("mobihub.links")

# A 128-bit collision is not expected in the lifetime of the universe; the
# bound only guarantees issue() terminates if the generator is broken.
MAX_ISSUE_ATTEMPTS = 5

DomainEffect = Callable[[Connection, SubjectBinding], "Result | None"]


class LinkTokenCollisionError(RuntimeError):
    """issue() could not find a free token value within MAX_ISSUE_ATTEMPTS."""


class _EffectRejected(Exception):
    """Internal: carries a Failure out of the transaction to force a rollback."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.code)
        self.failure = failure


def _check_binding(
    kind: ActionKind,
    subject_user_id: int | None,
    subject_team_id: int | None,
    resource_id: int | None,
    prior_owner_user_id: int | None = None,
    prior_owner_team_id: int | None = None,
) -> None:
    """Raise ValueError when the subject fields do not fit the action kind."""
    if kind is ActionKind.OWNERSHIP_TRANSFER:
        if (subject_user_id is None) == (subject_team_id is None):
            raise ValueError("OWNERSHIP_TRANSFER tokens bind exactly one of user or team")
        if resource_id is None:
            raise ValueError("OWNERSHIP_TRANSFER tokens need a resource_id")
        if (prior_owner_user_id is None) == (prior_owner_team_id is None):
            raise ValueError("OWNERSHIP_TRANSFER tokens record exactly one prior owner")
        return

    if prior_owner_user_id is not None or prior_owner_team_id is not None:
        raise ValueError(f"{kind.value} tokens cannot record a prior owner")
    if kind is ActionKind.TEAM_INVITE:
        if subject_team_id is None or subject_user_id is not None:
            raise ValueError("TEAM_INVITE tokens bind a team and no user")
    elif subject_team_id is not None:
        raise ValueError(f"{kind.value} tokens cannot bind a team")


class LinkTokenEngine:
    """Owns the link_tokens records for their whole lifetime.

    Usage:
        links = LinkTokenEngine(user_store)
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@x.org", subject_user_id=5)
        ...
        result = links.consume(issued.token, ActionKind.PASSWORD_RESET)
        if result.ok:
            result.value.subject_user_id  # 5

    clock is injectable so tests can move time past a TTL.
    """

    def __init__(
        self,
        store: UserStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock

    def ttl(self, kind: ActionKind):
        return ttl_for(kind, self._settings)

    def issue(
        self,
        kind: ActionKind,
        email: str,
        subject_user_id: int | None = None,
        subject_team_id: int | None = None,
        resource_id: int | None = None,
        prior_owner_user_id: int | None = None,
        prior_owner_team_id: int | None = None,
    ) -> LinkToken:
        """Mint and persist a new token and return it with its raw value.

        With SUPERSEDE_PRIOR_LINK_TOKENS enabled, outstanding tokens of the
        same kind for the same subject and email are deleted in the same
        transaction as the insert. Otherwise earlier tokens stay valid.
        """
        _check_binding(kind, subject_user_id, subject_team_id, resource_id, prior_owner_user_id, prior_owner_team_id)
        created_at = self._clock()

        for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
            raw = generate_link_token()
            try:
                with transaction(self._store.engine) as conn:
                    if self._settings.supersede_prior_link_tokens:
                        removed = self._store.delete_link_tokens_for_subject(
                            kind, email, subject_user_id, subject_team_id, conn=conn
                        )
                        if removed:
                            logger.info("Superseded %d outstanding %s token(s)", removed, kind.value)
                    self._store.insert_link_token(
                        hash_link_token(raw),
                        kind,
                        email,
                        created_at,
                        subject_user_id=subject_user_id,
                        subject_team_id=subject_team_id,
                        resource_id=resource_id,
                        prior_owner_user_id=prior_owner_user_id,
                        prior_owner_team_id=prior_owner_team_id,
                        conn=conn,
                    )
            except IntegrityError:
                logger.warning("Link token collision on attempt %d, regenerating", attempt)
                continue
            logger.info("Issued %s token (user=%s team=%s)", kind.value, subject_user_id, subject_team_id)
            return LinkToken(
                token=raw,
                kind=kind,
                email=email,
                created_at=created_at,
                subject_user_id=subject_user_id,
                subject_team_id=subject_team_id,
                resource_id=resource_id,
                prior_owner_user_id=prior_owner_user_id,
                prior_owner_team_id=prior_owner_team_id,
            )

        raise LinkTokenCollisionError(f"no free token value after {MAX_ISSUE_ATTEMPTS} attempts")

    def consume(
        self,
        raw_token: str,
        kind: ActionKind,
        apply: DomainEffect | None = None,
    ) -> Result[SubjectBinding]:
        """Validate and delete a token, optionally applying its domain effect.

        Returns Ok(SubjectBinding) on success; TokenNotFound, TokenKindMismatch
        or TokenExpired when the token cannot be used; or the Failure returned
        by `apply`, in which case the token is left in place.

        A kind mismatch or an expired token leaves the record untouched.
        """
        token_hash = hash_link_token(raw_token)
        try:
            with transaction(self._store.engine) as conn:
                row = self._store.find_link_token(token_hash, conn=conn)
                if row is None:
                    return TokenNotFound()
                stored_kind = ActionKind(row.kind)
                if stored_kind is not kind:
                    logger.warning("Link token presented as %s but issued as %s", kind.value, stored_kind.value)
                    return TokenKindMismatch()
                if self._clock() - from_iso(row.created_at) > self.ttl(kind):
                    return TokenExpired()
                if not self._store.delete_link_token(token_hash, kind, conn=conn):
                    # Another consumer deleted it between our read and delete.
                    return TokenNotFound()

                binding = SubjectBinding(
                    kind=kind,
                    email=row.email,
                    subject_user_id=row.subject_user_id,
                    subject_team_id=row.subject_team_id,
                    resource_id=row.resource_id,
                    prior_owner_user_id=row.prior_owner_user_id,
                    prior_owner_team_id=row.prior_owner_team_id,
                )
                if apply is not None:
                    outcome = apply(conn, binding)
                    if isinstance(outcome, Failure):
                        raise _EffectRejected(outcome)
        except _EffectRejected as exc:
            logger.info("%s effect rejected (%s); token kept", kind.value, exc.failure.code)
            return exc.failure

        logger.info("Consumed %s token (user=%s team=%s)", kind.value, binding.subject_user_id, binding.subject_team_id)
        return Ok(binding)

    def discard(self, raw_token: str) -> bool:
        """Delete an issued token regardless of kind. Returns True if it existed.

        Used by workflows to roll back an issuance whose email was not delivered.
        """
        return self._store.delete_link_token(hash_link_token(raw_token))

    def purge_expired(self) -> int:
        """Delete every token past its kind's TTL. Returns rows removed."""
        now = self._clock()
        removed = sum(self._store.delete_link_tokens_created_before(kind, now - self.ttl(kind)) for kind in ActionKind)
        if removed:
            logger.info("Purged %d expired link token(s)", removed)
        return removed
