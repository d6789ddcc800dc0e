"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository; _row_to_* are the mappers. Route and workflow
code never touches SQL directly.

Tables: users, teams, team_memberships, link_tokens.

Transactions:
  Methods that take part in a link token workflow accept an optional `conn`.
  Passed a Connection, they join the caller's transaction (see
  core.database.transaction); otherwise they open and commit their own. This
  is how LinkTokenEngine.consume() and the domain effect it guards commit
  atomically.

Security:
  All queries use bound parameters. No f-strings in SQL.
  link_tokens stores only the HMAC of the raw token (token_hash); a leaked
  table cannot be replayed as links.

Layer rule: imports only from core/ and auth/models.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, String, Table, Text, UniqueConstraint, and_, func, select
from sqlalchemy.engine import Connection, Engine

from auth.models import Team, User
from core.actions import ActionKind
from core.database import metadata, now_utc, to_iso, transaction

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(60), nullable=False, unique=True),
    Column("email", String(256), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("is_email_verified", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_teams = Table(
    "teams",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(60), nullable=False, unique=True),
    Column("owner_user_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_memberships = Table(
    "team_memberships",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("team_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("team_id", "user_id", name="uq_team_member"),
)

_link_tokens = Table(
    "link_tokens",
    metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("kind", String(32), nullable=False),
    Column("email", String(256), nullable=False),
    Column("subject_user_id", Integer),
    Column("subject_team_id", Integer),
    Column("resource_id", Integer),
    # Owner in force when an OWNERSHIP_TRANSFER was requested.
    Column("prior_owner_user_id", Integer),
    Column("prior_owner_team_id", Integer),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Team, membership and link token records.

    Usage:
        engine = create_db_engine("sqlite:///mobihub.db")
        store = UserStore(engine)
        uid = store.create_user(User(name="alice", email="a@x.org", hashed_password=h))
        store.get_by_email("a@x.org")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the name or email is taken.
        Workflows check first and treat IntegrityError as the concurrent case.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    is_email_verified=1 if user.is_email_verified else 0,
                    is_active=1 if user.is_active else 0,
                    created_at=to_iso(now_utc()),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int, conn: Connection | None = None) -> User | None:
        with transaction(self.engine, conn) as c:
            row = c.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str, conn: Connection | None = None) -> User | None:
        """Look up a user by email, case-insensitively."""
        with transaction(self.engine, conn) as c:
            row = c.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_name(self, name: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.name == name)).fetchone()
        return _row_to_user(row) if row is not None else None

    def mark_email_verified(self, user_id: int, conn: Connection | None = None) -> bool:
        """Set is_email_verified. Returns False if the user does not exist."""
        with transaction(self.engine, conn) as c:
            result = c.execute(_users.update().where(_users.c.id == user_id).values(is_email_verified=1))
        return result.rowcount > 0

    def set_password(self, user_id: int, hashed_password: str, conn: Connection | None = None) -> bool:
        """Replace the stored password hash. Returns False if the user does not exist."""
        with transaction(self.engine, conn) as c:
            result = c.execute(_users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, team: Team) -> int:
        """Insert a team and enrol its owner as the first member, atomically."""
        now = to_iso(now_utc())
        with self.engine.begin() as conn:
            result = conn.execute(
                _teams.insert().values(name=team.name, owner_user_id=team.owner_user_id, created_at=now)
            )
            team_id = result.inserted_primary_key[0]
            conn.execute(_memberships.insert().values(team_id=team_id, user_id=team.owner_user_id, joined_at=now))
        return team_id

    def get_team(self, team_id: int, conn: Connection | None = None) -> Team | None:
        with transaction(self.engine, conn) as c:
            row = c.execute(_teams.select().where(_teams.c.id == team_id)).fetchone()
        return _row_to_team(row) if row is not None else None

    def get_team_by_name(self, name: str) -> Team | None:
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.name == name)).fetchone()
        return _row_to_team(row) if row is not None else None

    def add_member(self, team_id: int, user_id: int, conn: Connection | None = None) -> bool:
        """Add user_id to the team. Returns False if already a member (no-op)."""
        with transaction(self.engine, conn) as c:
            exists = c.execute(
                select(_memberships.c.id).where(
                    and_(_memberships.c.team_id == team_id, _memberships.c.user_id == user_id)
                )
            ).fetchone()
            if exists is not None:
                return False
            c.execute(_memberships.insert().values(team_id=team_id, user_id=user_id, joined_at=to_iso(now_utc())))
        return True

    def is_member(self, team_id: int, user_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_memberships.c.id).where(
                    and_(_memberships.c.team_id == team_id, _memberships.c.user_id == user_id)
                )
            ).fetchone()
        return row is not None

    def list_member_ids(self, team_id: int) -> list[int]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_memberships.c.user_id).where(_memberships.c.team_id == team_id).order_by(_memberships.c.id)
            ).fetchall()
        return [r.user_id for r in rows]

    # ------------------------------------------------------------------
    # Link tokens
    #
    # Only LinkTokenEngine (auth/links.py) calls these. Rows are keyed by the
    # token HMAC; the raw token never reaches this layer.
    # ------------------------------------------------------------------

    def insert_link_token(
        self,
        token_hash: str,
        kind: ActionKind,
        email: str,
        created_at: datetime,
        subject_user_id: int | None = None,
        subject_team_id: int | None = None,
        resource_id: int | None = None,
        prior_owner_user_id: int | None = None,
        prior_owner_team_id: int | None = None,
        conn: Connection | None = None,
    ) -> None:
        """Insert a token row. Raises IntegrityError on a token_hash collision."""
        with transaction(self.engine, conn) as c:
            c.execute(
                _link_tokens.insert().values(
                    token_hash=token_hash,
                    kind=kind.value,
                    email=email,
                    subject_user_id=subject_user_id,
                    subject_team_id=subject_team_id,
                    resource_id=resource_id,
                    prior_owner_user_id=prior_owner_user_id,
                    prior_owner_team_id=prior_owner_team_id,
                    created_at=to_iso(created_at),
                )
            )

    def find_link_token(self, token_hash: str, conn: Connection | None = None):
        """Return the raw row for token_hash, or None."""
        with transaction(self.engine, conn) as c:
            return c.execute(_link_tokens.select().where(_link_tokens.c.token_hash == token_hash)).fetchone()

    def delete_link_token(self, token_hash: str, kind: ActionKind | None = None, conn: Connection | None = None) -> bool:
        """Conditionally delete a token row. Returns True iff a row was removed.

        With kind given, the row is only removed when its stored kind matches.
        The rows-affected check is the serialization point for concurrent
        consumers: exactly one DELETE sees rowcount == 1.
        """
        clause = _link_tokens.c.token_hash == token_hash
        if kind is not None:
            clause = and_(clause, _link_tokens.c.kind == kind.value)
        with transaction(self.engine, conn) as c:
            result = c.execute(_link_tokens.delete().where(clause))
        return result.rowcount > 0

    def delete_link_tokens_for_subject(
        self,
        kind: ActionKind,
        email: str,
        subject_user_id: int | None,
        subject_team_id: int | None,
        conn: Connection | None = None,
    ) -> int:
        """Remove outstanding tokens of one kind for one subject. Returns rows removed."""
        clause = and_(
            _link_tokens.c.kind == kind.value,
            func.lower(_link_tokens.c.email) == email.lower(),
            _link_tokens.c.subject_user_id.is_(None)
            if subject_user_id is None
            else _link_tokens.c.subject_user_id == subject_user_id,
            _link_tokens.c.subject_team_id.is_(None)
            if subject_team_id is None
            else _link_tokens.c.subject_team_id == subject_team_id,
        )
        with transaction(self.engine, conn) as c:
            result = c.execute(_link_tokens.delete().where(clause))
        return result.rowcount

    def delete_link_tokens_created_before(self, kind: ActionKind, cutoff: datetime) -> int:
        """Delete tokens of `kind` created strictly before cutoff. Returns rows removed.

        ISO 8601 UTC strings written by to_iso() sort chronologically, so a
        string comparison is a time comparison here.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _link_tokens.delete().where(
                    and_(_link_tokens.c.kind == kind.value, _link_tokens.c.created_at < to_iso(cutoff))
                )
            )
        return result.rowcount

    def count_link_tokens(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_link_tokens)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        is_email_verified=bool(row.is_email_verified),
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_team(row) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        owner_user_id=row.owner_user_id,
        created_at=row.created_at,
    )
