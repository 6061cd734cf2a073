"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Flow and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The password hash is excluded from every read unless the caller passes
  include_password=True (login and change-password are the only callers that
  need it). save() never writes a None hash back, so a record read without
  its hash can be saved without wiping the stored password.

  reset_token_hash is UNIQUE so the reset lookup is an O(1) index hit.

Timestamps are stored as ISO 8601 UTC strings and mapped back to aware
datetimes.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ValidationFailed
from auth.models import ROLES, User

logger = logging.getLogger("trailgate.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("password_changed_at", String(40)),
    Column("reset_token_hash", String(64), unique=True),
    Column("reset_token_expires_at", String(40)),
    Column("active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(40), nullable=False),
)

# Columns update() accepts. Secrets and timestamps only change through save().
_UPDATABLE_FIELDS = frozenset({"name", "email", "role", "active"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validate(user: User) -> None:
    if not user.name or not user.name.strip():
        raise ValidationFailed("Please tell us your name.")
    if "@" not in user.email or user.email.startswith("@") or user.email.endswith("@"):
        raise ValidationFailed("Please provide a valid email.")
    if user.role not in ROLES:
        raise ValidationFailed(f"Unknown role: {user.role!r}.")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create(User(email="a@example.com", name="A", password_hash=hasher.hash("secret123")))
        same = store.find_by_email("a@example.com", include_password=True)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def find_by_id(self, user_id: int, include_password: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row, include_password) if row is not None else None

    def find_by_reset_token(self, token_hash: str) -> User | None:
        """Look up the user holding an outstanding reset token by its SHA-256 hash.

        Expiry is not checked here -- the caller verifies it against its clock.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.reset_token_hash == token_hash)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new user and return the stored record (without its hash).

        Raises ValidationFailed if the email is already registered.
        """
        user = replace(user, email=normalize_email(user.email))
        _validate(user)
        if not user.password_hash:
            raise ValidationFailed("Please provide a password.")
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=user.email,
                        name=user.name.strip(),
                        password_hash=user.password_hash,
                        role=user.role,
                        password_changed_at=_to_iso(user.password_changed_at),
                        active=1 if user.active else 0,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ValidationFailed("An account with that email already exists.") from exc
        created = self.find_by_id(result.inserted_primary_key[0])
        if created is None:
            raise RuntimeError("user vanished after insert")
        return created

    def save(self, user: User, skip_validation: bool = False) -> User:
        """Write every mutable field of user back to its row.

        skip_validation bypasses the name/email/role checks; used when only
        reset-token bookkeeping changed and the rest of the record is trusted.
        A None password_hash means "not loaded" and leaves the stored hash alone.
        """
        if user.id is None:
            raise ValueError("save() requires a persisted user; use create() for new records")
        user = replace(user, email=normalize_email(user.email))
        if not skip_validation:
            _validate(user)
        values = {
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "password_changed_at": _to_iso(user.password_changed_at),
            "reset_token_hash": user.reset_token_hash,
            "reset_token_expires_at": _to_iso(user.reset_token_expires_at),
            "active": 1 if user.active else 0,
        }
        if user.password_hash:
            values["password_hash"] = user.password_hash
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise ValidationFailed("An account with that email already exists.") from exc
        saved = self.find_by_id(user.id)
        if saved is None:
            raise RuntimeError(f"user {user.id} vanished during save")
        return saved

    def update(self, user_id: int, **fields) -> User | None:
        """Update profile fields on an existing user and return the fresh record.

        Accepted fields: name, email, role, active. Unknown fields raise
        ValueError -- column names never come from raw user input.
        Returns None if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        current = self.find_by_id(user_id)
        if current is None:
            return None
        if not fields:
            return current
        updated = replace(current, **fields)
        return self.save(updated)

    def delete(self, user_id: int) -> bool:
        """Permanently remove a user. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        if result.rowcount:
            logger.info("User deleted: user_id=%s", user_id)
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, include_password: bool = False) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash if include_password else None,
        role=row.role,
        password_changed_at=_from_iso(row.password_changed_at),
        reset_token_hash=row.reset_token_hash,
        reset_token_expires_at=_from_iso(row.reset_token_expires_at),
        active=bool(row.active),
        created_at=row.created_at,
    )
