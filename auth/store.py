"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. AuthStore is the repository; the _row_to_*
functions are the mappers. Service and route code never touches SQL directly.

Tables:
  admins           -- administrator identities (login by username)
  organizations    -- organization identities (login by email)
  refresh_tokens   -- keyed hashes of issued refresh secrets
  user_sessions    -- one row per login, linked to its refresh token
  security_events  -- audit trail, attributed from validated principals

Security:
  All queries use bound parameters. No f-strings in SQL.
  Refresh and session secrets are stored only as HMAC hashes (auth.tokens).
  Identity status is read fresh on every call -- nothing here caches.

Transactions:
  The refresh/session pair for a login and the refresh rotation are written
  inside engine.begin(), so either every row lands or none does. Any
  SQLAlchemyError on those paths is re-raised as SessionPersistError.

Layer rule: no imports from api/, core/, or reports/.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import SessionPersistError
from auth.models import Identity, RefreshTokenRecord, Role, SecurityEvent, SessionRecord
from auth.roles import ADMIN_ACTIVE, ORG_APPROVED, ORG_PENDING, policy_for

logger = logging.getLogger("civicwatch.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_admins = Table(
    "admins",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255)),
    Column("password_hash", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default=ADMIN_ACTIVE),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_organizations = Table(
    "organizations",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("type", String(100), nullable=False, server_default=""),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(50)),
    Column("address", Text),
    Column("city", String(100)),
    Column("password_hash", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default=ORG_PENDING),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("approved_at", String(32)),
    Column("last_login", String(32)),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("role", String(20), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("client_ip", String(64)),
    Column("user_agent", Text),
    Column("revoked_at", String(32)),
)

_sessions = Table(
    "user_sessions",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("role", String(20), nullable=False),
    Column("session_token_hash", String(64), nullable=False, unique=True),
    Column("refresh_token_id", String(36), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("last_activity_at", String(32)),
    Column("client_ip", String(64)),
    Column("user_agent", Text),
    Column("revoked_at", String(32)),
)

_security_events = Table(
    "security_events",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_type", String(100), nullable=False),
    Column("user_id", String(36), nullable=False),
    Column("role", String(20), nullable=False),
    Column("details", Text),  # JSON object
    Column("client_ip", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
)

_IDENTITY_TABLES: dict[Role, Table] = {
    Role.ADMIN: _admins,
    Role.ORGANIZATION: _organizations,
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for identities, refresh/session records and security events.

    Usage:
        store = AuthStore("sqlite:///civicwatch.db")
        store.create_admin("root", "Root", hash_password("secret"))
        identity = store.find_for_login(Role.ADMIN, "root")
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
    # Identities
    # ------------------------------------------------------------------

    def create_admin(
        self,
        username: str,
        name: str,
        password_hash: str,
        email: str | None = None,
        status: str = ADMIN_ACTIVE,
    ) -> str:
        """Insert an administrator and return its id.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        admin_id = new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _admins.insert().values(
                    id=admin_id,
                    username=username,
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    status=status,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return admin_id

    def create_organization(
        self,
        name: str,
        email: str,
        password_hash: str,
        org_type: str = "",
        phone: str | None = None,
        address: str | None = None,
        city: str | None = None,
        status: str = ORG_PENDING,
        is_active: bool = True,
    ) -> str:
        """Insert an organization and return its id.

        Self-registered organizations start "pending"; admin-created ones are
        passed status="approved". Raises IntegrityError on a duplicate email.
        """
        org_id = new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _organizations.insert().values(
                    id=org_id,
                    name=name,
                    type=org_type,
                    email=email,
                    phone=phone,
                    address=address,
                    city=city,
                    password_hash=password_hash,
                    status=status,
                    is_active=1 if is_active else 0,
                    created_at=now,
                    approved_at=now if status == ORG_APPROVED else None,
                )
            )
            conn.commit()
        return org_id

    def find_for_login(self, role: Role, identifier: str) -> Identity | None:
        """Look up an identity by its role's login column, regardless of status."""
        table = _IDENTITY_TABLES[role]
        column = table.c[policy_for(role).login_field]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(column == identifier)).fetchone()
        return _row_to_identity(role, row) if row is not None else None

    def get_identity(self, role: Role, identity_id: str) -> Identity | None:
        """Fetch the current identity record by id. Always hits the database."""
        table = _IDENTITY_TABLES[role]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == identity_id)).fetchone()
        return _row_to_identity(role, row) if row is not None else None

    def update_identity_status(
        self,
        role: Role,
        identity_id: str,
        status: str | None = None,
        is_active: bool | None = None,
    ) -> bool:
        """Change status and/or is_active. Returns True if a row was updated.

        is_active is ignored for admins (their state lives in status alone).
        approved_at is stamped the first time an organization is approved.
        """
        table = _IDENTITY_TABLES[role]
        values: dict = {}
        if status is not None:
            values["status"] = status
        if is_active is not None and role is Role.ORGANIZATION:
            values["is_active"] = 1 if is_active else 0
        if not values:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(table.update().where(table.c.id == identity_id).values(**values))
            if status == ORG_APPROVED and role is Role.ORGANIZATION:
                conn.execute(
                    table.update()
                    .where((table.c.id == identity_id) & table.c.approved_at.is_(None))
                    .values(approved_at=_now_iso())
                )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, role: Role, identity_id: str) -> None:
        """Stamp the current UTC time as last_login after a successful login."""
        table = _IDENTITY_TABLES[role]
        with self.engine.connect() as conn:
            conn.execute(table.update().where(table.c.id == identity_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Refresh tokens and sessions
    # ------------------------------------------------------------------

    def create_session_pair(self, refresh: RefreshTokenRecord, session: SessionRecord) -> None:
        """Persist a login's refresh record and session record atomically.

        Both inserts share one transaction. If the session insert fails the
        refresh insert is rolled back with it, so no half-issued login is
        left behind.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(_refresh_tokens.insert().values(**_refresh_values(refresh)))
                conn.execute(_sessions.insert().values(**_session_values(session)))
        except SQLAlchemyError as exc:
            logger.error("Session pair insert failed for %s %s: %s", refresh.role.value, refresh.user_id, exc)
            raise SessionPersistError() from exc

    def get_active_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        """Return the unrevoked, unexpired refresh record with this hash, if any."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _refresh_tokens.select().where(
                    (_refresh_tokens.c.token_hash == token_hash)
                    & _refresh_tokens.c.revoked_at.is_(None)
                    & (_refresh_tokens.c.expires_at > _now_iso())
                )
            ).fetchone()
        return _row_to_refresh(row) if row is not None else None

    def rotate_refresh_token(self, old_id: str, new: RefreshTokenRecord) -> bool:
        """Revoke old_id and insert its replacement in one transaction.

        The revoke is a compare-and-set on revoked_at IS NULL: of two
        concurrent rotations of the same token exactly one wins; the loser
        gets False and nothing is written for it. The linked session is moved
        onto the new refresh record.

        A refresh token only lives as long as its session: if the linked
        session is revoked or past expires_at, nothing is written and False is
        returned. The replacement's expires_at is capped at the session's.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                session_row = conn.execute(
                    _sessions.select().where(
                        (_sessions.c.refresh_token_id == old_id)
                        & _sessions.c.revoked_at.is_(None)
                        & (_sessions.c.expires_at > now)
                    )
                ).fetchone()
                if session_row is None:
                    return False
                result = conn.execute(
                    _refresh_tokens.update()
                    .where((_refresh_tokens.c.id == old_id) & _refresh_tokens.c.revoked_at.is_(None))
                    .values(revoked_at=now)
                )
                if result.rowcount == 0:
                    return False
                values = _refresh_values(new)
                values["expires_at"] = min(new.expires_at, session_row.expires_at)
                conn.execute(_refresh_tokens.insert().values(**values))
                conn.execute(
                    _sessions.update()
                    .where(_sessions.c.id == session_row.id)
                    .values(refresh_token_id=new.id, last_activity_at=now)
                )
        except SQLAlchemyError as exc:
            logger.error("Refresh rotation failed for %s %s: %s", new.role.value, new.user_id, exc)
            raise SessionPersistError() from exc
        return True

    def get_session(self, session_id: str) -> SessionRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_active_sessions(self, user_id: str, role: Role) -> list[SessionRecord]:
        """Return the owner's unrevoked, unexpired sessions (newest first)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.user_id == user_id)
                    & (_sessions.c.role == role.value)
                    & _sessions.c.revoked_at.is_(None)
                    & (_sessions.c.expires_at > _now_iso())
                )
                .order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def revoke_session(self, session_id: str, user_id: str, role: Role) -> bool:
        """Revoke a session and its current refresh token. Owner-checked [IDOR guard].

        Both user_id and role must match the session row, so one principal
        cannot revoke another's session even if it knows the session id.
        Returns True if a live session was revoked.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            row = conn.execute(
                _sessions.select().where(
                    (_sessions.c.id == session_id)
                    & (_sessions.c.user_id == user_id)
                    & (_sessions.c.role == role.value)
                    & _sessions.c.revoked_at.is_(None)
                )
            ).fetchone()
            if row is None:
                return False
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(revoked_at=now))
            conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == row.refresh_token_id) & _refresh_tokens.c.revoked_at.is_(None))
                .values(revoked_at=now)
            )
        return True

    # ------------------------------------------------------------------
    # Security events
    # ------------------------------------------------------------------

    def insert_security_event(self, security_event: SecurityEvent) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _security_events.insert().values(
                    event_type=security_event.event_type,
                    user_id=security_event.user_id,
                    role=security_event.role.value,
                    details=json.dumps(security_event.details),
                    client_ip=security_event.client_ip,
                    user_agent=security_event.user_agent,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_security_events(self, user_id: str | None = None, limit: int = 100) -> list[SecurityEvent]:
        """Return the most recent security events, optionally for one user."""
        query = _security_events.select()
        if user_id is not None:
            query = query.where(_security_events.c.user_id == user_id)
        query = query.order_by(_security_events.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_event(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(role: Role, row) -> Identity:
    if role is Role.ADMIN:
        return Identity(
            id=row.id,
            name=row.name,
            login=row.username,
            email=row.email,
            role=role,
            status=row.status,
            password_hash=row.password_hash,
            is_active=True,
            created_at=row.created_at,
            last_login=row.last_login,
        )
    return Identity(
        id=row.id,
        name=row.name,
        login=row.email,
        email=row.email,
        role=role,
        status=row.status,
        password_hash=row.password_hash,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _refresh_values(record: RefreshTokenRecord) -> dict:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "role": record.role.value,
        "token_hash": record.token_hash,
        "issued_at": record.issued_at,
        "expires_at": record.expires_at,
        "client_ip": record.client_ip,
        "user_agent": record.user_agent,
    }


def _session_values(record: SessionRecord) -> dict:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "role": record.role.value,
        "session_token_hash": record.session_token_hash,
        "refresh_token_id": record.refresh_token_id,
        "created_at": record.created_at,
        "expires_at": record.expires_at,
        "last_activity_at": record.last_activity_at,
        "client_ip": record.client_ip,
        "user_agent": record.user_agent,
    }


def _row_to_refresh(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        user_id=row.user_id,
        role=Role(row.role),
        token_hash=row.token_hash,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        client_ip=row.client_ip,
        user_agent=row.user_agent,
        revoked_at=row.revoked_at,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        role=Role(row.role),
        session_token_hash=row.session_token_hash,
        refresh_token_id=row.refresh_token_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
        last_activity_at=row.last_activity_at,
        client_ip=row.client_ip,
        user_agent=row.user_agent,
        revoked_at=row.revoked_at,
    )


def _row_to_event(row) -> SecurityEvent:
    return SecurityEvent(
        id=row.id,
        event_type=row.event_type,
        user_id=row.user_id,
        role=Role(row.role),
        details=json.loads(row.details) if row.details else {},
        client_ip=row.client_ip,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
