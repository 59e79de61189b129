"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper + Unit of Work.
CredentialStore owns the engine (and therefore the connection pool) and hands
out Transaction objects. A Transaction is the repository: every query method
runs on the single pooled connection the transaction holds, so a multi-step
operation (register, login, logout, update, delete) commits or rolls back as
one unit. The _row_to_* functions are the mappers. Service code never touches
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  CredentialStore.transaction() wraps engine.begin(): commit on normal exit,
  rollback on any exception, connection returned to the pool on every path.
  AuthError subclasses raised inside the block roll back and propagate
  unchanged. SQLAlchemyError is logged and re-raised as InternalError so no
  driver message (which may contain SQL) reaches a client.

The store handle is constructed once by the process entry point and passed
to every service explicitly. There is no module-level engine.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
    text,
    true,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InternalError
from auth.models import LoginAudit, Permission, User, UserIdentity, UserUpdate

logger = logging.getLogger("usergate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "utilisateurs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("nom", String(100)),
    Column("prenom", String(100)),
    Column("actif", Boolean, nullable=False, server_default=true()),
    Column("date_creation", String(32), nullable=False),
    Column("date_modification", String(32)),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("nom", String(50), nullable=False, unique=True),
    Column("description", Text),
)

_permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("nom", String(100), nullable=False),
    Column("ressource", String(50), nullable=False),
    Column("action", String(50), nullable=False),
    Column("description", Text),
    UniqueConstraint("ressource", "action", name="uq_permission_ressource_action"),
)

_role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
)

_user_roles = Table(
    "utilisateur_roles",
    metadata,
    Column("utilisateur_id", Integer, ForeignKey("utilisateurs.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("utilisateur_id", Integer, ForeignKey("utilisateurs.id"), nullable=False),
    Column("token", String(128), nullable=False, unique=True),
    Column("date_expiration", String(32), nullable=False),
    Column("actif", Boolean, nullable=False, server_default=true()),
    Column("date_creation", String(32), nullable=False),
)

_login_logs = Table(
    "logs_connexion",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("utilisateur_id", Integer, ForeignKey("utilisateurs.id")),  # NULL for unknown e-mails
    Column("email_tentative", String(255), nullable=False),
    Column("succes", Boolean, nullable=False),
    Column("message", String(255), nullable=False),
    Column("adresse_ip", String(45)),
    Column("user_agent", Text),
    Column("date_heure", String(32), nullable=False),
)

# ---------------------------------------------------------------------------
# Reference data
#
# Seeded on every start-up; rows that already exist are left alone so an
# operator can edit descriptions or add bindings without them being reset.
# ---------------------------------------------------------------------------

_SEED_ROLES: dict[str, str] = {
    "user": "Default role granted at registration.",
    "moderator": "Can read and edit user accounts.",
    "admin": "Full user management, including deletion.",
}

_SEED_PERMISSIONS: list[tuple[str, str, str]] = [
    ("users", "read", "List and view user accounts."),
    ("users", "write", "Edit user accounts and their roles."),
    ("users", "delete", "Delete user accounts."),
]

_SEED_BINDINGS: dict[str, list[tuple[str, str]]] = {
    "admin": [("users", "read"), ("users", "write"), ("users", "delete")],
    "moderator": [("users", "read"), ("users", "write")],
    "user": [],
}

# Partial-update translation. Order is fixed here, not by the caller.
_UPDATE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("family_name", "nom"),
    ("given_name", "prenom"),
    ("is_active", "actif"),
)
# Only these may be set back to NULL through UserUpdate.cleared.
_NULLABLE_UPDATE_FIELDS = frozenset({"family_name", "given_name"})


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is off by default in SQLite,
    which would let a cascade delete forget a child table silently.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Render a datetime as a UTC ISO 8601 string with fixed precision.

    timespec="microseconds" keeps every stored timestamp the same width, so
    string comparison in SQL (date_expiration > :now) matches chronological
    order. datetime.isoformat() alone drops the fraction when it is zero.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Store handle
# ---------------------------------------------------------------------------


class CredentialStore:
    """Owner of the engine and connection pool for all auth data.

    Usage:
        store = CredentialStore("postgresql://user:pw@host/db")
        with store.transaction() as tx:
            user = tx.get_user_by_email("ada@example.com")
        store.close()
    """

    def __init__(
        self,
        db_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        seed: bool = True,
    ) -> None:
        engine_args: dict = {}
        if db_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
        else:
            engine_args.update(pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True)
        self.engine: Engine = create_engine(db_url, **engine_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        metadata.create_all(self.engine)
        if seed:
            self._seed_reference_data()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Yield a Transaction holding one pooled connection for its whole duration."""
        try:
            with self.engine.begin() as conn:
                yield Transaction(conn)
        except SQLAlchemyError as exc:
            logger.exception("Store transaction rolled back after a database error")
            raise InternalError() from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()

    def _seed_reference_data(self) -> None:
        """Insert the default roles, permissions and bindings if missing."""
        with self.engine.begin() as conn:
            existing_roles = {row.nom for row in conn.execute(select(_roles.c.nom))}
            for name, description in _SEED_ROLES.items():
                if name not in existing_roles:
                    conn.execute(_roles.insert().values(nom=name, description=description))

            existing_perms = {(row.ressource, row.action) for row in conn.execute(select(_permissions))}
            for resource, action, description in _SEED_PERMISSIONS:
                if (resource, action) not in existing_perms:
                    conn.execute(
                        _permissions.insert().values(
                            nom=f"{resource}:{action}",
                            ressource=resource,
                            action=action,
                            description=description,
                        )
                    )

            role_ids = {row.nom: row.id for row in conn.execute(select(_roles.c.id, _roles.c.nom))}
            perm_ids = {
                (row.ressource, row.action): row.id
                for row in conn.execute(select(_permissions.c.id, _permissions.c.ressource, _permissions.c.action))
            }
            bound = {(row.role_id, row.permission_id) for row in conn.execute(select(_role_permissions))}
            for role_name, pairs in _SEED_BINDINGS.items():
                for pair in pairs:
                    key = (role_ids[role_name], perm_ids[pair])
                    if key not in bound:
                        conn.execute(_role_permissions.insert().values(role_id=key[0], permission_id=key[1]))


# ---------------------------------------------------------------------------
# Repository (one instance per transaction)
# ---------------------------------------------------------------------------


class Transaction:
    """Query methods bound to a single open connection.

    Never construct directly -- use CredentialStore.transaction().
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def email_exists(self, email: str) -> bool:
        row = self.conn.execute(select(_users.c.id).where(_users.c.email == email)).first()
        return row is not None

    def get_user_by_email(self, email: str) -> User | None:
        """Exact, case-sensitive lookup. The returned User carries password_hash."""
        row = self.conn.execute(_users.select().where(_users.c.email == email)).first()
        return _row_to_user(row) if row is not None else None

    def get_user(self, user_id: int) -> User | None:
        row = self.conn.execute(_users.select().where(_users.c.id == user_id)).first()
        return _row_to_user(row) if row is not None else None

    def insert_user(self, user: User) -> int:
        """Insert a user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the e-mail already exists.
        The unique constraint is the final authority on e-mail uniqueness.
        """
        result = self.conn.execute(
            _users.insert().values(
                email=user.email,
                password_hash=user.password_hash,
                nom=user.family_name,
                prenom=user.given_name,
                actif=user.is_active,
                date_creation=_now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def update_user(self, user_id: int, update: UserUpdate, password_hash: str | None = None) -> bool:
        """Apply the non-None fields of update, NULL the cleared ones, bump date_modification.

        Returns True if a row was updated, False if user_id was not found.
        """
        values: dict = {"date_modification": _now_iso()}
        for attr, column in _UPDATE_COLUMNS:
            value = getattr(update, attr)
            if value is not None:
                values[column] = value
            elif attr in update.cleared and attr in _NULLABLE_UPDATE_FIELDS:
                values[column] = None
        if password_hash is not None:
            values["password_hash"] = password_hash
        result = self.conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete the user row only. Dependent rows must be removed first."""
        result = self.conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def count_users(self) -> int:
        return self.conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def list_users(self, limit: int, offset: int) -> list[User]:
        """Return one slice of users, newest id first."""
        rows = self.conn.execute(_users.select().order_by(_users.c.id.desc()).limit(limit).offset(offset)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def role_ids_by_name(self, names: Iterable[str]) -> dict[str, int]:
        """Map each known role name to its id. Unknown names are absent from the result."""
        wanted = set(names)
        if not wanted:
            return {}
        rows = self.conn.execute(select(_roles.c.id, _roles.c.nom).where(_roles.c.nom.in_(wanted))).fetchall()
        return {row.nom: row.id for row in rows}

    def grant_role(self, user_id: int, role_id: int) -> None:
        self.conn.execute(_user_roles.insert().values(utilisateur_id=user_id, role_id=role_id))

    def revoke_all_roles(self, user_id: int) -> int:
        result = self.conn.execute(_user_roles.delete().where(_user_roles.c.utilisateur_id == user_id))
        return result.rowcount

    def role_names_for(self, user_id: int) -> list[str]:
        rows = self.conn.execute(
            select(_roles.c.nom)
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(_user_roles.c.utilisateur_id == user_id)
            .order_by(_roles.c.nom)
        ).fetchall()
        return [row.nom for row in rows]

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def user_has_permission(self, user_id: int, resource: str, action: str) -> bool:
        """Set-membership test over utilisateur_roles -> role_permissions -> permissions."""
        row = self.conn.execute(
            select(_permissions.c.id)
            .select_from(
                _user_roles.join(_role_permissions, _role_permissions.c.role_id == _user_roles.c.role_id).join(
                    _permissions, _permissions.c.id == _role_permissions.c.permission_id
                )
            )
            .where(
                _user_roles.c.utilisateur_id == user_id,
                _permissions.c.ressource == resource,
                _permissions.c.action == action,
            )
            .limit(1)
        ).first()
        return row is not None

    def permissions_for(self, user_id: int) -> list[Permission]:
        """Distinct permissions reachable through any held role, by (resource, action)."""
        rows = self.conn.execute(
            select(
                _permissions.c.id,
                _permissions.c.nom,
                _permissions.c.ressource,
                _permissions.c.action,
                _permissions.c.description,
            )
            .distinct()
            .select_from(
                _user_roles.join(_role_permissions, _role_permissions.c.role_id == _user_roles.c.role_id).join(
                    _permissions, _permissions.c.id == _role_permissions.c.permission_id
                )
            )
            .where(_user_roles.c.utilisateur_id == user_id)
            .order_by(_permissions.c.ressource, _permissions.c.action)
        ).fetchall()
        return [_row_to_permission(r) for r in rows]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, user_id: int, token: str, expires_at: str) -> int:
        """Persist a new active session. Raises IntegrityError on a duplicate token."""
        result = self.conn.execute(
            _sessions.insert().values(
                utilisateur_id=user_id,
                token=token,
                date_expiration=expires_at,
                actif=True,
                date_creation=_now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def find_identity_by_token(self, token: str, now: str) -> UserIdentity | None:
        """Return the owner of token if the session and the user are both currently valid."""
        row = self.conn.execute(
            select(_users.c.id, _users.c.email, _users.c.prenom, _users.c.nom)
            .select_from(_sessions.join(_users, _users.c.id == _sessions.c.utilisateur_id))
            .where(
                _sessions.c.token == token,
                _sessions.c.actif.is_(True),
                _sessions.c.date_expiration > now,
                _users.c.actif.is_(True),
            )
        ).first()
        if row is None:
            return None
        return UserIdentity(user_id=row.id, email=row.email, given_name=row.prenom, family_name=row.nom)

    def deactivate_session(self, token: str) -> bool:
        """Flip actif on the matching active session. False if none was active."""
        result = self.conn.execute(
            _sessions.update().where((_sessions.c.token == token) & _sessions.c.actif.is_(True)).values(actif=False)
        )
        return result.rowcount > 0

    def deactivate_sessions_for(self, user_id: int) -> int:
        result = self.conn.execute(
            _sessions.update()
            .where((_sessions.c.utilisateur_id == user_id) & _sessions.c.actif.is_(True))
            .values(actif=False)
        )
        return result.rowcount

    def delete_sessions_for(self, user_id: int) -> int:
        result = self.conn.execute(_sessions.delete().where(_sessions.c.utilisateur_id == user_id))
        return result.rowcount

    # ------------------------------------------------------------------
    # Login audit
    # ------------------------------------------------------------------

    def insert_login_audit(self, entry: LoginAudit) -> int:
        result = self.conn.execute(
            _login_logs.insert().values(
                utilisateur_id=entry.user_id,
                email_tentative=entry.email,
                succes=entry.success,
                message=entry.message,
                adresse_ip=entry.source_address,
                user_agent=entry.client_agent,
                date_heure=_now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def recent_login_audits(self, user_id: int, limit: int) -> list[LoginAudit]:
        rows = self.conn.execute(
            _login_logs.select()
            .where(_login_logs.c.utilisateur_id == user_id)
            .order_by(_login_logs.c.date_heure.desc(), _login_logs.c.id.desc())
            .limit(limit)
        ).fetchall()
        return [_row_to_login_audit(r) for r in rows]

    def delete_login_audits_for(self, user_id: int) -> int:
        result = self.conn.execute(_login_logs.delete().where(_login_logs.c.utilisateur_id == user_id))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        given_name=row.prenom,
        family_name=row.nom,
        is_active=bool(row.actif),
        created_at=row.date_creation,
        updated_at=row.date_modification,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.nom,
        resource=row.ressource,
        action=row.action,
        description=row.description,
    )


def _row_to_login_audit(row) -> LoginAudit:
    return LoginAudit(
        id=row.id,
        user_id=row.utilisateur_id,
        email=row.email_tentative,
        success=bool(row.succes),
        message=row.message,
        source_address=row.adresse_ip,
        client_agent=row.user_agent,
        created_at=row.date_heure,
    )
