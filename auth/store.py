"""
auth/store.py -- SQLAlchemy Core persistence layer for identity, permission,
project and audit entities.

Pattern: Repository + Data Mapper.
AccessStore is the repository; the _row_to_* functions are the mappers.
Resolvers and routes never touch SQL directly.

Reads are bulk reads. The reference tables involved in a login (users,
tenants, roles, navigation, actions, grants) are small, so the login flow loads
each one whole with load_reference_tables() and joins in memory rather than
relying on the database to perform multi-way joins.

Writes:
  The create_* / add_* / grant_* methods exist for provisioning and tests.
  user_audits is insert-only: there is deliberately no update or delete
  method for it. Rows are keyed by a fresh session id, so concurrent logins
  never contend for the same row.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import SingletonThreadPool, StaticPool

from auth.models import (
    Action,
    Client,
    ClientLicense,
    ClientProject,
    ClientProjectUser,
    ClientRoleType,
    ClientUser,
    Navigation,
    NavigationAction,
    PermissionGrant,
    ProjectScheduler,
    ReferenceTables,
    RoleType,
    User,
    UserAudit,
    UserPermission,
    UserProject,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("user_name", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("hashed_password", Text),
    Column("role_type_id", Integer, nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_clients = Table(
    "clients",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
)

_client_users = Table(
    "client_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("client_id", Integer, nullable=False),
)

_role_types = Table(
    "role_types",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
)

_client_role_types = Table(
    "client_role_types",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("client_id", Integer, nullable=False),
    Column("role_type_id", Integer, nullable=False),
)

_navigations = Table(
    "navigations",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    Column("parent_id", Integer),  # NULL or <= 0 = root node
    Column("order_by", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_deleted", Integer, nullable=False, server_default="0"),
)

_actions = Table(
    "user_actions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("name", String(30), nullable=False),
)

_navigation_actions = Table(
    "navigation_user_actions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("navigation_id", Integer, nullable=False),
    Column("action_id", Integer, nullable=False),
)

_grants = Table(
    "role_navigation_user_actions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_type_id", Integer, nullable=False),
    Column("navigation_action_id", Integer, nullable=False),
)

_projects = Table(
    "client_projects",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),
    Column("client_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
)

_project_users = Table(
    "client_project_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
)

_project_schedulers = Table(
    "project_schedulers",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("user_name", String(255), nullable=False),
    Column("password", Text, nullable=False),  # license-codec key material
    Column("encrypted_license_key", Text, nullable=False),  # license-codec payload
    Column("connection_string", Text, nullable=False),  # template: {0} project, {1} user, {2} password
)

_client_licenses = Table(
    "client_licenses",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("client_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("start_date", String(40), nullable=False),  # ISO 8601
    Column("end_date", String(40), nullable=False),  # ISO 8601
    Column("license_key", Text, nullable=False),
    Column("private_key", Text, nullable=False),
    Column("created_at", String(40), nullable=False),
)

_user_audits = Table(
    "user_audits",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("row_id", String(36), nullable=False, unique=True),  # session id
    Column("user_row_id", String(36), nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("role_row_id", String(36), nullable=False),
    Column("role_id", Integer, nullable=False),
    Column("role_name", String(100), nullable=False),
    Column("refresh_token", Text, nullable=False),
    Column("token_created_date", String(40), nullable=False),
    Column("token_expired_date", String(40), nullable=False),
    Column("role_navigation", Text, nullable=False),  # JSON list of UserPermission
    Column("project_access", Text, nullable=False),  # JSON list of UserProject
    Column("client_ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_by", String(255), nullable=False),
    Column("created_at", String(40), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so audit inserts do not block concurrent login reads."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _sqlite_engine_kwargs(db_url: str) -> dict:
    """Pool and connect arguments for a SQLite URL.

    A private in-memory database exists only on the connection that created
    it, so it is pinned to one connection shared by every thread. Named
    shared-cache memory databases (mode=memory) keep one connection per
    thread; the shared cache makes them all see the same data.
    """
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    url = make_url(db_url)
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    elif url.query.get("mode") == "memory":
        kwargs["poolclass"] = SingletonThreadPool
    return kwargs


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_row_id(row_id: str) -> str:
    return row_id or str(uuid.uuid4())


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccessStore:
    """Repository for identity, tenancy, permission, project and audit records.

    Usage:
        store = AccessStore("sqlite:///:memory:")
        tables = store.load_reference_tables()
        store.add_user_audit(audit)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        engine_kwargs = _sqlite_engine_kwargs(db_url) if db_url.startswith("sqlite") else {}
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        # WAL only applies to file databases; every memory URL gets an explicit pool.
        if db_url.startswith("sqlite") and "poolclass" not in engine_kwargs:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def _insert(self, table: Table, **values) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(table.insert().values(**values))
            conn.commit()
            return result.inserted_primary_key[0]

    def _select_all(self, table: Table) -> list:
        with self.engine.connect() as conn:
            return conn.execute(table.select().order_by(table.c.id)).fetchall()

    # ------------------------------------------------------------------
    # Provisioning writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a user and return its id.

        Raises sqlalchemy.exc.IntegrityError if user_name already exists.
        """
        return self._insert(
            _users,
            row_id=_new_row_id(user.row_id),
            user_name=user.user_name,
            email=user.email or user.user_name,
            first_name=user.first_name,
            last_name=user.last_name,
            hashed_password=user.hashed_password,
            role_type_id=user.role_type_id,
            is_active=1 if user.is_active else 0,
        )

    def create_client(self, client: Client) -> int:
        return self._insert(_clients, row_id=_new_row_id(client.row_id), name=client.name)

    def add_client_user(self, link: ClientUser) -> int:
        return self._insert(_client_users, user_id=link.user_id, client_id=link.client_id)

    def create_role_type(self, role: RoleType) -> int:
        return self._insert(_role_types, row_id=_new_row_id(role.row_id), name=role.name)

    def add_client_role_type(self, association: ClientRoleType) -> int:
        return self._insert(
            _client_role_types,
            client_id=association.client_id,
            role_type_id=association.role_type_id,
        )

    def create_navigation(self, navigation: Navigation) -> int:
        return self._insert(
            _navigations,
            row_id=_new_row_id(navigation.row_id),
            name=navigation.name,
            description=navigation.description,
            parent_id=navigation.parent_id,
            order_by=navigation.order_by,
            is_active=1 if navigation.is_active else 0,
            is_deleted=1 if navigation.is_deleted else 0,
        )

    def create_action(self, action: Action) -> int:
        return self._insert(_actions, row_id=_new_row_id(action.row_id), name=action.name)

    def create_navigation_action(self, pair: NavigationAction) -> int:
        return self._insert(_navigation_actions, navigation_id=pair.navigation_id, action_id=pair.action_id)

    def grant_permission(self, grant: PermissionGrant) -> int:
        return self._insert(
            _grants,
            role_type_id=grant.role_type_id,
            navigation_action_id=grant.navigation_action_id,
        )

    def create_project(self, project: ClientProject) -> int:
        return self._insert(
            _projects,
            row_id=_new_row_id(project.row_id),
            client_id=project.client_id,
            name=project.name,
        )

    def assign_project_user(self, assignment: ClientProjectUser) -> int:
        return self._insert(_project_users, project_id=assignment.project_id, user_id=assignment.user_id)

    def create_project_scheduler(self, scheduler: ProjectScheduler) -> int:
        return self._insert(
            _project_schedulers,
            project_id=scheduler.project_id,
            user_name=scheduler.user_name,
            password=scheduler.password,
            encrypted_license_key=scheduler.encrypted_license_key,
            connection_string=scheduler.connection_string,
        )

    def create_client_license(self, client_license: ClientLicense) -> int:
        return self._insert(
            _client_licenses,
            client_id=client_license.client_id,
            name=client_license.name,
            description=client_license.description,
            start_date=client_license.start_date.isoformat(),
            end_date=client_license.end_date.isoformat(),
            license_key=client_license.license_key,
            private_key=client_license.private_key,
            created_at=_now_iso(),
        )

    # ------------------------------------------------------------------
    # Bulk reads
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return [_row_to_user(r) for r in self._select_all(_users)]

    def list_clients(self) -> list[Client]:
        return [_row_to_client(r) for r in self._select_all(_clients)]

    def list_client_users(self) -> list[ClientUser]:
        return [ClientUser(id=r.id, user_id=r.user_id, client_id=r.client_id) for r in self._select_all(_client_users)]

    def list_role_types(self) -> list[RoleType]:
        return [RoleType(id=r.id, row_id=r.row_id, name=r.name) for r in self._select_all(_role_types)]

    def list_client_role_types(self) -> list[ClientRoleType]:
        return [
            ClientRoleType(id=r.id, client_id=r.client_id, role_type_id=r.role_type_id)
            for r in self._select_all(_client_role_types)
        ]

    def list_navigations(self) -> list[Navigation]:
        return [_row_to_navigation(r) for r in self._select_all(_navigations)]

    def list_actions(self) -> list[Action]:
        return [Action(id=r.id, row_id=r.row_id, name=r.name) for r in self._select_all(_actions)]

    def list_navigation_actions(self) -> list[NavigationAction]:
        return [
            NavigationAction(id=r.id, navigation_id=r.navigation_id, action_id=r.action_id)
            for r in self._select_all(_navigation_actions)
        ]

    def list_permission_grants(self) -> list[PermissionGrant]:
        return [
            PermissionGrant(id=r.id, role_type_id=r.role_type_id, navigation_action_id=r.navigation_action_id)
            for r in self._select_all(_grants)
        ]

    def list_projects(self) -> list[ClientProject]:
        return [
            ClientProject(id=r.id, row_id=r.row_id, client_id=r.client_id, name=r.name)
            for r in self._select_all(_projects)
        ]

    def list_project_users(self) -> list[ClientProjectUser]:
        return [
            ClientProjectUser(id=r.id, project_id=r.project_id, user_id=r.user_id)
            for r in self._select_all(_project_users)
        ]

    def list_project_schedulers(self) -> list[ProjectScheduler]:
        return [_row_to_scheduler(r) for r in self._select_all(_project_schedulers)]

    def load_reference_tables(self) -> ReferenceTables:
        """Load every table the credential and permission resolvers join over."""
        return ReferenceTables(
            users=tuple(self.list_users()),
            clients=tuple(self.list_clients()),
            client_users=tuple(self.list_client_users()),
            role_types=tuple(self.list_role_types()),
            client_role_types=tuple(self.list_client_role_types()),
            navigations=tuple(self.list_navigations()),
            actions=tuple(self.list_actions()),
            navigation_actions=tuple(self.list_navigation_actions()),
            grants=tuple(self.list_permission_grants()),
        )

    # ------------------------------------------------------------------
    # Single-row reads
    # ------------------------------------------------------------------

    def get_client(self, client_id: int) -> Client | None:
        with self.engine.connect() as conn:
            row = conn.execute(_clients.select().where(_clients.c.id == client_id)).fetchone()
        return _row_to_client(row) if row is not None else None

    def get_latest_client_license(self, client_id: int) -> ClientLicense | None:
        """Return the most recently issued license for a tenant, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _client_licenses.select()
                .where(_client_licenses.c.client_id == client_id)
                .order_by(_client_licenses.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_license(row) if row is not None else None

    # ------------------------------------------------------------------
    # Audit snapshots (insert-only)
    # ------------------------------------------------------------------

    def add_user_audit(self, audit: UserAudit) -> int:
        """Insert an audit snapshot and return its id.

        Raises sqlalchemy.exc.IntegrityError if the session id was already used.
        """
        return self._insert(
            _user_audits,
            row_id=audit.row_id,
            user_row_id=audit.user_row_id,
            user_id=audit.user_id,
            first_name=audit.first_name,
            last_name=audit.last_name,
            email=audit.email,
            role_row_id=audit.role_row_id,
            role_id=audit.role_id,
            role_name=audit.role_name,
            refresh_token=audit.refresh_token,
            token_created_date=audit.token_created_date.isoformat(),
            token_expired_date=audit.token_expired_date.isoformat(),
            role_navigation=json.dumps([_permission_to_dict(p) for p in audit.role_navigation]),
            project_access=json.dumps([_project_to_dict(p) for p in audit.project_access]),
            client_ip_address=audit.client_ip_address,
            user_agent=audit.user_agent,
            created_by=audit.created_by,
            created_at=_now_iso(),
        )

    def get_user_audit(self, session_id: str) -> UserAudit | None:
        """Look up the audit snapshot written for a session. Returns None if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(_user_audits.select().where(_user_audits.c.row_id == session_id)).fetchone()
        return _row_to_audit(row) if row is not None else None

    def count_user_audits(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM user_audits")).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        row_id=row.row_id,
        user_name=row.user_name,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        role_type_id=row.role_type_id,
        is_active=bool(row.is_active),
    )


def _row_to_client(row) -> Client:
    return Client(id=row.id, row_id=row.row_id, name=row.name)


def _row_to_navigation(row) -> Navigation:
    return Navigation(
        id=row.id,
        row_id=row.row_id,
        name=row.name,
        description=row.description,
        parent_id=row.parent_id,
        order_by=row.order_by,
        is_active=bool(row.is_active),
        is_deleted=bool(row.is_deleted),
    )


def _row_to_scheduler(row) -> ProjectScheduler:
    return ProjectScheduler(
        id=row.id,
        project_id=row.project_id,
        user_name=row.user_name,
        password=row.password,
        encrypted_license_key=row.encrypted_license_key,
        connection_string=row.connection_string,
    )


def _row_to_license(row) -> ClientLicense:
    return ClientLicense(
        id=row.id,
        client_id=row.client_id,
        name=row.name,
        description=row.description,
        start_date=_parse_iso(row.start_date),
        end_date=_parse_iso(row.end_date),
        license_key=row.license_key,
        private_key=row.private_key,
    )


def _permission_to_dict(permission: UserPermission) -> dict:
    return {
        "navigation_row_id": permission.navigation_row_id,
        "navigation_id": permission.navigation_id,
        "navigation_name": permission.navigation_name,
        "action_row_id": permission.action_row_id,
        "action_id": permission.action_id,
        "action_name": permission.action_name,
    }


def _project_to_dict(project: UserProject) -> dict:
    return {
        "id": project.id,
        "row_id": project.row_id,
        "name": project.name,
        "connection_string": project.connection_string,
    }


def _row_to_audit(row) -> UserAudit:
    return UserAudit(
        id=row.id,
        row_id=row.row_id,
        user_row_id=row.user_row_id,
        user_id=row.user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        role_row_id=row.role_row_id,
        role_id=row.role_id,
        role_name=row.role_name,
        refresh_token=row.refresh_token,
        token_created_date=_parse_iso(row.token_created_date),
        token_expired_date=_parse_iso(row.token_expired_date),
        role_navigation=tuple(UserPermission(**item) for item in json.loads(row.role_navigation)),
        project_access=tuple(UserProject(**item) for item in json.loads(row.project_access)),
        client_ip_address=row.client_ip_address,
        user_agent=row.user_agent,
        created_by=row.created_by,
    )
