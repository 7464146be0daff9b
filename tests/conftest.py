"""
tests/conftest.py -- Shared test fixtures for AuditGate.

This module provides:
  - make_store(): an isolated named shared-memory AccessStore
  - seed_tenant(): one tenant (Acme) with an Admin user, a Viewer user,
    navigation nodes, grants, a project with an encrypted scheduler
    credential, and a License node granted to Admin
  - settings / store / tenant fixtures for unit tests
  - api_client: TestClient with a patched lifespan for integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient and the login service run blocking work in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# Set before any core import so get_settings() picks it up. Integration tests
# log in far more often than the production limit allows.
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.license import LicenseCodec
from auth.login import LoginService
from auth.models import (
    Action,
    Client,
    ClientProject,
    ClientProjectUser,
    ClientRoleType,
    ClientUser,
    Navigation,
    NavigationAction,
    PermissionGrant,
    ProjectScheduler,
    RoleType,
    User,
)
from auth.store import AccessStore
from auth.tokens import SessionTokenIssuer, hash_password
from core.config import Settings
from core.lookups import NAVIGATION_ROW_IDS, USER_ACTION_ROW_IDS, NavigationMenu, UserAction, build_lookup_tables

ACME_ROW_ID = "3f2b6c0e-1d4e-4a8b-9a55-0f7f3c1e2d10"
ADMIN_EMAIL = "alice@acme.com"
ADMIN_PASSWORD = "correct-horse-battery"
VIEWER_EMAIL = "victor@acme.com"
VIEWER_PASSWORD = "viewer-pass-123"
SCHEDULER_PASSWORD = "Sched!Pass#42"
CONNECTION_TEMPLATE = "Server=db.acme.local;Database={0};User Id={1};Password={2};"

TEST_TOKEN_KEY = "k" * 48


def make_settings(**overrides) -> Settings:
    values = {
        "token_issuer": "auditgate-tests",
        "token_audience": "auditgate-clients",
        "token_key": TEST_TOKEN_KEY,
        "database_url": "sqlite://",
    }
    values.update(overrides)
    return Settings(**values)


def make_store(name: str | None = None) -> AccessStore:
    """Create an isolated named shared-memory SQLite store."""
    db_name = name or f"test_{uuid.uuid4().hex}"
    return AccessStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")


@dataclass
class SeededTenant:
    client: Client
    admin: User
    viewer: User
    admin_role: RoleType
    viewer_role: RoleType
    project: ClientProject
    navigations: dict[str, Navigation]
    actions: dict[str, Action]


def seed_tenant(store: AccessStore, codec: LicenseCodec) -> SeededTenant:
    """Provision one complete tenant.

    Navigation tree (order_by in brackets):
      Organization [1]
        Summary [2]       parent Organization
        License [3]       parent Organization
      Dashboard [4]       parent_id 0 (root)

    Grants:
      Admin  -> View on all four nodes, Edit on Summary
      Viewer -> View on Dashboard only
    """
    client = Client(name="Acme", row_id=ACME_ROW_ID)
    client.id = store.create_client(client)

    admin_role = RoleType(name="Admin")
    admin_role.id = store.create_role_type(admin_role)
    viewer_role = RoleType(name="Viewer")
    viewer_role.id = store.create_role_type(viewer_role)
    for role in (admin_role, viewer_role):
        store.add_client_role_type(ClientRoleType(client_id=client.id, role_type_id=role.id))
    admin_role.row_id = next(r.row_id for r in store.list_role_types() if r.id == admin_role.id)
    viewer_role.row_id = next(r.row_id for r in store.list_role_types() if r.id == viewer_role.id)

    admin = User(
        user_name=ADMIN_EMAIL,
        row_id="a11ce000-0000-4000-8000-000000000001",
        role_type_id=admin_role.id,
        first_name="Alice",
        last_name="Admin",
        hashed_password=hash_password(ADMIN_PASSWORD),
    )
    admin.id = store.create_user(admin)
    viewer = User(
        user_name=VIEWER_EMAIL,
        row_id="71c70000-0000-4000-8000-000000000002",
        role_type_id=viewer_role.id,
        first_name="Victor",
        last_name="Viewer",
        hashed_password=hash_password(VIEWER_PASSWORD),
    )
    viewer.id = store.create_user(viewer)
    for user in (admin, viewer):
        store.add_client_user(ClientUser(user_id=user.id, client_id=client.id))

    actions: dict[str, Action] = {}
    for member in (UserAction.VIEW, UserAction.EDIT):
        action = Action(name=member.value, row_id=USER_ACTION_ROW_IDS[member])
        action.id = store.create_action(action)
        actions[member.value] = action

    navigations: dict[str, Navigation] = {}
    organization = Navigation(
        name="Organization", order_by=1, row_id=NAVIGATION_ROW_IDS[NavigationMenu.ORGANIZATION]
    )
    organization.id = store.create_navigation(organization)
    navigations["Organization"] = organization
    for name, order_by, row_id, parent_id in (
        ("Summary", 2, NAVIGATION_ROW_IDS[NavigationMenu.SUMMARY], organization.id),
        ("License", 3, NAVIGATION_ROW_IDS[NavigationMenu.LICENSE], organization.id),
        ("Dashboard", 4, NAVIGATION_ROW_IDS[NavigationMenu.PROJECT_DASHBOARD], 0),
    ):
        navigation = Navigation(name=name, order_by=order_by, row_id=row_id, parent_id=parent_id)
        navigation.id = store.create_navigation(navigation)
        navigations[name] = navigation

    def grant(role: RoleType, navigation: Navigation, action: Action) -> None:
        pair_id = store.create_navigation_action(NavigationAction(navigation_id=navigation.id, action_id=action.id))
        store.grant_permission(PermissionGrant(role_type_id=role.id, navigation_action_id=pair_id))

    view = actions["View"]
    for name in ("Organization", "Summary", "License", "Dashboard"):
        grant(admin_role, navigations[name], view)
    grant(admin_role, navigations["Summary"], actions["Edit"])
    grant(viewer_role, navigations["Dashboard"], view)

    project = ClientProject(client_id=client.id, name="Ledger")
    project.id = store.create_project(project)
    project.row_id = next(p.row_id for p in store.list_projects() if p.id == project.id)
    store.assign_project_user(ClientProjectUser(project_id=project.id, user_id=admin.id))
    sealed = codec.encrypt(SCHEDULER_PASSWORD, client.row_id)
    store.create_project_scheduler(
        ProjectScheduler(
            project_id=project.id,
            user_name="ledger_svc",
            password=sealed.encrypted_private_key,
            encrypted_license_key=sealed.encrypted_license,
            connection_string=CONNECTION_TEMPLATE,
        )
    )

    return SeededTenant(
        client=client,
        admin=admin,
        viewer=viewer,
        admin_role=admin_role,
        viewer_role=viewer_role,
        project=project,
        navigations=navigations,
        actions=actions,
    )


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory():
    """Return make_settings so a test can blank out or override single fields."""
    return make_settings


@pytest.fixture
def codec() -> LicenseCodec:
    return LicenseCodec()


@pytest.fixture
def store() -> Generator[AccessStore, None, None]:
    access_store = make_store()
    yield access_store
    access_store.close()


@pytest.fixture
def tenant(store: AccessStore, codec: LicenseCodec) -> SeededTenant:
    return seed_tenant(store, codec)


@pytest.fixture
def private_memory_store(codec: LicenseCodec) -> Generator[AccessStore, None, None]:
    """A seeded store on a plain (unnamed) in-memory SQLite URL."""
    access_store = AccessStore("sqlite:///:memory:")
    seed_tenant(access_store, codec)
    yield access_store
    access_store.close()


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccessStore, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-seeded test store into app.state so TestClient routes see an
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        codec = LicenseCodec()
        app.state.store = store
        app.state.license_codec = codec
        app.state.lookups = build_lookup_tables()
        app.state.token_issuer = SessionTokenIssuer(settings)
        app.state.login_service = LoginService(store, codec, settings, issuer=app.state.token_issuer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SeededTenant], None, None]:
    """Yield (client, tenant) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store.
    """
    access_store = make_store()
    seeded = seed_tenant(access_store, LicenseCodec())
    app.router.lifespan_context = _patch_lifespan(access_store, make_settings())
    limiter.reset()

    # base_url must pass TrustedHostMiddleware; the default "testserver" does not.
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, seeded

    access_store.close()


@pytest.fixture
def login_as():
    """Return a helper that posts a password login and returns the response."""

    def _login(client: TestClient, user_name: str, password: str):
        return client.post(
            "/api/v1/auth/login",
            json={"userName": user_name, "password": password, "grantType": "password"},
        )

    return _login
