"""
auth/models.py -- Domain dataclasses for identity, tenancy, permissions and audit.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, resolvers and routes do the work.

Three groups:
  Stored records   -- one class per table in auth/store.py.
  Derived records  -- UserLogin, RoleContext, MenuItem, NavigationItem,
                      UserPermission, UserProject. Computed per request,
                      frozen so a resolved result cannot be edited after the fact.
  Session records  -- SessionInfo and TokenResponse, produced by the login flow.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


@dataclass
class User:
    """An identity. user_name is the login name and doubles as the e-mail.

    Created by provisioning; read-only to the login flow.
    """

    user_name: str
    role_type_id: int
    row_id: str = ""
    email: str = ""
    first_name: str | None = None
    last_name: str | None = None
    hashed_password: str | None = None
    id: int | None = None
    is_active: bool = True


@dataclass
class Client:
    """A tenant. row_id is the external id that license material is bound to."""

    name: str
    row_id: str = ""
    id: int | None = None


@dataclass
class ClientUser:
    user_id: int
    client_id: int
    id: int | None = None


@dataclass
class RoleType:
    name: str
    row_id: str = ""
    id: int | None = None


@dataclass
class ClientRoleType:
    """Role-tenant association. Grants are only meaningful through one of these."""

    client_id: int
    role_type_id: int
    id: int | None = None


@dataclass
class Navigation:
    """A menu/resource node. parent_id None (or <= 0) marks a root."""

    name: str
    order_by: int = 0
    row_id: str = ""
    description: str | None = None
    parent_id: int | None = None
    is_active: bool = True
    is_deleted: bool = False
    id: int | None = None


@dataclass
class Action:
    """An operation kind that can be granted against a navigation node."""

    name: str  # "View", "Add", "Edit", "Delete"
    row_id: str = ""
    id: int | None = None


@dataclass
class NavigationAction:
    """A grantable (navigation, action) pair."""

    navigation_id: int
    action_id: int
    id: int | None = None


@dataclass
class PermissionGrant:
    """Grants a NavigationAction to a role. Presence is the only signal -- there is no deny row."""

    role_type_id: int
    navigation_action_id: int
    id: int | None = None


@dataclass
class ClientProject:
    client_id: int
    name: str
    row_id: str = ""
    id: int | None = None


@dataclass
class ClientProjectUser:
    """Assigns a user to a project."""

    project_id: int
    user_id: int
    id: int | None = None


@dataclass
class ProjectScheduler:
    """Per-project database credential.

    password and encrypted_license_key are the two halves of a license-codec
    envelope (cipher key material and cipher payload). connection_string is a
    template with positional placeholders {0} project name, {1} user name,
    {2} decrypted password.
    """

    project_id: int
    user_name: str
    password: str
    encrypted_license_key: str
    connection_string: str
    id: int | None = None


@dataclass
class ClientLicense:
    """A tenant subscription license. Never mutated in place."""

    client_id: int
    name: str
    start_date: datetime
    end_date: datetime
    license_key: str  # cipher payload
    private_key: str  # cipher key material
    description: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class UserPermission:
    """One (navigation, action) grant as recorded in an audit snapshot."""

    navigation_row_id: str
    navigation_id: int
    navigation_name: str
    action_row_id: str
    action_id: int
    action_name: str


@dataclass(frozen=True)
class UserProject:
    """One accessible project with its resolved connection string."""

    id: int
    row_id: str
    name: str
    connection_string: str


@dataclass(frozen=True)
class UserAudit:
    """Immutable snapshot of a login session. Insert-only.

    row_id is the session id carried in the token's sid claim.
    """

    row_id: str
    user_row_id: str
    user_id: int
    first_name: str
    last_name: str
    email: str
    role_row_id: str
    role_id: int
    role_name: str
    refresh_token: str
    token_created_date: datetime
    token_expired_date: datetime
    role_navigation: tuple[UserPermission, ...] = ()
    project_access: tuple[UserProject, ...] = ()
    client_ip_address: str | None = None
    user_agent: str | None = None
    created_by: str = ""
    id: int | None = None


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserLogin:
    """The verified identity returned by the credential verifier."""

    id: int
    row_id: str
    name: str
    email: str
    role_id: int
    role_row_id: str
    role_name: str
    client_id: int
    client_name: str


@dataclass(frozen=True)
class RoleContext:
    """A user's role as resolved through a role-tenant association."""

    role_type_id: int
    role_name: str
    client_id: int


@dataclass(frozen=True)
class MenuItem:
    row_id: str
    name: str
    description: str | None
    order_by: int
    parent_row_id: str | None = None
    parent_name: str | None = None


@dataclass(frozen=True)
class NavigationItem:
    row_id: str
    name: str
    parent_row_id: str | None = None
    parent_name: str | None = None


@dataclass(frozen=True)
class ReferenceTables:
    """Bulk-loaded identity and permission tables for a single request.

    Loaded fresh by AccessStore.load_reference_tables() on every login or
    authorization check and discarded afterwards. Never cached.
    """

    users: tuple[User, ...] = ()
    clients: tuple[Client, ...] = ()
    client_users: tuple[ClientUser, ...] = ()
    role_types: tuple[RoleType, ...] = ()
    client_role_types: tuple[ClientRoleType, ...] = ()
    navigations: tuple[Navigation, ...] = ()
    actions: tuple[Action, ...] = ()
    navigation_actions: tuple[NavigationAction, ...] = ()
    grants: tuple[PermissionGrant, ...] = ()


# ---------------------------------------------------------------------------
# Session records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionInfo:
    """Ephemeral per-login session data. Persisted only via the audit snapshot."""

    session_id: str
    created_at: datetime
    expires_at: datetime
    refresh_token: str


@dataclass(frozen=True)
class TokenResponse:
    name: str
    token: str
    refresh_token: str
    role_id: int
    role_name: str
    client_id: int
    client_name: str


@dataclass(frozen=True)
class LoginCommand:
    user_name: str
    password: str
    grant_type: str = "password"
    client_ip_address: str | None = None
    user_agent: str | None = None
