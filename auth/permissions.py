"""
auth/permissions.py -- Role and permission resolution over reference tables.

All functions are pure reads over a ReferenceTables snapshot loaded once per
request; nothing here touches the database or caches results between calls.

Join path for a user's grants:
  resolve_role_context(user) -> grants (role_type_id) -> navigation_actions
                             -> navigations (active, not deleted) + actions

Role-tenant lookup joins role-tenant associations on the role type id only.
The user's own tenant is not part of the join, so a role associated with
several tenants resolves to whichever association comes first. Kept as is;
see DESIGN.md. Every resolver goes through resolve_role_context, so a role
without any association raises AUTHORIZATION instead of yielding no grants.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from collections.abc import Iterable

from auth.models import (
    Action,
    MenuItem,
    Navigation,
    NavigationItem,
    ReferenceTables,
    RoleContext,
    User,
    UserPermission,
)
from core.errors import authorization_failure
from core.lookups import UserAction

# ---------------------------------------------------------------------------
# Role context
# ---------------------------------------------------------------------------


def _find_user(tables: ReferenceTables, user_id: int) -> User | None:
    return next((u for u in tables.users if u.id == user_id), None)


def resolve_role_context(tables: ReferenceTables, user_id: int) -> RoleContext:
    """Resolve the user's role through a role-tenant association.

    Raises AccessError(AUTHORIZATION) when the user, its role, or any
    association for that role is missing.
    """
    user = _find_user(tables, user_id)
    if user is None:
        raise authorization_failure()
    role = next((r for r in tables.role_types if r.id == user.role_type_id), None)
    if role is None:
        raise authorization_failure()
    association = next((a for a in tables.client_role_types if a.role_type_id == role.id), None)
    if association is None:
        raise authorization_failure()
    return RoleContext(role_type_id=role.id, role_name=role.name, client_id=association.client_id)


# ---------------------------------------------------------------------------
# Grant expansion
# ---------------------------------------------------------------------------


def _granted_pairs(tables: ReferenceTables, role_type_id: int) -> list[tuple[Navigation, Action]]:
    """Every (navigation, action) pair granted to a role, ordered by navigation order_by.

    Inactive or deleted navigation rows are skipped. Ties keep grant order.
    """
    navigations = {n.id: n for n in tables.navigations if n.is_active and not n.is_deleted}
    actions = {a.id: a for a in tables.actions}
    pairs = {p.id: p for p in tables.navigation_actions}

    granted: list[tuple[Navigation, Action]] = []
    for grant in tables.grants:
        if grant.role_type_id != role_type_id:
            continue
        pair = pairs.get(grant.navigation_action_id)
        if pair is None:
            continue
        navigation = navigations.get(pair.navigation_id)
        action = actions.get(pair.action_id)
        if navigation is None or action is None:
            continue
        granted.append((navigation, action))
    granted.sort(key=lambda item: item[0].order_by)
    return granted


def _grants_for_user(tables: ReferenceTables, user_id: int) -> list[tuple[Navigation, Action]]:
    """Raises AccessError(AUTHORIZATION) when the role context does not resolve."""
    role = resolve_role_context(tables, user_id)
    return _granted_pairs(tables, role.role_type_id)


def _parent_of(tables: ReferenceTables, navigation: Navigation) -> Navigation | None:
    if navigation.parent_id is None or navigation.parent_id <= 0:
        return None
    return next((n for n in tables.navigations if n.id == navigation.parent_id), None)


# ---------------------------------------------------------------------------
# Mapping functions
# ---------------------------------------------------------------------------


def to_menu_item(navigation: Navigation, parent: Navigation | None) -> MenuItem:
    return MenuItem(
        row_id=navigation.row_id,
        name=navigation.name,
        description=navigation.description,
        order_by=navigation.order_by,
        parent_row_id=parent.row_id if parent else None,
        parent_name=parent.name if parent else None,
    )


def to_navigation_item(navigation: Navigation, parent: Navigation | None) -> NavigationItem:
    return NavigationItem(
        row_id=navigation.row_id,
        name=navigation.name,
        parent_row_id=parent.row_id if parent else None,
        parent_name=parent.name if parent else None,
    )


def to_user_permission(navigation: Navigation, action: Action) -> UserPermission:
    return UserPermission(
        navigation_row_id=navigation.row_id,
        navigation_id=navigation.id,
        navigation_name=navigation.name,
        action_row_id=action.row_id,
        action_id=action.id,
        action_name=action.name,
    )


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def resolve_menu(tables: ReferenceTables, user_id: int) -> list[MenuItem]:
    """Navigation nodes the user may View, in menu order."""
    return [
        to_menu_item(navigation, _parent_of(tables, navigation))
        for navigation, action in _grants_for_user(tables, user_id)
        if action.name == UserAction.VIEW.value
    ]


def resolve_navigation(tables: ReferenceTables, user_id: int) -> list[NavigationItem]:
    """Distinct navigation nodes the user holds any grant on, with parents."""
    seen: set[int] = set()
    items: list[NavigationItem] = []
    for navigation, _action in _grants_for_user(tables, user_id):
        if navigation.id in seen:
            continue
        seen.add(navigation.id)
        items.append(to_navigation_item(navigation, _parent_of(tables, navigation)))
    return items


def resolve_permissions(tables: ReferenceTables, user_id: int) -> list[UserPermission]:
    """The user's full permission set across all actions."""
    return [to_user_permission(navigation, action) for navigation, action in _grants_for_user(tables, user_id)]


def has_permission(permissions: Iterable[UserPermission], navigation_row_id: str, action_row_id: str) -> bool:
    """True if any permission matches the (navigation, action) row id pair.

    Row ids are compared case-insensitively.
    """
    nav = navigation_row_id.lower()
    act = action_row_id.lower()
    return any(p.navigation_row_id.lower() == nav and p.action_row_id.lower() == act for p in permissions)
