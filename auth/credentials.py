"""
auth/credentials.py -- Username/password verification.

verify_credentials() is a pure read over a ReferenceTables snapshot. A user is
a login candidate only when it is active and its whole association path
resolves: user -> tenant link -> tenant, and user -> role -> role-tenant
association.

Unknown user name and wrong password fail identically: same AccessError
kind, same message, and the same bcrypt cost (the unknown-name branch checks
against a dummy hash) so neither the response nor its timing reveals which
field was wrong.
"""

from __future__ import annotations

import logging

from auth.models import Client, ReferenceTables, RoleType, User, UserLogin
from auth.tokens import _DUMMY_HASH, verify_password
from core.errors import authentication_failure

logger = logging.getLogger("auditgate.auth")


def _find_candidate(tables: ReferenceTables, user_name: str) -> tuple[User, Client, RoleType] | None:
    clients = {c.id: c for c in tables.clients}
    roles = {r.id: r for r in tables.role_types}
    client_by_user: dict[int, int] = {}
    for link in tables.client_users:
        client_by_user.setdefault(link.user_id, link.client_id)
    associated_roles = {assoc.role_type_id for assoc in tables.client_role_types}

    for user in tables.users:
        if not user.is_active or user.user_name != user_name:
            continue
        client = clients.get(client_by_user.get(user.id))
        role = roles.get(user.role_type_id)
        if client is None or role is None or role.id not in associated_roles:
            continue
        return user, client, role
    return None


def full_name(user: User) -> str:
    return f"{user.first_name or ''} {user.last_name or ''}".strip()


def verify_credentials(tables: ReferenceTables, user_name: str, password: str) -> UserLogin:
    """Return the verified identity or raise AccessError(AUTHENTICATION)."""
    candidate = _find_candidate(tables, user_name)
    if candidate is None:
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login rejected: no active account for the supplied user name")
        raise authentication_failure()

    user, client, role = candidate
    if not user.hashed_password or not verify_password(password, user.hashed_password):
        logger.warning("Login rejected: password mismatch for user id %s", user.id)
        raise authentication_failure()

    return UserLogin(
        id=user.id,
        row_id=user.row_id,
        name=full_name(user),
        email=user.user_name,
        role_id=role.id,
        role_row_id=role.row_id,
        role_name=role.name,
        client_id=client.id,
        client_name=client.name,
    )
