"""
auth/dependencies.py -- FastAPI Depends() helpers for request authentication
and permission checks.

Requests authenticate with an Authorization: Bearer <token> header carrying a
session token issued by the login flow. The token is verified by the
SessionTokenIssuer on app.state; its claims become the caller's identity.

try_get_current_session() is the soft variant (returns None on failure).
get_current_session() wraps it and raises HTTP 401 if unauthenticated.
require_permission(menu, action) builds a dependency that additionally
requires the (navigation, action) grant in the session's audit snapshot and
raises HTTP 403 otherwise.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.permissions import has_permission
from auth.tokens import SessionTokenIssuer
from core.lookups import LookupTables, NavigationMenu, UserAction


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_session(request: Request) -> dict | None:
    """Return verified token claims, or None. Never raises."""
    token = _bearer_token(request)
    if not token:
        return None
    issuer: SessionTokenIssuer = request.app.state.token_issuer
    return issuer.decode(token)


def get_current_session(request: Request) -> dict:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: dict = Depends(get_current_session)): ...
    """
    claims = try_get_current_session(request)
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return claims


def require_permission(menu: NavigationMenu, action: UserAction) -> Callable[..., dict]:
    """Build a dependency requiring the (menu, action) grant.

    The grant is checked against the role_navigation recorded in the audit
    snapshot for the token's session id. A session whose snapshot was never
    written holds no grants.

    Use as a FastAPI dependency:
        @router.get("/license")
        async def route(claims: dict = Depends(require_permission(NavigationMenu.LICENSE, UserAction.VIEW))): ...
    """

    def dependency(request: Request, claims: dict = Depends(get_current_session)) -> dict:
        lookups: LookupTables = request.app.state.lookups
        audit = request.app.state.store.get_user_audit(claims["sid"])
        granted = audit is not None and has_permission(
            audit.role_navigation,
            lookups.navigations.row_id(menu),
            lookups.actions.row_id(action),
        )
        if not granted:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{action.value} access to {menu.value} is required."},
            )
        return claims

    return dependency
