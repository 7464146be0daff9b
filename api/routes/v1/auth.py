"""
api/routes/v1/auth.py -- Login and session-scoped navigation endpoints.

Routes:
  POST /api/v1/auth/login        -- password login; returns session + refresh token
  GET  /api/v1/auth/menu         -- View-granted menu for the caller (requires auth)
  GET  /api/v1/auth/navigation   -- every granted navigation node (requires auth)
  GET  /api/v1/auth/me           -- current session claims (requires auth)

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  Wrong user name and wrong password return the same 401 bad_credentials body.
  Cache-Control: no-store on every login response, success or failure.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MenuItemResponse,
    NavigationItemResponse,
)
from auth.dependencies import get_current_session
from auth.login import LoginService
from auth.models import LoginCommand
from auth.permissions import resolve_menu, resolve_navigation
from core.config import get_settings
from core.errors import AccessError, ErrorKind

# Auth policy:
# - POST /api/v1/auth/login:       public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/menu:        requires auth (get_current_session)
# - GET  /api/v1/auth/navigation:  requires auth (get_current_session)
# - GET  /api/v1/auth/me:          requires auth (get_current_session)
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with user name and password; return a signed session token.

    AUTHENTICATION failures answer 401 here. Every other failure arrives as
    an UNEXPECTED AccessError and is mapped by the app-level handler.
    """
    service: LoginService = request.app.state.login_service
    command = LoginCommand(
        user_name=body.user_name,
        password=body.password,
        grant_type=body.grant_type,
        client_ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )
    try:
        result = await service.authenticate(command)
    except AccessError as exc:
        if exc.kind is not ErrorKind.AUTHENTICATION:
            raise
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(error=ErrorDetail(code="bad_credentials", message=exc.message)).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse.from_token_response(result).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/menu", response_model=list[MenuItemResponse])
def menu(request: Request, claims: dict = Depends(get_current_session)) -> list[MenuItemResponse]:
    """Return the navigation nodes the caller's role may View, in menu order.

    Raises AccessError(AUTHORIZATION) -> 403 when the role has no role-tenant
    association.
    """
    user_id = int(claims["UserId"])
    tables = request.app.state.store.load_reference_tables()
    return [MenuItemResponse.from_item(item) for item in resolve_menu(tables, user_id)]


@router.get("/auth/navigation", response_model=list[NavigationItemResponse])
def navigation(request: Request, claims: dict = Depends(get_current_session)) -> list[NavigationItemResponse]:
    """Return every navigation node the caller holds any grant on, with its parent."""
    user_id = int(claims["UserId"])
    tables = request.app.state.store.load_reference_tables()
    return [NavigationItemResponse.from_item(item) for item in resolve_navigation(tables, user_id)]


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: dict = Depends(get_current_session)) -> MeResponse:
    """Return identity information carried by the current session token."""
    return MeResponse.from_claims(claims)
