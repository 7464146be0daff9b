"""
API request and response models for AuditGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (userName, refreshToken, ...); Python attributes
stay snake_case. Models are built with populate_by_name so routes can
construct them by attribute name and serialize with by_alias=True.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.license import LicenseWindow
from auth.models import MenuItem, NavigationItem, TokenResponse


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(_CamelModel):
    """Request body for POST /api/v1/auth/login.

    password max_length bounds the bcrypt input; bcrypt only reads the first
    72 bytes, and the cap stops oversized bodies before any hashing work.
    """

    user_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    grant_type: str = Field(min_length=1, max_length=32)

    @field_validator("grant_type")
    @classmethod
    def password_grant_only(cls, value: str) -> str:
        if value != "password":
            raise ValueError("grantType must be 'password'.")
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(_CamelModel):
    """Response for a successful login. Serialized camelCase."""

    name: str
    token: str
    refresh_token: str
    role_id: int
    role_name: str
    client_id: int
    client_name: str

    @classmethod
    def from_token_response(cls, response: TokenResponse) -> "LoginResponse":
        return cls(
            name=response.name,
            token=response.token,
            refresh_token=response.refresh_token,
            role_id=response.role_id,
            role_name=response.role_name,
            client_id=response.client_id,
            client_name=response.client_name,
        )


class MenuItemResponse(_CamelModel):
    row_id: str
    name: str
    description: Optional[str] = None
    order_by: int
    parent_row_id: Optional[str] = None
    parent_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: MenuItem) -> "MenuItemResponse":
        return cls(
            row_id=item.row_id,
            name=item.name,
            description=item.description,
            order_by=item.order_by,
            parent_row_id=item.parent_row_id,
            parent_name=item.parent_name,
        )


class NavigationItemResponse(_CamelModel):
    row_id: str
    name: str
    parent_row_id: Optional[str] = None
    parent_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: NavigationItem) -> "NavigationItemResponse":
        return cls(
            row_id=item.row_id,
            name=item.name,
            parent_row_id=item.parent_row_id,
            parent_name=item.parent_name,
        )


class MeResponse(_CamelModel):
    """Identity claims of the current session token."""

    session_id: str
    user_row_id: str
    user_id: int
    name: str
    email: str
    role_row_id: str
    role_id: int
    role_name: str
    client_id: int
    client_name: str

    @classmethod
    def from_claims(cls, claims: dict) -> "MeResponse":
        return cls(
            session_id=claims["sid"],
            user_row_id=claims.get("UserRowId", ""),
            user_id=int(claims["UserId"]),
            name=claims.get("name", ""),
            email=claims.get("email", ""),
            role_row_id=claims.get("RoleRowId", ""),
            role_id=int(claims.get("RoleId", 0)),
            role_name=claims.get("Role", ""),
            client_id=int(claims["ClientId"]),
            client_name=claims.get("Client", ""),
        )


class LicenseResponse(_CamelModel):
    """The caller tenant's current license window."""

    client_id: str
    name: str
    start_date: datetime
    end_date: datetime
    is_valid: bool

    @classmethod
    def from_window(cls, name: str, window: LicenseWindow) -> "LicenseResponse":
        return cls(
            client_id=window.client_row_id,
            name=name,
            start_date=window.start_date,
            end_date=window.end_date,
            is_valid=window.is_valid(),
        )


class ErrorDetail(BaseModel):
    """Structured error detail used in all error responses."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned by all exception handlers."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str]
