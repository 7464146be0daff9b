"""
auth/tokens.py -- Password hashing and session token issuance.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). bcrypt.checkpw runs
       the full key-derivation and compares digests in constant time, so a
       partially matching password takes as long to reject as a wholly wrong
       one. _DUMMY_HASH lets the credential verifier spend the same bcrypt
       cost on unknown user names.

  JWT: python-jose with HS256. Issuer, audience and key come from the
       injected Settings and are checked on every issue() call. A missing
       value is a CONFIGURATION error -- never defaulted, never retried.

  Refresh tokens: 32 bytes from secrets.token_bytes, base64 encoded. Opaque
       to clients; stored only in the session's audit snapshot.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import SessionInfo, UserLogin
from core.config import Settings
from core.errors import AccessError, configuration_error

logger = logging.getLogger("auditgate.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt ignores input past 72 bytes; the API caps password length at 255
    characters (Pydantic field).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("auditgate_timing_dummy")


def generate_refresh_token() -> str:
    """Return 32 cryptographically random bytes, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


# ---------------------------------------------------------------------------
# Session token issuer
# ---------------------------------------------------------------------------


class SessionTokenIssuer:
    """Builds and signs session tokens from a verified identity.

    Usage:
        issuer = SessionTokenIssuer(get_settings())
        session = issuer.new_session()
        token = issuer.issue(session, user_login)
        claims = issuer.decode(token)
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def new_session(self, now: datetime | None = None) -> SessionInfo:
        """Start a session: fresh id, created/expiry times, refresh token."""
        created = now or datetime.now(timezone.utc)
        return SessionInfo(
            session_id=str(uuid.uuid4()),
            created_at=created,
            expires_at=created + timedelta(minutes=self._settings.access_token_expiry_minutes),
            refresh_token=generate_refresh_token(),
        )

    def _signing_material(self) -> tuple[str, str, str]:
        issuer = self._settings.token_issuer
        audience = self._settings.token_audience
        key = self._settings.token_key
        if not issuer or not issuer.strip():
            raise configuration_error("Token issuer configuration is missing")
        if not audience or not audience.strip():
            raise configuration_error("Token audience configuration is missing")
        if not key or not key.strip():
            raise configuration_error("Token key configuration is missing")
        return issuer, audience, key

    def issue(self, session: SessionInfo, user: UserLogin) -> str:
        """Sign a token carrying the session and identity claims.

        Raises AccessError(CONFIGURATION) before anything is signed if the
        issuer, audience or key is missing.
        """
        issuer, audience, key = self._signing_material()
        claims = {
            "sid": session.session_id,
            "UserRowId": user.row_id,
            "UserId": str(user.id),
            "name": user.name,
            "email": user.email,
            "RoleRowId": user.role_row_id,
            "RoleId": str(user.role_id),
            "Role": user.role_name,
            "ClientId": str(user.client_id),
            "Client": user.client_name,
            "iss": issuer,
            "aud": audience,
            "iat": session.created_at,
            "exp": session.expires_at,
        }
        return jwt.encode(claims, key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> dict | None:
        """Verify signature, issuer, audience and expiry. Returns claims or None.

        Returning None (rather than raising) keeps the caller simple: any
        invalid token, including one presented while signing is
        unconfigured, is treated as unauthenticated.
        """
        try:
            issuer, audience, key = self._signing_material()
        except AccessError:
            return None
        try:
            claims = jwt.decode(token, key, algorithms=[_ALGORITHM], audience=audience, issuer=issuer)
        except JWTError:
            return None
        if "sid" not in claims or "UserId" not in claims or "ClientId" not in claims:
            return None
        return claims
