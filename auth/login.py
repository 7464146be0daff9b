"""
auth/login.py -- Login composition.

LoginService.authenticate() runs one login as an async chain:

  Unauthenticated
    -> CredentialsVerified   verify_credentials()
    -> RoleResolved          resolve_role_context()
    -> TokenIssued           SessionTokenIssuer.issue()
    -> AuditRecorded         AuditRecorder.record(), best effort
    -> SessionIssued         TokenResponse returned

Role resolution runs before the token is signed, so a user without a
role-tenant association never receives a token.

Error propagation is applied here and nowhere else:
  AUTHENTICATION  re-raised unchanged (the API answers 401 bad_credentials).
  anything else   wrapped in AccessError(UNEXPECTED, LOGIN_FAILED_MESSAGE),
                  chained to the original and tagged with its cause_kind.
An audit failure is not an error at all: record() returns False and the
session is still issued.

Blocking work (bcrypt, SQLAlchemy) runs in the threadpool so the event loop
stays free while a login is in flight.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from fastapi.concurrency import run_in_threadpool

from auth.audit import AuditRecorder
from auth.credentials import verify_credentials
from auth.license import LicenseCodec
from auth.models import LoginCommand, RoleContext, TokenResponse, UserLogin
from auth.permissions import resolve_role_context
from auth.tokens import SessionTokenIssuer
from core.config import Settings
from core.errors import LOGIN_FAILED_MESSAGE, AccessError, ErrorKind

logger = logging.getLogger("auditgate.auth")


def to_token_response(user: UserLogin, role: RoleContext, token: str, refresh_token: str) -> TokenResponse:
    return TokenResponse(
        name=user.name,
        token=token,
        refresh_token=refresh_token,
        role_id=role.role_type_id,
        role_name=role.role_name,
        client_id=user.client_id,
        client_name=user.client_name,
    )


class LoginService:
    """Composes credential check, role resolution, token issue and audit.

    Usage:
        service = LoginService(store, LicenseCodec(), get_settings())
        response = await service.authenticate(LoginCommand("alice@acme.com", "secret"))
    """

    def __init__(
        self,
        store,
        codec: LicenseCodec,
        settings: Settings,
        issuer: SessionTokenIssuer | None = None,
        recorder: AuditRecorder | None = None,
    ) -> None:
        self._store = store
        self._issuer = issuer or SessionTokenIssuer(settings)
        self._recorder = recorder or AuditRecorder(store, codec)

    async def authenticate(self, command: LoginCommand) -> TokenResponse:
        logger.info("Login attempt from %s", command.client_ip_address or "unknown")
        try:
            response = await self._run(command)
        except AccessError as exc:
            if exc.kind is ErrorKind.AUTHENTICATION:
                raise
            logger.error("Login failed (%s): %s", exc.kind.value, exc.message)
            raise AccessError(ErrorKind.UNEXPECTED, LOGIN_FAILED_MESSAGE, cause_kind=exc.kind) from exc
        except Exception as exc:
            logger.exception("Login failed with an unexpected %s", type(exc).__name__)
            raise AccessError(ErrorKind.UNEXPECTED, LOGIN_FAILED_MESSAGE, cause_kind=ErrorKind.UNEXPECTED) from exc
        return response

    async def _run(self, command: LoginCommand) -> TokenResponse:
        tables = await run_in_threadpool(self._store.load_reference_tables)
        user = await run_in_threadpool(verify_credentials, tables, command.user_name, command.password)
        role = resolve_role_context(tables, user.id)

        session = self._issuer.new_session()
        token = self._issuer.issue(session, user)
        logger.info("Session %s issued for user id %s (client %s)", session.session_id, user.id, user.client_id)

        await run_in_threadpool(
            self._recorder.record,
            session,
            user,
            command.client_ip_address,
            command.user_agent,
            tables,
        )
        return to_token_response(user, role, token, session.refresh_token)
