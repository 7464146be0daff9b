"""
auth/audit.py -- Best-effort audit snapshot of a login session.

AuditRecorder.record() gathers everything a session was granted at login time
(full permission set, accessible projects with their recovered connection
strings) into one UserAudit row keyed by the session id.

Failure isolation: record() never raises. Any error while resolving or
writing the snapshot is logged as a warning and reported by returning False;
the login that triggered it still succeeds.

Secrets: decrypted passwords and the connection strings built from them are
written to the snapshot only. They are never logged.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.license import LicenseCodec, LicenseResult
from auth.models import (
    ClientProject,
    ProjectScheduler,
    ReferenceTables,
    SessionInfo,
    User,
    UserAudit,
    UserLogin,
    UserPermission,
    UserProject,
)
from auth.permissions import resolve_permissions
from core.errors import ErrorKind

logger = logging.getLogger("auditgate.audit")


def to_user_project(project: ClientProject, scheduler: ProjectScheduler, password: str) -> UserProject:
    """Fill the connection-string template with (project name, user name, password)."""
    return UserProject(
        id=project.id,
        row_id=project.row_id,
        name=project.name,
        connection_string=scheduler.connection_string.format(project.name, scheduler.user_name, password),
    )


def to_user_audit(
    session: SessionInfo,
    login: UserLogin,
    user: User | None,
    permissions: list[UserPermission],
    projects: list[UserProject],
    ip_address: str | None,
    user_agent: str | None,
) -> UserAudit:
    return UserAudit(
        row_id=session.session_id,
        user_row_id=login.row_id,
        user_id=login.id,
        first_name=(user.first_name if user else None) or "",
        last_name=(user.last_name if user else None) or "",
        email=login.email,
        role_row_id=login.role_row_id,
        role_id=login.role_id,
        role_name=login.role_name,
        refresh_token=session.refresh_token,
        token_created_date=session.created_at,
        token_expired_date=session.expires_at,
        role_navigation=tuple(permissions),
        project_access=tuple(projects),
        client_ip_address=ip_address,
        user_agent=user_agent,
        created_by=login.email,
    )


class AuditRecorder:
    """Writes the immutable audit snapshot for a newly issued session.

    Usage:
        recorder = AuditRecorder(store, LicenseCodec())
        recorded = recorder.record(session, user_login, "10.0.0.1", "curl/8")
    """

    def __init__(self, store, codec: LicenseCodec) -> None:
        self._store = store
        self._codec = codec

    def resolve_project_access(self, user_id: int, client_id: int) -> list[UserProject]:
        """Projects assigned to the user within its tenant, with recovered connection strings.

        The scheduler password is an envelope keyed to the tenant's row id.
        Raises LicenseDecryptionError if any stored credential fails to open.
        """
        client = self._store.get_client(client_id)
        if client is None:
            return []
        assigned = {a.project_id for a in self._store.list_project_users() if a.user_id == user_id}
        projects = [p for p in self._store.list_projects() if p.id in assigned and p.client_id == client_id]
        schedulers = {s.project_id: s for s in self._store.list_project_schedulers()}

        resolved: list[UserProject] = []
        for project in projects:
            scheduler = schedulers.get(project.id)
            if scheduler is None:
                continue
            password = self._codec.decrypt(
                LicenseResult(
                    encrypted_license=scheduler.encrypted_license_key,
                    encrypted_private_key=scheduler.password,
                ),
                client.row_id,
            )
            resolved.append(to_user_project(project, scheduler, password))
        return resolved

    def record(
        self,
        session: SessionInfo,
        user: UserLogin,
        ip_address: str | None = None,
        user_agent: str | None = None,
        tables: ReferenceTables | None = None,
    ) -> bool:
        """Build and insert the audit snapshot. Returns True on success, False on any failure."""
        try:
            tables = tables if tables is not None else self._store.load_reference_tables()
            stored_user = next((u for u in tables.users if u.id == user.id), None)
            audit = to_user_audit(
                session,
                user,
                stored_user,
                resolve_permissions(tables, user.id),
                self.resolve_project_access(user.id, user.client_id),
                ip_address,
                user_agent,
            )
            self._store.add_user_audit(audit)
        except Exception as exc:
            # Exception text can echo bound SQL parameters; log the type only.
            logger.warning(
                "Audit snapshot not recorded for session %s (%s: %s)",
                session.session_id,
                ErrorKind.PERSISTENCE.value,
                type(exc).__name__,
            )
            return False
        logger.info(
            "Audit snapshot recorded for session %s (%d permissions, %d projects)",
            session.session_id,
            len(audit.role_navigation),
            len(audit.project_access),
        )
        return True
