"""
tests/test_login.py -- Unit tests for the login composition.

LoginService.authenticate() is async; tests drive it with asyncio.run().

Coverage:
  - successful login returns a token whose claims match the audit snapshot
  - wrong password surfaces AUTHENTICATION with the generic message
  - an audit persistence failure still issues a token
  - AUTHORIZATION / CONFIGURATION / unexpected failures are wrapped into
    UNEXPECTED, chained to the original, with cause_kind kept
  - a failed role resolution or missing signing config writes no audit row
  - a plain in-memory SQLite store serves logins run on worker threads
"""

from __future__ import annotations

import asyncio

import pytest

from auth.license import LicenseCodec
from auth.login import LoginService
from auth.models import ClientUser, LoginCommand, RoleType, User
from auth.tokens import SessionTokenIssuer, hash_password
from core.errors import LOGIN_FAILED_MESSAGE, AccessError, ErrorKind, authorization_failure


def _authenticate(service: LoginService, user_name: str, password: str):
    return asyncio.run(
        service.authenticate(
            LoginCommand(user_name=user_name, password=password, client_ip_address="10.0.0.9", user_agent="pytest")
        )
    )


def test_successful_login(store, codec, settings, tenant) -> None:
    service = LoginService(store, codec, settings)
    response = _authenticate(service, "alice@acme.com", "correct-horse-battery")

    assert response.name == "Alice Admin"
    assert response.role_id == tenant.admin_role.id
    assert response.role_name == "Admin"
    assert response.client_id == tenant.client.id
    assert response.client_name == "Acme"
    assert response.refresh_token

    claims = SessionTokenIssuer(settings).decode(response.token)
    assert claims is not None
    assert claims["UserId"] == str(tenant.admin.id)
    audit = store.get_user_audit(claims["sid"])
    assert audit is not None
    assert audit.refresh_token == response.refresh_token
    assert audit.client_ip_address == "10.0.0.9"


def test_each_login_gets_a_new_session(store, codec, settings, tenant) -> None:
    service = LoginService(store, codec, settings)
    first = _authenticate(service, "victor@acme.com", "viewer-pass-123")
    second = _authenticate(service, "victor@acme.com", "viewer-pass-123")
    issuer = SessionTokenIssuer(settings)
    assert issuer.decode(first.token)["sid"] != issuer.decode(second.token)["sid"]
    assert store.count_user_audits() == 2


def test_wrong_password(store, codec, settings, tenant) -> None:
    with pytest.raises(AccessError) as exc_info:
        _authenticate(LoginService(store, codec, settings), "alice@acme.com", "nope")
    assert exc_info.value.kind is ErrorKind.AUTHENTICATION
    assert exc_info.value.message == "Invalid username or password."
    assert store.count_user_audits() == 0


def test_audit_failure_still_issues_token(store, codec, settings, tenant, monkeypatch) -> None:
    def _fail(audit):
        raise RuntimeError("audit table unavailable")

    monkeypatch.setattr(store, "add_user_audit", _fail)
    response = _authenticate(LoginService(store, codec, settings), "alice@acme.com", "correct-horse-battery")

    assert SessionTokenIssuer(settings).decode(response.token) is not None
    assert store.count_user_audits() == 0


def test_role_without_association_cannot_log_in(store, codec, settings, tenant) -> None:
    # A role with no role-tenant association never makes it past the credential join.
    orphan_role = RoleType(name="Orphan")
    orphan_role.id = store.create_role_type(orphan_role)
    uid = store.create_user(
        User(user_name="olga@acme.com", role_type_id=orphan_role.id, hashed_password=hash_password("pw-olga-1"))
    )
    store.add_client_user(ClientUser(user_id=uid, client_id=tenant.client.id))

    with pytest.raises(AccessError) as exc_info:
        _authenticate(LoginService(store, codec, settings), "olga@acme.com", "pw-olga-1")
    assert exc_info.value.kind is ErrorKind.AUTHENTICATION


def test_role_resolution_failure_is_wrapped(store, codec, settings, tenant, monkeypatch) -> None:
    def _no_role(tables, user_id):
        raise authorization_failure()

    monkeypatch.setattr("auth.login.resolve_role_context", _no_role)

    with pytest.raises(AccessError) as exc_info:
        _authenticate(LoginService(store, codec, settings), "alice@acme.com", "correct-horse-battery")
    assert exc_info.value.kind is ErrorKind.UNEXPECTED
    assert exc_info.value.message == LOGIN_FAILED_MESSAGE
    assert exc_info.value.cause_kind is ErrorKind.AUTHORIZATION
    assert isinstance(exc_info.value.__cause__, AccessError)
    assert store.count_user_audits() == 0


@pytest.mark.parametrize("field", ["token_issuer", "token_audience", "token_key"])
def test_missing_signing_config_is_wrapped(store, codec, settings_factory, tenant, field) -> None:
    service = LoginService(store, codec, settings_factory(**{field: ""}))
    with pytest.raises(AccessError) as exc_info:
        _authenticate(service, "alice@acme.com", "correct-horse-battery")
    assert exc_info.value.kind is ErrorKind.UNEXPECTED
    assert exc_info.value.cause_kind is ErrorKind.CONFIGURATION
    assert store.count_user_audits() == 0


def test_unexpected_error_is_wrapped(store, settings, tenant, monkeypatch) -> None:
    def _broken():
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, "load_reference_tables", _broken)
    with pytest.raises(AccessError) as exc_info:
        _authenticate(LoginService(store, LicenseCodec(), settings), "alice@acme.com", "correct-horse-battery")
    assert exc_info.value.kind is ErrorKind.UNEXPECTED
    assert exc_info.value.cause_kind is ErrorKind.UNEXPECTED
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_login_against_private_memory_database(private_memory_store, codec, settings) -> None:
    # Table loads and the audit insert run on worker threads.
    response = _authenticate(LoginService(private_memory_store, codec, settings), "alice@acme.com", "correct-horse-battery")

    claims = SessionTokenIssuer(settings).decode(response.token)
    assert claims is not None
    assert private_memory_store.get_user_audit(claims["sid"]) is not None
