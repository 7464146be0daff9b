"""
core/errors.py -- Error kinds for the login and authorization flow.

One exception type, AccessError, carries an explicit ErrorKind tag instead of
a family of exception subclasses. Services raise it with the kind that
describes the failure; the API layer matches on the kind exactly once
(api/main.py) to choose a status code.

Kinds:
  AUTHENTICATION -- bad username or password. Generic message, never says
                    which field was wrong.
  AUTHORIZATION  -- identity has no resolvable role-tenant association, or
                    lacks a required permission grant.
  CONFIGURATION  -- signing material missing. Fatal for the request.
  PERSISTENCE    -- audit snapshot could not be written. Logged and
                    swallowed by the audit recorder; never reaches a caller.
  UNEXPECTED     -- anything else, wrapped by the login composition.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CONFIGURATION = "configuration"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."
INVALID_ROLE_MESSAGE = "User role information is invalid"
LOGIN_FAILED_MESSAGE = "An error occurred during user authentication"


class AccessError(Exception):
    """A failure in the access flow, tagged with its ErrorKind.

    cause_kind records the kind of the underlying failure when an error is
    wrapped into UNEXPECTED, so logs keep the original classification.
    """

    def __init__(self, kind: ErrorKind, message: str, cause_kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause_kind = cause_kind

    def __repr__(self) -> str:
        return f"AccessError(kind={self.kind.value!r}, message={self.message!r})"


def authentication_failure() -> AccessError:
    return AccessError(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS_MESSAGE)


def authorization_failure(message: str = INVALID_ROLE_MESSAGE) -> AccessError:
    return AccessError(ErrorKind.AUTHORIZATION, message)


def configuration_error(message: str) -> AccessError:
    return AccessError(ErrorKind.CONFIGURATION, message)
