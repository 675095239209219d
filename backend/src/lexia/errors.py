"""Error taxonomy shared by the Lexia services.

Each error maps to one HTTP status in ``lexia.api``. Services raise these;
the database layer wraps driver failures in ``PersistenceError`` so storage
details never reach the client.
"""

from typing import Any


class LexiaError(Exception):
    """Base class for Lexia errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class AuthenticationError(LexiaError):
    """No authenticated user."""

    status_code = 401


class AuthorizationError(LexiaError):
    """The user may not act on the target case or resource."""

    status_code = 403


class NotFoundError(LexiaError):
    """Session or conversation does not exist."""

    status_code = 404


class InvalidTransitionError(LexiaError):
    """The session cannot move from its current step as requested."""

    status_code = 409


class ValidationError(LexiaError):
    """A message batch is malformed or violates the tool schema."""

    status_code = 422

    def __init__(self, reason: str, cause: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        details = self.cause
        if isinstance(details, BaseException):
            details = str(details)
        return {"error": self.reason, "details": details}


class PersistenceError(LexiaError):
    """The durable store failed."""

    status_code = 500
