"""Error taxonomy shared by the session/authorization services.

Services raise these; API endpoints translate them to HTTP responses.
Login outcomes are not exceptions: ``login`` returns a ``LoginRejection``.
"""

from __future__ import annotations

import enum


class LoginRejection(str, enum.Enum):
    BAD_CREDENTIALS = "BAD_CREDENTIALS"
    BLOCKED = "BLOCKED"
    MAINTENANCE = "MAINTENANCE"
    RATE_LIMITED = "RATE_LIMITED"


class SessionInvalid(Exception):
    """The token failed re-validation; the caller must treat the user as logged out."""


class AuthorizationFailure(Exception):
    """Valid session, insufficient role."""


class AccountNotFound(ValueError):
    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class ValidationError(ValueError):
    """Malformed or rejected input.

    ``code`` is a stable identifier (``TOO_SHORT``, ``WRONG_CURRENT``,
    ``SELF_DEMOTION``, ...) the API layer can expose alongside the message.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
