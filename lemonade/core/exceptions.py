"""
Domain errors raised by the auth, tenant and organization layers.

Services raise these; the HTTP layer turns each into a status code and a
single ``detail`` message (see ``lemonade.main``). Internal detail such as
the reason a token was rejected is kept on the exception for logging and is
never sent to the client.
"""

from typing import Optional


class LemonadeError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message


class Unauthorized(LemonadeError):
    """A required credential is absent."""

    status_code = 401
    default_message = "Authentication required"


class InvalidCredential(LemonadeError):
    """A credential is present but failed validation."""

    status_code = 401
    default_message = "Invalid or expired credentials"

    EXPIRED = "expired"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    BAD_ALGORITHM = "bad_algorithm"
    WRONG_KIND = "wrong_kind"
    TENANT_MISMATCH = "tenant_mismatch"
    BAD_ISSUER = "bad_issuer"
    BAD_PASSWORD = "bad_password"

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message)

    @property
    def public_message(self) -> str:
        # Never reveal which part of the credential was wrong
        return self.default_message


class Forbidden(LemonadeError):
    status_code = 403
    default_message = "Permission denied"


class NotFound(LemonadeError):
    status_code = 404
    default_message = "Not found"


class Conflict(LemonadeError):
    status_code = 409
    default_message = "Already exists"


class InvitationExpired(LemonadeError):
    status_code = 410
    default_message = "Invitation has expired"


class IdentityProviderError(LemonadeError):
    """The external identity provider could not be reached in time."""

    status_code = 502
    default_message = "Identity provider unavailable"
