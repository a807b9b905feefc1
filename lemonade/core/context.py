"""
Request-scoped identity handed to route handlers.

Built by the dependencies in ``lemonade.api.deps`` and passed explicitly as
handler parameters; nothing here is stored in globals or thread-locals.
"""

from dataclasses import dataclass
from typing import Optional

from lemonade.models.tenant import App
from lemonade.models.user import User
from lemonade.schemas.auth import TokenClaims


@dataclass(frozen=True)
class AuthenticatedContext:
    tenant: App
    user: Optional[User] = None
    claims: Optional[TokenClaims] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


@dataclass(frozen=True)
class AdminContext:
    email: str
    name: str = ""
