"""
Admin console session authority.

Operators sign in with a Google ID token. The token is verified by Google's
tokeninfo endpoint (bounded by ``identity_provider_timeout_seconds``), the
issuer is re-checked here, and the email must be on the ``ADMIN_EMAILS``
allowlist. The resulting session is a separate signed token of type
``admin_session`` carried only in an httponly cookie.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from lemonade.core.config import Settings
from lemonade.core.context import AdminContext
from lemonade.core.exceptions import Forbidden, IdentityProviderError, InvalidCredential
from lemonade.core.security import decode_token, issue_token
from lemonade.schemas.auth import ADMIN_SESSION, AdminClaims

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class ExternalIdentity:
    subject_id: str
    email: str
    name: str
    issuer: str


class GoogleIdentityVerifier:
    """Verifies Google ID tokens through the tokeninfo endpoint."""

    def __init__(
        self,
        tokeninfo_url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tokeninfo_url = tokeninfo_url
        self.timeout = timeout
        self.transport = transport

    async def verify(self, id_token: str, expected_audience: str) -> ExternalIdentity:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.tokeninfo_url, params={"id_token": id_token})
        except httpx.TimeoutException as exc:
            logger.error(f"Google tokeninfo timed out after {self.timeout}s")
            raise IdentityProviderError() from exc
        except httpx.HTTPError as exc:
            logger.error(f"Google tokeninfo request failed: {exc}")
            raise IdentityProviderError() from exc

        if response.status_code != 200:
            raise InvalidCredential(
                InvalidCredential.BAD_SIGNATURE,
                f"tokeninfo rejected the ID token ({response.status_code})",
            )

        try:
            payload: Dict[str, Any] = response.json()
        except ValueError as exc:
            logger.error(f"Google tokeninfo returned a non-JSON body ({response.status_code})")
            raise IdentityProviderError() from exc
        if not isinstance(payload, dict):
            logger.error("Google tokeninfo returned an unexpected JSON shape")
            raise IdentityProviderError()

        if payload.get("aud") != expected_audience:
            raise InvalidCredential(InvalidCredential.MALFORMED, "ID token audience mismatch")

        return ExternalIdentity(
            subject_id=str(payload.get("sub", "")),
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            issuer=payload.get("iss", ""),
        )


class AdminSessionAuthority:
    def __init__(self, settings: Settings, verifier: Optional[GoogleIdentityVerifier] = None) -> None:
        self.settings = settings
        self.verifier = verifier or GoogleIdentityVerifier(
            settings.google_tokeninfo_url,
            settings.identity_provider_timeout_seconds,
        )
        self._allowlist = frozenset(email.lower() for email in settings.admin_emails)

    async def verify_external_identity(self, id_token: str) -> AdminContext:
        if not self.settings.google_client_id:
            raise Forbidden("Admin sign-in is not configured")

        identity = await self.verifier.verify(id_token, self.settings.google_client_id)
        if identity.issuer not in GOOGLE_ISSUERS:
            raise InvalidCredential(InvalidCredential.BAD_ISSUER, f"unexpected issuer {identity.issuer!r}")
        if not identity.email:
            raise InvalidCredential(InvalidCredential.MALFORMED, "email not found in ID token")

        return AdminContext(email=identity.email, name=identity.name)

    def is_allowlisted(self, email: str) -> bool:
        if not self._allowlist:
            return False
        return email.lower() in self._allowlist

    def issue_admin_session(self, email: str, name: str = "") -> str:
        return issue_token(
            {"email": email, "name": name, "type": ADMIN_SESSION},
            self.settings.jwt_secret_key,
            self.settings.admin_session_ttl,
            self.settings.jwt_algorithm,
        )

    def validate_admin_session(self, token: str) -> AdminClaims:
        raw = decode_token(token, self.settings.jwt_secret_key, self.settings.jwt_algorithm)
        if raw.get("type") != ADMIN_SESSION:
            raise InvalidCredential(
                InvalidCredential.WRONG_KIND,
                f"expected admin session, got {raw.get('type')!r}",
            )
        try:
            return AdminClaims.model_validate(raw)
        except ValidationError as exc:
            raise InvalidCredential(InvalidCredential.MALFORMED, "admin claims do not match schema") from exc

    def cookie_params(self) -> Dict[str, Any]:
        # Plain-HTTP cookies are only allowed outside production
        return {
            "key": self.settings.admin_cookie_name,
            "httponly": True,
            "secure": self.settings.is_production,
            "samesite": "lax",
            "max_age": int(self.settings.admin_session_ttl.total_seconds()),
            "path": "/",
        }
