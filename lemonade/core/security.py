"""
Password hashing and the signed token codec.

``issue_token`` / ``decode_token`` are the only places that touch PyJWT.
Every token carries ``iat`` and ``exp``; the signing algorithm is fixed by
configuration and checked on decode, so a token whose header names any
other algorithm (including ``none``) is rejected before its signature is
looked at.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from lemonade.core.exceptions import InvalidCredential

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

DEFAULT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(password, hashed_password)
    except ValueError:
        # Unrecognised or corrupt hash
        return False


def issue_token(
    claims: Dict[str, Any],
    secret: str,
    ttl: timedelta,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int((now + ttl).timestamp())
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = DEFAULT_ALGORITHM) -> Dict[str, Any]:
    """
    Verify ``token`` and return its raw claims.

    Raises:
        InvalidCredential: with reason ``bad_algorithm``, ``bad_signature``,
            ``expired`` or ``malformed``.
    """
    try:
        header = jwt.get_unverified_header(token)
    except jwt.DecodeError as exc:
        raise InvalidCredential(InvalidCredential.MALFORMED, str(exc)) from exc

    if header.get("alg") != algorithm:
        raise InvalidCredential(
            InvalidCredential.BAD_ALGORITHM,
            f"unexpected signing algorithm {header.get('alg')!r}",
        )

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidCredential(InvalidCredential.EXPIRED, "token has expired") from exc
    except jwt.InvalidSignatureError as exc:
        raise InvalidCredential(InvalidCredential.BAD_SIGNATURE, "signature verification failed") from exc
    except jwt.InvalidAlgorithmError as exc:
        raise InvalidCredential(InvalidCredential.BAD_ALGORITHM, str(exc)) from exc
    except jwt.PyJWTError as exc:
        raise InvalidCredential(InvalidCredential.MALFORMED, str(exc)) from exc
