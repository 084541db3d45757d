"""Bearer token handling.

Credentials are issued elsewhere; this module only decodes an already-issued
JWT into a ``Principal`` with a ``role``. ``create_access_token`` exists for
operators and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from violet_fhir.config import Settings
from violet_fhir.core.exceptions import UnauthorizedError


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: str
    role: str
    email: Optional[str] = None


def create_access_token(
    settings: Settings,
    user_id: str,
    role: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a bearer token for ``user_id`` with ``role``."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: Dict[str, Any] = {"sub": user_id, "role": role, "exp": expire}
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> Principal:
    """Verify ``token`` and return its principal.

    Raises:
        UnauthorizedError: If the token is expired, malformed or incomplete
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except ExpiredSignatureError as e:
        raise UnauthorizedError("Authentication token has expired") from e
    except JWTError as e:
        raise UnauthorizedError("Invalid authentication token") from e

    user_id = payload.get("sub") or payload.get("userId")
    role = payload.get("role")
    if not user_id or not role:
        raise UnauthorizedError("Invalid authentication token")
    return Principal(user_id=str(user_id), role=str(role), email=payload.get("email"))
