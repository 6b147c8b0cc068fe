"""JWT bearer authentication.

Every order operation is scoped by the ``tenant_id`` claim of the caller's
token; a token without one is rejected outright.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from orderflow.config import settings
from orderflow.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

DEFAULT_ROLE = "STAFF"


@dataclass
class AuthenticatedUser:
    id: uuid.UUID
    email: str
    tenant_id: uuid.UUID
    role: str = DEFAULT_ROLE


def create_access_token(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    email: str,
    role: str = DEFAULT_ROLE,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a signed access token carrying the tenant claim."""
    now = datetime.now(UTC)
    claims = {
        "sub": str(user_id),
        "email": email,
        "tenant_id": str(tenant_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.jwt_expiry_minutes)),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _user_from_claims(claims: dict) -> AuthenticatedUser:
    try:
        return AuthenticatedUser(
            id=uuid.UUID(claims["sub"]),
            email=claims["email"],
            tenant_id=uuid.UUID(claims["tenant_id"]),
            role=claims.get("role", DEFAULT_ROLE),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc

    user = _user_from_claims(claims)
    request.state.user = user
    return user
