"""Auth dependencies — JWT validation, RBAC enforcement."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import Actor
from leavetrack.common.constants import UserRole
from leavetrack.common.exceptions import ForbiddenException, UnauthenticatedException
from leavetrack.config import settings
from leavetrack.database import get_db
from leavetrack.users.models import User

# Role hierarchy: each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def create_access_token(
    user_id: uuid.UUID,
    *,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Sign an access token. Issuance normally happens in the identity provider."""
    exp = datetime.now(timezone.utc) + (expires_in or timedelta(hours=settings.JWT_EXPIRY_HOURS))
    payload = {"sub": str(user_id), "type": "access", "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthenticatedException("Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT and return the authenticated, active User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthenticatedException("Token has expired.")
    except JWTError:
        raise UnauthenticatedException("Invalid token.")

    if payload.get("type") != "access":
        raise UnauthenticatedException("Invalid token type.")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthenticatedException("Invalid token subject.")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_active.is_(True))
    )
    user = result.scalars().first()
    if user is None:
        raise UnauthenticatedException("User account is inactive or not found.")
    return user


async def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor.from_user(user)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. admin can access manager endpoints.
    """

    async def _check(user: User = Depends(get_current_user)) -> User:
        effective_roles = _ROLE_HIERARCHY.get(user.role, {user.role})
        if not effective_roles.intersection(allowed_roles):
            raise ForbiddenException(
                detail=f"Role '{user.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return user

    return _check
