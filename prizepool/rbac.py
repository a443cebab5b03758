"""
prizepool/rbac.py
Bearer-token identity and role checks.

Identity is issued elsewhere; tokens carry the actor id in "sub" and
one role. The settlement core only records the actor id.
"""
import os
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from prizepool.errors import ErrorCode

logger = logging.getLogger(__name__)

# ================= CONFIG =================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    PLAYER = "PLAYER"
    ORGANIZER = "ORGANIZER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role


# ================= TOKEN UTILS =================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token with sub and role"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "type": "access"
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """
    Resolve the caller from the bearer token.
    Returns 401 if the token is missing, invalid or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "success": False,
                "error": "Unauthorized",
                "message": "Authentication required",
                "code": ErrorCode.AUTH_REQUIRED
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": "Invalid or expired token",
            "code": ErrorCode.AUTH_INVALID
        },
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise credentials_exception

    actor_id = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise credentials_exception
    if not actor_id:
        raise credentials_exception

    return Actor(id=str(actor_id), role=role)


def require_role(allowed_roles: List[Role]):
    """
    Dependency factory: require one of the given roles.
    Usage: actor: Actor = Depends(require_role([Role.ADMIN, Role.SUPERADMIN]))
    """
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            logger.warning(
                f"Access denied: {actor.id} with role {actor.role.value} "
                f"attempted to access resource requiring {[r.value for r in allowed_roles]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "success": False,
                    "error": "Forbidden",
                    "message": f"This action requires one of: {[r.value for r in allowed_roles]}",
                    "code": ErrorCode.PERMISSION_DENIED,
                    "details": {"current_role": actor.role.value}
                }
            )
        return actor
    return dependency


OPERATOR_ROLES = [Role.ORGANIZER, Role.ADMIN, Role.SUPERADMIN]
ADMIN_ROLES = [Role.ADMIN, Role.SUPERADMIN]
