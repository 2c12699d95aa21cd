from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import HR_ROLES
from .jwt_handler import decode_token

security = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """Authenticated caller, as asserted by the bearer token."""
    user_id: str
    role: str

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Actor:
    if credentials is None:
        raise _unauthorized("Missing authentication token")

    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token payload")

    return Actor(user_id=str(user_id), role=payload.get("role", "employee"))


async def require_hr(
    actor: Actor = Depends(get_current_actor),
) -> Actor:
    if not actor.is_hr:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="HR or admin access required",
        )
    return actor
