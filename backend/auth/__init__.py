from .config import (
    JWT_SECRET_KEY,
    JWT_ALGORITHM,
    HR_ROLES,
    validate_auth_config,
)
from .jwt_handler import decode_token
from .dependencies import Actor, get_current_actor, require_hr

__all__ = [
    "JWT_SECRET_KEY",
    "JWT_ALGORITHM",
    "HR_ROLES",
    "validate_auth_config",
    "decode_token",
    "Actor",
    "get_current_actor",
    "require_hr",
]
