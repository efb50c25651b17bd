"""
Security utilities for verifying access tokens

Tokens are issued by the authentication service; this module only checks
the signature and turns the claims into a principal.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID
from jose import JWTError, jwt

from wardbucket.core.config import settings


class Role(str, Enum):
    ROOT = "ROOT"
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass(frozen=True)
class Principal:
    """An already-authenticated caller."""
    user_id: UUID
    role: Role
    tenant_id: Optional[UUID] = None

    @property
    def is_root(self) -> bool:
        return self.role == Role.ROOT


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """Verify JWT token"""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        if payload.get("type") != token_type:
            return None

        return payload
    except JWTError:
        return None


def principal_from_claims(payload: dict) -> Optional[Principal]:
    """Build a principal from token claims, None if the claims are malformed."""
    try:
        user_id = UUID(payload["sub"])
        role = Role(payload.get("role", Role.USER.value))
        tenant_id = payload.get("tenant_id")
        return Principal(
            user_id=user_id,
            role=role,
            tenant_id=UUID(tenant_id) if tenant_id else None,
        )
    except (KeyError, ValueError, TypeError):
        return None
