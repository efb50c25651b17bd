"""
API Dependencies

Shared dependencies for FastAPI endpoints
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from wardbucket.core.monitoring import set_user_context
from wardbucket.core.security import Principal, principal_from_claims, verify_token

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    Dependency to get the authenticated caller from the bearer token.

    Usage:
        @router.get("/endpoint")
        async def endpoint(principal: Principal = Depends(get_current_principal)):
            ...
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = verify_token(credentials.credentials, token_type="access")

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    principal = principal_from_claims(payload)

    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"}
        )

    set_user_context(str(principal.user_id), principal.role.value)
    return principal


async def require_root(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Dependency to require ROOT privileges.
    Geo hierarchy administration is limited to ROOT principals.
    """
    if not principal.is_root:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized"
        )
    return principal
