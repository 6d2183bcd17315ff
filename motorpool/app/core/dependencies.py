"""
Authentication dependencies for FastAPI.

Every protected route resolves the caller once through get_current_user;
the resulting dict is what endpoints pass down as requester_id / actor_id /
driver_id.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from motorpool.app.core.jwt import decode_access_token
from motorpool.app.db.session import get_db
from motorpool.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.
    
    1. Validates JWT signature and expiry
    2. Verifies the user still exists and is active (real-time check)
    3. Refreshes role and driver_id from the users table, so a role change
       takes effect without waiting for the token to expire
    
    Returns:
        Caller context: sub, user_id, role, driver_id
        
    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    
    return {
        "sub": payload.get("sub", user.username),
        "user_id": user.id,
        "role": user.role.value,
        "driver_id": user.driver_id,
    }
