"""
Authentication dependencies for FastAPI.

Tokens are verified here; the user they name must still exist and be active.
The role used for authorization is the one stored on the user row, so a role
change takes effect on the next request even for tokens issued earlier.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from courier.app.core.jwt import decode_access_token
from courier.app.db.session import get_db, store_errors
from courier.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_record(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Resolve the bearer token to an active user row.

    Raises:
        HTTPException: 401 for a bad token or unknown user, 403 for an inactive account
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Could not validate credentials")

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise _unauthorized("Invalid token payload")

    async with store_errors("user authentication"):
        user = await db.get(User, user_id)

    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    return user


async def get_current_user(user: User = Depends(get_current_user_record)) -> dict:
    """
    Authenticated caller as a plain mapping.

    Returns:
        {"sub": username, "user_id": id, "role": stored role value}
    """
    return {"sub": user.username, "user_id": user.id, "role": user.role.value}
