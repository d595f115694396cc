"""FastAPI dependencies for authentication."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from calavail.database.database import get_db
from calavail.database.identity_repository import IdentityAdapter
from calavail.auth.jwt import get_user_id_from_token
from calavail.models.user import User

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get the authenticated user from a bearer token.

    The token is either a JWT access token (subject = user id) or a database
    session token issued through the identity adapter.

    Raises:
        HTTPException: If the token is invalid/expired or the user no longer exists
    """
    if not credentials:
        raise _unauthorized("Not authenticated")

    token = credentials.credentials
    identity = IdentityAdapter(db)

    # 1) JWT access token
    user_id = get_user_id_from_token(token)
    if user_id:
        user = identity.get_user(user_id)
        if not user:
            raise _unauthorized("User not found")
        return user

    # 2) Database session token
    session_and_user = identity.get_session_and_user(token)
    if not session_and_user:
        raise _unauthorized("Invalid or expired token")
    if session_and_user["session"].is_expired:
        raise _unauthorized("Session expired")
    return session_and_user["user"]
