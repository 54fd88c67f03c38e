from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..core.config import admin_emails, settings
from ..database import get_db
from ..models import UserProfile, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Verify a token issued by the auth provider and return its claims."""
    return jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        audience=settings.AUTH_JWT_AUDIENCE or None,
        options={"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)},
    )


def user_from_token(db: Session, token: Optional[str]) -> Optional[UserProfile]:
    if not token:
        return None
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return db.get(UserProfile, str(subject))


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    request: Request = None,
) -> UserProfile:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = credentials.credentials if credentials else None
    if not token and request is not None:
        token = request.cookies.get("access_token")
    user = user_from_token(db, token)
    if user is None:
        raise credentials_exception
    if user.is_suspended:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")
    return user


def get_current_client(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if current_user.role != UserRole.CLIENT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not a client.")
    return current_user


def get_current_musician(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if current_user.role != UserRole.MUSICIAN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not a musician.")
    return current_user


def _is_admin(user: UserProfile) -> bool:
    return bool(user.is_admin) or (user.email or "").lower() in admin_emails()


def get_current_admin(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not _is_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def get_current_staff(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    """Admins and support agents; support may triage reports but not sanction."""
    if not (_is_admin(current_user) or current_user.is_support):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
