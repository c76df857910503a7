from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlmodel import Session

from fulfillment.config import settings
from fulfillment.database import get_session
from fulfillment.models.user import User

# tokens are issued by the storefront's auth service; this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    claims = dict(data)
    claims["exp"] = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def _token_user(token: Optional[str], session: Session):
    """(user, problem) where problem names why the token did not resolve."""
    payload = decode_access_token(token) if token else None
    if payload is None:
        return None, "Could not validate credentials"

    user_id = payload.get("user_id") or payload.get("sub")
    if user_id is None:
        return None, "Invalid token payload"

    user = session.get(User, int(user_id))
    if user is None:
        return None, "User not found"
    return user, None


def user_from_token(token: Optional[str], session: Session) -> Optional[User]:
    """Resolve a bearer token to an active user, or None."""
    user, _ = _token_user(token, session)
    if user is None or not user.can_login:
        return None
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session)
) -> User:
    user, problem = _token_user(token, session)
    if problem:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=problem,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.can_login:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    session: Session = Depends(get_session),
) -> Optional[User]:
    return user_from_token(token, session)
