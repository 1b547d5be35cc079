from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from itsdangerous import BadData
from sqlmodel import Session
from werkzeug.security import check_password_hash, generate_password_hash

from .config import TOKEN_MAX_AGE_HOURS
from .db import get_session
from .models import User, UserRole
from .utils import make_token, read_token


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def check_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def issue_token(user: User) -> str:
    return make_token({"user_id": user.id, "email": user.email, "role": user.role})


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_from_header(authorization: Optional[str], session: Session) -> User:
    if not authorization:
        raise _unauthorized("Authorization header required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise _unauthorized("Invalid authorization format")
    try:
        claims = read_token(parts[1], max_age=TOKEN_MAX_AGE_HOURS * 3600)
    except BadData:
        raise _unauthorized("Invalid or expired token")
    user = session.get(User, claims.get("user_id"))
    if not user:
        raise _unauthorized("Invalid or expired token")
    return user


def resolve_current_user(
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    return _user_from_header(authorization, session)


def require_role(*roles: str):
    def dependency(user: User = Depends(resolve_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
    return dependency


require_investor = require_role(UserRole.INVESTOR)
require_developer = require_role(UserRole.DEVELOPER)
require_admin = require_role(UserRole.ADMIN)
