import logging
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlmodel import Session, select

from ..auth import check_password, hash_password, issue_token, resolve_current_user
from ..config import RESET_TOKEN_TTL_HOURS
from ..db import get_session
from ..email import notify, send_password_reset_email, send_verification_email
from ..errors import APIError
from ..models import User
from ..schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
)
from ..utils import random_token, utcnow

logger = logging.getLogger(__name__)

RESET_MESSAGE = "If your email is registered, you will receive a password reset link"

router = APIRouter()

def _by_email(session: Session, email: str):
    return session.exec(select(User).where(User.email == email.strip().lower())).first()

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
):
    email = payload.email.strip().lower()
    if _by_email(session, email):
        raise APIError(status.HTTP_409_CONFLICT, "EMAIL_TAKEN", "email already registered")
    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        phone=payload.phone,
        company_name=payload.company_name,
        verify_token=random_token(),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("registered %s user %s", user.role, user.id)
    background.add_task(notify, send_verification_email, user)
    return {
        "message": "Registration successful. Please check your email to verify your account.",
        "user": user.to_response(),
        "token": issue_token(user),
    }

@router.post("/login")
def login(payload: LoginRequest, session: Session = Depends(get_session)):
    user = _by_email(session, payload.email)
    if not user or not check_password(payload.password, user.password_hash):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid email or password")
    return {"user": user.to_response(), "token": issue_token(user)}

@router.post("/verify-email")
def verify_email(token: str = "", session: Session = Depends(get_session)):
    if not token:
        raise HTTPException(400, "Verification token required")
    user = session.exec(select(User).where(User.verify_token == token)).first()
    if not user:
        raise APIError(400, "INVALID_TOKEN", "invalid verification token")
    user.email_verified = True
    user.verify_token = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    return {"message": "Email verified successfully"}

@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
):
    user = _by_email(session, payload.email)
    if user:
        token = random_token()
        user.reset_token = token
        user.reset_expires = utcnow() + timedelta(hours=RESET_TOKEN_TTL_HOURS)
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
        background.add_task(notify, send_password_reset_email, user, token)
    return {"message": RESET_MESSAGE}

@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.reset_token == payload.token)).first()
    if not user:
        raise APIError(400, "INVALID_TOKEN", "invalid reset token")
    if not user.reset_expires or utcnow() > user.reset_expires:
        raise APIError(400, "TOKEN_EXPIRED", "reset token has expired")
    user.password_hash = hash_password(payload.new_password)
    user.reset_token = None
    user.reset_expires = None
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    return {"message": "Password reset successfully"}

@router.get("/me")
def me(user: User = Depends(resolve_current_user)):
    return {"user": user.to_response()}

@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(resolve_current_user),
    session: Session = Depends(get_session),
):
    for field, value in payload.model_dump(exclude_none=True).items():
        if field in ("first_name", "last_name") and not value.strip():
            continue
        setattr(user, field, value)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    return {"message": "Profile updated successfully", "user": user.to_response()}

@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(resolve_current_user),
    session: Session = Depends(get_session),
):
    if not check_password(payload.current_password, user.password_hash):
        raise APIError(400, "INVALID_PASSWORD", "Current password is incorrect")
    user.password_hash = hash_password(payload.new_password)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    return {"message": "Password changed successfully"}
