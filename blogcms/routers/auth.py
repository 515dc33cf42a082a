import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database, sso
from ..config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

RESET_MESSAGE = "If the email exists, a password reset link has been sent"


def _start_session(db: Session, user: models.User) -> str:
    token = auth.create_access_token(user)
    db.add(models.UserSession(
        user_id=user.id,
        token_hash=auth.hash_token(token),
        expires_at=models.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    ))
    db.commit()
    db.refresh(user)
    return token


@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_in: schemas.UserRegister, db: Session = Depends(database.get_db)):
    existing = db.query(models.User).filter(
        or_(models.User.email == user_in.email, models.User.username == user_in.username)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="User with this email or username already exists")

    user = models.User(
        email=user_in.email,
        username=user_in.username,
        password_hash=auth.get_password_hash(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        role=models.UserRole.reader,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.email)
    token = _start_session(db, user)
    return {"message": "User registered successfully", "user": user, "token": token}


@router.post("/login", response_model=schemas.AuthResponse)
def login(user_credentials: schemas.UserLogin, db: Session = Depends(database.get_db)):
    user = db.query(models.User).filter(models.User.email == user_credentials.email).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is inactive")
    if not auth.verify_password(user_credentials.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = _start_session(db, user)
    return {"message": "Login successful", "user": user, "token": token}


@router.post("/sso/login", response_model=schemas.SSOAuthResponse)
def sso_login(payload: schemas.SSOLogin, db: Session = Depends(database.get_db)):
    identity = sso.validate_identity_token(payload.id_token)
    user, created = sso.resolve_user(db, identity)
    token = _start_session(db, user)
    return {
        "message": "Login successful",
        "user": user,
        "token": token,
        "is_new_user": created,
    }


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(db: Session = Depends(database.get_db), current_user: models.User = Depends(auth.get_current_user)):
    db.query(models.UserSession).filter(models.UserSession.user_id == current_user.id).delete()
    db.commit()
    return {"message": "Logout successful"}


@router.post("/refresh", response_model=schemas.TokenResponse)
def refresh_token(current_user: models.User = Depends(auth.get_current_user)):
    return {"token": auth.create_access_token(current_user)}


@router.post("/forgot-password", response_model=schemas.MessageResponse)
def forgot_password(body: schemas.ForgotPassword, db: Session = Depends(database.get_db)):
    user = db.query(models.User).filter(models.User.email == body.email).first()
    # same answer either way so the endpoint does not reveal which emails exist
    if user and user.is_active:
        reset_token = secrets.token_urlsafe(32)
        db.add(models.PasswordResetToken(
            user_id=user.id,
            token_hash=auth.hash_token(reset_token),
            expires_at=models.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        ))
        db.commit()
        # TODO: deliver the reset link by email once an SMTP sender is configured
        logger.info("Password reset requested for user %s", user.id)
    return {"message": RESET_MESSAGE}


@router.post("/reset-password", response_model=schemas.MessageResponse)
def reset_password(body: schemas.ResetPassword, db: Session = Depends(database.get_db)):
    record = db.query(models.PasswordResetToken).filter(
        models.PasswordResetToken.token_hash == auth.hash_token(body.token)
    ).first()
    if not record or record.used_at is not None or record.expires_at < models.utcnow():
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user = db.get(models.User, record.user_id)
    user.password_hash = auth.get_password_hash(body.new_password)
    record.used_at = models.utcnow()
    db.query(models.UserSession).filter(models.UserSession.user_id == user.id).delete()
    db.commit()
    return {"message": "Password reset successful"}
