import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models, database
from .config import settings

logger = logging.getLogger(__name__)

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows, for accounts that only sign in through SSO."""
    return get_password_hash(secrets.token_urlsafe(32))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value if isinstance(user.role, models.UserRole) else user.role,
        "exp": expire,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])


def _extract_bearer(header_value: str) -> Optional[str]:
    parts = header_value.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


def _load_user(token: str, db: Session) -> models.User:
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")
    return user


def get_current_user(token: str = Depends(api_key_header), db: Session = Depends(database.get_db)) -> models.User:
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")
    actual_token = _extract_bearer(token)
    if not actual_token:
        raise HTTPException(status_code=401, detail="Access token required")
    return _load_user(actual_token, db)


def get_optional_user(token: str = Depends(api_key_header), db: Session = Depends(database.get_db)) -> Optional[models.User]:
    """Resolve the caller when a valid token is sent; anonymous otherwise."""
    if not token:
        return None
    actual_token = _extract_bearer(token)
    if not actual_token:
        return None
    try:
        return _load_user(actual_token, db)
    except HTTPException:
        return None


def require_role(*roles: models.UserRole):
    allowed = set(roles)

    def role_checker(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current_user

    return role_checker


EDITOR_ROLES = (models.UserRole.admin, models.UserRole.editor)
AUTHOR_ROLES = EDITOR_ROLES + (models.UserRole.author,)

require_admin = require_role(models.UserRole.admin)
require_editor = require_role(*EDITOR_ROLES)
require_author = require_role(*AUTHOR_ROLES)


def is_editor(user: Optional[models.User]) -> bool:
    return user is not None and user.role in EDITOR_ROLES


def is_author(user: Optional[models.User]) -> bool:
    return user is not None and user.role in AUTHOR_ROLES
