"""Exchange of externally issued SSO identity tokens for local accounts."""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import HTTPException
from jose import jwt, JWTError
from slugify import slugify
from sqlalchemy.orm import Session

from . import models, auth
from .config import settings

logger = logging.getLogger(__name__)


@dataclass
class IdentityClaims:
    subject: Optional[str]
    email: str
    given_name: str = ""
    family_name: str = ""

    @property
    def first_name(self) -> str:
        return self.given_name or self.email.split("@")[0]


def _decode(id_token: str) -> dict:
    if settings.SSO_VERIFY_SIGNATURE and settings.SSO_SIGNING_KEY:
        return jwt.decode(
            id_token,
            settings.SSO_SIGNING_KEY,
            algorithms=settings.SSO_ALGORITHMS,
            options={"verify_aud": False, "verify_exp": False},
        )
    return jwt.get_unverified_claims(id_token)


def _text_claim(claims: dict, name: str) -> str:
    value = claims.get(name)
    return value if isinstance(value, str) else ""


def validate_identity_token(id_token: str) -> IdentityClaims:
    try:
        claims = _decode(id_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token format")
    if not isinstance(claims, dict):
        raise HTTPException(status_code=401, detail="Invalid token format")

    # providers put the address in either claim depending on configuration
    email = claims.get("email") or claims.get("username")
    if not email:
        raise HTTPException(status_code=401, detail="Token missing email/username claim")
    if not isinstance(email, str):
        raise HTTPException(status_code=401, detail="Invalid token format")

    audience = claims.get("aud")
    if audience and settings.SSO_CLIENT_ID:
        audiences = audience if isinstance(audience, list) else [audience]
        if settings.SSO_CLIENT_ID not in audiences:
            logger.warning("SSO token audience mismatch: expected %s, got %s", settings.SSO_CLIENT_ID, audience)

    issuer = claims.get("iss")
    if issuer is not None and not isinstance(issuer, str):
        raise HTTPException(status_code=401, detail="Invalid token format")
    if issuer and settings.SSO_ISSUER not in issuer:
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    expires = claims.get("exp")
    if expires is not None:
        try:
            expires = float(expires)
        except (TypeError, ValueError):
            raise HTTPException(status_code=401, detail="Invalid token format")
        if expires < time.time():
            raise HTTPException(status_code=401, detail="Token has expired")

    subject = claims.get("sub")
    return IdentityClaims(
        subject=str(subject) if subject is not None else None,
        email=email.lower(),
        given_name=_text_claim(claims, "given_name"),
        family_name=_text_claim(claims, "family_name"),
    )


def _available_username(db: Session, email: str) -> str:
    base = slugify(email.split("@")[0], separator="_") or "user"
    username = base
    counter = 1
    while db.query(models.User).filter(models.User.username == username).first():
        username = f"{base}{counter}"
        counter += 1
    return username


def resolve_user(db: Session, identity: IdentityClaims) -> Tuple[models.User, bool]:
    """Find the local account for an identity, provisioning one on first sign-in.

    Returns the user and whether it was created. Roles are never taken from
    the identity provider; new accounts start as readers.
    """
    user = None
    if identity.subject:
        user = db.query(models.User).filter(models.User.sso_subject == identity.subject).first()
    if user is None:
        user = db.query(models.User).filter(models.User.email == identity.email).first()

    if user is not None:
        if not user.is_active:
            raise HTTPException(status_code=401, detail="Account is inactive")
        if identity.subject and user.sso_subject != identity.subject:
            user.sso_subject = identity.subject
            db.commit()
            db.refresh(user)
        return user, False

    user = models.User(
        email=identity.email,
        username=_available_username(db, identity.email),
        password_hash=auth.unusable_password_hash(),
        first_name=identity.first_name,
        last_name=identity.family_name,
        role=models.UserRole.reader,
        sso_subject=identity.subject,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Provisioned user %s from SSO sign-in", user.email)
    return user, True
