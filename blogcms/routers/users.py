import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database, cache
from ..pagination import PageParams, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _profile_payload(user: models.User) -> dict:
    data = schemas.UserResponse.model_validate(user).model_dump()
    profile = user.profile
    data.update(
        website=profile.website if profile else None,
        social_links=profile.social_links if profile else None,
        preferences=profile.preferences if profile else None,
    )
    return data


@router.get("", response_model=schemas.UserList)
def list_users(
    role: Optional[models.UserRole] = None,
    search: Optional[str] = None,
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_admin),
):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.User.username.ilike(pattern),
            models.User.email.ilike(pattern),
            models.User.first_name.ilike(pattern),
            models.User.last_name.ilike(pattern),
        ))
    query = query.order_by(models.User.created_at.desc(), models.User.id.desc())
    users, pagination = paginate(query, page)
    return {"users": users, "pagination": pagination}


@router.get("/profile", response_model=schemas.ProfileEnvelope)
def get_profile(current_user: models.User = Depends(auth.get_current_user)):
    return {"user": _profile_payload(current_user)}


@router.put("/profile", response_model=schemas.ProfileEnvelope)
def update_profile(
    profile_in: schemas.ProfileUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    current_user.first_name = profile_in.first_name
    current_user.last_name = profile_in.last_name
    current_user.bio = profile_in.bio
    current_user.avatar_url = profile_in.avatar_url

    profile = current_user.profile
    if profile is None:
        profile = models.UserProfile(user_id=current_user.id)
        db.add(profile)
    profile.website = profile_in.website
    profile.social_links = profile_in.social_links
    profile.preferences = profile_in.preferences

    db.commit()
    db.refresh(current_user)
    return {"user": _profile_payload(current_user)}


@router.post("/change-password", response_model=schemas.MessageResponse)
def change_password(
    body: schemas.ChangePassword,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if not auth.verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    current_user.password_hash = auth.get_password_hash(body.new_password)
    db.commit()
    return {"message": "Password changed successfully"}


@router.get("/{user_id}", response_model=schemas.UserEnvelope)
def get_user(
    user_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user}


@router.put("/{user_id}", response_model=schemas.UserEnvelope)
def update_user(
    user_id: int,
    user_in: schemas.UserUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    # only admins hand out or take away the admin role
    if current_user.role != models.UserRole.admin and models.UserRole.admin in (user.role, user_in.role):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    if user.is_active != user_in.is_active:
        logger.info("User %s active status changed: %s -> %s", user.email, user.is_active, user_in.is_active)
    user.first_name = user_in.first_name
    user.last_name = user_in.last_name
    user.role = user_in.role
    user.is_active = user_in.is_active
    db.commit()
    db.refresh(user)
    return {"user": user}


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_admin),
):
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    # the author's posts go with the account
    stale_refs = [ref for post in user.posts for ref in (post.id, post.slug)]
    db.delete(user)
    db.commit()
    cache.clear_post_cache(*stale_refs)
    return {"message": "User deleted successfully"}
