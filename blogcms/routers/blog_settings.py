from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database

router = APIRouter(prefix="/api/blog-settings", tags=["blog-settings"])

SETTINGS_ID = 1
DEFAULT_TITLE = "My Blog"
DEFAULT_DESCRIPTION = "Welcome to my blog"


def _load_settings(db: Session) -> models.BlogSettings:
    blog_settings = db.get(models.BlogSettings, SETTINGS_ID)
    if blog_settings is None:
        blog_settings = models.BlogSettings(
            id=SETTINGS_ID,
            blog_title=DEFAULT_TITLE,
            blog_description=DEFAULT_DESCRIPTION,
        )
        db.add(blog_settings)
        db.commit()
        db.refresh(blog_settings)
    return blog_settings


@router.get("", response_model=schemas.BlogSettingsEnvelope)
def get_blog_settings(db: Session = Depends(database.get_db)):
    return {"settings": schemas.BlogSettingsResponse.model_validate(_load_settings(db))}


@router.put("", response_model=schemas.BlogSettingsEnvelope)
def update_blog_settings(
    settings_in: schemas.BlogSettingsUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_admin),
):
    blog_settings = _load_settings(db)
    blog_settings.blog_title = settings_in.blog_title
    blog_settings.blog_description = settings_in.blog_description or None
    blog_settings.updated_by = current_user.id
    db.commit()
    db.refresh(blog_settings)
    return {
        "settings": schemas.BlogSettingsResponse.model_validate(blog_settings),
        "message": "Blog settings updated successfully",
    }
