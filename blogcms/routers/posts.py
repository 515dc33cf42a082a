import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas, auth, database, lifecycle, cache
from ..pagination import PageParams, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])

PostStatus = models.PostStatus

SORT_COLUMNS = {
    "created_at": models.Post.created_at,
    "updated_at": models.Post.updated_at,
    "published_at": models.Post.published_at,
    "title": models.Post.title,
}


# --- HELPERS ---

def _post_query(db: Session):
    return db.query(models.Post).options(
        selectinload(models.Post.author),
        selectinload(models.Post.categories),
        selectinload(models.Post.tags),
    )


def _visible(query, user: Optional[models.User]):
    if auth.is_editor(user):
        return query
    if auth.is_author(user):
        return query.filter(or_(models.Post.status == PostStatus.published, models.Post.author_id == user.id))
    return query.filter(models.Post.status == PostStatus.published)


def _post_out(post: models.Post) -> schemas.PostResponse:
    return schemas.PostResponse.model_validate(post)


def _get_editable_post(db: Session, post_id: int, user: models.User) -> models.Post:
    post = db.get(models.Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    if post.author_id != user.id and not auth.is_editor(user):
        raise HTTPException(status_code=403, detail="Not authorized to modify this post")
    return post


def _resolve_terms(db: Session, model, ids: List[int], label: str):
    if not ids:
        return []
    unique_ids = set(ids)
    terms = db.query(model).filter(model.id.in_(unique_ids)).all()
    missing = unique_ids - {t.id for t in terms}
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown {label} id(s): {', '.join(str(i) for i in sorted(missing))}")
    return terms


def _finish(db: Session, post: models.Post, *stale_refs) -> schemas.PostResponse:
    db.commit()
    db.refresh(post)
    cache.clear_post_cache(post.id, post.slug, *stale_refs)
    return _post_out(post)


# ==========================================
# LISTING & READ
# ==========================================

@router.get("", response_model=schemas.PostList)
def list_posts(
    status: Optional[PostStatus] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    author_id: Optional[int] = None,
    sort_by: Literal["created_at", "updated_at", "published_at", "title"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    public = not auth.is_author(current_user)
    cache_key = None
    if public:
        cache_key = cache.published_list_key(
            status=status.value if status else None, search=search, category=category, tag=tag,
            author_id=author_id, sort_by=sort_by, sort_order=sort_order, page=page.page, limit=page.limit,
        )
        cached_data = cache.get_json(cache_key)
        if cached_data:
            return cached_data

    query = _visible(_post_query(db), current_user)
    if status:
        query = query.filter(models.Post.status == status)
    if author_id:
        query = query.filter(models.Post.author_id == author_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.Post.title.ilike(pattern),
            models.Post.content.ilike(pattern),
            models.Post.excerpt.ilike(pattern),
        ))
    if category:
        query = query.filter(models.Post.categories.any(models.Category.slug == category))
    if tag:
        query = query.filter(models.Post.tags.any(models.Tag.slug == tag))

    column = SORT_COLUMNS[sort_by]
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), models.Post.id.desc())
    posts, pagination = paginate(query, page)

    result = schemas.PostList(posts=[_post_out(p) for p in posts], pagination=pagination)
    if cache_key:
        cache.set_json(cache_key, result.model_dump(mode="json"))
    return result


@router.get("/drafts", response_model=schemas.DraftList)
def list_drafts(db: Session = Depends(database.get_db), current_user: models.User = Depends(auth.require_author)):
    drafts = _post_query(db).filter(
        models.Post.author_id == current_user.id,
        models.Post.status == PostStatus.draft,
    ).order_by(models.Post.updated_at.desc()).all()
    return {"drafts": [_post_out(p) for p in drafts]}


@router.post("/drafts", response_model=schemas.DraftSaveResponse)
def save_draft(
    draft_in: schemas.DraftSave,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    if draft_in.post_id is None:
        post = models.Post(
            title=draft_in.title,
            content=draft_in.content,
            excerpt=draft_in.excerpt,
            slug=lifecycle.generate_unique_slug(db, draft_in.title),
            author_id=current_user.id,
            status=PostStatus.draft,
        )
        db.add(post)
        lifecycle.record_version(db, post, current_user.id)
        db.commit()
        return {"message": "Draft created", "post_id": post.id}

    post = _get_editable_post(db, draft_in.post_id, current_user)
    if post.status != PostStatus.draft:
        raise HTTPException(status_code=400, detail="Only draft posts can be saved as drafts")
    if post.title != draft_in.title:
        post.slug = lifecycle.generate_unique_slug(db, draft_in.title, post_id=post.id)
    post.title = draft_in.title
    post.content = draft_in.content
    post.excerpt = draft_in.excerpt
    db.commit()
    return {"message": "Draft saved", "post_id": post.id}


@router.get("/scheduled/ready", response_model=schemas.ScheduledList)
def list_ready_scheduled(db: Session = Depends(database.get_db), current_user: models.User = Depends(auth.require_editor)):
    return {"scheduled_posts": [_post_out(p) for p in lifecycle.due_scheduled_posts(db)]}


@router.post("/scheduled/publish", response_model=schemas.PublishScheduledResponse)
def publish_ready_scheduled(db: Session = Depends(database.get_db), current_user: models.User = Depends(auth.require_editor)):
    published = lifecycle.publish_due_posts(db)
    for post in published:
        cache.clear_post_cache(post.id, post.slug)
    return {
        "message": f"Published {len(published)} scheduled post(s)",
        "published": [p.id for p in published],
    }


@router.get("/{post_ref}", response_model=schemas.PostEnvelope)
def get_post(
    post_ref: str,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    cache_key = cache.post_key(post_ref)
    cached_data = cache.get_json(cache_key)
    if cached_data:
        return {"post": cached_data}

    query = _visible(_post_query(db), current_user)
    post = None
    if post_ref.isdigit():
        post = query.filter(models.Post.id == int(post_ref)).first()
    # titles like "2024" produce all-digit slugs
    if post is None:
        post = query.filter(models.Post.slug == post_ref).first()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")

    result = _post_out(post)
    if post.status == PostStatus.published:
        cache.set_json(cache_key, result.model_dump(mode="json"))
    return {"post": result}


# ==========================================
# AUTHOR CRUD
# ==========================================

@router.post("", response_model=schemas.PostEnvelope, status_code=status.HTTP_201_CREATED)
def create_post(
    post_in: schemas.PostCreate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    # slug uniqueness handled inside helper
    post = models.Post(
        title=post_in.title,
        content=post_in.content,
        excerpt=post_in.excerpt,
        featured_image_url=post_in.featured_image_url,
        meta_title=post_in.meta_title,
        meta_description=post_in.meta_description,
        slug=lifecycle.generate_unique_slug(db, post_in.title),
        author_id=current_user.id,
        status=PostStatus.draft,
    )
    post.categories = _resolve_terms(db, models.Category, post_in.categories, "category")
    post.tags = _resolve_terms(db, models.Tag, post_in.tags, "tag")

    if post_in.status == PostStatus.published.value:
        lifecycle.publish(post)
    elif post_in.status == PostStatus.scheduled.value:
        if post_in.scheduled_at is None:
            raise HTTPException(status_code=400, detail="scheduled_at is required for scheduled posts")
        lifecycle.schedule(post, post_in.scheduled_at)

    db.add(post)
    lifecycle.record_version(db, post, current_user.id)
    logger.info("User %s created post %s (%s)", current_user.id, post.id, post.status.value)
    return {"post": _finish(db, post)}


@router.put("/{post_id}", response_model=schemas.PostEnvelope)
def update_post(
    post_id: int,
    post_in: schemas.PostUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    old_slug = post.slug
    changes = post_in.model_dump(exclude_unset=True, exclude={"categories", "tags"})
    for field in ("title", "content"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    snapshot_changed = any(
        field in changes and changes[field] != getattr(post, field)
        for field in ("title", "content", "excerpt")
    )
    if "title" in changes and changes["title"] != post.title:
        post.slug = lifecycle.generate_unique_slug(db, changes["title"], post_id=post.id)
    for field, value in changes.items():
        setattr(post, field, value)
    if post_in.categories is not None:
        post.categories = _resolve_terms(db, models.Category, post_in.categories, "category")
    if post_in.tags is not None:
        post.tags = _resolve_terms(db, models.Tag, post_in.tags, "tag")
    post.updated_at = models.utcnow()

    if snapshot_changed:
        lifecycle.record_version(db, post, current_user.id)
    return {"post": _finish(db, post, old_slug)}


@router.delete("/{post_id}", response_model=schemas.MessageResponse)
def delete_post(
    post_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    slug = post.slug
    db.delete(post)
    db.commit()
    cache.clear_post_cache(post_id, slug)
    return {"message": "Post deleted successfully"}


# ==========================================
# LIFECYCLE TRANSITIONS
# ==========================================

@router.api_route("/{post_id}/publish", methods=["POST", "PUT"], response_model=schemas.PostEnvelope)
def publish_post(
    post_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    lifecycle.publish(post)
    return {"post": _finish(db, post)}


@router.post("/{post_id}/unpublish", response_model=schemas.PostEnvelope)
def unpublish_post(
    post_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    lifecycle.unpublish(post)
    return {"post": _finish(db, post)}


@router.post("/{post_id}/archive", response_model=schemas.PostEnvelope)
def archive_post(
    post_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    lifecycle.archive(post)
    return {"post": _finish(db, post)}


@router.post("/{post_id}/schedule", response_model=schemas.PostEnvelope)
def schedule_post(
    post_id: int,
    sched: schemas.PostSchedule,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    lifecycle.schedule(post, sched.scheduled_at)
    return {"post": _finish(db, post)}


# ==========================================
# VERSIONING
# ==========================================

def _get_version(db: Session, post_id: int, version_number: int) -> models.PostVersion:
    version = db.query(models.PostVersion).filter(
        models.PostVersion.post_id == post_id,
        models.PostVersion.version_number == version_number,
    ).first()
    if not version:
        raise HTTPException(status_code=404, detail="Version not found")
    return version


@router.get("/{post_id}/versions", response_model=schemas.VersionList)
def list_versions(
    post_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    versions = db.query(models.PostVersion).filter(
        models.PostVersion.post_id == post.id
    ).order_by(models.PostVersion.version_number.desc()).all()
    return {"versions": versions}


@router.post("/{post_id}/versions", response_model=schemas.VersionEnvelope, status_code=status.HTTP_201_CREATED)
def create_version(
    post_id: int,
    version_in: schemas.VersionCreate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    version = lifecycle.record_version(
        db, post, current_user.id,
        title=version_in.title, content=version_in.content, excerpt=version_in.excerpt,
    )
    db.commit()
    db.refresh(version)
    return {"version": version}


@router.get("/{post_id}/versions/{version_number}", response_model=schemas.VersionEnvelope)
def get_version(
    post_id: int,
    version_number: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    return {"version": _get_version(db, post.id, version_number)}


@router.post("/{post_id}/versions/{version_number}/restore", response_model=schemas.PostEnvelope)
def restore_version(
    post_id: int,
    version_number: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    post = _get_editable_post(db, post_id, current_user)
    old_slug = post.slug
    version = _get_version(db, post.id, version_number)
    lifecycle.restore_version(db, post, version, current_user.id)
    logger.info("Post %s restored to version %s by user %s", post.id, version_number, current_user.id)
    return {"post": _finish(db, post, old_slug)}
