"""Post publication state transitions and version snapshots.

Helpers mutate ORM objects in the caller's session and leave the commit
to the caller, except `publish_due_posts`, which commits its own batch.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from slugify import slugify
from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

PostStatus = models.PostStatus


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def generate_unique_slug(db: Session, title: str, post_id: int = None) -> str:
    """Generate a URL-friendly, unique slug for the given title.
    If a slug collision occurs, append a counter until the slug is unique.
    If `post_id` is provided, ignore the current post when checking collisions.
    """
    base = slugify(title) or "post"
    slug = base
    counter = 1
    while True:
        query = db.query(models.Post).filter(models.Post.slug == slug)
        if post_id:
            query = query.filter(models.Post.id != post_id)
        exists = query.first()
        if not exists:
            break
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def next_version_number(db: Session, post_id: int) -> int:
    current = db.query(func.max(models.PostVersion.version_number)).filter(
        models.PostVersion.post_id == post_id
    ).scalar()
    return (current or 0) + 1


def record_version(db: Session, post: models.Post, user_id: Optional[int], title: str = None,
                   content: str = None, excerpt: str = None) -> models.PostVersion:
    """Append a snapshot; defaults to the post's current title/content/excerpt."""
    db.flush()
    version = models.PostVersion(
        post_id=post.id,
        version_number=next_version_number(db, post.id),
        title=title if title is not None else post.title,
        content=content if content is not None else post.content,
        excerpt=excerpt if excerpt is not None else post.excerpt,
        created_by=user_id,
    )
    db.add(version)
    db.flush()
    return version


def restore_version(db: Session, post: models.Post, version: models.PostVersion, user_id: int) -> models.PostVersion:
    post.title = version.title
    post.content = version.content
    post.excerpt = version.excerpt
    post.slug = generate_unique_slug(db, version.title, post_id=post.id)
    post.updated_at = models.utcnow()
    return record_version(db, post, user_id)


def publish(post: models.Post, now: datetime = None) -> None:
    if post.status == PostStatus.published:
        raise HTTPException(status_code=400, detail="Post is already published")
    post.status = PostStatus.published
    post.published_at = now or models.utcnow()
    post.scheduled_at = None


def unpublish(post: models.Post) -> None:
    if post.status == PostStatus.draft:
        raise HTTPException(status_code=400, detail="Post is already a draft")
    post.status = PostStatus.draft
    post.published_at = None
    post.scheduled_at = None


def archive(post: models.Post) -> None:
    if post.status == PostStatus.archived:
        raise HTTPException(status_code=400, detail="Post is already archived")
    post.status = PostStatus.archived
    post.scheduled_at = None


def schedule(post: models.Post, scheduled_at: datetime) -> None:
    scheduled_at = to_naive_utc(scheduled_at)
    if scheduled_at <= models.utcnow():
        raise HTTPException(status_code=400, detail="scheduled_at must be in the future")
    post.status = PostStatus.scheduled
    post.scheduled_at = scheduled_at
    post.published_at = None


def due_scheduled_posts(db: Session, now: datetime = None) -> List[models.Post]:
    now = now or models.utcnow()
    return db.query(models.Post).filter(
        models.Post.status == PostStatus.scheduled,
        models.Post.scheduled_at <= now,
    ).order_by(models.Post.scheduled_at).all()


def publish_due_posts(db: Session, now: datetime = None) -> List[models.Post]:
    """Publish every scheduled post whose time has passed and commit."""
    now = now or models.utcnow()
    posts = due_scheduled_posts(db, now)
    for post in posts:
        logger.info("Publishing scheduled post %s - %s", post.id, post.title)
        post.status = PostStatus.published
        # the moment it actually went live, not the requested time
        post.published_at = now
        post.scheduled_at = None
    if posts:
        db.commit()
    return posts
