import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database
from ..pagination import PageParams, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["comments"])

CommentStatus = models.CommentStatus

MODERATION_STATUS = {
    "approve": CommentStatus.approved,
    "reject": CommentStatus.rejected,
    "spam": CommentStatus.spam,
}


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _decorate(db: Session, comments: List[models.Comment], user: Optional[models.User]) -> List[dict]:
    """Serialize comments with their like counts and whether `user` liked them."""
    ids = [c.id for c in comments]
    counts = {}
    liked = set()
    if ids:
        counts = dict(
            db.query(models.CommentLike.comment_id, func.count(models.CommentLike.id))
            .filter(models.CommentLike.comment_id.in_(ids))
            .group_by(models.CommentLike.comment_id)
            .all()
        )
        if user is not None:
            liked = {
                row[0] for row in db.query(models.CommentLike.comment_id).filter(
                    models.CommentLike.comment_id.in_(ids),
                    models.CommentLike.user_id == user.id,
                ).all()
            }
    result = []
    for comment in comments:
        data = schemas.CommentResponse.model_validate(comment).model_dump()
        data["like_count"] = counts.get(comment.id, 0)
        data["is_liked"] = comment.id in liked
        result.append(data)
    return result


def _get_comment(db: Session, comment_id: int) -> models.Comment:
    comment = db.get(models.Comment, comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


def _can_manage(comment: models.Comment, user: models.User) -> bool:
    return comment.author_id == user.id or auth.is_editor(user)


def _on_visible_posts(query, user: Optional[models.User]):
    """Hide comments on drafts, scheduled and archived posts from everyone but their author and editors."""
    if auth.is_editor(user):
        return query
    query = query.join(models.Post, models.Comment.post_id == models.Post.id)
    if user is not None:
        return query.filter(or_(models.Post.status == models.PostStatus.published, models.Post.author_id == user.id))
    return query.filter(models.Post.status == models.PostStatus.published)


@router.get("", response_model=schemas.CommentList)
def list_comments(
    post_id: Optional[int] = None,
    parent_id: Optional[str] = None,
    status: CommentStatus = CommentStatus.approved,
    author_id: Optional[int] = None,
    sort_by: Literal["created_at", "updated_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    if status != CommentStatus.approved and not auth.is_editor(current_user):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    query = _on_visible_posts(db.query(models.Comment), current_user).filter(models.Comment.status == status)
    if post_id is not None:
        query = query.filter(models.Comment.post_id == post_id)
    if parent_id is not None:
        if parent_id.lower() == "null":
            query = query.filter(models.Comment.parent_id.is_(None))
        elif parent_id.isdigit():
            query = query.filter(models.Comment.parent_id == int(parent_id))
        else:
            raise HTTPException(status_code=400, detail="parent_id must be an integer or 'null'")
    if author_id is not None:
        query = query.filter(models.Comment.author_id == author_id)

    column = models.Comment.created_at if sort_by == "created_at" else models.Comment.updated_at
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), models.Comment.id)
    comments, pagination = paginate(query, page)
    return {"comments": _decorate(db, comments, current_user), "pagination": pagination}


@router.get("/{comment_id}", response_model=schemas.CommentEnvelope)
def get_comment(
    comment_id: int,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    comment = _on_visible_posts(db.query(models.Comment), current_user).filter(
        models.Comment.id == comment_id
    ).first()
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    if comment.status != CommentStatus.approved and not (current_user and _can_manage(comment, current_user)):
        raise HTTPException(status_code=404, detail="Comment not found")
    return {"comment": _decorate(db, [comment], current_user)[0]}


@router.get("/{comment_id}/likes", response_model=schemas.LikeCountResponse)
def get_comment_likes(comment_id: int, db: Session = Depends(database.get_db)):
    comment = _get_comment(db, comment_id)
    count = db.query(func.count(models.CommentLike.id)).filter(models.CommentLike.comment_id == comment.id).scalar()
    return {"like_count": count}


@router.post("/{comment_id}/like", response_model=schemas.LikeToggleResponse)
def like_comment(
    comment_id: int,
    request: Request,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    comment = _get_comment(db, comment_id)
    ip_address = _client_ip(request)

    query = db.query(models.CommentLike).filter(models.CommentLike.comment_id == comment.id)
    if current_user is not None:
        query = query.filter(models.CommentLike.user_id == current_user.id)
    else:
        query = query.filter(models.CommentLike.user_id.is_(None), models.CommentLike.ip_address == ip_address)
    existing = query.first()

    if existing:
        db.delete(existing)
        db.commit()
        return {"message": "Comment unliked", "liked": False}

    db.add(models.CommentLike(
        comment_id=comment.id,
        user_id=current_user.id if current_user else None,
        ip_address=ip_address,
    ))
    db.commit()
    return {"message": "Comment liked", "liked": True}


@router.post("", response_model=schemas.CommentEnvelope, status_code=status.HTTP_201_CREATED)
def create_comment(
    comment_in: schemas.CommentCreate,
    request: Request,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    post = db.get(models.Post, comment_in.post_id)
    if not post or (
        post.status != models.PostStatus.published
        and post.author_id != current_user.id
        and not auth.is_editor(current_user)
    ):
        raise HTTPException(status_code=404, detail="Post not found")

    if comment_in.parent_id is not None:
        parent = db.get(models.Comment, comment_in.parent_id)
        if not parent:
            raise HTTPException(status_code=404, detail="Parent comment not found")
        if parent.post_id != post.id:
            raise HTTPException(status_code=400, detail="Parent comment belongs to a different post")

    comment = models.Comment(
        post_id=post.id,
        author_id=current_user.id,
        author_name=comment_in.author_name or current_user.username,
        author_email=comment_in.author_email or current_user.email,
        author_website=comment_in.author_website,
        content=comment_in.content,
        parent_id=comment_in.parent_id,
        status=CommentStatus.approved if auth.is_editor(current_user) else CommentStatus.pending,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        is_anonymous=False,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return {"comment": _decorate(db, [comment], current_user)[0]}


@router.put("/{comment_id}", response_model=schemas.CommentEnvelope)
def update_comment(
    comment_id: int,
    comment_in: schemas.CommentUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    comment = _get_comment(db, comment_id)
    if not _can_manage(comment, current_user):
        raise HTTPException(status_code=403, detail="Not authorized to update this comment")
    comment.content = comment_in.content
    comment.updated_at = models.utcnow()
    db.commit()
    db.refresh(comment)
    return {"comment": _decorate(db, [comment], current_user)[0]}


@router.delete("/{comment_id}", response_model=schemas.MessageResponse)
def delete_comment(
    comment_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    comment = _get_comment(db, comment_id)
    if not _can_manage(comment, current_user):
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")
    db.delete(comment)
    db.commit()
    return {"message": "Comment deleted successfully"}


@router.post("/{comment_id}/moderate", response_model=schemas.MessageResponse)
def moderate_comment(
    comment_id: int,
    body: schemas.CommentModerate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    comment = _get_comment(db, comment_id)

    if body.action == "delete":
        db.delete(comment)
        db.commit()
        logger.info("Comment %s deleted by moderator %s", comment_id, current_user.id)
        return {"message": "Comment deleted successfully"}

    comment.status = MODERATION_STATUS[body.action]
    comment.updated_at = models.utcnow()
    db.add(models.CommentModeration(
        comment_id=comment.id,
        moderator_id=current_user.id,
        action=body.action,
        reason=body.reason,
    ))
    db.commit()
    return {"message": "Comment moderated successfully"}


@router.get("/{comment_id}/moderation", response_model=schemas.ModerationList)
def get_comment_moderation(
    comment_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    comment = _get_comment(db, comment_id)
    entries = db.query(models.CommentModeration).filter(
        models.CommentModeration.comment_id == comment.id
    ).order_by(models.CommentModeration.created_at.desc(), models.CommentModeration.id.desc()).all()
    return {
        "moderation": [
            {
                "id": e.id,
                "comment_id": e.comment_id,
                "moderator_id": e.moderator_id,
                "moderator_name": e.moderator.username if e.moderator else None,
                "action": e.action,
                "reason": e.reason,
                "created_at": e.created_at,
            }
            for e in entries
        ]
    }
