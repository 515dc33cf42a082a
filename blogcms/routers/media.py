import logging
import os
import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database, images
from ..config import settings
from ..pagination import PageParams, paginate
from ..storage import FileTooLarge, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/media", tags=["media"])

FileType = models.FileType

SORT_COLUMNS = {
    "created_at": models.MediaFile.created_at,
    "updated_at": models.MediaFile.updated_at,
    "filename": models.MediaFile.original_filename,
    "file_size": models.MediaFile.file_size,
}


def file_type_for(mime_type: str) -> FileType:
    if mime_type.startswith("image/"):
        return FileType.image
    if mime_type.startswith("video/"):
        return FileType.video
    if mime_type.startswith("audio/"):
        return FileType.audio
    return FileType.document


def _media_out(media: models.MediaFile) -> schemas.MediaResponse:
    return schemas.MediaResponse.model_validate(media)


def _can_manage(media: models.MediaFile, user: Optional[models.User]) -> bool:
    return user is not None and (media.uploaded_by == user.id or auth.is_editor(user))


def _get_visible(db: Session, media_id: int, user: Optional[models.User]) -> models.MediaFile:
    media = db.get(models.MediaFile, media_id)
    if not media or (not media.is_public and not _can_manage(media, user)):
        raise HTTPException(status_code=404, detail="File not found")
    return media


def _get_managed(db: Session, media_id: int, user: models.User, action: str) -> models.MediaFile:
    media = db.get(models.MediaFile, media_id)
    if not media:
        raise HTTPException(status_code=404, detail="File not found")
    if not _can_manage(media, user):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this file")
    return media


@router.get("", response_model=schemas.MediaList)
def list_media(
    file_type: Optional[FileType] = None,
    uploaded_by: Optional[int] = None,
    search: Optional[str] = None,
    sort_by: Literal["created_at", "updated_at", "filename", "file_size"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    query = db.query(models.MediaFile)
    if not auth.is_editor(current_user):
        if current_user is not None:
            query = query.filter(or_(models.MediaFile.is_public.is_(True), models.MediaFile.uploaded_by == current_user.id))
        else:
            query = query.filter(models.MediaFile.is_public.is_(True))
    if file_type:
        query = query.filter(models.MediaFile.file_type == file_type)
    if uploaded_by is not None:
        query = query.filter(models.MediaFile.uploaded_by == uploaded_by)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.MediaFile.original_filename.ilike(pattern),
            models.MediaFile.alt_text.ilike(pattern),
            models.MediaFile.caption.ilike(pattern),
        ))

    column = SORT_COLUMNS[sort_by]
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), models.MediaFile.id)
    files, pagination = paginate(query, page)
    return {"files": [_media_out(m) for m in files], "pagination": pagination}


@router.get("/stats", response_model=schemas.MediaStatsEnvelope)
def media_stats(db: Session = Depends(database.get_db)):
    total_files, total_size = db.query(
        func.count(models.MediaFile.id), func.coalesce(func.sum(models.MediaFile.file_size), 0)
    ).one()
    by_type = dict(
        db.query(models.MediaFile.file_type, func.count(models.MediaFile.id))
        .group_by(models.MediaFile.file_type)
        .all()
    )
    return {
        "stats": {
            "total_files": total_files,
            "total_size": int(total_size),
            "image_count": by_type.get(FileType.image, 0),
            "video_count": by_type.get(FileType.video, 0),
            "audio_count": by_type.get(FileType.audio, 0),
            "document_count": by_type.get(FileType.document, 0),
        }
    }


@router.post("/upload", response_model=schemas.MediaUploadResponse, status_code=status.HTTP_201_CREATED)
def upload_media(
    files: List[UploadFile] = File(...),
    alt_text: Optional[str] = Form(default=None),
    caption: Optional[str] = Form(default=None),
    is_public: bool = Form(default=True),
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_author),
):
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(status_code=400, detail="Too many files")
    for upload in files:
        if upload.content_type not in settings.ALLOWED_MIME_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid file type: {upload.content_type}")

    saved_paths = []
    created = []
    try:
        for upload in files:
            filename = storage.unique_name(upload.filename)
            try:
                file_path, size = storage.save(upload.file, filename, max_size=settings.MAX_UPLOAD_SIZE)
            except FileTooLarge:
                raise HTTPException(status_code=400, detail="File too large")
            saved_paths.append(file_path)

            file_type = file_type_for(upload.content_type)
            width = height = None
            if file_type == FileType.image:
                width, height = images.read_dimensions(file_path)

            media = models.MediaFile(
                filename=filename,
                original_filename=upload.filename or filename,
                file_path=file_path,
                file_size=size,
                mime_type=upload.content_type,
                file_type=file_type,
                width=width,
                height=height,
                uploaded_by=current_user.id,
                alt_text=alt_text or None,
                caption=caption or None,
                is_public=is_public,
            )
            db.add(media)
            created.append(media)
        db.commit()
    except Exception:
        db.rollback()
        # nothing from a failed batch stays on disk
        for path in saved_paths:
            storage.delete(path)
        raise

    for media in created:
        db.refresh(media)
    logger.info("User %s uploaded %d file(s)", current_user.id, len(created))
    return {"files": [_media_out(m) for m in created]}


@router.get("/{media_id}", response_model=schemas.MediaEnvelope)
def get_media(
    media_id: int,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    return {"file": _media_out(_get_visible(db, media_id, current_user))}


@router.get("/{media_id}/serve")
def serve_media(
    media_id: int,
    download: bool = False,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    media = _get_visible(db, media_id, current_user)
    if not storage.exists(media.file_path):
        raise HTTPException(status_code=404, detail="File not found on disk")
    return FileResponse(
        media.file_path,
        media_type=media.mime_type,
        filename=media.original_filename if download else None,
        headers={"Cache-Control": "public, max-age=31536000"},
    )


@router.put("/{media_id}", response_model=schemas.MediaEnvelope)
def update_media(
    media_id: int,
    media_in: schemas.MediaUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    media = _get_managed(db, media_id, current_user, "update")
    for field, value in media_in.model_dump(exclude_unset=True).items():
        if field == "is_public" and value is None:
            continue
        setattr(media, field, value)
    db.commit()
    db.refresh(media)
    return {"file": _media_out(media)}


@router.delete("/{media_id}", response_model=schemas.MessageResponse)
def delete_media(
    media_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    media = _get_managed(db, media_id, current_user, "delete")
    stored_paths = [media.file_path] + [thumb.thumbnail_path for thumb in media.thumbnails]
    db.delete(media)
    db.commit()
    for path in stored_paths:
        storage.delete(path)
    return {"message": "File deleted successfully"}


@router.get("/{media_id}/thumbnails", response_model=schemas.ThumbnailList)
def list_thumbnails(
    media_id: int,
    db: Session = Depends(database.get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    media = _get_visible(db, media_id, current_user)
    thumbs = db.query(models.MediaThumbnail).filter(
        models.MediaThumbnail.media_file_id == media.id
    ).order_by(models.MediaThumbnail.width).all()
    return {"thumbnails": [schemas.ThumbnailResponse.model_validate(t) for t in thumbs]}


@router.post("/{media_id}/thumbnails", response_model=schemas.ThumbnailList, status_code=status.HTTP_201_CREATED)
def generate_thumbnails(
    media_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    media = _get_managed(db, media_id, current_user, "update")
    if media.file_type != FileType.image:
        raise HTTPException(status_code=400, detail="Thumbnails can only be generated for images")
    if not storage.exists(media.file_path):
        raise HTTPException(status_code=404, detail="File not found on disk")

    # new files get fresh names so the current set stays intact until the swap commits
    stem, _ = os.path.splitext(media.filename)
    batch = uuid.uuid4().hex[:8]
    written = []
    for size_name, max_side in images.THUMBNAIL_SIZES.items():
        dest = storage.path_for(os.path.join("thumbnails", f"{stem}_{size_name}_{batch}.jpg"))
        try:
            width, height = images.make_thumbnail(media.file_path, dest, max_side)
        except images.ImageProcessingError as exc:
            for path, *_ in written:
                storage.delete(path)
            logger.warning("Thumbnail generation failed for media %s: %s", media.id, exc)
            raise HTTPException(status_code=400, detail="Could not process image")
        written.append((dest, size_name, width, height))

    old_paths = [thumb.thumbnail_path for thumb in media.thumbnails]
    for thumb in list(media.thumbnails):
        db.delete(thumb)
    created = []
    for dest, size_name, width, height in written:
        thumb = models.MediaThumbnail(
            media_file_id=media.id,
            thumbnail_path=dest,
            width=width,
            height=height,
            size=size_name,
        )
        db.add(thumb)
        created.append(thumb)
    db.commit()
    for path in old_paths:
        storage.delete(path)
    for thumb in created:
        db.refresh(thumb)
    return {"thumbnails": [schemas.ThumbnailResponse.model_validate(t) for t in created]}
