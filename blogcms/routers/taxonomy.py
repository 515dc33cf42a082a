from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from slugify import slugify
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models, schemas, auth, database
from ..cache import clear_post_cache
from ..pagination import PageParams, paginate

categories_router = APIRouter(prefix="/api/categories", tags=["categories"])
tags_router = APIRouter(prefix="/api/tags", tags=["tags"])

TermSort = Literal["name", "created_at", "post_count"]


def _counted_query(db: Session, model, link_table, link_column):
    post_count = func.count(link_table.c.post_id).label("post_count")
    query = db.query(model, post_count).outerjoin(
        link_table, link_column == model.id
    ).group_by(model.id)
    return query, post_count


def _sorted(query, model, post_count, sort_by: str, sort_order: str):
    column = {"name": model.name, "created_at": model.created_at, "post_count": post_count}[sort_by]
    if sort_order == "desc":
        return query.order_by(column.desc(), model.id)
    return query.order_by(column.asc(), model.id)


def _with_count(response_schema, term, count: int) -> dict:
    data = response_schema.model_validate(term).model_dump()
    data["post_count"] = count or 0
    return data


def _lookup(query, model, term_ref: str):
    term = None
    if term_ref.isdigit():
        term = query.filter(model.id == int(term_ref)).first()
    if term is None:
        term = query.filter(model.slug == term_ref).first()
    return term


def _ensure_unique(db: Session, model, name: str, slug: str, exclude_id: int = None, label: str = "Category"):
    query = db.query(model).filter(or_(model.name == name, model.slug == slug))
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail=f"{label} with this name or slug already exists")


def _make_slug(value: str) -> str:
    slug = slugify(value)
    if not slug:
        raise HTTPException(status_code=400, detail="Slug cannot be empty")
    return slug


# --- CATEGORIES ---

def _check_parent(db: Session, parent_id: Optional[int], category_id: int = None) -> None:
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise HTTPException(status_code=400, detail="A category cannot be its own parent")
    parent = db.get(models.Category, parent_id)
    if not parent:
        raise HTTPException(status_code=400, detail="Parent category not found")
    # walk up from the new parent; meeting the category again would close a loop
    while parent is not None and category_id is not None:
        if parent.parent_id == category_id:
            raise HTTPException(status_code=400, detail="Category hierarchy cannot contain cycles")
        parent = db.get(models.Category, parent.parent_id) if parent.parent_id else None


def _category_count(db: Session, category_id: int) -> int:
    return db.query(func.count(models.post_categories.c.post_id)).filter(
        models.post_categories.c.category_id == category_id
    ).scalar()


@categories_router.get("", response_model=schemas.CategoryList)
def list_categories(
    search: Optional[str] = None,
    sort_by: TermSort = "name",
    sort_order: Literal["asc", "desc"] = "asc",
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
):
    query, post_count = _counted_query(db, models.Category, models.post_categories, models.post_categories.c.category_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Category.name.ilike(pattern), models.Category.description.ilike(pattern)))
    query = _sorted(query, models.Category, post_count, sort_by, sort_order)
    rows, pagination = paginate(query, page)
    return {
        "categories": [_with_count(schemas.CategoryResponse, c, n) for c, n in rows],
        "pagination": pagination,
    }


@categories_router.get("/{category_ref}", response_model=schemas.CategoryEnvelope)
def get_category(category_ref: str, db: Session = Depends(database.get_db)):
    category = _lookup(db.query(models.Category), models.Category, category_ref)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"category": _with_count(schemas.CategoryResponse, category, _category_count(db, category.id))}


@categories_router.post("", response_model=schemas.CategoryEnvelope, status_code=status.HTTP_201_CREATED)
def create_category(
    category_in: schemas.CategoryCreate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    slug = _make_slug(category_in.slug or category_in.name)
    _ensure_unique(db, models.Category, category_in.name, slug)
    _check_parent(db, category_in.parent_id)

    category = models.Category(
        name=category_in.name,
        slug=slug,
        description=category_in.description,
        parent_id=category_in.parent_id,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return {"category": _with_count(schemas.CategoryResponse, category, 0)}


@categories_router.put("/{category_id}", response_model=schemas.CategoryEnvelope)
def update_category(
    category_id: int,
    category_in: schemas.CategoryUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    category = db.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    changes = category_in.model_dump(exclude_unset=True)
    name = changes.get("name") or category.name
    if "slug" in changes and changes["slug"]:
        slug = _make_slug(changes["slug"])
    elif "name" in changes:
        slug = _make_slug(name)
    else:
        slug = category.slug
    _ensure_unique(db, models.Category, name, slug, exclude_id=category.id)
    if "parent_id" in changes:
        _check_parent(db, changes["parent_id"], category.id)
        category.parent_id = changes["parent_id"]
    if "description" in changes:
        category.description = changes["description"]
    category.name = name
    category.slug = slug

    db.commit()
    db.refresh(category)
    clear_post_cache()
    return {"category": _with_count(schemas.CategoryResponse, category, _category_count(db, category.id))}


@categories_router.delete("/{category_id}", response_model=schemas.MessageResponse)
def delete_category(
    category_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    category = db.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    db.query(models.Category).filter(models.Category.parent_id == category.id).update({"parent_id": None})
    db.delete(category)
    db.commit()
    clear_post_cache()
    return {"message": "Category deleted successfully"}


# --- TAGS ---

def _tag_count(db: Session, tag_id: int) -> int:
    return db.query(func.count(models.post_tags.c.post_id)).filter(models.post_tags.c.tag_id == tag_id).scalar()


@tags_router.get("", response_model=schemas.TagList)
def list_tags(
    search: Optional[str] = None,
    sort_by: TermSort = "name",
    sort_order: Literal["asc", "desc"] = "asc",
    page: PageParams = Depends(),
    db: Session = Depends(database.get_db),
):
    query, post_count = _counted_query(db, models.Tag, models.post_tags, models.post_tags.c.tag_id)
    if search:
        query = query.filter(models.Tag.name.ilike(f"%{search}%"))
    query = _sorted(query, models.Tag, post_count, sort_by, sort_order)
    rows, pagination = paginate(query, page)
    return {"tags": [_with_count(schemas.TagResponse, t, n) for t, n in rows], "pagination": pagination}


@tags_router.get("/{tag_ref}", response_model=schemas.TagEnvelope)
def get_tag(tag_ref: str, db: Session = Depends(database.get_db)):
    tag = _lookup(db.query(models.Tag), models.Tag, tag_ref)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    return {"tag": _with_count(schemas.TagResponse, tag, _tag_count(db, tag.id))}


@tags_router.post("", response_model=schemas.TagEnvelope, status_code=status.HTTP_201_CREATED)
def create_tag(
    tag_in: schemas.TagCreate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    slug = _make_slug(tag_in.slug or tag_in.name)
    _ensure_unique(db, models.Tag, tag_in.name, slug, label="Tag")
    tag = models.Tag(name=tag_in.name, slug=slug, description=tag_in.description)
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return {"tag": _with_count(schemas.TagResponse, tag, 0)}


@tags_router.put("/{tag_id}", response_model=schemas.TagEnvelope)
def update_tag(
    tag_id: int,
    tag_in: schemas.TagUpdate,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    tag = db.get(models.Tag, tag_id)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")

    changes = tag_in.model_dump(exclude_unset=True)
    name = changes.get("name") or tag.name
    if "slug" in changes and changes["slug"]:
        slug = _make_slug(changes["slug"])
    elif "name" in changes:
        slug = _make_slug(name)
    else:
        slug = tag.slug
    _ensure_unique(db, models.Tag, name, slug, exclude_id=tag.id, label="Tag")
    if "description" in changes:
        tag.description = changes["description"]
    tag.name = name
    tag.slug = slug

    db.commit()
    db.refresh(tag)
    clear_post_cache()
    return {"tag": _with_count(schemas.TagResponse, tag, _tag_count(db, tag.id))}


@tags_router.delete("/{tag_id}", response_model=schemas.MessageResponse)
def delete_tag(
    tag_id: int,
    db: Session = Depends(database.get_db),
    current_user: models.User = Depends(auth.require_editor),
):
    tag = db.get(models.Tag, tag_id)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    db.delete(tag)
    db.commit()
    clear_post_cache()
    return {"message": "Tag deleted successfully"}
