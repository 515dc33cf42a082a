from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime

from .models import UserRole, PostStatus, CommentStatus, FileType


def _empty_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_url(value):
    if value is not None and not value.startswith(("http://", "https://")):
        raise ValueError("must be a valid http(s) URL")
    return value


class MessageResponse(BaseModel):
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# --- USERS & AUTH ---

class UserRegister(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    is_active: bool
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserEnvelope(BaseModel):
    user: UserResponse


class UserList(BaseModel):
    users: List[UserResponse]
    pagination: Pagination


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    token: str


class SSOLogin(BaseModel):
    id_token: str = Field(min_length=1)


class SSOAuthResponse(AuthResponse):
    is_new_user: bool


class TokenResponse(BaseModel):
    token: str


class ForgotPassword(BaseModel):
    email: EmailStr


class ResetPassword(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)


class UserUpdate(BaseModel):
    first_name: str = Field(max_length=100)
    last_name: str = Field(default="", max_length=100)
    role: UserRole
    is_active: bool


class ProfileUpdate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(max_length=100)
    bio: Optional[str] = Field(default=None, max_length=1000)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    website: Optional[str] = Field(default=None, max_length=500)
    social_links: Optional[dict] = None
    preferences: Optional[dict] = None

    @field_validator("avatar_url", "website", mode="before")
    @classmethod
    def blank_urls_are_none(cls, value):
        return _empty_to_none(value)

    @field_validator("avatar_url", "website")
    @classmethod
    def urls_are_http(cls, value):
        return _check_url(value)


class ProfileResponse(UserResponse):
    website: Optional[str] = None
    social_links: Optional[dict] = None
    preferences: Optional[dict] = None


class ProfileEnvelope(BaseModel):
    user: ProfileResponse


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=128)


# --- CATEGORIES & TAGS ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    post_count: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryEnvelope(BaseModel):
    category: CategoryResponse


class CategoryList(BaseModel):
    categories: List[CategoryResponse]
    pagination: Pagination


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    slug: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class TagUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    slug: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class TagResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    post_count: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TagEnvelope(BaseModel):
    tag: TagResponse


class TagList(BaseModel):
    tags: List[TagResponse]
    pagination: Pagination


# --- POSTS ---

class TermSummary(BaseModel):
    id: int
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class AuthorSummary(BaseModel):
    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PostBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    excerpt: Optional[str] = Field(default=None, max_length=1000)
    featured_image_url: Optional[str] = Field(default=None, max_length=500)
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)


class PostCreate(PostBase):
    categories: List[int] = []
    tags: List[int] = []
    status: Literal["draft", "published", "scheduled"] = "draft"
    scheduled_at: Optional[datetime] = None


class PostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    excerpt: Optional[str] = Field(default=None, max_length=1000)
    featured_image_url: Optional[str] = Field(default=None, max_length=500)
    meta_title: Optional[str] = Field(default=None, max_length=255)
    meta_description: Optional[str] = Field(default=None, max_length=500)
    categories: Optional[List[int]] = None
    tags: Optional[List[int]] = None


class PostSchedule(BaseModel):
    scheduled_at: datetime


class PostResponse(BaseModel):
    id: int
    author_id: int
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    featured_image_url: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    status: PostStatus
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[AuthorSummary] = None
    categories: List[TermSummary] = []
    tags: List[TermSummary] = []

    model_config = ConfigDict(from_attributes=True)


class PostEnvelope(BaseModel):
    post: PostResponse


class PostList(BaseModel):
    posts: List[PostResponse]
    pagination: Pagination


class DraftSave(BaseModel):
    post_id: Optional[int] = None
    title: str = Field(min_length=1, max_length=255)
    content: str = ""
    excerpt: Optional[str] = Field(default=None, max_length=1000)


class DraftSaveResponse(BaseModel):
    message: str
    post_id: int


class DraftList(BaseModel):
    drafts: List[PostResponse]


class ScheduledList(BaseModel):
    scheduled_posts: List[PostResponse]


class PublishScheduledResponse(BaseModel):
    message: str
    published: List[int]


class VersionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    excerpt: Optional[str] = Field(default=None, max_length=1000)


class PostVersionResponse(BaseModel):
    id: int
    post_id: int
    version_number: int
    title: str
    content: str
    excerpt: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VersionEnvelope(BaseModel):
    version: PostVersionResponse


class VersionList(BaseModel):
    versions: List[PostVersionResponse]


# --- BLOG SETTINGS ---

class BlogSettingsUpdate(BaseModel):
    blog_title: str = Field(min_length=1, max_length=200)
    blog_description: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(str_strip_whitespace=True)


class BlogSettingsResponse(BaseModel):
    blog_title: str
    blog_description: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class BlogSettingsEnvelope(BaseModel):
    settings: BlogSettingsResponse
    message: Optional[str] = None


# --- COMMENTS ---

class CommentCreate(BaseModel):
    post_id: int
    content: str = Field(min_length=1, max_length=2000)
    parent_id: Optional[int] = None
    author_name: Optional[str] = Field(default=None, max_length=100)
    author_email: Optional[EmailStr] = None
    author_website: Optional[str] = Field(default=None, max_length=500)

    @field_validator("author_name", "author_email", "author_website", mode="before")
    @classmethod
    def blanks_are_none(cls, value):
        return _empty_to_none(value)

    @field_validator("author_website")
    @classmethod
    def website_is_http(cls, value):
        return _check_url(value)


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class CommentModerate(BaseModel):
    action: Literal["approve", "reject", "spam", "delete"]
    reason: Optional[str] = Field(default=None, max_length=500)


class CommentResponse(BaseModel):
    id: int
    post_id: int
    author_id: Optional[int] = None
    author_name: Optional[str] = None
    author_website: Optional[str] = None
    content: str
    parent_id: Optional[int] = None
    status: CommentStatus
    is_anonymous: bool = False
    like_count: int = 0
    is_liked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CommentEnvelope(BaseModel):
    comment: CommentResponse


class CommentList(BaseModel):
    comments: List[CommentResponse]
    pagination: Pagination


class LikeToggleResponse(BaseModel):
    message: str
    liked: bool


class LikeCountResponse(BaseModel):
    like_count: int


class ModerationEntry(BaseModel):
    id: int
    comment_id: int
    moderator_id: Optional[int] = None
    moderator_name: Optional[str] = None
    action: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


class ModerationList(BaseModel):
    moderation: List[ModerationEntry]


# --- MEDIA ---

class MediaUpdate(BaseModel):
    alt_text: Optional[str] = Field(default=None, max_length=500)
    caption: Optional[str] = Field(default=None, max_length=1000)
    is_public: Optional[bool] = None


class MediaResponse(BaseModel):
    id: int
    filename: str
    original_filename: str
    file_size: int
    mime_type: str
    file_type: FileType
    width: Optional[int] = None
    height: Optional[int] = None
    uploaded_by: Optional[int] = None
    alt_text: Optional[str] = None
    caption: Optional[str] = None
    is_public: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MediaEnvelope(BaseModel):
    file: MediaResponse


class MediaList(BaseModel):
    files: List[MediaResponse]
    pagination: Pagination


class MediaUploadResponse(BaseModel):
    files: List[MediaResponse]


class ThumbnailResponse(BaseModel):
    id: int
    media_file_id: int
    width: Optional[int] = None
    height: Optional[int] = None
    size: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ThumbnailList(BaseModel):
    thumbnails: List[ThumbnailResponse]


class MediaStats(BaseModel):
    total_files: int
    total_size: int
    image_count: int
    video_count: int
    audio_count: int
    document_count: int


class MediaStatsEnvelope(BaseModel):
    stats: MediaStats
