from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from inkpress.models import ArticleStatus, ReactionType

T = TypeVar("T")


# ----- Pagination -----
class Page(BaseModel, Generic[T]):
    items: List[T]
    page: int
    size: int
    total: int


# ----- Category Schemas -----
class CategoryCreate(BaseModel):
    name: str = Field(..., description="Category name, stored upper-cased")


class CategoryResponse(BaseModel):
    id: int
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Article Schemas -----
class ArticleCreate(BaseModel):
    # Field rules live in validators so that every error is reported at once
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None


class ArticleResponse(BaseModel):
    id: int
    title: str
    content: str
    status: ArticleStatus
    author_id: int
    author_username: str
    category_id: int
    category_name: str
    comments_count: int = 0
    likes_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----- Comment Schemas -----
class CommentCreate(BaseModel):
    content: Optional[str] = None
    parent_id: Optional[int] = Field(None, description="Comment being replied to")


class CommentResponse(BaseModel):
    id: int
    content: str
    author_id: int
    article_id: int
    parent_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ThreadedComment(CommentResponse):
    replies: List["ThreadedComment"] = []


# ----- Reaction Schemas -----
class ReactionCreate(BaseModel):
    type: str = Field(..., description="LIKE, LOVE, LAUGH, WOW, SAD or ANGRY")


class ReactionResponse(BaseModel):
    id: int
    type: ReactionType
    user_id: int
    article_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class ReactionStats(BaseModel):
    article_id: int
    total: int
    counts: Dict[ReactionType, int]
    user_reaction: Optional[ReactionType] = None


# ----- Favorite Schemas -----
class FavoriteResponse(BaseModel):
    id: int
    user_id: int
    article_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class FavoriteStatus(BaseModel):
    article_id: int
    is_favorite: bool


# ----- Follow Schemas -----
class FollowResponse(BaseModel):
    id: int
    follower_id: int
    following_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: int
    username: str

    class Config:
        from_attributes = True


class UserProfile(BaseModel):
    id: int
    username: str
    follower_count: int = 0
    following_count: int = 0
    is_following: bool = False


# ----- Notification Schemas -----
class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    article_id: int
    message: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


# ----- Health -----
class HealthResponse(BaseModel):
    status: str
    database: str
    redis: str


ThreadedComment.model_rebuild()
