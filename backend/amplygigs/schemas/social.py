from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime


class PostCreate(BaseModel):
    caption: Optional[str] = Field(default=None, max_length=2200)
    media_url: Optional[str] = None
    media_type: Optional[Literal["text", "image", "video"]] = None
    thumbnail_url: Optional[str] = None
    is_public: bool = True


class PostUpdate(BaseModel):
    caption: Optional[str] = Field(default=None, max_length=2200)
    is_public: Optional[bool] = None


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class PostAuthor(BaseModel):
    id: str
    name: str
    role: str


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: str
    content: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PostResponse(BaseModel):
    id: int
    user_id: str
    caption: Optional[str] = None
    media_url: Optional[str] = None
    media_type: str
    thumbnail_url: Optional[str] = None
    is_public: bool
    created_at: Optional[datetime] = None
    author: Optional[PostAuthor] = None
    likes_count: int = 0
    comments_count: int = 0
    user_liked: bool = False
