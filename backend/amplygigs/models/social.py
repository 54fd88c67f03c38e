from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class Post(BaseModel):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    caption = Column(Text, nullable=True)
    media_url = Column(String, nullable=True)
    media_type = Column(String, nullable=False, default="text")  # text|image|video
    thumbnail_url = Column(String, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)

    author = relationship("UserProfile")
    likes = relationship("PostLike", cascade="all, delete-orphan", back_populates="post")
    comments = relationship(
        "PostComment",
        cascade="all, delete-orphan",
        back_populates="post",
        order_by="PostComment.id",
    )


class PostLike(BaseModel):
    __tablename__ = "post_likes"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False)

    post = relationship("Post", back_populates="likes")

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_post_likes_post_user"),
    )


class PostComment(BaseModel):
    __tablename__ = "post_comments"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False)
    content = Column(Text, nullable=False)

    post = relationship("Post", back_populates="comments")
    author = relationship("UserProfile")
