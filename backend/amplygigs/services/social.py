"""Musician/client social feed: posts, likes and comments."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..database import transaction
from ..utils.notifications import notify

logger = logging.getLogger(__name__)


def get_post(db: Session, post_id: int, viewer_id: Optional[str] = None) -> models.Post:
    post = db.get(models.Post, post_id)
    if post is None or (not post.is_public and post.user_id != viewer_id):
        raise LookupError("Post not found")
    return post


def _own_post(db: Session, post_id: int, user_id: str) -> models.Post:
    post = get_post(db, post_id, user_id)
    if post.user_id != user_id:
        raise PermissionError("You can only modify your own posts")
    return post


def _counts(db: Session, model, post_ids: list[int]) -> dict[int, int]:
    if not post_ids:
        return {}
    rows = (
        db.query(model.post_id, func.count(model.id))
        .filter(model.post_id.in_(post_ids))
        .group_by(model.post_id)
        .all()
    )
    return {pid: int(n) for pid, n in rows}


def feed(
    db: Session,
    viewer_id: Optional[str],
    *,
    author_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
) -> list[dict[str, Any]]:
    """Newest-first public posts (plus the viewer's own private ones)."""
    q = db.query(models.Post)
    if author_id:
        q = q.filter(models.Post.user_id == author_id)
    if viewer_id:
        q = q.filter((models.Post.is_public.is_(True)) | (models.Post.user_id == viewer_id))
    else:
        q = q.filter(models.Post.is_public.is_(True))
    posts = q.order_by(models.Post.created_at.desc(), models.Post.id.desc()).offset(skip).limit(limit).all()
    return serialize_posts(db, posts, viewer_id)


def serialize_posts(db: Session, posts: Iterable[models.Post], viewer_id: Optional[str]) -> list[dict[str, Any]]:
    posts = list(posts)
    ids = [p.id for p in posts]
    likes = _counts(db, models.PostLike, ids)
    comments = _counts(db, models.PostComment, ids)
    liked: set[int] = set()
    if viewer_id and ids:
        liked = {
            pid
            for (pid,) in db.query(models.PostLike.post_id)
            .filter(models.PostLike.post_id.in_(ids), models.PostLike.user_id == viewer_id)
            .all()
        }
    out = []
    for p in posts:
        author = p.author
        out.append({
            "id": p.id,
            "user_id": p.user_id,
            "caption": p.caption,
            "media_url": p.media_url,
            "media_type": p.media_type,
            "thumbnail_url": p.thumbnail_url,
            "is_public": p.is_public,
            "created_at": p.created_at,
            "author": (
                {"id": author.id, "name": author.display_name, "role": author.role.value}
                if author is not None
                else None
            ),
            "likes_count": likes.get(p.id, 0),
            "comments_count": comments.get(p.id, 0),
            "user_liked": p.id in liked,
        })
    return out


def create_post(db: Session, user: models.UserProfile, data: dict[str, Any]) -> models.Post:
    if not data.get("caption") and not data.get("media_url"):
        raise ValueError("A post needs a caption or media")
    with transaction(db):
        post = models.Post(
            user_id=user.id,
            caption=data.get("caption"),
            media_url=data.get("media_url"),
            media_type=data.get("media_type") or ("image" if data.get("media_url") else "text"),
            thumbnail_url=data.get("thumbnail_url"),
            is_public=data.get("is_public", True),
        )
        db.add(post)
    db.refresh(post)
    return post


def update_post(db: Session, post_id: int, user: models.UserProfile, data: dict[str, Any]) -> models.Post:
    post = _own_post(db, post_id, user.id)
    with transaction(db):
        for key in ("caption", "is_public"):
            if key in data and data[key] is not None:
                setattr(post, key, data[key])
    db.refresh(post)
    return post


def delete_post(db: Session, post_id: int, user: models.UserProfile) -> None:
    post = _own_post(db, post_id, user.id)
    with transaction(db):
        db.delete(post)
    logger.info("Post %s deleted by %s", post_id, user.id)


def like_post(db: Session, post_id: int, user: models.UserProfile) -> bool:
    """Like a post. Returns False when the user had already liked it."""
    post = get_post(db, post_id, user.id)
    existing = (
        db.query(models.PostLike)
        .filter(models.PostLike.post_id == post.id, models.PostLike.user_id == user.id)
        .first()
    )
    if existing is not None:
        return False
    try:
        with transaction(db):
            db.add(models.PostLike(post_id=post.id, user_id=user.id))
            if post.user_id != user.id:
                notify(
                    db,
                    post.user_id,
                    "post_liked",
                    "New Like",
                    f"{user.display_name} liked your post.",
                    {"post_id": post.id},
                )
    except IntegrityError:
        # Lost a race with a concurrent like from the same user
        return False
    return True


def unlike_post(db: Session, post_id: int, user: models.UserProfile) -> bool:
    post = get_post(db, post_id, user.id)
    with transaction(db):
        removed = (
            db.query(models.PostLike)
            .filter(models.PostLike.post_id == post.id, models.PostLike.user_id == user.id)
            .delete(synchronize_session=False)
        )
    return bool(removed)


def add_comment(db: Session, post_id: int, user: models.UserProfile, content: str) -> models.PostComment:
    post = get_post(db, post_id, user.id)
    content = content.strip()
    if not content:
        raise ValueError("Comment cannot be empty")
    with transaction(db):
        comment = models.PostComment(post_id=post.id, user_id=user.id, content=content)
        db.add(comment)
        if post.user_id != user.id:
            notify(
                db,
                post.user_id,
                "post_commented",
                "New Comment",
                f"{user.display_name} commented on your post.",
                {"post_id": post.id},
            )
    db.refresh(comment)
    return comment


def list_comments(db: Session, post_id: int, viewer_id: Optional[str] = None) -> list[models.PostComment]:
    post = get_post(db, post_id, viewer_id)
    return (
        db.query(models.PostComment)
        .filter(models.PostComment.post_id == post.id)
        .order_by(models.PostComment.id)
        .all()
    )


def delete_comment(db: Session, comment_id: int, user: models.UserProfile) -> None:
    comment = db.get(models.PostComment, comment_id)
    if comment is None:
        raise LookupError("Comment not found")
    if comment.user_id != user.id:
        raise PermissionError("You can only delete your own comments")
    with transaction(db):
        db.delete(comment)
