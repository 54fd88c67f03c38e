from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from .. import models, schemas
from ..services import social
from ..utils.errors import domain_error_response
from .dependencies import get_current_user, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["social"])

_ERRORS = (PermissionError, LookupError, ValueError)


def _post_out(db: Session, post: models.Post, viewer_id: str) -> dict:
    data = social.serialize_posts(db, [post], viewer_id)[0]
    return schemas.PostResponse.model_validate(data).model_dump(mode="json")


@router.get("")
def list_posts(
    author_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    items = social.feed(db, current_user.id, author_id=author_id, skip=skip, limit=limit)
    return {
        "success": True,
        "posts": [schemas.PostResponse.model_validate(p).model_dump(mode="json") for p in items],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_post(
    payload: schemas.PostCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        post = social.create_post(db, current_user, payload.model_dump())
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "post": _post_out(db, post, current_user.id)}


@router.get("/{post_id}")
def get_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        post = social.get_post(db, post_id, current_user.id)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "post": _post_out(db, post, current_user.id)}


@router.patch("/{post_id}")
def update_post(
    post_id: int,
    payload: schemas.PostUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        post = social.update_post(db, post_id, current_user, payload.model_dump(exclude_unset=True))
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "post": _post_out(db, post, current_user.id)}


@router.delete("/{post_id}")
def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        social.delete_post(db, post_id, current_user)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True}


@router.post("/{post_id}/like")
def like_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        social.like_post(db, post_id, current_user)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "post": _post_out(db, db.get(models.Post, post_id), current_user.id)}


@router.delete("/{post_id}/like")
def unlike_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        social.unlike_post(db, post_id, current_user)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "post": _post_out(db, db.get(models.Post, post_id), current_user.id)}


@router.get("/{post_id}/comments")
def list_comments(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        comments = social.list_comments(db, post_id, current_user.id)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "comments": [schemas.CommentResponse.model_validate(c).model_dump(mode="json") for c in comments],
    }


@router.post("/{post_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        comment = social.add_comment(db, post_id, current_user, payload.content)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "comment": schemas.CommentResponse.model_validate(comment).model_dump(mode="json")}


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        social.delete_comment(db, comment_id, current_user)
    except _ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True}
