"""Reply routes."""

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from sqlalchemy.orm import Session

from ..audit.models import AuditAction
from ..audit.service import audit
from ..auth.models import UserProfile
from ..database.base import get_db
from ..dependencies import get_cache, get_current_user, get_optional_user
from ..integrations.cache import CacheService
from ..pages import redirect, redirect_failure, render
from ..posts.service import LISTING_PATH, get_post, post_path
from ..results import NotAReply, NotFound, Ok
from .service import create_reply, update_reply

router = APIRouter(tags=["replies"])


@router.post("/posts/{post_id}/replies")
def create_reply_submit(
    request: Request,
    post_id: str,
    content: str = Form(""),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = create_reply(db, user, post_id, content.strip(), cache)
    if isinstance(result, NotFound):
        return redirect(request, LISTING_PATH, error=result.message)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, post_path(post_id))

    audit(db, request, AuditAction.REPLY_CREATE, f"reply={result.value.id}", user_id=user.id)
    db.commit()
    return redirect(request, post_path(post_id), message="返信しました")


@router.get("/replies/{reply_id}/edit")
def edit_reply_page(
    request: Request,
    reply_id: str,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    result = get_post(db, user, reply_id)
    if isinstance(result, NotFound) or result.value.post.parent_id is None:
        raise HTTPException(status_code=404)
    if not result.value.is_owner:
        return redirect(
            request,
            post_path(result.value.post.parent_id),
            error="この返信を編集する権限がありません",
        )
    return render(request, "replies/edit.html", {"user": user, "reply": result.value.post})


@router.post("/replies/{reply_id}/edit")
def edit_reply_submit(
    request: Request,
    reply_id: str,
    content: str = Form(""),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = update_reply(db, user, reply_id, content.strip(), cache)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404)
    if isinstance(result, NotAReply):
        return redirect(request, post_path(reply_id), error=result.message)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, f"/replies/{reply_id}/edit")

    audit(db, request, AuditAction.REPLY_UPDATE, f"reply={result.value.id}", user_id=user.id)
    db.commit()
    return redirect(request, post_path(result.value.parent_id), message="返信を更新しました")
