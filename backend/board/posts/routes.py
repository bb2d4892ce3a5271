"""Post routes: listing, detail, create, edit and delete."""

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from sqlalchemy.orm import Session

from ..audit.models import AuditAction
from ..audit.service import audit
from ..auth.models import UserProfile
from ..database.base import get_db
from ..dependencies import get_cache, get_current_user, get_optional_user
from ..integrations.cache import CacheService
from ..pages import redirect, redirect_failure, render
from ..replies.service import get_post_with_replies
from ..results import NotFound, Ok
from .models import TITLE_MAX_LENGTH
from .service import (
    LISTING_PATH,
    create_post,
    delete_post,
    get_live_post,
    get_post,
    get_posts,
    post_path,
    update_post,
)

router = APIRouter(tags=["posts"])


@router.get("/posts")
def list_posts(
    request: Request,
    page: int = 1,
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = get_posts(db, page, cache)
    return render(
        request,
        "posts/index.html",
        {"user": user, "posts": result.posts, "pagination": result.pagination},
    )


@router.get("/posts/new")
def new_post_page(request: Request, user: UserProfile = Depends(get_current_user)):
    return render(
        request,
        "posts/form.html",
        {"user": user, "post": None, "title_max_length": TITLE_MAX_LENGTH},
    )


@router.post("/posts/new")
def create_post_submit(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = create_post(db, user, title.strip(), content.strip(), cache)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, "/posts/new")

    audit(db, request, AuditAction.POST_CREATE, f"post={result.value.id}", user_id=user.id)
    db.commit()
    return redirect(request, post_path(result.value.id), message="投稿しました")


@router.get("/posts/{post_id}")
def post_detail(
    request: Request,
    post_id: str,
    db: Session = Depends(get_db),
    user: UserProfile | None = Depends(get_optional_user),
):
    thread = get_post_with_replies(db, user, post_id)
    if isinstance(thread, NotFound):
        raise HTTPException(status_code=404)
    if not isinstance(thread, Ok):
        return redirect_failure(request, thread, LISTING_PATH)

    # Replies are opened through their parent thread.
    if thread.value.post.parent_id is not None:
        return redirect(request, post_path(thread.value.post.parent_id))

    return render(
        request,
        "posts/detail.html",
        {
            "user": user,
            "post": thread.value.post,
            "replies": thread.value.replies,
            "is_owner": thread.value.post.author_id == user.id,
        },
    )


@router.get("/posts/{post_id}/edit")
def edit_post_page(
    request: Request,
    post_id: str,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    result = get_post(db, user, post_id)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404)
    if not result.value.is_owner or result.value.post.parent_id is not None:
        return redirect(request, post_path(post_id), error="この投稿を編集する権限がありません")

    return render(
        request,
        "posts/form.html",
        {"user": user, "post": result.value.post, "title_max_length": TITLE_MAX_LENGTH},
    )


@router.post("/posts/{post_id}/edit")
def edit_post_submit(
    request: Request,
    post_id: str,
    title: str = Form(""),
    content: str = Form(""),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = update_post(db, user, post_id, title.strip(), content.strip(), cache)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, f"{post_path(post_id)}/edit")

    audit(db, request, AuditAction.POST_UPDATE, f"post={result.value.id}", user_id=user.id)
    db.commit()
    return redirect(request, post_path(result.value.id), message="投稿を更新しました")


@router.post("/posts/{post_id}/delete")
def delete_post_submit(
    request: Request,
    post_id: str,
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    post = get_live_post(db, post_id)
    parent_id = post.parent_id if post is not None else None

    result = delete_post(db, user, post_id, cache)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, post_path(post_id))

    audit(db, request, AuditAction.POST_DELETE, f"post={result.value.id}", user_id=user.id)
    db.commit()
    if parent_id is not None:
        return redirect(request, post_path(parent_id), message="返信を削除しました")
    return redirect(request, LISTING_PATH, message="投稿を削除しました")
