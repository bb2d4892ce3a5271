"""Profile routes: edit, confirm and deactivate."""

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from ..audit.models import AuditAction
from ..audit.service import audit, recent_entries
from ..auth.models import UserProfile
from ..auth.provider import AuthClient
from ..database.base import get_db
from ..dependencies import get_auth, get_cache, get_current_user, get_drafts, get_optional_user
from ..integrations.cache import CacheService
from ..integrations.drafts import DraftStore
from ..pages import SIGN_IN_URL, redirect, redirect_failure, render
from ..posts.service import LISTING_PATH
from ..results import Ok
from .service import (
    PROFILE_EDIT_PATH,
    deactivate_account,
    get_profile_data,
    save_profile_data,
    update_user_profile,
)

router = APIRouter(tags=["profile"])

PROFILE_CONFIRM_PATH = "/profile/confirm"


@router.get("/profile/edit")
def edit_profile_page(
    request: Request,
    db: Session = Depends(get_db),
    drafts: DraftStore = Depends(get_drafts),
    user: UserProfile = Depends(get_current_user),
):
    staged = get_profile_data(drafts, user)
    form = staged.value if isinstance(staged, Ok) else {"name": user.name, "email": user.email}
    return render(
        request,
        "profile/edit.html",
        {"user": user, "form": form, "activity": recent_entries(db, user.id)},
    )


@router.post("/profile/edit")
def edit_profile_submit(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    drafts: DraftStore = Depends(get_drafts),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = save_profile_data(drafts, user, name.strip(), email.strip())
    if not isinstance(result, Ok):
        return redirect_failure(request, result, PROFILE_EDIT_PATH)
    return redirect(request, PROFILE_CONFIRM_PATH)


@router.get("/profile/confirm")
def confirm_profile_page(
    request: Request,
    drafts: DraftStore = Depends(get_drafts),
    user: UserProfile = Depends(get_current_user),
):
    staged = get_profile_data(drafts, user)
    if not isinstance(staged, Ok):
        return redirect_failure(request, staged, PROFILE_EDIT_PATH)
    return render(request, "profile/confirm.html", {"user": user, "draft": staged.value})


@router.post("/profile/confirm")
def confirm_profile_submit(
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
    drafts: DraftStore = Depends(get_drafts),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    outcome = update_user_profile(db, user, auth, drafts, cache)
    if outcome.compensations:
        detail = ", ".join(f"{c.step}:{'ok' if c.succeeded else 'failed'}" for c in outcome.compensations)
        audit(db, request, AuditAction.PROFILE_UPDATE_COMPENSATED, detail, user_id=user.id)
        db.commit()
    if not outcome.ok:
        return redirect_failure(request, outcome.result, PROFILE_EDIT_PATH)

    audit(db, request, AuditAction.PROFILE_UPDATE, user_id=user.id)
    db.commit()
    return redirect(request, LISTING_PATH, message="プロフィールを更新しました")


@router.post("/profile/deactivate")
def deactivate_profile(
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
    cache: CacheService = Depends(get_cache),
    user: UserProfile | None = Depends(get_optional_user),
):
    result = deactivate_account(db, user, auth, cache)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, PROFILE_EDIT_PATH)

    audit(db, request, AuditAction.ACCOUNT_DEACTIVATE, user_id=user.id)
    db.commit()
    return redirect(request, SIGN_IN_URL, message="アカウントを無効化しました")
