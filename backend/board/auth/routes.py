"""Sign-up, sign-in, sign-out and password routes."""

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from ..audit.models import AuditAction
from ..audit.service import audit
from ..config import settings
from ..database.base import get_db
from ..dependencies import get_auth, get_current_user, get_drafts
from ..integrations.drafts import DraftStore
from ..pages import SIGN_IN_URL, is_local_path, redirect, redirect_failure, render
from ..rate_limit import auth_limit, limiter
from ..results import NotFound, Ok
from .models import UserProfile
from .provider import AuthClient
from .service import (
    confirm_email_link,
    forgot_password,
    get_sign_up_data,
    reset_password,
    save_sign_up,
    sign_in,
    sign_out,
    sign_up,
)

router = APIRouter(tags=["auth"])

SIGN_UP_URL = "/sign-up"
FORGOT_PASSWORD_URL = "/forgot-password"
RESET_PASSWORD_URL = "/reset-password"


def _site_url(request: Request) -> str:
    return (settings.site_url or str(request.base_url)).rstrip("/")


@router.get("/sign-up")
def sign_up_page(request: Request):
    return render(request, "sign_up.html")


@router.post("/sign-up")
@limiter.limit(auth_limit)
def sign_up_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    name: str = Form(""),
    db: Session = Depends(get_db),
    drafts: DraftStore = Depends(get_drafts),
):
    result = save_sign_up(db, drafts, email.strip(), password, name.strip())
    if not isinstance(result, Ok):
        return redirect(request, SIGN_UP_URL, error=result.message)
    return redirect(request, "/sign-up/confirm")


@router.get("/sign-up/confirm")
def sign_up_confirm_page(request: Request, drafts: DraftStore = Depends(get_drafts)):
    draft = get_sign_up_data(drafts)
    if draft is None:
        return redirect(request, SIGN_UP_URL)
    return render(
        request,
        "sign_up_confirm.html",
        {"draft": draft, "masked_password": "•" * len(draft.password)},
    )


@router.post("/sign-up/confirm")
@limiter.limit(auth_limit)
def sign_up_confirm(
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
    drafts: DraftStore = Depends(get_drafts),
):
    result = sign_up(db, auth, drafts, f"{_site_url(request)}/auth/confirm")
    if isinstance(result, NotFound):
        return redirect(request, SIGN_UP_URL)
    if not isinstance(result, Ok):
        return redirect(request, SIGN_UP_URL, error=result.message)

    audit(db, request, AuditAction.SIGN_UP, user_id=result.value.id)
    db.commit()
    return redirect(request, SIGN_IN_URL, message="登録が完了しました。ログインしてください。")


@router.get("/sign-in")
def sign_in_page(request: Request):
    return render(request, "sign_in.html")


@router.post("/sign-in")
@limiter.limit(auth_limit)
def sign_in_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
):
    result = sign_in(db, auth, email.strip(), password)
    if not isinstance(result, Ok):
        audit(db, request, AuditAction.SIGN_IN_FAILED, f"email={email}")
        db.commit()
        return redirect(request, SIGN_IN_URL, error=result.message)

    audit(db, request, AuditAction.SIGN_IN, user_id=result.value.id)
    db.commit()
    return redirect(request, "/posts")


@router.get("/forgot-password")
def forgot_password_page(request: Request):
    return render(request, "forgot_password.html")


@router.post("/forgot-password")
@limiter.limit(auth_limit)
def forgot_password_submit(
    request: Request,
    email: str = Form(""),
    callback_url: str = Form(""),
    auth: AuthClient = Depends(get_auth),
):
    result = forgot_password(auth, email.strip(), f"{_site_url(request)}/auth/confirm?next={RESET_PASSWORD_URL}")
    if not isinstance(result, Ok):
        return redirect(request, FORGOT_PASSWORD_URL, error=result.message)
    if is_local_path(callback_url):
        return redirect(request, callback_url)
    return redirect(request, FORGOT_PASSWORD_URL, message=result.value)


@router.get("/reset-password")
def reset_password_page(request: Request, user: UserProfile = Depends(get_current_user)):
    return render(request, "reset_password.html", {"user": user})


@router.post("/reset-password")
def reset_password_submit(
    request: Request,
    password: str = Form(""),
    confirm_password: str = Form(""),
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
    user: UserProfile = Depends(get_current_user),
):
    result = reset_password(auth, password, confirm_password)
    if not isinstance(result, Ok):
        return redirect(request, RESET_PASSWORD_URL, error=result.message)

    audit(db, request, AuditAction.PASSWORD_RESET, user_id=user.id)
    db.commit()
    return redirect(request, SIGN_IN_URL, message=result.value)


@router.post("/sign-out")
def sign_out_submit(
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
):
    subject = auth.current_subject()
    sign_out(auth)
    audit(db, request, AuditAction.SIGN_OUT, f"subject={subject or ''}")
    db.commit()
    return redirect(request, SIGN_IN_URL)


@router.get("/auth/confirm")
def confirm_email(
    request: Request,
    token_hash: str = "",
    type: str = "",
    next: str = "",
    auth: AuthClient = Depends(get_auth),
):
    result = confirm_email_link(auth, token_hash, type)
    if not isinstance(result, Ok):
        return redirect_failure(request, result, SIGN_IN_URL)
    if result.value == "recovery":
        return redirect(request, RESET_PASSWORD_URL)
    return redirect(request, next if is_local_path(next) else "/posts")
