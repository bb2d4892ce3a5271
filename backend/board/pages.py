"""Shared page helpers (flash messages, rendering, redirects) and the root route."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from .auth.models import UserProfile
from .dependencies import get_optional_user
from .results import AccountInactive, Failure, Unauthenticated

router = APIRouter(tags=["pages"])

SIGN_IN_URL = "/sign-in"


def _flash(request: Request) -> dict:
    """Pop flash messages from the session."""
    return {
        "error": request.session.pop("flash_error", None),
        "message": request.session.pop("flash_message", None),
    }


def render(request: Request, template: str, context: dict | None = None, status_code: int = 200):
    templates = request.app.state.templates
    flash = _flash(request)
    return templates.TemplateResponse(
        request,
        template,
        {**(context or {}), "error": flash["error"], "message": flash["message"]},
        status_code=status_code,
    )


def redirect(request: Request, url: str, *, error: str | None = None, message: str | None = None):
    if error:
        request.session["flash_error"] = error
    if message:
        request.session["flash_message"] = message
    return RedirectResponse(url=url, status_code=303)


def redirect_failure(request: Request, failure: Failure, url: str):
    """Redirect with the failure's message; auth failures always go to sign-in."""
    if isinstance(failure, (Unauthenticated, AccountInactive)):
        url = SIGN_IN_URL
    return redirect(request, url, error=failure.message)


def is_local_path(url: str | None) -> bool:
    """True for site-relative paths such as /posts, never for //host or absolute URLs."""
    return bool(url) and url.startswith("/") and not url.startswith("//") and "\\" not in url


@router.get("/")
def home(user: UserProfile | None = Depends(get_optional_user)):
    if user is not None and user.is_active:
        return RedirectResponse(url="/posts", status_code=303)
    return RedirectResponse(url=SIGN_IN_URL, status_code=303)
