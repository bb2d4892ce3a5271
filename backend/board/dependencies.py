"""Shared FastAPI dependencies."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .auth.models import UserProfile
from .auth.provider import AuthClient
from .auth.service import get_current_user as resolve_current_user
from .config import settings
from .database.base import get_db
from .integrations.cache import CacheService
from .integrations.drafts import DraftStore
from .results import ACCOUNT_INACTIVE


class AuthRequired(Exception):
    """Raised when user is not authenticated. Handled by exception handler in main.py."""

    pass


def get_cache(request: Request) -> CacheService:
    """Get the cache service from app state."""
    return request.app.state.cache


def get_auth(request: Request) -> AuthClient:
    """Auth provider bound to this caller's session cookie."""
    return AuthClient(request.app.state.auth_provider, request.session)


def get_drafts(request: Request, cache: CacheService = Depends(get_cache)) -> DraftStore:
    return DraftStore(cache, request.session, ttl=settings.draft_ttl_seconds)


def get_optional_user(
    db: Session = Depends(get_db),
    auth: AuthClient = Depends(get_auth),
) -> UserProfile | None:
    """The caller's profile, or None. Services decide whether that is fatal."""
    return resolve_current_user(db, auth)


def get_current_user(
    request: Request,
    user: UserProfile | None = Depends(get_optional_user),
    auth: AuthClient = Depends(get_auth),
) -> UserProfile:
    """Get the signed-in, active user, or redirect to sign-in."""
    if user is None:
        raise AuthRequired()
    if not user.is_active:
        auth.end_session()
        request.session["flash_error"] = ACCOUNT_INACTIVE
        raise AuthRequired()
    return user
