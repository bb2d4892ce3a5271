"""Profile service: two-phase profile edit and account deactivation."""

import logging

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.models import UserProfile
from ..auth.provider import AuthClient
from ..auth.schemas import ProfileDraft
from ..integrations.cache import CacheService, revalidate_path
from ..integrations.drafts import DraftStore
from ..posts.service import LISTING_PATH
from ..results import (
    InvalidInput,
    NotFound,
    Ok,
    ProviderFailure,
    Result,
    StoreFailure,
    require_active_user,
    require_user,
    store_boundary,
)
from .saga import Saga, SagaOutcome

logger = logging.getLogger(__name__)

PROFILE_DRAFT = "profile"
PROFILE_EDIT_PATH = "/profile/edit"
DRAFT_NOT_FOUND = "プロフィールデータが見つかりません"


def save_profile_data(drafts: DraftStore, user: UserProfile | None, name: str, email: str) -> Result:
    """Validate the profile form and stage it for confirmation."""
    failure = require_active_user(user)
    if failure:
        return failure
    if not name:
        return InvalidInput("名前は必須です")
    if not email:
        return InvalidInput("メールアドレスは必須です")

    draft = ProfileDraft(name=name, email=email)
    drafts.save(PROFILE_DRAFT, draft.model_dump(), owner_id=str(user.id))
    return Ok(draft)


def get_profile_data(drafts: DraftStore, user: UserProfile | None) -> Result:
    """The caller's staged profile edit. Drafts owned by someone else are dropped."""
    failure = require_user(user)
    if failure:
        return failure

    envelope = drafts.load(PROFILE_DRAFT)
    if envelope is None:
        return NotFound(DRAFT_NOT_FOUND)

    if envelope.owner_id != str(user.id):
        logger.warning("Discarding profile draft owned by another user")
        drafts.evict(PROFILE_DRAFT)
        return NotFound(DRAFT_NOT_FOUND)

    try:
        return Ok(ProfileDraft.model_validate(envelope.data))
    except ValidationError:
        drafts.evict(PROFILE_DRAFT)
        return NotFound(DRAFT_NOT_FOUND)


def update_user_profile(
    db: Session,
    user: UserProfile | None,
    auth: AuthClient,
    drafts: DraftStore,
    cache: CacheService,
) -> SagaOutcome:
    """Apply the staged edit to the provider, then to the local profile.

    If the local write fails, the provider email is put back to its previous
    value. That compensation runs once and its outcome is only recorded.
    """
    failure = require_active_user(user)
    if failure:
        return SagaOutcome(failure)

    staged = get_profile_data(drafts, user)
    if not isinstance(staged, Ok):
        return SagaOutcome(staged)
    draft: ProfileDraft = staged.value
    previous_email = user.email

    def update_provider() -> Result:
        response = auth.update_credentials(email=draft.email, metadata={"full_name": draft.name})
        if not response.ok:
            return ProviderFailure(response.error)
        return Ok()

    def revert_provider() -> Result:
        response = auth.update_credentials(email=previous_email)
        if not response.ok:
            return ProviderFailure(response.error)
        return Ok()

    def update_local() -> Result:
        try:
            user.name = draft.name
            user.email = draft.email
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Profile update failed for %s", user.id)
            return StoreFailure("データベース更新に失敗しました")
        return Ok(user)

    outcome = (
        Saga("profile_update")
        .step("provider_credentials", update_provider, compensation=revert_provider)
        .step("local_profile", update_local)
        .run()
    )

    if outcome.ok:
        drafts.evict(PROFILE_DRAFT)
        revalidate_path(cache, PROFILE_EDIT_PATH)
        revalidate_path(cache, LISTING_PATH)
    return outcome


@store_boundary("アカウントの無効化に失敗しました")
def deactivate_account(db: Session, user: UserProfile | None, auth: AuthClient, cache: CacheService) -> Result:
    """Mark the caller's profile inactive and end their session. There is no way back."""
    failure = require_user(user)
    if failure:
        return failure

    user.is_active = False
    db.commit()

    revalidate_path(cache, PROFILE_EDIT_PATH)
    revalidate_path(cache, LISTING_PATH)
    auth.end_session()
    logger.info("Profile %s deactivated", user.id)
    return Ok()
