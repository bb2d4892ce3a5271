"""Authentication service: current-user resolution, sign-up, sign-in and password flows."""

import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..integrations.drafts import DraftStore
from ..results import (
    ACCOUNT_INACTIVE,
    AccountInactive,
    InvalidInput,
    NotFound,
    Ok,
    ProviderFailure,
    Result,
    store_boundary,
)
from .models import UserProfile
from .provider import AuthClient
from .schemas import SignUpDraft

logger = logging.getLogger(__name__)

SIGN_UP_DRAFT = "sign_up"
MIN_PASSWORD_LENGTH = 6


def get_profile_by_email(db: Session, email: str) -> UserProfile | None:
    return db.query(UserProfile).filter(UserProfile.email == email).first()


def get_profile_by_external_id(db: Session, external_auth_id: str) -> UserProfile | None:
    return db.query(UserProfile).filter(UserProfile.external_auth_id == external_auth_id).first()


def get_current_user(db: Session, auth: AuthClient) -> UserProfile | None:
    """Profile of the caller, or None when there is no provider session or no matching profile."""
    subject = auth.current_subject()
    if not subject:
        return None
    return get_profile_by_external_id(db, subject)


def save_sign_up(db: Session, drafts: DraftStore, email: str, password: str, name: str) -> Result:
    """Validate the sign-up form and stage it for confirmation."""
    if not email or not password or not name:
        return InvalidInput("メールアドレス、パスワード、名前は必須項目です")

    if get_profile_by_email(db, email):
        return InvalidInput("メールアドレスはすでに使用されています")

    if len(password) < MIN_PASSWORD_LENGTH:
        return InvalidInput(f"パスワードは{MIN_PASSWORD_LENGTH}文字以上である必要があります")

    draft = SignUpDraft(email=email, password=password, name=name)
    drafts.save(SIGN_UP_DRAFT, draft.model_dump())
    return Ok(draft)


def get_sign_up_data(drafts: DraftStore) -> SignUpDraft | None:
    """The staged sign-up, or None if absent or unreadable (unreadable drafts are dropped)."""
    envelope = drafts.load(SIGN_UP_DRAFT)
    if envelope is None:
        return None
    try:
        return SignUpDraft.model_validate(envelope.data)
    except ValidationError:
        logger.warning("Discarding malformed sign-up draft")
        drafts.evict(SIGN_UP_DRAFT)
        return None


@store_boundary("プロフィールの作成に失敗しました")
def sign_up(db: Session, auth: AuthClient, drafts: DraftStore, redirect_url: str) -> Result:
    """Register the staged sign-up with the provider and create the local profile.

    A provider account created here is not rolled back if the profile insert
    fails.
    """
    draft = get_sign_up_data(drafts)
    if draft is None:
        return NotFound("登録データが見つかりません。もう一度入力してください")

    response = auth.register(
        draft.email,
        draft.password,
        {"full_name": draft.name},
        redirect_url,
    )
    if not response.ok:
        return ProviderFailure(response.error)

    profile = UserProfile(
        external_auth_id=response.user_id,
        name=draft.name,
        email=draft.email,
        is_active=True,
    )
    db.add(profile)
    db.commit()

    drafts.evict(SIGN_UP_DRAFT)
    logger.info("Registered profile %s", profile.id)
    return Ok(profile)


def sign_in(db: Session, auth: AuthClient, email: str, password: str) -> Result:
    """Authenticate with the provider and reject missing or deactivated profiles."""
    response = auth.authenticate(email, password)
    if not response.ok:
        return ProviderFailure(response.error)

    profile = get_profile_by_external_id(db, response.user_id)
    if profile is None or not profile.is_active:
        auth.end_session()
        logger.info("Rejected sign-in for inactive or unknown profile (subject=%s)", response.user_id)
        return AccountInactive(ACCOUNT_INACTIVE)

    return Ok(profile)


def forgot_password(auth: AuthClient, email: str, redirect_url: str) -> Result:
    if not email:
        return InvalidInput("メールアドレスは必須です")

    response = auth.initiate_password_reset(email, redirect_url)
    if not response.ok:
        return ProviderFailure("パスワードリセットメールの送信に失敗しました")

    return Ok("送信したメールを確認してください")


def reset_password(auth: AuthClient, password: str, confirm_password: str) -> Result:
    if not password or not confirm_password:
        return InvalidInput("パスワードと確認用パスワードは必須項目です")

    if password != confirm_password:
        return InvalidInput("パスワードと確認用パスワードが一致しません")

    response = auth.update_credentials(password=password)
    if not response.ok:
        return ProviderFailure("パスワードの更新に失敗しました")

    return Ok("パスワードを更新しました")


def sign_out(auth: AuthClient) -> None:
    auth.end_session()


def confirm_email_link(auth: AuthClient, token_hash: str, otp_type: str) -> Result:
    """Exchange an emailed sign-up or recovery link for a provider session."""
    if not token_hash or not otp_type:
        return InvalidInput("リンクが無効です")

    response = auth.verify_email_link(token_hash, otp_type)
    if not response.ok:
        return ProviderFailure(response.error)

    return Ok(otp_type)
