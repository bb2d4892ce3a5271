"""Supabase Auth provider backed by the ``supabase`` client library.

SDK exceptions are mapped onto ProviderResponse errors so callers only
ever branch on ``response.ok``.
"""

import logging
import threading

import httpx
from supabase import AuthError, Client, ClientOptions, create_client

from .provider import AUTH_SESSION_MISSING, ProviderResponse, ProviderSession

logger = logging.getLogger(__name__)

PROVIDER_UNREACHABLE = "認証サービスに接続できません"


def _to_session(session) -> ProviderSession | None:
    if session is None or not session.access_token:
        return None
    return ProviderSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token or "",
        user_id=str(session.user.id) if session.user else "",
    )


def _failure(action: str, exc: Exception) -> ProviderResponse:
    if isinstance(exc, AuthError):
        logger.info("Supabase %s rejected: %s", action, exc.message)
        return ProviderResponse(error=exc.message)
    logger.warning("Supabase %s failed: %s", action, exc)
    return ProviderResponse(error=PROVIDER_UNREACHABLE)


class SupabaseAuthProvider:
    """AuthProvider over ``create_client(...).auth``.

    The SDK client remembers the last session it saw. One client is shared
    across requests, so calls that store a session are serialized and the
    board never reads the stored session except right after ``set_session``.
    """

    def __init__(self, supabase_url: str, anon_key: str, client: Client | None = None) -> None:
        if client is None:
            client = create_client(
                supabase_url,
                anon_key,
                options=ClientOptions(auto_refresh_token=False, persist_session=False),
            )
        self._auth = client.auth
        self._lock = threading.Lock()

    def sign_up(self, email: str, password: str, metadata: dict, redirect_to: str) -> ProviderResponse:
        options: dict = {"data": metadata}
        if redirect_to:
            options["email_redirect_to"] = redirect_to
        try:
            with self._lock:
                response = self._auth.sign_up({"email": email, "password": password, "options": options})
        except (AuthError, httpx.HTTPError) as e:
            return _failure("sign_up", e)
        if response.user is None:
            return ProviderResponse(error="ユーザー登録に失敗しました")
        return ProviderResponse(user_id=str(response.user.id), session=_to_session(response.session))

    def sign_in_with_password(self, email: str, password: str) -> ProviderResponse:
        try:
            with self._lock:
                response = self._auth.sign_in_with_password({"email": email, "password": password})
        except (AuthError, httpx.HTTPError) as e:
            return _failure("sign_in", e)
        session = _to_session(response.session)
        if session is None:
            return ProviderResponse(error="ログインに失敗しました")
        return ProviderResponse(user_id=session.user_id, session=session)

    def sign_out(self, access_token: str) -> None:
        try:
            self._auth.admin.sign_out(access_token)
        except (AuthError, httpx.HTTPError) as e:
            # The local session is dropped regardless; an already-revoked token is fine
            logger.info("Supabase sign_out reported: %s", e)

    def get_user(self, access_token: str) -> ProviderResponse:
        if not access_token:
            return ProviderResponse(error=AUTH_SESSION_MISSING)
        try:
            response = self._auth.get_user(access_token)
        except (AuthError, httpx.HTTPError) as e:
            return _failure("get_user", e)
        if response is None or response.user is None:
            return ProviderResponse(error=AUTH_SESSION_MISSING)
        return ProviderResponse(user_id=str(response.user.id))

    def refresh_session(self, refresh_token: str) -> ProviderResponse:
        if not refresh_token:
            return ProviderResponse(error=AUTH_SESSION_MISSING)
        try:
            with self._lock:
                response = self._auth.refresh_session(refresh_token)
        except (AuthError, httpx.HTTPError) as e:
            return _failure("refresh_session", e)
        session = _to_session(response.session)
        if session is None:
            return ProviderResponse(error=AUTH_SESSION_MISSING)
        return ProviderResponse(user_id=session.user_id, session=session)

    def update_user(
        self,
        access_token: str,
        refresh_token: str,
        *,
        email: str | None = None,
        password: str | None = None,
        metadata: dict | None = None,
    ) -> ProviderResponse:
        attributes: dict = {}
        if email is not None:
            attributes["email"] = email
        if password is not None:
            attributes["password"] = password
        if metadata is not None:
            attributes["data"] = metadata
        try:
            with self._lock:
                current = self._auth.set_session(access_token, refresh_token)
                response = self._auth.update_user(attributes)
        except (AuthError, httpx.HTTPError) as e:
            return _failure("update_user", e)
        user_id = str(response.user.id) if response.user else None
        return ProviderResponse(user_id=user_id, session=_to_session(current.session))

    def reset_password_for_email(self, email: str, redirect_to: str) -> ProviderResponse:
        options = {"redirect_to": redirect_to} if redirect_to else {}
        try:
            self._auth.reset_password_for_email(email, options)
        except (AuthError, httpx.HTTPError) as e:
            return _failure("reset_password_for_email", e)
        return ProviderResponse()

    def verify_otp(self, token_hash: str, otp_type: str) -> ProviderResponse:
        try:
            with self._lock:
                response = self._auth.verify_otp({"token_hash": token_hash, "type": otp_type})
        except (AuthError, httpx.HTTPError) as e:
            return _failure("verify_otp", e)
        session = _to_session(response.session)
        if session is None:
            return ProviderResponse(error="リンクが無効か期限切れです")
        return ProviderResponse(user_id=session.user_id, session=session)
