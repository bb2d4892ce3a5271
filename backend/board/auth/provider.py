"""External authentication provider protocol and the per-request auth client."""

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

SESSION_KEY = "auth"
AUTH_SESSION_MISSING = "Auth session missing!"


@dataclass
class ProviderSession:
    """Tokens issued by the provider for a signed-in user."""

    access_token: str
    refresh_token: str
    user_id: str


@dataclass
class ProviderResponse:
    """Outcome of a provider call: a user id and/or session, or an error message."""

    user_id: str | None = None
    session: ProviderSession | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AuthProvider(Protocol):
    """Protocol for external authentication providers."""

    def sign_up(self, email: str, password: str, metadata: dict, redirect_to: str) -> ProviderResponse: ...

    def sign_in_with_password(self, email: str, password: str) -> ProviderResponse: ...

    def sign_out(self, access_token: str) -> None: ...

    def get_user(self, access_token: str) -> ProviderResponse: ...

    def refresh_session(self, refresh_token: str) -> ProviderResponse: ...

    def update_user(
        self,
        access_token: str,
        refresh_token: str,
        *,
        email: str | None = None,
        password: str | None = None,
        metadata: dict | None = None,
    ) -> ProviderResponse: ...

    def reset_password_for_email(self, email: str, redirect_to: str) -> ProviderResponse: ...

    def verify_otp(self, token_hash: str, otp_type: str) -> ProviderResponse: ...


class AuthClient:
    """Binds a provider to one caller's session cookie.

    Provider tokens are kept under ``session["auth"]``; this is the only
    place that reads or writes them.
    """

    def __init__(self, provider: AuthProvider, session: MutableMapping) -> None:
        self._provider = provider
        self._session = session
        self._subject: str | None = None
        self._resolved = False

    def _tokens(self) -> dict | None:
        tokens = self._session.get(SESSION_KEY)
        return tokens if isinstance(tokens, dict) else None

    def _store(self, session: ProviderSession) -> None:
        self._session[SESSION_KEY] = {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
        }
        self._subject = session.user_id
        self._resolved = True

    def _clear(self) -> None:
        self._session.pop(SESSION_KEY, None)
        self._subject = None
        self._resolved = True

    def current_subject(self) -> str | None:
        """Provider subject id of the signed-in caller, refreshing an expired token once."""
        if self._resolved:
            return self._subject

        tokens = self._tokens()
        if not tokens:
            self._resolved = True
            return None

        response = self._provider.get_user(tokens.get("access_token", ""))
        if response.ok and response.user_id:
            self._subject = response.user_id
            self._resolved = True
            return self._subject

        refreshed = self._provider.refresh_session(tokens.get("refresh_token", ""))
        if refreshed.ok and refreshed.session:
            self._store(refreshed.session)
            return self._subject

        logger.info("Provider session no longer valid, clearing it")
        self._clear()
        return None

    def register(self, email: str, password: str, metadata: dict, redirect_to: str) -> ProviderResponse:
        return self._provider.sign_up(email, password, metadata, redirect_to)

    def authenticate(self, email: str, password: str) -> ProviderResponse:
        response = self._provider.sign_in_with_password(email, password)
        if response.ok and response.session:
            self._store(response.session)
        return response

    def end_session(self) -> None:
        tokens = self._tokens()
        if tokens and tokens.get("access_token"):
            self._provider.sign_out(tokens["access_token"])
        self._clear()

    def update_credentials(
        self,
        *,
        email: str | None = None,
        password: str | None = None,
        metadata: dict | None = None,
    ) -> ProviderResponse:
        tokens = self._tokens()
        if not tokens:
            return ProviderResponse(error=AUTH_SESSION_MISSING)
        response = self._provider.update_user(
            tokens.get("access_token", ""),
            tokens.get("refresh_token", ""),
            email=email,
            password=password,
            metadata=metadata,
        )
        if response.ok and response.session:
            self._store(response.session)
        return response

    def initiate_password_reset(self, email: str, redirect_to: str) -> ProviderResponse:
        return self._provider.reset_password_for_email(email, redirect_to)

    def verify_email_link(self, token_hash: str, otp_type: str) -> ProviderResponse:
        response = self._provider.verify_otp(token_hash, otp_type)
        if response.ok and response.session:
            self._store(response.session)
        return response
