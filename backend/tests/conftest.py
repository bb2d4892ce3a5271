"""Shared test fixtures."""

import functools
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from board.audit.models import AuditLog
from board.auth.models import UserProfile
from board.auth.provider import AuthClient, ProviderResponse, ProviderSession
from board.database.base import Base
from board.integrations.cache import MemoryCacheService
from board.integrations.drafts import DraftStore
from board.posts.models import Post

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [UserProfile, Post, AuditLog]

PASSWORD = "secret123"


class FakeAuthProvider:
    """In-memory stand-in for the hosted auth provider."""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.signed_out: list[str] = []
        self.sign_ups: list[dict] = []
        self.updates: list[dict] = []
        self.update_errors: list[str | None] = []
        self.reset_requests: list[tuple[str, str]] = []
        self.otp_tokens: dict[str, str] = {}

    def add_account(self, email: str, password: str = PASSWORD, user_id: str | None = None) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.accounts[email] = {"password": password, "user_id": user_id, "metadata": {}}
        return user_id

    def _issue(self, user_id: str) -> ProviderSession:
        access, refresh = f"at-{uuid.uuid4().hex}", f"rt-{uuid.uuid4().hex}"
        self.access_tokens[access] = user_id
        self.refresh_tokens[refresh] = user_id
        return ProviderSession(access_token=access, refresh_token=refresh, user_id=user_id)

    def expire_access_tokens(self):
        self.access_tokens.clear()

    def sign_up(self, email, password, metadata, redirect_to):
        self.sign_ups.append({"email": email, "metadata": metadata, "redirect_to": redirect_to})
        if email in self.accounts:
            return ProviderResponse(error="User already registered")
        user_id = self.add_account(email, password)
        self.accounts[email]["metadata"] = dict(metadata)
        return ProviderResponse(user_id=user_id)

    def sign_in_with_password(self, email, password):
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            return ProviderResponse(error="Invalid login credentials")
        return ProviderResponse(user_id=account["user_id"], session=self._issue(account["user_id"]))

    def sign_out(self, access_token):
        self.signed_out.append(access_token)
        self.access_tokens.pop(access_token, None)

    def get_user(self, access_token):
        user_id = self.access_tokens.get(access_token)
        if user_id is None:
            return ProviderResponse(error="invalid JWT")
        return ProviderResponse(user_id=user_id)

    def refresh_session(self, refresh_token):
        user_id = self.refresh_tokens.pop(refresh_token, None)
        if user_id is None:
            return ProviderResponse(error="Invalid Refresh Token")
        return ProviderResponse(user_id=user_id, session=self._issue(user_id))

    def update_user(self, access_token, refresh_token, *, email=None, password=None, metadata=None):
        self.updates.append({"email": email, "password": password, "metadata": metadata})
        if self.update_errors:
            error = self.update_errors.pop(0)
            if error:
                return ProviderResponse(error=error)
        user_id = self.access_tokens.get(access_token)
        if user_id is None:
            return ProviderResponse(error="invalid JWT")
        for account in self.accounts.values():
            if account["user_id"] == user_id and password:
                account["password"] = password
        return ProviderResponse(user_id=user_id)

    def reset_password_for_email(self, email, redirect_to):
        self.reset_requests.append((email, redirect_to))
        return ProviderResponse()

    def verify_otp(self, token_hash, otp_type):
        user_id = self.otp_tokens.pop(token_hash, None)
        if user_id is None:
            return ProviderResponse(error="Email link is invalid or has expired")
        return ProviderResponse(user_id=user_id, session=self._issue(user_id))


@pytest.fixture
def session_factory():
    """Session factory over a single in-memory SQLite database.

    Note: SQLite doesn't support all PostgreSQL features,
    but works for service and route testing.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider():
    return FakeAuthProvider()


@pytest.fixture
def cookie():
    """Stands in for the signed session cookie."""
    return {}


@pytest.fixture
def auth(provider, cookie):
    return AuthClient(provider, cookie)


@pytest.fixture
def cache():
    return MemoryCacheService()


@pytest.fixture
def drafts(cache, cookie):
    return DraftStore(cache, cookie, ttl=600)


def _make_profile(db, email="taro@example.com", name="山田太郎", is_active=True, provider=None):
    """Persist a profile, optionally with a matching provider account."""
    external_id = provider.add_account(email) if provider else str(uuid.uuid4())
    profile = UserProfile(
        id=uuid.uuid4(),
        external_auth_id=external_id,
        name=name,
        email=email,
        is_active=is_active,
    )
    db.add(profile)
    db.commit()
    return profile


def _make_post(db, author, title="はじめての投稿", content="本文です", parent=None, is_deleted=False, created_at=None):
    post = Post(
        id=uuid.uuid4(),
        title="" if parent else title,
        content=content,
        author_id=author.id,
        parent_id=parent.id if parent else None,
        is_deleted=is_deleted,
    )
    if created_at is not None:
        post.created_at = created_at
    db.add(post)
    db.commit()
    return post


@pytest.fixture
def password():
    """Password every fake provider account is created with."""
    return PASSWORD


@pytest.fixture
def post_factory(db_session):
    """Persist posts or replies directly, bypassing the service layer."""
    return functools.partial(_make_post, db_session)


@pytest.fixture
def test_user(db_session, provider):
    return _make_profile(db_session, provider=provider)


@pytest.fixture
def other_user(db_session, provider):
    return _make_profile(db_session, email="hanako@example.com", name="佐藤花子", provider=provider)


@pytest.fixture
def inactive_user(db_session, provider):
    return _make_profile(db_session, email="gone@example.com", name="退会済み", is_active=False, provider=provider)


@pytest.fixture
def signed_in(auth, test_user):
    """The auth client with test_user signed in."""
    response = auth.authenticate(test_user.email, PASSWORD)
    assert response.ok
    return auth


@pytest.fixture
def test_post(db_session, test_user):
    return _make_post(db_session, test_user)
