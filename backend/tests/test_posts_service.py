"""Tests for post service."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from board.integrations.cache import view_key
from board.posts.models import Post
from board.posts.service import (
    POSTS_PER_PAGE,
    create_post,
    delete_post,
    get_post,
    get_posts,
    update_post,
)
from board.results import (
    AccountInactive,
    Forbidden,
    InvalidInput,
    NotFound,
    Ok,
    StoreFailure,
    Unauthenticated,
)

TITLE_ERROR = "タイトルは必須で、150文字以内である必要があります"


def _seed(post_factory, author, count, start=None):
    start = start or datetime(2026, 1, 1, tzinfo=UTC)
    return [
        post_factory(author, title=f"投稿{i}", created_at=start + timedelta(minutes=i))
        for i in range(count)
    ]


class TestCreatePost:
    def test_creates_post(self, db_session, test_user, cache):
        result = create_post(db_session, test_user, "タイトル", "本文", cache)

        assert isinstance(result, Ok)
        post = db_session.get(Post, result.value.id)
        assert post.author_id == test_user.id
        assert post.parent_id is None
        assert post.is_deleted is False

    def test_title_at_limit_is_accepted(self, db_session, test_user, cache):
        assert isinstance(create_post(db_session, test_user, "あ" * 150, "本文", cache), Ok)

    def test_title_over_limit_is_rejected(self, db_session, test_user, cache):
        result = create_post(db_session, test_user, "あ" * 151, "本文", cache)
        assert result == InvalidInput(TITLE_ERROR)
        assert db_session.query(Post).count() == 0

    def test_empty_title(self, db_session, test_user, cache):
        assert create_post(db_session, test_user, "", "本文", cache) == InvalidInput(TITLE_ERROR)

    def test_empty_content(self, db_session, test_user, cache):
        assert create_post(db_session, test_user, "タイトル", "", cache) == InvalidInput("内容は必須です")

    def test_anonymous(self, db_session, cache):
        assert isinstance(create_post(db_session, None, "タイトル", "本文", cache), Unauthenticated)

    def test_inactive_author(self, db_session, inactive_user, cache):
        result = create_post(db_session, inactive_user, "タイトル", "本文", cache)
        assert isinstance(result, AccountInactive)
        assert db_session.query(Post).count() == 0

    def test_invalidates_listing(self, db_session, test_user, cache):
        get_posts(db_session, 1, cache)
        assert cache.get(view_key("/posts", "page=1")) is not None

        create_post(db_session, test_user, "タイトル", "本文", cache)

        assert cache.get(view_key("/posts", "page=1")) is None
        assert len(get_posts(db_session, 1, cache).posts) == 1

    def test_store_failure(self, db_session, test_user, cache):
        with patch.object(db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("down"))):
            result = create_post(db_session, test_user, "タイトル", "本文", cache)
        assert result == StoreFailure("投稿に失敗しました")


class TestUpdatePost:
    def test_owner_can_update(self, db_session, test_user, test_post, cache):
        result = update_post(db_session, test_user, str(test_post.id), "新しいタイトル", "新しい本文", cache)

        assert isinstance(result, Ok)
        db_session.refresh(test_post)
        assert (test_post.title, test_post.content) == ("新しいタイトル", "新しい本文")

    def test_same_update_twice_is_idempotent(self, db_session, test_user, test_post, cache):
        first = update_post(db_session, test_user, test_post.id, "同じ", "同じ本文", cache)
        second = update_post(db_session, test_user, test_post.id, "同じ", "同じ本文", cache)
        assert isinstance(first, Ok) and isinstance(second, Ok)
        db_session.refresh(test_post)
        assert test_post.title == "同じ"

    def test_non_owner_is_forbidden_and_nothing_changes(self, db_session, other_user, test_post, cache):
        result = update_post(db_session, other_user, test_post.id, "乗っ取り", "本文", cache)

        assert result == Forbidden("この投稿を編集する権限がありません")
        db_session.refresh(test_post)
        assert test_post.title == "はじめての投稿"

    def test_missing_post(self, db_session, test_user, cache):
        result = update_post(db_session, test_user, uuid.uuid4(), "タイトル", "本文", cache)
        assert result == NotFound("投稿が見つかりません")

    def test_malformed_id(self, db_session, test_user, cache):
        assert isinstance(update_post(db_session, test_user, "not-a-uuid", "タイトル", "本文", cache), NotFound)

    def test_deleted_post(self, db_session, test_user, cache, post_factory):
        post = post_factory(test_user, is_deleted=True)
        assert isinstance(update_post(db_session, test_user, post.id, "タイトル", "本文", cache), NotFound)

    def test_validation_runs_before_lookup(self, db_session, test_user, cache):
        result = update_post(db_session, test_user, uuid.uuid4(), "あ" * 151, "本文", cache)
        assert result == InvalidInput(TITLE_ERROR)

    def test_invalidates_detail_view(self, db_session, test_user, test_post, cache):
        cache.set(view_key(f"/posts/{test_post.id}"), "stale", 60)
        update_post(db_session, test_user, test_post.id, "更新", "本文", cache)
        assert cache.get(view_key(f"/posts/{test_post.id}")) is None

    def test_reply_cannot_be_given_a_title(self, db_session, test_user, test_post, cache, post_factory):
        reply = post_factory(test_user, parent=test_post, content="返信")

        result = update_post(db_session, test_user, reply.id, "返信にタイトル", "書き換え", cache)

        assert result == NotFound("投稿が見つかりません")
        db_session.refresh(reply)
        assert (reply.title, reply.content) == ("", "返信")

    def test_store_failure(self, db_session, test_user, test_post, cache):
        with patch.object(db_session, "commit", side_effect=OperationalError("UPDATE", {}, Exception("down"))):
            result = update_post(db_session, test_user, test_post.id, "更新", "更新本文", cache)

        assert result == StoreFailure("投稿の更新に失敗しました")
        db_session.refresh(test_post)
        assert (test_post.title, test_post.content) == ("はじめての投稿", "本文です")


class TestDeletePost:
    def test_soft_deletes(self, db_session, test_user, test_post, cache):
        assert isinstance(delete_post(db_session, test_user, test_post.id, cache), Ok)

        db_session.refresh(test_post)
        assert test_post.is_deleted is True
        assert db_session.query(Post).count() == 1

    def test_deleted_post_disappears_from_reads(self, db_session, test_user, test_post, cache):
        delete_post(db_session, test_user, test_post.id, cache)

        assert get_posts(db_session, 1, cache).posts == []
        assert isinstance(get_post(db_session, test_user, test_post.id), NotFound)

    def test_second_delete_is_not_found(self, db_session, test_user, test_post, cache):
        delete_post(db_session, test_user, test_post.id, cache)
        assert isinstance(delete_post(db_session, test_user, test_post.id, cache), NotFound)

    def test_non_owner(self, db_session, other_user, test_post, cache):
        result = delete_post(db_session, other_user, test_post.id, cache)
        assert result == Forbidden("この投稿を削除する権限がありません")
        db_session.refresh(test_post)
        assert test_post.is_deleted is False

    def test_store_failure(self, db_session, test_user, test_post, cache):
        with patch.object(db_session, "commit", side_effect=OperationalError("UPDATE", {}, Exception("down"))):
            result = delete_post(db_session, test_user, test_post.id, cache)

        assert result == StoreFailure("投稿の削除に失敗しました")
        db_session.refresh(test_post)
        assert test_post.is_deleted is False


class TestGetPosts:
    def test_empty(self, db_session, cache):
        page = get_posts(db_session, 1, cache)
        assert page.posts == []
        assert page.pagination.total_pages == 0
        assert page.pagination.has_next_page is False
        assert page.pagination.has_prev_page is False

    def test_newest_first_and_page_size(self, db_session, test_user, cache, post_factory):
        _seed(post_factory, test_user, POSTS_PER_PAGE + 3)

        first = get_posts(db_session, 1, cache)
        second = get_posts(db_session, 2, cache)

        assert len(first.posts) == POSTS_PER_PAGE
        assert first.posts[0].title == f"投稿{POSTS_PER_PAGE + 2}"
        assert [p.title for p in second.posts] == ["投稿2", "投稿1", "投稿0"]
        assert first.pagination.total_pages == 2
        assert first.pagination.has_next_page is True
        assert second.pagination.has_prev_page is True
        assert second.pagination.has_next_page is False

    @pytest.mark.parametrize("count", [1, 10, 11, 25])
    def test_pagination_law(self, db_session, test_user, cache, count, post_factory):
        _seed(post_factory, test_user, count)
        seen = []
        page = 1
        while True:
            result = get_posts(db_session, page, cache)
            assert result.pagination.total_pages == -(-count // POSTS_PER_PAGE)
            seen.extend(p.id for p in result.posts)
            if not result.pagination.has_next_page:
                break
            page += 1
        assert len(seen) == len(set(seen)) == count

    def test_page_below_one_is_clamped(self, db_session, test_user, cache, post_factory):
        _seed(post_factory, test_user, 2)
        page = get_posts(db_session, 0, cache)
        assert page.pagination.current_page == 1
        assert len(page.posts) == 2

    def test_excludes_replies_and_counts_them(self, db_session, test_user, other_user, test_post, cache, post_factory):
        post_factory(other_user, parent=test_post, content="返信1")
        post_factory(test_user, parent=test_post, content="返信2")
        post_factory(other_user, parent=test_post, content="削除済み", is_deleted=True)

        page = get_posts(db_session, 1, cache)

        assert len(page.posts) == 1
        assert page.posts[0].reply_count == 2
        assert page.posts[0].author_name == "山田太郎"

    def test_hides_deactivated_authors(self, db_session, test_user, inactive_user, test_post, cache, post_factory):
        post_factory(inactive_user, title="見えない投稿")
        post_factory(inactive_user, parent=test_post, content="見えない返信")

        page = get_posts(db_session, 1, cache)

        assert [p.title for p in page.posts] == ["はじめての投稿"]
        assert page.posts[0].reply_count == 0

    def test_served_from_cache_until_revalidated(self, db_session, test_user, cache, post_factory):
        get_posts(db_session, 1, cache)
        post_factory(test_user)
        assert get_posts(db_session, 1, cache).posts == []


class TestGetPost:
    def test_owner_flag(self, db_session, test_user, other_user, test_post):
        assert get_post(db_session, test_user, test_post.id).value.is_owner is True
        assert get_post(db_session, other_user, test_post.id).value.is_owner is False
        assert get_post(db_session, None, str(test_post.id)).value.is_owner is False

    def test_missing(self, db_session, test_user):
        assert get_post(db_session, test_user, uuid.uuid4()) == NotFound("投稿が見つかりません")

    def test_deactivated_author_is_hidden(self, db_session, inactive_user, post_factory):
        post = post_factory(inactive_user)
        assert isinstance(get_post(db_session, None, post.id), NotFound)
