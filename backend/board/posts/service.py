"""Post service: top-level post CRUD and the paginated listing."""

import logging
import math
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, aliased

from ..auth.models import UserProfile
from ..integrations.cache import CacheService, revalidate_path, view_key
from ..results import (
    Failure,
    Forbidden,
    InvalidInput,
    NotFound,
    Ok,
    Result,
    require_active_user,
    store_boundary,
)
from .models import TITLE_MAX_LENGTH, Post
from .schemas import Pagination, PostDetail, PostPage, PostSummary, PostView

logger = logging.getLogger(__name__)

POSTS_PER_PAGE = 10
LISTING_PATH = "/posts"
LISTING_CACHE_TTL = 300

POST_NOT_FOUND = "投稿が見つかりません"


def to_uuid(value) -> UUID | None:
    """Convert string to UUID, returning None on failure."""
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value))
    except (ValueError, AttributeError):
        return None


def post_path(post_id) -> str:
    return f"{LISTING_PATH}/{post_id}"


def get_live_post(db: Session, post_id) -> Post | None:
    """Post by id unless missing or soft-deleted."""
    uid = to_uuid(post_id)
    if uid is None:
        return None
    return db.query(Post).filter(Post.id == uid, Post.is_deleted.is_(False)).first()


def validate_post_fields(title: str, content: str) -> Failure | None:
    if not title or len(title) > TITLE_MAX_LENGTH:
        return InvalidInput(f"タイトルは必須で、{TITLE_MAX_LENGTH}文字以内である必要があります")
    if not content:
        return InvalidInput("内容は必須です")
    return None


@store_boundary("投稿に失敗しました")
def create_post(db: Session, user: UserProfile | None, title: str, content: str, cache: CacheService) -> Result:
    failure = require_active_user(user) or validate_post_fields(title, content)
    if failure:
        return failure

    post = Post(title=title, content=content, author_id=user.id)
    db.add(post)
    db.commit()

    revalidate_path(cache, LISTING_PATH)
    logger.info("Post %s created by %s", post.id, user.id)
    return Ok(post)


@store_boundary("投稿の更新に失敗しました")
def update_post(
    db: Session,
    user: UserProfile | None,
    post_id,
    title: str,
    content: str,
    cache: CacheService,
) -> Result:
    failure = require_active_user(user) or validate_post_fields(title, content)
    if failure:
        return failure

    post = get_live_post(db, post_id)
    if post is None:
        return NotFound(POST_NOT_FOUND)
    if post.author_id != user.id:
        return Forbidden("この投稿を編集する権限がありません")
    if post.parent_id is not None:
        # Replies keep an empty title; they are edited through update_reply
        return NotFound(POST_NOT_FOUND)

    post.title = title
    post.content = content
    db.commit()

    revalidate_path(cache, LISTING_PATH)
    revalidate_path(cache, post_path(post.id))
    return Ok(post)


@store_boundary("投稿の削除に失敗しました")
def delete_post(db: Session, user: UserProfile | None, post_id, cache: CacheService) -> Result:
    """Soft-delete a post owned by the caller."""
    failure = require_active_user(user)
    if failure:
        return failure

    post = get_live_post(db, post_id)
    if post is None:
        return NotFound(POST_NOT_FOUND)
    if post.author_id != user.id:
        return Forbidden("この投稿を削除する権限がありません")

    post.is_deleted = True
    db.commit()

    revalidate_path(cache, LISTING_PATH)
    revalidate_path(cache, post_path(post.id))
    logger.info("Post %s deleted by %s", post.id, user.id)
    return Ok(post)


def _query_posts_page(db: Session, page: int) -> PostPage:
    reply = aliased(Post)
    reply_author = aliased(UserProfile)
    reply_counts = (
        db.query(reply.parent_id.label("parent_id"), func.count(reply.id).label("reply_count"))
        .join(reply_author, reply.author_id == reply_author.id)
        .filter(
            reply.parent_id.isnot(None),
            reply.is_deleted.is_(False),
            reply_author.is_active.is_(True),
        )
        .group_by(reply.parent_id)
        .subquery()
    )

    listing = (
        db.query(Post)
        .join(UserProfile, Post.author_id == UserProfile.id)
        .filter(
            Post.parent_id.is_(None),
            Post.is_deleted.is_(False),
            UserProfile.is_active.is_(True),
        )
    )
    total = listing.count()

    rows = (
        listing.outerjoin(reply_counts, reply_counts.c.parent_id == Post.id)
        .with_entities(Post, UserProfile.name, func.coalesce(reply_counts.c.reply_count, 0))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset((page - 1) * POSTS_PER_PAGE)
        .limit(POSTS_PER_PAGE)
        .all()
    )

    total_pages = math.ceil(total / POSTS_PER_PAGE)
    posts = [
        PostSummary(**PostView.from_post(post, author_name).model_dump(), reply_count=int(count))
        for post, author_name, count in rows
    ]
    return PostPage(
        posts=posts,
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


def get_posts(db: Session, page: int, cache: CacheService) -> PostPage:
    """One page of live top-level posts by active authors, newest first."""
    page = max(int(page or 1), 1)
    key = view_key(LISTING_PATH, f"page={page}")

    cached = cache.get_json(key)
    if cached is not None:
        return PostPage.model_validate(cached)

    result = _query_posts_page(db, page)
    cache.set_json(key, result.model_dump(mode="json"), LISTING_CACHE_TTL)
    return result


def get_post(db: Session, user: UserProfile | None, post_id) -> Result:
    """A live post by an active author, flagged with whether the caller owns it."""
    uid = to_uuid(post_id)
    if uid is None:
        return NotFound(POST_NOT_FOUND)

    row = (
        db.query(Post, UserProfile.name)
        .join(UserProfile, Post.author_id == UserProfile.id)
        .filter(
            Post.id == uid,
            Post.is_deleted.is_(False),
            UserProfile.is_active.is_(True),
        )
        .first()
    )
    if row is None:
        return NotFound(POST_NOT_FOUND)

    post, author_name = row
    is_owner = user is not None and post.author_id == user.id
    return Ok(PostDetail(post=PostView.from_post(post, author_name), is_owner=is_owner))
