"""Reply service: single-level replies attached to a top-level post."""

import logging

from sqlalchemy.orm import Session

from ..auth.models import UserProfile
from ..integrations.cache import CacheService, revalidate_path
from ..posts.models import Post
from ..posts.schemas import PostView, Thread
from ..posts.service import LISTING_PATH, POST_NOT_FOUND, get_live_post, post_path, to_uuid
from ..results import (
    Forbidden,
    InvalidInput,
    NotAReply,
    NotFound,
    Ok,
    Result,
    require_active_user,
    require_user,
    store_boundary,
)

logger = logging.getLogger(__name__)

CONTENT_REQUIRED = "返信内容は必須です"


@store_boundary("返信の投稿に失敗しました")
def create_reply(db: Session, user: UserProfile | None, parent_id, content: str, cache: CacheService) -> Result:
    failure = require_active_user(user)
    if failure:
        return failure
    if not content:
        return InvalidInput(CONTENT_REQUIRED)

    parent = get_live_post(db, parent_id)
    if parent is None or parent.parent_id is not None:
        return NotFound("返信先の投稿が見つかりません")

    reply = Post(title="", content=content, author_id=user.id, parent_id=parent.id)
    db.add(reply)
    db.commit()

    revalidate_path(cache, post_path(parent.id))
    revalidate_path(cache, LISTING_PATH)
    logger.info("Reply %s to %s created by %s", reply.id, parent.id, user.id)
    return Ok(reply)


def get_post_with_replies(db: Session, user: UserProfile | None, post_id) -> Result:
    """The post and its live replies from active authors, oldest first."""
    failure = require_user(user)
    if failure:
        return failure

    uid = to_uuid(post_id)
    row = None
    if uid is not None:
        row = (
            db.query(Post, UserProfile.name)
            .join(UserProfile, Post.author_id == UserProfile.id)
            .filter(Post.id == uid, Post.is_deleted.is_(False))
            .first()
        )
    if row is None:
        return NotFound(POST_NOT_FOUND)
    post, author_name = row

    replies = (
        db.query(Post, UserProfile.name)
        .join(UserProfile, Post.author_id == UserProfile.id)
        .filter(
            Post.parent_id == post.id,
            Post.is_deleted.is_(False),
            UserProfile.is_active.is_(True),
        )
        .order_by(Post.created_at.asc(), Post.id.asc())
        .all()
    )

    return Ok(
        Thread(
            post=PostView.from_post(post, author_name),
            replies=[PostView.from_post(r, name) for r, name in replies],
        )
    )


@store_boundary("返信の更新に失敗しました")
def update_reply(db: Session, user: UserProfile | None, reply_id, content: str, cache: CacheService) -> Result:
    failure = require_active_user(user)
    if failure:
        return failure
    if not content:
        return InvalidInput(CONTENT_REQUIRED)

    reply = get_live_post(db, reply_id)
    if reply is None:
        return NotFound("返信が見つかりません")
    if reply.author_id != user.id:
        return Forbidden("この返信を編集する権限がありません")
    if reply.parent_id is None:
        return NotAReply("この投稿は返信ではありません")

    reply.content = content
    db.commit()

    revalidate_path(cache, post_path(reply.parent_id))
    return Ok(reply)
