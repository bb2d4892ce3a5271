"""Post view schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class PostView(BaseModel):
    id: UUID
    title: str
    content: str
    author_id: UUID
    author_name: str
    parent_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_post(cls, post, author_name: str) -> "PostView":
        return cls(
            id=post.id,
            title=post.title or "",
            content=post.content,
            author_id=post.author_id,
            author_name=author_name,
            parent_id=post.parent_id,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class PostSummary(PostView):
    reply_count: int = 0


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class PostPage(BaseModel):
    posts: list[PostSummary]
    pagination: Pagination


class PostDetail(BaseModel):
    post: PostView
    is_owner: bool


class Thread(BaseModel):
    post: PostView
    replies: list[PostView]
