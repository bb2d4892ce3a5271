"""Tests for cache service and view revalidation."""

from unittest.mock import patch

import redis

from board.integrations.cache import (
    MemoryCacheService,
    create_cache_service,
    revalidate_path,
    view_key,
)


class TestMemoryCacheService:
    def test_get_missing_returns_none(self):
        assert MemoryCacheService().get("any_key") is None

    def test_set_then_get(self):
        cache = MemoryCacheService()
        cache.set("key", "value", 60)
        assert cache.get("key") == "value"

    def test_expired_entry_is_gone(self):
        cache = MemoryCacheService()
        with patch("board.integrations.cache.time.monotonic", return_value=1000.0):
            cache.set("key", "value", 10)
        with patch("board.integrations.cache.time.monotonic", return_value=1011.0):
            assert cache.get("key") is None

    def test_json_round_trip(self):
        cache = MemoryCacheService()
        cache.set_json("key", {"名前": "太郎"}, 60)
        assert cache.get_json("key") == {"名前": "太郎"}

    def test_get_json_ignores_garbage(self):
        cache = MemoryCacheService()
        cache.set("key", "not json", 60)
        assert cache.get_json("key") is None

    def test_delete_prefix(self):
        cache = MemoryCacheService()
        cache.set("view:/posts|page=1", "a", 60)
        cache.set("view:/posts|page=2", "b", 60)
        cache.set("view:/posts/1|", "c", 60)
        assert cache.delete_prefix("view:/posts|") == 2
        assert cache.get("view:/posts/1|") == "c"


class TestRevalidatePath:
    def test_drops_every_variant_of_the_path_only(self):
        cache = MemoryCacheService()
        cache.set(view_key("/posts", "page=1"), "x", 60)
        cache.set(view_key("/posts", "page=3"), "x", 60)
        cache.set(view_key("/posts/abc"), "y", 60)

        revalidate_path(cache, "/posts")

        assert cache.get(view_key("/posts", "page=1")) is None
        assert cache.get(view_key("/posts", "page=3")) is None
        assert cache.get(view_key("/posts/abc")) == "y"


class TestCreateCacheService:
    def test_no_url_uses_memory(self):
        assert isinstance(create_cache_service(""), MemoryCacheService)

    def test_unreachable_redis_falls_back_to_memory(self):
        with patch(
            "board.integrations.cache.RedisCacheService",
            side_effect=redis.ConnectionError("refused"),
        ):
            assert isinstance(create_cache_service("redis://nowhere:6379/0"), MemoryCacheService)
