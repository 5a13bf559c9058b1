from .redis import PageStore, PageStoreError, RedisPageStore, create_redis_client

__all__ = ["PageStore", "PageStoreError", "RedisPageStore", "create_redis_client"]
