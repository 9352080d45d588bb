import redis
import json
import logging
from typing import Optional, Dict, Any, List

from config import Config

logger = logging.getLogger(__name__)

class CacheService:
    """Redis-based caching service for reference data, leaderboards and rate limits"""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 enabled: bool = True, client: Optional[redis.Redis] = None):
        self.redis_client = None
        if client is not None:
            self.redis_client = client
            return
        if not enabled:
            logger.info("Redis cache disabled by configuration")
            return
        try:
            self.redis_client = redis.Redis(
                host=host,
                port=port,
                db=db,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.redis_client.ping()
            logger.info(f"Redis cache connected successfully to {host}:{port}")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.redis_client = None
        except Exception as e:
            logger.error(f"Redis initialization error: {e}")
            self.redis_client = None

    def cache_json(self, key: str, data: Any, ttl: int = 3600) -> bool:
        """Store a JSON-serializable payload under key with TTL"""
        if not self.redis_client:
            return False

        try:
            value = json.dumps(data, default=str)
            self.redis_client.setex(key, ttl, value)
            logger.debug(f"Cached {key} with TTL {ttl}s")
            return True
        except Exception as e:
            logger.error(f"Failed to cache {key}: {e}")
            return False

    def get_cached_json(self, key: str) -> Optional[Any]:
        """Retrieve a cached JSON payload"""
        if not self.redis_client:
            return None

        try:
            cached = self.redis_client.get(key)
            if cached:
                logger.debug(f"Cache hit for {key}")
                return json.loads(cached)
            logger.debug(f"Cache miss for {key}")
            return None
        except Exception as e:
            logger.error(f"Failed to retrieve cached {key}: {e}")
            return None

    def invalidate(self, key: str) -> bool:
        if not self.redis_client:
            return False

        try:
            self.redis_client.delete(key)
            return True
        except Exception as e:
            logger.error(f"Failed to invalidate {key}: {e}")
            return False

    def cache_question(self, question_id: str, question_data: Dict[str, Any], ttl: int = 3600) -> bool:
        """Cache public question payload (default 1 hour)"""
        return self.cache_json(f"question:{question_id}", question_data, ttl)

    def get_cached_question(self, question_id: str) -> Optional[Dict[str, Any]]:
        return self.get_cached_json(f"question:{question_id}")

    def cache_categories(self, categories: List[Dict[str, Any]], ttl: int = 86400) -> bool:
        """Cache the NCLEX category list (default 1 day)"""
        return self.cache_json("categories", categories, ttl)

    def get_cached_categories(self) -> Optional[List[Dict[str, Any]]]:
        return self.get_cached_json("categories")

    def cache_leaderboard(self, limit: int, entries: List[Dict[str, Any]], ttl: int = 300) -> bool:
        """Cache leaderboard snapshot (default 5 minutes)"""
        return self.cache_json(f"leaderboard:{limit}", entries, ttl)

    def get_cached_leaderboard(self, limit: int) -> Optional[List[Dict[str, Any]]]:
        return self.get_cached_json(f"leaderboard:{limit}")

    def increment_rate_limit(self, identifier: str, limit: int = 10, window: int = 3600) -> bool:
        """Increment fixed-window rate limit counter; True when the request is allowed"""
        if not self.redis_client:
            return True

        try:
            key = f"rate_limit:{identifier}"
            current = self.redis_client.incr(key)
            if current == 1:
                self.redis_client.expire(key, window)

            if current > limit:
                logger.warning(f"Rate limit exceeded for {identifier}: {current}/{limit}")
                return False

            logger.debug(f"Rate limit check passed for {identifier}: {current}/{limit}")
            return True
        except Exception as e:
            logger.error(f"Rate limit check failed for {identifier}: {e}")
            return True

    def clear_cache(self, pattern: str = "*") -> bool:
        """Clear cache entries matching pattern"""
        if not self.redis_client:
            return False

        try:
            keys = self.redis_client.keys(pattern)
            if keys:
                self.redis_client.delete(*keys)
                logger.info(f"Cleared {len(keys)} cache entries matching '{pattern}'")
            return True
        except Exception as e:
            logger.error(f"Failed to clear cache for pattern '{pattern}': {e}")
            return False

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        if not self.redis_client:
            return {"status": "disconnected", "stats": {}}

        try:
            info = self.redis_client.info()
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "status": "connected",
                "stats": {
                    "total_keys": self.redis_client.dbsize(),
                    "used_memory": info.get("used_memory_human", "N/A"),
                    "connected_clients": info.get("connected_clients", 0),
                    "keyspace_hits": hits,
                    "keyspace_misses": misses,
                    "hit_rate": f"{(hits / max(1, hits + misses) * 100):.1f}%"
                }
            }
        except Exception as e:
            logger.error(f"Failed to get cache stats: {e}")
            return {"status": "error", "stats": {}}


cache_service = None

def get_cache_service() -> CacheService:
    """Get or create the global cache service instance"""
    global cache_service
    if cache_service is None:
        cache_service = CacheService(
            host=Config.REDIS_HOST,
            port=Config.REDIS_PORT,
            db=Config.REDIS_DB,
            enabled=Config.CACHE_ENABLED,
        )
    return cache_service
