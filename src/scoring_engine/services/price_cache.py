"""
Redis read-through cache for dynamic price documents.
Checkout and display paths read prices far more often than they change.
"""

import json
from typing import Dict, Optional

import redis
import structlog

logger = structlog.get_logger()


def get_cache_key(prefix: str, *args) -> str:
    """Generate cache key"""
    return f"{prefix}:{'_'.join(str(arg) for arg in args)}"


class PriceCache:
    """Caches price documents by product id; a missing client disables caching"""

    def __init__(self, client: Optional[redis.Redis] = None, ttl: int = 300):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_config(cls, redis_config: Dict) -> 'PriceCache':
        """Connect using REDIS_CONFIG; falls back to a disabled cache"""
        if not redis_config.get('enabled'):
            return cls(None, redis_config.get('ttl', 300))
        try:
            redis_params = {
                'host': redis_config.get('host'),
                'port': redis_config.get('port'),
                'db': redis_config.get('db'),
                'decode_responses': True
            }
            if redis_config.get('password'):
                redis_params['password'] = redis_config['password']
            if redis_config.get('ssl'):
                redis_params['ssl'] = True

            client = redis.Redis(**redis_params)
            client.ping()
            logger.info("Redis connection established",
                        host=redis_config.get('host'), port=redis_config.get('port'))
            return cls(client, redis_config.get('ttl', 300))
        except redis.RedisError as e:
            logger.error("Failed to connect to Redis", error=str(e))
            return cls(None, redis_config.get('ttl', 300))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, product_id: str) -> Optional[Dict]:
        if not self.client:
            return None
        try:
            data = self.client.get(get_cache_key('price', product_id))
            if data:
                self.client.incr("cache:hits")
                return json.loads(data)
            self.client.incr("cache:misses")
            return None
        except redis.RedisError as e:
            logger.error("Cache get error", error=str(e))
            return None

    def set(self, product_id: str, document: Dict):
        if not self.client:
            return
        try:
            self.client.setex(get_cache_key('price', product_id), self.ttl, json.dumps(document))
        except redis.RedisError as e:
            logger.error("Cache set error", error=str(e))

    def invalidate(self, product_id: str):
        if not self.client:
            return
        try:
            self.client.delete(get_cache_key('price', product_id))
        except redis.RedisError as e:
            logger.error("Cache delete error", error=str(e))

    def stats(self) -> Dict:
        if not self.client:
            return {'enabled': False}
        try:
            hits = int(self.client.get("cache:hits") or 0)
            misses = int(self.client.get("cache:misses") or 0)
            total = hits + misses
            return {
                'enabled': True,
                'hits': hits,
                'misses': misses,
                'hit_rate': round(hits / total * 100, 2) if total else 0
            }
        except redis.RedisError as e:
            logger.error("Cache stats error", error=str(e))
            return {'enabled': True, 'error': str(e)}

    def close(self):
        if self.client:
            self.client.close()
