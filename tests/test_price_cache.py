"""
Tests for the Redis price cache
"""

import json
from unittest.mock import Mock, patch

import redis

from scoring_engine.services.price_cache import PriceCache, get_cache_key


class TestPriceCache:

    def setup_method(self):
        self.client = Mock()
        self.cache = PriceCache(self.client, ttl=120)

    def test_cache_key(self):
        assert get_cache_key('price', 'prod-1') == 'price:prod-1'

    def test_hit(self):
        self.client.get.return_value = json.dumps({'productId': 'prod-1'})

        assert self.cache.get('prod-1') == {'productId': 'prod-1'}
        self.client.incr.assert_called_with("cache:hits")

    def test_miss(self):
        self.client.get.return_value = None

        assert self.cache.get('prod-1') is None
        self.client.incr.assert_called_with("cache:misses")

    def test_set_uses_ttl(self):
        self.cache.set('prod-1', {'productId': 'prod-1'})

        self.client.setex.assert_called_once_with('price:prod-1', 120, json.dumps({'productId': 'prod-1'}))

    def test_redis_errors_are_logged_not_raised(self):
        self.client.get.side_effect = redis.ConnectionError("down")
        self.client.delete.side_effect = redis.ConnectionError("down")

        assert self.cache.get('prod-1') is None
        self.cache.invalidate('prod-1')

    def test_stats(self):
        self.client.get.side_effect = lambda key: {'cache:hits': '3', 'cache:misses': '1'}[key]

        assert self.cache.stats() == {'enabled': True, 'hits': 3, 'misses': 1, 'hit_rate': 75.0}

    def test_disabled_cache(self):
        cache = PriceCache()

        assert not cache.enabled
        assert cache.get('prod-1') is None
        assert cache.stats() == {'enabled': False}

    def test_from_config_disabled(self):
        assert not PriceCache.from_config({'enabled': False, 'ttl': 60}).enabled

    @patch('scoring_engine.services.price_cache.redis.Redis')
    def test_from_config_connection_failure(self, redis_class):
        redis_class.return_value.ping.side_effect = redis.ConnectionError("refused")

        cache = PriceCache.from_config({'enabled': True, 'host': 'localhost', 'port': 6379, 'db': 0})

        assert not cache.enabled
