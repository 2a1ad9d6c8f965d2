"""
Scoring Engine Configuration
"""
import os
from dotenv import load_dotenv

load_dotenv()


# Environment Detection and Database Configuration
def is_heroku():
    """Check if we're running on Heroku"""
    return os.getenv('DATABASE_URL') is not None


def get_database_config():
    """Get database configuration based on environment"""
    if is_heroku():
        # Parse Heroku DATABASE_URL
        import urllib.parse as urlparse
        url = urlparse.urlparse(os.getenv('DATABASE_URL'))
        return {
            'host': url.hostname,
            'port': url.port or 5432,
            'database': url.path[1:],  # Remove leading slash
            'user': url.username,
            'password': url.password,
            'sslmode': 'require'  # Heroku requires SSL
        }
    else:
        # Local development configuration
        return {
            'host': os.getenv('PG_HOST', 'localhost'),
            'port': int(os.getenv('PG_PORT', '5432')),
            'database': os.getenv('PG_DB', 'commerce_scoring'),
            'user': os.getenv('PG_USER', 'postgres'),
            'password': os.getenv('PG_PASSWORD', 'postgres')
        }


def get_redis_config():
    """Get Redis configuration based on environment"""
    redis_url = os.getenv('REDIS_URL')
    if redis_url:
        import urllib.parse as urlparse
        url = urlparse.urlparse(redis_url)
        return {
            'enabled': True,
            'host': url.hostname,
            'port': url.port or 6379,
            'db': int(os.getenv('REDIS_DB', '0')),
            'ttl': int(os.getenv('PRICE_CACHE_TTL', '300')),
            'password': url.password,
            'ssl': url.scheme == 'rediss',
        }
    return {
        'enabled': os.getenv('REDIS_ENABLED', 'false').lower() == 'true',
        'host': os.getenv('REDIS_HOST', 'localhost'),
        'port': int(os.getenv('REDIS_PORT', '6379')),
        'db': int(os.getenv('REDIS_DB', '0')),
        'ttl': int(os.getenv('PRICE_CACHE_TTL', '300')),
        'password': os.getenv('REDIS_PASSWORD') or None,
        'ssl': False,
    }


PG_CONFIG = get_database_config()
REDIS_CONFIG = get_redis_config()

# Service Configuration
SERVICE_CONFIG = {
    'store_backend': os.getenv('STORE_BACKEND', 'memory'),  # memory | postgres
    'host': os.getenv('SERVICE_HOST', '0.0.0.0'),
    'port': int(os.getenv('SERVICE_PORT', '8001')),
    'log_level': os.getenv('LOG_LEVEL', 'INFO'),
    'pool_min': int(os.getenv('PG_POOL_MIN', '2')),
    'pool_max': int(os.getenv('PG_POOL_MAX', '10')),
}

# Dynamic Pricing Configuration
PRICING_CONFIG = {
    'default_currency': os.getenv('DEFAULT_CURRENCY', 'USD'),
    'max_discount_percentage': 50,
}

# BNPL Configuration
BNPL_CONFIG = {
    'minimum_order_total': float(os.getenv('BNPL_MIN_ORDER_TOTAL', '50')),
    'credit_expiry_days': int(os.getenv('BNPL_CREDIT_EXPIRY_DAYS', '365')),
    'base_credit_score': 650,
}

# Exchange Rate Configuration
EXCHANGE_RATE_CONFIG = {
    'base_url': os.getenv('EXCHANGE_RATE_API_URL', ''),
    'api_key': os.getenv('EXCHANGE_RATE_API_KEY', ''),
    'base_currency': 'USD',
    'timeout': int(os.getenv('EXCHANGE_RATE_TIMEOUT', '10')),
}
