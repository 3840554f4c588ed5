"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default='false'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Authentication (bearer JWT issued by the storefront auth service)
    JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'backoffice')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'backoffice')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'backoffice')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Inventory ledger
    INVENTORY_ALLOW_NEGATIVE_STOCK = _env_bool('INVENTORY_ALLOW_NEGATIVE_STOCK')
    # 'row' = SELECT ... FOR UPDATE per reserved item, 'none' = legacy best-effort
    INVENTORY_LOCKING = os.getenv('INVENTORY_LOCKING', 'row')
    INVENTORY_DEFAULT_LOW_STOCK_THRESHOLD = int(os.getenv('INVENTORY_DEFAULT_LOW_STOCK_THRESHOLD', '5'))
    INVENTORY_ALERT_CRITICAL_THRESHOLD = int(os.getenv('INVENTORY_ALERT_CRITICAL_THRESHOLD', '5'))
    INVENTORY_ALERT_LOW_THRESHOLD = int(os.getenv('INVENTORY_ALERT_LOW_THRESHOLD', '10'))
    INVENTORY_ALERT_CHANNEL = os.getenv('INVENTORY_ALERT_CHANNEL', 'inventory:alerts')

    # MCG (external inventory/ERP) integration
    MCG_ENABLED = _env_bool('MCG_ENABLED')
    MCG_AUTO_PULL_ENABLED = _env_bool('MCG_AUTO_PULL_ENABLED')
    MCG_PULL_EVERY_MINUTES = int(os.getenv('MCG_PULL_EVERY_MINUTES', '15'))
    MCG_API_FLAVOR = os.getenv('MCG_API_FLAVOR', 'legacy')
    MCG_BASE_URL = os.getenv('MCG_BASE_URL', 'https://api.mcgateway.com')
    MCG_CLIENT_ID = os.getenv('MCG_CLIENT_ID', '')
    MCG_CLIENT_SECRET = os.getenv('MCG_CLIENT_SECRET', '')
    MCG_SCOPE = os.getenv('MCG_SCOPE', '')
    MCG_API_VERSION = os.getenv('MCG_API_VERSION', 'v2.6')
    MCG_PAGE_SIZE = int(os.getenv('MCG_PAGE_SIZE', '200'))
    MCG_GROUP = os.getenv('MCG_GROUP')
    MCG_REQUEST_TIMEOUT = int(os.getenv('MCG_REQUEST_TIMEOUT', '25'))
    MCG_SCHEDULER_ENABLED = _env_bool('MCG_SCHEDULER_ENABLED', 'true')
    MCG_SCHEDULER_TICK_SECONDS = int(os.getenv('MCG_SCHEDULER_TICK_SECONDS', '60'))

    # Redis Cache Configuration
    # Read caches for inventory listings + pub/sub channel for stock alerts
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_INVENTORY_TTL = int(os.getenv('CACHE_INVENTORY_TTL', '30'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'backoffice')


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite, no Redis, no scheduler)."""

    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    INVENTORY_ALLOW_NEGATIVE_STOCK = False
    INVENTORY_LOCKING = 'row'
    CACHE_ENABLED = False
    MCG_ENABLED = True
    MCG_AUTO_PULL_ENABLED = True
    MCG_CLIENT_ID = 'test-client'
    MCG_CLIENT_SECRET = 'test-secret'
    MCG_BASE_URL = 'https://mcg.test'
    MCG_SCHEDULER_ENABLED = False
