"""
Configuration management for the scoreboard API.
Settings are read from the environment; production fails fast on missing secrets.
"""

import os
import warnings
from datetime import timedelta
from enum import Enum
from urllib.parse import urlparse


class Environment(str, Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationError(Exception):
    """Raised when configuration validation fails"""
    pass


LEMONSQUEEZY_VARIANT_SETTINGS = (
    "LEMONSQUEEZY_MONTHLY_SUPPORTER_VARIANT_ID",
    "LEMONSQUEEZY_YEARLY_SUPPORTER_VARIANT_ID",
    "LEMONSQUEEZY_MONTHLY_CHAMPION_VARIANT_ID",
    "LEMONSQUEEZY_YEARLY_CHAMPION_VARIANT_ID",
    "LEMONSQUEEZY_MONTHLY_LEGEND_VARIANT_ID",
    "LEMONSQUEEZY_YEARLY_LEGEND_VARIANT_ID",
    "LEMONSQUEEZY_MONTHLY_HALL_OF_FAMER_VARIANT_ID",
    "LEMONSQUEEZY_YEARLY_HALL_OF_FAMER_VARIANT_ID",
)


class BaseConfig:
    """
    Base configuration. Secrets are lazy properties so that a missing value
    only fails when the config is actually loaded for an environment.
    """

    APP_NAME = os.getenv("APP_NAME", "Scoreboard")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

    ENV = Environment.DEVELOPMENT.value
    ENVIRONMENT = ENV
    DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"
    TESTING = False
    PROPAGATE_EXCEPTIONS = False

    # ============================================
    # SECURITY KEYS
    # ============================================
    @property
    def SECRET_KEY(self):
        key = os.getenv("SECRET_KEY")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("SECRET_KEY is required in production")
            warnings.warn("SECRET_KEY not set, using development fallback")
            return "dev-secret-key-change-immediately-in-production"
        return key

    @property
    def JWT_SECRET_KEY(self):
        key = os.getenv("JWT_SECRET_KEY")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("JWT_SECRET_KEY is required in production")
            return self.SECRET_KEY
        return key

    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "60")))
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"
    JWT_ALGORITHM = "HS256"
    JWT_IDENTITY_CLAIM = "sub"
    JWT_ERROR_MESSAGE_KEY = "error"

    # ============================================
    # DATABASE
    # ============================================
    @property
    def SQLALCHEMY_DATABASE_URI(self):
        uri = os.getenv("DATABASE_URL")

        if not uri:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("DATABASE_URL is required in production")
            uri = "sqlite:///scoreboard.db"

        # Heroku-style URLs
        if uri.startswith("postgres://"):
            uri = uri.replace("postgres://", "postgresql://", 1)

        if self.ENV == Environment.PRODUCTION and urlparse(uri).scheme == "sqlite":
            raise ConfigurationError("SQLite is not allowed in production. Use PostgreSQL.")

        return uri

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": int(os.getenv("DATABASE_POOL_RECYCLE", "3600")),
    }

    # ============================================
    # BILLING PROVIDER (LemonSqueezy)
    # ============================================
    @property
    def LEMONSQUEEZY_API_KEY(self):
        key = os.getenv("LEMONSQUEEZY_API_KEY")
        if not key and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("LEMONSQUEEZY_API_KEY is required in production")
        return key or ""

    @property
    def LEMONSQUEEZY_WEBHOOK_SECRET(self):
        secret = os.getenv("LEMONSQUEEZY_WEBHOOK_SECRET")
        if not secret and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("LEMONSQUEEZY_WEBHOOK_SECRET is required in production")
        return secret or ""

    LEMONSQUEEZY_API_URL = os.getenv("LEMONSQUEEZY_API_URL", "https://api.lemonsqueezy.com/v1").rstrip("/")
    LEMONSQUEEZY_TIMEOUT = float(os.getenv("LEMONSQUEEZY_TIMEOUT", "10"))
    LEMONSQUEEZY_STORE_ID = os.getenv("LEMONSQUEEZY_STORE_ID", "")

    LEMONSQUEEZY_MONTHLY_SUPPORTER_VARIANT_ID = os.getenv("LEMONSQUEEZY_MONTHLY_SUPPORTER_VARIANT_ID", "")
    LEMONSQUEEZY_YEARLY_SUPPORTER_VARIANT_ID = os.getenv("LEMONSQUEEZY_YEARLY_SUPPORTER_VARIANT_ID", "")
    LEMONSQUEEZY_MONTHLY_CHAMPION_VARIANT_ID = os.getenv("LEMONSQUEEZY_MONTHLY_CHAMPION_VARIANT_ID", "")
    LEMONSQUEEZY_YEARLY_CHAMPION_VARIANT_ID = os.getenv("LEMONSQUEEZY_YEARLY_CHAMPION_VARIANT_ID", "")
    LEMONSQUEEZY_MONTHLY_LEGEND_VARIANT_ID = os.getenv("LEMONSQUEEZY_MONTHLY_LEGEND_VARIANT_ID", "")
    LEMONSQUEEZY_YEARLY_LEGEND_VARIANT_ID = os.getenv("LEMONSQUEEZY_YEARLY_LEGEND_VARIANT_ID", "")
    LEMONSQUEEZY_MONTHLY_HALL_OF_FAMER_VARIANT_ID = os.getenv("LEMONSQUEEZY_MONTHLY_HALL_OF_FAMER_VARIANT_ID", "")
    LEMONSQUEEZY_YEARLY_HALL_OF_FAMER_VARIANT_ID = os.getenv("LEMONSQUEEZY_YEARLY_HALL_OF_FAMER_VARIANT_ID", "")

    UPGRADE_URL = os.getenv("UPGRADE_URL", "/supporter-plan")

    # ============================================
    # CORS / RATE LIMITING
    # ============================================
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
    CORS_SUPPORTS_CREDENTIALS = False

    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "300 per hour")
    RATELIMIT_HEADERS_ENABLED = True
    WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "120 per minute")
    ADMIN_RATE_LIMIT = os.getenv("ADMIN_RATE_LIMIT", "60 per minute")

    # ============================================
    # LOGGING / MONITORING
    # ============================================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_REQUESTS = os.getenv("LOG_REQUESTS", "False").lower() == "true"
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    CREATE_TABLES_ON_START = os.getenv("CREATE_TABLES_ON_START", "False").lower() == "true"


class DevelopmentConfig(BaseConfig):
    ENV = Environment.DEVELOPMENT.value
    ENVIRONMENT = ENV
    DEBUG = True
    CREATE_TABLES_ON_START = True


class TestingConfig(BaseConfig):
    ENV = Environment.TESTING.value
    ENVIRONMENT = ENV
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "super-secret-test-key-for-scoreboard-tests"
    LEMONSQUEEZY_API_KEY = "test-api-key"
    LEMONSQUEEZY_WEBHOOK_SECRET = "test-webhook-secret"
    LEMONSQUEEZY_API_URL = "https://api.lemonsqueezy.test/v1"

    LEMONSQUEEZY_MONTHLY_SUPPORTER_VARIANT_ID = "1001"
    LEMONSQUEEZY_YEARLY_SUPPORTER_VARIANT_ID = "1002"
    LEMONSQUEEZY_MONTHLY_CHAMPION_VARIANT_ID = "2001"
    LEMONSQUEEZY_YEARLY_CHAMPION_VARIANT_ID = "2002"
    LEMONSQUEEZY_MONTHLY_LEGEND_VARIANT_ID = "3001"
    LEMONSQUEEZY_YEARLY_LEGEND_VARIANT_ID = "3002"
    LEMONSQUEEZY_MONTHLY_HALL_OF_FAMER_VARIANT_ID = "4001"
    LEMONSQUEEZY_YEARLY_HALL_OF_FAMER_VARIANT_ID = "4002"

    RATELIMIT_ENABLED = False
    CREATE_TABLES_ON_START = False


class ProductionConfig(BaseConfig):
    ENV = Environment.PRODUCTION.value
    ENVIRONMENT = ENV
    DEBUG = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "10")),
        "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "20")),
        "pool_recycle": int(os.getenv("DATABASE_POOL_RECYCLE", "3600")),
        "pool_pre_ping": True,
    }


CONFIGS = {
    Environment.DEVELOPMENT.value: DevelopmentConfig,
    Environment.TESTING.value: TestingConfig,
    Environment.PRODUCTION.value: ProductionConfig,
}


def get_config(name=None):
    """Return a config instance for the given environment name."""
    name = (name or os.getenv("FLASK_CONFIG") or os.getenv("ENV") or "development").lower()
    try:
        config_class = CONFIGS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown configuration '{name}'. Expected one of: {', '.join(CONFIGS)}"
        )
    return config_class()
