import os


def _flag(name, default="0"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    JSON_SORT_KEYS = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")
    RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")
    LOGIN_LIMIT_PER_IP = os.getenv("LOGIN_LIMIT_PER_IP", "10 per 30 minutes")
    CHECKOUT_LIMIT_PER_IP = os.getenv("CHECKOUT_LIMIT_PER_IP", "20 per hour")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-insecure-jwt-key")
    ACCESS_TOKEN_LIFETIME_MIN = int(os.getenv("ACCESS_TOKEN_LIFETIME_MIN", 15))
    REFRESH_TOKEN_LIFETIME_DAYS = int(os.getenv("REFRESH_TOKEN_LIFETIME_DAYS", 30))
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
    PAYMENT_SIMULATE_SUCCESS = _flag("PAYMENT_SIMULATE_SUCCESS", "1")
    CART_REFRESH_DEBOUNCE_SECONDS = float(os.getenv("CART_REFRESH_DEBOUNCE_SECONDS", 2))
    PORT = int(os.getenv("PORT", 5000))
    TRACING_ENABLED = _flag("TRACING_ENABLED", "1")
    OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "storefront-backend")
    OTEL_TRACES_SAMPLE_RATIO = float(os.getenv("OTEL_TRACES_SAMPLE_RATIO", 1.0))
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318/v1/traces")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-insecure-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///dev.db")


class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = "test-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    PAYMENT_SIMULATE_SUCCESS = True
    CART_REFRESH_DEBOUNCE_SECONDS = 0.0
    TRACING_ENABLED = False
    RATELIMIT_ENABLED = False


class ProductionConfig(BaseConfig):
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    PAYMENT_SIMULATE_SUCCESS = _flag("PAYMENT_SIMULATE_SUCCESS", "0")

    @staticmethod
    def validate():
        missing = [
            name
            for name in ("SECRET_KEY", "DATABASE_URL", "JWT_SECRET", "STRIPE_SECRET_KEY")
            if not os.getenv(name)
        ]
        if missing:
            raise RuntimeError(
                f"Missing required env vars in production: {', '.join(missing)}"
            )


def get_config_class():
    env = os.getenv("APP_ENV", "development").lower()
    if env == "production":
        ProductionConfig.validate()
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
