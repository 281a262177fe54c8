import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    SEED_ON_STARTUP: bool = _get_bool("SEED_ON_STARTUP", True)

    # Database (SQLite by default in a Docker volume)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:////data/data.db")

    # Redis (product/stock read cache)
    REDIS_ENABLED: bool = _get_bool("REDIS_ENABLED", True)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_CACHE_TTL: int = int(os.getenv("REDIS_CACHE_TTL", "300"))

    # Kafka (order/payment lifecycle events)
    KAFKA_ENABLED: bool = _get_bool("KAFKA_ENABLED", False)
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    KAFKA_CONNECT_ATTEMPTS: int = int(os.getenv("KAFKA_CONNECT_ATTEMPTS", "3"))
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")

    # Payment gateway simulator
    GATEWAY_MIN_DELAY: float = float(os.getenv("GATEWAY_MIN_DELAY", "1.0"))
    GATEWAY_MAX_DELAY: float = float(os.getenv("GATEWAY_MAX_DELAY", "3.0"))
    # 1.0 means the verification code match alone settles a payment
    GATEWAY_VERIFY_SUCCESS_RATE: float = float(os.getenv("GATEWAY_VERIFY_SUCCESS_RATE", "1.0"))
    PAYMENT_EXPIRY_HOURS: int = int(os.getenv("PAYMENT_EXPIRY_HOURS", "24"))
    MERCHANT_NAME: str = os.getenv("MERCHANT_NAME", "JMT Archery")
    MERCHANT_WALLET_NUMBER: str = os.getenv("MERCHANT_WALLET_NUMBER", "+62 895-6013-77400")


settings = Settings()
