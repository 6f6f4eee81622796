"""API configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://feastfleet:feastfleet@db:5432/feastfleet"
    REDIS_URL: str = "redis://redis:6379/0"
    TIMEZONE: str = "Asia/Kolkata"

    # Payment gateway
    PAYMENT_GATEWAY_BASE_URL: str = "https://api-preprod.phonepe.com/apis/pg-sandbox"
    PAYMENT_GATEWAY_AUTH_URL: str = "https://api-preprod.phonepe.com/apis/pg-sandbox/v1/oauth/token"
    PAYMENT_CLIENT_ID: str = ""
    PAYMENT_CLIENT_SECRET: str = ""
    PAYMENT_CLIENT_VERSION: int = 1
    PAYMENT_GATEWAY_TIMEOUT_S: float = 7.0
    PAYMENT_WEBHOOK_USER: str = ""
    PAYMENT_WEBHOOK_PASS: str = ""
    PAYMENT_REDIRECT_URL: str = ""
    PAYMENT_ENVIRONMENT: str = "SANDBOX"

    # Push + ops alerts
    FCM_SERVER_KEY: str = ""
    FCM_API_URL: str = "https://fcm.googleapis.com/fcm/send"
    TELEGRAM_BOT_TOKEN: str = ""
    ADMIN_TELEGRAM_ID: str = ""

    # Business rules
    COMMISSION_RATE: float = 0.20
    GST_RATE: float = 0.18
    RIDER_BLOCK_RATIO: float = 0.95
    RIDER_DEFAULT_DEPOSIT: float = 2000.0
    AVG_SPEED_KMH: float = 25.0
    GEOFENCE_BUFFER_KM: float = 0.3
    DRAFT_TTL_HOURS: int = 24
    COD_CUTOFF: str = "20:30"
    MIN_COD_VALUE: float = 100.0
    MAX_COD_VALUE: float = 500.0
    AOV: float = 300.0
    DELIVERY_CHARGE: float = 30.0
    PLATFORM_FEE: float = 0.0
    SUPPORT_CONTACT: str = ""
    SERVICE_AREAS_FILE: str = ""

    # Background workers
    OUTBOX_POLL_SECONDS: float = 2.0
    OUTBOX_MAX_ATTEMPTS: int = 5
    DRAFT_SWEEP_SECONDS: float = 900.0
    PAYMENT_RECONCILE_SECONDS: float = 300.0
    RUN_BACKGROUND_WORKERS: bool = True

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
