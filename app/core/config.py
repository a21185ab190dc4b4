from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    REDIS_URL: str

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    DOCUMENT_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    RATE_LIMIT: int = 100
    RATE_LIMIT_WINDOW: int = 600  # 10 minutes
    DOCUMENT_RATE_LIMIT: int = 20

    IDEMPOTENCY_TTL: int = 300  # 5 minutes

    GEOCODING_API_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"
    GEOCODING_API_KEY: str = ""
    GEOCODING_REGION: str = "India"
    GEOCODE_CACHE_TTL: int = 86400  # 24 hours

    CHANGE_WINDOW_HOURS: int = 48
    DEFAULT_DELIVERY_DAYS: int = 7
    ORDER_TRANSITION_POLICY: str = "permissive"

    ZOHO_BOOKS_BASE_URL: str = "https://www.zohoapis.in/books/v3"
    ZOHO_ACCOUNTS_URL: str = "https://accounts.zoho.in/oauth/v2/token"
    ZOHO_ORGANIZATION_ID: str = ""
    ZOHO_CLIENT_ID: str = ""
    ZOHO_CLIENT_SECRET: str = ""
    ZOHO_REFRESH_TOKEN: str = ""
    ZOHO_TOKEN_TTL: int = 3300  # 55 minutes

    EXTERNAL_CALL_TIMEOUT: float = 15.0

    NOTIFICATION_WEBHOOK_URL: str = ""
    NOTIFICATION_TIMEOUT: int = 10
    NOTIFICATION_RETRIES: int = 3

    PUBLIC_BASE_URL: str = "http://localhost:8000"

    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_BACKOFF_SECONDS: int = 30
    OUTBOX_SWEEP_INTERVAL: int = 60
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_LEASE_SECONDS: int = 600

    CELERY_BROKER_URL: str
    CELERY_BACKEND: str

    API_TITLE: str = "BuildMart Order Service"
    API_DESCRIPTION: str = "Order lifecycle, delivery pricing and accounting document sync for construction material orders"
    API_VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
