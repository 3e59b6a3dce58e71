from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    BUSINESS_NAME: str = "Dental Hygiene Clinic"
    BUSINESS_TIMEZONE: str = "Europe/Prague"
    CURRENCY: str = "CZK"

    DRAFT_TTL_MINUTES: int = 30
    DRAFT_OUTCOME_RETENTION_MINUTES: int = 24 * 60
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 300

    GATEWAY_CREATE_RETRIES: int = 1
    GATEWAY_RETRY_BACKOFF_SECONDS: float = 0.5
    AUTO_REFUND_ON_CONFLICT: bool = False
    AUTO_REFUND_ON_CANCELLATION: bool = True
    CANCELLATION_REFUND_WINDOW_HOURS: int = 24

    NOTIFY_ON_EXPIRY: bool = True
    NOTIFY_MAX_ATTEMPTS: int = 3
    NOTIFY_BACKOFF_SECONDS: float = 1.0

    HTTP_TIMEOUT_SECONDS: float = 10.0

    COMGATE_MERCHANT_ID: str | None = None
    COMGATE_SECRET: str | None = None
    COMGATE_TEST_MODE: bool = True
    COMGATE_BASE_URL: str = "https://payments.comgate.cz"
    MOCK_GATEWAY_SECRET: str = "dev-secret"

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    GOOGLE_CALENDAR_ID: str | None = None
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"

    RESEND_API_KEY: str | None = None
    RESEND_BASE_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "Dental Hygiene Clinic <bookings@example.com>"
    CONTACT_PHONE: str = "+420 123 456 789"
    CONTACT_EMAIL: str = "info@example.com"

    CRON_SECRET: str | None = None


settings = Settings()
