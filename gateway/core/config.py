from pydantic_settings import BaseSettings, SettingsConfigDict



class Settings(BaseSettings):
    APP_ENV: str = "dev"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./gateway.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    WEBHOOK_SECRET: str = "dev-webhook-secret-change-in-production"
    INBOUND_WEBHOOK_SECRET: str | None = None
    API_KEY_SECRET: str = "dev-api-secret-change-in-production"
    PAYMENT_TIMEOUT_MINUTES: int = 30
    PAYMENT_LINK_BASE_URL: str = "https://payment.gateway/checkout"
    WEBHOOK_RETRY_ATTEMPTS: int = 3
    WEBHOOK_RETRY_DELAY_MS: int = 5000
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60
    SWEEPER_LOCK_TTL_SECONDS: int = 55
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


Config = Settings()
