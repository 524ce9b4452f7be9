# garagehub/config.py

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field
from functools import lru_cache
from urllib.parse import quote_plus

class Settings(BaseSettings):
    # App Config
    APP_NAME: str = "GarageHub"
    DEBUG: bool = False
    FRONTEND_HOST: str = "http://localhost:3000"

    # Database Config
    POSTGRES_HOST: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "secret"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "garagehub"
    DATABASE_URI: Optional[str] = None

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Login throttling (shared counter in the database)
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 900

    # Business windows
    REFUND_WINDOW_DAYS: int = 30
    REVIEW_EDIT_WINDOW_DAYS: int = 30

    # Payments
    DEFAULT_CURRENCY: str = "ETB"
    GARAGE_PAYMENT_MIN: float = 100
    GARAGE_PAYMENT_MAX: float = 1_000_000
    PAYMENT_PROVIDER_BASE_URL: str = "https://api.chapa.co/v1"
    PAYMENT_PROVIDER_SECRET_KEY: str = ""
    PAYMENT_WEBHOOK_SECRET: str = ""
    PAYMENT_CALLBACK_URL: str = "http://localhost:8000/api/v1/payments/webhook"
    PAYMENT_RETURN_URL: str = "http://localhost:3000/payment-complete"

    # File storage
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Email Settings
    MAIL_ENABLED: bool = False
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "noreply@garagehub.app"
    MAIL_FROM_NAME: str = "GarageHub"
    MAIL_PORT: int = 587
    MAIL_SERVER: str = "localhost"
    MAIL_STARTTLS: bool = True
    MAIL_SSL_TLS: bool = False
    USE_CREDENTIALS: bool = True

    # Automatic Database URI Construction
    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URI:
            return self.DATABASE_URI
        password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql://{self.POSTGRES_USER}:{password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=True
    )

@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
