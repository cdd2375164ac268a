"""Configuration management using Pydantic settings"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    APP_ENV: str = "development"
    APP_HOST: str = "localhost"
    APP_PORT: int = 8000

    # Storage
    DATABASE_URL: str = "sqlite:///./storytime.db"

    # Razorpay configuration (empty = payments disabled)
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    PAYMENT_FETCH_TIMEOUT_SECONDS: float = 10.0

    # Firebase service account (falls back to application default credentials)
    GOOGLE_APPLICATION_CREDENTIALS: str = ""

    # Entitlement rules
    TRIAL_DAYS: int = 7
    DEFAULT_COINS_PER_STORY: int = 10

    # Child lock PIN hashing (PBKDF2-HMAC-SHA512)
    PIN_HASH_ITERATIONS: int = 10000

    # Web
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    RATE_LIMIT_ENABLED: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")

    @property
    def payments_configured(self) -> bool:
        return bool(self.RAZORPAY_KEY_ID and self.RAZORPAY_KEY_SECRET)


# Global settings instance
settings = Settings()
