from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "EDB Backend API"
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    DATABASE_URL: str = "sqlite+aiosqlite:///./edb.db"
    DATABASE_ECHO: bool = False

    JWT_SECRET: str = "super-secret-key"
    JWT_REFRESH_SECRET: str = "refresh-secret-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Sécurité
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_DURATION_MINUTES: int = 15
    RATE_LIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT: str = "15/minute"

    # Email (SMTP)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "noreply@ecoledelabourse.com"

    # SMS
    SMS_PROVIDER: str = "twilio"
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # Paiements
    PAYMENT_CURRENCY: str = "XOF"
    PROVIDER_TIMEOUT_SECONDS: int = 15
    CINETPAY_API_KEY: str = ""
    CINETPAY_SITE_ID: str = ""
    CINETPAY_SECRET_KEY: str = ""
    CINETPAY_NOTIFY_URL: str = ""
    ORANGE_MONEY_API_KEY: str = ""
    ORANGE_MONEY_MERCHANT_KEY: str = ""
    ORANGE_MONEY_CALLBACK_URL: str = ""
    WAVE_API_KEY: str = ""
    WAVE_SECRET_KEY: str = ""
    WAVE_CALLBACK_URL: str = ""

    # Coaching et abonnements
    FREE_COACHING_DURATION_MONTHS: int = 3
    COACHING_REMINDER_DAYS_BEFORE_EXPIRY: str = "7,14,30"
    SUBSCRIPTION_EXPIRY_WARNING_DAYS: int = 7

    # Uploads
    UPLOAD_PATH: str = "static/upload"
    MAX_FILE_SIZE: int = 10 * 1024 * 1024

    # Tâches de fond
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 3600
    NOTIFICATION_WORKER_ENABLED: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def coaching_reminder_days(self) -> List[int]:
        return sorted(int(d) for d in self.COACHING_REMINDER_DAYS_BEFORE_EXPIRY.split(",") if d.strip())

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
