"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./hostelpal.db"

    # Access Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 1

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Dev-only
    DEV_SECRET: str = "change-me"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 100
    RATE_LIMIT_AI: int = 20

    # Complaint classifier (external LLM)
    AI_PROVIDER: str = "gemini"  # gemini | openai
    AI_API_KEY: str = ""
    AI_MODEL: str = ""  # Empty = provider default
    AI_TIMEOUT_SECONDS: float = 60.0
    AI_MAX_ATTEMPTS: int = 3
    AI_RETRY_DELAY_SECONDS: float = 1.0

    # Push notifications (Firebase Cloud Messaging legacy HTTP API)
    FCM_SERVER_KEY: str = ""

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""

    # Email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""

    # Ticket image storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/hostelpal-uploads"
    S3_BUCKET: str = "hostelpal-uploads"
    S3_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""

    # Live-update session registry (empty or memory:// = in-process)
    REDIS_URL: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def push_configured(self) -> bool:
        return bool(self.FCM_SERVER_KEY)

    @property
    def sms_configured(self) -> bool:
        return bool(
            self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER
        )

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY and self.EMAIL_FROM)


settings = Settings()
