"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version
    VERSION: str = "0.1.0"

    # Database
    DATABASE_URL: str = "sqlite:///./supportdesk.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 12

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Redis backplane for websocket fan-out across instances (empty = single instance)
    REDIS_URL: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_AI: int = 20

    # Classification / reply-draft LLM
    AI_PROVIDER: str = "groq"
    AI_API_KEY: str = ""
    AI_MODEL: str = "llama-3.1-8b-instant"
    AI_BASE_URL: str = ""  # Overrides the provider default endpoint
    AI_TIMEOUT_SECONDS: float = 30.0

    # Where ticket creation sends triage requests (the /ai-triage endpoint)
    AI_SERVICE_URL: str = "http://localhost:8000"
    AI_SERVICE_SECRET: str = ""  # Shared secret for /ai-triage when set

    # Attachments
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/supportdesk-attachments"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    S3_BUCKET: str = "supportdesk-attachments"
    S3_REGION: str = "us-east-1"
    MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024  # 10 MB

    # Conversation behaviour
    TYPING_TIMEOUT_SECONDS: float = 3.0
    MESSAGE_GROUP_WINDOW_SECONDS: int = 120
    REPLY_CONTEXT_MESSAGES: int = 10

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

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
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
