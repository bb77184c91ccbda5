from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./iptv_portal.db"
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    # Matches the portal's 30-day session lifetime
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # Honor X-Forwarded-For / X-Real-IP only when a reverse proxy sets them
    TRUST_PROXY_HEADERS: bool = False

    # Login rate limiting (trailing window, failures only)
    LOGIN_WINDOW_MINUTES: int = 10
    MAX_FAILURES_PER_EMAIL: int = 8
    MAX_FAILURES_PER_IP: int = 12

    MIN_PASSWORD_LENGTH: int = 6

    # Forgot / reset password
    PASSWORD_RESET_EXPIRE_MINUTES: int = 30
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    DEFAULT_MAINTENANCE_MESSAGE: str = (
        "We are performing maintenance. Please come back in a few minutes."
    )

    # SMTP
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    NOTIFICATION_ENABLED: bool = False


settings = Settings()
