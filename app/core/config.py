from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BUSINESS_TIMEZONE: str = "America/Mexico_City"
    AVAILABILITY_START_HOUR: int = 9
    AVAILABILITY_END_HOUR: int = 17
    SLOT_DURATION_MINUTES: int = 60

    TOKEN_EXPIRY_MARGIN_MINUTES: int = 5
    HTTP_TIMEOUT_SECONDS: float = 10.0

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:5173/auth/google/callback"
    GOOGLE_AUTH_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_REVOKE_URL: str = "https://oauth2.googleapis.com/revoke"
    GOOGLE_CALENDAR_API: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_CALENDAR_SCOPES: list[str] = [
        "https://www.googleapis.com/auth/calendar",
        "https://www.googleapis.com/auth/calendar.events",
    ]

    STORE_PROVIDER: str = "memory"
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_KEY: str | None = None


settings = Settings()
