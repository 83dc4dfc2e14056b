from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "DOIT"
    app_version: str = "1.0.0"
    debug: bool = False
    timezone: str = "Europe/Berlin"
    build_commit: str = "unknown"

    # Database
    database_url: str = "sqlite+aiosqlite:///./doit.db"

    # Session JWT
    secret_key: str = "change-me-to-a-random-secret"
    jwt_algorithm: str = "HS256"
    session_expire_days: int = 7
    session_cookie_name: str = "doit_session"

    # Encryption key for stored OAuth tokens and Jira credentials
    encryption_key: str = ""

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/api/oauth/google/callback"
    google_refresh_token: str = ""

    # Access control
    allowed_emails: str = ""  # comma separated, empty allows everyone
    cron_secret: str = ""
    cron_user_email: str = ""

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Slack
    slack_signing_secret: str = ""
    slack_allowed_channels: str = ""
    slack_allowed_users: str = ""
    slack_user_email: str = ""
    slack_client_id: str = ""
    slack_client_secret: str = ""

    # Frontend
    frontend_url: str = "http://localhost:3000"
    app_url: str = "http://localhost:8000"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def allowed_email_list(self) -> list[str]:
        return [e.strip().lower() for e in self.allowed_emails.split(",") if e.strip()]


settings = Settings()
