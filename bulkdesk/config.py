from pathlib import Path

import httpx
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 3000

    # Browser dashboard origin(s)
    CORS_ORIGINS: list[str] = ["http://localhost:8080"]

    # Local collaborator files
    PROFILES_PATH: Path = BASE_DIR / "profiles.json"
    TICKET_LOG_PATH: Path = BASE_DIR / "ticket-log.json"

    # Zoho endpoints
    ZOHO_ACCOUNTS_URL: str = "https://accounts.zoho.com"
    ZOHO_DESK_BASE_URL: str = "https://desk.zoho.com"
    ZOHO_OAUTH_SCOPE: str = "Desk.tickets.ALL,Desk.settings.ALL"

    # =================================================================
    # TOKEN + REQUEST SETTINGS
    # =================================================================
    TOKEN_SAFETY_MARGIN_SECONDS: int = 60
    # None disables the per-call deadline entirely
    ZOHO_REQUEST_TIMEOUT_SECONDS: float | None = 30.0
    ZOHO_OAUTH_MAX_RETRIES: int = 3
    ZOHO_OAUTH_BACKOFF_FACTOR: float = 2.0

    # =================================================================
    # VERIFICATION SETTINGS
    # =================================================================
    VERIFY_SETTLE_DELAY_SECONDS: float = 10.0
    VERIFY_MAX_CONCURRENT: int = 10
    VERIFY_MAX_PENDING: int = 500
    VERIFY_CANCEL_ON_JOB_END: bool = True

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def token_url(self) -> str:
        """Zoho accounts token endpoint for the configured data center."""
        return f"{self.ZOHO_ACCOUNTS_URL.rstrip('/')}/oauth/v2/token"

    def desk_base_url(self) -> str:
        return self.ZOHO_DESK_BASE_URL.rstrip("/")

    def request_timeout(self) -> httpx.Timeout:
        """
        Per-call deadline for outbound Zoho requests.

        httpx applies a 5s default when nothing is passed, so an explicit
        ``Timeout(None)`` is needed to really disable it.
        """
        return httpx.Timeout(self.ZOHO_REQUEST_TIMEOUT_SECONDS)


settings = Settings()
