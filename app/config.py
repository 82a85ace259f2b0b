from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    BOT_TOKEN: str

    # Spreadsheet backend (Apps Script web app)
    GAS_API_URL: Optional[str] = None
    GAS_API_KEY: str = ""
    GAS_TIMEOUT_SECONDS: float = 15.0

    # Local jobs file, used when GAS_API_URL is not set
    JOBS_FILE: str = "jobs.json"

    # Staff chat for new appointment / lead notifications
    STAFF_GROUP_ID: Optional[str] = None

    # Webhook mode is enabled when WEBHOOK_BASE_URL is set, polling otherwise
    WEBHOOK_BASE_URL: Optional[str] = None
    WEBHOOK_PATH: str = "/webhook"
    WEBHOOK_SECRET: Optional[str] = None
    WEB_HOST: str = "0.0.0.0"
    WEB_PORT: int = 8080

    # Inactivity timers for users stuck mid-intake
    SESSION_WARNING_MINUTES: int = 10
    SESSION_RESET_MINUTES: int = 30

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "bot.log"

    class Config:
        env_file = ".env"
