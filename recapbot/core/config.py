import re
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Daily Recap Bot"
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./recapbot.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async"""
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://") and "+asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg doesn't support sslmode parameter, remove it
        if "sslmode=" in v:
            v = re.sub(r'[?&]sslmode=[^&]*', '', v)
            v = v.rstrip('?&')
        return v

    # Signed OAuth state
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    OAUTH_STATE_EXPIRE_MINUTES: int = 30
    # Accept unsigned "slack_user_id|team_id" states from old links. Anyone can forge these.
    OAUTH_ALLOW_UNSIGNED_STATE: bool = False

    # Slack
    SLACK_BOT_TOKEN: Optional[str] = None
    SLACK_CHANNEL_ID: Optional[str] = None  # Channel whose members get the daily prompt
    SLACK_ACTIVITY_CHANNEL_IDS: Optional[str] = None  # Comma separated, defaults to SLACK_CHANNEL_ID

    # Google OAuth / Calendar
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/v1/connections/google/callback"

    # LLM (any OpenAI-compatible endpoint)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    AI_MODEL: str = "gpt-4o-mini"
    SCRIPT_MODEL: str = "gpt-4o-mini"
    CHAT_MODEL: str = "gpt-4o-mini"

    # ElevenLabs (text-to-speech)
    ELEVENLABS_API_KEY: Optional[str] = None
    ELEVENLABS_VOICE_ID: str = "21m00Tcm4TlvDq8ikWAM"  # Rachel
    ELEVENLABS_MODEL_ID: str = "eleven_turbo_v2_5"

    # Activity collection
    HTTP_TIMEOUT_SECONDS: float = 20.0
    ACTIVITY_MAX_ITEMS: int = 20  # Per source, most recent first
    ACTIVITY_TIMEZONE: str = "UTC"
    GITHUB_MAX_REPOS: int = 30
    GITHUB_CONCURRENCY: int = 5

    # Draft hand-off between pre-generation and the prompt
    DRAFT_CACHE_TTL_SECONDS: int = 60 * 60 * 12

    # Scheduled daily prompt (weekdays)
    DAILY_PROMPT_ENABLED: bool = False
    DAILY_PROMPT_HOUR: int = 16
    DAILY_PROMPT_MINUTE: int = 30

    def activity_channel_ids(self) -> List[str]:
        raw = self.SLACK_ACTIVITY_CHANNEL_IDS or self.SLACK_CHANNEL_ID or ""
        return [c.strip() for c in raw.split(",") if c.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
