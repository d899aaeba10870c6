"""
Configuration management for the application.
Loads settings from environment variables and the project .env file.
"""

from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env and data/ live)
# This file is at src/config/settings.py, so project root is 3 levels up
_project_root = Path(__file__).resolve().parent.parent.parent

# Export for use by the conversation database and logger - ensures consistent data/ paths
PROJECT_ROOT = _project_root

# Load environment variables from project root
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(dotenv_path=_env_file, override=True)
    logger.debug(f"Loaded .env from: {_env_file}")
else:
    logger.warning(f".env file not found at: {_env_file}")
    # Fallback to default behavior (current directory)
    load_dotenv(override=True)


DEFAULT_MAX_USER_MESSAGES = 10


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_project_root / ".env"),
        env_file_encoding="utf-8",
        extra="allow",  # Allow extra fields from .env
    )

    # Service identity
    system_name: str = Field(default="Workmate")  # Assistant name used in prompts and API metadata
    log_level: str = Field(default="INFO")

    # LLM Provider Selection
    llm_provider: str = Field(default="catalogue")  # "ollama" sends every request to the local server

    # Server-side fallback key (callers normally send their own key per request)
    openai_api_key: str = Field(default="")

    # Model defaults
    default_model: str = Field(default="gemini-2.5-flash")
    orchestrator_temperature: float = Field(default=0.7)  # Chat, confirmation and summary streams
    classifier_temperature: float = Field(default=0.0)  # Intent classification must be deterministic
    max_output_tokens: int = Field(default=2048)

    # Ollama Configuration (offline development)
    ollama_base_url: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="llama3")

    # Google OAuth client used to refresh per-user app tokens
    google_client_id: str = Field(default="")
    google_client_secret: str = Field(default="")
    google_token_uri: str = Field(default="https://oauth2.googleapis.com/token")

    # Credential lifecycle
    token_refresh_margin_seconds: int = Field(default=60)  # Never hand out a token this close to expiry

    # Action execution
    default_timezone: str = Field(default="Asia/Kolkata")
    narration_delay_seconds: float = Field(default=0.6)  # Pause between multi-agent handoff segments
    retry_idempotent_actions: bool = Field(default=True)  # Retry read-only actions once on retryable failures
    apps_page_url: str = Field(default="/apps")

    # Conversation Memory Configuration
    conversation_db_path: str = Field(default="data/conversations.db")
    max_conversation_messages: int = Field(default=20)  # History window sent to the model
    max_user_messages_per_chat: int = Field(default=DEFAULT_MAX_USER_MESSAGES)
    conversation_title_max_length: int = Field(default=50)

    # API
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://127.0.0.1:3000"])

    @field_validator("max_user_messages_per_chat")
    @classmethod
    def _validate_message_limit(cls, value: int) -> int:
        if value < 1 or value > 100:
            logger.warning(
                f"MAX_USER_MESSAGES_PER_CHAT value {value} is outside reasonable range (1-100). "
                f"Using default value {DEFAULT_MAX_USER_MESSAGES}."
            )
            return DEFAULT_MAX_USER_MESSAGES
        return value


# Create global settings instance
settings = Settings()


def resolve_data_path(path: str) -> Path:
    """Resolve a configured path relative to the project root."""
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = _project_root / resolved
    return resolved


def mask_secret(value: Optional[str]) -> str:
    """Mask an API key or token for logging (keeps first 8 and last 4 characters)."""
    if not value:
        return "<empty>"
    if len(value) > 12:
        return value[:8] + "..." + value[-4:]
    return "***"


if not settings.google_client_id or not settings.google_client_secret:
    logger.warning("⚠️  GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set - app token refresh will fail!")
logger.info(
    f"✅ Settings loaded | LLM Provider: {settings.llm_provider} | Default model: {settings.default_model} | "
    f"Message limit per chat: {settings.max_user_messages_per_chat}"
)
