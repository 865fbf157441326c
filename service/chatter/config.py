from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional
import secrets
import string


class Settings(BaseSettings):
    # Telegram
    telegram_bot_token: str = ""
    telegram_webhook_secret: str = ""
    telegram_allowed_user_id: Optional[int] = None
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 15.0

    # Model backend
    model_provider: str = "anthropic"  # "anthropic" or "openai"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    model_name: str = ""  # Empty: provider default
    model_max_tokens: int = 4096
    model_timeout_seconds: float = 120.0

    # Workspace context
    workspace_root: str = "."
    active_file: str = ""  # Relative to workspace_root
    context_max_lines: int = 50

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 3847

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        protected_namespaces=(),
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


class CredentialStore:
    """
    Read-only view over the session credentials.

    Empty values are reported as absent (None).
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    def get_bot_token(self) -> Optional[str]:
        return self._settings.telegram_bot_token or None

    def get_secret_token(self) -> Optional[str]:
        return self._settings.telegram_webhook_secret or None

    def get_authorized_user_id(self) -> Optional[int]:
        return self._settings.telegram_allowed_user_id

    def missing(self) -> list[str]:
        """Names of the credentials that are not configured."""
        missing = []
        if self.get_bot_token() is None:
            missing.append("TELEGRAM_BOT_TOKEN")
        if self.get_secret_token() is None:
            missing.append("TELEGRAM_WEBHOOK_SECRET")
        if self.get_authorized_user_id() is None:
            missing.append("TELEGRAM_ALLOWED_USER_ID")
        return missing


def generate_secret_token(length: int = 32) -> str:
    """Random alphanumeric webhook secret."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
