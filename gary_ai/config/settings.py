"""Gary AI configuration via environment / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GARY_AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Chat endpoint (WordPress admin-ajax) ---
    ENDPOINT: str = ""
    NONCE: str = ""
    TIMEOUT: float = 30.0

    # --- Session ---
    SESSION_PREFIX: str = "gary"

    # --- Widget behaviour ---
    ENABLE_ANALYTICS: bool = True
    ENABLE_STORAGE: bool = True
    MAX_MESSAGE_LENGTH: int = 2000

    # --- Local conversation storage ---
    STORAGE_PATH: Path = Path("~/.gary_ai/storage.json")

    @field_validator("ENDPOINT", mode="before")
    @classmethod
    def _strip_endpoint(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("TIMEOUT")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("TIMEOUT must be positive")
        return v

    @field_validator("STORAGE_PATH")
    @classmethod
    def _expand_storage_path(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def has_credentials(self) -> bool:
        return bool(self.ENDPOINT and self.NONCE)


settings = Settings()
