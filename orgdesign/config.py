"""
Configuration management for orgdesign.

This module uses Pydantic's BaseSettings to manage configuration
through environment variables. It provides a centralized and typed
way to handle application settings.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from orgdesign import __version__
from orgdesign.utils.timeparse import parse_duration


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables.
    """

    # Durable local cache
    CACHE_DB_PATH: str = "data/orgdesign.db"
    AUTOSAVE_DEBOUNCE: str = "300ms"

    # Snapshot metadata
    APP_VERSION: str = __version__

    # Default organization limits
    MAX_ACCOUNTS: int = 10  # adjustable up to 10,000
    MAX_UNITS: int = 2000
    MAX_NESTING_LEVELS: int = 5
    MAX_SCPS_PER_NODE: int = 5
    MAX_RCPS_PER_NODE: int = 5
    MAX_POLICY_SIZE: int = 5120  # characters

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="ORGDESIGN_",
    )

    @field_validator("AUTOSAVE_DEBOUNCE")
    @classmethod
    def _check_debounce(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def autosave_delay_seconds(self) -> float:
        return parse_duration(self.AUTOSAVE_DEBOUNCE)


settings = Settings()
