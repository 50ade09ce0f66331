"""
Runtime settings for Flash Query.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuerySettings(BaseSettings):
    """
    Settings shared by models, querysets and the bundled backends.

    Values are read from the environment with the ``FLASH_QUERY_`` prefix
    (e.g. ``FLASH_QUERY_AUTO_GENERATE_PK=false``) or from a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASH_QUERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Models ---
    DEFAULT_PK_FIELD: str = "id"

    # --- Backends ---
    # When False, saving an entity without a primary key fails instead of
    # assigning a generated one.
    AUTO_GENERATE_PK: bool = True
    LOCAL_STORE_URL: str = "sqlite+aiosqlite:///:memory:"
    LOCAL_STORE_ECHO: bool = False
    GRAPHQL_TIMEOUT: float = 10.0

    # --- Signals & Logging ---
    LOG_SIGNAL_ERRORS: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @model_validator(mode="after")
    def validate_settings(self) -> "QuerySettings":
        """Rejects an empty pk field name, sync database drivers and bad timeouts."""
        if not self.DEFAULT_PK_FIELD:
            raise ValueError("DEFAULT_PK_FIELD must not be empty.")
        if "+" not in self.LOCAL_STORE_URL.split("://", 1)[0]:
            raise ValueError(
                "LOCAL_STORE_URL must name an async driver, "
                "e.g. 'sqlite+aiosqlite:///:memory:'."
            )
        if self.GRAPHQL_TIMEOUT <= 0:
            raise ValueError("GRAPHQL_TIMEOUT must be positive.")
        return self


# Singleton instance for core use
query_settings = QuerySettings()
