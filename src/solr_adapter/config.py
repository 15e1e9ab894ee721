"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Engine settings are read with the ``SOLR_`` prefix, e.g.
    ``SOLR_SERVER_HOSTNAME`` or ``SOLR_INDEX_NAME``.
    """

    # Application
    app_name: str = "Solr Search Adapter"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Connection
    server_hostname: str | None = Field(default=None)
    server_port: int | None = Field(default=None)
    index_name: str | None = Field(default=None)
    secure: bool = Field(default=False, description="Use https for engine calls")
    server_username: str | None = Field(default=None)
    server_password: str | None = Field(default=None)
    server_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Connect and read timeout per engine call, in seconds",
    )
    reuse_connection: bool = Field(
        default=True,
        description="Keep one HTTP client per engine instead of one per call",
    )

    # Alternate server (used for index migrations)
    alternate_server_hostname: str | None = Field(default=None)
    alternate_server_port: int | None = Field(default=None)
    alternate_index_name: str | None = Field(default=None)

    # Query behaviour
    query_size: int = Field(
        default=120,
        ge=1,
        description="Maximum number of engine records fetched per page",
    )
    max_results: int = Field(
        default=100,
        ge=1,
        description="Result limit used when a caller passes 0",
    )

    # File indexing
    file_indexing: bool = Field(default=False)
    max_index_file_kb: int = Field(
        default=0,
        ge=0,
        description="Largest file sent for text extraction (0 means no limit)",
    )
    indexed_files_page_size: int = Field(
        default=500,
        ge=1,
        description="Page size when scanning previously indexed files",
    )

    model_config = SettingsConfigDict(
        env_prefix="SOLR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def has_alternate_configuration(self) -> bool:
        """Check whether a complete alternate server is configured."""
        return bool(
            self.alternate_server_hostname
            and self.alternate_index_name
            and self.alternate_server_port
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
