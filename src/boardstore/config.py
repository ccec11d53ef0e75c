"""
Configuration management for the board store
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BOARDSTORE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote board service
    board_service_url: str = "http://localhost:8088/board/api/v1"
    http_timeout: float = 30.0

    # Pagination defaults
    channels_page_size: int = 100
    contents_page_size: int = 1000

    # Images
    max_image_size: int = 20 * 1024 * 1024  # 20MB
    allowed_image_types: list[str] = [
        "image/png",
        "image/jpeg",
        "image/gif",
        "image/webp",
    ]

    # Blob storage backing the file service
    storage_config_path: str | None = None

    # Logging
    debug: bool = False  # console output instead of JSON
    log_level: str = "INFO"


# Global settings instance
settings = Settings()
